"""
Pont temps réel des messages d'une conversation

Garde au plus un abonnement (INSERT sur `messages` filtré par
conversation_id). Changer de conversation ferme l'abonnement précédent
avant d'ouvrir le suivant; un événement reçu pour une conversation qui
n'est plus active est ignoré.

    async with RealtimeMessageBridge(feed, on_message) as bridge:
        await bridge.start(conversation_id)
"""

import logging
from typing import Awaitable, Callable, Optional, Union

from pydantic import ValidationError

from models.messaging import RealtimeMessage
from services.change_feed import ChangeFeed, Subscription, call_callback

logger = logging.getLogger("realtime")

MESSAGES_TABLE = "messages"
CONVERSATION_COLUMN = "conversation_id"

OnMessage = Callable[[RealtimeMessage], Union[None, Awaitable[None]]]


class RealtimeMessageBridge:

    def __init__(self, feed: ChangeFeed, on_message: OnMessage):
        self.feed = feed
        self.on_message = on_message
        self._subscription: Optional[Subscription] = None
        self._active_id: Optional[str] = None

    @property
    def active_conversation(self) -> Optional[str]:
        return self._active_id

    async def start(self, conversation_id: Optional[str]) -> None:
        """Bascule sur `conversation_id` (None = pas de conversation)"""
        if conversation_id and conversation_id == self._active_id and self._subscription:
            return

        await self.stop()
        if not conversation_id:
            return

        self._active_id = conversation_id

        async def _deliver(document: dict):
            await self._dispatch(conversation_id, document)

        self._subscription = await self.feed.subscribe(
            MESSAGES_TABLE, CONVERSATION_COLUMN, conversation_id, _deliver
        )

    async def stop(self) -> None:
        subscription, self._subscription = self._subscription, None
        self._active_id = None
        if subscription is not None:
            await subscription.unsubscribe()

    async def _dispatch(self, conversation_id: str, document: dict) -> None:
        if conversation_id != self._active_id:
            logger.debug(f"[REALTIME] Événement ignoré (conversation {conversation_id} inactive)")
            return
        if document.get(CONVERSATION_COLUMN) not in (None, conversation_id):
            return

        try:
            message = RealtimeMessage.model_validate(document)
        except ValidationError as e:
            logger.warning(f"[REALTIME] Message invalide ignoré: {e.error_count()} erreur(s)")
            return

        await call_callback(self.on_message, message)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.stop()
