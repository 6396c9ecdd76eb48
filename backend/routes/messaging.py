"""
ExeTeam - Routes Messagerie
REST (conversations, messages) + WebSocket temps réel.

WebSocket /api/conversations/ws?token=...
  client -> {"type": "subscribe", "conversationId": "..."} | {"type": "unsubscribe"}
  serveur -> {"type": "message", "data": {...}} | {"type": "subscribed", ...} | {"type": "error", "detail": "..."}
  fermeture 4401 sans session valide, 4403 sans messaging.use
"""

import json
import logging

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from models.common import camelize
from models.messaging import (
    CreateConversationRequest,
    ListMessagesQuery,
    RealtimeMessage,
    SendMessageRequest,
)
from routes.auth import COOKIE_NAME
from routes.deps import get_db, query_model
from services import messaging
from services.auth_provider import AuthError
from services.errors import ServiceError
from services.permissions import require_permission, user_has_permission
from services.realtime_bridge import RealtimeMessageBridge

logger = logging.getLogger("messaging")

router = APIRouter(prefix="/conversations", tags=["Messagerie"])


@router.get("")
async def list_conversations(
    user: dict = Depends(require_permission("messaging.use")),
    db=Depends(get_db),
):
    return camelize(await messaging.list_conversations(db, user))


@router.post("")
async def create_conversation(
    data: CreateConversationRequest,
    user: dict = Depends(require_permission("messaging.use")),
    db=Depends(get_db),
):
    return camelize(await messaging.create_conversation(db, data, user))


# ==================== TEMPS RÉEL ====================

async def _websocket_user(websocket: WebSocket):
    """Utilisateur du token (query `token` ou cookie), None si refusé"""
    token = websocket.query_params.get("token") or websocket.cookies.get(COOKIE_NAME)
    if not token:
        return None
    state = websocket.app.state
    try:
        identity = await state.auth_provider.get_user(token)
    except AuthError:
        return None
    user = await state.db.users.find_one({"id": identity["id"]}, {"_id": 0})
    if not user or not user.get("is_active", True):
        return None
    return user


@router.websocket("/ws")
async def conversation_socket(websocket: WebSocket):
    user = await _websocket_user(websocket)
    if user is None:
        await websocket.close(code=4401)
        return
    if not user_has_permission(user, "messaging.use"):
        await websocket.close(code=4403)
        return

    await websocket.accept()
    db = websocket.app.state.db

    async def push(message: RealtimeMessage):
        await websocket.send_json({"type": "message", "data": message.to_api()})

    async with RealtimeMessageBridge(websocket.app.state.change_feed, push) as bridge:
        try:
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    raise WebSocketDisconnect(message.get("code", 1000))
                try:
                    event = json.loads(message.get("text") or message.get("bytes") or "")
                except ValueError:
                    event = None
                if not isinstance(event, dict):
                    await websocket.send_json({"type": "error", "detail": "Message JSON invalide"})
                    continue
                kind = event.get("type")

                if kind == "subscribe":
                    conversation_id = event.get("conversationId")
                    try:
                        await messaging.get_conversation(db, conversation_id, user)
                    except ServiceError as e:
                        await websocket.send_json({"type": "error", "detail": e.message})
                        continue
                    await bridge.start(conversation_id)
                    await websocket.send_json({"type": "subscribed", "conversationId": conversation_id})

                elif kind == "unsubscribe":
                    await bridge.stop()
                    await websocket.send_json({"type": "unsubscribed"})

                else:
                    await websocket.send_json({"type": "error", "detail": "Type d'événement inconnu"})
        except WebSocketDisconnect:
            logger.info(f"[REALTIME] Déconnexion de {user.get('email')}")


# ==================== CONVERSATION ====================

@router.get("/{conversation_id}")
async def get_conversation(
    conversation_id: str,
    user: dict = Depends(require_permission("messaging.use")),
    db=Depends(get_db),
):
    return camelize(await messaging.get_conversation(db, conversation_id, user))


@router.get("/{conversation_id}/messages")
async def get_messages(
    conversation_id: str,
    query: ListMessagesQuery = Depends(query_model(ListMessagesQuery)),
    user: dict = Depends(require_permission("messaging.use")),
    db=Depends(get_db),
):
    return camelize(await messaging.get_messages(db, conversation_id, user, query))


@router.post("/{conversation_id}/messages")
async def send_message(
    conversation_id: str,
    data: SendMessageRequest,
    user: dict = Depends(require_permission("messaging.use")),
    db=Depends(get_db),
):
    return camelize(await messaging.send_message(db, conversation_id, data, user))


@router.post("/{conversation_id}/read")
async def mark_read(
    conversation_id: str,
    user: dict = Depends(require_permission("messaging.use")),
    db=Depends(get_db),
):
    return await messaging.mark_read(db, conversation_id, user)
