"""
Flux de changements temps réel (MongoDB change streams)

subscribe(table, column, value, callback) ouvre un change stream sur la
collection `table`, filtré sur les INSERT dont `column == value`, et appelle
`callback(document)` pour chaque document inséré.

Les change streams exigent un replica set MongoDB.
"""

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Optional, Union

logger = logging.getLogger("change_feed")

Callback = Callable[[dict], Union[None, Awaitable[None]]]


async def call_callback(callback: Callback, payload: Any) -> None:
    """Appelle un callback synchrone ou asynchrone"""
    result = callback(payload)
    if inspect.isawaitable(result):
        await result


class Subscription:
    """Abonnement actif. unsubscribe() est idempotent."""

    def __init__(self, name: str, task: Optional[asyncio.Task] = None):
        self.name = name
        self._task = task
        self.closed = False

    async def unsubscribe(self) -> None:
        if self.closed:
            return
        self.closed = True
        if self._task is not None and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        logger.info(f"[REALTIME] Désabonné de {self.name}")


class ChangeFeed:

    async def subscribe(self, table: str, column: str, value: Any,
                        callback: Callback) -> Subscription:
        raise NotImplementedError


class MongoChangeFeed(ChangeFeed):

    def __init__(self, db):
        self.db = db

    @staticmethod
    def build_pipeline(column: str, value: Any) -> list:
        return [{
            "$match": {
                "operationType": "insert",
                f"fullDocument.{column}": value,
            }
        }]

    async def subscribe(self, table: str, column: str, value: Any,
                        callback: Callback) -> Subscription:
        name = f"{table}:{column}={value}"
        pipeline = self.build_pipeline(column, value)
        collection = self.db[table]

        async def _watch():
            try:
                async with collection.watch(pipeline) as stream:
                    async for change in stream:
                        document = change.get("fullDocument") or {}
                        document.pop("_id", None)
                        try:
                            await call_callback(callback, document)
                        except Exception as e:
                            logger.error(f"[REALTIME] Callback {name} en erreur: {e}")
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"[REALTIME] Change stream {name} interrompu: {e}")

        task = asyncio.create_task(_watch())
        logger.info(f"[REALTIME] Abonné à {name}")
        return Subscription(name, task)
