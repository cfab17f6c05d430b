import asyncio
from typing import Any, AsyncIterator, Callable, Dict, Set
from fastapi import WebSocket
import logging

from chatline.utils.exceptions import ChatlineException

logger = logging.getLogger(__name__)


class LiveSession:
    """One WebSocket connection and the live streams it subscribed to"""

    def __init__(self, websocket: WebSocket, user_id: str):
        self.websocket = websocket
        self.user_id = user_id
        self.subscriptions: Dict[str, asyncio.Task] = {}
        self._send_lock = asyncio.Lock()

    async def send_json(self, payload: Dict[str, Any]):
        async with self._send_lock:
            await self.websocket.send_json(payload)

    async def send_error(self, message: str, code: str, subscription_id: str = None):
        await self.send_json({"type": "error", "id": subscription_id, "code": code, "message": message})

    async def _pump(self, subscription_id: str, stream: AsyncIterator, render: Callable[[Any], Any]):
        try:
            async for value in stream:
                await self.send_json({"type": "snapshot", "id": subscription_id, "data": render(value)})
        except asyncio.CancelledError:
            raise
        except ChatlineException as e:
            await self.send_error(str(e), "STREAM_FAILED", subscription_id)
        except Exception as e:
            logger.error(f"Stream {subscription_id} of user {self.user_id} failed: {e}")
            await self.send_error("Stream failed", "STREAM_FAILED", subscription_id)
        finally:
            await stream.aclose()

    async def subscribe(self, subscription_id: str, stream: AsyncIterator, render: Callable[[Any], Any]):
        """Start pushing snapshots of ``stream``, replacing a subscription with the same id"""
        await self.unsubscribe(subscription_id)
        self.subscriptions[subscription_id] = asyncio.create_task(
            self._pump(subscription_id, stream, render)
        )
        logger.debug(f"User {self.user_id} subscribed {subscription_id}")

    async def unsubscribe(self, subscription_id: str) -> bool:
        task = self.subscriptions.pop(subscription_id, None)
        if not task:
            return False
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        return True

    async def close(self):
        for subscription_id in list(self.subscriptions):
            await self.unsubscribe(subscription_id)


class ConnectionManager:
    """Tracks live sessions per user"""

    def __init__(self):
        self.active_connections: Dict[str, Set[LiveSession]] = {}

    async def connect(self, session: LiveSession) -> bool:
        """Accept the connection; True when it is the user's first one"""
        await session.websocket.accept()
        sessions = self.active_connections.setdefault(session.user_id, set())
        first = not sessions
        sessions.add(session)
        logger.info(f"User {session.user_id} connected to WebSocket")
        return first

    async def disconnect(self, session: LiveSession) -> bool:
        """Drop the session; True when the user has no connection left"""
        await session.close()
        sessions = self.active_connections.get(session.user_id, set())
        sessions.discard(session)
        if sessions:
            return False
        self.active_connections.pop(session.user_id, None)
        logger.info(f"User {session.user_id} disconnected from WebSocket")
        return True

    def is_connected(self, user_id: str) -> bool:
        return bool(self.active_connections.get(user_id))


# Global connection manager instance
connection_manager = ConnectionManager()
