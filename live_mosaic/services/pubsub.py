import asyncio
import logging
from abc import ABC
from typing import Any, Awaitable, Callable, Dict, List, Set, Tuple

logger = logging.getLogger(__name__)

CAMERA_CHANNEL = "camera-channel"
PHOTO_UPLOADED_EVENT = "photo-uploaded"
MOSAIC_CHANNEL = "mosaic-channel"
TILE_ASSIGNED_EVENT = "tile-assigned"
MOSAIC_CHANGED_EVENT = "mosaic-changed"

Handler = Callable[[Dict[str, Any]], Awaitable[None]]
Unsubscribe = Callable[[], None]


class PubSub(ABC):
    """Channel/event notification transport"""

    async def subscribe(self, channel: str, event: str, handler: Handler) -> Unsubscribe:
        raise NotImplementedError()

    async def publish(self, channel: str, event: str, payload: Dict[str, Any]):
        raise NotImplementedError()


class LocalPubSub(PubSub):
    """
    In-process transport on the running event loop. Every delivery runs as its own task, so publishing never
    waits for the subscribers (like a push service would not).
    """

    def __init__(self):
        self._handlers: Dict[Tuple[str, str], List[Handler]] = {}
        self._deliveries: Set[asyncio.Task] = set()

    async def subscribe(self, channel: str, event: str, handler: Handler) -> Unsubscribe:
        key = (channel, event)
        self._handlers.setdefault(key, []).append(handler)

        def unsubscribe():
            handlers = self._handlers.get(key, [])
            if handler in handlers:
                handlers.remove(handler)

        return unsubscribe

    async def publish(self, channel: str, event: str, payload: Dict[str, Any]):
        for handler in list(self._handlers.get((channel, event), [])):
            task = asyncio.ensure_future(self._deliver(handler, channel, event, payload))
            self._deliveries.add(task)
            task.add_done_callback(self._deliveries.discard)

    def subscriber_count(self, channel: str, event: str) -> int:
        return len(self._handlers.get((channel, event), []))

    async def flush(self):
        """Wait until every delivery published so far has been handled"""
        while self._deliveries:
            await asyncio.gather(*list(self._deliveries), return_exceptions=True)

    async def close(self):
        for task in list(self._deliveries):
            task.cancel()
        self._handlers.clear()

    @staticmethod
    async def _deliver(handler: Handler, channel: str, event: str, payload: Dict[str, Any]):
        try:
            await handler(payload)
        except Exception:
            logger.error("Handler for %s/%s failed", channel, event, exc_info=True)
