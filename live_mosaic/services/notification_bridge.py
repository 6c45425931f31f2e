import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from pydantic import BaseModel

from live_mosaic.exceptions import TransientIOError
from live_mosaic.models.mosaic_state import (
    STATUS_CONNECTION_LOST,
    STATUS_DEGRADED,
    STATUS_NEW_PHOTO,
    BridgeState,
)
from live_mosaic.services.pubsub import (
    CAMERA_CHANNEL,
    PHOTO_UPLOADED_EVENT,
    PubSub,
    Unsubscribe,
)

logger = logging.getLogger(__name__)

Wake = Callable[[], Awaitable[Any]]


class RetryPolicy(BaseModel):
    """Bounded retry with exponential backoff"""

    max_attempts: int = 3
    delay: float = 1.0
    backoff: float = 2.0

    def delay_for(self, attempt: int) -> float:
        return self.delay * self.backoff ** (attempt - 1)


class NotificationBridge:
    """
    Wakes the reconciler whenever the capture side announces a new photo.
    The event payload is never used: the reconciler always reads the authoritative queue itself.
    """

    def __init__(
        self,
        pubsub: PubSub,
        wake: Wake,
        channel: str = CAMERA_CHANNEL,
        event: str = PHOTO_UPLOADED_EVENT,
        policy: Optional[RetryPolicy] = None,
        on_status: Optional[Callable[[str], None]] = None,
    ):
        self._pubsub = pubsub
        self._wake = wake
        self.channel = channel
        self.event = event
        self.policy = policy or RetryPolicy()
        self._on_status = on_status
        self._unsubscribe: Optional[Unsubscribe] = None
        self._task: Optional[asyncio.Task] = None
        self.state = BridgeState.DISCONNECTED
        self.attempts = 0

    def start(self) -> asyncio.Task:
        """Subscribe in the background. The returned task resolves to True once subscribed, False on give-up."""
        if self._task is None or self._task.done():
            self._task = asyncio.ensure_future(self._connect())
        return self._task

    def teardown(self):
        self.state = BridgeState.CLOSED
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    @property
    def connected(self) -> bool:
        return self.state == BridgeState.CONNECTED

    async def _connect(self) -> bool:
        self.attempts = 0
        for attempt in range(1, self.policy.max_attempts + 1):
            self.attempts = attempt
            self.state = BridgeState.CONNECTING if attempt == 1 else BridgeState.RETRYING
            try:
                self._unsubscribe = await self._pubsub.subscribe(self.channel, self.event, self._on_event)
            except (TransientIOError, OSError) as exc:
                logger.warning(
                    "Subscribing to %s/%s failed (attempt %s/%s): %s",
                    self.channel,
                    self.event,
                    attempt,
                    self.policy.max_attempts,
                    exc,
                )
                if attempt < self.policy.max_attempts:
                    self._set_status(STATUS_CONNECTION_LOST)
                    await asyncio.sleep(self.policy.delay_for(attempt))
                continue
            self.state = BridgeState.CONNECTED
            logger.info("Listening for %s/%s", self.channel, self.event)
            return True

        self.state = BridgeState.DEGRADED
        self._set_status(STATUS_DEGRADED)
        logger.error("Giving up on %s/%s after %s attempts", self.channel, self.event, self.policy.max_attempts)
        return False

    async def _on_event(self, payload: Dict[str, Any]):
        # pylint: disable=unused-argument
        if self.state == BridgeState.CLOSED:
            return
        self._set_status(STATUS_NEW_PHOTO)
        await self._wake()

    def _set_status(self, status: str):
        if self._on_status:
            self._on_status(status)


class Poller:
    """Periodic wake source, independent of the push channel"""

    def __init__(self, wake: Wake, interval: float):
        self._wake = wake
        self.interval = interval
        self._task: Optional[asyncio.Task] = None

    def start(self) -> Optional[asyncio.Task]:
        if self.interval <= 0:
            return None
        if self._task is None or self._task.done():
            self._task = asyncio.ensure_future(self._run())
        return self._task

    def stop(self):
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def _run(self):
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self._wake()
            except Exception:
                logger.error("Polling wake-up failed", exc_info=True)
