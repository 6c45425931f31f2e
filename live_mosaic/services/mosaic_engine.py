import asyncio
import logging
import time
from typing import Optional

from live_mosaic.exceptions import TransientIOError
from live_mosaic.models.grid_config import MainImage
from live_mosaic.models.mosaic_state import (
    STATUS_IDLE,
    STATUS_MOSAIC_FULL,
    STATUS_RESTORE_FAILED,
    STATUS_RESTORED,
    MosaicState,
    RestoreReport,
)
from live_mosaic.models.photo import Photo
from live_mosaic.services.abstract_persistence import MetadataStore
from live_mosaic.services.notification_bridge import NotificationBridge, Poller, RetryPolicy
from live_mosaic.services.pubsub import MOSAIC_CHANNEL, TILE_ASSIGNED_EVENT, PubSub
from live_mosaic.services.queue_reconciler import QueueReconciler
from live_mosaic.services.state_restorer import StateRestorer
from live_mosaic.services.tile_assigner import TileAssigner
from live_mosaic.services.tile_canvas import TileCanvas

logger = logging.getLogger(__name__)

STATUS_TTL_SECONDS = 3.0


class MosaicEngine:
    """
    Runs the tile assignment for one main image: restores the committed state, then keeps placing queued photos
    whenever the push channel, the poller or a manual refresh wakes it up.
    A new main image gets a new engine, the old one is torn down.
    """

    def __init__(
        self,
        main_image: MainImage,
        store: MetadataStore,
        pubsub: PubSub,
        policy: Optional[RetryPolicy] = None,
        poll_interval: float = 0,
    ):
        self.main_image = main_image
        self._pubsub = pubsub
        self.assigner = TileAssigner()
        self.canvas = TileCanvas(main_image.total_tiles)
        self.restorer = StateRestorer(store, main_image.tile_order)
        self.reconciler = QueueReconciler(
            store, self.assigner, self.canvas, on_commit=self._announce, on_status=self.set_status
        )
        self.bridge = NotificationBridge(pubsub, self.trigger, policy=policy, on_status=self.set_status)
        self.poller = Poller(self.trigger, poll_interval)
        self.report: Optional[RestoreReport] = None
        self.closed = False
        self._restore_lock = asyncio.Lock()
        self._status = STATUS_IDLE
        self._status_at = 0.0

    @property
    def restored(self) -> bool:
        return self.report is not None

    async def start(self):
        await self._restore()
        self.bridge.start()
        self.poller.start()
        await self.trigger()

    async def trigger(self) -> bool:
        """Single entry point for every wake source"""
        if self.closed:
            return False
        if not self.restored and not await self._restore():
            return False
        return await self.reconciler.trigger()

    def teardown(self):
        self.closed = True
        self.bridge.teardown()
        self.poller.stop()
        self.reconciler.stop()

    def set_status(self, status: str):
        self._status = status
        self._status_at = time.monotonic()

    @property
    def status(self) -> str:
        if self.reconciler.is_full:
            return STATUS_MOSAIC_FULL
        if time.monotonic() - self._status_at > STATUS_TTL_SECONDS:
            return STATUS_IDLE
        return self._status

    def state(self) -> MosaicState:
        return MosaicState(
            cols=self.main_image.cols,
            rows=self.main_image.rows,
            tile_size=self.main_image.tile_size,
            total_tiles=self.main_image.total_tiles,
            current_index=self.assigner.current_index,
            tile_order=self.assigner.tile_order,
            tiles=self.canvas.snapshot(),
            restored=self.restored,
            reconciler=self.reconciler.state,
            connection=self.bridge.state,
            status=self.status,
        )

    async def _restore(self) -> bool:
        async with self._restore_lock:
            if self.restored:
                return True
            try:
                report = await self.restorer.restore(self.assigner, self.canvas)
            except TransientIOError:
                logger.error("Restoring the mosaic state failed", exc_info=True)
                self.set_status(STATUS_RESTORE_FAILED)
                return False
            if self.closed:
                return False
            self.report = report
            self.set_status(STATUS_RESTORED.format(count=report.restored))
            return True

    async def _announce(self, photo: Photo):
        await self._pubsub.publish(
            MOSAIC_CHANNEL,
            TILE_ASSIGNED_EVENT,
            {"photoId": photo.id, "tileIndex": photo.tile_index, "blobRef": photo.blob_ref},
        )
