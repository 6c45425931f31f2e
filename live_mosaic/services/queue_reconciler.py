import logging
from typing import Awaitable, Callable, List, Optional

from live_mosaic.exceptions import CapacityExceeded, TransientIOError
from live_mosaic.models.mosaic_state import STATUS_MOSAIC_FULL, ReconcilerState
from live_mosaic.models.photo import PHOTO_COLLECTION, Photo, parse_photos
from live_mosaic.services.abstract_persistence import MetadataStore
from live_mosaic.services.tile_assigner import TileAssigner
from live_mosaic.services.tile_canvas import VisualSink

logger = logging.getLogger(__name__)


class QueueReconciler:
    """
    Places the queued (unused) photos on the mosaic, oldest first, one at a time.

    Every wake source (push notification, polling, manual refresh) calls trigger(). Only one drain runs at a time:
    a trigger that arrives while a drain is running returns immediately, the running drain re-reads the queue
    after each placed photo and therefore also picks up whatever the rejected trigger was about.
    """

    def __init__(
        self,
        store: MetadataStore,
        assigner: TileAssigner,
        sink: VisualSink,
        on_commit: Optional[Callable[[Photo], Awaitable[None]]] = None,
        on_status: Optional[Callable[[str], None]] = None,
    ):
        self._store = store
        self._assigner = assigner
        self._sink = sink
        self._on_commit = on_commit
        self._on_status = on_status
        self._current = True
        self.state = ReconcilerState.IDLE
        self.is_processing = False
        self.pending: List[Photo] = []
        self.runs = 0

    @property
    def is_full(self) -> bool:
        return self.state == ReconcilerState.FULL

    async def trigger(self) -> bool:
        """
        Drain the queue of unused photos until it is empty, a store call fails or the mosaic is full.

        Returns: False if the call was a no-op (drain already running, mosaic full or reconciler stopped)

        """
        if not self._current or self.is_full:
            return False
        if self.is_processing:
            logger.debug("Reconciliation already running, trigger ignored")
            return False

        self.is_processing = True
        self.runs += 1
        try:
            while await self._run_cycle():
                pass
        finally:
            self.is_processing = False
            if self.state not in (ReconcilerState.FULL, ReconcilerState.STOPPED):
                self.state = ReconcilerState.IDLE
        return True

    def stop(self):
        """Detach from the mosaic. Store calls still in flight will not touch it anymore."""
        self._current = False
        self.state = ReconcilerState.STOPPED

    async def _run_cycle(self) -> bool:
        """
        Place the oldest unused photo on the next tile.

        Returns: True if the queue shall be read again

        """
        self.state = ReconcilerState.FETCHING
        try:
            records = await self._store.query(PHOTO_COLLECTION, {"used": False}, order_by="timestamp")
        except TransientIOError:
            logger.warning("Fetching the photo queue failed, waiting for the next trigger", exc_info=True)
            return False
        if not self._current:
            return False

        self.pending, _ = parse_photos(records)
        if not self.pending:
            return False
        photo = self.pending[0]

        self.state = ReconcilerState.ASSIGNING
        try:
            tile_index = self._assigner.assign_next()
        except CapacityExceeded as exc:
            logger.warning("%s %s photos stay unassigned.", exc, len(self.pending))
            self.state = ReconcilerState.FULL
            self._set_status(STATUS_MOSAIC_FULL)
            return False
        self._sink.apply_photo(tile_index, photo.blob_ref)

        self.state = ReconcilerState.PERSISTING
        try:
            claimed = await self._store.update(
                PHOTO_COLLECTION,
                photo.id,
                {"used": True, "tileIndex": tile_index},
                expected={"used": False},
                exclusive={"used": True, "tileIndex": tile_index},
            )
        except TransientIOError:
            logger.warning("Committing photo %s to tile %s failed, will retry", photo.id, tile_index, exc_info=True)
            if self._current:
                # the photo is retried on the same tile, the optimistic display stays
                self._assigner.rewind()
            return False
        if not self._current:
            return False

        if not claimed:
            logger.warning("Photo %s or tile %s has been taken by another instance", photo.id, tile_index)
            self._assigner.rewind()
            self._sink.discard_photo(tile_index)
            return await self._catch_up()

        self.pending.pop(0)
        photo.used = True
        photo.tile_index = tile_index
        logger.info("Photo %s placed on tile %s (%s left)", photo.id, tile_index, self._assigner.remaining)
        if self._on_commit:
            try:
                await self._on_commit(photo)
            except TransientIOError:
                logger.warning("Announcing photo %s failed", photo.id, exc_info=True)
        return True

    async def _catch_up(self) -> bool:
        """
        Take over the placements another instance has committed, so that their tiles are not handed out again

        Returns: True if the queue shall be read again

        """
        try:
            records = await self._store.query(PHOTO_COLLECTION, {"used": True}, order_by="timestamp")
        except TransientIOError:
            logger.warning("Reading the committed placements failed, waiting for the next trigger", exc_info=True)
            return False
        if not self._current:
            return False

        photos, _ = parse_photos(records)
        for committed in photos:
            if committed.tile_index is None or not 0 <= committed.tile_index < self._assigner.total_tiles:
                continue
            if self._assigner.claim(committed.tile_index):
                self._sink.apply_photo(committed.tile_index, committed.blob_ref)
                logger.info("Tile %s was filled by another instance", committed.tile_index)
        return True

    def _set_status(self, status: str):
        if self._on_status:
            self._on_status(status)
