import logging
from typing import Dict, List

from live_mosaic.exceptions import RaceInconsistency, StaleAssignment
from live_mosaic.models.mosaic_state import RestoreReport
from live_mosaic.models.photo import PHOTO_COLLECTION, parse_photos
from live_mosaic.services.abstract_persistence import MetadataStore
from live_mosaic.services.tile_assigner import TileAssigner
from live_mosaic.services.tile_canvas import VisualSink

logger = logging.getLogger(__name__)


class StateRestorer:
    """Rebuilds the tile assignment of a (re)loaded mosaic from the committed photo records"""

    def __init__(self, store: MetadataStore, tile_order: List[int]):
        self._store = store
        self._tile_order = list(tile_order)

    async def restore(self, assigner: TileAssigner, sink: VisualSink) -> RestoreReport:
        """
        Replay all used photos in timestamp order onto the assigner and the visual sink.
        No tile is drawn from the assigner: each committed tile is claimed at its recorded position, so that the
        assigner's cursor ends up at the number of replayed photos. The replay always starts from the persisted
        base order, which makes running it again over the same records a no-op.
        Args:
            assigner: The assigner of the mosaic, its state will be replaced
            sink: The display that shall show the committed photos

        Returns: The replay report

        """
        records = await self._store.query(PHOTO_COLLECTION, {"used": True}, order_by="timestamp")
        photos, invalid = parse_photos(records)
        photos.sort(key=lambda p: p.timestamp)

        assigner.resume_at(self._tile_order, 0)
        report = RestoreReport(stale=invalid)
        owners: Dict[int, str] = {}
        for photo in photos:
            if photo.tile_index is None or not 0 <= photo.tile_index < assigner.total_tiles:
                stale = StaleAssignment(photo.id, photo.tile_index, assigner.total_tiles)
                logger.warning("Skipping stale assignment: %s", stale)
                report.stale.append(photo.id)
                continue
            if photo.tile_index in owners:
                conflict = RaceInconsistency(photo.id, owners[photo.tile_index], photo.tile_index)
                logger.warning("Skipping conflicting assignment: %s", conflict)
                report.conflicting.append(photo.id)
                continue
            assigner.claim(photo.tile_index)
            sink.apply_photo(photo.tile_index, photo.blob_ref)
            owners[photo.tile_index] = photo.id

        report.restored = len(owners)
        report.assignments = owners
        logger.info(
            "Restored %s photos (%s stale, %s conflicting)", report.restored, len(report.stale), len(report.conflicting)
        )
        return report
