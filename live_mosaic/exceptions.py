"""Errors raised by the mosaic engine"""


class MosaicError(Exception):
    """Base class for all engine errors"""


class InvalidGridRequest(MosaicError):
    """Non-positive tile target or canvas dimensions. Not retryable."""


class CapacityExceeded(MosaicError):
    """Every tile of the grid has already been handed out"""

    def __init__(self, total_tiles: int):
        super().__init__(f"All {total_tiles} tiles of the mosaic are already assigned.")
        self.total_tiles = total_tiles


class TransientIOError(MosaicError):
    """A blob store, metadata store or pub/sub call failed. Retried on the next trigger."""


class StaleAssignment(MosaicError):
    """A committed tile index does not exist in the current grid"""

    def __init__(self, photo_id: str, tile_index: int, total_tiles: int):
        super().__init__(f"Photo {photo_id} is committed to tile {tile_index}, but the grid only has {total_tiles}.")
        self.photo_id = photo_id
        self.tile_index = tile_index


class RaceInconsistency(MosaicError):
    """Two committed photos share the same tile index"""

    def __init__(self, photo_id: str, other_photo_id: str, tile_index: int):
        super().__init__(f"Photo {photo_id} and photo {other_photo_id} are both committed to tile {tile_index}.")
        self.photo_id = photo_id
        self.other_photo_id = other_photo_id
        self.tile_index = tile_index
