from abc import ABC
from typing import Dict, Optional


class VisualSink(ABC):
    """Receives the tile placements of a mosaic"""

    def apply_photo(self, tile_index: int, photo_ref: str):
        """Show the photo on the tile. Applying the same photo to the same tile twice changes nothing."""
        raise NotImplementedError()

    def discard_photo(self, tile_index: int):
        pass


class TileCanvas(VisualSink):
    """
    The displayed state of a mosaic as plain data: which photo is shown on which tile.
    Rendering (see mosaic_rendering) is a projection of this model.
    """

    def __init__(self, total_tiles: int):
        self.total_tiles = total_tiles
        self._tiles: Dict[int, str] = {}

    def apply_photo(self, tile_index: int, photo_ref: str):
        if not 0 <= tile_index < self.total_tiles:
            raise IndexError(f"Tile {tile_index} does not exist in a grid of {self.total_tiles} tiles")
        self._tiles[tile_index] = photo_ref

    def discard_photo(self, tile_index: int):
        self._tiles.pop(tile_index, None)

    def photo_at(self, tile_index: int) -> Optional[str]:
        return self._tiles.get(tile_index)

    def snapshot(self) -> Dict[int, str]:
        return dict(sorted(self._tiles.items()))

    @property
    def filled(self) -> int:
        return len(self._tiles)
