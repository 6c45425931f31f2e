import random
from typing import List, Optional

from live_mosaic.exceptions import CapacityExceeded


class TileAssigner:
    """
    Hands out the tiles of a fixed grid exactly once, in a randomized order.

    tile_order is a permutation of all tile indices. The first current_index entries are the tiles that have
    already been handed out, the rest is the remaining window in reveal order.
    """

    def __init__(self):
        self.total_tiles = 0
        self.tile_order: List[int] = []
        self.current_index = 0

    @classmethod
    def create(cls, total_tiles: int, seed: Optional[int] = None) -> "TileAssigner":
        assigner = cls()
        assigner.initialize(total_tiles, seed)
        return assigner

    def initialize(self, total_tiles: int, seed: Optional[int] = None):
        """
        Generate a uniformly random tile order by swapping a random tile of the remaining window to its front
        Args:
            total_tiles: The number of tiles in the grid
            seed: Makes the order reproducible if given

        """
        if total_tiles < 0:
            raise ValueError(f"total_tiles must not be negative (got {total_tiles})")
        rng = random.Random(seed)
        order = list(range(total_tiles))
        for i in range(total_tiles - 1):
            j = rng.randrange(i, total_tiles)
            order[i], order[j] = order[j], order[i]
        self.total_tiles = total_tiles
        self.tile_order = order
        self.current_index = 0

    def resume_at(self, tile_order: List[int], current_index: int):
        """
        Take over a persisted tile order without reshuffling it
        Args:
            tile_order: A permutation of range(len(tile_order))
            current_index: The number of tiles already handed out

        """
        if sorted(tile_order) != list(range(len(tile_order))):
            raise ValueError("tile_order is not a permutation of the grid's tile indices")
        if not 0 <= current_index <= len(tile_order):
            raise ValueError(f"current_index {current_index} is out of range for {len(tile_order)} tiles")
        self.total_tiles = len(tile_order)
        self.tile_order = list(tile_order)
        self.current_index = current_index

    @property
    def remaining(self) -> int:
        return self.total_tiles - self.current_index

    def assign_next(self) -> int:
        if self.current_index >= self.total_tiles:
            raise CapacityExceeded(self.total_tiles)
        tile_index = self.tile_order[self.current_index]
        self.current_index += 1
        return tile_index

    def claim(self, tile_index: int) -> bool:
        """
        Mark a tile that was committed elsewhere as handed out by swapping it to the front of the remaining window.
        The relative order of the tiles that were already handed out is kept.

        Returns: False if the tile had already been handed out

        """
        if not 0 <= tile_index < self.total_tiles:
            raise ValueError(f"Tile {tile_index} does not exist in a grid of {self.total_tiles} tiles")
        position = self.tile_order.index(tile_index)
        if position < self.current_index:
            return False
        self.tile_order[self.current_index], self.tile_order[position] = (
            self.tile_order[position],
            self.tile_order[self.current_index],
        )
        self.current_index += 1
        return True

    def rewind(self) -> int:
        """Give the most recently handed out tile back to the front of the remaining window"""
        if self.current_index == 0:
            raise ValueError("No tile has been handed out yet")
        self.current_index -= 1
        return self.tile_order[self.current_index]
