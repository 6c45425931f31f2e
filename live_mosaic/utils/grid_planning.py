from live_mosaic.exceptions import InvalidGridRequest
from live_mosaic.models.grid_config import GridConfig

MIN_TILES = 4


def compute_grid(target_tiles: int, canvas_width: int, canvas_height: int) -> GridConfig:
    """
    Find the square tile size whose grid on the given canvas comes closest to the requested number of tiles.
    Every integer tile size from 1 to the shorter canvas side is tried in ascending order, so on equal distance
    the smallest tile size wins. Grids with fewer than four tiles fall back to half the shorter side.
    Args:
        target_tiles: The desired number of tiles
        canvas_width: The canvas width in pixels
        canvas_height: The canvas height in pixels

    Returns: The best found grid

    Raises:
        InvalidGridRequest: Target or canvas dimensions are not positive

    """
    if target_tiles <= 0:
        raise InvalidGridRequest(f"The number of tiles has to be positive (got {target_tiles}).")
    if canvas_width <= 0 or canvas_height <= 0:
        raise InvalidGridRequest(f"Canvas dimensions have to be positive (got {canvas_width}x{canvas_height}).")

    best_tile_size = 1
    best_cols = canvas_width
    best_rows = canvas_height
    smallest_difference = None
    for tile_size in range(1, min(canvas_width, canvas_height) + 1):
        cols = canvas_width // tile_size
        rows = canvas_height // tile_size
        difference = abs(cols * rows - target_tiles)
        if smallest_difference is None or difference < smallest_difference:
            smallest_difference = difference
            best_tile_size = tile_size
            best_cols = cols
            best_rows = rows

    if best_cols * best_rows < MIN_TILES:
        best_tile_size = max(min(canvas_width, canvas_height) // 2, 1)
        best_cols = canvas_width // best_tile_size
        best_rows = canvas_height // best_tile_size

    return GridConfig(cols=best_cols, rows=best_rows, tile_size=best_tile_size, total_tiles=best_cols * best_rows)
