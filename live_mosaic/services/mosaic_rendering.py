import logging

from fastapi import HTTPException
from PIL import Image

from live_mosaic.models.app_config import AppConfig
from live_mosaic.models.grid_config import MainImage
from live_mosaic.services.abstract_persistence import BlobStore
from live_mosaic.services.tile_canvas import TileCanvas
from live_mosaic.utils.image_processing import (
    apply_filter,
    center_crop_square,
    fit_to_canvas,
    load_rgb,
    whiten,
)

logger = logging.getLogger(__name__)


async def render_mosaic(
    main_image: MainImage, canvas: TileCanvas, blob_store: BlobStore, config: AppConfig
) -> Image.Image:
    """
    Draw the current state of a mosaic: the main image hidden behind a white layer, with every filled tile showing
    its photo merged with the main image underneath
    Args:
        main_image: The main image and its grid
        canvas: The tile placements to draw
        blob_store: The store holding main image and photos
        config: The app configuration (blend values)

    Returns: The rendered mosaic

    """
    tile_size = main_image.tile_size
    width = main_image.cols * tile_size
    height = main_image.rows * tile_size
    original = fit_to_canvas(load_rgb(await blob_store.get(main_image.image_ref)), width, height)
    result = whiten(original, config.overlay_brightness)

    for tile_index, photo_ref in canvas.snapshot().items():
        row, col = divmod(tile_index, main_image.cols)
        box = (col * tile_size, row * tile_size, (col + 1) * tile_size, (row + 1) * tile_size)
        try:
            photo = load_rgb(await blob_store.get(photo_ref))
        except (HTTPException, OSError):
            logger.warning("Photo %s on tile %s is missing or broken, leaving the tile empty", photo_ref, tile_index)
            continue
        tile = center_crop_square(photo).resize((tile_size, tile_size))
        result.paste(apply_filter(tile, original.crop(box), config.photo_blend_value), box)
    return result
