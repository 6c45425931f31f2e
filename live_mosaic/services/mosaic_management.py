import logging
from typing import List, Optional

from fastapi import HTTPException

from live_mosaic.models.app_config import AppConfig
from live_mosaic.models.grid_config import GRID_CONFIG_COLLECTION, MAIN_IMAGE_FOLDER, MainImage
from live_mosaic.models.photo import PHOTO_COLLECTION, PHOTO_FOLDER, Photo, parse_photos
from live_mosaic.services.abstract_persistence import BlobStore, MetadataStore
from live_mosaic.services.pubsub import CAMERA_CHANNEL, PHOTO_UPLOADED_EVENT, PubSub
from live_mosaic.services.tile_assigner import TileAssigner
from live_mosaic.utils.grid_planning import compute_grid
from live_mosaic.utils.image_processing import load_rgb, pil2bytes
from live_mosaic.utils.request_validation import now_ms

logger = logging.getLogger(__name__)


class MosaicManagementService:
    """Service for creation, reset, deletion and retrieval of the mosaic data"""

    def __init__(self, config: AppConfig, blob_store: BlobStore, metadata_store: MetadataStore, pubsub: PubSub):
        self._config = config
        self._blobs = blob_store
        self._metadata = metadata_store
        self._pubsub = pubsub

    async def create_main_image(
        self, image_bytes: bytes, filename: str, target_tiles: int, seed: Optional[int] = None
    ) -> MainImage:
        """
        Store a new main image together with its grid and tile order, replacing the previous one.
        Photos are kept; the ones committed to tiles that do not exist in the new grid are skipped on restore.
        Args:
            image_bytes: The binary main image
            filename: The name of the uploaded file
            target_tiles: The desired number of tiles
            seed: Seed for the tile order (random if None)

        Returns: The stored main image

        """
        grid = compute_grid(target_tiles, self._config.canvas_width, self._config.canvas_height)
        try:
            image = load_rgb(image_bytes)
        except OSError as exc:
            raise HTTPException(status_code=400, detail="The uploaded file is not a valid image.") from exc
        image.thumbnail((self._config.main_image_max_size, self._config.main_image_max_size))

        image_ref = await self._blobs.upload(pil2bytes(image), filename, MAIN_IMAGE_FOLDER)
        main_image = MainImage(
            image_ref=image_ref,
            filename=filename,
            uploaded_at=now_ms(),
            requested_tiles=target_tiles,
            tile_order=TileAssigner.create(grid.total_tiles, seed).tile_order,
            **grid.model_dump(),
        )
        main_image.id = await self._metadata.create(GRID_CONFIG_COLLECTION, main_image.to_record())
        # the previous main image stays in place until the new one is stored
        await self._delete_main_image(keep=main_image)
        logger.info(
            "Main image %s stored: requested %s tiles, got %s (%sx%s tiles of %spx)",
            filename,
            target_tiles,
            grid.total_tiles,
            grid.cols,
            grid.rows,
            grid.tile_size,
        )
        return main_image

    async def get_main_image(self) -> Optional[MainImage]:
        records = await self._metadata.query(GRID_CONFIG_COLLECTION, order_by="uploadedAt")
        if not records:
            return None
        main_image = MainImage.model_validate(records[-1])
        if sorted(main_image.tile_order) != list(range(main_image.total_tiles)):
            logger.warning("Main image %s has no valid tile order, generating a new one", main_image.id)
            main_image.tile_order = TileAssigner.create(main_image.total_tiles).tile_order
            await self._metadata.update(GRID_CONFIG_COLLECTION, main_image.id, {"tileOrder": main_image.tile_order})
        return main_image

    async def get_main_image_bytes(self) -> bytes:
        main_image = await self.get_main_image()
        if main_image is None:
            raise HTTPException(status_code=404, detail="No main image has been uploaded yet.")
        return await self._blobs.get(main_image.image_ref)

    async def reset_mosaic(self, seed: Optional[int] = None) -> Optional[MainImage]:
        """
        Remove all photo records and reshuffle the tile order. The photo blobs are kept.

        Returns: The main image with its new tile order (None if there is no main image)

        """
        await self._metadata.batch_delete(PHOTO_COLLECTION)
        main_image = await self.get_main_image()
        if main_image is None:
            return None
        main_image.tile_order = TileAssigner.create(main_image.total_tiles, seed).tile_order
        await self._metadata.update(GRID_CONFIG_COLLECTION, main_image.id, {"tileOrder": main_image.tile_order})
        return main_image

    async def delete_mosaic(self):
        """Remove all photo records and the main image"""
        await self._metadata.batch_delete(PHOTO_COLLECTION)
        await self._delete_main_image()

    async def add_photo(self, image_bytes: bytes, filename: str, timestamp: Optional[int] = None) -> Photo:
        """
        Store a captured photo as unused and announce it on the camera channel
        Args:
            image_bytes: The binary photo
            filename: The name of the uploaded file
            timestamp: Capture time in ms (now if None), defines the queue order

        Returns: The stored photo record

        """
        blob_ref = await self._blobs.upload(image_bytes, filename, PHOTO_FOLDER)
        photo = Photo(id="", blob_ref=blob_ref, timestamp=now_ms() if timestamp is None else timestamp)
        photo.id = await self._metadata.create(PHOTO_COLLECTION, photo.to_record())
        await self._pubsub.publish(CAMERA_CHANNEL, PHOTO_UPLOADED_EVENT, {"id": photo.id})
        return photo

    async def get_photos(self, used: Optional[bool] = None) -> List[Photo]:
        filter_by = None if used is None else {"used": used}
        records = await self._metadata.query(PHOTO_COLLECTION, filter_by, order_by="timestamp")
        photos, _ = parse_photos(records)
        return photos

    async def get_photo_bytes(self, photo_id: str) -> bytes:
        for photo in await self.get_photos():
            if photo.id == photo_id:
                return await self._blobs.get(photo.blob_ref)
        raise HTTPException(status_code=404, detail=f"Photo {photo_id} does not exist.")

    async def _delete_main_image(self, keep: Optional[MainImage] = None):
        if keep is None:
            await self._metadata.batch_delete(GRID_CONFIG_COLLECTION)
        else:
            for record in await self._metadata.query(GRID_CONFIG_COLLECTION):
                if record["id"] != keep.id:
                    await self._metadata.delete(GRID_CONFIG_COLLECTION, record["id"])
        for blob in await self._blobs.list(MAIN_IMAGE_FOLDER):
            if keep is None or blob["id"] != keep.image_ref:
                await self._blobs.delete(blob["id"])
