import asyncio

import numpy as np
import pytest

from live_mosaic.exceptions import TransientIOError
from live_mosaic.models.app_config import AppConfig
from live_mosaic.models.grid_config import GRID_CONFIG_COLLECTION, MAIN_IMAGE_FOLDER
from live_mosaic.services.mosaic_management import MosaicManagementService
from live_mosaic.services.persistence import SQLiteBlobStore
from live_mosaic.services.pubsub import LocalPubSub
from live_mosaic.utils.image_processing import np2pil, pil2bytes

main_image_bytes = pil2bytes(np2pil(np.ones((300, 400, 3), dtype="uint8") * 90))


class FlakyBlobStore(SQLiteBlobStore):
    def __init__(self, service):
        super().__init__(service)
        self.failing_uploads = 0

    async def upload(self, data, name, folder):
        if self.failing_uploads > 0:
            self.failing_uploads -= 1
            raise TransientIOError("blob store unavailable")
        return await super().upload(data, name, folder)


@pytest.fixture(scope="function")
def management(db_service, metadata_store):
    config = AppConfig(canvas_width=400, canvas_height=300)
    blob_store = FlakyBlobStore(db_service)
    return MosaicManagementService(config, blob_store, metadata_store, LocalPubSub()), blob_store


def test_new_main_image_replaces_old_one(management, metadata_store):
    service, blob_store = management

    async def scenario():
        first = await service.create_main_image(main_image_bytes, "first.jpg", 12, seed=1)
        second = await service.create_main_image(main_image_bytes, "second.jpg", 20, seed=2)

        assert (await service.get_main_image()).id == second.id
        assert [r["id"] for r in await metadata_store.query(GRID_CONFIG_COLLECTION)] == [second.id]
        assert [b["id"] for b in await blob_store.list(MAIN_IMAGE_FOLDER)] == [second.image_ref]
        assert first.image_ref != second.image_ref

    asyncio.run(scenario())


def test_failed_upload_keeps_previous_main_image(management):
    service, blob_store = management

    async def scenario():
        first = await service.create_main_image(main_image_bytes, "first.jpg", 12, seed=1)
        blob_store.failing_uploads = 1
        with pytest.raises(TransientIOError):
            await service.create_main_image(main_image_bytes, "second.jpg", 20, seed=2)

        current = await service.get_main_image()
        assert current.id == first.id
        assert current.tile_order == first.tile_order
        assert await service.get_main_image_bytes() == await blob_store.get(first.image_ref)

    asyncio.run(scenario())


def test_reset_reshuffles_and_drops_photos(management):
    service, _ = management

    async def scenario():
        first = await service.create_main_image(main_image_bytes, "main.jpg", 12, seed=1)
        await service.add_photo(b"photo", "photo.jpg", timestamp=1)
        reset = await service.reset_mosaic(seed=5)

        assert reset.id == first.id
        assert sorted(reset.tile_order) == sorted(first.tile_order)
        assert (await service.get_main_image()).tile_order == reset.tile_order
        assert await service.get_photos() == []

    asyncio.run(scenario())
