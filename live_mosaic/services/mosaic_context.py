import logging
from typing import Optional

from live_mosaic.models.app_config import AppConfig
from live_mosaic.models.grid_config import MainImage
from live_mosaic.services.mosaic_engine import MosaicEngine
from live_mosaic.services.mosaic_management import MosaicManagementService
from live_mosaic.services.notification_bridge import RetryPolicy
from live_mosaic.services.persistence import (
    SQLiteBlobStore,
    SQLiteMetadataStore,
    SQLitePersistenceService,
)
from live_mosaic.services.pubsub import LocalPubSub

logger = logging.getLogger(__name__)


class MosaicContext:
    """
    Owns the stores, the pub/sub transport and the engine of the current main image.
    Created on startup, torn down on shutdown; request handlers get it from the app state.
    """

    def __init__(self, config: AppConfig):
        self.config = config
        self.db = SQLitePersistenceService(config.sqlite_path)
        self.blob_store = SQLiteBlobStore(self.db)
        self.metadata_store = SQLiteMetadataStore(self.db)
        self.pubsub = LocalPubSub()
        self.management = MosaicManagementService(config, self.blob_store, self.metadata_store, self.pubsub)
        self.engine: Optional[MosaicEngine] = None

    async def init(self):
        self.db.connect()
        main_image = await self.management.get_main_image()
        if main_image is not None:
            await self.start_engine(main_image)
        else:
            logger.info("No main image stored yet, waiting for upload")

    async def teardown(self):
        self.stop_engine()
        await self.pubsub.close()
        self.db.disconnect()

    async def start_engine(self, main_image: MainImage) -> MosaicEngine:
        self.stop_engine()
        policy = RetryPolicy(
            max_attempts=self.config.subscribe_max_attempts,
            delay=self.config.subscribe_retry_delay,
            backoff=self.config.subscribe_retry_backoff,
        )
        self.engine = MosaicEngine(
            main_image,
            self.metadata_store,
            self.pubsub,
            policy=policy,
            poll_interval=self.config.poll_interval_seconds,
        )
        await self.engine.start()
        logger.info("Mosaic engine started for %s (%s tiles)", main_image.filename, main_image.total_tiles)
        return self.engine

    def stop_engine(self):
        if self.engine is not None:
            self.engine.teardown()
            self.engine = None

    async def refresh(self) -> bool:
        if self.engine is None:
            return False
        return await self.engine.trigger()
