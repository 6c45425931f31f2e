from functools import lru_cache
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class AppConfig(BaseSettings):
    """Model holding the app configuration"""

    model_config = SettingsConfigDict(env_file="config/.env", extra="ignore")

    # api config
    enable_documentation: bool = True
    cors_origins: List[str] = ["*"]

    # auth config
    enable_auth: bool = False
    jwt_secret: str = ""

    # db config
    sqlite_path: str = "."

    # grid config
    canvas_width: int = 800
    canvas_height: int = 600
    default_target_tiles: int = 192
    min_target_tiles: int = 1
    max_target_tiles: int = 10000

    # rendering config
    main_image_max_size: int = 2048
    current_image_thumbnail_size: int = 400
    overlay_brightness: float = 0.15
    photo_blend_value: float = 0.5

    # wake-up config
    poll_interval_seconds: float = 5.0
    subscribe_max_attempts: int = 3
    subscribe_retry_delay: float = 1.0
    subscribe_retry_backoff: float = 2.0


@lru_cache()
def get_config():
    return AppConfig()
