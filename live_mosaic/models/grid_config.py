from typing import List, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

GRID_CONFIG_COLLECTION = "grid-config"
MAIN_IMAGE_FOLDER = "main-image"


class GridConfig(BaseModel):
    """Tile geometry of a mosaic, as computed by the grid planner"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    cols: int
    rows: int
    tile_size: int
    total_tiles: int


class MainImage(GridConfig):
    """The uploaded main image and the grid planned for it. Replaced as a whole by a new upload."""

    id: Optional[str] = None
    image_ref: str
    filename: str
    uploaded_at: int
    requested_tiles: int
    tile_order: List[int] = []

    def to_record(self) -> dict:
        return self.model_dump(by_alias=True, exclude={"id"})
