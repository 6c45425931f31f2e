import logging
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, ValidationError
from pydantic.alias_generators import to_camel

PHOTO_COLLECTION = "mosaic-photos"
PHOTO_FOLDER = "mosaic-photos"

logger = logging.getLogger(__name__)


class Photo(BaseModel):
    """A captured photo waiting for (used=False) or placed on (used=True) a mosaic tile"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    blob_ref: str
    timestamp: int
    used: bool = False
    tile_index: Optional[int] = None

    def to_record(self) -> dict:
        return self.model_dump(by_alias=True, exclude={"id"})


def parse_photos(records: List[Dict[str, Any]]) -> Tuple[List[Photo], List[str]]:
    """
    Validate photo records, skipping the malformed ones
    Returns: The valid photos (in record order) and the ids of the skipped records

    """
    photos = []
    invalid = []
    for record in records:
        try:
            photos.append(Photo.model_validate(record))
        except ValidationError as exc:
            logger.warning("Skipping malformed photo record %s: %s", record.get("id"), exc)
            invalid.append(str(record.get("id")))
    return photos, invalid
