from abc import ABC
from typing import Any, Dict, List, Optional


class BlobStore(ABC):
    """Binary content (main image, captured photos), addressed by an opaque id"""

    async def upload(self, data: bytes, name: str, folder: str) -> str:
        raise NotImplementedError()

    async def get(self, blob_id: str) -> bytes:
        raise NotImplementedError()

    async def list(self, folder: str) -> List[Dict[str, Any]]:
        raise NotImplementedError()

    async def delete(self, blob_id: str):
        raise NotImplementedError()


class MetadataStore(ABC):
    """Structured records grouped in collections. Records are returned as dicts that include their "id"."""

    async def create(self, collection: str, fields: Dict[str, Any]) -> str:
        raise NotImplementedError()

    async def query(
        self, collection: str, filter_by: Optional[Dict[str, Any]] = None, order_by: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        raise NotImplementedError()

    async def update(
        self,
        collection: str,
        record_id: str,
        fields: Dict[str, Any],
        expected: Optional[Dict[str, Any]] = None,
        exclusive: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """
        Merge fields into a record, atomically with the checks below.
        Args:
            collection: The collection of the record
            record_id: The record to update
            fields: The values to merge into the record
            expected: Values the record has to hold for the update to happen
            exclusive: Values no other record of the collection may hold at the same time

        Returns: False if the record does not exist or one of the checks failed

        """
        raise NotImplementedError()

    async def delete(self, collection: str, record_id: str):
        raise NotImplementedError()

    async def batch_delete(self, collection: str):
        raise NotImplementedError()
