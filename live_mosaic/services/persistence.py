import json
import os
import re
import sqlite3
from typing import Any, Dict, List, Optional, Tuple

from fastapi import HTTPException

from live_mosaic.exceptions import TransientIOError
from live_mosaic.services.abstract_persistence import BlobStore, MetadataStore
from live_mosaic.utils.request_validation import generate_id, now_ms

BLOB_TABLE = "blobs"
DOCUMENT_TABLE = "documents"
FIELD_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class SQLitePersistenceService:
    """
    A simple service for interacting with a raw sqlite3 db backend.
    Holds the single connection shared by the blob and metadata stores.
    """

    def __init__(self, path: str):
        if not os.path.isdir(path):
            raise ValueError(f"SQLITE_PATH {path} is not a directory!")

        self._path = os.path.join(path, "mosaic.db")
        self._connection = None

    def connect(self) -> sqlite3.Connection:
        if not self._connection:
            is_new = not os.path.isfile(self._path)
            self._connection = sqlite3.connect(self._path, check_same_thread=False)
            if is_new:
                self._init_db()
        return self._connection

    def commit(self):
        if self._connection:
            self._connection.commit()

    def disconnect(self):
        if self._connection:
            self._connection.close()
            self._connection = None

    def _init_db(self):
        cur = self._connection.cursor()
        cur.execute(
            f"""CREATE TABLE IF NOT EXISTS {BLOB_TABLE}
                           (id TEXT PRIMARY KEY,
                            folder TEXT,
                            name TEXT,
                            created_at INTEGER,
                            data BLOB
                            )"""
        )
        cur.execute(
            f"""CREATE TABLE IF NOT EXISTS {DOCUMENT_TABLE}
                           (idx INTEGER PRIMARY KEY AUTOINCREMENT,
                            collection TEXT,
                            id TEXT,
                            fields TEXT,
                            UNIQUE (collection, id)
                            )"""
        )
        self.commit()


class SQLiteBlobStore(BlobStore):
    def __init__(self, service: SQLitePersistenceService):
        self._service = service

    async def upload(self, data: bytes, name: str, folder: str) -> str:
        blob_id = generate_id()
        try:
            con = self._service.connect()
            con.execute(
                f"""INSERT INTO {BLOB_TABLE} (id, folder, name, created_at, data) values (?, ?, ?, ?, ?)""",
                (blob_id, folder, name, now_ms(), sqlite3.Binary(data)),
            )
            self._service.commit()
        except sqlite3.Error as exc:
            raise TransientIOError(f"Failed to upload blob {name}: {exc}") from exc
        return blob_id

    async def get(self, blob_id: str) -> bytes:
        try:
            cur = self._service.connect().execute(f"""SELECT data FROM {BLOB_TABLE} WHERE id=?;""", (blob_id,))
            rows = cur.fetchall()
        except sqlite3.Error as exc:
            raise TransientIOError(f"Failed to read blob {blob_id}: {exc}") from exc
        if len(rows) == 0:
            raise HTTPException(status_code=404, detail=f"Blob {blob_id} does not exist.")
        return bytes(rows[0][0])

    async def list(self, folder: str) -> List[Dict[str, Any]]:
        try:
            cur = self._service.connect().execute(
                f"""SELECT id, name, created_at FROM {BLOB_TABLE} WHERE folder=? ORDER BY created_at ASC;""",
                (folder,),
            )
            rows = cur.fetchall()
        except sqlite3.Error as exc:
            raise TransientIOError(f"Failed to list folder {folder}: {exc}") from exc
        return [{"id": row[0], "name": row[1], "createdAt": row[2]} for row in rows]

    async def delete(self, blob_id: str):
        try:
            self._service.connect().execute(f"""DELETE FROM {BLOB_TABLE} WHERE id=?;""", (blob_id,))
            self._service.commit()
        except sqlite3.Error as exc:
            raise TransientIOError(f"Failed to delete blob {blob_id}: {exc}") from exc


class SQLiteMetadataStore(MetadataStore):
    """Stores every record as a JSON document; filters and ordering use sqlite's json_extract"""

    def __init__(self, service: SQLitePersistenceService):
        self._service = service

    async def create(self, collection: str, fields: Dict[str, Any]) -> str:
        record_id = generate_id()
        try:
            self._service.connect().execute(
                f"""INSERT INTO {DOCUMENT_TABLE} (collection, id, fields) values (?, ?, ?)""",
                (collection, record_id, json.dumps(fields)),
            )
            self._service.commit()
        except sqlite3.Error as exc:
            raise TransientIOError(f"Failed to create record in {collection}: {exc}") from exc
        return record_id

    async def query(
        self, collection: str, filter_by: Optional[Dict[str, Any]] = None, order_by: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        where_clause, where_values = _where(collection, filter_by)
        query = f"SELECT id, fields FROM {DOCUMENT_TABLE} WHERE {where_clause}"
        if order_by:
            query += " ORDER BY json_extract(fields, ?) ASC, idx ASC;"
            where_values.append(_json_path(order_by))
        else:
            query += " ORDER BY idx ASC;"
        try:
            rows = self._service.connect().execute(query, where_values).fetchall()
        except sqlite3.Error as exc:
            raise TransientIOError(f"Failed to query {collection}: {exc}") from exc

        records = []
        for record_id, fields in rows:
            record = json.loads(fields)
            record["id"] = record_id
            records.append(record)
        return records

    async def update(
        self,
        collection: str,
        record_id: str,
        fields: Dict[str, Any],
        expected: Optional[Dict[str, Any]] = None,
        exclusive: Optional[Dict[str, Any]] = None,
    ) -> bool:
        con = self._service.connect()
        try:
            # the write lock is held from the checks until the commit
            con.execute("BEGIN IMMEDIATE")
            try:
                updated = self._update_locked(con, collection, record_id, fields, expected, exclusive)
            except Exception:
                con.rollback()
                raise
            if updated:
                con.commit()
            else:
                con.rollback()
        except sqlite3.Error as exc:
            raise TransientIOError(f"Failed to update {record_id} in {collection}: {exc}") from exc
        return updated

    @staticmethod
    def _update_locked(
        con: sqlite3.Connection,
        collection: str,
        record_id: str,
        fields: Dict[str, Any],
        expected: Optional[Dict[str, Any]],
        exclusive: Optional[Dict[str, Any]],
    ) -> bool:
        rows = con.execute(
            f"""SELECT fields FROM {DOCUMENT_TABLE} WHERE collection=? AND id=?;""", (collection, record_id)
        ).fetchall()
        if len(rows) == 0:
            return False
        old_fields = rows[0][0]
        current = json.loads(old_fields)
        for k, v in (expected or {}).items():
            if current.get(k) != v:
                return False
        if exclusive:
            where_clause, where_values = _where(collection, exclusive)
            taken = con.execute(
                f"""SELECT 1 FROM {DOCUMENT_TABLE} WHERE {where_clause} AND id<>? LIMIT 1;""",
                where_values + [record_id],
            ).fetchall()
            if taken:
                return False
        current.update(fields)
        cur = con.execute(
            f"""UPDATE {DOCUMENT_TABLE} SET fields=? WHERE collection=? AND id=? AND fields=?;""",
            (json.dumps(current), collection, record_id, old_fields),
        )
        return cur.rowcount == 1

    async def delete(self, collection: str, record_id: str):
        try:
            self._service.connect().execute(
                f"""DELETE FROM {DOCUMENT_TABLE} WHERE collection=? AND id=?;""", (collection, record_id)
            )
            self._service.commit()
        except sqlite3.Error as exc:
            raise TransientIOError(f"Failed to delete {record_id} from {collection}: {exc}") from exc

    async def batch_delete(self, collection: str):
        try:
            self._service.connect().execute(f"""DELETE FROM {DOCUMENT_TABLE} WHERE collection=?;""", (collection,))
            self._service.commit()
        except sqlite3.Error as exc:
            raise TransientIOError(f"Failed to clear {collection}: {exc}") from exc


def _where(collection: str, filter_by: Optional[Dict[str, Any]]) -> Tuple[str, List[Any]]:
    where_keys = ["collection=?"]
    where_values: List[Any] = [collection]
    for k, v in (filter_by or {}).items():
        if v is None:
            where_keys.append("json_extract(fields, ?) IS NULL")
            where_values.append(_json_path(k))
        else:
            where_keys.append("json_extract(fields, ?)=?")
            where_values.extend([_json_path(k), int(v) if isinstance(v, bool) else v])
    return " AND ".join(where_keys), where_values


def _json_path(field: str) -> str:
    if not FIELD_NAME.match(field):
        raise ValueError(f"Invalid field name: {field}")
    return f"$.{field}"
