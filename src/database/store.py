import json
import os
import sqlite3
from enum import Enum
from typing import Optional, List
from src.core.exceptions import ConcurrentUpdateError, NotFoundError, StorageError
from src.core.logging import get_plain_logger

logger = get_plain_logger(__name__)

SCHEMA_PATH = os.path.join(os.path.dirname(__file__), "schema.sql")


class Collection(str, Enum):
    """Persisted collections, one table each"""
    KNOWLEDGE = "knowledge_entries"
    HELP_REQUESTS = "help_requests"
    FOLLOW_UPS = "pending_follow_ups"


class RecordStore:
    """
    Durable id -> record mapping for every collection

    Records are kept as JSON documents ordered by insertion. Updates touch a
    single row; passing ``expected_revision`` turns an update into a
    compare-and-swap so concurrent writers cannot silently lose each other's
    changes.
    """

    def __init__(self, db_path: str = "salon_data.db"):
        self.db_path = db_path
        self._init_db()

    def _connect(self, collection: str = "schema") -> sqlite3.Connection:
        try:
            return sqlite3.connect(self.db_path)
        except sqlite3.Error as e:
            raise StorageError(f"Cannot open {self.db_path}: {e}", collection) from e

    def _init_db(self):
        """Initialize database schema"""
        conn = self._connect()
        try:
            with open(SCHEMA_PATH, "r", encoding="utf-8") as f:
                conn.executescript(f.read())
            conn.commit()
        except (sqlite3.Error, OSError) as e:
            raise StorageError(f"Schema initialization failed: {e}", "schema") from e
        finally:
            conn.close()
        logger.info(f"Record store initialized at {self.db_path}")

    def list(self, collection: Collection) -> List[dict]:
        conn = self._connect(collection.value)
        try:
            cursor = conn.execute(
                f"SELECT revision, data FROM {collection.value} ORDER BY position"
            )
            return [self._decode(collection, revision, data) for revision, data in cursor.fetchall()]
        except sqlite3.Error as e:
            raise StorageError(f"Read failed: {e}", collection.value) from e
        finally:
            conn.close()

    def get(self, collection: Collection, record_id: str) -> Optional[dict]:
        conn = self._connect(collection.value)
        try:
            row = conn.execute(
                f"SELECT revision, data FROM {collection.value} WHERE id = ?",
                (record_id,),
            ).fetchone()
        except sqlite3.Error as e:
            raise StorageError(f"Read failed: {e}", collection.value) from e
        finally:
            conn.close()

        if row is None:
            return None
        return self._decode(collection, *row)

    def insert(self, collection: Collection, record_id: str, data: dict) -> None:
        payload = self._encode(collection, data)
        conn = self._connect(collection.value)
        try:
            conn.execute(
                f"INSERT INTO {collection.value} (id, revision, data) VALUES (?, 0, ?)",
                (record_id, payload),
            )
            conn.commit()
        except sqlite3.Error as e:
            raise StorageError(f"Insert of {record_id} failed: {e}", collection.value) from e
        finally:
            conn.close()

    def update(
        self,
        collection: Collection,
        record_id: str,
        data: dict,
        expected_revision: Optional[int] = None,
    ) -> int:
        """
        Replace one record and return its new revision

        Raises:
            NotFoundError: no record with this id
            ConcurrentUpdateError: ``expected_revision`` no longer matches
        """
        payload = self._encode(collection, data)
        conn = self._connect(collection.value)
        try:
            row = conn.execute(
                f"SELECT revision FROM {collection.value} WHERE id = ?", (record_id,)
            ).fetchone()
            if row is None:
                raise NotFoundError(collection.value, record_id)

            current = row[0]
            if expected_revision is not None and current != expected_revision:
                raise ConcurrentUpdateError(collection.value, record_id, expected_revision)

            cursor = conn.execute(
                f"""
                UPDATE {collection.value}
                SET data = ?, revision = revision + 1
                WHERE id = ? AND revision = ?
                """,
                (payload, record_id, current),
            )
            if cursor.rowcount != 1:
                raise ConcurrentUpdateError(collection.value, record_id, current)
            conn.commit()
            return current + 1
        except sqlite3.Error as e:
            conn.rollback()
            raise StorageError(f"Update of {record_id} failed: {e}", collection.value) from e
        finally:
            conn.close()

    def count(self, collection: Collection) -> int:
        conn = self._connect(collection.value)
        try:
            return conn.execute(f"SELECT COUNT(*) FROM {collection.value}").fetchone()[0]
        except sqlite3.Error as e:
            raise StorageError(f"Count failed: {e}", collection.value) from e
        finally:
            conn.close()

    @staticmethod
    def _encode(collection: Collection, data: dict) -> str:
        record = {k: v for k, v in data.items() if k != "revision"}
        try:
            return json.dumps(record)
        except (TypeError, ValueError) as e:
            raise StorageError(f"Cannot serialize record: {e}", collection.value) from e

    @staticmethod
    def _decode(collection: Collection, revision: int, data: str) -> dict:
        try:
            record = json.loads(data)
        except ValueError as e:
            raise StorageError(f"Corrupt record: {e}", collection.value) from e
        record["revision"] = revision
        return record
