"""Durable id -> Record mapping backed by SQLite."""

import logging
import sqlite3
import zlib
from pathlib import Path
from typing import Callable, Iterator

from pydantic import ValidationError as PydanticValidationError

from catalog_archiver.errors import CorruptError, NotFoundError, StorageIOError
from schemas.record import Record, decode_record, encode_record

logger = logging.getLogger(__name__)

DB_FILENAME = "records.sqlite3"

_SCHEMA = """
CREATE TABLE IF NOT EXISTS records (
    id INTEGER PRIMARY KEY,
    data BLOB NOT NULL
)
"""


class RecordStore:
    """Crash-safe store of encoded Records keyed by catalog id.

    Every put() is committed before it returns. Iteration is ascending by id,
    which is the order full reindexing replays records in.

    Example:
        store = RecordStore.open(Path("./archive/meta/records"))
        store.put(record.id, record)
        assert store.contains(record.id)
    """

    def __init__(self, conn: sqlite3.Connection, path: Path):
        self._conn = conn
        self.path = path

    @classmethod
    def open(cls, directory: Path) -> "RecordStore":
        """Open (creating if needed) the record database in a directory.

        Raises:
            StorageIOError: If the database cannot be opened
        """
        path = Path(directory) / DB_FILENAME
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(path, check_same_thread=False)
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA synchronous=FULL")
            conn.execute(_SCHEMA)
            conn.commit()
        except (sqlite3.Error, OSError) as e:
            raise StorageIOError(f"Could not open record store at {path}: {e}") from e
        logger.debug(f"Opened record store at {path}")
        return cls(conn, path)

    def close(self) -> None:
        self._conn.close()

    def __enter__(self) -> "RecordStore":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def __len__(self) -> int:
        return self._conn.execute("SELECT COUNT(*) FROM records").fetchone()[0]

    def put(self, id: int, record: Record) -> None:
        """Store a record, replacing any existing record with the same id.

        Raises:
            ValueError: If id does not match record.id
            StorageIOError: If the write cannot be committed
        """
        if id != record.id:
            raise ValueError(f"id {id} does not match record id {record.id}")
        data = encode_record(record)
        try:
            with self._conn:
                self._conn.execute(
                    "INSERT OR REPLACE INTO records (id, data) VALUES (?, ?)",
                    (id, data),
                )
        except sqlite3.Error as e:
            raise StorageIOError(f"Failed to store record {id}: {e}") from e

    def get(self, id: int) -> Record:
        """Load a record.

        Raises:
            NotFoundError: If no record is stored under id
            CorruptError: If the stored blob cannot be decoded
        """
        try:
            row = self._conn.execute(
                "SELECT data FROM records WHERE id = ?", (id,)
            ).fetchone()
        except sqlite3.Error as e:
            raise StorageIOError(f"Failed to read record {id}: {e}") from e
        if row is None:
            raise NotFoundError(f"Record {id} does not exist")
        return self._decode(id, row[0])

    def contains(self, id: int) -> bool:
        row = self._conn.execute(
            "SELECT 1 FROM records WHERE id = ?", (id,)
        ).fetchone()
        return row is not None

    def ids(self) -> Iterator[int]:
        for (id,) in self._conn.execute("SELECT id FROM records ORDER BY id"):
            yield id

    def iterate(
        self,
        on_corrupt: Callable[[int, CorruptError], None] | None = None,
    ) -> Iterator[tuple[int, Record]]:
        """Lazily yield every (id, record) pair in ascending id order.

        Args:
            on_corrupt: If given, called for each undecodable record, which is
                        then skipped. Otherwise CorruptError is raised.
        """
        cursor = self._conn.execute("SELECT id, data FROM records ORDER BY id")
        for id, data in cursor:
            try:
                yield id, self._decode(id, data)
            except CorruptError as e:
                if on_corrupt is None:
                    raise
                on_corrupt(id, e)

    def _decode(self, id: int, data: bytes) -> Record:
        try:
            record = decode_record(data)
        except (zlib.error, PydanticValidationError, UnicodeDecodeError) as e:
            raise CorruptError(f"Record {id} could not be decoded: {e}") from e
        if record.id != id:
            raise CorruptError(f"Record stored under {id} claims id {record.id}")
        return record
