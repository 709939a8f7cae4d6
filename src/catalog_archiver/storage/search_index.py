"""Full-text search index over stored records.

The index lives in its own SQLite database (FTS5) so that it can be deleted
and rebuilt from the record store at any time. Each record becomes exactly one
document whose rowid is the record id:

    documents(rowid=id, name, creator, parody, tag)   # FTS5, one tag per line
    document_tags(id, tag)                            # exact tag membership

Query syntax accepted by search():
    foo                 term searched in the default fields
    "foo bar"           phrase searched in the default fields
    tag:foo             term restricted to one field (also tag:"foo bar")
    foo*                prefix match
    +foo / -foo         clause is required / excluded

Unmarked clauses are alternatives (OR). When any clause is required, all
required clauses must match and unmarked clauses are ignored for matching.
"""

import logging
import re
import sqlite3
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

from catalog_archiver.errors import InvalidQueryError, StorageIOError
from schemas.record import Record

logger = logging.getLogger(__name__)

DB_FILENAME = "index.sqlite3"

FIELDS = ("name", "creator", "parody", "tag")

_SCHEMA = [
    """
    CREATE VIRTUAL TABLE IF NOT EXISTS documents USING fts5(
        name, creator, parody, tag,
        tokenize = 'unicode61 remove_diacritics 2'
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS document_tags (
        id INTEGER NOT NULL,
        tag TEXT NOT NULL,
        PRIMARY KEY (id, tag)
    )
    """,
    "CREATE INDEX IF NOT EXISTS document_tags_by_tag ON document_tags (tag)",
]

_CLAUSE = re.compile(
    r"""
    (?P<op>[+-])?
    (?:(?P<field>[A-Za-z_]+):)?
    (?:"(?P<phrase>[^"]*)"|(?P<term>[^\s":]+))
    """,
    re.VERBOSE,
)


@dataclass
class Clause:
    """One parsed search clause."""

    text: str
    fields: tuple[str, ...]
    occur: str = "should"
    prefix: bool = False

    def to_fts(self) -> str:
        phrase = '"' + self.text.replace('"', '""') + '"'
        if self.prefix:
            phrase += " *"
        return "{" + " ".join(self.fields) + "} : " + phrase


def parse_query(query: str, default_fields: Iterable[str]) -> list[Clause]:
    """Split a query string into clauses.

    Raises:
        InvalidQueryError: On unknown fields, unbalanced quotes or stray syntax
    """
    defaults = tuple(dict.fromkeys(default_fields))
    if not defaults:
        raise InvalidQueryError("At least one default field is required")
    for field in defaults:
        if field not in FIELDS:
            raise InvalidQueryError(f"Unknown field: {field}")

    if query.count('"') % 2:
        raise InvalidQueryError(f"Unbalanced quotes in query: {query!r}")

    clauses: list[Clause] = []
    pos = 0
    while True:
        while pos < len(query) and query[pos].isspace():
            pos += 1
        if pos >= len(query):
            break

        match = _CLAUSE.match(query, pos)
        if match is None:
            raise InvalidQueryError(
                f"Unexpected {query[pos]!r} at position {pos} in query: {query!r}"
            )
        pos = match.end()
        if pos < len(query) and not query[pos].isspace():
            raise InvalidQueryError(
                f"Unexpected {query[pos]!r} at position {pos} in query: {query!r}"
            )

        field = match.group("field")
        if field is not None and field not in FIELDS:
            raise InvalidQueryError(f"Unknown field: {field}")
        fields = (field,) if field else defaults

        occur = {"+": "must", "-": "must_not"}.get(match.group("op"), "should")

        if match.group("phrase") is not None:
            clauses.append(Clause(match.group("phrase"), fields, occur))
            continue

        term = match.group("term")
        prefix = term.endswith("*")
        term = term.rstrip("*")
        if not term:
            raise InvalidQueryError(f"Empty prefix term in query: {query!r}")
        clauses.append(Clause(term, fields, occur, prefix))

    if not clauses:
        raise InvalidQueryError("Query is empty")
    return clauses


def to_match_expression(clauses: list[Clause]) -> str:
    """Render parsed clauses as an FTS5 MATCH expression."""
    required = [c.to_fts() for c in clauses if c.occur == "must"]
    optional = [c.to_fts() for c in clauses if c.occur == "should"]
    excluded = [c.to_fts() for c in clauses if c.occur == "must_not"]

    positive = " AND ".join(required) if required else " OR ".join(optional)
    if not positive:
        raise InvalidQueryError("Query has no clause that is not excluded")

    expression = f"({positive})"
    for clause in excluded:
        expression += f" NOT ({clause})"
    return expression


_QUERY_ERROR_MARKERS = ("fts5", "syntax error", "no such column", "unterminated")


def _is_query_error(error: sqlite3.OperationalError) -> bool:
    """Whether SQLite rejected the MATCH expression rather than failed itself."""
    message = str(error).lower()
    return any(marker in message for marker in _QUERY_ERROR_MARKERS)


class SearchIndex:
    """FTS5 index of record names, creators, parodies and tags.

    Writes go through one connection guarded by a lock and are committed
    before add() returns. Reads use a separate connection and therefore only
    ever see committed documents.

    Example:
        index = SearchIndex.open(Path("./archive/meta/index"))
        index.add(record)
        ids = index.search("tag:vanilla", default_fields=["name"], limit=10)
    """

    def __init__(self, writer: sqlite3.Connection, reader: sqlite3.Connection, path: Path):
        self._writer = writer
        self._reader = reader
        self._write_lock = threading.Lock()
        self.path = path

    @classmethod
    def open(cls, directory: Path) -> "SearchIndex":
        """Open (creating if needed) the index database in a directory.

        Raises:
            StorageIOError: If the database cannot be opened
        """
        path = Path(directory) / DB_FILENAME
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            writer = sqlite3.connect(path, check_same_thread=False)
            writer.execute("PRAGMA journal_mode=WAL")
            writer.execute("PRAGMA synchronous=FULL")
            for statement in _SCHEMA:
                writer.execute(statement)
            writer.commit()
            reader = sqlite3.connect(path, check_same_thread=False)
        except (sqlite3.Error, OSError) as e:
            raise StorageIOError(f"Could not open search index at {path}: {e}") from e
        logger.debug(f"Opened search index at {path}")
        return cls(writer, reader, path)

    def close(self) -> None:
        with self._write_lock:
            self._writer.close()
        self._reader.close()

    def __enter__(self) -> "SearchIndex":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def count(self) -> int:
        return self._reader.execute("SELECT COUNT(*) FROM documents").fetchone()[0]

    def add(self, record: Record) -> None:
        """Index a record, replacing any earlier document for its id.

        Raises:
            StorageIOError: If the document cannot be committed
        """
        tags = {name.casefold() for name in record.tag_names}
        with self._write_lock:
            try:
                with self._writer:
                    self._writer.execute(
                        "DELETE FROM documents WHERE rowid = ?", (record.id,)
                    )
                    self._writer.execute(
                        "DELETE FROM document_tags WHERE id = ?", (record.id,)
                    )
                    self._writer.execute(
                        "INSERT INTO documents (rowid, name, creator, parody, tag) "
                        "VALUES (?, ?, ?, ?, ?)",
                        (
                            record.id,
                            record.name,
                            record.creator,
                            record.parody,
                            "\n".join(record.tag_names),
                        ),
                    )
                    self._writer.executemany(
                        "INSERT INTO document_tags (id, tag) VALUES (?, ?)",
                        [(record.id, tag) for tag in sorted(tags)],
                    )
            except sqlite3.Error as e:
                raise StorageIOError(f"Failed to index record {record.id}: {e}") from e
        logger.debug(f"Indexed record {record.id}")

    def flush(self) -> None:
        """Commit anything pending and checkpoint the write-ahead log."""
        with self._write_lock:
            try:
                self._writer.commit()
                self._writer.execute("PRAGMA wal_checkpoint(PASSIVE)")
            except sqlite3.Error as e:
                raise StorageIOError(f"Failed to flush search index: {e}") from e

    def find_with_all_tags(self, tags: Iterable[str]) -> list[int]:
        """Ids of documents carrying every given tag (case-insensitive).

        An empty tag set matches every document.
        """
        wanted = sorted({tag.casefold() for tag in tags})
        if not wanted:
            sql, params = "SELECT rowid FROM documents", ()
        else:
            placeholders = ", ".join("?" for _ in wanted)
            sql = (
                f"SELECT id FROM document_tags WHERE tag IN ({placeholders}) "
                "GROUP BY id HAVING COUNT(DISTINCT tag) = ?"
            )
            params = (*wanted, len(wanted))

        try:
            rows = self._reader.execute(sql, params).fetchall()
        except sqlite3.Error as e:
            raise StorageIOError(f"Tag lookup failed for {wanted}: {e}") from e
        return [row[0] for row in rows]

    def search(
        self,
        query: str,
        default_fields: Iterable[str] = FIELDS,
        limit: int | None = None,
    ) -> list[int]:
        """Ids of documents matching a query, best match first.

        Args:
            query: Query string (see module docstring for syntax)
            default_fields: Fields searched by clauses without a field prefix
            limit: If given, only the top ``limit`` matches are returned

        Raises:
            InvalidQueryError: If the query cannot be parsed
            StorageIOError: If the index cannot be read
        """
        if limit is not None and limit < 0:
            raise ValueError("limit must not be negative")

        expression = to_match_expression(parse_query(query, default_fields))
        sql = (
            "SELECT rowid FROM documents WHERE documents MATCH ? "
            "ORDER BY bm25(documents), rowid"
        )
        params: tuple = (expression,)
        if limit is not None:
            sql += " LIMIT ?"
            params += (limit,)

        try:
            rows = self._reader.execute(sql, params).fetchall()
        except sqlite3.OperationalError as e:
            if _is_query_error(e):
                raise InvalidQueryError(f"Invalid query {query!r}: {e}") from e
            raise StorageIOError(f"Search failed for {query!r}: {e}") from e
        except sqlite3.Error as e:
            raise StorageIOError(f"Search failed for {query!r}: {e}") from e
        return [row[0] for row in rows]
