"""On-disk layout of an archive base directory.

Directory structure:
    <base_dir>/
    ├── data/
    │   ├── by_ids/{id}/              # canonical storage units
    │   ├── by_tags/{tag}/{name}-{id} -> ../../by_ids/{id}
    │   └── by_creator/{creator}/{name}-{id} -> ../../by_ids/{id}
    ├── rendered/
    │   ├── by_ids/{id}.pdf
    │   ├── by_tags/{tag}/{name}-{id}.pdf
    │   └── by_creator/{creator}/{name}-{id}.pdf
    └── meta/
        ├── records/                  # RecordStore database
        ├── index/                    # SearchIndex database
        └── staging/                  # in-flight payload downloads

Every path helper here is a pure function of its arguments; nothing touches
the filesystem except ensure().
"""

import re
from enum import Enum
from pathlib import Path

from schemas.record import Record

COMPLETION_MARKER = ".complete"
RENDERED_SUFFIX = ".pdf"

# NAME_MAX on common filesystems, in bytes
MAX_COMPONENT_BYTES = 255

_UNSAFE_CHARS = re.compile(r"[/\\\x00]")


class ViewKind(str, Enum):
    """Alias views maintained over the canonical storage units."""

    TAG = "tag"
    CREATOR = "creator"

    @property
    def dirname(self) -> str:
        return {ViewKind.TAG: "by_tags", ViewKind.CREATOR: "by_creator"}[self]

    def keys_for(self, record: Record) -> list[str]:
        """The view keys a record is filed under."""
        if self is ViewKind.TAG:
            return record.tag_names
        return [record.creator]


def sanitize(key: str, max_bytes: int = MAX_COMPONENT_BYTES) -> str:
    """Make a view key or record name safe to use as one path component.

    Separators and NUL are replaced, and the result is cut to at most
    ``max_bytes`` of UTF-8 without splitting a character.
    """
    cleaned = _UNSAFE_CHARS.sub("_", key).strip()
    encoded = cleaned.encode("utf-8")
    if len(encoded) > max_bytes:
        cleaned = encoded[:max_bytes].decode("utf-8", errors="ignore").rstrip()
    if cleaned in ("", ".", ".."):
        return "_"
    return cleaned


def entry_name(record: Record) -> str:
    """``{name}-{id}``, short enough to take the rendered suffix as well."""
    suffix = f"-{record.id}"
    budget = MAX_COMPONENT_BYTES - len(suffix) - len(RENDERED_SUFFIX)
    return f"{sanitize(record.name, budget)}{suffix}"


class ArchiveLayout:
    """Resolves every directory the archive store uses from one base dir.

    Attributes:
        base_dir: Root of the archive
    """

    def __init__(self, base_dir: Path):
        self.base_dir = Path(base_dir)

    def __repr__(self) -> str:
        return f"ArchiveLayout('{self.base_dir}')"

    @property
    def data_dir(self) -> Path:
        return self.base_dir / "data"

    @property
    def rendered_dir(self) -> Path:
        return self.base_dir / "rendered"

    @property
    def meta_dir(self) -> Path:
        return self.base_dir / "meta"

    @property
    def records_dir(self) -> Path:
        return self.meta_dir / "records"

    @property
    def index_dir(self) -> Path:
        return self.meta_dir / "index"

    @property
    def staging_dir(self) -> Path:
        return self.meta_dir / "staging"

    @property
    def canonical_root(self) -> Path:
        return self.data_dir / "by_ids"

    def view_root(self, kind: ViewKind) -> Path:
        return self.data_dir / kind.dirname

    def canonical_dir_of_id(self, id: int) -> Path:
        return self.canonical_root / str(id)

    def completion_marker_of_id(self, id: int) -> Path:
        return self.canonical_dir_of_id(id) / COMPLETION_MARKER

    def staging_file_of_id(self, id: int) -> Path:
        return self.staging_dir / f"{id}.zip"

    def alias_dir_of(self, kind: ViewKind, key: str) -> Path:
        return self.view_root(kind) / sanitize(key)

    def alias_path(self, kind: ViewKind, key: str, record: Record) -> Path:
        return self.alias_dir_of(kind, key) / entry_name(record)

    def rendered_view_root(self, kind: ViewKind) -> Path:
        return self.rendered_dir / kind.dirname

    def rendered_file_of_id(self, id: int) -> Path:
        return self.rendered_dir / "by_ids" / f"{id}{RENDERED_SUFFIX}"

    def rendered_file_for(self, kind: ViewKind, key: str, record: Record) -> Path:
        return (
            self.rendered_view_root(kind)
            / sanitize(key)
            / f"{entry_name(record)}{RENDERED_SUFFIX}"
        )

    def ensure(self) -> None:
        """Create every fixed subtree of the layout."""
        dirs = [
            self.canonical_root,
            self.records_dir,
            self.index_dir,
            self.staging_dir,
            self.rendered_dir / "by_ids",
        ]
        for kind in ViewKind:
            dirs.append(self.view_root(kind))
            dirs.append(self.rendered_view_root(kind))
        for d in dirs:
            d.mkdir(parents=True, exist_ok=True)
