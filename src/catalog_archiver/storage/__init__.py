"""Local archive storage: records, search index and alias views."""

from .archive_store import ArchiveStore
from .layout import ArchiveLayout, ViewKind, sanitize
from .record_store import RecordStore
from .search_index import FIELDS, SearchIndex
from .views import ViewLayer

__all__ = [
    "ArchiveLayout",
    "ArchiveStore",
    "FIELDS",
    "RecordStore",
    "SearchIndex",
    "ViewKind",
    "ViewLayer",
    "sanitize",
]
