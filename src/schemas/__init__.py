"""Schema definitions for Catalog Archiver."""

from .catalog import ArchiveMeta, CatalogEntry, SluggedMeta
from .record import Record, Tag, decode_record, encode_record

__all__ = [
    "ArchiveMeta",
    "CatalogEntry",
    "Record",
    "SluggedMeta",
    "Tag",
    "decode_record",
    "encode_record",
]
