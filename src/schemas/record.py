"""Record schemas for archived catalog items.

A Record is the structured metadata for one item mirrored from the remote
catalog. Records are keyed by the catalog's stable integer id and are never
updated in place: storing a record with an existing id replaces it whole.
"""

import zlib

from pydantic import BaseModel, Field, field_validator

MAX_ID = 2**32 - 1
MAX_PAGES = 2**16 - 1


class Tag(BaseModel):
    """A tag attached to a record.

    Attributes:
        path: Catalog slug for the tag (unique within one record)
        name: Human-readable tag name
    """

    path: str
    name: str


class Record(BaseModel):
    """Metadata for one ingested catalog item.

    Attributes:
        id: Stable catalog identifier, the store's primary key
        name: Display title
        creator: Primary creator of the item
        parody: Category / parody free text
        tags: Ordered tags
        page_count: Number of pages in the payload
        origin_url: Catalog page the record was read from
        payload_url: Where the binary payload is downloaded from
    """

    id: int = Field(ge=0, le=MAX_ID)
    name: str
    creator: str
    parody: str = "original"
    tags: list[Tag] = []
    page_count: int = Field(default=0, ge=0, le=MAX_PAGES)
    origin_url: str
    payload_url: str

    model_config = {"frozen": True}

    @field_validator("tags")
    @classmethod
    def _unique_tag_slugs(cls, tags: list[Tag]) -> list[Tag]:
        seen: set[str] = set()
        for tag in tags:
            if tag.path in seen:
                raise ValueError(f"duplicate tag slug: {tag.path}")
            seen.add(tag.path)
        return tags

    @property
    def tag_names(self) -> list[str]:
        return [tag.name for tag in self.tags]

    def pretty_single_line(self) -> str:
        return f"[{self.creator}] {self.name}"


def encode_record(record: Record) -> bytes:
    """Encode a record into its compact binary stored form."""
    return zlib.compress(record.model_dump_json().encode("utf-8"))


def decode_record(data: bytes) -> Record:
    """Decode a stored record.

    Raises:
        zlib.error: If the blob is not a compressed record
        pydantic.ValidationError: If the payload does not match the schema
    """
    return Record.model_validate_json(zlib.decompress(data))
