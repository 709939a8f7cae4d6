"""Catalog metadata schemas.

These mirror the JSON the remote catalog serves for a single item
(``<base_url>/archive/<id>.json``) and convert it into a Record.
"""

from pydantic import BaseModel, Field

from .record import Record, Tag


class SluggedMeta(BaseModel):
    """A named catalog entity (creator, parody or tag) with its slug."""

    slug: str
    name: str

    model_config = {"extra": "allow"}


class ArchiveMeta(BaseModel):
    """Item metadata as served by the catalog's JSON endpoint."""

    id: int
    title: str
    pages: int = 0
    size: int | None = None
    artists: list[SluggedMeta] = Field(min_length=1)
    parodies: list[SluggedMeta] = []
    tags: list[SluggedMeta] = []

    model_config = {"extra": "allow"}

    def as_record(self, origin_url: str, payload_url: str) -> Record:
        """Build the Record for this item.

        Only the first creator and parody are kept; an item without a parody
        is filed under ``original``.
        """
        parody = self.parodies[0].name if self.parodies else "original"
        return Record(
            id=self.id,
            name=self.title,
            creator=self.artists[0].name,
            parody=parody,
            tags=[Tag(path=t.slug, name=t.name) for t in self.tags],
            page_count=self.pages,
            origin_url=origin_url,
            payload_url=payload_url,
        )


class CatalogEntry(BaseModel):
    """A record fetched from the catalog together with its download size."""

    record: Record
    size: int | None = None
