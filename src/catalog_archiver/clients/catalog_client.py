"""Client for the remote catalog that items are archived from."""

import logging
from functools import partial
from typing import Callable, Iterator
from urllib.parse import urljoin, urlparse

import httpx
from lxml import etree, html
from pydantic import ValidationError as PydanticValidationError

from catalog_archiver.pipeline.ingest import IngestItem, Payload
from schemas.catalog import ArchiveMeta, CatalogEntry
from schemas.record import Record

from .client import Client
from .exceptions import ClientError, MetadataError

logger = logging.getLogger(__name__)

END_OF_LISTING = "Not yet available"

_DOWNLOAD_LINK = (
    "//a[contains(concat(' ', normalize-space(@class), ' '), ' download ')]/@href"
)
_TAG_PAGE_ENTRIES = (
    "//main//section[@id='archives']"
    "//div[contains(concat(' ', normalize-space(@class), ' '), ' entries ')]"
    "//article[contains(concat(' ', normalize-space(@class), ' '), ' entry ')]"
    "//a"
)


class CatalogClient(Client):
    """Client for the catalog's item pages, metadata and tag listings.

    Every item lives at ``<base_url>/archive/<id>``, with its metadata at
    ``<base_url>/archive/<id>.json`` and a ``.download`` link on the page.
    Tag listings are paged at ``<base_url>/tags/<tag>?page=N`` until the
    catalog answers "Not yet available".

    Example:
        with CatalogClient(settings.client_config()) as client:
            entry = client.fetch_by_id(1234)
            store.add_archive(entry.record, partial(client.open_payload, entry.record))
    """

    CHUNK_SIZE = 64 * 1024

    def fetch(self, id: int) -> CatalogEntry:
        return self.fetch_by_id(id)

    def item_url(self, id: int) -> str:
        return self._absolute(f"archive/{id}")

    def fetch_by_id(self, id: int) -> CatalogEntry:
        """Fetch one item's metadata and download link.

        Args:
            id: Catalog id of the item

        Returns:
            CatalogEntry with the parsed Record and the advertised download size

        Raises:
            MetadataError: If the metadata or the item page cannot be understood
            NotFoundError: If the catalog has no such item
            ConnectionError: If the catalog cannot be reached
        """
        url = self.item_url(id)
        logger.debug(f"Fetching item {id} from {url}")
        return self._fetch_entry(url)

    def fetch_tag_page(self, tag: str, page: int) -> list[str] | None:
        """Item URLs listed on one page of a tag, or None past the last page."""
        logger.debug(f"Fetching page {page} of tag {tag!r}")
        response = self.get(f"tags/{tag}", params={"page": page})
        text = response.text

        if END_OF_LISTING in text:
            logger.info(f"Reached last page of tag {tag!r} at page {page}")
            return None

        try:
            anchors = html.fromstring(text).xpath(_TAG_PAGE_ENTRIES)
        except etree.ParserError as e:
            raise MetadataError(
                f"Unreadable page {page} of tag {tag!r}: {e}", url=str(response.url)
            ) from e

        urls = []
        for anchor in anchors:
            href = anchor.get("href")
            if not href:
                logger.debug(f"Skipping entry link without a URL on page {page} of {tag!r}")
                continue
            urls.append(self._absolute(href))
        return urls

    def iter_tag(
        self, tag: str, skip: Callable[[int], bool] | None = None
    ) -> Iterator[IngestItem]:
        """Walk every page of a tag and yield items ready for ingestion.

        Pages are fetched lazily, so a consumer that stops early never asks
        for later pages. Items whose metadata cannot be fetched are logged
        and left out.

        Args:
            tag: Tag slug as used in the catalog's URLs
            skip: Called with each item id; items for which it returns True
                are not fetched at all
        """
        page = 1
        while (urls := self.fetch_tag_page(tag, page)) is not None:
            for url in urls:
                id = self._id_from_url(url)
                if id is None:
                    logger.debug(f"Could not read an item id from {url}")
                    continue
                if skip is not None and skip(id):
                    logger.debug(f"Not fetching {id} as it already exists")
                    continue
                try:
                    entry = self._fetch_entry(url)
                except ClientError as e:
                    logger.error(f"Failed to fetch item at {url}: {e}")
                    continue
                yield self.ingest_item(entry.record)
            page += 1

    def ingest_item(self, record: Record) -> IngestItem:
        return IngestItem(record=record, open_payload=partial(self.open_payload, record))

    def open_payload(self, record: Record) -> Payload:
        """Start streaming an item's payload.

        Raises:
            ClientError: If the download cannot be started
        """
        response = self.stream(record.payload_url)
        length = response.headers.get("content-length")
        size_hint = int(length) if length and length.isdigit() else None

        def chunks() -> Iterator[bytes]:
            try:
                yield from response.iter_bytes(self.CHUNK_SIZE)
            except httpx.HTTPError as e:
                raise ClientError(
                    f"Payload download interrupted: {e}", url=record.payload_url
                ) from e
            finally:
                response.close()

        return Payload(chunks=chunks(), size_hint=size_hint)

    def _fetch_entry(self, url: str) -> CatalogEntry:
        response = self.get(f"{url}.json")
        try:
            meta = ArchiveMeta.model_validate(response.json())
        except ValueError as e:
            # PydanticValidationError is a ValueError, as is a JSON decode error
            errors = e.errors() if isinstance(e, PydanticValidationError) else []
            raise MetadataError(
                f"Invalid metadata at {url}.json: {e}", errors=errors, url=url
            ) from e

        try:
            links = html.fromstring(self.get(url).text).xpath(_DOWNLOAD_LINK)
        except etree.ParserError as e:
            raise MetadataError(f"Unreadable item page {url}: {e}", url=url) from e
        if not links:
            raise MetadataError(f"No download link on {url}", url=url)

        try:
            record = meta.as_record(origin_url=url, payload_url=self._absolute(links[0]))
        except PydanticValidationError as e:
            raise MetadataError(
                f"Item at {url} does not form a valid record: {e}",
                errors=e.errors(),
                url=url,
            ) from e
        return CatalogEntry(record=record, size=meta.size)

    def _absolute(self, href: str) -> str:
        base = self.base_url if self.base_url.endswith("/") else self.base_url + "/"
        return urljoin(base, href)

    @staticmethod
    def _id_from_url(url: str) -> int | None:
        segments = [s for s in urlparse(url).path.split("/") if s]
        if len(segments) < 2 or segments[-2] != "archive":
            return None
        try:
            return int(segments[-1])
        except ValueError:
            return None
