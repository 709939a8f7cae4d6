"""Tests for the CatalogClient class."""

import json

import httpx
import pytest

from catalog_archiver.clients import CatalogClient, ClientError, MetadataError, NotFoundError
from schemas.catalog import CatalogEntry

BASE_URL = "https://catalog.example.com"
CDN_URL = "https://cdn.example.com"


def archive_meta(id: int, **overrides) -> dict:
    data = {
        "id": id,
        "title": f"Archive {id}",
        "pages": 12,
        "size": 2048,
        "artists": [{"slug": "aoi", "name": "Aoi"}],
        "parodies": [],
        "tags": [{"slug": "romance", "name": "Romance"}],
    }
    data.update(overrides)
    return data


def item_page(id: int) -> str:
    return f"""
    <html><body>
      <h1>Archive {id}</h1>
      <a class="btn download" href="{CDN_URL}/dl/{id}.zip">Download</a>
    </body></html>
    """


def tag_page(ids) -> str:
    entries = "".join(
        f'<article class="entry"><a href="/archive/{id}">Archive {id}</a></article>'
        for id in ids
    )
    return f"""
    <html><body><main>
      <section id="archives" class="feed"><div class="entries">{entries}</div></section>
    </main></body></html>
    """


class FakeCatalog:
    """Routes requests to canned catalog responses and records them."""

    def __init__(self, pages=None, metas=None, payload=b"PK payload bytes"):
        self.pages = pages or {}
        self.metas = metas or {}
        self.payload = payload
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if request.url.host == "cdn.example.com":
            return httpx.Response(200, content=self.payload)
        if path.startswith("/tags/"):
            page = int(request.url.params["page"])
            ids = self.pages.get(page)
            if ids is None:
                return httpx.Response(200, text="<html><body><p>Not yet available</p></body></html>")
            return httpx.Response(200, text=tag_page(ids))
        if path.startswith("/archive/"):
            name = path.rsplit("/", 1)[1]
            id = int(name.removesuffix(".json"))
            if id not in self.metas:
                return httpx.Response(404)
            if name.endswith(".json"):
                return httpx.Response(200, content=json.dumps(self.metas[id]).encode())
            return httpx.Response(200, text=item_page(id))
        return httpx.Response(404)

    def paths(self) -> list[str]:
        return [request.url.path for request in self.requests]


def make_client(catalog: FakeCatalog) -> CatalogClient:
    client = CatalogClient({"base_url": BASE_URL, "retry_attempts": 1})
    client._client = httpx.Client(
        base_url=BASE_URL, transport=httpx.MockTransport(catalog)
    )
    return client


class TestCatalogClientFetchById:
    """Tests for CatalogClient.fetch_by_id()."""

    def test_fetch_by_id_builds_record(self):
        """Metadata and download link combine into a CatalogEntry."""
        catalog = FakeCatalog(metas={42: archive_meta(42)})

        with make_client(catalog) as client:
            entry = client.fetch_by_id(42)

        assert isinstance(entry, CatalogEntry)
        assert entry.size == 2048
        assert entry.record.id == 42
        assert entry.record.creator == "Aoi"
        assert entry.record.parody == "original"
        assert entry.record.origin_url == f"{BASE_URL}/archive/42"
        assert entry.record.payload_url == f"{CDN_URL}/dl/42.zip"
        assert catalog.paths() == ["/archive/42.json", "/archive/42"]

    def test_fetch_delegates_to_fetch_by_id(self):
        """fetch() is fetch_by_id()."""
        catalog = FakeCatalog(metas={7: archive_meta(7)})

        with make_client(catalog) as client:
            assert client.fetch(7).record.id == 7

    def test_missing_item(self):
        """An unknown id raises NotFoundError."""
        with make_client(FakeCatalog()) as client:
            with pytest.raises(NotFoundError):
                client.fetch_by_id(1)

    def test_invalid_metadata(self):
        """Metadata failing validation raises MetadataError with details."""
        catalog = FakeCatalog(metas={5: archive_meta(5, artists=[])})

        with make_client(catalog) as client:
            with pytest.raises(MetadataError) as exc_info:
                client.fetch_by_id(5)

        assert exc_info.value.errors

    def test_missing_download_link(self):
        """An item page without a download link raises MetadataError."""
        catalog = FakeCatalog(metas={5: archive_meta(5)})

        def handler(request):
            if request.url.path == "/archive/5":
                return httpx.Response(200, text="<html><body>gone</body></html>")
            return catalog(request)

        client = CatalogClient({"base_url": BASE_URL})
        client._client = httpx.Client(base_url=BASE_URL, transport=httpx.MockTransport(handler))

        with client:
            with pytest.raises(MetadataError, match="No download link"):
                client.fetch_by_id(5)


class TestCatalogClientTags:
    """Tests for tag page listing and iteration."""

    def test_fetch_tag_page(self):
        """A tag page lists absolute item URLs."""
        catalog = FakeCatalog(pages={1: [3, 4]})

        with make_client(catalog) as client:
            urls = client.fetch_tag_page("romance", 1)

        assert urls == [f"{BASE_URL}/archive/3", f"{BASE_URL}/archive/4"]
        assert catalog.requests[0].url.params["page"] == "1"

    def test_fetch_tag_page_past_end(self):
        """The end-of-listing page returns None."""
        with make_client(FakeCatalog(pages={1: [3]})) as client:
            assert client.fetch_tag_page("romance", 2) is None

    def test_iter_tag_walks_all_pages(self):
        """iter_tag yields every item until the listing ends."""
        catalog = FakeCatalog(
            pages={1: [1, 2], 2: [3]},
            metas={id: archive_meta(id) for id in (1, 2, 3)},
        )

        with make_client(catalog) as client:
            records = [item.record for item in client.iter_tag("romance")]

        assert [r.id for r in records] == [1, 2, 3]
        assert catalog.paths().count("/tags/romance") == 3

    def test_iter_tag_skips_known_ids(self):
        """Ids the caller already has are not fetched at all."""
        catalog = FakeCatalog(pages={1: [1, 2]}, metas={id: archive_meta(id) for id in (1, 2)})

        with make_client(catalog) as client:
            records = [item.record for item in client.iter_tag("romance", skip=lambda id: id == 1)]

        assert [r.id for r in records] == [2]
        assert "/archive/1.json" not in catalog.paths()

    def test_iter_tag_drops_failing_items(self):
        """Items whose metadata cannot be fetched are left out."""
        catalog = FakeCatalog(pages={1: [1, 2]}, metas={2: archive_meta(2)})

        with make_client(catalog) as client:
            records = [item.record for item in client.iter_tag("romance")]

        assert [r.id for r in records] == [2]

    def test_iter_tag_is_lazy(self):
        """Later pages are not requested until the consumer asks for more."""
        catalog = FakeCatalog(pages={1: [1], 2: [2]}, metas={id: archive_meta(id) for id in (1, 2)})

        with make_client(catalog) as client:
            items = client.iter_tag("romance")
            next(items)

        assert catalog.paths().count("/tags/romance") == 1


class TestCatalogClientPayload:
    """Tests for payload streaming."""

    def test_open_payload_streams_bytes(self):
        """open_payload yields the payload with a size hint."""
        catalog = FakeCatalog(metas={9: archive_meta(9)}, payload=b"x" * 200_000)

        with make_client(catalog) as client:
            entry = client.fetch_by_id(9)
            payload = client.ingest_item(entry.record).open_payload()
            data = b"".join(payload.chunks)

        assert data == b"x" * 200_000
        assert payload.size_hint == 200_000

    def test_open_payload_http_error(self):
        """A failing download start raises a ClientError."""

        def handler(request):
            return httpx.Response(500)

        client = CatalogClient({"base_url": BASE_URL})
        client._client = httpx.Client(base_url=BASE_URL, transport=httpx.MockTransport(handler))
        entry_record = CatalogEntry.model_validate({
            "record": {
                "id": 1,
                "name": "n",
                "creator": "c",
                "origin_url": f"{BASE_URL}/archive/1",
                "payload_url": f"{CDN_URL}/dl/1.zip",
            }
        }).record

        with client:
            with pytest.raises(ClientError):
                client.open_payload(entry_record)
