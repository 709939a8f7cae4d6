"""Pytest fixtures for catalog-archiver tests."""

import io
import zipfile

import pytest

from catalog_archiver.pipeline import Payload
from catalog_archiver.storage import ArchiveStore
from schemas.record import Record, Tag


def build_zip(files: dict[str, bytes] | None = None) -> bytes:
    """Build an in-memory zip with the given members."""
    if files is None:
        files = {"001.jpg": b"page one", "002.jpg": b"page two"}
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        for name, content in files.items():
            archive.writestr(name, content)
    return buffer.getvalue()


def payload_opener(data: bytes, chunk_size: int = 7):
    """A PayloadOpener serving data in small chunks, counting its calls."""

    def open_payload() -> Payload:
        open_payload.calls += 1
        chunks = [data[i:i + chunk_size] for i in range(0, len(data), chunk_size)]
        return Payload(chunks=iter(chunks), size_hint=len(data))

    open_payload.calls = 0
    return open_payload


def failing_opener(error: Exception):
    def open_payload() -> Payload:
        raise error

    return open_payload


@pytest.fixture
def make_record():
    """Factory for Records with sensible defaults."""

    def _make(id: int = 1, name: str | None = None, creator: str = "Aoi", tags=(), **kwargs):
        return Record(
            id=id,
            name=name if name is not None else f"Item {id}",
            creator=creator,
            tags=[Tag(path=t.lower().replace(" ", "-"), name=t) for t in tags],
            page_count=kwargs.pop("page_count", 2),
            origin_url=kwargs.pop("origin_url", f"https://catalog.example.com/archive/{id}"),
            payload_url=kwargs.pop(
                "payload_url", f"https://cdn.example.com/download/{id}.zip"
            ),
            **kwargs,
        )

    return _make


@pytest.fixture
def sample_record(make_record):
    """A record with two tags."""
    return make_record(1, "Summer Days", creator="Aoi", tags=["Slice of Life", "Color"])


@pytest.fixture
def zip_payload():
    """Bytes of a small, valid payload zip."""
    return build_zip()


@pytest.fixture
def store(tmp_path):
    """An ArchiveStore opened on a fresh base directory."""
    archive_store = ArchiveStore.open(tmp_path / "archive")
    yield archive_store
    archive_store.close()
