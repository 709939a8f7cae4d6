"""Archive store facade.

Composes the record store, search index and view layer over one base
directory and exposes the read paths and path helpers the presentation layer
uses.
"""

import logging
import shutil
from pathlib import Path
from typing import Iterable

from catalog_archiver.errors import ArchiveError, StorageIOError
from catalog_archiver.pipeline.cancellation import CancellationToken
from catalog_archiver.pipeline.ingest import (
    BatchReport,
    IngestItem,
    IngestionCoordinator,
    IngestOutcome,
    PayloadOpener,
    ProgressCallback,
)
from catalog_archiver.storage.layout import ArchiveLayout, ViewKind
from catalog_archiver.storage.record_store import RecordStore
from catalog_archiver.storage.search_index import FIELDS, SearchIndex
from catalog_archiver.storage.views import ViewLayer
from schemas.record import Record

logger = logging.getLogger(__name__)


class ArchiveStore:
    """The local archive: canonical units, records, index and alias views.

    Open one ArchiveStore per process and share it; the record store and
    search index handles live as long as the store does.

    Example:
        with ArchiveStore.open(Path("~/Documents/catalog-archiver")) as store:
            outcome = store.add_archive(record, open_payload)
            for found in store.search("tag:vanilla", limit=5):
                print(store.canonical_dir_of_id(found.id))

    Attributes:
        layout: Directory layout under the base directory
        records: Durable record store
        index: Full-text search index
        views: Tag and creator alias views
    """

    def __init__(
        self,
        layout: ArchiveLayout,
        records: RecordStore,
        index: SearchIndex,
        views: ViewLayer,
    ):
        self.layout = layout
        self.records = records
        self.index = index
        self.views = views

    @classmethod
    def open(cls, base_dir: Path) -> "ArchiveStore":
        """Open the archive under base_dir, creating its layout if needed.

        Raises:
            StorageIOError: If the layout, record store or index cannot be opened
        """
        layout = ArchiveLayout(Path(base_dir).expanduser())
        logger.debug(f"Ensuring archive layout at {layout.base_dir}")
        try:
            layout.ensure()
        except OSError as e:
            raise StorageIOError(f"Could not create archive layout: {e}") from e

        records = RecordStore.open(layout.records_dir)
        try:
            index = SearchIndex.open(layout.index_dir)
        except StorageIOError:
            records.close()
            raise

        return cls(layout, records, index, ViewLayer(layout))

    def close(self) -> None:
        self.index.close()
        self.records.close()

    def __enter__(self) -> "ArchiveStore":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    # Ingestion

    def add_archive(
        self,
        record: Record,
        open_payload: PayloadOpener,
        force: bool = False,
        progress: ProgressCallback | None = None,
    ) -> IngestOutcome:
        """Download, unpack, store, link and index one item."""
        coordinator = IngestionCoordinator(self, progress=progress)
        outcome = coordinator.ingest(record, open_payload, force)
        self.index.flush()
        return outcome

    def add_archives(
        self,
        items: Iterable[IngestItem],
        force: bool = False,
        cancel: CancellationToken | None = None,
        progress: ProgressCallback | None = None,
    ) -> BatchReport:
        coordinator = IngestionCoordinator(self, cancel=cancel, progress=progress)
        return coordinator.run(items, force)

    def reindex(self, cancel: CancellationToken | None = None) -> BatchReport:
        """Rebuild the search index and alias views from stored records."""
        return IngestionCoordinator(self, cancel=cancel).reindex()

    def has_archive(self, id: int) -> bool:
        """Whether an item was fully ingested (canonical unit with completion marker)."""
        return self.layout.completion_marker_of_id(id).is_file()

    def is_archived(self, id: int) -> bool:
        """Whether an item is stored and fully ingested, so fetching it again is pointless."""
        return self.records.contains(id) and self.has_archive(id)

    def has_canonical_unit(self, id: int) -> bool:
        return self.layout.canonical_dir_of_id(id).is_dir()

    def mark_complete(self, id: int) -> None:
        marker = self.layout.completion_marker_of_id(id)
        try:
            marker.touch()
        except OSError as e:
            logger.warning(f"Could not write completion marker for {id}: {e}")

    def reset_index(self) -> None:
        """Delete the search index and reopen it empty."""
        self.index.close()
        try:
            shutil.rmtree(self.layout.index_dir)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Failed to fully remove search index: {e}")
        self.index = SearchIndex.open(self.layout.index_dir)

    def reset_views(self) -> None:
        for kind in ViewKind:
            self.views.reset(kind)

    # Reads

    def fetch_by_id(self, id: int) -> Record:
        """Load one record.

        Raises:
            NotFoundError: If no record has this id
            CorruptError: If the stored record cannot be decoded
        """
        return self.records.get(id)

    def search(
        self,
        query: str,
        fields: Iterable[str] = FIELDS,
        limit: int | None = None,
    ) -> list[Record]:
        """Records matching a query, best match first.

        Raises:
            InvalidQueryError: If the query cannot be parsed
        """
        fields = tuple(fields)
        ids = self.index.search(query, fields, limit)
        logger.debug(f"Query {query!r} on {list(fields)} matched {len(ids)} documents")
        return self._fetch_many(ids)

    def with_all_tags(self, tags: Iterable[str]) -> list[Record]:
        """Records carrying every given tag, ordered by id."""
        tags = list(tags)
        ids = sorted(self.index.find_with_all_tags(tags))
        logger.debug(f"Tags {tags} matched {len(ids)} documents")
        return self._fetch_many(ids)

    def _fetch_many(self, ids: Iterable[int]) -> list[Record]:
        found = []
        for id in ids:
            try:
                found.append(self.records.get(id))
            except ArchiveError as e:
                logger.error(f"Failed to fetch record {id}: {e}")
        return found

    # Paths

    def canonical_dir_of_id(self, id: int) -> Path:
        return self.layout.canonical_dir_of_id(id)

    def view_root(self, kind: ViewKind) -> Path:
        return self.layout.view_root(kind)

    def alias_dir_of(self, kind: ViewKind, key: str) -> Path:
        return self.layout.alias_dir_of(kind, key)

    def alias_path_for(self, kind: ViewKind, key: str, record: Record) -> Path:
        return self.layout.alias_path(kind, key, record)

    def rendered_file_of_id(self, id: int) -> Path:
        return self.layout.rendered_file_of_id(id)

    def rendered_file_for(self, kind: ViewKind, key: str, record: Record) -> Path:
        return self.layout.rendered_file_for(kind, key, record)
