"""Ingestion of catalog items into the archive store.

Each item moves through these stages:

    Fetched ──stored and marked complete────────────────▶ [skipped]
       │    ──stored and unpacked, not complete──────────▶ Linking
       │
    Downloading ──network / storage error───────────────▶ [failed_payload]
       │
    Unpacking ──bad zip / unsafe member / extract error─▶ [failed_archive]
       │
    Linking (best effort) → Indexing → [committed]

Per-item failures are logged and reported; they never abort a batch. A source
of items that fails part way (e.g. a catalog listing page that cannot be
fetched) ends the batch early with a report of what was done so far. Failures
of the record store or search index themselves do abort, because the store
cannot work without them.
"""

import logging
import os
import shutil
import zipfile
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Iterable

from catalog_archiver.errors import (
    CorruptError,
    LinkConflictError,
    NetworkError,
    NotFoundError,
)
from catalog_archiver.pipeline.cancellation import CancellationToken
from schemas.record import Record

if TYPE_CHECKING:
    from catalog_archiver.storage.archive_store import ArchiveStore

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int | None], None]


class IngestStatus(str, Enum):
    COMMITTED = "committed"
    SKIPPED = "skipped"
    FAILED_PAYLOAD = "failed_payload"
    FAILED_ARCHIVE = "failed_archive"
    FAILED_RECORD = "failed_record"


@dataclass
class Payload:
    """A binary payload as a stream of chunks.

    Attributes:
        chunks: Iterable of byte chunks, consumed once
        size_hint: Total size in bytes if known
    """

    chunks: Iterable[bytes]
    size_hint: int | None = None


PayloadOpener = Callable[[], Payload]


@dataclass
class IngestItem:
    """A parsed record plus the means to fetch its payload."""

    record: Record
    open_payload: PayloadOpener


@dataclass
class IngestOutcome:
    """What happened to one item.

    Attributes:
        id: Record id
        status: Terminal state reached
        record: The record, when one is known
        error: Failure description for failed items
        link_errors: Alias problems that did not prevent the commit
    """

    id: int
    status: IngestStatus
    record: Record | None = None
    error: str | None = None
    link_errors: list[str] = field(default_factory=list)

    @property
    def committed(self) -> bool:
        return self.status is IngestStatus.COMMITTED

    @property
    def failed(self) -> bool:
        return self.status.value.startswith("failed")


@dataclass
class BatchReport:
    """Summary of a batch: what was added, skipped and failed.

    Attributes:
        cancelled: The batch stopped because cancellation was requested
        source_error: Why the item source stopped early, if it did
    """

    added: list[Record] = field(default_factory=list)
    skipped: list[Record] = field(default_factory=list)
    failed: list[IngestOutcome] = field(default_factory=list)
    cancelled: bool = False
    source_error: str | None = None

    def add(self, outcome: IngestOutcome) -> None:
        if outcome.committed:
            self.added.append(outcome.record)
        elif outcome.status is IngestStatus.SKIPPED:
            self.skipped.append(outcome.record)
        else:
            self.failed.append(outcome)

    @property
    def total(self) -> int:
        return len(self.added) + len(self.skipped) + len(self.failed)


class IngestionCoordinator:
    """Drives items through download, unpack, store, link and index.

    Items are processed strictly one at a time. The cancellation token is
    polled between items, and the search index is always flushed before a
    batch returns, including when it is cancelled or fails.

    Example:
        coordinator = IngestionCoordinator(store, cancel=token)
        report = coordinator.run(items)
        for record in report.added:
            print(record.name)
    """

    def __init__(
        self,
        store: "ArchiveStore",
        cancel: CancellationToken | None = None,
        progress: ProgressCallback | None = None,
    ):
        self.store = store
        self.cancel = cancel or CancellationToken()
        self.progress = progress

    def ingest(
        self,
        record: Record,
        open_payload: PayloadOpener,
        force: bool = False,
    ) -> IngestOutcome:
        """Ingest a single item.

        Args:
            record: Parsed record from the catalog
            open_payload: Called once to obtain the payload stream
            force: Replace an item that is already stored

        Raises:
            StorageIOError: If the record store or search index cannot be written
        """
        if not force and self.store.records.contains(record.id):
            if self.store.has_archive(record.id):
                logger.debug(f"Not downloading {record.id} ({record.name}) as it already exists")
                return IngestOutcome(record.id, IngestStatus.SKIPPED, record)
            if self.store.has_canonical_unit(record.id):
                # Stored and unpacked, but linking or indexing never finished
                logger.info(f"Resuming {record.id} ({record.name}) without downloading again")
                return self._commit(record)

        layout = self.store.layout
        staging = layout.staging_file_of_id(record.id)

        try:
            self._download(record, open_payload, staging)
        except (NetworkError, OSError) as e:
            logger.error(f"Failed to download payload for {record.id} ({record.name}): {e}")
            return IngestOutcome(record.id, IngestStatus.FAILED_PAYLOAD, record, str(e))

        try:
            self._unpack(record, staging)
        except CorruptError as e:
            logger.error(
                f"Failed to extract payload for {record.id} ({record.name}), "
                f"treating this as non-fatal: {e}"
            )
            return IngestOutcome(record.id, IngestStatus.FAILED_ARCHIVE, record, str(e))
        finally:
            staging.unlink(missing_ok=True)

        return self._commit(record)

    def _commit(self, record: Record) -> IngestOutcome:
        """Store, link and index an unpacked item, then mark it complete."""
        self.store.records.put(record.id, record)
        link_errors = self._link(record)
        self.store.index.add(record)
        self.store.mark_complete(record.id)

        logger.info(f"Added {record.id}: {record.pretty_single_line()}")
        return IngestOutcome(
            record.id, IngestStatus.COMMITTED, record, link_errors=link_errors
        )

    def run(self, items: Iterable[IngestItem], force: bool = False) -> BatchReport:
        """Ingest items in order until exhausted or cancelled."""
        report = BatchReport()
        iterator = iter(items)
        try:
            while True:
                if self.cancel.cancelled:
                    logger.info("Cancellation requested, stopping before the next item")
                    report.cancelled = True
                    break
                try:
                    item = next(iterator)
                except StopIteration:
                    break
                except NetworkError as e:
                    logger.error(f"Item source failed, stopping the batch: {e}")
                    report.source_error = str(e)
                    break
                report.add(self.ingest(item.record, item.open_payload, force))
        finally:
            self.store.index.flush()

        logger.info(
            f"Batch finished: {len(report.added)} added, {len(report.skipped)} skipped, "
            f"{len(report.failed)} failed"
        )
        return report

    def reindex(self) -> BatchReport:
        """Rebuild the search index and alias views from the record store.

        Canonical units and the record store are never touched. Records that
        cannot be decoded are logged and reported as failed.
        """
        report = BatchReport()

        def _on_corrupt(id: int, error: CorruptError) -> None:
            logger.error(f"Skipping record {id} during reindex: {error}")
            report.failed.append(
                IngestOutcome(id, IngestStatus.FAILED_RECORD, error=str(error))
            )

        self.store.reset_index()
        self.store.reset_views()

        try:
            for id, record in self.store.records.iterate(on_corrupt=_on_corrupt):
                if self.cancel.cancelled:
                    logger.info("Cancellation requested, stopping reindex")
                    report.cancelled = True
                    break
                self._link(record)
                self.store.index.add(record)
                report.added.append(record)
        finally:
            self.store.index.flush()

        logger.info(f"Reindexed {len(report.added)} records")
        return report

    def _download(self, record: Record, open_payload: PayloadOpener, destination: Path) -> None:
        """Stream a payload to a staging file, then move it into place."""
        destination.parent.mkdir(parents=True, exist_ok=True)
        partial = destination.with_name(destination.name + ".part")

        logger.debug(f"Downloading payload for {record.id} from {record.payload_url}")
        try:
            payload = open_payload()
            received = 0
            with partial.open("wb") as f:
                for chunk in payload.chunks:
                    f.write(chunk)
                    received += len(chunk)
                    if self.progress is not None:
                        self.progress(received, payload.size_hint)
                f.flush()
                os.fsync(f.fileno())
            os.replace(partial, destination)
        except BaseException:
            partial.unlink(missing_ok=True)
            raise

        logger.debug(f"Downloaded {received} bytes for {record.id}")

    def _unpack(self, record: Record, archive_path: Path) -> None:
        """Extract a payload zip into the record's canonical unit.

        The payload is extracted next to the staging file first and only moved
        into place once extraction succeeded, replacing any earlier unit. A
        failed extraction leaves the existing unit untouched.

        Raises:
            CorruptError: If the payload is not a valid zip or cannot be extracted
        """
        target = self.store.layout.canonical_dir_of_id(record.id)
        unpacked = archive_path.with_name(f"{record.id}.unpack")
        try:
            if unpacked.exists():
                shutil.rmtree(unpacked)
            unpacked.mkdir(parents=True)
            with zipfile.ZipFile(archive_path) as archive:
                root = unpacked.resolve()
                for member in archive.namelist():
                    resolved = (root / member).resolve()
                    if resolved != root and root not in resolved.parents:
                        raise CorruptError(f"Unsafe path in payload: {member}")
                archive.extractall(unpacked)
            if target.exists():
                shutil.rmtree(target)
            target.parent.mkdir(parents=True, exist_ok=True)
            os.replace(unpacked, target)
        except (zipfile.BadZipFile, zipfile.LargeZipFile, EOFError, NotImplementedError, OSError) as e:
            raise CorruptError(f"Payload for {record.id} is not a valid archive: {e}") from e
        finally:
            if unpacked.exists():
                shutil.rmtree(unpacked, ignore_errors=True)

    def _link(self, record: Record) -> list[str]:
        """Build aliases for a record, logging rather than raising on failure."""
        try:
            self.store.views.link(record)
        except LinkConflictError as e:
            logger.error(f"Alias conflict for {record.id} ({record.name}): {e}")
            return [str(path) for path in e.conflicts]
        except (NotFoundError, OSError) as e:
            logger.error(f"Failed to create aliases for {record.id} ({record.name}): {e}")
            return [str(e)]
        return []
