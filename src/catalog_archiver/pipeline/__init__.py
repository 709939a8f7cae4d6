"""Ingestion pipeline: cancellation and the per-item coordinator."""

from .cancellation import CancellationToken, install_signal_handlers, restore_signal_handlers
from .ingest import (
    BatchReport,
    IngestionCoordinator,
    IngestItem,
    IngestOutcome,
    IngestStatus,
    Payload,
)

__all__ = [
    "BatchReport",
    "CancellationToken",
    "IngestItem",
    "IngestOutcome",
    "IngestStatus",
    "IngestionCoordinator",
    "Payload",
    "install_signal_handlers",
    "restore_signal_handlers",
]
