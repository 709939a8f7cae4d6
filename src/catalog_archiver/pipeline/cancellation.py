"""Cooperative cancellation for ingestion runs.

A CancellationToken is created by whoever starts a run and handed to the
IngestionCoordinator, which polls it between items. Signal handlers are only
one way of setting it.
"""

import logging
import signal
import threading

logger = logging.getLogger(__name__)


class CancellationToken:
    """A flag that asks a running batch to stop after the current item."""

    def __init__(self):
        self._event = threading.Event()

    def __repr__(self) -> str:
        return f"CancellationToken(cancelled={self.cancelled})"

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()


def install_signal_handlers(
    token: CancellationToken,
    signals: tuple[int, ...] = (signal.SIGINT, signal.SIGTERM),
) -> dict:
    """Route shutdown signals to a cancellation token.

    A second signal restores the previous handler's behaviour, so pressing
    Ctrl-C twice still interrupts a stuck item.

    Returns:
        Mapping of signal number to the handler it replaced
    """
    previous: dict = {}

    def _handle_shutdown(signum, frame) -> None:
        if token.cancelled:
            logger.warning("Second shutdown signal received, exiting immediately")
            signal.signal(signum, previous.get(signum) or signal.SIG_DFL)
            signal.raise_signal(signum)
            return
        logger.info("Shutdown signal received, will exit after current item")
        token.cancel()

    for signum in signals:
        previous[signum] = signal.signal(signum, _handle_shutdown)
    return previous


def restore_signal_handlers(previous: dict) -> None:
    for signum, handler in previous.items():
        signal.signal(signum, handler or signal.SIG_DFL)
