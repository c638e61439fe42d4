"""Cooperative cancellation for pipeline passes."""

import logging
import signal
import threading
from typing import Any

logger = logging.getLogger(__name__)


class CancellationToken:
    """Thread-safe cancellation flag, optionally wired to SIGINT.

    The pipeline polls ``is_cancelled()`` at page boundaries and before each
    detect call. Work already in flight is allowed to finish.
    """

    def __init__(self) -> None:
        self._flag = threading.Event()
        self._original_handler: Any = None

    def cancel(self) -> None:
        self._flag.set()
        logger.debug("Cancellation requested")

    def is_cancelled(self) -> bool:
        return self._flag.is_set()

    def reset(self) -> None:
        self._flag.clear()

    def install_signal_handler(self) -> None:
        """Cancel on Ctrl-C instead of raising KeyboardInterrupt mid-request."""
        self._original_handler = signal.signal(signal.SIGINT, self._handle_signal)

    def _handle_signal(self, _signum: int, _frame: Any) -> None:
        logger.warning("Interrupted, finishing in-flight requests")
        self._flag.set()

    def restore_signal_handler(self) -> None:
        if self._original_handler is not None:
            signal.signal(signal.SIGINT, self._original_handler)
            self._original_handler = None

    def __enter__(self) -> "CancellationToken":
        self.install_signal_handler()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.restore_signal_handler()
