"""
Signal handlers for run-level cancellation.

Handles Ctrl+C (SIGINT) and SIGTERM so that:
- The first signal requests cancellation; the in-flight repair finishes
  (including its revert) and no further rules are repaired
- A second signal forces exit after running cleanup actions
- Temp files from interrupted atomic writes are removed

Usage:
    from toolguard.core.signal_handlers import GracefulShutdown

    shutdown = GracefulShutdown()
    shutdown.install()
    orchestrator = RunOrchestrator(catalog, ctx, token=shutdown.token)
"""

import atexit
import logging
import signal
import sys
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, List, Optional


logger = logging.getLogger(__name__)


class CancellationToken:
    """
    Thread-safe cancellation flag shared by the orchestrator and prober.

    Example:
        token = CancellationToken()
        token.cancel("SIGINT")
        assert token.cancelled
    """

    def __init__(self):
        self._event = threading.Event()
        self.reason: Optional[str] = None

    def cancel(self, reason: str = "cancelled"):
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


class GracefulShutdown:
    """
    Translate interrupt signals into cancellation of the current run.
    """

    def __init__(self, token: Optional[CancellationToken] = None):
        self.token = token or CancellationToken()
        self.cleanup_actions: List[Callable[[], None]] = []
        self._original_sigint = None
        self._original_sigterm = None
        self._installed = False
        self._in_progress_files: List[Path] = []
        self._lock = threading.Lock()

    def install(self):
        """
        Install signal handlers.

        No-op outside the main thread, where Python forbids signal handlers.
        """
        if self._installed or threading.current_thread() is not threading.main_thread():
            return

        self._original_sigint = signal.signal(signal.SIGINT, self._signal_handler)
        self._original_sigterm = signal.signal(signal.SIGTERM, self._signal_handler)
        atexit.register(self._run_cleanup)
        self._installed = True

    def uninstall(self):
        """Restore the original signal handlers."""
        if not self._installed:
            return

        if self._original_sigint is not None:
            signal.signal(signal.SIGINT, self._original_sigint)
        if self._original_sigterm is not None:
            signal.signal(signal.SIGTERM, self._original_sigterm)

        atexit.unregister(self._run_cleanup)
        self._installed = False

    def _signal_handler(self, signum: int, frame):
        signal_name = "SIGINT" if signum == signal.SIGINT else "SIGTERM"
        error_code = "RT-06" if signum == signal.SIGINT else "RT-07"

        if self.token.cancelled:
            logger.error(f"Forced exit on second {signal_name}", extra={'error_code': error_code})
            self._run_cleanup()
            sys.exit(128 + signum)

        logger.warning(
            f"Cancellation requested ({signal_name}). Finishing current repair; "
            f"send again to force exit.",
            extra={'error_code': error_code}
        )
        self.token.cancel(signal_name)

    def _run_cleanup(self):
        for action in self.cleanup_actions:
            try:
                action()
            except Exception as e:
                logger.error(f"Cleanup error: {e}")

        with self._lock:
            leftovers = list(self._in_progress_files)
            self._in_progress_files.clear()

        for temp_file in leftovers:
            try:
                if temp_file.exists():
                    temp_file.unlink()
                    logger.warning(f"Removed incomplete write: {temp_file}")
            except OSError as e:
                logger.error(f"Failed to remove {temp_file}: {e}")

    def register_cleanup(self, action: Callable[[], None]):
        self.cleanup_actions.append(action)

    def unregister_cleanup(self, action: Callable[[], None]):
        if action in self.cleanup_actions:
            self.cleanup_actions.remove(action)

    @contextmanager
    def protected_write(self, temp_path: Path):
        """
        Track a temp file for the duration of a write.

        If the process is forced to exit mid-write, the temp file is removed.
        """
        with self._lock:
            self._in_progress_files.append(temp_path)
        try:
            yield
        finally:
            with self._lock:
                if temp_path in self._in_progress_files:
                    self._in_progress_files.remove(temp_path)

    @property
    def in_progress_files(self) -> List[Path]:
        with self._lock:
            return list(self._in_progress_files)


# Global instance for convenience
shutdown_manager = GracefulShutdown()


def install_signal_handlers() -> CancellationToken:
    """
    Install global signal handlers.

    Each call starts a fresh token so one cancelled run does not leak into
    the next.

    Returns:
        The token cancelled by the first SIGINT/SIGTERM
    """
    shutdown_manager.token = CancellationToken()
    shutdown_manager.install()
    return shutdown_manager.token
