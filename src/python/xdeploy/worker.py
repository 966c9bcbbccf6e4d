"""
Background execution of deployments for UI drivers.
"""

import logging
import threading
from typing import Callable, Optional

from .errors import DeploymentInProgressError
from .process_runner import CancellationToken

logger = logging.getLogger(__name__)


class DeploymentWorker:
    """
    Runs one deployment at a time on a daemon thread.

    The callbacks fire on the worker thread; a GUI should marshal them onto
    its own event loop (e.g. ``root.after(0, ...)`` in Tk).
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._busy = False
        self._thread: Optional[threading.Thread] = None
        self.cancel_token: Optional[CancellationToken] = None

    @property
    def is_busy(self) -> bool:
        with self._lock:
            return self._busy

    def start(
        self,
        job: Callable[[CancellationToken], object],
        on_complete: Optional[Callable[[object], None]] = None,
        on_error: Optional[Callable[[BaseException], None]] = None,
    ) -> threading.Thread:
        """Start ``job(cancel_token)`` in the background."""
        with self._lock:
            if self._busy:
                raise DeploymentInProgressError()
            token = CancellationToken()
            thread = threading.Thread(
                target=self._run, args=(job, token, on_complete, on_error), name="xdeploy-worker", daemon=True
            )
            self._busy = True
            self._thread = thread
            self.cancel_token = token
        thread.start()
        return thread

    def cancel(self) -> None:
        with self._lock:
            token = self.cancel_token if self._busy else None
        if token is not None:
            token.cancel()

    def wait(self, timeout: Optional[float] = None) -> None:
        """Block until the current job and its callback have finished."""
        with self._lock:
            thread = self._thread
        if thread is not None:
            thread.join(timeout)

    def _run(self, job, token, on_complete, on_error) -> None:
        try:
            result = job(token)
        except Exception as e:
            self._release()
            if on_error is not None:
                self._notify(on_error, e)
            else:
                logger.error(f"Background deployment failed: {e}")
            return
        finally:
            # Covers BaseExceptions that skip the handler above.
            self._release()
        if on_complete is not None:
            self._notify(on_complete, result)

    def _release(self) -> None:
        with self._lock:
            self._busy = False

    def _notify(self, callback, value) -> None:
        try:
            callback(value)
        except Exception as e:
            logger.error(f"Deployment callback error: {e}")
