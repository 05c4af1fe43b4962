"""Event loop driving the foreign library's event sources.

The loop is cooperative and single threaded: each iteration lets the foreign
library poll its descriptors and timers, and any packets that become ready are
delivered to the session's callbacks on the calling thread before the
iteration returns.

The loop can run on the caller's thread (:meth:`EventLoop.run`) or on a
dedicated acquisition thread (:meth:`EventLoop.start_thread`). In both cases
:meth:`EventLoop.request_stop` is safe to call from any thread.
"""

import logging
import threading
from typing import TYPE_CHECKING, Optional

from sigrokpy.errors import ForeignSessionError, check_status

if TYPE_CHECKING:
    from sigrokpy.acquisition.session import Session

logger = logging.getLogger(__name__)


class EventLoop:
    """Blocking or single-step driver for one session's datafeed.

    Args:
        session: Session whose datafeed the loop drives.
        poll_timeout_ms: Longest time one iteration waits for events. Defaults
            to the context settings' ``poll_timeout_ms``.
    """

    def __init__(self, session: "Session", poll_timeout_ms: Optional[int] = None) -> None:
        self._session = session
        self._poll_timeout_ms = poll_timeout_ms
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._owner: Optional[int] = None
        self._error: Optional[BaseException] = None

    @property
    def poll_timeout_ms(self) -> int:
        if self._poll_timeout_ms is not None:
            return self._poll_timeout_ms
        return self._session.context.settings.poll_timeout_ms

    @property
    def is_running(self) -> bool:
        """Whether some thread is currently inside :meth:`run`."""
        return self._owner is not None

    @property
    def stop_requested(self) -> bool:
        return self._stop_event.is_set()

    def runs_on_other_thread(self) -> bool:
        """Whether :meth:`run` is active on a thread other than the caller's."""
        owner = self._owner
        if owner is None:
            thread = self._thread
            return thread is not None and thread.is_alive() and thread is not threading.current_thread()
        return owner != threading.get_ident()

    def _reset(self) -> None:
        self._stop_event.clear()

    def request_stop(self) -> None:
        """Ask the loop to stop the session at its next iteration. Thread safe."""
        self._stop_event.set()

    def iterate(self, timeout_ms: Optional[int] = None) -> bool:
        """Process pending foreign events once.

        Args:
            timeout_ms: Longest time to wait for an event; defaults to
                :attr:`poll_timeout_ms`.

        Returns:
            True while the session is still running.

        Raises:
            ForeignSessionError: If the library reports an iteration failure.
        """
        session = self._session
        if not session.is_running:
            return False
        if self._stop_event.is_set():
            self._stop_event.clear()
            session._stop_now()
            return False

        timeout = self.poll_timeout_ms if timeout_ms is None else timeout_ms
        code, still_running = session.context.library.session_iteration(session.handle, timeout)
        check_status(code, lambda c: ForeignSessionError("iteration", c))
        if not still_running:
            session._finish("datafeed ended")
        return session.is_running

    def run(self) -> None:
        """Block until the session returns to idle.

        The session ends when :meth:`Session.stop` is called (from a callback
        or another thread), when :meth:`request_stop` is called, or when every
        device's datafeed has ended.

        Raises:
            RuntimeError: If the loop is already running on another thread.
            ForeignSessionError: If the library reports an iteration failure.
        """
        if self._owner is not None:
            raise RuntimeError("Event loop already running")
        self._owner = threading.get_ident()
        try:
            while self.iterate():
                pass
        finally:
            self._owner = None

    def start_thread(self) -> threading.Thread:
        """Run :meth:`run` on a dedicated daemon thread and return it.

        Raises:
            RuntimeError: If a loop thread is already active.
        """
        if self._thread is not None and self._thread.is_alive():
            raise RuntimeError("Event loop thread already running")
        self._error = None
        self._thread = threading.Thread(target=self._thread_main, name="SigrokEventLoop", daemon=True)
        self._thread.start()
        return self._thread

    def _thread_main(self) -> None:
        try:
            self.run()
        except Exception as e:
            logger.exception("Event loop thread for %s terminated", self._session.name)
            self._error = e
            if self._session.is_running:
                self._session._stop_now()

    def join(self, timeout: Optional[float] = None) -> bool:
        """Wait for the loop thread to finish.

        Returns:
            False if the thread is still running after ``timeout``.

        Raises:
            Exception: Whatever terminated the loop thread, re-raised here.
        """
        if self._thread is None:
            return True
        self._thread.join(timeout)
        if self._thread.is_alive():
            return False
        if self._error is not None:
            error, self._error = self._error, None
            raise error
        return True
