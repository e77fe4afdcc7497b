"""Abort signal and controller for cooperative turn cancellation."""

import logging
from collections.abc import Callable

logger = logging.getLogger(__name__)

# Reason used when the caller stops a turn on purpose (stop button, Ctrl-C).
CALLER_ABORT = "caller"


class AbortError(Exception):
    """Raised when an operation observes an aborted signal."""

    def __init__(self, reason: str | None = CALLER_ABORT):
        super().__init__(f"Operation was aborted ({reason})")
        self.reason = reason

    @property
    def is_caller_abort(self) -> bool:
        return self.reason == CALLER_ABORT


class AbortSignal:
    """Signal observed by a streaming turn.

    The signal records *why* it was aborted. A turn stopped by the caller
    finishes quietly; any other reason (a turn timeout, a shutdown) is
    reported as an error.

    Example:
        controller = AbortController()
        controller.signal.on_abort(lambda: reader.cancel())

        # Later, from the UI
        controller.abort()
    """

    def __init__(self):
        self._aborted = False
        self._reason: str | None = None
        self._callbacks: list[Callable[[], None]] = []

    @property
    def aborted(self) -> bool:
        """True if abort() has been called on the controller."""
        return self._aborted

    @property
    def reason(self) -> str | None:
        """Abort reason, None while not aborted."""
        return self._reason

    def _abort(self, reason: str | None) -> None:
        """Internal: called by AbortController."""
        if self._aborted:
            return
        self._aborted = True
        self._reason = reason
        callbacks, self._callbacks = self._callbacks, []
        for cb in callbacks:
            try:
                cb()
            except Exception:
                logger.exception("Abort callback failed")

    def on_abort(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Register a callback to run when aborted.

        If already aborted, the callback runs immediately.
        Returns an unsubscribe function.
        """
        if self._aborted:
            callback()
        else:
            self._callbacks.append(callback)

        def unsubscribe():
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return unsubscribe

    def throw_if_aborted(self) -> None:
        """Raise AbortError if aborted. Call at each await point."""
        if self._aborted:
            raise AbortError(self._reason)


class AbortController:
    """Owns an AbortSignal and triggers it.

    One controller is created per turn; it is never reused.
    """

    def __init__(self):
        self._signal = AbortSignal()

    @property
    def signal(self) -> AbortSignal:
        return self._signal

    def abort(self, reason: str | None = CALLER_ABORT) -> None:
        """Abort every operation observing this controller's signal.

        Only the first call has an effect; later reasons are ignored.
        """
        self._signal._abort(reason)
