"""Exception hierarchy for chat streaming."""


class ChatError(Exception):
    """Base class for chat streaming errors."""


class TransportError(ChatError):
    """The HTTP request failed or returned a non-2xx status."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class StreamError(ChatError):
    """The server reported an error event mid-turn."""

    def __init__(self, message: str, recoverable: bool = False):
        super().__init__(message)
        self.recoverable = recoverable
