"""Custom exceptions for the ABX feed client."""


class FeedError(Exception):
    """Base exception for ABX feed client errors."""
    pass


class FeedConnectionError(FeedError):
    """Raised when a connection to the feed server cannot be established."""
    pass


class TransportError(FeedError):
    """Raised on a low-level I/O failure on an established connection."""
    pass


class TransportReadError(TransportError):
    """Raised when reading from the feed connection fails."""
    pass


class ReadTimeoutError(TransportReadError):
    """Raised when the server sends nothing before the read deadline."""
    pass


class TransportWriteError(TransportError):
    """Raised when a request cannot be written to the feed connection."""
    pass


class FrameError(FeedError):
    """Raised when a record cannot be decoded."""
    pass


class TruncatedFrameError(FrameError):
    """Raised when a record is shorter than the wire layout requires."""

    def __init__(self, received: int, expected: int):
        self.received = received
        self.expected = expected
        super().__init__(
            f"Truncated frame: {received} bytes received, {expected} expected"
        )


class RecoveryStepError(FeedError):
    """Raised when a single resend request fails to recover its sequence."""

    def __init__(self, sequence: int, reason: str):
        self.sequence = sequence
        self.reason = reason
        super().__init__(f"Recovery of sequence {sequence} failed: {reason}")


class SessionCancelledError(FeedError):
    """Raised when the caller cancels a running session."""
    pass


class SessionStateError(FeedError):
    """Raised on an illegal session state transition."""
    pass
