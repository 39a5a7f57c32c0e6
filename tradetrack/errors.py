"""
TradeTrack — Error taxonomy shared by the store adapters and the log services.
"""


class TradeTrackError(Exception):
    """Base class for every domain error raised by the core."""


class ValidationError(TradeTrackError):
    """A required field is missing or malformed. Raised before any store write."""

    def __init__(self, field: str, message: str | None = None):
        self.field = field
        super().__init__(message or f"{field} required")


class NotFoundError(TradeTrackError):
    """Read/update/delete targeting a key with no document."""

    def __init__(self, collection: str, key: str):
        self.collection = collection
        self.key = key
        super().__init__(f"{collection}/{key} not found")


class ConflictError(TradeTrackError):
    """Create targeting a key that already exists. The existing record is untouched."""

    def __init__(self, collection: str, key: str):
        self.collection = collection
        self.key = key
        super().__init__(f"{collection}/{key} already exists")


class StoreError(TradeTrackError):
    """The underlying store is unreachable or rejected the operation."""


class PartialFanoutFailure(TradeTrackError):
    """Some notification writes of one fan-out failed. Logged, never raised to callers."""

    def __init__(self, failed: dict[str, Exception], delivered: int):
        self.failed = failed
        self.delivered = delivered
        recipients = ", ".join(sorted(failed))
        super().__init__(
            f"{len(failed)} notification(s) failed ({recipients}); {delivered} delivered"
        )
