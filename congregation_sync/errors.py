"""Error taxonomy for remote collection sync."""
from typing import Optional

from .models import ErrorKind


class SyncError(Exception):
    """Base class for every failure the synchronizer can surface."""

    kind = ErrorKind.NETWORK
    retryable = False


class NetworkError(SyncError):
    """Transport-level failure (connection lost, timeout, malformed response)."""

    kind = ErrorKind.NETWORK

    def __init__(self, message: str, retryable: bool = True):
        super().__init__(message)
        self.retryable = retryable


class HttpStatusError(SyncError):
    kind = ErrorKind.HTTP_STATUS

    def __init__(self, status_code: int, message: Optional[str] = None):
        super().__init__(message or f"HTTP Error: Status code {status_code}")
        self.status_code = status_code


class DecodeError(SyncError):
    kind = ErrorKind.DECODE


class ApiError(SyncError):
    """The server answered with an error payload."""

    kind = ErrorKind.API

    def __init__(self, message: str, code: Optional[int] = None):
        super().__init__(message)
        self.code = code


class NoItemsError(SyncError):
    kind = ErrorKind.NO_ITEMS


class ItemUnavailableError(SyncError):
    """A single item cannot be played or displayed."""

    kind = ErrorKind.ITEM_UNAVAILABLE

    def __init__(self, item_id: str, message: Optional[str] = None):
        super().__init__(message or f"Item {item_id} is unavailable")
        self.item_id = item_id
