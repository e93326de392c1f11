"""
Error taxonomy for the data-access layer

Storage errors never reach callers of the cache (they are logged and swallowed).
API errors are split by whether the origin was reachable at all, unavailable,
or explicitly rejected the request.
"""

from typing import Any, Dict, Optional


class FarmDataError(Exception):
    """Base class for every error raised by farmdata"""


class StorageError(FarmDataError):
    """Raised when the durable key-value store cannot complete an operation"""


class StorageQuotaExceeded(StorageError):
    """Raised when a write would exceed the durable store's capacity"""


class FarmApiError(FarmDataError):
    """Base class for remote API failures"""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        payload: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload or {}

    def __str__(self) -> str:
        if self.status_code is None:
            return self.message
        return f"{self.message} (HTTP {self.status_code})"


class ApiTransportError(FarmApiError):
    """No response was received (connection refused, timeout, DNS failure)"""


class ApiUnavailableError(FarmApiError):
    """The origin answered but could not serve the request (5xx, malformed envelope)"""


class ApiRejectedError(FarmApiError):
    """The origin explicitly rejected the request (4xx or ``ok: false``)"""


class RecordValidationError(FarmDataError):
    """A record payload could not be built from the supplied draft"""


class EntityNotFoundError(FarmDataError):
    """The requested table is not part of the module's entity metadata"""
