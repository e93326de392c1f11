"""
Farm data access layer

Cache-backed, schema-driven client for the farm operations REST API.
"""

from farmdata.client import FarmDataClient
from farmdata.core.exceptions import (
    ApiRejectedError,
    ApiTransportError,
    ApiUnavailableError,
    EntityNotFoundError,
    FarmApiError,
    FarmDataError,
    RecordValidationError,
    StorageError,
)

__version__ = "1.0.0"

__all__ = [
    "FarmDataClient",
    "FarmDataError",
    "FarmApiError",
    "ApiTransportError",
    "ApiUnavailableError",
    "ApiRejectedError",
    "StorageError",
    "RecordValidationError",
    "EntityNotFoundError",
]
