"""
Shared plumbing for the rider points service.

- Settings loaded from the environment
- structlog configuration
- Error taxonomy (validation / not found / conflict / retrieval / write)
- The persistence layer used by the points and rankings packages
"""

from .config import Settings, get_settings
from .errors import (
    ServiceError,
    ValidationError,
    NotFoundError,
    ConflictError,
    RetrievalError,
    WriteError,
)
from .storage import InMemoryStorage

__all__ = [
    "Settings",
    "get_settings",
    "ServiceError",
    "ValidationError",
    "NotFoundError",
    "ConflictError",
    "RetrievalError",
    "WriteError",
    "InMemoryStorage",
]
