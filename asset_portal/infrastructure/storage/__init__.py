"""Adapters de infraestructura: durable store."""

from .errors import (
    StorageConfigurationError,
    StorageError,
    StorageNotFoundError,
    StoragePermissionError,
    StorageRequestError,
    StorageUnavailableError,
)
from .in_memory_store import InMemoryDurableStore
from .s3_durable_store import S3Config, S3DurableStore

__all__ = [
    "S3Config",
    "S3DurableStore",
    "InMemoryDurableStore",
    "StorageError",
    "StorageConfigurationError",
    "StorageNotFoundError",
    "StoragePermissionError",
    "StorageRequestError",
    "StorageUnavailableError",
]
