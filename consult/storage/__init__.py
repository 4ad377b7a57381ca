"""Persistence and upload destinations"""

from .backends import CloudBackend, LocalBackend, UploadResult
from .config_store import ConfigProvider, FileConfigProvider, MemoryConfigProvider, StorageConfig
from .document_store import DocumentStore, JsonDocumentStore, MemoryDocumentStore, open_document_store
from .resolver import StorageBackend, StorageResolver

__all__ = [
    "CloudBackend",
    "LocalBackend",
    "UploadResult",
    "ConfigProvider",
    "FileConfigProvider",
    "MemoryConfigProvider",
    "StorageConfig",
    "DocumentStore",
    "JsonDocumentStore",
    "MemoryDocumentStore",
    "open_document_store",
    "StorageBackend",
    "StorageResolver",
]
