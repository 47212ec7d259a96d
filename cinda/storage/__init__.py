"""Versioned durable storage."""

from .envelope import StoredRecord
from .backends import StorageBackend, MemoryBackend, FileBackend, PostgresBackend, create_backend
from .persistence import DomainStore, PersistenceLayer

__all__ = [
    'StoredRecord',
    'StorageBackend',
    'MemoryBackend',
    'FileBackend',
    'PostgresBackend',
    'create_backend',
    'DomainStore',
    'PersistenceLayer',
]
