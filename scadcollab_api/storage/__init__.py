"""Storage layer: document backends for sessions, comments and profiles."""

from .backend import SERVER_TIMESTAMP, DocumentBackend, DocumentChange
from .database import PostgresBackend, close_backend, get_backend, init_backend
from .memory import MemoryBackend

__all__ = [
    "SERVER_TIMESTAMP",
    "DocumentBackend",
    "DocumentChange",
    "MemoryBackend",
    "PostgresBackend",
    "close_backend",
    "get_backend",
    "init_backend",
]
