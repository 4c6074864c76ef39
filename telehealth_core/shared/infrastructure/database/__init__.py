"""Async SQLAlchemy engine and session management."""

from .connection import DatabaseBase, DatabaseConnectionManager
from .session import DatabaseSessionManager

__all__ = [
    "DatabaseBase",
    "DatabaseConnectionManager",
    "DatabaseSessionManager",
]
