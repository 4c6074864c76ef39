"""
Infrastructure layer package for the telehealth subscription core.
Provides the async database engine and session management.
"""

__all__ = [
    "database",
]
