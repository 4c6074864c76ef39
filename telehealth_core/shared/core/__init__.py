"""
Core utilities package for the telehealth subscription core.
Provides the exception hierarchy, event bus and locking primitives.
"""

from .exceptions import (
    BUSINESS_ERRORS,
    ConcurrencyConflictError,
    DatabaseError,
    ErrorKind,
    InvalidTransitionError,
    NotFoundError,
    PrivilegeNotGrantedError,
    QuotaExceededError,
    SubscriptionNotFoundError,
    SystemicFailureError,
    TelehealthException,
    ValidationError,
)

from .event_bus import (
    DomainEvent,
    EventBus,
    EventHandler,
    EventPriority,
    EventStore,
    get_event_bus,
    shutdown_event_bus,
)

from .keyed_lock import KeyedLock

__all__ = [
    "BUSINESS_ERRORS",
    "ConcurrencyConflictError",
    "DatabaseError",
    "ErrorKind",
    "InvalidTransitionError",
    "NotFoundError",
    "PrivilegeNotGrantedError",
    "QuotaExceededError",
    "SubscriptionNotFoundError",
    "SystemicFailureError",
    "TelehealthException",
    "ValidationError",
    "DomainEvent",
    "EventBus",
    "EventHandler",
    "EventPriority",
    "EventStore",
    "get_event_bus",
    "shutdown_event_bus",
    "KeyedLock",
]
