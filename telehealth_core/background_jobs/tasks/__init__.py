"""Celery task modules."""

from .subscription_sweeps import (
    configure_services,
    reset_privilege_usage,
    sweep_subscription_expirations,
)

__all__ = [
    "configure_services",
    "reset_privilege_usage",
    "sweep_subscription_expirations",
]
