# 📄 File: telehealth_core/shared/utils/__init__.py

# 🧭 Purpose (Layman Explanation):
# Small helper tools that the rest of the subscription system leans on: logging and telling time.

# 🧪 Purpose (Technical Summary):
# Utilities package exposing structured logging and the clock abstraction.

# 🔗 Dependencies:
# - logging: Structured logging utilities
# - clock: Current-time abstraction

# 🔄 Connected Modules / Calls From:
# Used by: lifecycle services, stores, sweep tasks

from .clock import Clock, FrozenClock, SystemClock, ensure_utc
from .logging import get_logger, log_context, setup_logging

__all__ = [
    "Clock",
    "FrozenClock",
    "SystemClock",
    "ensure_utc",
    "get_logger",
    "log_context",
    "setup_logging",
]
