# 📄 File: telehealth_core/modules/subscription_lifecycle/__init__.py
#
# 🧭 Purpose (Layman Explanation):
# The subscription lifecycle module: everything that decides what state a patient's
# subscription is in, what it may do next and how much of its plan has been used.
#
# 🧪 Purpose (Technical Summary):
# Domain models, ports, services and adapters for the subscription state machine,
# privilege quotas, proration and scheduled sweeps.
#
# 🔗 Dependencies:
# - domain (models, repositories, services, events)
# - infrastructure (in-memory and SQLAlchemy adapters)
#
# 🔄 Connected Modules / Calls From:
# - telehealth_core.background_jobs (sweep tasks)

from .dependencies import LifecycleServices, build_lifecycle_services

__all__ = [
    "LifecycleServices",
    "build_lifecycle_services",
]
