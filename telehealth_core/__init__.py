# 📄 File: telehealth_core/__init__.py
#
# 🧭 Purpose (Layman Explanation):
# The main entry point that tells Python this folder contains the telehealth subscription
# back-end code and records the basic version and package information.
#
# 🧪 Purpose (Technical Summary):
# Package initialization with version info and package metadata for the telehealth
# subscription lifecycle core.
#
# 🔗 Dependencies:
# - Python packaging system
#
# 🔄 Connected Modules / Calls From:
# - pyproject.toml (version metadata)
# - Package imports throughout the application

"""
Telehealth Subscription Core

Back-end service layer for telehealth subscriptions: the status state machine,
its audit trail, plan privilege quotas, proration for plan changes and the
scheduled sweeps that move subscriptions through their lifecycle.
"""

__version__ = "1.0.0"
__title__ = "Telehealth Subscription Core"
__description__ = "Subscription lifecycle state machine, quotas and proration"
__author__ = "Telehealth Platform Team"
__license__ = "MIT"

__all__ = [
    "__version__",
    "__title__",
    "__description__",
    "__author__",
    "__license__",
]
