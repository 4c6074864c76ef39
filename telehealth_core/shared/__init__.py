# 📄 File: telehealth_core/shared/__init__.py
#
# 🧭 Purpose (Layman Explanation):
# Marks the 'shared' folder as a package with the common tools every part of the
# subscription system uses, like settings, logging, errors and the database.
#
# 🧪 Purpose (Technical Summary):
# Shared kernel package for configuration, exceptions, logging, event bus,
# locking primitives and database infrastructure.
#
# 🔗 Dependencies:
# - Python packaging system
#
# 🔄 Connected Modules / Calls From:
# - All application modules importing shared utilities

"""
Shared Kernel - Common Utilities and Infrastructure

- Configuration management
- Exception hierarchy
- Structured logging
- Event bus
- Keyed locking and clock abstractions
- Database session infrastructure
"""
