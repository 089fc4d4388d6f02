"""
Accounts module.

Tenants, users, memberships and billing state; resolves the tenant access
context that every inventory operation runs under.
"""

from . import models  # noqa: F401
