# backend/stockdb/__init__.py
"""
Import ORM models from each app so that Alembic and
Base.metadata.create_all() see every table.

The actual model classes live in stockdb/apps/*/models.py.
"""

from .apps.accounts import models as accounts_models          # tenants / users / memberships / billing state
from .apps.inventory import models as inventory_models        # catalog + stock ledger

__all__ = [
    "accounts_models",
    "inventory_models",
]
