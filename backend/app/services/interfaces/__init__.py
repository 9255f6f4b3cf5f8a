"""
Service interfaces for dependency inversion.
Allows swapping implementations without changing business logic.
"""

from .ledger import Ledger
from .notifier import Notifier
from .resource_client import ResourceClient
from .tenant_lock import TenantLocks

__all__ = ['Ledger', 'Notifier', 'ResourceClient', 'TenantLocks']
