"""
Service interfaces for dependency inversion.
Allows swapping ledger implementations without changing admission logic.
"""

from .ledger import AuditEntry, CapacityLedger, SeatToken
from .memory_ledger import InMemoryCapacityLedger

__all__ = ['AuditEntry', 'CapacityLedger', 'SeatToken', 'InMemoryCapacityLedger']
