"""
Database models package.

This package contains all SQLAlchemy ORM models for the application.
Ledger store models derive from Base; on-device models from LocalBase.
"""

from .base import Base, BaseModel, LocalBase, new_id
from .enums import (
    BirdType,
    InventoryType,
    ExpenseCategory,
    UserRole,
    UserStatus,
    OperationType,
)
from .farm import Farm, Shed
from .batch import Batch
from .inventory_item import InventoryItem
from .daily_log import DailyLogRecord
from .sale import SaleRecord
from .expense import ExpenseRecord
from .consumption import ConsumptionRecord
from .health_treatment import HealthTreatmentRecord
from .user import User
from .pending_operation import PendingOperation

__all__ = [
    "Base",
    "BaseModel",
    "LocalBase",
    "new_id",
    # Enums
    "BirdType",
    "InventoryType",
    "ExpenseCategory",
    "UserRole",
    "UserStatus",
    "OperationType",
    # Master data
    "Farm",
    "Shed",
    "Batch",
    "InventoryItem",
    # Ledger records
    "DailyLogRecord",
    "SaleRecord",
    "ExpenseRecord",
    "ConsumptionRecord",
    "HealthTreatmentRecord",
    # Accounts
    "User",
    # Offline outbox
    "PendingOperation",
]
