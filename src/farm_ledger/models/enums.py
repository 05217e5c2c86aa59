"""
Enumerations shared by ledger models and services.

- BirdType: Production purpose of a batch
- InventoryType: Kind of supply kept in the store room
- ExpenseCategory: Cash-flow classification of an expense
- UserRole / UserStatus: Account role and approval workflow state
- OperationType: Consistency operations that can be queued offline
"""

from enum import Enum


class BirdType(str, Enum):
    """
    Production purpose of a batch.

    Values:
        BROILER: Meat birds (engorde)
        LAYER: Egg-laying hens (ponedora); only layers record eggs
    """

    BROILER = "BROILER"
    LAYER = "LAYER"


class InventoryType(str, Enum):
    """Kind of supply tracked as an inventory item."""

    FEED = "FEED"
    MEDICINE = "MEDICINE"
    VACCINE = "VACCINE"
    DISINFECTANT = "DISINFECTANT"
    OTHER = "OTHER"


class ExpenseCategory(str, Enum):
    """
    Cash-flow classification of an expense.

    Values:
        OPERATING: Payroll, utilities, rent; leaves the cash box
        INVESTMENT: Supply purchases that go into inventory; leaves the cash box
        BATCH_CONSUMPTION: Supplies consumed by a batch; cost only, no cash movement
    """

    OPERATING = "OPERATING"
    INVESTMENT = "INVESTMENT"
    BATCH_CONSUMPTION = "BATCH_CONSUMPTION"


class UserRole(str, Enum):
    """Account role."""

    ADMIN = "ADMIN"
    GALPONERO = "GALPONERO"


class UserStatus(str, Enum):
    """
    Account approval state.

    New registrations start PENDIENTE and need an admin to approve them
    (ACTIVO) or reject them (RECHAZADO). Admins may later toggle an account
    between ACTIVO and INACTIVO.
    """

    PENDIENTE = "PENDIENTE"
    ACTIVO = "ACTIVO"
    INACTIVO = "INACTIVO"
    RECHAZADO = "RECHAZADO"


class OperationType(str, Enum):
    """Consistency operations that the offline outbox can replay."""

    RECORD_DAILY_LOG = "RECORD_DAILY_LOG"
    UPDATE_DAILY_LOG = "UPDATE_DAILY_LOG"
    DELETE_DAILY_LOG = "DELETE_DAILY_LOG"
    RECORD_SALE = "RECORD_SALE"
    UPDATE_SALE = "UPDATE_SALE"
    DELETE_SALE = "DELETE_SALE"
    RECORD_CONSUMPTION = "RECORD_CONSUMPTION"
    RECORD_EXPENSE = "RECORD_EXPENSE"
    APPLY_HEALTH_TREATMENT = "APPLY_HEALTH_TREATMENT"
