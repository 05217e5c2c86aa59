"""
Constants for the Farm Ledger application.

This module defines all system-wide constants including:
- Application metadata
- Database file names and table names
- Transaction and replay limits
- Validation limits and error messages
"""

from decimal import Decimal

# ============================================================================
# Application Metadata
# ============================================================================

APP_NAME = "Farm Ledger"
APP_VERSION = "0.1.0"
DATABASE_VERSION = "1.0"

# ============================================================================
# Database Configuration
# ============================================================================

DATABASE_FILENAME = "farm_ledger.db"
OUTBOX_DATABASE_FILENAME = "farm_ledger_outbox.db"

# Ledger tables
TABLE_FARM = "farms"
TABLE_SHED = "sheds"
TABLE_BATCH = "batches"
TABLE_INVENTORY_ITEM = "inventory_items"
TABLE_DAILY_LOG = "daily_logs"
TABLE_SALE = "sales"
TABLE_CONSUMPTION = "consumptions"
TABLE_EXPENSE = "expenses"
TABLE_HEALTH_TREATMENT = "health_treatments"
TABLE_USER = "users"

# Local (on-device) tables
TABLE_PENDING_OPERATION = "pending_operations"

# ============================================================================
# Transactions and Offline Replay
# ============================================================================

# Attempts per consistency operation before ConcurrencyConflict is raised
DEFAULT_MAX_TRANSACTION_ATTEMPTS = 5

# Environment variable names
ENV_ENVIRONMENT = "FARM_LEDGER_ENV"
ENV_DATABASE_URL = "FARM_LEDGER_DATABASE_URL"
ENV_OUTBOX_DATABASE_URL = "FARM_LEDGER_OUTBOX_URL"
ENV_MAX_TRANSACTION_ATTEMPTS = "FARM_LEDGER_MAX_ATTEMPTS"

# ============================================================================
# Validation Limits
# ============================================================================

MAX_NAME_LENGTH = 200
MAX_UNIT_LENGTH = 50
MAX_CONCEPT_LENGTH = 200
MAX_NOTES_LENGTH = 2000
MAX_EMAIL_LENGTH = 254

MIN_PASSWORD_LENGTH = 6

CURRENCY_DECIMAL_PLACES = 2
QUANTITY_DECIMAL_PLACES = 3

ZERO = Decimal("0")

# Concept prefix for expenses derived from a consumption
CONSUMPTION_EXPENSE_PREFIX = "Consumo: "

# ============================================================================
# Error Messages
# ============================================================================

ERROR_REQUIRED_FIELD = "This field is required"
ERROR_INVALID_NUMBER = "Must be a valid number"
ERROR_INVALID_INTEGER = "Must be a whole number"
ERROR_INVALID_POSITIVE = "Must be greater than zero"
ERROR_INVALID_NON_NEGATIVE = "Cannot be negative"
ERROR_INVALID_CHOICE = "Invalid value"
ERROR_INVALID_DATE = "Must be a valid date (YYYY-MM-DD)"
