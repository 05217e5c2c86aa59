"""Service layer exception classes for Farm Ledger.

This module defines all custom exceptions used by the service layer to provide
consistent error handling across the application. Every exception carries the
context a UI needs to render a message (entity id, attempted and available
quantities).

Exception Hierarchy:
    ServiceError
    ├── NotFound
    │   ├── BatchNotFound
    │   ├── InventoryItemNotFound
    │   ├── RecordNotFound
    │   ├── FarmNotFound
    │   ├── ShedNotFound
    │   └── UserNotFound
    ├── InsufficientPopulation
    ├── InsufficientStock
    ├── ConcurrencyConflict
    ├── NetworkUnavailable
    ├── ValidationError
    ├── AuthenticationError
    │   └── UserNotActive
    ├── DuplicateEmail
    └── DatabaseError
"""

from decimal import Decimal
from typing import List, Optional, Union

Quantity = Union[int, Decimal]


class ServiceError(Exception):
    """Base exception for all service layer errors.

    All service-specific exceptions should inherit from this class.
    """

    pass


class NotFound(ServiceError):
    """Raised when a referenced entity does not exist in the ledger store.

    Args:
        entity: Human readable entity name (e.g. "Batch")
        entity_id: The id that was not found
    """

    def __init__(self, entity: str, entity_id: str):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} with ID {entity_id} not found")


class BatchNotFound(NotFound):
    """Raised when a batch cannot be found by ID.

    Example:
        >>> raise BatchNotFound("a1b2")
        BatchNotFound: Batch with ID a1b2 not found
    """

    def __init__(self, batch_id: str):
        self.batch_id = batch_id
        super().__init__("Batch", batch_id)


class InventoryItemNotFound(NotFound):
    """Raised when an inventory item cannot be found by ID."""

    def __init__(self, inventory_item_id: str):
        self.inventory_item_id = inventory_item_id
        super().__init__("Inventory item", inventory_item_id)


class RecordNotFound(NotFound):
    """Raised when a daily log, sale, consumption or expense record is missing.

    Args:
        record_type: Kind of record (e.g. "Sale", "Daily log")
        record_id: The record id that was not found
    """

    def __init__(self, record_type: str, record_id: str):
        self.record_type = record_type
        self.record_id = record_id
        super().__init__(record_type, record_id)


class FarmNotFound(NotFound):
    """Raised when a farm cannot be found by ID."""

    def __init__(self, farm_id: str):
        self.farm_id = farm_id
        super().__init__("Farm", farm_id)


class ShedNotFound(NotFound):
    """Raised when a shed cannot be found by ID."""

    def __init__(self, shed_id: str):
        self.shed_id = shed_id
        super().__init__("Shed", shed_id)


class UserNotFound(NotFound):
    """Raised when a user cannot be found by ID."""

    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__("User", user_id)


class InsufficientPopulation(ServiceError):
    """Raised when mortality or a sale exceeds a batch's live population.

    Args:
        batch_id: The batch being debited
        requested: Birds the operation tried to remove
        available: Birds currently alive in the batch

    Example:
        >>> raise InsufficientPopulation("a1b2", requested=101, available=100)
        InsufficientPopulation: Batch a1b2 has insufficient population: requested 101, available 100
    """

    def __init__(self, batch_id: str, requested: int, available: int):
        self.batch_id = batch_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Batch {batch_id} has insufficient population: "
            f"requested {requested}, available {available}"
        )


class InsufficientStock(ServiceError):
    """Raised when there is not enough stock of an inventory item.

    Args:
        inventory_item_id: The item being debited
        product_name: Item name for user-facing messages
        requested: Quantity the operation tried to consume
        available: Quantity currently in stock
    """

    def __init__(
        self,
        inventory_item_id: str,
        product_name: str,
        requested: Quantity,
        available: Quantity,
    ):
        self.inventory_item_id = inventory_item_id
        self.product_name = product_name
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient stock for {product_name}: "
            f"requested {requested}, available {available}"
        )


class ConcurrencyConflict(ServiceError):
    """Raised when a transaction keeps conflicting after all retry attempts.

    Args:
        operation: Name of the consistency operation
        attempts: Number of attempts made
    """

    def __init__(self, operation: str, attempts: int):
        self.operation = operation
        self.attempts = attempts
        super().__init__(
            f"Operation '{operation}' failed after {attempts} attempts "
            f"due to concurrent modifications"
        )


class NetworkUnavailable(ServiceError):
    """Raised when the ledger store cannot be reached.

    Callers are expected to redirect the operation to the offline outbox
    instead of reporting a failure to the user.

    Args:
        operation: Name of the operation that could not be submitted
        original_error: The underlying driver error, if any
    """

    def __init__(self, operation: str, original_error: Optional[Exception] = None):
        self.operation = operation
        self.original_error = original_error
        super().__init__(f"Ledger store unavailable during '{operation}'")


class ValidationError(ServiceError):
    """Raised when input validation fails.

    Args:
        errors: List of human readable validation messages
    """

    def __init__(self, errors: Union[List[str], str]):
        if isinstance(errors, str):
            errors = [errors]
        self.errors = list(errors)
        error_msg = "; ".join(self.errors)
        super().__init__(f"Validation failed: {error_msg}")


class AuthenticationError(ServiceError):
    """Raised when login credentials are rejected."""

    def __init__(self, email: str, reason: str = "Invalid email or password"):
        self.email = email
        self.reason = reason
        super().__init__(reason)


class UserNotActive(AuthenticationError):
    """Raised when a user whose account is not ACTIVO tries to log in."""

    def __init__(self, email: str, status: str):
        self.status = status
        super().__init__(email, f"User {email} is not active (status: {status})")


class DuplicateEmail(ServiceError):
    """Raised when registering an email that already has an account."""

    def __init__(self, email: str):
        self.email = email
        super().__init__(f"A user with email '{email}' already exists")


class DatabaseError(ServiceError):
    """Raised when a database operation fails unexpectedly."""

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        self.original_error = original_error
        super().__init__(f"Database error: {message}")
