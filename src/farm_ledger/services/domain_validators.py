"""Domain validators for population and stock debits.

Pure, deterministic functions over the snapshot passed in. They never touch
the database, so the rules can be exercised without a ledger store and are
called inside consistency operations before any write:

- validate_mortality / validate_sale_quantity: a batch cannot lose more
  birds than it currently has
- validate_stock_consumption: an item cannot be consumed below zero
- validate_population_restore: a credit cannot exceed the initial population
- apply_population_delta (and remove_population / restore_population):
  compute the next population state of a batch, including the
  finalize/reactivate lifecycle

Validators accept anything exposing ``id`` and ``current_population`` (or
``current_stock``): an ORM Batch/InventoryItem or a PopulationSnapshot.
"""

from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal
from typing import Optional, Union

from .exceptions import InsufficientPopulation, InsufficientStock, ValidationError

Number = Union[int, Decimal]


@dataclass(frozen=True)
class PopulationSnapshot:
    """Immutable view of a batch's population state."""

    id: str
    initial_population: int
    current_population: int
    active: bool
    finalization_date: Optional[datetime] = None

    @classmethod
    def of(cls, batch) -> "PopulationSnapshot":
        """Take a snapshot of an ORM Batch."""
        return cls(
            id=batch.id,
            initial_population=batch.initial_population,
            current_population=batch.current_population,
            active=batch.active,
            finalization_date=batch.finalization_date,
        )


def validate_mortality(batch, new_mortality: int) -> None:
    """Fail if a mortality count exceeds the batch's live population.

    Raises:
        InsufficientPopulation: If new_mortality > batch.current_population
    """
    if new_mortality > batch.current_population:
        raise InsufficientPopulation(batch.id, new_mortality, batch.current_population)


def validate_sale_quantity(batch, quantity: int) -> None:
    """Fail if a sale would sell more birds than the batch has.

    Raises:
        InsufficientPopulation: If quantity > batch.current_population
    """
    if quantity > batch.current_population:
        raise InsufficientPopulation(batch.id, quantity, batch.current_population)


def validate_stock_consumption(item, quantity: Number) -> None:
    """Fail if a consumption exceeds the item's stock on hand.

    Raises:
        InsufficientStock: If quantity > item.current_stock
    """
    if quantity > item.current_stock:
        raise InsufficientStock(item.id, item.product_name, quantity, item.current_stock)


def _with_population(snapshot: PopulationSnapshot, population: int, now: datetime) -> PopulationSnapshot:
    if population == 0:
        # Keep the original finalization date if the batch was already closed
        if not snapshot.active and snapshot.finalization_date is not None:
            finalized_at = snapshot.finalization_date
        else:
            finalized_at = now
        return replace(
            snapshot, current_population=0, active=False, finalization_date=finalized_at
        )
    return replace(snapshot, current_population=population, active=True, finalization_date=None)


def remove_population(snapshot: PopulationSnapshot, amount: int, now: datetime) -> PopulationSnapshot:
    """Return the state after removing amount birds (mortality or sale).

    A batch whose population reaches zero is finalized at ``now``.

    Raises:
        InsufficientPopulation: If amount exceeds the current population
    """
    if amount > snapshot.current_population:
        raise InsufficientPopulation(snapshot.id, amount, snapshot.current_population)
    return _with_population(snapshot, snapshot.current_population - amount, now)


def validate_population_restore(batch, amount: int) -> None:
    """Fail if crediting amount birds back would exceed the initial population.

    Raises:
        ValidationError: If current_population + amount > initial_population
    """
    restored = batch.current_population + amount
    if restored > batch.initial_population:
        raise ValidationError(
            f"Batch {batch.id}: restoring {amount} birds would exceed the initial "
            f"population ({restored} > {batch.initial_population})"
        )


def restore_population(snapshot: PopulationSnapshot, amount: int, now: datetime) -> PopulationSnapshot:
    """Return the state after crediting back amount birds.

    A finalized batch whose population becomes positive is reactivated and
    its finalization date cleared.

    Raises:
        ValidationError: If the restored population would exceed the initial population
    """
    validate_population_restore(snapshot, amount)
    return _with_population(snapshot, snapshot.current_population + amount, now)


def apply_population_delta(batch, delta: int, now: datetime) -> PopulationSnapshot:
    """Return the state of batch after a signed population change.

    Negative deltas are debits (mortality, sales), positive deltas are
    credits (edits and deletes of those records).
    """
    snapshot = batch if isinstance(batch, PopulationSnapshot) else PopulationSnapshot.of(batch)
    if delta < 0:
        return remove_population(snapshot, -delta, now)
    return restore_population(snapshot, delta, now)


def apply_population(batch, snapshot: PopulationSnapshot) -> None:
    """Copy a computed population state onto an ORM Batch."""
    batch.current_population = snapshot.current_population
    batch.active = snapshot.active
    batch.finalization_date = snapshot.finalization_date
