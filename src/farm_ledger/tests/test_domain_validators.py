"""
Tests for the pure population and stock validators.

No database is needed: the validators work on snapshots.
"""

from datetime import datetime, timezone
from decimal import Decimal
from types import SimpleNamespace

import pytest

from farm_ledger.services.domain_validators import (
    PopulationSnapshot,
    apply_population_delta,
    remove_population,
    restore_population,
    validate_mortality,
    validate_population_restore,
    validate_sale_quantity,
    validate_stock_consumption,
)
from farm_ledger.services.exceptions import (
    InsufficientPopulation,
    InsufficientStock,
    ValidationError,
)

NOW = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)
EARLIER = datetime(2025, 2, 1, 8, 0, tzinfo=timezone.utc)


def snapshot(current=100, initial=100, active=None, finalization_date=None):
    if active is None:
        active = current > 0
    return PopulationSnapshot(
        id="batch-1",
        initial_population=initial,
        current_population=current,
        active=active,
        finalization_date=finalization_date,
    )


class TestPopulationValidators:
    def test_mortality_within_population_passes(self):
        validate_mortality(snapshot(current=100), 100)

    def test_mortality_over_population_fails_with_context(self):
        with pytest.raises(InsufficientPopulation) as exc:
            validate_mortality(snapshot(current=100), 101)
        assert exc.value.batch_id == "batch-1"
        assert exc.value.requested == 101
        assert exc.value.available == 100

    def test_sale_quantity_equal_to_population_passes(self):
        validate_sale_quantity(snapshot(current=30), 30)

    def test_sale_quantity_over_population_fails(self):
        with pytest.raises(InsufficientPopulation):
            validate_sale_quantity(snapshot(current=30), 31)

    def test_validators_accept_orm_like_objects(self):
        batch = SimpleNamespace(id="b", current_population=5)
        with pytest.raises(InsufficientPopulation):
            validate_mortality(batch, 6)

    def test_validators_do_not_mutate_snapshot(self):
        state = snapshot(current=10)
        with pytest.raises(InsufficientPopulation):
            validate_sale_quantity(state, 11)
        assert state.current_population == 10


class TestStockValidator:
    def test_consuming_all_stock_passes(self):
        item = SimpleNamespace(id="i", product_name="Maíz", current_stock=Decimal("50"))
        validate_stock_consumption(item, Decimal("50"))

    def test_consuming_more_than_stock_fails(self):
        item = SimpleNamespace(id="i", product_name="Maíz", current_stock=Decimal("0"))
        with pytest.raises(InsufficientStock) as exc:
            validate_stock_consumption(item, Decimal("1"))
        assert exc.value.product_name == "Maíz"
        assert exc.value.available == Decimal("0")


class TestPopulationLifecycle:
    def test_removing_to_zero_finalizes(self):
        after = remove_population(snapshot(current=100), 100, NOW)
        assert after.current_population == 0
        assert after.active is False
        assert after.finalization_date == NOW

    def test_partial_removal_stays_active(self):
        after = remove_population(snapshot(current=100), 40, NOW)
        assert after.current_population == 60
        assert after.active is True
        assert after.finalization_date is None

    def test_restore_reactivates_and_clears_date(self):
        closed = snapshot(current=0, finalization_date=EARLIER)
        after = restore_population(closed, 100, NOW)
        assert after.current_population == 100
        assert after.active is True
        assert after.finalization_date is None

    def test_restore_beyond_initial_is_refused(self):
        with pytest.raises(ValidationError):
            restore_population(snapshot(current=90, initial=100), 11, NOW)

    def test_validate_population_restore_boundary(self):
        validate_population_restore(snapshot(current=90, initial=100), 10)
        with pytest.raises(ValidationError):
            validate_population_restore(snapshot(current=90, initial=100), 11)

    def test_finalized_batch_keeps_original_date_at_zero(self):
        closed = snapshot(current=0, finalization_date=EARLIER)
        after = apply_population_delta(closed, 0, NOW)
        assert after.finalization_date == EARLIER

    def test_apply_population_delta_signs(self):
        assert apply_population_delta(snapshot(current=50), -20, NOW).current_population == 30
        assert apply_population_delta(snapshot(current=50), 20, NOW).current_population == 70

    def test_apply_population_delta_debit_over_population_fails(self):
        with pytest.raises(InsufficientPopulation):
            apply_population_delta(snapshot(current=5), -6, NOW)

    def test_snapshot_of_orm_like_batch(self):
        batch = SimpleNamespace(
            id="b",
            initial_population=10,
            current_population=4,
            active=True,
            finalization_date=None,
        )
        state = PopulationSnapshot.of(batch)
        assert state.current_population == 4
        assert state.initial_population == 10
