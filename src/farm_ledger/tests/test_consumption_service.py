"""
Tests for consumptions: stock debit plus derived batch-consumption expense.
"""

from decimal import Decimal

import pytest

from farm_ledger.models import ExpenseCategory, ExpenseRecord, InventoryItem
from farm_ledger.services import consumption_service, expense_service
from farm_ledger.services.exceptions import (
    BatchNotFound,
    InsufficientStock,
    InventoryItemNotFound,
    ValidationError,
)


class TestRecordConsumption:
    def test_consuming_all_stock_creates_derived_expense(self, sample_batch, feed_item, load):
        consumption = consumption_service.record_consumption(
            sample_batch.id, feed_item.id, 50, consumption_date="2025-03-05"
        )

        assert load(InventoryItem, feed_item.id).current_stock == Decimal("0")
        assert consumption.unit_price == Decimal("2.00")
        assert consumption.total_cost == Decimal("100.00")

        expense = load(ExpenseRecord, consumption.expense_id)
        assert expense.category == ExpenseCategory.BATCH_CONSUMPTION
        assert expense.amount == Decimal("100.00")
        assert expense.concept == "Consumo: Concentrado inicio"
        assert expense.batch_id == sample_batch.id

        with pytest.raises(InsufficientStock) as exc:
            consumption_service.record_consumption(sample_batch.id, feed_item.id, 1)
        assert exc.value.available == Decimal("0")

    def test_quantity_is_rounded_before_the_stock_check(self, sample_batch, feed_item, load):
        consumption = consumption_service.record_consumption(sample_batch.id, feed_item.id, "49.9996")

        assert consumption.quantity == Decimal("50.000")
        assert load(InventoryItem, feed_item.id).current_stock == Decimal("0")
        assert load(ExpenseRecord, consumption.expense_id).amount == Decimal("100.00")

    def test_failed_consumption_writes_nothing(self, sample_batch, feed_item, load):
        with pytest.raises(InsufficientStock):
            consumption_service.record_consumption(sample_batch.id, feed_item.id, "50.5")

        assert load(InventoryItem, feed_item.id).current_stock == Decimal("50")
        assert consumption_service.list_consumptions(sample_batch.id) == []
        assert expense_service.list_expenses(category=ExpenseCategory.BATCH_CONSUMPTION) == []

    def test_unit_price_is_snapshotted(self, sample_batch, feed_item):
        first = consumption_service.record_consumption(sample_batch.id, feed_item.id, 10)
        expense_service.record_expense(
            {
                "concept": "Compra concentrado",
                "category": "INVESTMENT",
                "inventory_item_id": feed_item.id,
                "quantity": 10,
                "unit_price": "3.00",
            }
        )

        second = consumption_service.record_consumption(sample_batch.id, feed_item.id, 10)

        assert first.unit_price == Decimal("2.00")
        assert second.unit_price == Decimal("3.00")

    def test_replayed_record_id(self, sample_batch, feed_item, load):
        consumption_service.record_consumption(sample_batch.id, feed_item.id, 5, record_id="c-1")
        consumption_service.record_consumption(sample_batch.id, feed_item.id, 5, record_id="c-1")

        assert load(InventoryItem, feed_item.id).current_stock == Decimal("45")
        assert len(expense_service.list_expenses(batch_id=sample_batch.id)) == 1

    def test_missing_item(self, sample_batch):
        with pytest.raises(InventoryItemNotFound):
            consumption_service.record_consumption(sample_batch.id, "missing", 1)

    def test_missing_batch(self, feed_item):
        with pytest.raises(BatchNotFound):
            consumption_service.record_consumption("missing", feed_item.id, 1)

    def test_quantity_must_be_positive(self, sample_batch, feed_item):
        with pytest.raises(ValidationError):
            consumption_service.record_consumption(sample_batch.id, feed_item.id, 0)

    def test_derived_expense_cannot_be_deleted(self, sample_batch, feed_item):
        consumption = consumption_service.record_consumption(sample_batch.id, feed_item.id, 5)
        with pytest.raises(ValidationError):
            expense_service.delete_expense(consumption.expense_id)
