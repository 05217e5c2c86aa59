"""
Tests for health treatments and the inventory they consume.
"""

from datetime import date
from decimal import Decimal

import pytest

from farm_ledger.models import (
    ExpenseCategory,
    ExpenseRecord,
    HealthTreatmentRecord,
    InventoryItem,
    InventoryType,
    OperationType,
)
from farm_ledger.services import (
    consumption_service,
    expense_service,
    health_service,
    inventory_service,
    outbox_service,
)
from farm_ledger.services.exceptions import BatchNotFound, InsufficientStock, ValidationError


@pytest.fixture
def vaccine(test_db):
    """Ten doses of Newcastle vaccine at 4.50 each."""
    return inventory_service.create_item(
        product_name="Vacuna Newcastle",
        unit="dosis",
        item_type=InventoryType.VACCINE,
        current_stock=Decimal("10"),
        min_stock=Decimal("2"),
        unit_price=Decimal("4.50"),
    )


class TestApplyHealthTreatment:
    def test_product_is_consumed_from_inventory(self, sample_batch, vaccine, load, operator_context):
        treatment = health_service.apply_health_treatment(
            sample_batch.id,
            "Vacunación día 7",
            inventory_item_id=vaccine.id,
            quantity="2",
            dose="1 gota/ave",
            route="ocular",
            treatment_date="2025-03-07",
            context=operator_context,
        )

        stored = load(HealthTreatmentRecord, treatment.id)
        assert stored.product == "Vacuna Newcastle"
        assert stored.quantity == Decimal("2")
        assert stored.cost == Decimal("9.00")
        assert stored.treatment_date == date(2025, 3, 7)
        assert stored.owner_id == "galponero-1"
        assert load(InventoryItem, vaccine.id).current_stock == Decimal("8")

        [consumption] = consumption_service.list_consumptions(sample_batch.id)
        assert consumption.id == stored.consumption_id
        expense = load(ExpenseRecord, consumption.expense_id)
        assert expense.category == ExpenseCategory.BATCH_CONSUMPTION
        assert expense.amount == Decimal("9.00")

    def test_quantity_defaults_to_one_unit(self, sample_batch, vaccine, load):
        treatment = health_service.apply_health_treatment(
            sample_batch.id, "Refuerzo", inventory_item_id=vaccine.id
        )

        assert treatment.cost == Decimal("4.50")
        assert load(InventoryItem, vaccine.id).current_stock == Decimal("9")

    def test_without_inventory_item_costs_nothing(self, sample_batch):
        treatment = health_service.apply_health_treatment(
            sample_batch.id, "Desparasitación", product="Remedio casero"
        )

        assert treatment.cost == Decimal("0")
        assert treatment.consumption_id is None
        assert consumption_service.list_consumptions(sample_batch.id) == []

    def test_insufficient_stock_writes_nothing(self, sample_batch, vaccine, load):
        with pytest.raises(InsufficientStock):
            health_service.apply_health_treatment(
                sample_batch.id, "Vacunación", inventory_item_id=vaccine.id, quantity=11
            )

        assert health_service.list_health_treatments(sample_batch.id) == []
        assert load(InventoryItem, vaccine.id).current_stock == Decimal("10")
        assert expense_service.list_expenses(category=ExpenseCategory.BATCH_CONSUMPTION) == []

    def test_item_must_be_a_health_supply(self, sample_batch, feed_item, load):
        with pytest.raises(ValidationError):
            health_service.apply_health_treatment(
                sample_batch.id, "Vacunación", inventory_item_id=feed_item.id
            )
        assert load(InventoryItem, feed_item.id).current_stock == Decimal("50")

    def test_quantity_needs_an_inventory_item(self, sample_batch):
        with pytest.raises(ValidationError):
            health_service.apply_health_treatment(sample_batch.id, "Vacunación", quantity=1)

    def test_activity_is_required(self, sample_batch):
        with pytest.raises(ValidationError):
            health_service.apply_health_treatment(sample_batch.id, "  ")

    def test_missing_batch(self, vaccine, load):
        with pytest.raises(BatchNotFound):
            health_service.apply_health_treatment("missing", "Vacunación", inventory_item_id=vaccine.id)
        assert load(InventoryItem, vaccine.id).current_stock == Decimal("10")

    def test_replayed_record_id(self, sample_batch, vaccine, load):
        first = health_service.apply_health_treatment(
            sample_batch.id, "Vacunación", inventory_item_id=vaccine.id, record_id="trt-1"
        )
        second = health_service.apply_health_treatment(
            sample_batch.id, "Vacunación", inventory_item_id=vaccine.id, record_id="trt-1"
        )

        assert first.id == second.id == "trt-1"
        assert load(InventoryItem, vaccine.id).current_stock == Decimal("9")
        assert len(consumption_service.list_consumptions(sample_batch.id)) == 1


class TestListHealthTreatments:
    def test_newest_first_per_batch(self, sample_batch, layer_batch):
        health_service.apply_health_treatment(sample_batch.id, "Gumboro", treatment_date="2025-03-01")
        health_service.apply_health_treatment(sample_batch.id, "Newcastle", treatment_date="2025-03-10")
        health_service.apply_health_treatment(layer_batch.id, "Viruela", treatment_date="2025-03-05")

        assert [t.activity for t in health_service.list_health_treatments(sample_batch.id)] == [
            "Newcastle",
            "Gumboro",
        ]
        assert len(health_service.list_health_treatments()) == 3


class TestHealthTreatmentOutbox:
    def test_queued_treatment_replays_once(self, sample_batch, vaccine, load):
        payload = {
            "batch_id": sample_batch.id,
            "activity": "Vacunación",
            "inventory_item_id": vaccine.id,
            "quantity": Decimal("3"),
            "treatment_date": date(2025, 3, 7),
        }
        outbox_service.enqueue(OperationType.APPLY_HEALTH_TREATMENT, payload, "trt-1")

        assert outbox_service.replay_all().synced == ["trt-1"]
        assert load(HealthTreatmentRecord, "trt-1").cost == Decimal("13.50")

        outbox_service.enqueue(OperationType.APPLY_HEALTH_TREATMENT, payload, "trt-1")
        assert outbox_service.replay_all().synced == ["trt-1"]
        assert load(InventoryItem, vaccine.id).current_stock == Decimal("7")
