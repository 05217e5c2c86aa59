"""
Tests for financial summaries and KPIs.
"""

from datetime import date
from decimal import Decimal

import pytest

from farm_ledger.services import (
    batch_service,
    consumption_service,
    daily_log_service,
    expense_service,
    reporting_service,
    sale_service,
)
from farm_ledger.services.exceptions import BatchNotFound


@pytest.fixture
def farm_activity(sample_batch, feed_item):
    """A sale, an operating expense, a purchase and a consumption."""
    daily_log_service.record_daily_log(sample_batch.id, mortality_count=5, feed_consumed_kg="12.5")
    sale_service.record_sale(sample_batch.id, 20, "5.00", "Carlos", "EFECTIVO")
    expense_service.record_expense({"concept": "Luz", "category": "OPERATING", "amount": "20"})
    expense_service.record_expense(
        {
            "concept": "Compra concentrado",
            "category": "INVESTMENT",
            "inventory_item_id": feed_item.id,
            "quantity": 10,
            "unit_price": "2.00",
        }
    )
    consumption_service.record_consumption(sample_batch.id, feed_item.id, 15)
    return sample_batch


class TestFinancialSummary:
    def test_figures(self, farm_activity):
        summary = reporting_service.get_financial_summary()

        assert summary.total_income == Decimal("100")
        assert summary.operating_expenses == Decimal("20")
        assert summary.investment == Decimal("20")
        assert summary.consumption_cost == Decimal("30")
        assert summary.total_cash_outflow == Decimal("40")
        assert summary.cash_on_hand == Decimal("60")
        assert summary.inventory_value == Decimal("90")
        assert summary.net_worth == Decimal("150")
        assert summary.operating_profit == Decimal("50")
        assert summary.operating_margin == Decimal("50.00")
        assert summary.total_batches == 1
        assert summary.total_initial_birds == 100

    def test_no_income_means_zero_margin(self):
        summary = reporting_service.summarize(sales=[], expenses=[], items=[])
        assert summary.operating_margin == Decimal("0")
        assert summary.net_worth == Decimal("0")
        assert summary.to_dict()["total_batches"] == 0


class TestBatchSummary:
    def test_figures(self, farm_activity):
        summary = reporting_service.get_batch_summary(farm_activity.id)

        assert summary["current_population"] == 75
        assert summary["mortality"] == 5
        assert summary["mortality_rate"] == Decimal("5.00")
        assert summary["birds_sold"] == 20
        assert summary["income"] == Decimal("100")
        assert summary["feed_consumed_kg"] == Decimal("12.5")
        assert summary["consumption_cost"] == Decimal("30")
        assert summary["chick_cost"] == Decimal("150")
        assert summary["gross_margin"] == Decimal("-80")

    def test_missing_batch(self, test_db):
        with pytest.raises(BatchNotFound):
            reporting_service.get_batch_summary("missing")


class TestKpis:
    def test_global_kpis(self, sample_batch, layer_batch):
        daily_log_service.record_daily_log(layer_batch.id, log_date="2025-03-01", eggs_total=150)
        daily_log_service.record_daily_log(layer_batch.id, log_date="2025-02-28", eggs_total=90)
        closed = batch_service.create_batch(name="Cerrado", initial_population=5)
        sale_service.record_sale(closed.id, 5, "5", "Carlos", "EFECTIVO")

        kpis = reporting_service.get_global_kpis(on_date=date(2025, 3, 1))

        assert kpis == {"total_birds": 300, "active_batches": 2, "eggs_today": 150}

    def test_low_stock(self, sample_batch, feed_item):
        assert reporting_service.get_low_stock_items() == []

        consumption_service.record_consumption(sample_batch.id, feed_item.id, 45)

        assert [i.id for i in reporting_service.get_low_stock_items()] == [feed_item.id]
