"""Reporting Service - derived financial figures and KPIs.

Read-only folds over the ledger. Nothing here writes or enforces
invariants; the figures are computed from full scans, which is fine at a
single farm's data volume.

Financial summary:
    total_income       = sum(sale.total)
    operating_expenses = sum(expense.amount) for OPERATING
    investment         = sum(expense.amount) for INVESTMENT
    cash_on_hand       = total_income - (operating_expenses + investment)
    inventory_value    = sum(item.current_stock * item.unit_price)
    net_worth          = cash_on_hand + inventory_value
    operating_profit   = total_income - operating_expenses - consumption_cost

BATCH_CONSUMPTION expenses are a cost (consumption_cost) but never a cash
outflow: the cash already left with the INVESTMENT purchase.
"""

from dataclasses import asdict, dataclass
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ..models import (
    Batch,
    ConsumptionRecord,
    DailyLogRecord,
    ExpenseCategory,
    ExpenseRecord,
    InventoryItem,
    SaleRecord,
)
from ..utils.constants import ZERO
from ..utils.datetime_utils import today as current_date
from .exceptions import BatchNotFound
from .ledger_store import fetch, run_query

HUNDRED = Decimal("100")


@dataclass(frozen=True)
class FinancialSummary:
    """Cash-flow and balance-sheet figures for the whole farm."""

    total_income: Decimal
    operating_expenses: Decimal
    investment: Decimal
    consumption_cost: Decimal
    cash_on_hand: Decimal
    inventory_value: Decimal
    net_worth: Decimal
    operating_profit: Decimal
    operating_margin: Decimal
    total_batches: int
    total_initial_birds: int

    @property
    def total_cash_outflow(self) -> Decimal:
        return self.operating_expenses + self.investment

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _sum(values) -> Decimal:
    return sum((Decimal(value or 0) for value in values), ZERO)


def summarize(
    sales: List[SaleRecord],
    expenses: List[ExpenseRecord],
    items: List[InventoryItem],
    batches: Optional[List[Batch]] = None,
) -> FinancialSummary:
    """Fold already-loaded records into a FinancialSummary."""
    batches = batches or []
    total_income = _sum(sale.total for sale in sales)

    investment = _sum(e.amount for e in expenses if e.category == ExpenseCategory.INVESTMENT)
    consumption_cost = _sum(
        e.amount for e in expenses if e.category == ExpenseCategory.BATCH_CONSUMPTION
    )
    # Anything not classified as investment or consumption is operating
    operating_expenses = _sum(
        e.amount
        for e in expenses
        if e.category not in (ExpenseCategory.INVESTMENT, ExpenseCategory.BATCH_CONSUMPTION)
    )

    cash_on_hand = total_income - (operating_expenses + investment)
    inventory_value = _sum(item.stock_value for item in items)
    operating_profit = total_income - operating_expenses - consumption_cost
    if total_income > 0:
        operating_margin = (operating_profit / total_income * HUNDRED).quantize(Decimal("0.01"))
    else:
        operating_margin = ZERO

    return FinancialSummary(
        total_income=total_income,
        operating_expenses=operating_expenses,
        investment=investment,
        consumption_cost=consumption_cost,
        cash_on_hand=cash_on_hand,
        inventory_value=inventory_value,
        net_worth=cash_on_hand + inventory_value,
        operating_profit=operating_profit,
        operating_margin=operating_margin,
        total_batches=len(batches),
        total_initial_birds=sum(batch.initial_population for batch in batches),
    )


def get_financial_summary() -> FinancialSummary:
    """Compute the farm-wide financial summary from the ledger."""

    def _impl(sess: Session) -> FinancialSummary:
        return summarize(
            sales=sess.query(SaleRecord).all(),
            expenses=sess.query(ExpenseRecord).all(),
            items=sess.query(InventoryItem).all(),
            batches=sess.query(Batch).all(),
        )

    return run_query("get_financial_summary", _impl)


def get_global_kpis(on_date: Optional[date] = None) -> Dict[str, Any]:
    """
    Dashboard KPIs.

    Returns:
        Dict with total_birds (live birds in active batches), active_batches
        and eggs_today (eggs recorded in daily logs dated on_date)
    """
    on_date = on_date or current_date()

    def _impl(sess: Session) -> Dict[str, Any]:
        active = sess.query(Batch).filter(Batch.active.is_(True)).all()
        logs = sess.query(DailyLogRecord).filter(DailyLogRecord.log_date == on_date).all()
        return {
            "total_birds": sum(batch.current_population for batch in active),
            "active_batches": len(active),
            "eggs_today": sum(log.eggs_total or 0 for log in logs),
        }

    return run_query("get_global_kpis", _impl)


def get_batch_summary(batch_id: str) -> Dict[str, Any]:
    """
    Per-batch production and cost figures.

    Raises:
        BatchNotFound: If the batch does not exist
    """

    def _impl(sess: Session) -> Dict[str, Any]:
        batch = fetch(sess, Batch, batch_id, BatchNotFound)
        logs = sess.query(DailyLogRecord).filter(DailyLogRecord.batch_id == batch_id).all()
        sales = sess.query(SaleRecord).filter(SaleRecord.batch_id == batch_id).all()
        consumptions = (
            sess.query(ConsumptionRecord).filter(ConsumptionRecord.batch_id == batch_id).all()
        )

        mortality = sum(log.mortality_count for log in logs)
        birds_sold = sum(sale.quantity for sale in sales)
        income = _sum(sale.total for sale in sales)
        consumption_cost = _sum(c.total_cost for c in consumptions)
        chick_cost = Decimal(batch.purchase_unit_price or 0) * batch.initial_population
        mortality_rate = (
            (Decimal(mortality) / batch.initial_population * HUNDRED).quantize(Decimal("0.01"))
            if batch.initial_population
            else ZERO
        )
        return {
            "batch_id": batch.id,
            "name": batch.name,
            "initial_population": batch.initial_population,
            "current_population": batch.current_population,
            "active": batch.active,
            "mortality": mortality,
            "mortality_rate": mortality_rate,
            "birds_sold": birds_sold,
            "income": income,
            "feed_consumed_kg": _sum(log.feed_consumed_kg for log in logs),
            "eggs_total": sum(log.eggs_total or 0 for log in logs),
            "consumption_cost": consumption_cost,
            "chick_cost": chick_cost,
            "gross_margin": income - consumption_cost - chick_cost,
        }

    return run_query("get_batch_summary", _impl)


def get_low_stock_items() -> List[InventoryItem]:
    """Inventory items at or below their reorder threshold."""

    def _impl(sess: Session) -> List[InventoryItem]:
        items = sess.query(InventoryItem).order_by(InventoryItem.product_name).all()
        return [item for item in items if item.is_below_minimum]

    return run_query("get_low_stock_items", _impl)
