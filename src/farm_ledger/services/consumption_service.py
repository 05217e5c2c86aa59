"""Consumption Service - supplies used by a batch.

Recording a consumption is one atomic operation with three writes:
1. The ConsumptionRecord, snapshotting the item's current unit price
2. A stock debit on the inventory item
3. A derived BATCH_CONSUMPTION expense ("Consumo: <product>") valued at
   quantity * unit price, attributed to the batch

Consumptions are never edited. The derived expense cannot be deleted on its
own, so stock and cost always move together.
"""

import logging
from decimal import Decimal
from typing import Any, List, Optional

from sqlalchemy.orm import Session

from ..models import Batch, ConsumptionRecord, ExpenseRecord, ExpenseCategory, InventoryItem
from ..models.base import new_id
from ..utils.constants import CONSUMPTION_EXPENSE_PREFIX, MAX_CONCEPT_LENGTH
from ..utils.datetime_utils import today
from ..utils.validators import (
    parse_quantity,
    parse_record_date,
    round_money,
    validate_all,
    validate_required_string,
)
from .domain_validators import validate_stock_consumption
from .exceptions import BatchNotFound, InsufficientStock, InventoryItemNotFound
from .ledger_store import fetch, find_replayed, run_atomic, run_query
from .logging_utils import get_service_logger, log_operation
from .session_context import SessionContext, owner_of

logger = get_service_logger(__name__)


def record_consumption(
    batch_id: str,
    inventory_item_id: str,
    quantity: Any,
    consumption_date=None,
    context: Optional[SessionContext] = None,
    record_id: Optional[str] = None,
    session: Optional[Session] = None,
) -> ConsumptionRecord:
    """
    Record that a batch consumed a quantity of an inventory item.

    Args:
        batch_id: Consuming batch
        inventory_item_id: Supply consumed
        quantity: Quantity in the item's unit (> 0)
        consumption_date: Defaults to today
        context: Session context of the recording user
        record_id: Client-chosen id; replaying the same id is a no-op
        session: Optional session for transactional composition

    Returns:
        The ConsumptionRecord; its expense_id points at the derived expense

    Raises:
        ValidationError: If inputs are malformed
        BatchNotFound: If the batch does not exist
        InventoryItemNotFound: If the item does not exist
        InsufficientStock: If quantity exceeds the stock on hand
        ConcurrencyConflict: If retries are exhausted

    Example:
        >>> consumption = record_consumption(batch.id, feed.id, "50")
        >>> consumption.total_cost
        Decimal('100.00')
    """
    batch_id, inventory_item_id, quantity, consumption_date = validate_all(
        lambda: validate_required_string(batch_id, "Batch"),
        lambda: validate_required_string(inventory_item_id, "Inventory item"),
        lambda: parse_quantity(quantity, "Quantity", positive=True),
        lambda: parse_record_date(consumption_date, "Consumption date", default=today()),
    )
    owner_id = owner_of(context)
    replayed = []

    def _impl(sess: Session) -> ConsumptionRecord:
        existing = find_replayed(sess, ConsumptionRecord, record_id)
        if existing is not None:
            replayed.append(existing.id)
            return existing

        fetch(sess, Batch, batch_id, BatchNotFound)
        item = fetch(sess, InventoryItem, inventory_item_id, InventoryItemNotFound)
        validate_stock_consumption(item, quantity)

        unit_price = Decimal(item.unit_price or 0)
        concept = f"{CONSUMPTION_EXPENSE_PREFIX}{item.product_name}"[:MAX_CONCEPT_LENGTH]
        expense = ExpenseRecord(
            id=new_id(),
            concept=concept,
            category=ExpenseCategory.BATCH_CONSUMPTION,
            amount=round_money(quantity * unit_price),
            expense_date=consumption_date,
            batch_id=batch_id,
            inventory_item_id=item.id,
            quantity=quantity,
            unit_price=unit_price,
            owner_id=owner_id,
        )
        sess.add(expense)
        # The consumption references the expense row
        sess.flush()

        consumption = ConsumptionRecord(
            id=record_id or new_id(),
            batch_id=batch_id,
            inventory_item_id=item.id,
            quantity=quantity,
            unit_price=unit_price,
            consumption_date=consumption_date,
            expense_id=expense.id,
            owner_id=owner_id,
        )
        sess.add(consumption)
        item.current_stock = Decimal(item.current_stock) - quantity
        sess.flush()
        return consumption

    try:
        consumption = run_atomic("record_consumption", _impl, session=session)
    except InsufficientStock as e:
        log_operation(
            logger,
            operation="record_consumption",
            outcome="insufficient_stock",
            level=logging.WARNING,
            inventory_item_id=e.inventory_item_id,
            requested=str(e.requested),
            available=str(e.available),
        )
        raise

    log_operation(
        logger,
        operation="record_consumption",
        outcome="already_applied" if replayed else "success",
        record_id=consumption.id,
        batch_id=consumption.batch_id,
        inventory_item_id=consumption.inventory_item_id,
        quantity=str(consumption.quantity),
    )
    return consumption


def list_consumptions(
    batch_id: Optional[str] = None, inventory_item_id: Optional[str] = None
) -> List[ConsumptionRecord]:
    """List consumptions, newest first, optionally filtered by batch or item."""

    def _impl(sess: Session) -> List[ConsumptionRecord]:
        query = sess.query(ConsumptionRecord)
        if batch_id is not None:
            query = query.filter(ConsumptionRecord.batch_id == batch_id)
        if inventory_item_id is not None:
            query = query.filter(ConsumptionRecord.inventory_item_id == inventory_item_id)
        return query.order_by(
            ConsumptionRecord.consumption_date.desc(), ConsumptionRecord.created_at.desc()
        ).all()

    return run_query("list_consumptions", _impl)
