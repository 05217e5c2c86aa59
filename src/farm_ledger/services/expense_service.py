"""Expense Service - the expense ledger.

OPERATING expenses are plain ledger entries. INVESTMENT expenses that
reference an inventory item are supply purchases: recording one credits the
item's stock and overwrites its unit price with the purchase price, in the
same transaction. BATCH_CONSUMPTION expenses are only ever written by
consumption_service.record_consumption and cannot be recorded or deleted
here.
"""

import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ..models import ExpenseCategory, ExpenseRecord, InventoryItem
from ..models.base import new_id
from ..utils.constants import MAX_CONCEPT_LENGTH
from ..utils.datetime_utils import today
from ..utils.validators import (
    parse_choice,
    parse_money,
    parse_quantity,
    parse_record_date,
    round_money,
    validate_all,
    validate_required_string,
    validate_string_length,
)
from .domain_validators import validate_stock_consumption
from .exceptions import InsufficientStock, InventoryItemNotFound, RecordNotFound, ValidationError
from .ledger_store import fetch, find_replayed, run_atomic, run_query
from .logging_utils import get_service_logger, log_operation
from .session_context import SessionContext, owner_of

logger = get_service_logger(__name__)

# Category names used by older clients
CATEGORY_ALIASES = {
    "GASTO_OPERATIVO": ExpenseCategory.OPERATING,
    "COMPRA_INSUMO": ExpenseCategory.INVESTMENT,
    "CONSUMO_LOTE": ExpenseCategory.BATCH_CONSUMPTION,
}


def parse_category(value: Any) -> ExpenseCategory:
    """Resolve an expense category, accepting legacy names."""
    if isinstance(value, str) and value.strip().upper() in CATEGORY_ALIASES:
        return CATEGORY_ALIASES[value.strip().upper()]
    return parse_choice(value, ExpenseCategory, "Category")


def _parse_expense(data: Dict[str, Any]) -> Dict[str, Any]:
    """Validate expense input into model field values."""
    concept, category, expense_date, amount, quantity, unit_price = validate_all(
        lambda: validate_string_length(
            validate_required_string(data.get("concept"), "Concept"), MAX_CONCEPT_LENGTH, "Concept"
        ),
        lambda: parse_category(data.get("category", ExpenseCategory.OPERATING)),
        lambda: parse_record_date(data.get("expense_date"), "Expense date", default=today()),
        lambda: parse_money(data.get("amount"), "Amount", required=False),
        lambda: parse_quantity(data.get("quantity"), "Quantity", positive=True, required=False),
        lambda: parse_money(data.get("unit_price"), "Unit price", required=False),
    )

    if category == ExpenseCategory.BATCH_CONSUMPTION:
        raise ValidationError("Batch consumption expenses are recorded through consumptions")

    inventory_item_id = data.get("inventory_item_id") or None
    if category == ExpenseCategory.INVESTMENT and inventory_item_id:
        errors = []
        if quantity is None:
            errors.append("Quantity: required for a supply purchase")
        if unit_price is None:
            errors.append("Unit price: required for a supply purchase")
        if errors:
            raise ValidationError(errors)
        if amount is None:
            amount = round_money(quantity * unit_price)
    elif category == ExpenseCategory.OPERATING:
        # Operating expenses never move stock
        inventory_item_id = None
    if amount is None:
        raise ValidationError("Amount: This field is required")

    return {
        "concept": concept,
        "category": category,
        "amount": amount,
        "expense_date": expense_date,
        "batch_id": data.get("batch_id") or None,
        "inventory_item_id": inventory_item_id,
        "quantity": quantity,
        "unit_price": unit_price,
        "payment_method": data.get("payment_method") or None,
    }


def record_expense(
    expense_data: Dict[str, Any],
    context: Optional[SessionContext] = None,
    record_id: Optional[str] = None,
    session: Optional[Session] = None,
) -> ExpenseRecord:
    """
    Record an expense.

    Args:
        expense_data: Dictionary with concept, category, amount, expense_date
            and optionally batch_id, inventory_item_id, quantity, unit_price,
            payment_method. An INVESTMENT with an item requires quantity and
            unit_price; amount then defaults to quantity * unit_price.
        context: Session context of the recording user
        record_id: Client-chosen id; replaying the same id is a no-op
        session: Optional session for transactional composition

    Returns:
        The written (or previously written) ExpenseRecord

    Raises:
        ValidationError: If inputs are malformed
        InventoryItemNotFound: If a purchase references a missing item
    """
    fields = _parse_expense(expense_data)
    owner_id = owner_of(context)
    replayed = []

    def _impl(sess: Session) -> ExpenseRecord:
        existing = find_replayed(sess, ExpenseRecord, record_id)
        if existing is not None:
            replayed.append(existing.id)
            return existing

        item = None
        if fields["category"] == ExpenseCategory.INVESTMENT and fields["inventory_item_id"]:
            item = fetch(sess, InventoryItem, fields["inventory_item_id"], InventoryItemNotFound)

        expense = ExpenseRecord(id=record_id or new_id(), owner_id=owner_id, **fields)
        sess.add(expense)
        if item is not None:
            item.current_stock = Decimal(item.current_stock) + fields["quantity"]
            item.unit_price = fields["unit_price"]
        sess.flush()
        return expense

    expense = run_atomic("record_expense", _impl, session=session)
    log_operation(
        logger,
        operation="record_expense",
        outcome="already_applied" if replayed else "success",
        record_id=expense.id,
        category=expense.category.value,
        amount=str(expense.amount),
        inventory_item_id=expense.inventory_item_id,
    )
    return expense


def delete_expense(
    record_id: str,
    context: Optional[SessionContext] = None,
    session: Optional[Session] = None,
) -> None:
    """
    Delete an expense.

    Deleting a supply purchase takes its quantity back out of stock; the
    item's unit price is left as it is.

    Raises:
        RecordNotFound: If the expense does not exist
        ValidationError: If the expense was derived from a consumption
        InsufficientStock: If the purchased stock has already been consumed
    """

    def _impl(sess: Session) -> ExpenseRecord:
        expense = fetch(sess, ExpenseRecord, record_id, lambda rid: RecordNotFound("Expense", rid))
        if expense.category == ExpenseCategory.BATCH_CONSUMPTION:
            raise ValidationError("Batch consumption expenses cannot be deleted on their own")

        if (
            expense.category == ExpenseCategory.INVESTMENT
            and expense.inventory_item_id
            and expense.quantity
        ):
            item = sess.get(InventoryItem, expense.inventory_item_id)
            if item is not None:
                quantity = Decimal(expense.quantity)
                validate_stock_consumption(item, quantity)
                item.current_stock = Decimal(item.current_stock) - quantity
        sess.delete(expense)
        sess.flush()
        return expense

    try:
        expense = run_atomic("delete_expense", _impl, session=session)
    except InsufficientStock as e:
        log_operation(
            logger,
            operation="delete_expense",
            outcome="insufficient_stock",
            level=logging.WARNING,
            record_id=record_id,
            inventory_item_id=e.inventory_item_id,
            requested=str(e.requested),
            available=str(e.available),
        )
        raise

    log_operation(
        logger,
        operation="delete_expense",
        outcome="success",
        record_id=record_id,
        category=expense.category.value,
        user_id=owner_of(context),
    )


def get_expense(record_id: str) -> ExpenseRecord:
    """Get an expense by id."""
    return run_query(
        "get_expense",
        lambda sess: fetch(sess, ExpenseRecord, record_id, lambda rid: RecordNotFound("Expense", rid)),
    )


def list_expenses(
    batch_id: Optional[str] = None, category: Optional[Any] = None
) -> List[ExpenseRecord]:
    """List expenses, newest first, optionally filtered by batch or category."""
    category = parse_category(category) if category is not None else None

    def _impl(sess: Session) -> List[ExpenseRecord]:
        query = sess.query(ExpenseRecord)
        if batch_id is not None:
            query = query.filter(ExpenseRecord.batch_id == batch_id)
        if category is not None:
            query = query.filter(ExpenseRecord.category == category)
        return query.order_by(ExpenseRecord.expense_date.desc(), ExpenseRecord.created_at.desc()).all()

    return run_query("list_expenses", _impl)
