"""Inventory Service - supply items in the store room.

Items are created and edited directly. Day-to-day stock movements go
through the consistency operations instead: purchases (INVESTMENT expenses)
credit stock and consumptions debit it. A direct edit of current_stock is a
manual count correction and is logged as such.
"""

from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ..models import ConsumptionRecord, InventoryItem, InventoryType
from ..models.base import new_id
from ..utils.constants import MAX_NAME_LENGTH, MAX_UNIT_LENGTH
from ..utils.datetime_utils import utc_now
from ..utils.validators import (
    parse_choice,
    parse_money,
    parse_quantity,
    validate_all,
    validate_required_string,
    validate_string_length,
)
from .exceptions import InventoryItemNotFound, ValidationError
from .ledger_store import fetch, find_replayed, run_atomic, run_query
from .logging_utils import get_service_logger, log_operation

logger = get_service_logger(__name__)

_PARSERS = {
    "product_name": lambda v: validate_string_length(
        validate_required_string(v, "Product name"), MAX_NAME_LENGTH, "Product name"
    ),
    "item_type": lambda v: parse_choice(v, InventoryType, "Item type"),
    "current_stock": lambda v: parse_quantity(v, "Current stock"),
    "min_stock": lambda v: parse_quantity(v, "Minimum stock"),
    "unit": lambda v: validate_string_length(
        validate_required_string(v, "Unit"), MAX_UNIT_LENGTH, "Unit"
    ).upper(),
    "unit_price": lambda v: parse_money(v, "Unit price"),
    "supplier": lambda v: validate_string_length(v or None, MAX_NAME_LENGTH, "Supplier"),
}


def _parse_fields(data: Dict[str, Any]) -> Dict[str, Any]:
    unknown = sorted(set(data) - set(_PARSERS))
    if unknown:
        raise ValidationError(f"Unknown inventory fields: {', '.join(unknown)}")
    keys = list(data)
    values = validate_all(*[lambda key=key: _PARSERS[key](data[key]) for key in keys])
    return dict(zip(keys, values))


def create_item(
    product_name: str,
    unit: str,
    item_type: Any = InventoryType.OTHER,
    current_stock: Any = 0,
    min_stock: Any = 0,
    unit_price: Any = 0,
    supplier: Optional[str] = None,
    record_id: Optional[str] = None,
    session: Optional[Session] = None,
) -> InventoryItem:
    """
    Create an inventory item.

    Args:
        product_name: Supply name
        unit: Unit of measure, stored upper-case (KG, BULTO, ML, ...)
        item_type: FEED, MEDICINE, VACCINE, DISINFECTANT or OTHER
        current_stock: Opening stock
        min_stock: Reorder threshold
        unit_price: Price per unit
        supplier: Optional supplier name
        record_id: Client-chosen id; creating the same id twice is a no-op
        session: Optional session for transactional composition

    Raises:
        ValidationError: If inputs are malformed
    """
    fields = _parse_fields(
        {
            "product_name": product_name,
            "unit": unit,
            "item_type": item_type,
            "current_stock": current_stock,
            "min_stock": min_stock,
            "unit_price": unit_price,
            "supplier": supplier,
        }
    )

    def _impl(sess: Session) -> InventoryItem:
        existing = find_replayed(sess, InventoryItem, record_id)
        if existing is not None:
            return existing
        item = InventoryItem(id=record_id or new_id(), **fields)
        sess.add(item)
        sess.flush()
        return item

    item = run_atomic("create_item", _impl, session=session)
    log_operation(
        logger,
        operation="create_item",
        outcome="success",
        inventory_item_id=item.id,
        product_name=item.product_name,
    )
    return item


def update_item(
    inventory_item_id: str,
    changes: Dict[str, Any],
    session: Optional[Session] = None,
) -> InventoryItem:
    """
    Edit an inventory item.

    Raises:
        InventoryItemNotFound: If the item does not exist
        ValidationError: If inputs are malformed
    """
    fields = _parse_fields(dict(changes))
    adjustments = []

    def _impl(sess: Session) -> InventoryItem:
        item = fetch(sess, InventoryItem, inventory_item_id, InventoryItemNotFound)
        if "current_stock" in fields and fields["current_stock"] != Decimal(item.current_stock):
            adjustments.append((Decimal(item.current_stock), fields["current_stock"]))
        for key, value in fields.items():
            setattr(item, key, value)
        item.updated_at = utc_now()
        sess.flush()
        return item

    item = run_atomic("update_item", _impl, session=session)
    for previous, counted in adjustments:
        log_operation(
            logger,
            operation="update_item",
            outcome="stock_adjusted",
            inventory_item_id=item.id,
            previous_stock=str(previous),
            counted_stock=str(counted),
        )
    return item


def delete_item(inventory_item_id: str, session: Optional[Session] = None) -> None:
    """
    Delete an inventory item that no batch has consumed.

    Raises:
        InventoryItemNotFound: If the item does not exist
        ValidationError: If consumptions reference the item
    """

    def _impl(sess: Session) -> None:
        item = fetch(sess, InventoryItem, inventory_item_id, InventoryItemNotFound)
        used = (
            sess.query(ConsumptionRecord)
            .filter(ConsumptionRecord.inventory_item_id == inventory_item_id)
            .count()
        )
        if used:
            raise ValidationError(
                f"Cannot delete '{item.product_name}': it is referenced by {used} consumption(s)"
            )
        sess.delete(item)
        sess.flush()

    run_atomic("delete_item", _impl, session=session)
    log_operation(logger, operation="delete_item", outcome="success", inventory_item_id=inventory_item_id)


def get_item(inventory_item_id: str) -> InventoryItem:
    """Get an inventory item by id."""
    return run_query(
        "get_item",
        lambda sess: fetch(sess, InventoryItem, inventory_item_id, InventoryItemNotFound),
    )


def list_items(item_type: Optional[Any] = None) -> List[InventoryItem]:
    """List inventory items ordered by product name, optionally of one type."""
    item_type = parse_choice(item_type, InventoryType, "Item type") if item_type is not None else None

    def _impl(sess: Session) -> List[InventoryItem]:
        query = sess.query(InventoryItem)
        if item_type is not None:
            query = query.filter(InventoryItem.item_type == item_type)
        return query.order_by(InventoryItem.product_name).all()

    return run_query("list_items", _impl)
