"""Sale Service - bird sales and their population side effect.

A sale debits the batch population by its quantity. Edits use the same
revert-then-reapply policy as daily logs: the old quantity is credited back
and the new quantity validated against the reverted population, so a sale
can be raised by as many birds as the batch still has plus the sale's own.
Deleting a sale credits its birds back and reactivates a finalized batch.
"""

import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ..models import Batch, SaleRecord
from ..models.base import new_id
from ..utils.constants import MAX_NAME_LENGTH
from ..utils.datetime_utils import today, utc_now
from ..utils.validators import (
    parse_money,
    parse_int,
    parse_record_date,
    validate_all,
    validate_required_string,
    validate_string_length,
)
from .domain_validators import (
    PopulationSnapshot,
    apply_population,
    apply_population_delta,
    remove_population,
    restore_population,
    validate_sale_quantity,
)
from .exceptions import BatchNotFound, InsufficientPopulation, RecordNotFound, ValidationError
from .ledger_store import fetch, find_replayed, run_atomic, run_query
from .logging_utils import get_service_logger, log_operation
from .session_context import SessionContext, owner_of

logger = get_service_logger(__name__)

_PARSERS = {
    "sale_date": lambda v: parse_record_date(v, "Sale date"),
    "quantity": lambda v: parse_int(v, "Quantity", positive=True),
    "unit_price": lambda v: parse_money(v, "Unit price"),
    "customer": lambda v: validate_string_length(
        validate_required_string(v, "Customer"), MAX_NAME_LENGTH, "Customer"
    ),
    "payment_method": lambda v: validate_required_string(v, "Payment method"),
    "down_payment": lambda v: parse_money(v, "Down payment", required=False) or Decimal("0"),
}


def _parse_fields(data: Dict[str, Any]) -> Dict[str, Any]:
    if "batch_id" in data:
        raise ValidationError("A sale cannot be moved to another batch; delete and record it again")
    unknown = sorted(set(data) - set(_PARSERS))
    if unknown:
        raise ValidationError(f"Unknown sale fields: {', '.join(unknown)}")
    keys = list(data)
    values = validate_all(*[lambda key=key: _PARSERS[key](data[key]) for key in keys])
    return dict(zip(keys, values))


def _check_down_payment(total: Decimal, down_payment: Decimal) -> None:
    if down_payment > total:
        raise ValidationError(f"Down payment ({down_payment}) cannot exceed the sale total ({total})")


def _sale_not_found(record_id: str) -> RecordNotFound:
    return RecordNotFound("Sale", record_id)


def record_sale(
    batch_id: str,
    quantity: Any,
    unit_price: Any,
    customer: str,
    payment_method: str,
    down_payment: Any = None,
    sale_date=None,
    context: Optional[SessionContext] = None,
    record_id: Optional[str] = None,
    session: Optional[Session] = None,
) -> SaleRecord:
    """
    Record a sale of birds from a batch.

    The batch is finalized in the same transaction if the sale takes its
    population to zero.

    Returns:
        The written (or previously written) SaleRecord

    Raises:
        ValidationError: If inputs are malformed or the down payment exceeds the total
        BatchNotFound: If the batch does not exist
        InsufficientPopulation: If quantity exceeds the live population
        ConcurrencyConflict: If retries are exhausted
    """
    batch_id = validate_required_string(batch_id, "Batch")
    fields = _parse_fields(
        {
            "quantity": quantity,
            "unit_price": unit_price,
            "customer": customer,
            "payment_method": payment_method,
            "down_payment": down_payment,
        }
    )
    fields["sale_date"] = parse_record_date(sale_date, "Sale date", default=today())
    total = fields["quantity"] * fields["unit_price"]
    _check_down_payment(total, fields["down_payment"])
    owner_id = owner_of(context)
    replayed = []

    def _impl(sess: Session) -> SaleRecord:
        existing = find_replayed(sess, SaleRecord, record_id)
        if existing is not None:
            replayed.append(existing.id)
            return existing

        batch = fetch(sess, Batch, batch_id, BatchNotFound)
        validate_sale_quantity(batch, fields["quantity"])

        sale = SaleRecord(
            id=record_id or new_id(),
            batch_id=batch_id,
            total=total,
            owner_id=owner_id,
            **fields,
        )
        sess.add(sale)
        after = remove_population(PopulationSnapshot.of(batch), fields["quantity"], utc_now())
        apply_population(batch, after)
        sess.flush()
        return sale

    try:
        sale = run_atomic("record_sale", _impl, session=session)
    except InsufficientPopulation as e:
        log_operation(
            logger,
            operation="record_sale",
            outcome="insufficient_population",
            level=logging.WARNING,
            batch_id=e.batch_id,
            requested=e.requested,
            available=e.available,
        )
        raise

    log_operation(
        logger,
        operation="record_sale",
        outcome="already_applied" if replayed else "success",
        record_id=sale.id,
        batch_id=sale.batch_id,
        quantity=sale.quantity,
    )
    return sale


def update_sale(
    record_id: str,
    changes: Dict[str, Any],
    context: Optional[SessionContext] = None,
    session: Optional[Session] = None,
) -> SaleRecord:
    """
    Edit a sale, re-applying its quantity as a net population change.

    The total is recomputed from the resulting quantity and unit price.

    Raises:
        RecordNotFound: If the sale does not exist
        BatchNotFound: If the sale's batch no longer exists
        InsufficientPopulation: If the new quantity exceeds the reverted population
        ValidationError: If inputs are malformed
    """
    fields = _parse_fields(dict(changes))

    def _impl(sess: Session) -> SaleRecord:
        sale = fetch(sess, SaleRecord, record_id, _sale_not_found)
        batch = fetch(sess, Batch, sale.batch_id, BatchNotFound)
        now = utc_now()
        new_quantity = fields.get("quantity", sale.quantity)
        new_price = fields.get("unit_price", Decimal(sale.unit_price))
        total = new_quantity * new_price
        _check_down_payment(total, fields.get("down_payment", Decimal(sale.down_payment or 0)))

        reverted = restore_population(PopulationSnapshot.of(batch), sale.quantity, now)
        validate_sale_quantity(reverted, new_quantity)
        after = remove_population(reverted, new_quantity, now)
        if after.current_population != batch.current_population:
            apply_population(batch, after)

        for key, value in fields.items():
            setattr(sale, key, value)
        sale.total = total
        sale.updated_at = now
        sess.flush()
        return sale

    try:
        sale = run_atomic("update_sale", _impl, session=session)
    except InsufficientPopulation as e:
        log_operation(
            logger,
            operation="update_sale",
            outcome="insufficient_population",
            level=logging.WARNING,
            batch_id=e.batch_id,
            requested=e.requested,
            available=e.available,
        )
        raise

    log_operation(
        logger,
        operation="update_sale",
        outcome="success",
        record_id=sale.id,
        batch_id=sale.batch_id,
        quantity=sale.quantity,
        user_id=owner_of(context),
    )
    return sale


def delete_sale(
    record_id: str,
    context: Optional[SessionContext] = None,
    session: Optional[Session] = None,
) -> None:
    """
    Delete a sale and credit its birds back to the batch.

    Raises:
        RecordNotFound: If the sale does not exist
        BatchNotFound: If the sale's batch no longer exists
        ValidationError: If the credit would exceed the batch's initial population
    """

    def _impl(sess: Session) -> str:
        sale = fetch(sess, SaleRecord, record_id, _sale_not_found)
        batch = fetch(sess, Batch, sale.batch_id, BatchNotFound)
        restored = apply_population_delta(batch, sale.quantity, utc_now())
        apply_population(batch, restored)
        sess.delete(sale)
        sess.flush()
        return batch.id

    batch_id = run_atomic("delete_sale", _impl, session=session)
    log_operation(
        logger,
        operation="delete_sale",
        outcome="success",
        record_id=record_id,
        batch_id=batch_id,
        user_id=owner_of(context),
    )


def get_sale(record_id: str) -> SaleRecord:
    """Get a sale by id."""
    return run_query("get_sale", lambda sess: fetch(sess, SaleRecord, record_id, _sale_not_found))


def list_sales(batch_id: Optional[str] = None) -> List[SaleRecord]:
    """List sales, newest first, optionally for one batch."""

    def _impl(sess: Session) -> List[SaleRecord]:
        query = sess.query(SaleRecord)
        if batch_id is not None:
            query = query.filter(SaleRecord.batch_id == batch_id)
        return query.order_by(SaleRecord.sale_date.desc(), SaleRecord.created_at.desc()).all()

    return run_query("list_sales", _impl)
