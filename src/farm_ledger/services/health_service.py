"""Health Service - vaccines, medicines and other treatments applied to a batch.

A treatment is recorded for a batch with its activity, product, dose and
route. When the product is an inventory item, the applied quantity is
consumed through consumption_service.record_consumption inside the same
transaction, so the stock debit, the derived batch-consumption expense and
the treatment record commit or fail together.
"""

from decimal import Decimal
from typing import Any, List, Optional

from sqlalchemy.orm import Session

from ..models import Batch, HealthTreatmentRecord, InventoryItem, InventoryType
from ..models.base import new_id
from ..utils.constants import MAX_CONCEPT_LENGTH, MAX_NAME_LENGTH, MAX_NOTES_LENGTH
from ..utils.datetime_utils import today
from ..utils.validators import (
    parse_quantity,
    parse_record_date,
    validate_all,
    validate_required_string,
    validate_string_length,
)
from . import consumption_service
from .exceptions import BatchNotFound, InventoryItemNotFound, ValidationError
from .ledger_store import fetch, find_replayed, run_atomic, run_query
from .logging_utils import get_service_logger, log_operation
from .session_context import SessionContext, owner_of

logger = get_service_logger(__name__)

HEALTH_SUPPLY_TYPES = frozenset(
    {InventoryType.MEDICINE, InventoryType.VACCINE, InventoryType.DISINFECTANT}
)

# One dose when the caller does not say how much was used
DEFAULT_APPLIED_QUANTITY = Decimal("1")


def apply_health_treatment(
    batch_id: str,
    activity: str,
    inventory_item_id: Optional[str] = None,
    quantity: Any = None,
    product: Optional[str] = None,
    dose: Optional[str] = None,
    route: Optional[str] = None,
    treatment_date=None,
    notes: Optional[str] = None,
    context: Optional[SessionContext] = None,
    record_id: Optional[str] = None,
    session: Optional[Session] = None,
) -> HealthTreatmentRecord:
    """
    Record a treatment applied to a batch, consuming its product from inventory.

    Args:
        batch_id: Treated batch
        activity: What was done (required)
        inventory_item_id: Medicine, vaccine or disinfectant used, if stocked
        quantity: Quantity consumed from inventory (defaults to one unit)
        product: Product name; defaults to the item's name
        dose: Free-form dose
        route: Administration route
        treatment_date: Defaults to today
        notes: Observations
        context: Session context of the applying user
        record_id: Client-chosen id; replaying the same id is a no-op
        session: Optional session for transactional composition

    Returns:
        The written (or previously written) HealthTreatmentRecord

    Raises:
        ValidationError: If inputs are malformed or the item is not a health supply
        BatchNotFound: If the batch does not exist
        InventoryItemNotFound: If the item does not exist
        InsufficientStock: If the quantity exceeds the stock on hand
    """
    batch_id, activity, quantity, treatment_date, product, dose, route, notes = validate_all(
        lambda: validate_required_string(batch_id, "Batch"),
        lambda: validate_string_length(
            validate_required_string(activity, "Activity"), MAX_CONCEPT_LENGTH, "Activity"
        ),
        lambda: parse_quantity(quantity, "Quantity", positive=True, required=False),
        lambda: parse_record_date(treatment_date, "Treatment date", default=today()),
        lambda: validate_string_length(product or None, MAX_NAME_LENGTH, "Product"),
        lambda: validate_string_length(dose or None, 100, "Dose"),
        lambda: validate_string_length(route or None, 100, "Route"),
        lambda: validate_string_length(notes or None, MAX_NOTES_LENGTH, "Notes"),
    )
    inventory_item_id = inventory_item_id or None
    if quantity is not None and inventory_item_id is None:
        raise ValidationError("Quantity: only applies to a product taken from inventory")
    owner_id = owner_of(context)
    replayed = []

    def _impl(sess: Session) -> HealthTreatmentRecord:
        existing = find_replayed(sess, HealthTreatmentRecord, record_id)
        if existing is not None:
            replayed.append(existing.id)
            return existing

        fetch(sess, Batch, batch_id, BatchNotFound)
        record = HealthTreatmentRecord(
            id=record_id or new_id(),
            batch_id=batch_id,
            activity=activity,
            product=product,
            dose=dose,
            route=route,
            treatment_date=treatment_date,
            notes=notes,
            cost=Decimal("0"),
            owner_id=owner_id,
        )

        if inventory_item_id is not None:
            item = fetch(sess, InventoryItem, inventory_item_id, InventoryItemNotFound)
            if item.item_type not in HEALTH_SUPPLY_TYPES:
                raise ValidationError(
                    f"{item.product_name} is not a medicine, vaccine or disinfectant"
                )
            consumption = consumption_service.record_consumption(
                batch_id,
                item.id,
                quantity or DEFAULT_APPLIED_QUANTITY,
                consumption_date=treatment_date,
                context=context,
                session=sess,
            )
            record.product = product or item.product_name
            record.quantity = consumption.quantity
            record.cost = consumption.total_cost
            record.consumption_id = consumption.id

        sess.add(record)
        sess.flush()
        return record

    record = run_atomic("apply_health_treatment", _impl, session=session)
    log_operation(
        logger,
        operation="apply_health_treatment",
        outcome="already_applied" if replayed else "success",
        record_id=record.id,
        batch_id=record.batch_id,
        consumption_id=record.consumption_id,
        cost=str(record.cost),
    )
    return record


def list_health_treatments(batch_id: Optional[str] = None) -> List[HealthTreatmentRecord]:
    """List treatments, newest first, optionally for one batch."""

    def _impl(sess: Session) -> List[HealthTreatmentRecord]:
        query = sess.query(HealthTreatmentRecord)
        if batch_id is not None:
            query = query.filter(HealthTreatmentRecord.batch_id == batch_id)
        return query.order_by(
            HealthTreatmentRecord.treatment_date.desc(), HealthTreatmentRecord.created_at.desc()
        ).all()

    return run_query("list_health_treatments", _impl)
