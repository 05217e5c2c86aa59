"""Batch Service - creating, editing and listing bird batches.

A new batch starts active with current_population equal to its initial
population. Only daily logs and sales move the population afterwards; the
one exception is correcting initial_population, which shifts the current
population by the same amount so the removed-bird count is preserved.

Writes go through run_atomic() because they touch the versioned Batch row
that consistency operations also update.
"""

from dataclasses import replace
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ..models import Batch, BirdType, Farm, Shed
from ..models.base import new_id
from ..utils.constants import MAX_NAME_LENGTH
from ..utils.datetime_utils import utc_now
from ..utils.validators import (
    parse_choice,
    parse_money,
    parse_int,
    parse_record_date,
    validate_all,
    validate_required_string,
    validate_string_length,
)
from .domain_validators import PopulationSnapshot, apply_population, apply_population_delta
from .exceptions import BatchNotFound, FarmNotFound, ShedNotFound, ValidationError
from .ledger_store import fetch, find_replayed, run_atomic, run_query
from .logging_utils import get_service_logger, log_operation
from .session_context import SessionContext, owner_of

logger = get_service_logger(__name__)

_PARSERS = {
    "name": lambda v: validate_string_length(
        validate_required_string(v, "Batch name"), MAX_NAME_LENGTH, "Batch name"
    ),
    "bird_type": lambda v: parse_choice(v, BirdType, "Bird type"),
    "initial_population": lambda v: parse_int(v, "Initial population", positive=True),
    "farm_id": lambda v: v or None,
    "shed_id": lambda v: v or None,
    "purchase_unit_price": lambda v: parse_money(v, "Purchase unit price"),
    "entry_date": lambda v: parse_record_date(v, "Entry date"),
}


def _parse_fields(data: Dict[str, Any]) -> Dict[str, Any]:
    unknown = sorted(set(data) - set(_PARSERS))
    if unknown:
        raise ValidationError(f"Unknown batch fields: {', '.join(unknown)}")
    keys = list(data)
    values = validate_all(*[lambda key=key: _PARSERS[key](data[key]) for key in keys])
    return dict(zip(keys, values))


def _check_housing(session: Session, farm_id: Optional[str], shed_id: Optional[str]) -> None:
    """Ensure the farm and shed exist and the shed belongs to the farm."""
    if farm_id is not None:
        fetch(session, Farm, farm_id, FarmNotFound)
    if shed_id is not None:
        shed = fetch(session, Shed, shed_id, ShedNotFound)
        if farm_id is not None and shed.farm_id != farm_id:
            raise ValidationError(f"Shed '{shed.name}' does not belong to farm {farm_id}")


def create_batch(
    name: str,
    initial_population: Any,
    bird_type: Any = BirdType.BROILER,
    farm_id: Optional[str] = None,
    shed_id: Optional[str] = None,
    purchase_unit_price: Any = 0,
    entry_date=None,
    context: Optional[SessionContext] = None,
    record_id: Optional[str] = None,
    session: Optional[Session] = None,
) -> Batch:
    """
    Create a new active batch.

    Args:
        name: Display name
        initial_population: Birds received (> 0)
        bird_type: BROILER or LAYER
        farm_id: Optional farm housing the batch
        shed_id: Optional shed housing the batch (must belong to farm_id)
        purchase_unit_price: Price paid per chick
        entry_date: Arrival date (defaults to today)
        context: Session context of the creating user
        record_id: Client-chosen id; creating the same id twice is a no-op
        session: Optional session for transactional composition

    Raises:
        ValidationError: If inputs are malformed or the shed is not in the farm
        FarmNotFound / ShedNotFound: If the housing does not exist
    """
    fields = _parse_fields(
        {
            "name": name,
            "initial_population": initial_population,
            "bird_type": bird_type,
            "farm_id": farm_id,
            "shed_id": shed_id,
            "purchase_unit_price": purchase_unit_price,
        }
    )
    fields["entry_date"] = parse_record_date(entry_date, "Entry date", default=utc_now().date())

    def _impl(sess: Session) -> Batch:
        existing = find_replayed(sess, Batch, record_id)
        if existing is not None:
            return existing
        _check_housing(sess, fields["farm_id"], fields["shed_id"])
        batch = Batch(
            id=record_id or new_id(),
            current_population=fields["initial_population"],
            active=True,
            **fields,
        )
        sess.add(batch)
        sess.flush()
        return batch

    batch = run_atomic("create_batch", _impl, session=session)
    log_operation(
        logger,
        operation="create_batch",
        outcome="success",
        batch_id=batch.id,
        initial_population=batch.initial_population,
        user_id=owner_of(context),
    )
    return batch


def update_batch(
    batch_id: str,
    changes: Dict[str, Any],
    session: Optional[Session] = None,
) -> Batch:
    """
    Edit a batch's master data.

    Changing initial_population moves current_population by the same delta
    and re-derives the active flag.

    Raises:
        BatchNotFound: If the batch does not exist
        ValidationError: If the correction would leave fewer birds than
            have already been removed, or inputs are malformed
    """
    fields = _parse_fields(dict(changes))

    def _impl(sess: Session) -> Batch:
        batch = fetch(sess, Batch, batch_id, BatchNotFound)
        if "farm_id" in fields or "shed_id" in fields:
            _check_housing(
                sess,
                fields.get("farm_id", batch.farm_id),
                fields.get("shed_id", batch.shed_id),
            )

        new_initial = fields.get("initial_population", batch.initial_population)
        if new_initial != batch.initial_population:
            removed = batch.lost_or_sold
            if new_initial < removed:
                raise ValidationError(
                    f"Initial population cannot be lower than the {removed} birds already "
                    f"removed by mortality and sales"
                )
            delta = new_initial - batch.initial_population
            # Raise the ceiling first so a positive correction is not refused
            widened = replace(PopulationSnapshot.of(batch), initial_population=new_initial)
            batch.initial_population = new_initial
            apply_population(batch, apply_population_delta(widened, delta, utc_now()))

        for key, value in fields.items():
            if key != "initial_population":
                setattr(batch, key, value)
        batch.updated_at = utc_now()
        sess.flush()
        return batch

    batch = run_atomic("update_batch", _impl, session=session)
    log_operation(logger, operation="update_batch", outcome="success", batch_id=batch.id)
    return batch


def delete_batch(batch_id: str, session: Optional[Session] = None) -> None:
    """
    Delete a batch together with its daily logs, sales and consumptions.

    Expenses attributed to the batch are kept and lose their batch reference.
    Stock consumed by the batch is not returned to inventory.

    Raises:
        BatchNotFound: If the batch does not exist
    """

    def _impl(sess: Session) -> None:
        batch = fetch(sess, Batch, batch_id, BatchNotFound)
        sess.delete(batch)
        sess.flush()

    run_atomic("delete_batch", _impl, session=session)
    log_operation(logger, operation="delete_batch", outcome="success", batch_id=batch_id)


def get_batch(batch_id: str) -> Batch:
    """Get a batch by id.

    Raises:
        BatchNotFound: If the batch does not exist
    """
    return run_query("get_batch", lambda sess: fetch(sess, Batch, batch_id, BatchNotFound))


def list_batches(
    active_only: bool = False,
    farm_id: Optional[str] = None,
    shed_id: Optional[str] = None,
) -> List[Batch]:
    """List batches, most recent entry first."""

    def _impl(sess: Session) -> List[Batch]:
        query = sess.query(Batch)
        if active_only:
            query = query.filter(Batch.active.is_(True))
        if farm_id is not None:
            query = query.filter(Batch.farm_id == farm_id)
        if shed_id is not None:
            query = query.filter(Batch.shed_id == shed_id)
        return query.order_by(Batch.entry_date.desc(), Batch.created_at.desc()).all()

    return run_query("list_batches", _impl)
