"""Daily Log Service - production records and their population side effect.

Each daily log records mortality, feed and (for layers) eggs for one batch
and day. Mortality is debited from the batch's live population in the same
transaction that writes the record, and credited back when the record is
edited or deleted, so that at every commit:

    current_population == initial_population - sum(mortality) - sum(sales)

Key Features:
- All writes run through run_atomic(): read, validate, write, commit or retry
- Client-chosen record ids make record_daily_log idempotent
- A mortality edit is applied as a net change against the reverted population
- Moving a record to another batch credits the old batch and debits the new one
- Optional session parameter for transactional composition
"""

import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ..models import Batch, DailyLogRecord
from ..models.base import new_id
from ..utils.constants import MAX_NOTES_LENGTH
from ..utils.datetime_utils import today, utc_now
from ..utils.validators import (
    parse_money,
    parse_quantity,
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
    validate_mortality,
)
from .exceptions import BatchNotFound, InsufficientPopulation, RecordNotFound, ValidationError
from .ledger_store import fetch, find_replayed, run_atomic, run_query
from .logging_utils import get_service_logger, log_operation
from .session_context import SessionContext, owner_of

logger = get_service_logger(__name__)

_PARSERS = {
    "batch_id": lambda v: validate_required_string(v, "Batch"),
    "log_date": lambda v: parse_record_date(v, "Log date"),
    "mortality_count": lambda v: parse_int(v, "Mortality"),
    "feed_consumed_kg": lambda v: parse_quantity(v, "Feed consumed (kg)"),
    "eggs_total": lambda v: parse_int(v, "Eggs", required=False),
    "average_weight_g": lambda v: parse_money(v, "Average weight (g)", required=False),
    "notes": lambda v: validate_string_length(v or None, MAX_NOTES_LENGTH, "Notes"),
}


def _parse_fields(data: Dict[str, Any]) -> Dict[str, Any]:
    """Validate the daily log fields present in data, reporting all errors at once."""
    unknown = sorted(set(data) - set(_PARSERS))
    if unknown:
        raise ValidationError(f"Unknown daily log fields: {', '.join(unknown)}")
    keys = list(data)
    values = validate_all(*[lambda key=key: _PARSERS[key](data[key]) for key in keys])
    return dict(zip(keys, values))


def _check_eggs(batch: Batch, eggs_total: Optional[int]) -> None:
    if eggs_total and not batch.is_layer:
        raise ValidationError(f"Batch {batch.name} is not a layer batch and cannot record eggs")


def _log_rejection(operation: str, error: InsufficientPopulation) -> None:
    log_operation(
        logger,
        operation=operation,
        outcome="insufficient_population",
        level=logging.WARNING,
        batch_id=error.batch_id,
        requested=error.requested,
        available=error.available,
    )


def record_daily_log(
    batch_id: str,
    log_date=None,
    mortality_count: Any = 0,
    feed_consumed_kg: Any = 0,
    eggs_total: Any = None,
    average_weight_g: Any = None,
    notes: Optional[str] = None,
    context: Optional[SessionContext] = None,
    record_id: Optional[str] = None,
    session: Optional[Session] = None,
) -> DailyLogRecord:
    """
    Record one day of production for a batch and debit its mortality.

    Args:
        batch_id: Batch being recorded
        log_date: Day recorded (defaults to today)
        mortality_count: Birds that died (>= 0)
        feed_consumed_kg: Feed consumed in kg (>= 0)
        eggs_total: Eggs collected; only layer batches may record eggs
        average_weight_g: Optional sampled weight
        notes: Optional observations
        context: Session context of the recording user
        record_id: Client-chosen id; replaying the same id is a no-op
        session: Optional session for transactional composition

    Returns:
        The written (or previously written) DailyLogRecord

    Raises:
        ValidationError: If inputs are malformed
        BatchNotFound: If the batch does not exist
        InsufficientPopulation: If mortality exceeds the live population
        ConcurrencyConflict: If retries are exhausted
    """
    fields = _parse_fields(
        {
            "batch_id": batch_id,
            "mortality_count": mortality_count,
            "feed_consumed_kg": feed_consumed_kg,
            "eggs_total": eggs_total,
            "average_weight_g": average_weight_g,
            "notes": notes,
        }
    )
    fields["log_date"] = parse_record_date(log_date, "Log date", default=today())
    owner_id = owner_of(context)
    replayed = []

    def _impl(sess: Session) -> DailyLogRecord:
        existing = find_replayed(sess, DailyLogRecord, record_id)
        if existing is not None:
            replayed.append(existing.id)
            return existing

        batch = fetch(sess, Batch, fields["batch_id"], BatchNotFound)
        _check_eggs(batch, fields["eggs_total"])
        mortality = fields["mortality_count"]
        validate_mortality(batch, mortality)

        record = DailyLogRecord(id=record_id or new_id(), owner_id=owner_id, **fields)
        sess.add(record)
        if mortality > 0:
            after = remove_population(PopulationSnapshot.of(batch), mortality, utc_now())
            apply_population(batch, after)
        sess.flush()
        return record

    try:
        record = run_atomic("record_daily_log", _impl, session=session)
    except InsufficientPopulation as e:
        _log_rejection("record_daily_log", e)
        raise

    log_operation(
        logger,
        operation="record_daily_log",
        outcome="already_applied" if replayed else "success",
        record_id=record.id,
        batch_id=record.batch_id,
        mortality=record.mortality_count,
    )
    return record


def update_daily_log(
    record_id: str,
    changes: Dict[str, Any],
    context: Optional[SessionContext] = None,
    session: Optional[Session] = None,
) -> DailyLogRecord:
    """
    Edit a daily log, re-applying its mortality as a net population change.

    The old mortality is credited back and the new mortality validated
    against the reverted population. If batch_id changes, the old batch is
    credited and the new batch debited in the same transaction.

    Raises:
        RecordNotFound: If the record does not exist
        BatchNotFound: If either batch does not exist
        InsufficientPopulation: If the new mortality exceeds the available population
        ValidationError: If inputs are malformed or the restore would exceed
            the batch's initial population
    """
    fields = _parse_fields(dict(changes))
    modified_by = owner_of(context)

    def _impl(sess: Session) -> DailyLogRecord:
        record = fetch(sess, DailyLogRecord, record_id, lambda rid: RecordNotFound("Daily log", rid))
        now = utc_now()
        old_batch = fetch(sess, Batch, record.batch_id, BatchNotFound)
        new_batch_id = fields.get("batch_id", record.batch_id)
        new_mortality = fields.get("mortality_count", record.mortality_count)

        reverted = restore_population(PopulationSnapshot.of(old_batch), record.mortality_count, now)
        if new_batch_id == record.batch_id:
            new_batch = old_batch
            target = reverted
        else:
            apply_population(old_batch, reverted)
            new_batch = fetch(sess, Batch, new_batch_id, BatchNotFound)
            target = PopulationSnapshot.of(new_batch)

        _check_eggs(new_batch, fields.get("eggs_total", record.eggs_total))
        validate_mortality(target, new_mortality)
        after = remove_population(target, new_mortality, now)
        # An unchanged population keeps the batch's existing lifecycle dates
        if new_batch is not old_batch or after.current_population != old_batch.current_population:
            apply_population(new_batch, after)

        for key, value in fields.items():
            setattr(record, key, value)
        record.modified_by = modified_by
        record.updated_at = now
        sess.flush()
        return record

    try:
        record = run_atomic("update_daily_log", _impl, session=session)
    except InsufficientPopulation as e:
        _log_rejection("update_daily_log", e)
        raise

    log_operation(
        logger,
        operation="update_daily_log",
        outcome="success",
        record_id=record.id,
        batch_id=record.batch_id,
        mortality=record.mortality_count,
    )
    return record


def delete_daily_log(
    record_id: str,
    context: Optional[SessionContext] = None,
    session: Optional[Session] = None,
) -> None:
    """
    Delete a daily log and credit its mortality back to the batch.

    Raises:
        RecordNotFound: If the record does not exist
        ValidationError: If the credit would exceed the batch's initial population
    """

    def _impl(sess: Session) -> str:
        record = fetch(sess, DailyLogRecord, record_id, lambda rid: RecordNotFound("Daily log", rid))
        batch = sess.get(Batch, record.batch_id)
        if batch is not None and record.mortality_count > 0:
            restored = apply_population_delta(batch, record.mortality_count, utc_now())
            apply_population(batch, restored)
        batch_id = record.batch_id
        sess.delete(record)
        sess.flush()
        return batch_id

    batch_id = run_atomic("delete_daily_log", _impl, session=session)
    log_operation(
        logger,
        operation="delete_daily_log",
        outcome="success",
        record_id=record_id,
        batch_id=batch_id,
        user_id=owner_of(context),
    )


def get_daily_log(record_id: str) -> DailyLogRecord:
    """Get a daily log by id.

    Raises:
        RecordNotFound: If the record does not exist
    """
    return run_query(
        "get_daily_log",
        lambda sess: fetch(sess, DailyLogRecord, record_id, lambda rid: RecordNotFound("Daily log", rid)),
    )


def list_daily_logs(batch_id: Optional[str] = None) -> List[DailyLogRecord]:
    """List daily logs, newest first, optionally for one batch."""

    def _impl(sess: Session) -> List[DailyLogRecord]:
        query = sess.query(DailyLogRecord)
        if batch_id is not None:
            query = query.filter(DailyLogRecord.batch_id == batch_id)
        return query.order_by(DailyLogRecord.log_date.desc(), DailyLogRecord.created_at.desc()).all()

    return run_query("list_daily_logs", _impl)


def total_feed_consumed(batch_id: str) -> Decimal:
    """Sum of feed recorded in the batch's daily logs, in kg."""

    def _impl(sess: Session) -> Decimal:
        logs = sess.query(DailyLogRecord).filter(DailyLogRecord.batch_id == batch_id).all()
        return sum((Decimal(log.feed_consumed_kg or 0) for log in logs), Decimal("0"))

    return run_query("total_feed_consumed", _impl)
