"""Offline Outbox - queue consistency operations while the ledger is unreachable.

submit() is the UI entry point for every consistency operation. It
dispatches the operation immediately; if the ledger store cannot be reached
it stores a typed PendingOperation in the on-device database instead and
returns a queued SubmitResult. replay_all() later drains the queue in local
insertion order, one entry at a time.

Replays are idempotent: create operations are queued with their
client-chosen record id as operation_id, so an entry that was applied but
not marked synced (a crash or an uncertain commit) is recognised on the
next replay and not applied twice. A delete whose target no longer exists
counts as already applied, unless the create of that target is itself
still waiting in the outbox; the delete then stays queued behind it.

Payload keys are checked against the operation type before an entry is
queued. A failing entry, malformed or not, never blocks the entries
queued after it. It stays in the
outbox with its attempt count and last error until a later replay succeeds
or the user discards it.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, List, Optional, Tuple

from ..models import OperationType, PendingOperation
from ..models.base import new_id
from . import (
    consumption_service,
    daily_log_service,
    expense_service,
    health_service,
    sale_service,
)
from .database import outbox_session_scope
from .exceptions import NetworkUnavailable, RecordNotFound, ServiceError, ValidationError
from .logging_utils import get_service_logger, log_operation
from .session_context import SessionContext

logger = get_service_logger(__name__)

DELETE_OPERATIONS = frozenset({OperationType.DELETE_DAILY_LOG, OperationType.DELETE_SALE})


@dataclass
class SubmitResult:
    """Outcome of submit(): either applied now or queued for replay."""

    operation_id: str
    queued: bool
    result: Any = None


@dataclass
class ReplayReport:
    """Outcome of replay_all()."""

    synced: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    errors: Dict[str, str] = field(default_factory=dict)

    @property
    def all_synced(self) -> bool:
        return not self.failed


def _json_default(obj: Any) -> Any:
    if isinstance(obj, Decimal):
        return str(obj)
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, Enum):
        return obj.value
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def encode_payload(payload: Dict[str, Any]) -> str:
    """Serialize operation arguments; decimals become strings, dates ISO text."""
    return json.dumps(payload, default=_json_default, sort_keys=True)


def _changes_call(update: Callable) -> Callable:
    def call(payload: Dict[str, Any], operation_id: str, context: Optional[SessionContext]):
        return update(payload["record_id"], payload.get("changes", {}), context=context)

    return call


def _delete_call(delete: Callable) -> Callable:
    def call(payload: Dict[str, Any], operation_id: str, context: Optional[SessionContext]):
        return delete(payload["record_id"], context=context)

    return call


def _create_call(create: Callable) -> Callable:
    def call(payload: Dict[str, Any], operation_id: str, context: Optional[SessionContext]):
        return create(context=context, record_id=operation_id, **payload)

    return call


_DISPATCH: Dict[OperationType, Callable] = {
    OperationType.RECORD_DAILY_LOG: _create_call(daily_log_service.record_daily_log),
    OperationType.UPDATE_DAILY_LOG: _changes_call(daily_log_service.update_daily_log),
    OperationType.DELETE_DAILY_LOG: _delete_call(daily_log_service.delete_daily_log),
    OperationType.RECORD_SALE: _create_call(sale_service.record_sale),
    OperationType.UPDATE_SALE: _changes_call(sale_service.update_sale),
    OperationType.DELETE_SALE: _delete_call(sale_service.delete_sale),
    OperationType.RECORD_CONSUMPTION: _create_call(consumption_service.record_consumption),
    OperationType.RECORD_EXPENSE: lambda payload, operation_id, context: expense_service.record_expense(
        payload, context=context, record_id=operation_id
    ),
    OperationType.APPLY_HEALTH_TREATMENT: _create_call(health_service.apply_health_treatment),
}

_CHANGES_KEYS = (frozenset({"record_id", "changes"}), frozenset({"record_id", "changes"}))
_DELETE_KEYS = (frozenset({"record_id"}), frozenset({"record_id"}))

# (required keys, allowed keys) per operation type
_PAYLOAD_KEYS: Dict[OperationType, Tuple[FrozenSet[str], FrozenSet[str]]] = {
    OperationType.RECORD_DAILY_LOG: (
        frozenset({"batch_id"}),
        frozenset(
            {
                "batch_id",
                "log_date",
                "mortality_count",
                "feed_consumed_kg",
                "eggs_total",
                "average_weight_g",
                "notes",
            }
        ),
    ),
    OperationType.UPDATE_DAILY_LOG: _CHANGES_KEYS,
    OperationType.DELETE_DAILY_LOG: _DELETE_KEYS,
    OperationType.RECORD_SALE: (
        frozenset({"batch_id", "quantity", "unit_price", "customer", "payment_method"}),
        frozenset(
            {
                "batch_id",
                "quantity",
                "unit_price",
                "customer",
                "payment_method",
                "down_payment",
                "sale_date",
            }
        ),
    ),
    OperationType.UPDATE_SALE: _CHANGES_KEYS,
    OperationType.DELETE_SALE: _DELETE_KEYS,
    OperationType.RECORD_CONSUMPTION: (
        frozenset({"batch_id", "inventory_item_id", "quantity"}),
        frozenset({"batch_id", "inventory_item_id", "quantity", "consumption_date"}),
    ),
    OperationType.RECORD_EXPENSE: (
        frozenset({"concept"}),
        frozenset(
            {
                "concept",
                "category",
                "amount",
                "expense_date",
                "batch_id",
                "inventory_item_id",
                "quantity",
                "unit_price",
                "payment_method",
            }
        ),
    ),
    OperationType.APPLY_HEALTH_TREATMENT: (
        frozenset({"batch_id", "activity"}),
        frozenset(
            {
                "batch_id",
                "activity",
                "inventory_item_id",
                "quantity",
                "product",
                "dose",
                "route",
                "treatment_date",
                "notes",
            }
        ),
    ),
}


def check_payload(operation_type: OperationType, payload: Any) -> None:
    """
    Check that a payload has the keys its operation type takes.

    Only the shape is checked here; values are validated by the operation
    itself when it runs.

    Raises:
        ValidationError: If the type is unknown, the payload is not a mapping,
            a required key is missing or an unexpected key is present
    """
    try:
        operation = OperationType(operation_type)
        required, allowed = _PAYLOAD_KEYS[operation]
    except (KeyError, ValueError):
        raise ValidationError(f"Unknown operation type: {operation_type}")
    if not isinstance(payload, dict):
        raise ValidationError(f"{operation.value}: payload must be a mapping")
    missing = sorted(required - payload.keys())
    if missing:
        raise ValidationError(f"{operation.value}: missing {', '.join(missing)}")
    unexpected = sorted(set(payload) - allowed)
    if unexpected:
        raise ValidationError(f"{operation.value}: unexpected {', '.join(unexpected)}")
    if "changes" in payload and not isinstance(payload["changes"], dict):
        raise ValidationError(f"{operation.value}: changes must be a mapping")


def dispatch(
    operation_type: OperationType,
    payload: Dict[str, Any],
    operation_id: str,
    context: Optional[SessionContext] = None,
) -> Any:
    """Run one consistency operation against the ledger store.

    Raises:
        ValidationError: If the payload does not fit the operation type
    """
    check_payload(operation_type, payload)
    handler = _DISPATCH[OperationType(operation_type)]
    return handler(payload, operation_id, context)


def submit(
    operation_type: OperationType,
    payload: Dict[str, Any],
    context: Optional[SessionContext] = None,
    operation_id: Optional[str] = None,
) -> SubmitResult:
    """
    Apply an operation now, or queue it if the ledger store is unreachable.

    Args:
        operation_type: Which consistency operation to run
        payload: Operation arguments; for updates {"record_id", "changes"},
            for deletes {"record_id"}, for creates the create arguments
        context: Session context of the submitting user
        operation_id: Client-chosen id; for creates this becomes the record id

    Returns:
        SubmitResult with queued=False and the operation's result, or
        queued=True when the operation went to the outbox

    Raises:
        ServiceError: Any domain error from the operation itself
    """
    check_payload(operation_type, payload)
    operation_type = OperationType(operation_type)
    operation_id = operation_id or new_id()
    try:
        result = dispatch(operation_type, payload, operation_id, context)
    except NetworkUnavailable:
        enqueue(operation_type, payload, operation_id)
        return SubmitResult(operation_id=operation_id, queued=True)
    return SubmitResult(operation_id=operation_id, queued=False, result=result)


def enqueue(
    operation_type: OperationType,
    payload: Dict[str, Any],
    operation_id: Optional[str] = None,
) -> PendingOperation:
    """
    Store an operation in the outbox.

    Enqueuing an operation_id that is already queued returns the existing
    entry.

    Raises:
        ValidationError: If the payload does not fit the operation type
    """
    check_payload(operation_type, payload)
    operation_type = OperationType(operation_type)
    operation_id = operation_id or new_id()
    encoded = encode_payload(payload)

    with outbox_session_scope() as session:
        existing = (
            session.query(PendingOperation)
            .filter(PendingOperation.operation_id == operation_id)
            .first()
        )
        if existing is not None:
            return existing
        entry = PendingOperation(
            operation_id=operation_id,
            operation_type=operation_type,
            payload=encoded,
        )
        session.add(entry)
        session.flush()

    log_operation(
        logger,
        operation="enqueue",
        outcome="queued",
        operation_id=operation_id,
        operation_type=operation_type.value,
    )
    return entry


def pending_operations(operation_type: Optional[OperationType] = None) -> List[PendingOperation]:
    """Unsynced entries in insertion order, optionally of one type."""
    with outbox_session_scope() as session:
        query = session.query(PendingOperation).filter(PendingOperation.synced.is_(False))
        if operation_type is not None:
            query = query.filter(PendingOperation.operation_type == OperationType(operation_type))
        return query.order_by(PendingOperation.sequence).all()


def pending_count() -> int:
    """Number of entries still waiting to be replayed."""
    with outbox_session_scope() as session:
        return session.query(PendingOperation).filter(PendingOperation.synced.is_(False)).count()


def _is_queued(operation_id: str) -> bool:
    """True while an unsynced entry with this operation_id is in the outbox."""
    with outbox_session_scope() as session:
        return (
            session.query(PendingOperation)
            .filter(
                PendingOperation.operation_id == operation_id,
                PendingOperation.synced.is_(False),
            )
            .count()
            > 0
        )


def _mark_synced(sequence: int) -> None:
    with outbox_session_scope() as session:
        entry = session.get(PendingOperation, sequence)
        if entry is not None:
            entry.synced = True


def _mark_failed(sequence: int, error: str) -> None:
    with outbox_session_scope() as session:
        entry = session.get(PendingOperation, sequence)
        if entry is not None:
            entry.attempts = (entry.attempts or 0) + 1
            entry.last_error = error


def replay_all(context: Optional[SessionContext] = None) -> ReplayReport:
    """
    Replay every pending entry against the ledger store, oldest first.

    Each entry runs as its own atomic operation. Successful entries are
    marked synced and purged at the end; failed ones stay queued with their
    error recorded and do not stop later entries from replaying.

    Returns:
        ReplayReport listing synced and failed operation ids
    """
    report = ReplayReport()
    entries = pending_operations()
    if not entries:
        log_operation(logger, operation="replay_all", outcome="empty", level=logging.DEBUG)
        return report

    for entry in entries:
        try:
            dispatch(entry.operation_type, entry.data, entry.operation_id, context)
        except RecordNotFound:
            if entry.operation_type not in DELETE_OPERATIONS:
                _record_failure(report, entry, "target record not found")
                continue
            if _is_queued(entry.data["record_id"]):
                _record_failure(report, entry, "target record is still queued for creation")
                continue
            log_operation(
                logger,
                operation="replay_all",
                outcome="already_applied",
                level=logging.DEBUG,
                operation_id=entry.operation_id,
                operation_type=entry.operation_type.value,
            )
        except ServiceError as e:
            _record_failure(report, entry, str(e))
            continue
        except (KeyError, TypeError, ValueError) as e:
            _record_failure(report, entry, f"malformed payload: {e}")
            continue
        _mark_synced(entry.sequence)
        report.synced.append(entry.operation_id)

    clear_synced()
    log_operation(
        logger,
        operation="replay_all",
        outcome="completed",
        synced=len(report.synced),
        failed=len(report.failed),
    )
    return report


def _record_failure(report: ReplayReport, entry: PendingOperation, error: str) -> None:
    _mark_failed(entry.sequence, error)
    report.failed.append(entry.operation_id)
    report.errors[entry.operation_id] = error
    log_operation(
        logger,
        operation="replay_all",
        outcome="entry_failed",
        level=logging.WARNING,
        operation_id=entry.operation_id,
        operation_type=entry.operation_type.value,
        error=error,
    )


def discard(operation_id: str) -> bool:
    """Remove an entry from the outbox without applying it.

    Returns:
        True if an entry was removed
    """
    with outbox_session_scope() as session:
        removed = (
            session.query(PendingOperation)
            .filter(PendingOperation.operation_id == operation_id)
            .delete()
        )
    if removed:
        log_operation(logger, operation="discard", outcome="success", operation_id=operation_id)
    return bool(removed)


def clear_synced() -> int:
    """Delete entries already accepted by the ledger store. Returns the count."""
    with outbox_session_scope() as session:
        return (
            session.query(PendingOperation)
            .filter(PendingOperation.synced.is_(True))
            .delete()
        )
