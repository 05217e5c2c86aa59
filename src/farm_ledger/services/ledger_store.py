"""Ledger Store - atomic operations against the transactional store.

Every consistency operation is written as a function that receives a
transaction handle (a SQLAlchemy Session), performs its reads, validates and
writes. run_atomic() gives that function its all-or-nothing semantics:

- One transaction per attempt; any exception rolls the attempt back
- The store's optimistic-conflict signal (StaleDataError from a version
  column mismatch, or a busy/locked database) triggers a retry from a fresh
  session, so values are always re-read, never reused from a failed attempt
- After the configured number of attempts, ConcurrencyConflict is raised
- Connectivity failures are surfaced as NetworkUnavailable so callers can
  queue the operation in the offline outbox
- Domain errors (ServiceError subclasses) propagate unchanged and are not retried

When the caller passes its own session, the work runs inside the caller's
transaction and commit/retry are the caller's responsibility.
"""

import logging
from typing import Callable, Optional, Type, TypeVar

from sqlalchemy.exc import (
    DBAPIError,
    DisconnectionError,
    InterfaceError,
    OperationalError,
    SQLAlchemyError,
)
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from ..utils.config import get_config
from . import database
from .exceptions import (
    ConcurrencyConflict,
    DatabaseError,
    NetworkUnavailable,
    ServiceError,
)
from .logging_utils import get_service_logger, log_operation

logger = get_service_logger(__name__)

T = TypeVar("T")
M = TypeVar("M")

_CONFLICT_MARKERS = (
    "database is locked",
    "database is busy",
    "deadlock",
    "could not serialize",
    "lock wait timeout",
)

_UNAVAILABLE_MARKERS = (
    "unable to open database",
    "could not connect",
    "connection refused",
    "connection reset",
    "server closed the connection",
    "network is unreachable",
    "timeout expired",
    "no route to host",
)


def is_conflict_error(error: BaseException) -> bool:
    """Return True if the error is the store's optimistic-conflict signal."""
    if isinstance(error, StaleDataError):
        return True
    if isinstance(error, OperationalError):
        message = str(error.orig if error.orig is not None else error).lower()
        return any(marker in message for marker in _CONFLICT_MARKERS)
    return False


def is_unavailable_error(error: BaseException) -> bool:
    """Return True if the error means the store could not be reached."""
    if isinstance(error, (DisconnectionError, InterfaceError)):
        return True
    if isinstance(error, DBAPIError) and error.connection_invalidated:
        return True
    if isinstance(error, OperationalError):
        message = str(error.orig if error.orig is not None else error).lower()
        return any(marker in message for marker in _UNAVAILABLE_MARKERS)
    return False


def run_atomic(
    operation: str,
    work: Callable[[Session], T],
    session: Optional[Session] = None,
    max_attempts: Optional[int] = None,
) -> T:
    """Run work(session) as one atomic transaction, retrying on conflicts.

    Args:
        operation: Operation name used in logs and errors
        work: Function performing reads, validation and writes on the session
        session: Optional caller-owned session; if given, work runs once
            inside it without commit or retry
        max_attempts: Override for Config.max_transaction_attempts

    Returns:
        Whatever work returns (typically the written record)

    Raises:
        ConcurrencyConflict: If every attempt hit a conflict
        NetworkUnavailable: If the store could not be reached
        DatabaseError: For any other store failure
        ServiceError: Domain errors raised by work, unchanged
    """
    if session is not None:
        return work(session)

    attempts = max_attempts or get_config().max_transaction_attempts

    for attempt in range(1, attempts + 1):
        try:
            with database.session_scope() as sess:
                return work(sess)
        except ServiceError:
            raise
        except SQLAlchemyError as e:
            if is_conflict_error(e):
                log_operation(
                    logger,
                    operation=operation,
                    outcome="conflict_retry",
                    level=logging.WARNING,
                    attempt=attempt,
                    max_attempts=attempts,
                    error=str(e),
                )
                continue
            if is_unavailable_error(e):
                log_operation(
                    logger,
                    operation=operation,
                    outcome="network_unavailable",
                    level=logging.WARNING,
                    attempt=attempt,
                    error=str(e),
                )
                raise NetworkUnavailable(operation, original_error=e) from e
            log_operation(
                logger,
                operation=operation,
                outcome="error",
                level=logging.ERROR,
                attempt=attempt,
                error=str(e),
            )
            raise DatabaseError(f"{operation} failed", original_error=e) from e

    log_operation(
        logger,
        operation=operation,
        outcome="conflict_exhausted",
        level=logging.ERROR,
        attempts=attempts,
    )
    raise ConcurrencyConflict(operation, attempts)


def fetch(
    session: Session,
    model: Type[M],
    entity_id: str,
    not_found: Callable[[str], ServiceError],
) -> M:
    """Read one entity by id inside a transaction or raise not_found(entity_id).

    Example:
        >>> batch = fetch(session, Batch, batch_id, BatchNotFound)
    """
    entity = session.get(model, entity_id) if entity_id else None
    if entity is None:
        raise not_found(entity_id)
    return entity


def find_replayed(session: Session, model: Type[M], record_id: Optional[str]) -> Optional[M]:
    """Return the record already written under a client-chosen id, if any.

    Create operations call this first: a hit means the operation was applied
    before (an outbox replay or a retried submit) and must not be re-applied.
    """
    if record_id is None:
        return None
    return session.get(model, record_id)


def run_query(operation: str, work: Callable[[Session], T]) -> T:
    """Run a read-only query outside a consistency operation.

    Queries are not retried; connectivity failures still surface as
    NetworkUnavailable so the UI can fall back to cached data.
    """
    try:
        with database.session_scope() as sess:
            return work(sess)
    except ServiceError:
        raise
    except SQLAlchemyError as e:
        if is_unavailable_error(e):
            raise NetworkUnavailable(operation, original_error=e) from e
        raise DatabaseError(f"{operation} failed", original_error=e) from e
