"""Structured log records for the farm ledger services.

Every service logs through log_operation() so that a record always carries
an ``operation`` and an ``outcome`` attribute, plus whatever ids and
quantities describe the change. Handlers and tests can filter on those
attributes instead of parsing the message text.

    logger = get_service_logger(__name__)
    log_operation(logger, "record_daily_log", "success", batch_id=batch.id, mortality=3)
    log_operation(
        logger, "record_consumption", "insufficient_stock", level=logging.WARNING,
        inventory_item_id=item.id, requested="60", available="50",
    )
"""

import logging
from typing import Any


def get_service_logger(name: str) -> logging.Logger:
    """Logger under 'farm_ledger.services', named after the calling module."""
    if "." in name:
        name = name.split(".")[-1]
    return logging.getLogger(f"farm_ledger.services.{name}")


def log_operation(
    logger: logging.Logger,
    operation: str,
    outcome: str,
    level: int = logging.INFO,
    **context: Any,
) -> None:
    """
    Emit one record for a service operation.

    Args:
        logger: Service logger
        operation: Service function name, e.g. "record_sale" or "replay_all"
        outcome: "success", "already_applied", "conflict_retry", "entry_failed", ...
        level: INFO by default; WARNING for rejected debits and failed replays,
            DEBUG for per-entry replay chatter
        **context: Attributes set on the record. Keys must not clash with
            LogRecord's own attributes (name, msg, args, ...).
    """
    extra = {"operation": operation, "outcome": outcome, **context}
    logger.log(level, f"{operation}: {outcome}", extra=extra)
