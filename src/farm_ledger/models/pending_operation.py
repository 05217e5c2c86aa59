"""
PendingOperation model for the offline outbox.

Lives in the on-device database (LocalBase), not in the ledger store. Each
entry is a typed consistency operation that could not be submitted. The
local autoincrement sequence gives the replay order; operation_id is the
client-chosen id of the record the operation writes, which is what makes
replays idempotent.
"""

import json
from typing import Any, Dict

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    Enum as SQLEnum,
)

from farm_ledger.utils.constants import TABLE_PENDING_OPERATION
from farm_ledger.utils.datetime_utils import utc_now

from .base import LocalBase, new_id
from .enums import OperationType


class PendingOperation(LocalBase):
    """
    PendingOperation model.

    Attributes:
        sequence: Local insertion order
        operation_id: Client-chosen id (record id for creates, target id otherwise)
        operation_type: Which consistency operation to replay
        payload: JSON-encoded operation arguments
        created_at: When the operation was queued
        synced: True once the ledger store accepted the operation
        attempts: Replay attempts that failed
        last_error: Message of the last failed attempt
    """

    __tablename__ = TABLE_PENDING_OPERATION

    sequence = Column(Integer, primary_key=True, autoincrement=True)
    operation_id = Column(String(36), nullable=False, unique=True, default=new_id)
    operation_type = Column(SQLEnum(OperationType), nullable=False)
    payload = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    synced = Column(Boolean, nullable=False, default=False)
    attempts = Column(Integer, nullable=False, default=0)
    last_error = Column(Text, nullable=True)

    __table_args__ = (Index("idx_pending_operation_synced", "synced", "sequence"),)

    @property
    def data(self) -> Dict[str, Any]:
        """Decoded payload."""
        return json.loads(self.payload)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.operation_id,
            "operation_type": self.operation_type.value,
            "payload": self.data,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "synced": self.synced,
            "attempts": self.attempts,
            "last_error": self.last_error,
        }

    def __repr__(self) -> str:
        return (
            f"PendingOperation(sequence={self.sequence}, operation_id='{self.operation_id}', "
            f"operation_type={self.operation_type}, synced={self.synced})"
        )
