"""
DailyLogRecord model for daily production records.

Each record captures one day of a batch: mortality, feed consumed and, for
layers, eggs collected. Mortality has a population side effect on the
referenced batch which is reverted when the record is edited or deleted.
"""

from sqlalchemy import (
    Column,
    String,
    Integer,
    Text,
    Date,
    Numeric,
    ForeignKey,
    Index,
    CheckConstraint,
)

from farm_ledger.utils.constants import TABLE_BATCH, TABLE_DAILY_LOG

from .base import BaseModel


class DailyLogRecord(BaseModel):
    """
    DailyLogRecord model.

    Attributes:
        batch_id: Batch the record belongs to
        log_date: Day being recorded
        mortality_count: Birds that died that day
        feed_consumed_kg: Feed consumed that day, in kilograms
        eggs_total: Eggs collected (layers only)
        average_weight_g: Sampled average bird weight, in grams
        notes: Free-form observations
        owner_id: User who created the record
        modified_by: User who last edited the record
    """

    __tablename__ = TABLE_DAILY_LOG

    batch_id = Column(
        String(36), ForeignKey(f"{TABLE_BATCH}.id", ondelete="CASCADE"), nullable=False
    )
    log_date = Column(Date, nullable=False)

    mortality_count = Column(Integer, nullable=False, default=0)
    feed_consumed_kg = Column(Numeric(12, 3), nullable=False, default=0)
    eggs_total = Column(Integer, nullable=True)
    average_weight_g = Column(Numeric(10, 2), nullable=True)
    notes = Column(Text, nullable=True)

    owner_id = Column(String(36), nullable=True)
    modified_by = Column(String(36), nullable=True)

    __table_args__ = (
        Index("idx_daily_log_batch_date", "batch_id", "log_date"),
        CheckConstraint("mortality_count >= 0", name="ck_daily_log_mortality_non_negative"),
        CheckConstraint("feed_consumed_kg >= 0", name="ck_daily_log_feed_non_negative"),
        CheckConstraint("eggs_total IS NULL OR eggs_total >= 0", name="ck_daily_log_eggs_non_negative"),
    )

    def __repr__(self) -> str:
        return (
            f"DailyLogRecord(id='{self.id}', batch_id='{self.batch_id}', "
            f"log_date={self.log_date}, mortality_count={self.mortality_count})"
        )
