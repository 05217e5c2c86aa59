"""
Batch model for bird cohorts (lotes).

A batch is a cohort of birds managed as a unit. Its live population is
debited by mortality and sales and credited back when those records are
edited or deleted:

    current_population == initial_population - sum(mortality) - sum(sales)

The batch is finalized (active=False, finalization_date set) exactly when the
population reaches zero and reactivated when a later correction restores
birds. The version column gives the ledger store its optimistic-conflict
signal: a concurrent write to the same batch fails with StaleDataError.
"""

from sqlalchemy import (
    Column,
    String,
    Integer,
    Boolean,
    Date,
    DateTime,
    Numeric,
    ForeignKey,
    Index,
    CheckConstraint,
    Enum as SQLEnum,
)

from farm_ledger.utils.constants import TABLE_BATCH, TABLE_FARM, TABLE_SHED

from .base import BaseModel
from .enums import BirdType


class Batch(BaseModel):
    """
    Batch model.

    Attributes:
        name: Display name of the batch
        bird_type: BROILER or LAYER
        initial_population: Birds received when the batch was created
        current_population: Birds currently alive and unsold
        farm_id: Farm housing the batch
        shed_id: Shed housing the batch
        purchase_unit_price: Price paid per chick
        entry_date: Date the birds arrived
        active: False once the population reaches zero
        finalization_date: When the batch was finalized, None while active
        version: Optimistic concurrency counter
    """

    __tablename__ = TABLE_BATCH

    name = Column(String(200), nullable=False)
    bird_type = Column(SQLEnum(BirdType), nullable=False, default=BirdType.BROILER)

    initial_population = Column(Integer, nullable=False)
    current_population = Column(Integer, nullable=False)

    farm_id = Column(String(36), ForeignKey(f"{TABLE_FARM}.id", ondelete="RESTRICT"), nullable=True)
    shed_id = Column(String(36), ForeignKey(f"{TABLE_SHED}.id", ondelete="RESTRICT"), nullable=True)

    purchase_unit_price = Column(Numeric(12, 2), nullable=False, default=0)
    entry_date = Column(Date, nullable=True)

    active = Column(Boolean, nullable=False, default=True)
    finalization_date = Column(DateTime(timezone=True), nullable=True)

    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        Index("idx_batch_active", "active"),
        Index("idx_batch_shed", "shed_id"),
        CheckConstraint("initial_population > 0", name="ck_batch_initial_positive"),
        CheckConstraint("current_population >= 0", name="ck_batch_current_non_negative"),
        CheckConstraint(
            "current_population <= initial_population", name="ck_batch_current_within_initial"
        ),
    )

    @property
    def lost_or_sold(self) -> int:
        """Birds removed from the batch by mortality or sales."""
        return self.initial_population - self.current_population

    @property
    def is_layer(self) -> bool:
        """True for egg-laying batches."""
        return self.bird_type == BirdType.LAYER

    def __repr__(self) -> str:
        return (
            f"Batch(id='{self.id}', name='{self.name}', "
            f"current_population={self.current_population}/{self.initial_population}, "
            f"active={self.active})"
        )
