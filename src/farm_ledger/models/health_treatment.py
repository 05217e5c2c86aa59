"""
HealthTreatmentRecord model for vaccines and medicines applied to a batch.

When the treatment uses a product held in inventory, the applied quantity
is consumed through a ConsumptionRecord written in the same transaction;
consumption_id points at it and cost mirrors its total cost.
"""

from sqlalchemy import (
    Column,
    String,
    Text,
    Date,
    Numeric,
    ForeignKey,
    Index,
    CheckConstraint,
)

from farm_ledger.utils.constants import (
    TABLE_BATCH,
    TABLE_CONSUMPTION,
    TABLE_HEALTH_TREATMENT,
)

from .base import BaseModel


class HealthTreatmentRecord(BaseModel):
    """
    HealthTreatmentRecord model.

    Attributes:
        batch_id: Treated batch
        activity: What was done (e.g. "Vacuna Newcastle", "Desparasitación")
        product: Product name as applied
        dose: Free-form dose (e.g. "1 gota/ave")
        route: Administration route (ocular, agua de bebida, ...)
        treatment_date: Date of application
        quantity: Inventory quantity consumed, if any
        cost: Cost of the consumed product (0 without a consumption)
        consumption_id: The consumption that debited inventory, if any
        notes: Observations
        owner_id: User who applied the treatment
    """

    __tablename__ = TABLE_HEALTH_TREATMENT

    batch_id = Column(
        String(36), ForeignKey(f"{TABLE_BATCH}.id", ondelete="CASCADE"), nullable=False
    )
    activity = Column(String(200), nullable=False)
    product = Column(String(200), nullable=True)
    dose = Column(String(100), nullable=True)
    route = Column(String(100), nullable=True)
    treatment_date = Column(Date, nullable=False)
    quantity = Column(Numeric(14, 3), nullable=True)
    cost = Column(Numeric(14, 2), nullable=False, default=0)
    consumption_id = Column(
        String(36), ForeignKey(f"{TABLE_CONSUMPTION}.id", ondelete="SET NULL"), nullable=True
    )
    notes = Column(Text, nullable=True)

    owner_id = Column(String(36), nullable=True)

    __table_args__ = (
        Index("idx_health_treatment_batch_date", "batch_id", "treatment_date"),
        CheckConstraint("cost >= 0", name="ck_health_treatment_cost_non_negative"),
    )

    def __repr__(self) -> str:
        return (
            f"HealthTreatmentRecord(id='{self.id}', batch_id='{self.batch_id}', "
            f"activity='{self.activity}', treatment_date={self.treatment_date})"
        )
