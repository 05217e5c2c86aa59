"""
ConsumptionRecord model for supplies used by a batch.

A consumption debits inventory stock and is accompanied by a derived
BATCH_CONSUMPTION expense valued at the item's unit price at the time of
consumption. The unit price is snapshotted here so later purchases that
overwrite the item's price do not change historical costs.
"""

from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import (
    Column,
    String,
    Date,
    Numeric,
    ForeignKey,
    Index,
    CheckConstraint,
)

from farm_ledger.utils.constants import (
    TABLE_BATCH,
    TABLE_CONSUMPTION,
    TABLE_EXPENSE,
    TABLE_INVENTORY_ITEM,
)

from .base import BaseModel


class ConsumptionRecord(BaseModel):
    """
    ConsumptionRecord model.

    Attributes:
        batch_id: Batch that consumed the supply
        inventory_item_id: Supply consumed
        quantity: Quantity consumed, in the item's unit
        unit_price: Item unit price at the time of consumption (snapshot)
        consumption_date: Date of consumption
        expense_id: The derived BATCH_CONSUMPTION expense
        owner_id: User who recorded the consumption
    """

    __tablename__ = TABLE_CONSUMPTION

    # Consumptions are never edited
    updated_at = None

    batch_id = Column(
        String(36), ForeignKey(f"{TABLE_BATCH}.id", ondelete="CASCADE"), nullable=False
    )
    inventory_item_id = Column(
        String(36),
        ForeignKey(f"{TABLE_INVENTORY_ITEM}.id", ondelete="RESTRICT"),
        nullable=False,
    )
    quantity = Column(Numeric(14, 3), nullable=False)
    unit_price = Column(Numeric(12, 2), nullable=False)
    consumption_date = Column(Date, nullable=False)
    expense_id = Column(
        String(36), ForeignKey(f"{TABLE_EXPENSE}.id", ondelete="SET NULL"), nullable=True
    )

    owner_id = Column(String(36), nullable=True)

    __table_args__ = (
        Index("idx_consumption_batch", "batch_id"),
        Index("idx_consumption_item", "inventory_item_id"),
        CheckConstraint("quantity > 0", name="ck_consumption_quantity_positive"),
    )

    @property
    def total_cost(self) -> Decimal:
        """Cost of this consumption at the snapshotted unit price, in cents."""
        cost = Decimal(self.quantity) * Decimal(self.unit_price)
        return cost.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
