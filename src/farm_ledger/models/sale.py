"""
SaleRecord model for bird sales.

A sale debits the batch population by its quantity; deleting it credits the
birds back. The total is computed from quantity and unit price when the sale
is recorded and is what the reporting layer counts as income.
"""

from decimal import Decimal

from sqlalchemy import (
    Column,
    String,
    Integer,
    Date,
    Numeric,
    ForeignKey,
    Index,
    CheckConstraint,
)

from farm_ledger.utils.constants import TABLE_BATCH, TABLE_SALE

from .base import BaseModel


class SaleRecord(BaseModel):
    """
    SaleRecord model.

    Attributes:
        batch_id: Batch the birds were sold from
        sale_date: Date of the sale
        quantity: Birds sold
        unit_price: Price per bird
        total: quantity * unit_price
        customer: Customer name
        payment_method: How the customer paid (cash, transfer, credit, ...)
        down_payment: Amount already paid
        owner_id: User who recorded the sale
    """

    __tablename__ = TABLE_SALE

    batch_id = Column(
        String(36), ForeignKey(f"{TABLE_BATCH}.id", ondelete="CASCADE"), nullable=False
    )
    sale_date = Column(Date, nullable=False)

    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(12, 2), nullable=False)
    total = Column(Numeric(14, 2), nullable=False)

    customer = Column(String(200), nullable=False)
    payment_method = Column(String(50), nullable=False)
    down_payment = Column(Numeric(14, 2), nullable=False, default=0)

    owner_id = Column(String(36), nullable=True)

    __table_args__ = (
        Index("idx_sale_batch", "batch_id"),
        Index("idx_sale_date", "sale_date"),
        CheckConstraint("quantity > 0", name="ck_sale_quantity_positive"),
        CheckConstraint("unit_price >= 0", name="ck_sale_unit_price_non_negative"),
        CheckConstraint("down_payment >= 0", name="ck_sale_down_payment_non_negative"),
    )

    @property
    def balance_due(self) -> Decimal:
        """Amount still owed by the customer."""
        return Decimal(self.total or 0) - Decimal(self.down_payment or 0)

    def __repr__(self) -> str:
        return (
            f"SaleRecord(id='{self.id}', batch_id='{self.batch_id}', "
            f"quantity={self.quantity}, total={self.total})"
        )
