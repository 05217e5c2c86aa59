"""
ExpenseRecord model for the expense ledger (gastos).

Three categories are kept:
- OPERATING expenses leave the cash box and hit the operating result
- INVESTMENT expenses (supply purchases) leave the cash box and credit the
  referenced inventory item's stock, overwriting its unit price
- BATCH_CONSUMPTION expenses are derived from consumptions; they are a cost
  of the batch but not a cash movement
"""

from sqlalchemy import (
    Column,
    String,
    Date,
    Numeric,
    ForeignKey,
    Index,
    CheckConstraint,
    Enum as SQLEnum,
)

from farm_ledger.utils.constants import TABLE_BATCH, TABLE_EXPENSE, TABLE_INVENTORY_ITEM

from .base import BaseModel
from .enums import ExpenseCategory


class ExpenseRecord(BaseModel):
    """
    ExpenseRecord model.

    Attributes:
        concept: What the money was spent on
        category: OPERATING, INVESTMENT or BATCH_CONSUMPTION
        amount: Expense amount
        expense_date: Date of the expense
        batch_id: Batch the expense is attributed to (optional)
        inventory_item_id: Supply purchased or consumed (optional)
        quantity: Quantity purchased or consumed (optional)
        unit_price: Unit price of the purchase or consumption (optional)
        payment_method: How it was paid (optional)
        owner_id: User who recorded the expense
    """

    __tablename__ = TABLE_EXPENSE

    concept = Column(String(200), nullable=False)
    category = Column(SQLEnum(ExpenseCategory), nullable=False, index=True)
    amount = Column(Numeric(14, 2), nullable=False)
    expense_date = Column(Date, nullable=False)

    batch_id = Column(
        String(36), ForeignKey(f"{TABLE_BATCH}.id", ondelete="SET NULL"), nullable=True
    )
    inventory_item_id = Column(
        String(36),
        ForeignKey(f"{TABLE_INVENTORY_ITEM}.id", ondelete="SET NULL"),
        nullable=True,
    )
    quantity = Column(Numeric(14, 3), nullable=True)
    unit_price = Column(Numeric(12, 2), nullable=True)
    payment_method = Column(String(50), nullable=True)

    owner_id = Column(String(36), nullable=True)

    __table_args__ = (
        Index("idx_expense_batch", "batch_id"),
        Index("idx_expense_date", "expense_date"),
        CheckConstraint("amount >= 0", name="ck_expense_amount_non_negative"),
    )

    def __repr__(self) -> str:
        return (
            f"ExpenseRecord(id='{self.id}', category={self.category}, "
            f"amount={self.amount}, concept='{self.concept}')"
        )
