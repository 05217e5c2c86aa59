"""
InventoryItem model for farm supplies (insumos).

Stock is credited by supply purchases (INVESTMENT expenses, which also
overwrite the unit price with the last purchase price) and debited by
consumptions. A single operation moves stock in one direction only and
never drives it below zero.
"""

from decimal import Decimal

from sqlalchemy import (
    Column,
    String,
    Integer,
    Numeric,
    Index,
    CheckConstraint,
    Enum as SQLEnum,
)

from farm_ledger.utils.constants import TABLE_INVENTORY_ITEM

from .base import BaseModel
from .enums import InventoryType


class InventoryItem(BaseModel):
    """
    InventoryItem model.

    Attributes:
        product_name: Supply name (e.g. "Concentrado inicio")
        item_type: FEED, MEDICINE, VACCINE, DISINFECTANT or OTHER
        current_stock: Quantity on hand, in `unit`
        min_stock: Reorder threshold
        unit: Unit of measure (KG, BULTO, ML, ...)
        unit_price: Price per unit of the last purchase
        supplier: Optional supplier name
        version: Optimistic concurrency counter
    """

    __tablename__ = TABLE_INVENTORY_ITEM

    product_name = Column(String(200), nullable=False, index=True)
    item_type = Column(SQLEnum(InventoryType), nullable=False, default=InventoryType.OTHER)

    current_stock = Column(Numeric(14, 3), nullable=False, default=0)
    min_stock = Column(Numeric(14, 3), nullable=False, default=0)
    unit = Column(String(50), nullable=False)
    unit_price = Column(Numeric(12, 2), nullable=False, default=0)
    supplier = Column(String(200), nullable=True)

    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        Index("idx_inventory_item_type", "item_type"),
        CheckConstraint("current_stock >= 0", name="ck_inventory_stock_non_negative"),
        CheckConstraint("min_stock >= 0", name="ck_inventory_min_stock_non_negative"),
        CheckConstraint("unit_price >= 0", name="ck_inventory_unit_price_non_negative"),
    )

    @property
    def stock_value(self) -> Decimal:
        """Value of the stock on hand at the last purchase price."""
        return Decimal(self.current_stock or 0) * Decimal(self.unit_price or 0)

    @property
    def is_below_minimum(self) -> bool:
        """True when stock is at or below the reorder threshold."""
        return Decimal(self.current_stock or 0) <= Decimal(self.min_stock or 0)

    def __repr__(self) -> str:
        return (
            f"InventoryItem(id='{self.id}', product_name='{self.product_name}', "
            f"current_stock={self.current_stock})"
        )
