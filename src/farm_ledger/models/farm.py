"""
Farm and Shed models.

A farm (finca) owns one or more sheds (galpones); every batch is housed in
a shed of a farm.
"""

from sqlalchemy import Column, String, Integer, ForeignKey, Index, CheckConstraint
from sqlalchemy.orm import relationship

from farm_ledger.utils.constants import TABLE_FARM, TABLE_SHED

from .base import BaseModel


class Farm(BaseModel):
    """
    Farm model.

    Attributes:
        name: Farm name
        location: Free-form location (town, GPS text)
        owner_id: User who registered the farm
    """

    __tablename__ = TABLE_FARM

    name = Column(String(200), nullable=False, index=True)
    location = Column(String(200), nullable=True)
    owner_id = Column(String(36), nullable=True)

    sheds = relationship("Shed", back_populates="farm", cascade="all, delete-orphan")


class Shed(BaseModel):
    """
    Shed model: a physical housing unit belonging to a farm.

    Attributes:
        farm_id: Owning farm
        name: Shed name or number
        capacity: Maximum number of birds it can host (optional)
    """

    __tablename__ = TABLE_SHED

    farm_id = Column(
        String(36), ForeignKey(f"{TABLE_FARM}.id", ondelete="CASCADE"), nullable=False
    )
    name = Column(String(200), nullable=False)
    capacity = Column(Integer, nullable=True)

    farm = relationship("Farm", back_populates="sheds")

    __table_args__ = (
        Index("idx_shed_farm", "farm_id"),
        CheckConstraint("capacity IS NULL OR capacity >= 0", name="ck_shed_capacity_non_negative"),
    )
