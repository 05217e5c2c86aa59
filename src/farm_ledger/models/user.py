"""
User model for application accounts.

Registration creates a PENDIENTE account that an administrator must approve
before the user can log in.
"""

from sqlalchemy import Column, String, Index, Enum as SQLEnum

from farm_ledger.utils.constants import TABLE_USER

from .base import BaseModel
from .enums import UserRole, UserStatus


class User(BaseModel):
    """
    User model.

    Attributes:
        email: Login email (unique, stored lower-case)
        name: Display name
        role: ADMIN or GALPONERO
        status: PENDIENTE, ACTIVO, INACTIVO or RECHAZADO
        password_hash: Salted PBKDF2 hash ("<iterations>$<salt hex>$<hash hex>")
    """

    __tablename__ = TABLE_USER

    email = Column(String(254), nullable=False, unique=True)
    name = Column(String(200), nullable=False)
    role = Column(SQLEnum(UserRole), nullable=False, default=UserRole.GALPONERO)
    status = Column(SQLEnum(UserStatus), nullable=False, default=UserStatus.PENDIENTE)
    password_hash = Column(String(255), nullable=False)

    __table_args__ = (Index("idx_user_status", "status"),)

    @property
    def is_active(self) -> bool:
        """True when the account may log in."""
        return self.status == UserStatus.ACTIVO

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    def to_dict(self):
        """Convert to dictionary without the password hash."""
        result = super().to_dict()
        result.pop("password_hash", None)
        return result
