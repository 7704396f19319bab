"""User model - Admins and patients known to the identity provider"""
from sqlalchemy import Column, String, Boolean, Date, DateTime, CheckConstraint, Index, Uuid
from sqlalchemy.sql import func
import uuid

from carepath.database import Base

USER_ROLES = ("admin", "patient")
GENDERS = ("male", "female")


class User(Base):
    """Platform user; role decides which side of the application they use"""

    __tablename__ = "users"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    email = Column(String(255), unique=True, nullable=False)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    role = Column(
        String(20),
        CheckConstraint("role IN ('admin', 'patient')", name="ck_users_role"),
        nullable=False,
    )
    date_of_birth = Column(Date, nullable=True)
    gender = Column(String(20), nullable=True)
    phone = Column(String(30), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    __table_args__ = (
        Index("idx_users_role", "role"),
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    def __repr__(self):
        return f"<User(id={self.id}, email={self.email}, role={self.role})>"
