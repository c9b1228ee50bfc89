"""SQLAlchemy models for the registration order store.

The tables are owned by the registration platform; this package only reads
them. Monetary columns hold integer minor units (cents).
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    String,
    Integer,
    DateTime,
    ForeignKey,
    Index,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
import enum


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


class OrderPaymentStatus(str, enum.Enum):
    """Payment statuses recorded on orders."""
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


class Profile(Base):
    """User profile attached to an auth user id."""
    __tablename__ = "profiles"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    first_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    last_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    @property
    def full_name(self) -> Optional[str]:
        """First and last name joined, or None when both are empty."""
        parts = [p for p in (self.first_name, self.last_name) if p]
        return " ".join(parts) or None


class Order(Base):
    """A purchase made through the registration checkout."""
    __tablename__ = "orders"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    order_number: Mapped[str] = mapped_column(String(64), nullable=False)
    total: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, default=0)
    payment_status: Mapped[str] = mapped_column(
        String(50), nullable=False, default=OrderPaymentStatus.PENDING.value
    )

    # Stripe references
    stripe_customer_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    stripe_session_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    stripe_payment_intent_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        Index("ix_orders_payment_status", "payment_status"),
        Index("ix_orders_stripe_customer_id", "stripe_customer_id"),
        Index("ix_orders_created_at", "created_at"),
    )


class OrderItem(Base):
    """A line item of an order (registration, activity, add-on...)."""
    __tablename__ = "order_items"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    order_id: Mapped[str] = mapped_column(String(36), ForeignKey("orders.id"), nullable=False, index=True)
    item_name: Mapped[str] = mapped_column(String(255), nullable=False)
    item_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    quantity: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, default=1)
    unit_price: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, default=0)
    total: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, default=0)
    discount_amount: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, default=0)
