"""
Order database model - SQLAlchemy ORM mapping.
Infrastructure detail only; business rules live in domain.order.entity.Order
"""
from sqlalchemy import (
    Boolean, Column, DateTime, Index, Integer, Numeric, String,
)
from datetime import datetime, timezone

from .base import Base


class OrderModel(Base):
    """
    Orders table (payment-related columns).

    Checkout owns the remaining order columns (items, shipping address, notes);
    this service only reads and writes what is mapped here.
    """
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, nullable=False, index=True, comment="Owning user")

    total_amount = Column(Numeric(precision=15, scale=2), nullable=False, comment="Order total")
    payment_method = Column(String(20), nullable=False, comment="cod/esewa/khalti")
    status = Column(String(40), nullable=False, default="pending", comment="Fulfilment status")

    # payment state
    payment_status = Column(
        String(20),
        nullable=False,
        default="pending",
        index=True,
        comment="pending/completed/failed",
    )
    transaction_id = Column(String(64), nullable=True, unique=True, comment="Gateway correlation key")
    payment_verified = Column(Boolean, nullable=False, default=False, comment="Verified out of band")

    # payment details, only set when completed
    payment_gateway = Column(String(20), nullable=True)
    payment_reference_id = Column(String(100), nullable=True, comment="Gateway reference id")
    payment_amount = Column(Numeric(precision=15, scale=2), nullable=True)
    paid_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        index=True,
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    __table_args__ = (
        Index("ix_orders_user_method_payment", "user_id", "payment_method", "payment_status"),
        Index("ix_orders_method_payment_created", "payment_method", "payment_status", "created_at"),
    )

    def __repr__(self):
        return (
            f"<OrderModel(id={self.id}, user_id={self.user_id}, total_amount={self.total_amount}, "
            f"payment_status='{self.payment_status}', transaction_id='{self.transaction_id}')>"
        )
