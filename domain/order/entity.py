"""
Order aggregate - the slice of an order this service reconciles.

Orders are created by checkout elsewhere; here only the payment fields
(transaction id, payment status, payment details, verification flag) move.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, ROUND_FLOOR
from enum import Enum
from typing import Optional

from domain.common.exceptions import (
    DomainValidationException,
    PaymentAlreadyFinalizedException,
)


class PaymentStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class PaymentMethod(str, Enum):
    COD = "cod"
    ESEWA = "esewa"
    KHALTI = "khalti"


class OrderStatus(str, Enum):
    """Fulfilment lifecycle, independent from payment status."""
    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    AWAITING_BARGAIN_APPROVAL = "awaiting_bargain_approval"


class PaymentOutcome(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"


TERMINAL_PAYMENT_STATUSES = (PaymentStatus.COMPLETED, PaymentStatus.FAILED)


def _ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


@dataclass
class PaymentDetails:
    gateway: str
    reference_id: str
    amount: Decimal
    paid_at: datetime

    def __post_init__(self):
        self.paid_at = _ensure_utc(self.paid_at)

    def to_dict(self) -> dict:
        return {
            "gateway": self.gateway,
            "reference_id": self.reference_id,
            "amount": str(self.amount),
            "paid_at": self.paid_at.isoformat() if self.paid_at else None,
        }


@dataclass
class Order:
    """
    Order aggregate (payment view).

    Business rules:
    1. payment status only moves pending -> completed | failed
    2. completed and failed are terminal; repeating the same outcome is a no-op
    3. the transaction id cannot change once the payment is terminal
    4. payment details exist only for completed payments
    """

    id: Optional[int]
    user_id: int
    total_amount: Decimal
    payment_method: PaymentMethod
    payment_status: PaymentStatus = PaymentStatus.PENDING
    status: OrderStatus = OrderStatus.PENDING
    transaction_id: Optional[str] = None
    payment_details: Optional[PaymentDetails] = None
    payment_verified: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        self.total_amount = Decimal(str(self.total_amount))
        if self.total_amount < 0:
            raise DomainValidationException(
                f"Order amount must not be negative: {self.total_amount}",
                field="total_amount",
            )
        self.payment_method = PaymentMethod(self.payment_method)
        self.payment_status = PaymentStatus(self.payment_status)
        self.status = OrderStatus(self.status)
        self.created_at = _ensure_utc(self.created_at)
        self.updated_at = _ensure_utc(self.updated_at)

    def is_owned_by(self, user_id: int) -> bool:
        return self.user_id == user_id

    def is_payment_final(self) -> bool:
        return self.payment_status in TERMINAL_PAYMENT_STATUSES

    def gateway_amount(self) -> int:
        """Amount sent to the gateway: truncated to whole units, never rounded up."""
        return int(self.total_amount.to_integral_value(rounding=ROUND_FLOOR))

    def assign_transaction(self, transaction_id: str) -> None:
        if self.is_payment_final():
            raise PaymentAlreadyFinalizedException(self.id, self.payment_status.value)
        if not transaction_id:
            raise DomainValidationException("Transaction id is required", field="transaction_id")
        self.transaction_id = transaction_id
        self.updated_at = datetime.now(timezone.utc)

    @staticmethod
    def outcome_status(outcome: PaymentOutcome) -> PaymentStatus:
        if outcome == PaymentOutcome.SUCCESS:
            return PaymentStatus.COMPLETED
        return PaymentStatus.FAILED

    def mark_payment_completed(
        self,
        *,
        gateway: str,
        reference_id: Optional[str] = None,
        verified: bool = False,
    ) -> bool:
        """Complete the payment. Returns False when already completed."""
        if self.payment_status == PaymentStatus.COMPLETED:
            return False
        if self.payment_status != PaymentStatus.PENDING:
            raise DomainValidationException(
                f"Cannot move payment from {self.payment_status.value} to completed",
                field="payment_status",
            )
        now = datetime.now(timezone.utc)
        self.payment_status = PaymentStatus.COMPLETED
        self.payment_details = PaymentDetails(
            gateway=gateway,
            reference_id=reference_id or self.transaction_id or "",
            amount=self.total_amount,
            paid_at=now,
        )
        if verified:
            self.payment_verified = True
        self.updated_at = now
        return True

    def mark_payment_failed(self) -> bool:
        """Fail the payment. Returns False when already failed."""
        if self.payment_status == PaymentStatus.FAILED:
            return False
        if self.payment_status != PaymentStatus.PENDING:
            raise DomainValidationException(
                f"Cannot move payment from {self.payment_status.value} to failed",
                field="payment_status",
            )
        self.payment_status = PaymentStatus.FAILED
        self.payment_details = None
        self.updated_at = datetime.now(timezone.utc)
        return True
