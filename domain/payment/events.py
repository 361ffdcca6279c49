"""
Payment reconciliation domain events.

Dataclass events record payment lifecycle facts for downstream handling
(audit log, notifications). Domain remains free of infrastructure imports.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional
import uuid


@dataclass
class PaymentEvent:
    order_id: Optional[int]
    gateway: str
    transaction_id: Optional[str] = None
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class PaymentCompleted(PaymentEvent):
    reference_id: Optional[str] = None
    verified: bool = False


@dataclass
class PaymentFailed(PaymentEvent):
    pass


@dataclass
class PaymentAssumedCompleted(PaymentEvent):
    """Completed by the gateway error policy without gateway confirmation."""
    error: Optional[str] = None


@dataclass
class CallbackUnresolved(PaymentEvent):
    """No order matched a callback; the payment needs manual or batch verification."""
    reason: str = ""
