"""
Order repository interface - what the reconciliation core needs from the Order Store.
"""
from abc import ABC, abstractmethod
from typing import Optional, List

from .entity import Order, PaymentMethod, PaymentStatus


class OrderRepository(ABC):
    """Abstract order store. Implementations decide how, not what."""

    @abstractmethod
    async def create(self, order: Order) -> Order:
        """Persist a new order (checkout / fixtures)."""
        pass

    @abstractmethod
    async def get_by_id(self, order_id: int) -> Optional[Order]:
        pass

    @abstractmethod
    async def get_by_transaction_id(self, transaction_id: str) -> Optional[Order]:
        """Exact match on the transaction id."""
        pass

    @abstractmethod
    async def list_recent_pending(
        self,
        payment_method: PaymentMethod,
        limit: int = 2,
    ) -> List[Order]:
        """Pending orders with an assigned transaction id, newest first."""
        pass

    @abstractmethod
    async def list_pending_by_user(
        self,
        user_id: int,
        payment_method: PaymentMethod,
    ) -> List[Order]:
        """All pending orders of a user for a payment method, newest first."""
        pass

    @abstractmethod
    async def save_transaction_id(self, order: Order) -> Order:
        """
        Store ``order.transaction_id``.

        Must refuse (PaymentAlreadyFinalizedException) when the stored payment is
        terminal, and raise TransactionIdConflictException when another order
        already holds the id.
        """
        pass

    @abstractmethod
    async def transition_payment(
        self,
        order: Order,
        expected_status: PaymentStatus = PaymentStatus.PENDING,
    ) -> bool:
        """
        Compare-and-swap write of the payment fields.

        Writes payment_status, payment_details and payment_verified only if the
        stored payment_status still equals ``expected_status``. Returns whether
        the write happened.
        """
        pass
