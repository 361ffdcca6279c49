"""
Reconciliation state machine.

Moves an order's payment from pending to completed or failed exactly once.
Writes are compare-and-swap on ``payment_status = 'pending'``; whoever loses
the race reads back the winner's state.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Callable, List, Optional

from core.logging_config import get_logger
from domain.common.exceptions import OrderNotFoundException, PaymentPersistenceException
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.order.entity import Order, PaymentOutcome, PaymentStatus
from domain.payment.events import PaymentCompleted, PaymentEvent, PaymentFailed


logger = get_logger(__name__)

EventHandler = Callable[[PaymentEvent], None]


def log_payment_event(event: PaymentEvent) -> None:
    logger.info("payment_event", event_type=type(event).__name__, **asdict(event))


@dataclass
class ReconciliationResult:
    order: Order
    changed: bool
    conflict: bool = False
    events: List[PaymentEvent] = field(default_factory=list)


class ReconciliationService:
    def __init__(
        self,
        gateway: str = "esewa",
        *,
        event_handler: Optional[EventHandler] = None,
    ) -> None:
        self._gateway = gateway
        self._event_handler = event_handler or log_payment_event

    def emit(self, event: PaymentEvent) -> None:
        self._event_handler(event)

    async def apply_outcome(
        self,
        uow: AbstractUnitOfWork,
        order: Order,
        outcome: PaymentOutcome,
        *,
        reference_id: Optional[str] = None,
        verified: bool = False,
    ) -> ReconciliationResult:
        """
        Apply ``outcome`` to ``order`` and commit.

        Terminal orders are never touched: the same outcome again is a no-op,
        the opposite outcome is logged as a conflict and ignored.

        Raises:
            PaymentPersistenceException: the write or commit failed. The
                decision is logged at critical level before re-raising.
        """
        outcome = PaymentOutcome(outcome)
        target = Order.outcome_status(outcome)

        if order.is_payment_final():
            if order.payment_status == target:
                logger.info(
                    "payment_outcome_noop",
                    order_id=order.id,
                    transaction_id=order.transaction_id,
                    payment_status=order.payment_status.value,
                )
                return ReconciliationResult(order, changed=False)
            logger.warning(
                "payment_outcome_conflict",
                order_id=order.id,
                transaction_id=order.transaction_id,
                payment_status=order.payment_status.value,
                outcome=outcome.value,
            )
            return ReconciliationResult(order, changed=False, conflict=True)

        if outcome == PaymentOutcome.SUCCESS:
            order.mark_payment_completed(gateway=self._gateway, reference_id=reference_id, verified=verified)
        else:
            order.mark_payment_failed()

        try:
            written = await uow.order_repository.transition_payment(order, PaymentStatus.PENDING)
            if written:
                await uow.commit()
        except PaymentPersistenceException as exc:
            logger.critical(
                "payment_state_persist_failed",
                order_id=order.id,
                transaction_id=order.transaction_id,
                outcome=outcome.value,
                error=exc.message,
            )
            raise

        if not written:
            current = await uow.order_repository.get_by_id(order.id)
            if current is None:
                raise OrderNotFoundException(order.id)
            logger.info(
                "payment_transition_lost_race",
                order_id=order.id,
                outcome=outcome.value,
                payment_status=current.payment_status.value,
            )
            return ReconciliationResult(
                current,
                changed=False,
                conflict=current.payment_status != target,
            )

        logger.info(
            "payment_state_applied",
            order_id=order.id,
            transaction_id=order.transaction_id,
            payment_status=order.payment_status.value,
            verified=order.payment_verified,
        )
        if outcome == PaymentOutcome.SUCCESS:
            event: PaymentEvent = PaymentCompleted(
                order_id=order.id,
                gateway=self._gateway,
                transaction_id=order.transaction_id,
                reference_id=order.payment_details.reference_id if order.payment_details else None,
                verified=order.payment_verified,
            )
        else:
            event = PaymentFailed(order_id=order.id, gateway=self._gateway, transaction_id=order.transaction_id)
        self.emit(event)
        return ReconciliationResult(order, changed=True, events=[event])
