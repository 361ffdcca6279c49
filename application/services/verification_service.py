"""
Out-of-band payment verification against the gateway status endpoint.

Used when the redirect never arrived or could not be matched: a single order
on request, or every pending eSewa order of the caller in one go.
"""
from __future__ import annotations

from typing import Callable, Optional

from application.dto import Principal
from application.dtos.payments import BatchVerifyFailure, BatchVerifyResult, VerificationResult
from application.ports.payment_gateway import GatewayUnreachableError, PaymentGateway
from application.services.reconciliation import ReconciliationResult, ReconciliationService
from core.logging_config import get_logger
from core.settings import GatewayErrorPolicy
from domain.common.exceptions import (
    BusinessException,
    DomainValidationException,
    OrderAccessDeniedException,
    OrderNotFoundException,
)
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.order.entity import Order, PaymentMethod, PaymentOutcome, PaymentStatus
from domain.payment.events import PaymentAssumedCompleted


logger = get_logger(__name__)


class VerificationService:
    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        gateway: PaymentGateway,
        reconciliation: ReconciliationService,
        *,
        policy: GatewayErrorPolicy = GatewayErrorPolicy.STRICT,
    ) -> None:
        self._uow_factory = uow_factory
        self._gateway = gateway
        self._reconciliation = reconciliation
        self._policy = GatewayErrorPolicy(policy)

    @property
    def policy(self) -> GatewayErrorPolicy:
        return self._policy

    async def verify_order(
        self,
        order_id: Optional[int],
        principal: Principal,
        reference_id: Optional[str] = None,
    ) -> VerificationResult:
        """Verify one order. Owner or admin only."""
        if order_id is None:
            raise DomainValidationException("Order ID is required", field="orderId")

        async with self._uow_factory(readonly=True) as uow:
            order = await uow.order_repository.get_by_id(order_id)
        if order is None:
            raise OrderNotFoundException(order_id)
        if not (order.is_owned_by(principal.user_id) or principal.is_admin):
            logger.warning("payment_verify_denied", order_id=order_id, user_id=principal.user_id)
            raise OrderAccessDeniedException(order_id)

        return await self._verify(order, reference_id)

    async def verify_all_pending(self, principal: Principal) -> BatchVerifyResult:
        """Verify every pending eSewa order of the caller; failures stay per order."""
        async with self._uow_factory(readonly=True) as uow:
            orders = await uow.order_repository.list_pending_by_user(principal.user_id, PaymentMethod.ESEWA)

        result = BatchVerifyResult()
        for order in orders:
            if not order.transaction_id:
                logger.info("batch_verify_skipped", order_id=order.id, reason="no_transaction_id")
                continue
            try:
                outcome = await self._verify(order, None)
            except BusinessException as exc:
                logger.warning("batch_verify_order_failed", order_id=order.id, error=exc.message)
                result.failed.append(BatchVerifyFailure(order_id=order.id, error=exc.message))
                continue
            except Exception as exc:
                logger.error("batch_verify_order_error", order_id=order.id, error=str(exc), exc_info=True)
                result.failed.append(BatchVerifyFailure(order_id=order.id, error=str(exc)))
                continue

            if outcome.updated:
                result.updated += 1
            elif not outcome.success:
                result.failed.append(BatchVerifyFailure(order_id=order.id, error=outcome.message))

        logger.info(
            "batch_verify_finished",
            user_id=principal.user_id,
            candidates=len(orders),
            updated=result.updated,
            failed=len(result.failed),
        )
        return result

    async def _verify(self, order: Order, reference_id: Optional[str]) -> VerificationResult:
        if order.payment_status == PaymentStatus.COMPLETED:
            return self._result(order, True, "Payment already verified")
        if order.payment_status == PaymentStatus.FAILED:
            return self._result(order, False, "Payment already marked as failed")
        if not order.transaction_id:
            raise DomainValidationException(
                "Order has no transaction id to verify",
                field="transaction_id",
                details={"order_id": order.id},
            )

        try:
            status = await self._gateway.query_status(order.transaction_id, order.gateway_amount())
        except GatewayUnreachableError as exc:
            logger.error(
                "gateway_verification_failed",
                url=exc.url,
                order_id=order.id,
                transaction_id=order.transaction_id,
                error=exc.message,
                policy=self._policy.value,
            )
            return await self._apply_error_policy(order, reference_id, exc)

        if status.outcome == PaymentOutcome.SUCCESS.value:
            ref = status.ref_id or reference_id or order.transaction_id
            applied = await self._apply(order, PaymentOutcome.SUCCESS, ref)
            completed = applied.order.payment_status == PaymentStatus.COMPLETED
            return self._result(
                applied.order,
                completed,
                "Payment verified successfully" if completed else "Payment could not be completed",
                gateway_status=status.status,
                updated=applied.changed,
            )

        if status.outcome == PaymentOutcome.FAILURE.value:
            applied = await self._apply(order, PaymentOutcome.FAILURE, None)
            return self._result(
                applied.order,
                False,
                "Payment was cancelled at the gateway",
                gateway_status=status.status,
                updated=applied.changed,
            )

        logger.info(
            "gateway_status_not_final",
            order_id=order.id,
            transaction_id=order.transaction_id,
            gateway_status=status.status,
        )
        return self._result(
            order,
            False,
            f"Payment verification failed: gateway status {status.status}",
            gateway_status=status.status,
        )

    async def _apply_error_policy(
        self,
        order: Order,
        reference_id: Optional[str],
        exc: GatewayUnreachableError,
    ) -> VerificationResult:
        if self._policy == GatewayErrorPolicy.STRICT:
            return self._result(
                order,
                False,
                "Payment gateway unavailable, order left pending",
                gateway_error=exc.message,
            )

        applied = await self._apply(order, PaymentOutcome.SUCCESS, reference_id or order.transaction_id)
        if applied.changed:
            logger.warning(
                "payment_assumed_completed",
                order_id=order.id,
                transaction_id=order.transaction_id,
                policy=self._policy.value,
            )
            self._reconciliation.emit(
                PaymentAssumedCompleted(
                    order_id=order.id,
                    gateway=self._gateway.provider,
                    transaction_id=order.transaction_id,
                    error=exc.message,
                )
            )
        completed = applied.order.payment_status == PaymentStatus.COMPLETED
        return self._result(
            applied.order,
            completed,
            "Payment verification assumed successful, gateway unavailable",
            assumed=completed,
            gateway_error=exc.message if self._policy == GatewayErrorPolicy.ASSUME_PAID_REPORT_ERROR else None,
            updated=applied.changed,
        )

    async def _apply(
        self,
        order: Order,
        outcome: PaymentOutcome,
        reference_id: Optional[str],
    ) -> ReconciliationResult:
        async with self._uow_factory() as uow:
            return await self._reconciliation.apply_outcome(
                uow,
                order,
                outcome,
                reference_id=reference_id,
                verified=outcome == PaymentOutcome.SUCCESS,
            )

    @staticmethod
    def _result(order: Order, success: bool, message: str, **extra) -> VerificationResult:
        return VerificationResult(
            success=success,
            message=message,
            order_id=order.id,
            payment_status=order.payment_status.value,
            payment_verified=order.payment_verified,
            reference_id=order.payment_details.reference_id if order.payment_details else None,
            **extra,
        )
