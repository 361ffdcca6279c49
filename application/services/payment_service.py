"""
Application service orchestrating payment use-cases.

This class depends only on the application PaymentGateway port, the unit of
work and DTOs. Gateway implementations are provided by infrastructure and
must be injected from the composition root (API), keeping dependencies one-way.
"""
from __future__ import annotations

from typing import Any, Callable, Mapping, Optional

from application.dto import PaymentConfigInfo, Principal
from application.dtos.payments import BatchVerifyResult, PaymentInitResult, VerificationResult
from application.ports.payment_gateway import PaymentGateway
from application.services.callback_resolver import CallbackResolver, Unresolved
from application.services.reconciliation import EventHandler, ReconciliationService
from application.services.transaction_registry import TransactionRegistry
from application.services.verification_service import VerificationService
from core.logging_config import get_logger
from core.settings import EsewaSettings, GatewayErrorPolicy, PaymentUrls, payment_settings
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.order.entity import PaymentOutcome, PaymentStatus
from domain.payment.callback import parse_callback
from domain.payment.events import CallbackUnresolved
from shared.codes.payment_codes import CALLBACK_SUCCESS_STATUSES, PaymentCode


logger = get_logger(__name__)


class PaymentService:
    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        gateway: PaymentGateway,
        *,
        esewa: Optional[EsewaSettings] = None,
        urls: Optional[PaymentUrls] = None,
        policy: Optional[GatewayErrorPolicy] = None,
        environment: str = "development",
        event_handler: Optional[EventHandler] = None,
    ) -> None:
        self.gateway = gateway
        self._uow_factory = uow_factory
        self._esewa = esewa or payment_settings.esewa
        self._urls = urls or payment_settings.urls
        self._environment = environment
        if policy is None:
            policy = payment_settings.verification.effective_policy(
                production=environment.strip().lower() in {"production", "prod"}
            )

        self.registry = TransactionRegistry(uow_factory, self._esewa, self._urls)
        self.resolver = CallbackResolver(self._esewa)
        self.reconciliation = ReconciliationService(gateway.provider, event_handler=event_handler)
        self.verification = VerificationService(uow_factory, gateway, self.reconciliation, policy=policy)

    async def begin_payment(self, order_id: Optional[int], principal: Principal) -> PaymentInitResult:
        return await self.registry.begin_payment(order_id, principal)

    async def verify_payment(
        self,
        order_id: Optional[int],
        principal: Principal,
        reference_id: Optional[str] = None,
    ) -> VerificationResult:
        return await self.verification.verify_order(order_id, principal, reference_id)

    async def verify_all_pending(self, principal: Principal) -> BatchVerifyResult:
        return await self.verification.verify_all_pending(principal)

    async def handle_success_callback(self, params: Mapping[str, Any]) -> str:
        """Apply a success redirect and return where to send the browser."""
        try:
            async with self._uow_factory() as uow:
                resolution = await self.resolver.resolve(uow, parse_callback(params), allow_fallback=True)
                if isinstance(resolution, Unresolved):
                    self._unresolved(resolution, PaymentOutcome.SUCCESS)
                    return self._urls.frontend("/orders?payment=unidentified")

                order = resolution.order
                status = (resolution.status or "").upper()
                if status and status not in CALLBACK_SUCCESS_STATUSES:
                    logger.warning(
                        "callback_status_not_complete",
                        order_id=order.id,
                        transaction_id=resolution.transaction_id,
                        status=status,
                    )
                    return self._urls.frontend(f"/order-confirmation/{order.id}?payment=pending")

                result = await self.reconciliation.apply_outcome(
                    uow,
                    order,
                    PaymentOutcome.SUCCESS,
                    reference_id=resolution.reference_id or resolution.transaction_id,
                )
        except Exception as exc:
            logger.error("payment_callback_error", outcome="success", error=str(exc), exc_info=True)
            return self._urls.frontend("/orders?payment=error")

        if result.order.payment_status == PaymentStatus.COMPLETED:
            return self._urls.frontend(f"/order-confirmation/{result.order.id}?payment=success")
        return self._urls.frontend(f"/payment/{result.order.id}?payment=failed")

    async def handle_failure_callback(self, params: Mapping[str, Any]) -> str:
        """Apply a failure redirect. Only exact transaction matches are touched."""
        try:
            async with self._uow_factory() as uow:
                resolution = await self.resolver.resolve(uow, parse_callback(params), allow_fallback=False)
                if isinstance(resolution, Unresolved):
                    self._unresolved(resolution, PaymentOutcome.FAILURE)
                    return self._urls.frontend("/orders?payment=failed")

                result = await self.reconciliation.apply_outcome(uow, resolution.order, PaymentOutcome.FAILURE)
        except Exception as exc:
            logger.error("payment_callback_error", outcome="failure", error=str(exc), exc_info=True)
            return self._urls.frontend("/orders?payment=error")

        if result.order.payment_status == PaymentStatus.COMPLETED:
            return self._urls.frontend(f"/order-confirmation/{result.order.id}?payment=success")
        return self._urls.frontend(f"/payment/{result.order.id}?payment=failed")

    def _unresolved(self, resolution: Unresolved, outcome: PaymentOutcome) -> None:
        logger.warning(
            "manual_verification_needed",
            code=int(PaymentCode.CALLBACK_UNRESOLVED),
            outcome=outcome.value,
            reason=resolution.reason,
            transaction_id=resolution.transaction_id,
        )
        self.reconciliation.emit(
            CallbackUnresolved(
                order_id=None,
                gateway=self.gateway.provider,
                transaction_id=resolution.transaction_id,
                reason=resolution.reason,
            )
        )

    def config_info(self) -> PaymentConfigInfo:
        return PaymentConfigInfo(
            environment=self._environment,
            gateway_url=self._esewa.gateway_url,
            product_code=self._esewa.product_code,
            secret_key_configured=bool(self._esewa.secret_key),
            frontend_url=self._urls.frontend_url,
            backend_url=self._urls.backend_url,
            gateway_error_policy=self.verification.policy.value,
            verify_callback_signature=self._esewa.verify_callback_signature,
        )

    async def aclose(self) -> None:
        await self.gateway.aclose()
