"""
Transaction registry - one transaction id per payment attempt.

The id is stored on the order before the signed request leaves this service,
so every callback the gateway sends back can be matched exactly.
"""
from __future__ import annotations

import secrets
import time
from typing import Callable, Optional

from application.dto import Principal
from application.dtos.payments import PaymentInitResult, PaymentRequestPayload
from core.logging_config import get_logger
from core.settings import EsewaSettings, PaymentUrls, payment_settings
from domain.common.exceptions import (
    DomainValidationException,
    InvalidPaymentMethodException,
    OrderAccessDeniedException,
    OrderNotFoundException,
    PaymentPersistenceException,
    TransactionIdConflictException,
)
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.order.entity import Order, PaymentMethod
from domain.payment.signature import DEFAULT_SIGNED_FIELDS, sign


logger = get_logger(__name__)


def new_transaction_id() -> str:
    """``TX<epoch millis><4 hex>``; the suffix separates inits in the same millisecond."""
    return f"TX{int(time.time() * 1000)}{secrets.token_hex(2)}"


class TransactionRegistry:
    max_attempts = 5

    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        esewa: Optional[EsewaSettings] = None,
        urls: Optional[PaymentUrls] = None,
        *,
        id_factory: Callable[[], str] = new_transaction_id,
    ) -> None:
        self._uow_factory = uow_factory
        self._esewa = esewa or payment_settings.esewa
        self._urls = urls or payment_settings.urls
        self._id_factory = id_factory

    async def begin_payment(self, order_id: Optional[int], principal: Principal) -> PaymentInitResult:
        if order_id is None:
            raise DomainValidationException("Order ID is required", field="orderId")

        for attempt in range(1, self.max_attempts + 1):
            transaction_id = self._id_factory()
            try:
                async with self._uow_factory() as uow:
                    order = await uow.order_repository.get_by_id(order_id)
                    self._check_can_initiate(order, order_id, principal)
                    order.assign_transaction(transaction_id)
                    await uow.order_repository.save_transaction_id(order)
            except TransactionIdConflictException:
                logger.warning(
                    "transaction_id_retry",
                    order_id=order_id,
                    transaction_id=transaction_id,
                    attempt=attempt,
                )
                continue

            logger.info(
                "payment_initiated",
                order_id=order.id,
                user_id=principal.user_id,
                transaction_id=transaction_id,
                amount=order.gateway_amount(),
            )
            return self._build_result(order)

        raise PaymentPersistenceException(
            "Could not allocate a unique transaction id",
            details={"order_id": order_id, "attempts": self.max_attempts},
        )

    @staticmethod
    def _check_can_initiate(order: Optional[Order], order_id: int, principal: Principal) -> Order:
        if order is None:
            raise OrderNotFoundException(order_id)
        # admins may verify other users' orders, never pay for them
        if not order.is_owned_by(principal.user_id):
            logger.warning("payment_init_denied", order_id=order_id, user_id=principal.user_id)
            raise OrderAccessDeniedException(order_id)
        if order.payment_method != PaymentMethod.ESEWA:
            raise InvalidPaymentMethodException(PaymentMethod.ESEWA.value, order.payment_method.value)
        return order

    def _build_result(self, order: Order) -> PaymentInitResult:
        amount = str(order.gateway_amount())
        signature = sign(amount, order.transaction_id, self._esewa.product_code, self._esewa.secret_key)
        payload = PaymentRequestPayload(
            amount=amount,
            tax_amount="0",
            product_service_charge="0",
            product_delivery_charge="0",
            total_amount=amount,
            transaction_uuid=order.transaction_id,
            product_code=self._esewa.product_code,
            success_url=self._urls.callback_url("success"),
            failure_url=self._urls.callback_url("failure"),
            signed_field_names=",".join(DEFAULT_SIGNED_FIELDS),
            signature=signature,
        )
        return PaymentInitResult(
            payment_data=payload,
            order_id=order.id,
            gateway_url=self._esewa.form_url,
        )
