"""
Callback resolver - which order does a gateway redirect refer to?

Order of precedence:
1. transaction id inside the encoded ``data`` document (signature checked
   when the document carries one; a bad signature ends resolution)
2. plain ``transaction_uuid`` query parameter
3. most recent pending eSewa order with a transaction id (success only)

When nothing matches the caller gets ``Unresolved``; no exception escapes.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Union

from core.logging_config import get_logger
from core.settings import EsewaSettings, payment_settings
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.order.entity import Order, PaymentMethod
from domain.payment.callback import (
    REFERENCE_KEYS,
    CallbackDecodeError,
    CallbackPayload,
    EncodedCallback,
    PlainCallback,
    decode_payload,
)
from domain.payment.signature import verify_signature


logger = get_logger(__name__)


@dataclass(frozen=True)
class ResolvedOrder:
    order: Order
    matched_by: str
    transaction_id: Optional[str] = None
    status: Optional[str] = None
    reference_id: Optional[str] = None


@dataclass(frozen=True)
class Unresolved:
    reason: str
    transaction_id: Optional[str] = None


Resolution = Union[ResolvedOrder, Unresolved]


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


class CallbackResolver:
    fallback_window = 2

    def __init__(self, esewa: Optional[EsewaSettings] = None) -> None:
        self._esewa = esewa or payment_settings.esewa

    def _decode(self, payload: EncodedCallback) -> Optional[dict[str, Any]]:
        try:
            return decode_payload(payload.data)
        except CallbackDecodeError as exc:
            logger.warning("callback_decode_failed", reason=str(exc))
            return None

    def _signature_ok(self, document: dict[str, Any]) -> bool:
        if not self._esewa.verify_callback_signature or "signature" not in document:
            return True
        return verify_signature(document, self._esewa.secret_key)

    async def resolve(
        self,
        uow: AbstractUnitOfWork,
        payload: CallbackPayload,
        *,
        allow_fallback: bool = True,
    ) -> Resolution:
        repo = uow.order_repository
        plain = payload.params if isinstance(payload, EncodedCallback) else payload
        status = plain.status
        reference_id = plain.reference_id
        seen_ids: list[str] = []

        if isinstance(payload, EncodedCallback):
            document = self._decode(payload)
            if document is not None and not self._signature_ok(document):
                # a forged document must not fall through to the other steps
                forged_id = _text(document.get("transaction_uuid"))
                logger.warning("callback_signature_invalid", transaction_id=forged_id)
                return Unresolved(reason="signature_invalid", transaction_id=forged_id)
            if document is not None:
                status = _text(document.get("status")) or status
                for key in REFERENCE_KEYS:
                    if _text(document.get(key)):
                        reference_id = _text(document.get(key))
                        break
                encoded_id = _text(document.get("transaction_uuid"))
                if encoded_id:
                    seen_ids.append(encoded_id)
                    order = await repo.get_by_transaction_id(encoded_id)
                    if order is not None:
                        logger.info("callback_resolved", order_id=order.id, matched_by="encoded", transaction_id=encoded_id)
                        return ResolvedOrder(order, "encoded", encoded_id, status, reference_id)

        if isinstance(plain, PlainCallback) and plain.transaction_id:
            seen_ids.append(plain.transaction_id)
            order = await repo.get_by_transaction_id(plain.transaction_id)
            if order is not None:
                logger.info(
                    "callback_resolved",
                    order_id=order.id,
                    matched_by="transaction_uuid",
                    transaction_id=plain.transaction_id,
                )
                return ResolvedOrder(order, "transaction_uuid", plain.transaction_id, status, reference_id)

        transaction_id = seen_ids[0] if seen_ids else None

        if allow_fallback:
            candidates = await repo.list_recent_pending(PaymentMethod.ESEWA, limit=self.fallback_window)
            if candidates:
                order = candidates[0]
                if len(candidates) > 1:
                    logger.warning(
                        "callback_fallback_ambiguous",
                        order_id=order.id,
                        candidates=len(candidates),
                        transaction_id=transaction_id,
                    )
                logger.info(
                    "callback_resolved",
                    order_id=order.id,
                    matched_by="fallback",
                    transaction_id=transaction_id,
                    order_transaction_id=order.transaction_id,
                )
                return ResolvedOrder(order, "fallback", order.transaction_id, status, reference_id)

        reason = "no_matching_order" if seen_ids else "no_transaction_id"
        logger.warning("callback_unresolved", reason=reason, transaction_id=transaction_id)
        return Unresolved(reason=reason, transaction_id=transaction_id)
