"""Domain-level business exceptions, shared by domain and infrastructure.

The core layer only maps these to HTTP responses; the domain never imports core.
"""
from __future__ import annotations

from typing import Optional
from shared.codes import BusinessCode
from shared.codes.payment_codes import PaymentCode


class BusinessException(Exception):
    """Base class for business errors."""

    def __init__(
        self,
        code: int,
        message: str,
        error_type: str = "BusinessError",
        details: Optional[dict] = None,
        field: Optional[str] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.error_type = error_type
        self.details = details
        self.field = field
        super().__init__(self.message)


class DomainValidationException(BusinessException):
    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        details: dict | None = None,
    ):
        super().__init__(
            code=BusinessCode.PARAM_VALIDATION_ERROR,
            message=message,
            error_type="ValidationError",
            details=details,
            field=field,
        )


class OrderNotFoundException(BusinessException):
    def __init__(self, order_id: Optional[int] = None, *, transaction_id: Optional[str] = None):
        details = {}
        if order_id is not None:
            details["order_id"] = order_id
        if transaction_id is not None:
            details["transaction_id"] = transaction_id
        super().__init__(
            code=BusinessCode.NOT_FOUND,
            message="Order not found",
            error_type="NotFound",
            details=details or None,
        )


class OrderAccessDeniedException(BusinessException):
    """Caller is neither the order owner nor (where allowed) an admin."""

    def __init__(self, order_id: Optional[int] = None):
        super().__init__(
            code=BusinessCode.FORBIDDEN,
            message="Unauthorized",
            error_type="Unauthorized",
            details={"order_id": order_id} if order_id is not None else None,
        )


class InvalidPaymentMethodException(BusinessException):
    def __init__(self, expected: str, actual: str):
        super().__init__(
            code=PaymentCode.INVALID_PAYMENT_METHOD,
            message="Invalid payment method for this order",
            error_type="InvalidPaymentMethod",
            details={"expected": expected, "actual": actual},
            field="payment_method",
        )


class PaymentAlreadyFinalizedException(BusinessException):
    def __init__(self, order_id: Optional[int], payment_status: str):
        super().__init__(
            code=PaymentCode.PAYMENT_FINALIZED,
            message=f"Payment already {payment_status}",
            error_type="PaymentAlreadyFinalized",
            details={"order_id": order_id, "payment_status": payment_status},
            field="payment_status",
        )


class SignatureError(BusinessException):
    def __init__(self, message: str, *, field: Optional[str] = None):
        super().__init__(
            code=PaymentCode.SIGNATURE_ERROR,
            message=message,
            error_type="SignatureError",
            field=field,
        )


class PaymentPersistenceException(BusinessException):
    """Store write failed after an outcome was decided."""

    def __init__(self, message: str = "Failed to persist payment state", *, details: Optional[dict] = None):
        super().__init__(
            code=BusinessCode.DATABASE_ERROR,
            message=message,
            error_type="PersistenceError",
            details=details,
        )


class TransactionIdConflictException(BusinessException):
    """Another order already holds this transaction id."""

    def __init__(self, transaction_id: str):
        super().__init__(
            code=BusinessCode.BUSINESS_ERROR,
            message="Transaction id already in use",
            error_type="TransactionIdConflict",
            details={"transaction_id": transaction_id},
            field="transaction_id",
        )
