"""
Payment DTOs (Pydantic v2) used at application boundaries.

Wire names follow the storefront client (camelCase) and the gateway form
fields (snake_case); Python attributes stay snake_case.
"""
from __future__ import annotations

from typing import Any, Optional
from pydantic import BaseModel, Field, ConfigDict, field_validator


class PaymentInitRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    order_id: Optional[int] = Field(default=None, alias="orderId")


class PaymentRequestPayload(BaseModel):
    """Form fields posted to the gateway. Names are the gateway's own."""

    amount: str
    tax_amount: str = "0"
    product_service_charge: str = "0"
    product_delivery_charge: str = "0"
    total_amount: str
    transaction_uuid: str
    product_code: str
    success_url: str
    failure_url: str
    signed_field_names: str
    signature: str


class PaymentInitResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    payment_data: PaymentRequestPayload = Field(alias="paymentData")
    order_id: int = Field(alias="orderId")
    gateway_url: str = Field(alias="gatewayUrl")


class VerifyPaymentRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    order_id: Optional[int] = Field(default=None, alias="orderId")
    reference_id: Optional[str] = Field(default=None, alias="refId")

    @field_validator("reference_id")
    @classmethod
    def _strip_reference(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip()
        return v or None


class VerificationResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool
    message: str
    order_id: int = Field(alias="orderId")
    payment_status: str = Field(alias="paymentStatus")
    payment_verified: bool = Field(default=False, alias="paymentVerified")
    gateway_status: Optional[str] = Field(default=None, alias="gatewayStatus")
    reference_id: Optional[str] = Field(default=None, alias="referenceId")
    assumed: bool = False
    gateway_error: Optional[str] = Field(default=None, alias="gatewayError")
    # payment status changed by this verification
    updated: bool = False


class BatchVerifyFailure(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    order_id: int = Field(alias="orderId")
    error: str


class BatchVerifyResult(BaseModel):
    updated: int = 0
    failed: list[BatchVerifyFailure] = Field(default_factory=list)


class GatewayStatus(BaseModel):
    """Answer of the gateway transaction status endpoint."""

    status: str
    transaction_uuid: Optional[str] = None
    total_amount: Optional[str] = None
    product_code: Optional[str] = None
    ref_id: Optional[str] = None
    # "success" / "failure" for statuses that decide the payment, else None
    outcome: Optional[str] = None
    raw: Optional[dict[str, Any]] = None

    @field_validator("status")
    @classmethod
    def _upper_status(cls, v: str) -> str:
        return (v or "").strip().upper()
