"""
Payment-related settings using pydantic-settings v2 with nested env keys.

Kept apart from core.config.Settings; injected into the payment services at
construction time instead of being read as globals.
"""
from __future__ import annotations

from enum import Enum
from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import BaseModel, Field


class PaymentTimeouts(BaseModel):
    connect: float = 2.0
    read: float = 5.0
    write: float = 5.0
    total: float = 10.0


class PaymentRetry(BaseModel):
    max: int = 2
    base_backoff: float = 0.2


class EsewaSettings(BaseModel):
    # Public eSewa sandbox credentials; production must override all three
    secret_key: str = "8gBm/:&EnhH.1/q"
    product_code: str = "EPAYTEST"
    gateway_url: str = "https://rc-epay.esewa.com.np"
    form_path: str = "/api/epay/main/v2/form"
    status_path: str = "/api/epay/transaction/status/"
    verify_callback_signature: bool = True

    @property
    def form_url(self) -> str:
        return f"{self.gateway_url.rstrip('/')}{self.form_path}"

    @property
    def status_url(self) -> str:
        return f"{self.gateway_url.rstrip('/')}{self.status_path}"


class PaymentUrls(BaseModel):
    frontend_url: str = "http://localhost:5173"
    backend_url: str = "http://localhost:8000"
    api_prefix: str = "/api/v1/payments"

    def callback_url(self, name: str) -> str:
        return f"{self.backend_url.rstrip('/')}{self.api_prefix}/esewa/{name}"

    def frontend(self, path: str) -> str:
        return f"{self.frontend_url.rstrip('/')}{path}"


class GatewayErrorPolicy(str, Enum):
    """
    What single/batch verification does when the gateway status query fails.

    ASSUME_PAID and ASSUME_PAID_REPORT_ERROR mark the order completed without
    gateway confirmation. Both weaken payment integrity.
    """
    ASSUME_PAID = "assume_paid"
    ASSUME_PAID_REPORT_ERROR = "assume_paid_report_error"
    STRICT = "strict"


class VerificationSettings(BaseModel):
    # None -> derived from the environment (see effective_policy)
    gateway_error_policy: Optional[GatewayErrorPolicy] = None

    def effective_policy(self, *, production: bool) -> GatewayErrorPolicy:
        if self.gateway_error_policy is not None:
            return self.gateway_error_policy
        if production:
            return GatewayErrorPolicy.ASSUME_PAID_REPORT_ERROR
        return GatewayErrorPolicy.ASSUME_PAID


class PaymentSettings(BaseSettings):
    timeouts: PaymentTimeouts = Field(default_factory=PaymentTimeouts)
    retry: PaymentRetry = Field(default_factory=PaymentRetry)
    esewa: EsewaSettings = Field(default_factory=EsewaSettings)
    urls: PaymentUrls = Field(default_factory=PaymentUrls)
    verification: VerificationSettings = Field(default_factory=VerificationSettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="allow",
        env_nested_delimiter="__",
    )


payment_settings = PaymentSettings()
