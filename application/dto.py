"""
Data transfer objects shared between the application and presentation layers
"""
from pydantic import BaseModel, ConfigDict, Field, model_serializer
from typing import Optional
from datetime import datetime, timezone


class DTOBase(BaseModel):
    """Base DTO: unify datetime serialization to UTC-Z for all subclasses."""

    @model_serializer(mode="wrap")
    def _serialize_model(self, handler):  # type: ignore[override]
        data = handler(self)

        def convert(value):
            if isinstance(value, datetime):
                ts = value if value.tzinfo else value.replace(tzinfo=timezone.utc)
                s = ts.astimezone(timezone.utc).isoformat()
                return s.replace("+00:00", "Z")
            if isinstance(value, list):
                return [convert(v) for v in value]
            if isinstance(value, tuple):
                return tuple(convert(v) for v in value)
            if isinstance(value, dict):
                return {k: convert(v) for k, v in value.items()}
            return value

        return convert(data)


class Principal(DTOBase):
    """Authenticated caller, as carried by the access token."""
    user_id: int
    is_superuser: bool = False
    expires_at: Optional[datetime] = None

    @property
    def is_admin(self) -> bool:
        return self.is_superuser


class PaymentConfigInfo(DTOBase):
    """Non-secret payment configuration snapshot."""
    model_config = ConfigDict(populate_by_name=True)

    environment: str
    gateway_url: str = Field(alias="gatewayUrl")
    product_code: str = Field(alias="productCode")
    secret_key_configured: bool = Field(alias="secretKeyConfigured")
    frontend_url: str = Field(alias="frontendUrl")
    backend_url: str = Field(alias="backendUrl")
    gateway_error_policy: str = Field(alias="gatewayErrorPolicy")
    verify_callback_signature: bool = Field(alias="verifyCallbackSignature")
