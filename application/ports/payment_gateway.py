"""
Payment gateway port (application/ports) exposing a replaceable protocol.

Application depends on this Protocol; infrastructure implements adapters.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Optional, Protocol, Union, runtime_checkable

from application.dtos.payments import GatewayStatus
from domain.common.exceptions import BusinessException
from shared.codes.payment_codes import PaymentCode


class GatewayUnreachableError(BusinessException):
    """Gateway could not be reached, timed out or did not answer usably."""

    def __init__(self, message: str, *, provider: str, url: str, details: Optional[dict] = None):
        full_details = {"provider": provider, "url": url}
        if details:
            full_details.update(details)
        self.url = url
        super().__init__(
            code=PaymentCode.GATEWAY_UNREACHABLE,
            message=message,
            error_type="GatewayUnreachable",
            details=full_details,
        )


@runtime_checkable
class PaymentGateway(Protocol):
    """Status lookup against the payment gateway.

    Implementations raise GatewayUnreachableError when the gateway cannot
    answer; any answer, including unknown statuses, is returned as-is.
    """

    provider: str

    async def query_status(
        self,
        transaction_uuid: str,
        total_amount: Union[int, Decimal, str],
    ) -> GatewayStatus: ...

    async def aclose(self) -> None: ...
