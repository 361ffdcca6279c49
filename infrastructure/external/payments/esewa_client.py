"""
eSewa ePay v2 adapter.

Only the transaction status lookup talks to the gateway; payment initiation
is a browser form post signed locally.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Optional, Union

import httpx

from application.dtos.payments import GatewayStatus
from application.ports.payment_gateway import GatewayUnreachableError
from core.settings import EsewaSettings, payment_settings
from infrastructure.external.payments.base import BasePaymentClient


class EsewaClient(BasePaymentClient):
    provider = "esewa"

    def __init__(
        self,
        esewa: Optional[EsewaSettings] = None,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(
            timeouts=payment_settings.timeouts.model_dump(),
            retry={"max": payment_settings.retry.max, "base": payment_settings.retry.base_backoff},
            transport=transport,
        )
        self._cfg = esewa or payment_settings.esewa

    async def query_status(
        self,
        transaction_uuid: str,
        total_amount: Union[int, Decimal, str],
    ) -> GatewayStatus:
        url = self._cfg.status_url
        params = {
            "product_code": self._cfg.product_code,
            "total_amount": str(total_amount),
            "transaction_uuid": transaction_uuid,
        }
        self._log("gateway_status_query", url=url, transaction_uuid=transaction_uuid)

        async def _call() -> httpx.Response:
            async with self.client() as http:
                return await http.get(url, params=params)

        try:
            resp = await self._retry(_call)
            resp.raise_for_status()
            body = resp.json()
        except httpx.HTTPStatusError as exc:
            raise GatewayUnreachableError(
                f"Gateway returned HTTP {exc.response.status_code}",
                provider=self.provider,
                url=url,
                details={"status_code": exc.response.status_code},
            ) from exc
        except httpx.HTTPError as exc:
            raise GatewayUnreachableError(
                f"Gateway request failed: {exc.__class__.__name__}",
                provider=self.provider,
                url=url,
            ) from exc
        except ValueError as exc:
            raise GatewayUnreachableError(
                "Gateway returned a non-JSON body",
                provider=self.provider,
                url=url,
            ) from exc

        if not isinstance(body, dict) or not body.get("status"):
            raise GatewayUnreachableError(
                "Gateway response carries no status",
                provider=self.provider,
                url=url,
            )

        status = str(body["status"]).strip().upper()
        ref_id = body.get("ref_id") or body.get("refId")
        amount = body.get("total_amount")
        result = GatewayStatus(
            status=status,
            transaction_uuid=body.get("transaction_uuid"),
            total_amount=str(amount) if amount is not None else None,
            product_code=body.get("product_code"),
            ref_id=str(ref_id) if ref_id else None,
            outcome=self._map_status(status),
            raw=body,
        )
        self._log("gateway_status_received", transaction_uuid=transaction_uuid, status=status)
        return result
