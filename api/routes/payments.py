"""
Payments API routes.

Payment initiation, gateway redirects and out-of-band verification via the
application service. Keep this thin: no gateway details here.
"""
from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, RedirectResponse
from starlette import status as http_status

from api.dependencies import get_current_principal, get_payment_service
from application.dto import Principal
from application.dtos.payments import PaymentInitRequest, VerifyPaymentRequest
from application.services.payment_service import PaymentService
from core.exceptions import business_code_to_http_status
from core.logging_config import get_logger
from core.response import failure_response, success_response
from shared.codes.payment_codes import PaymentCode


router = APIRouter(prefix="/payments", tags=["Payments"])
logger = get_logger(__name__)


@router.post("/esewa/init", summary="Initiate eSewa payment")
async def init_esewa_payment(
    payload: PaymentInitRequest,
    principal: Principal = Depends(get_current_principal),
    service: PaymentService = Depends(get_payment_service),
):
    result = await service.begin_payment(payload.order_id, principal)
    return success_response(
        data=result.model_dump(mode="json", by_alias=True),
        message="Payment initialized",
    )


@router.get("/esewa/success", summary="eSewa success redirect", include_in_schema=False)
async def esewa_success(request: Request, service: PaymentService = Depends(get_payment_service)):
    target = await service.handle_success_callback(dict(request.query_params))
    logger.info("payment_callback_redirect", outcome="success", target=target)
    return RedirectResponse(target, status_code=http_status.HTTP_302_FOUND)


@router.get("/esewa/failure", summary="eSewa failure redirect", include_in_schema=False)
async def esewa_failure(request: Request, service: PaymentService = Depends(get_payment_service)):
    target = await service.handle_failure_callback(dict(request.query_params))
    logger.info("payment_callback_redirect", outcome="failure", target=target)
    return RedirectResponse(target, status_code=http_status.HTTP_302_FOUND)


@router.post("/esewa/verify", summary="Verify one payment with the gateway")
async def verify_esewa_payment(
    payload: VerifyPaymentRequest,
    principal: Principal = Depends(get_current_principal),
    service: PaymentService = Depends(get_payment_service),
):
    result = await service.verify_payment(payload.order_id, principal, payload.reference_id)
    data = result.model_dump(mode="json", by_alias=True)
    if result.success:
        return success_response(data=data, message=result.message)
    response = failure_response(result.message, code=PaymentCode.VERIFICATION_FAILED, data=data)
    return JSONResponse(
        status_code=business_code_to_http_status(PaymentCode.VERIFICATION_FAILED),
        content=response.model_dump(mode="json"),
    )


@router.post("/esewa/verify-all-pending", summary="Verify every pending eSewa payment of the caller")
async def verify_all_pending(
    principal: Principal = Depends(get_current_principal),
    service: PaymentService = Depends(get_payment_service),
):
    result = await service.verify_all_pending(principal)
    return success_response(
        data=result.model_dump(mode="json", by_alias=True),
        message=f"Verified {result.updated} pending payment(s)",
    )


@router.get("/config/info", summary="Payment configuration snapshot")
async def payment_config_info(service: PaymentService = Depends(get_payment_service)):
    return success_response(data=service.config_info().model_dump(mode="json", by_alias=True))
