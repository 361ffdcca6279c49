"""
API dependencies - authentication and service wiring
"""
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from typing import AsyncGenerator, Optional

from application.dto import Principal
from application.services.payment_service import PaymentService
from application.services.token_service import TokenService
from core.config import settings
from infrastructure.external.payments import get_payment_gateway
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork


# HTTP Bearer for direct API calls
http_bearer = HTTPBearer(
    scheme_name="Bearer",
    description="JWT Bearer token authentication",
    auto_error=False,
)


async def get_token(
    bearer_token: Optional[HTTPAuthorizationCredentials] = Depends(http_bearer)
) -> str:
    """Extract the bearer token"""
    if bearer_token and bearer_token.credentials:
        return bearer_token.credentials

    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Authentication credentials were not provided",
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_token_service() -> TokenService:
    return TokenService()


async def get_current_principal(
    token: str = Depends(get_token),
    service: TokenService = Depends(get_token_service),
) -> Principal:
    """Caller identity from the access token"""
    return service.decode_access_token(token)


async def get_payment_service() -> AsyncGenerator[PaymentService, None]:
    service = PaymentService(
        uow_factory=SQLAlchemyUnitOfWork,
        gateway=get_payment_gateway("esewa"),
        environment=settings.ENVIRONMENT,
    )
    try:
        yield service
    finally:
        await service.aclose()
