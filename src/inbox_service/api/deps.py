"""FastAPI dependency injection helpers."""
from __future__ import annotations

from typing import Annotated, AsyncIterator

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from starlette.requests import HTTPConnection

from inbox_service.application.dto.principal import Principal
from inbox_service.application.ports.auth import TokenVerifier
from inbox_service.application.uow import UnitOfWorkFactory
from inbox_service.config import settings
from inbox_service.infrastructure.auth.hs256_verifier import HS256Verifier
from inbox_service.infrastructure.auth.jwks_verifier import JWKSVerifier
from inbox_service.infrastructure.db.session import AsyncSessionLocal
from inbox_service.infrastructure.db.uow import SqlAlchemyUoW, sqlalchemy_uow
from inbox_service.infrastructure.ws.hub import RealtimeHub

_bearer_scheme = HTTPBearer()


async def get_uow() -> AsyncIterator[SqlAlchemyUoW]:
    async with AsyncSessionLocal() as session:
        uow = SqlAlchemyUoW(session)
        try:
            yield uow
        finally:
            await session.close()


UoWDep = Annotated[SqlAlchemyUoW, Depends(get_uow)]


def get_uow_factory() -> UnitOfWorkFactory:
    """Per-operation UoW for long-lived WebSocket sessions."""
    return sqlalchemy_uow


UoWFactoryDep = Annotated[UnitOfWorkFactory, Depends(get_uow_factory)]


def get_hub(conn: HTTPConnection) -> RealtimeHub:
    return conn.app.state.hub


HubDep = Annotated[RealtimeHub, Depends(get_hub)]


def _get_verifier() -> TokenVerifier:
    if settings.JWT_VERIFY_MODE == "jwks":
        assert settings.JWKS_URL, "JWKS_URL must be set when JWT_VERIFY_MODE=jwks"
        return JWKSVerifier(settings.JWKS_URL)
    return HS256Verifier(settings.JWT_SECRET, settings.JWT_ALGORITHM)


_verifier: TokenVerifier | None = None


def get_verifier() -> TokenVerifier:
    global _verifier  # noqa: PLW0603
    if _verifier is None:
        _verifier = _get_verifier()
    return _verifier


async def get_current_principal(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(_bearer_scheme)],
) -> Principal:
    verifier = get_verifier()
    try:
        return await verifier.verify(credentials.credentials)
    except Exception as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(exc),
        ) from exc


CurrentPrincipal = Annotated[Principal, Depends(get_current_principal)]


async def get_current_operator(principal: CurrentPrincipal) -> Principal:
    if not principal.is_operator:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Operator access required")
    return principal


CurrentOperator = Annotated[Principal, Depends(get_current_operator)]
