from __future__ import annotations

from typing import Protocol

from inbox_service.application.dto.principal import Principal


class TokenVerifier(Protocol):
    """Turns a bearer token into the caller's identity.

    Implementations raise on an invalid or expired token; the HTTP layer
    answers 401 and the WebSocket handshake closes with 4001.
    """

    async def verify(self, token: str) -> Principal: ...
