from __future__ import annotations

from typing import Any

from inbox_service.application.dto.principal import Principal
from inbox_service.domain.value_objects.enums import PrincipalKind

# Tokens issued by the main application still call operators "admin"
_KIND_ALIASES = {"admin": PrincipalKind.OPERATOR}


def principal_from_claims(payload: dict[str, Any]) -> Principal:
    kind_raw = payload.get("kind", payload.get("role", "user"))
    kind = _KIND_ALIASES.get(kind_raw)
    if kind is None:
        kind = PrincipalKind(kind_raw) if kind_raw in PrincipalKind.__members__.values() else PrincipalKind.USER
    return Principal(
        kind=kind,
        subject_id=int(payload["sub"]),
        roles=list(payload.get("roles", [])),
    )
