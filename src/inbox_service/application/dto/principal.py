from __future__ import annotations

from dataclasses import dataclass, field

from inbox_service.domain.value_objects.enums import PrincipalKind


@dataclass(frozen=True, slots=True)
class Principal:
    """Authenticated caller identity extracted from JWT."""

    kind: PrincipalKind
    subject_id: int
    roles: list[str] = field(default_factory=list)

    @property
    def is_operator(self) -> bool:
        return self.kind == PrincipalKind.OPERATOR or "operator" in self.roles

    @property
    def is_user(self) -> bool:
        return self.kind == PrincipalKind.USER

    @property
    def principal_key(self) -> str:
        return f"{self.kind}:{self.subject_id}"
