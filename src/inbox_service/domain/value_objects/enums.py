from __future__ import annotations

from enum import StrEnum


class PrincipalKind(StrEnum):
    USER = "user"
    OPERATOR = "operator"


class MessageCategory(StrEnum):
    INFO = "Info"
    WARNING = "Warning"
    ISSUE = "Issue"
    SUMMARY = "Summary"
