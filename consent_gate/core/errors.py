"""consent-gate – Operation Results.

Collaborator failures are caught at the component boundary and returned as
values. Nothing in the core raises across component seams.
"""

from dataclasses import dataclass
from enum import Enum


class ErrorKind(str, Enum):
    """Failure categories handled by the coordinator."""

    PERSISTENCE = "persistence"
    BRIDGE = "bridge"
    AUTHORIZATION = "authorization"
    TRANSPORT = "transport"


@dataclass(frozen=True)
class OperationResult:
    """Outcome of a single collaborator call."""

    ok: bool
    error_kind: ErrorKind | None = None
    detail: str = ""

    @classmethod
    def success(cls) -> "OperationResult":
        return cls(ok=True)

    @classmethod
    def failure(cls, kind: ErrorKind, detail: str = "") -> "OperationResult":
        return cls(ok=False, error_kind=kind, detail=detail)

    def __bool__(self) -> bool:
        return self.ok
