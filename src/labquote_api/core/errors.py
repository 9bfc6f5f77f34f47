"""Error taxonomy shared by the registries and the comparison engine.

Every error carries a machine-readable ``kind`` and the identifiers that
caused it, so the calling layer can point the user at the exact inputs to fix.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any, ClassVar


class LabquoteError(Exception):
    kind: ClassVar[str] = "LabquoteError"

    def __init__(self, message: str, identifiers: Iterable[str] = ()) -> None:
        super().__init__(message)
        self.message = message
        self.identifiers = [str(identifier) for identifier in identifiers]

    def to_payload(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "message": self.message,
            "identifiers": list(self.identifiers),
        }


class ValidationError(LabquoteError):
    """Malformed or empty input."""

    kind = "ValidationError"


class NotFoundError(LabquoteError):
    """One or more referenced ids do not exist; ``identifiers`` lists them all."""

    kind = "NotFoundError"


class ConflictError(LabquoteError):
    """The operation would break a catalog or registry invariant."""

    kind = "ConflictError"


__all__ = ["ConflictError", "LabquoteError", "NotFoundError", "ValidationError"]
