from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable


@dataclass(frozen=True)
class FieldError:
    field: str
    reason: str

    def as_dict(self) -> dict[str, str]:
        return {"field": self.field, "reason": self.reason}


class ProfileValidationError(ValueError):
    """Raised when a raw profile (or request options) cannot be accepted.

    Carries every failing field, never just the first one.
    """

    def __init__(self, errors: Iterable[FieldError]):
        self.errors = list(errors)
        fields = ", ".join(err.field for err in self.errors) or "profile"
        super().__init__(f"Invalid profile fields: {fields}")


class CatalogIntegrityError(RuntimeError):
    def __init__(self, problems: Iterable[str]):
        self.problems = list(problems)
        summary = "; ".join(self.problems[:5])
        if len(self.problems) > 5:
            summary += f" (+{len(self.problems) - 5} more)"
        super().__init__(f"Catalog integrity check failed: {summary}")
