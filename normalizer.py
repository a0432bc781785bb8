from __future__ import annotations

from typing import Any, Mapping

from pydantic import ValidationError

from errors import FieldError, ProfileValidationError
from models import CandidateProfile


def _blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def field_errors_from(exc: ValidationError) -> list[FieldError]:
    errors: list[FieldError] = []
    seen: set[str] = set()
    for item in exc.errors():
        loc = item.get("loc") or ("profile",)
        field = str(loc[0])
        if field in seen:
            continue
        seen.add(field)
        errors.append(FieldError(field=field, reason=item.get("msg", "invalid value")))
    return errors


def normalize(raw_profile: Any) -> CandidateProfile:
    """Validate a raw wizard payload into an immutable `CandidateProfile`.

    Blank optional answers fall back to neutral defaults. Every invalid field
    is reported in a single `ProfileValidationError`.
    """
    if not isinstance(raw_profile, Mapping):
        raise ProfileValidationError([FieldError("profile", "must be an object")])

    cleaned = {key: value for key, value in raw_profile.items() if not _blank(value)}
    try:
        return CandidateProfile.model_validate(cleaned)
    except ValidationError as exc:
        raise ProfileValidationError(field_errors_from(exc)) from exc
