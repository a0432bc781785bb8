from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Optional

from models import (
    CandidateProfile,
    EducationLevel,
    FinalGoal,
    FundBracket,
    PriorityPreference,
    coerce_enum,
)


# Profile fields a catalog predicate may reference: wire name -> (attribute, kind).
PROFILE_FIELDS: dict[str, tuple[str, str]] = {
    "age": ("age", "number"),
    "topikLevel": ("topik_level", "number"),
    "workExperienceYears": ("work_experience_years", "number"),
    "educationLevel": ("education_level", "ordinal"),
    "availableAnnualFund": ("available_annual_fund", "ordinal"),
    "nationality": ("nationality", "code"),
    "finalGoal": ("final_goal", "code"),
    "priorityPreference": ("priority_preference", "code"),
    "currentVisa": ("current_visa", "code"),
    "major": ("major", "text"),
    "isEthnicKorean": ("is_ethnic_korean", "flag"),
}

ENUM_FIELDS: dict[str, type[Enum]] = {
    "educationLevel": EducationLevel,
    "availableAnnualFund": FundBracket,
    "finalGoal": FinalGoal,
    "priorityPreference": PriorityPreference,
}


def profile_value(profile: CandidateProfile, field_name: str) -> Any:
    attr, kind = PROFILE_FIELDS[field_name]
    value = getattr(profile, attr)
    if value is None:
        return None
    if kind == "ordinal":
        return value.rank
    if kind == "code":
        return value.value if isinstance(value, Enum) else str(value).upper()
    if kind == "text":
        return str(value).casefold()
    return value


def normalize_operand(field_name: str, value: Any) -> Any:
    """Convert a catalog-authored operand to the form `profile_value` returns."""
    _, kind = PROFILE_FIELDS[field_name]
    if kind == "ordinal":
        member = coerce_enum(ENUM_FIELDS[field_name], value)
        if not isinstance(member, Enum):
            raise ValueError(f"Unknown {field_name} value: {value!r}")
        return member.rank
    if kind == "code":
        if field_name in ENUM_FIELDS:
            member = coerce_enum(ENUM_FIELDS[field_name], value)
            if not isinstance(member, Enum):
                raise ValueError(f"Unknown {field_name} value: {value!r}")
            return member.value
        return str(value).strip().upper()
    if kind == "text":
        return str(value).strip().casefold()
    if kind == "flag":
        if not isinstance(value, bool):
            raise ValueError(f"{field_name} expects true/false, got {value!r}")
        return value
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{field_name} expects a number, got {value!r}")
    return float(value)


def _display(field_name: str, operand: Any) -> str:
    if PROFILE_FIELDS[field_name][1] == "ordinal":
        return list(ENUM_FIELDS[field_name])[int(operand)].value
    if isinstance(operand, float) and operand.is_integer():
        return str(int(operand))
    return str(operand)


class Predicate:
    def evaluate(self, profile: CandidateProfile) -> bool:
        raise NotImplementedError

    def describe(self) -> str:
        raise NotImplementedError

    def explain(self, profile: CandidateProfile) -> str | None:
        """Return the failing condition, or None when the predicate holds."""
        return None if self.evaluate(profile) else self.describe()


@dataclass(frozen=True)
class Always(Predicate):
    def evaluate(self, profile: CandidateProfile) -> bool:
        return True

    def describe(self) -> str:
        return "always"


ALWAYS = Always()


@dataclass(frozen=True)
class Range(Predicate):
    field: str
    minimum: Optional[float] = None
    maximum: Optional[float] = None

    def evaluate(self, profile: CandidateProfile) -> bool:
        value = profile_value(profile, self.field)
        if value is None:
            return False
        if self.minimum is not None and value < self.minimum:
            return False
        if self.maximum is not None and value > self.maximum:
            return False
        return True

    def describe(self) -> str:
        if self.minimum is not None and self.maximum is not None:
            return f"{self.field} between {_display(self.field, self.minimum)} and {_display(self.field, self.maximum)}"
        if self.minimum is not None:
            return f"{self.field} >= {_display(self.field, self.minimum)}"
        return f"{self.field} <= {_display(self.field, self.maximum)}"


@dataclass(frozen=True)
class OneOf(Predicate):
    field: str
    values: frozenset

    def evaluate(self, profile: CandidateProfile) -> bool:
        return profile_value(profile, self.field) in self.values

    def describe(self) -> str:
        shown = sorted(_display(self.field, value) for value in self.values)
        return f"{self.field} in [{', '.join(shown)}]"


@dataclass(frozen=True)
class Equals(Predicate):
    field: str
    value: Any

    def evaluate(self, profile: CandidateProfile) -> bool:
        return profile_value(profile, self.field) == self.value

    def describe(self) -> str:
        shown = str(self.value).lower() if isinstance(self.value, bool) else _display(self.field, self.value)
        return f"{self.field} is {shown}"


@dataclass(frozen=True)
class AllOf(Predicate):
    items: tuple[Predicate, ...]

    def evaluate(self, profile: CandidateProfile) -> bool:
        return all(item.evaluate(profile) for item in self.items)

    def describe(self) -> str:
        return " and ".join(item.describe() for item in self.items)

    def explain(self, profile: CandidateProfile) -> str | None:
        for item in self.items:
            reason = item.explain(profile)
            if reason is not None:
                return reason
        return None


@dataclass(frozen=True)
class AnyOf(Predicate):
    items: tuple[Predicate, ...]

    def evaluate(self, profile: CandidateProfile) -> bool:
        return any(item.evaluate(profile) for item in self.items)

    def describe(self) -> str:
        return "(" + " or ".join(item.describe() for item in self.items) + ")"


@dataclass(frozen=True)
class Not(Predicate):
    item: Predicate

    def evaluate(self, profile: CandidateProfile) -> bool:
        return not self.item.evaluate(profile)

    def describe(self) -> str:
        return f"not ({self.item.describe()})"


def _field_name(spec: Mapping[str, Any], kinds: set[str] | None = None) -> str:
    name = spec.get("field")
    if name not in PROFILE_FIELDS:
        raise ValueError(f"Unknown profile field in predicate: {name!r}")
    if kinds is not None and PROFILE_FIELDS[name][1] not in kinds:
        raise ValueError(f"Field {name} cannot be used in a {spec.get('type')} predicate")
    return name


def _children(spec: Mapping[str, Any]) -> tuple[Predicate, ...]:
    items = spec.get("items")
    if not isinstance(items, list) or not items:
        raise ValueError(f"{spec.get('type')} predicate needs a non-empty 'items' list")
    return tuple(parse_predicate(item) for item in items)


def parse_predicate(spec: Any) -> Predicate:
    """Build a predicate from its catalog form.

    Catalog form is a tagged mapping, e.g.
    ``{"type": "range", "field": "topikLevel", "min": 3}`` or
    ``{"type": "all", "items": [...]}``. ``None`` and ``{}`` mean "always".
    """
    if spec is None or (isinstance(spec, Mapping) and not spec):
        return ALWAYS
    if not isinstance(spec, Mapping):
        raise ValueError(f"Predicate must be an object, got {type(spec).__name__}")

    kind = spec.get("type")
    if kind == "always":
        return ALWAYS

    if kind == "range":
        name = _field_name(spec, {"number", "ordinal"})
        low, high = spec.get("min"), spec.get("max")
        if low is None and high is None:
            raise ValueError(f"Range predicate on {name} needs 'min' or 'max'")
        minimum = normalize_operand(name, low) if low is not None else None
        maximum = normalize_operand(name, high) if high is not None else None
        if minimum is not None and maximum is not None and minimum > maximum:
            raise ValueError(f"Range predicate on {name} has min > max")
        return Range(field=name, minimum=minimum, maximum=maximum)

    if kind == "one_of":
        name = _field_name(spec, {"code", "text", "ordinal"})
        values = spec.get("values")
        if not isinstance(values, list) or not values:
            raise ValueError(f"one_of predicate on {name} needs a non-empty 'values' list")
        return OneOf(field=name, values=frozenset(normalize_operand(name, value) for value in values))

    if kind == "equals":
        name = _field_name(spec)
        if "value" not in spec:
            raise ValueError(f"equals predicate on {name} needs a 'value'")
        return Equals(field=name, value=normalize_operand(name, spec["value"]))

    if kind == "all":
        return AllOf(items=_children(spec))

    if kind == "any":
        return AnyOf(items=_children(spec))

    if kind == "not":
        if not isinstance(spec.get("item"), Mapping):
            raise ValueError("not predicate needs an 'item' object")
        return Not(item=parse_predicate(spec["item"]))

    raise ValueError(f"Unknown predicate type: {kind!r}")
