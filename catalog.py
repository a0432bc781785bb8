from __future__ import annotations

import logging
import string
import threading
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Iterable, Mapping, Optional

from errors import CatalogIntegrityError
from models import EducationLevel, FinalGoal, PriorityPreference, coerce_enum
from predicates import PROFILE_FIELDS, Predicate, parse_predicate


logger = logging.getLogger(__name__)

INTERPOLATIONS = {"step", "linear"}
PRIORITY_KINDS = {"additive", "multiplicative"}
GRANTABLE_FIELDS = {"topikLevel", "educationLevel", "workExperienceYears"}

AGE_RANGE = (0.5, 1.5)
NATIONALITY_RANGE = (0.5, 1.5)
FUND_RANGE = (0.6, 1.3)
EDUCATION_RANGE = (0.8, 1.2)
ADDITIVE_POINTS_RANGE = (-50.0, 50.0)
MULTIPLICATIVE_FACTOR_RANGE = (0.5, 1.5)

DEFAULT_HOURLY_WAGE_USD = 7.5
DEFAULT_FULL_TIME_WEEKLY_HOURS = 40


@dataclass(frozen=True)
class BreakpointTable:
    points: tuple[tuple[float, float], ...]
    interpolation: str = "step"

    @classmethod
    def constant(cls, value: float) -> "BreakpointTable":
        return cls(points=((0.0, float(value)),))

    def lookup(self, x: float) -> float:
        points = self.points
        if x <= points[0][0]:
            return points[0][1]
        if x >= points[-1][0]:
            return points[-1][1]
        for (x0, y0), (x1, y1) in zip(points, points[1:]):
            if x0 <= x < x1:
                if self.interpolation == "linear":
                    return y0 + (y1 - y0) * (x - x0) / (x1 - x0)
                return y0
        return points[-1][1]


@dataclass(frozen=True)
class RequirementTemplate:
    text: str
    satisfied_when: Optional[Predicate] = None
    action_type: str = "prepare_documents"


@dataclass(frozen=True)
class VisaStage:
    code: str
    name: str
    can_work: bool
    weekly_work_hour_cap: Optional[int]
    nominal_duration_months: int
    nominal_cost_usd: float
    base_requirements: tuple[RequirementTemplate, ...]
    eligibility: Predicate
    kind: str = "stage"
    goal_category: Optional[FinalGoal] = None
    min_education: EducationLevel = EducationLevel.BELOW_HIGH_SCHOOL
    transition_from: Optional[frozenset] = None
    grants: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))
    accrues_experience: bool = False
    hourly_wage_usd: Optional[float] = None
    platform_action: str = "info_only"

    def eligibility_predicate(self, profile: Any) -> bool:
        return self.eligibility.evaluate(profile)

    def accepts_transition_from(self, visa_code: Optional[str]) -> bool:
        if visa_code is None or self.transition_from is None:
            return True
        return visa_code == self.code or visa_code in self.transition_from


@dataclass(frozen=True)
class PathwayTemplate:
    id: str
    name: str
    description: str
    stages: tuple[VisaStage, ...]
    base_feasibility: float
    goals: tuple[FinalGoal, ...]
    field_tags: frozenset = frozenset()
    note: str = ""
    platform_support: str = "info_only"

    @property
    def total_duration_months(self) -> int:
        return sum(stage.nominal_duration_months for stage in self.stages)

    @property
    def total_cost_usd(self) -> float:
        return sum(stage.nominal_cost_usd for stage in self.stages)

    @property
    def visa_chain(self) -> list[str]:
        return [stage.code for stage in self.stages]

    @property
    def terminal_stage(self) -> VisaStage:
        return self.stages[-1]

    @property
    def primary_goal(self) -> FinalGoal:
        return self.goals[0]


@dataclass(frozen=True)
class PriorityRule:
    preference: PriorityPreference
    kind: str
    table: BreakpointTable
    description: str = ""


@dataclass(frozen=True)
class ScoringWeights:
    age_curves: Mapping[FinalGoal, BreakpointTable]
    experience_curves: Mapping[FinalGoal, BreakpointTable]
    nationality_overrides: Mapping[tuple[str, str], float]
    nationality_tiers: Mapping[str, str]
    tier_multipliers: Mapping[str, float]
    fund_table: BreakpointTable
    education_table: BreakpointTable
    priority_rules: Mapping[PriorityPreference, PriorityRule]
    default_age_curve: Optional[BreakpointTable] = None
    default_hourly_wage_usd: float = DEFAULT_HOURLY_WAGE_USD
    full_time_weekly_hours: int = DEFAULT_FULL_TIME_WEEKLY_HOURS
    currency_precision: int = 0


@dataclass(frozen=True)
class RuleCatalog:
    version: str
    stages: Mapping[str, VisaStage]
    templates: tuple[PathwayTemplate, ...]
    weights: ScoringWeights
    fastest_months_by_goal: Mapping[FinalGoal, int]
    cheapest_cost_by_goal: Mapping[FinalGoal, float]
    fastest_months_overall: int = 0
    cheapest_cost_overall: float = 0.0

    def reference_duration(self, goal: FinalGoal) -> int:
        return self.fastest_months_by_goal.get(goal, self.fastest_months_overall)

    def reference_cost(self, goal: FinalGoal) -> float:
        return self.cheapest_cost_by_goal.get(goal, self.cheapest_cost_overall)

    def template(self, template_id: str) -> PathwayTemplate | None:
        for template in self.templates:
            if template.id == template_id:
                return template
        return None

    def stage_wage_rate(self, stage: VisaStage) -> float:
        if stage.hourly_wage_usd is not None:
            return stage.hourly_wage_usd
        return self.weights.default_hourly_wage_usd


def _frozen(mapping: Mapping[Any, Any]) -> Mapping[Any, Any]:
    return MappingProxyType(dict(mapping))


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _whole_number(value: Any, name: str, minimum: int = 0, maximum: int | None = None) -> int:
    if not _is_number(value) or float(value) != int(value):
        raise ValueError(f"{name} must be a whole number, got {value!r}")
    value = int(value)
    if value < minimum or (maximum is not None and value > maximum):
        raise ValueError(f"{name} out of range: {value}")
    return value


def _number(value: Any, name: str, minimum: float = 0.0, maximum: float | None = None) -> float:
    if not _is_number(value):
        raise ValueError(f"{name} must be a number, got {value!r}")
    value = float(value)
    if value < minimum or (maximum is not None and value > maximum):
        raise ValueError(f"{name} out of range: {value}")
    return value


def _enum(enum_cls: type, value: Any, name: str) -> Any:
    member = coerce_enum(enum_cls, value)
    if not isinstance(member, enum_cls):
        raise ValueError(f"unknown {name} {value!r}")
    return member


def _check_placeholders(text: str) -> None:
    for _, placeholder, format_spec, conversion in string.Formatter().parse(text):
        if placeholder is None:
            continue
        if placeholder not in PROFILE_FIELDS:
            raise ValueError(f"unknown placeholder {{{placeholder}}} in requirement text")
        # Values are substituted as plain text.
        if format_spec or conversion:
            raise ValueError(f"placeholder {{{placeholder}}} must not carry a conversion or format spec")


def _requirement(item: Any) -> RequirementTemplate:
    if isinstance(item, str):
        item = {"text": item}
    if not isinstance(item, Mapping) or not str(item.get("text") or "").strip():
        raise ValueError("requirement needs a non-empty 'text'")
    text = str(item["text"]).strip()
    _check_placeholders(text)
    satisfied_when = item.get("satisfied_when")
    return RequirementTemplate(
        text=text,
        satisfied_when=parse_predicate(satisfied_when) if satisfied_when else None,
        action_type=str(item.get("action") or "prepare_documents"),
    )


def _grants(spec: Any) -> Mapping[str, Any]:
    if not isinstance(spec, Mapping):
        raise ValueError("grants must be an object")
    grants: dict[str, Any] = {}
    for key, value in spec.items():
        if key not in GRANTABLE_FIELDS:
            raise ValueError(f"cannot grant {key!r}")
        if key == "topikLevel":
            grants[key] = _whole_number(value, "grants.topikLevel", 0, 6)
        elif key == "educationLevel":
            grants[key] = _enum(EducationLevel, value, "grants.educationLevel")
        else:
            grants[key] = _number(value, "grants.workExperienceYears")
    return _frozen(grants)


def _stage_from_row(code: str, row: Mapping[str, Any]) -> VisaStage:
    can_work = row.get("can_work", False)
    if not isinstance(can_work, bool):
        raise ValueError(f"can_work must be true/false, got {can_work!r}")

    cap = row.get("weekly_work_hour_cap")
    if cap is not None:
        cap = _whole_number(cap, "weekly_work_hour_cap", 1, 80)

    goal = row.get("goal_category")
    transition_from = row.get("transition_from")
    if transition_from is not None:
        if isinstance(transition_from, str) or not isinstance(transition_from, Iterable):
            raise ValueError("transition_from must be a list of visa codes")
        transition_from = frozenset(str(item).strip().upper() for item in transition_from if str(item).strip())

    hourly = row.get("hourly_wage_usd")
    return VisaStage(
        code=code,
        name=str(row.get("name") or code).strip(),
        kind=str(row.get("kind") or "stage").strip(),
        can_work=can_work,
        weekly_work_hour_cap=cap,
        nominal_duration_months=_whole_number(row.get("duration_months"), "duration_months"),
        nominal_cost_usd=_number(row.get("cost_usd"), "cost_usd"),
        base_requirements=tuple(_requirement(item) for item in row.get("requirements") or []),
        eligibility=parse_predicate(row.get("eligibility")),
        goal_category=_enum(FinalGoal, goal, "goal_category") if goal else None,
        min_education=_enum(EducationLevel, row.get("min_education") or "BELOW_HIGH_SCHOOL", "min_education"),
        transition_from=transition_from,
        grants=_grants(row.get("grants") or {}),
        accrues_experience=bool(row.get("accrues_experience", False)),
        hourly_wage_usd=_number(hourly, "hourly_wage_usd") if hourly is not None else None,
        platform_action=str(row.get("platform_action") or "info_only").strip(),
    )


def _build_stages(rows: Iterable[Any], problems: list[str]) -> dict[str, VisaStage]:
    stages: dict[str, VisaStage] = {}
    for index, row in enumerate(rows):
        if not isinstance(row, Mapping):
            problems.append(f"stage #{index}: must be an object")
            continue
        code = str(row.get("code") or "").strip().upper()
        if not code:
            problems.append(f"stage #{index}: missing code")
            continue
        if code in stages:
            problems.append(f"duplicate stage code {code}")
            continue
        try:
            stages[code] = _stage_from_row(code, row)
        except (TypeError, ValueError) as exc:
            problems.append(f"stage {code}: {exc}")
    return stages


def _template_from_row(template_id: str, row: Mapping[str, Any], stages: Mapping[str, VisaStage]) -> tuple[PathwayTemplate | None, list[str]]:
    issues: list[str] = []
    codes = [str(code).strip().upper() for code in row.get("stages") or []]
    if not codes:
        return None, ["stage chain is empty"]
    unknown = [code for code in codes if code not in stages]
    if unknown:
        return None, [f"unknown stage(s) {', '.join(unknown)}"]
    chain = tuple(stages[code] for code in codes)

    for previous, current in zip(chain, chain[1:]):
        if not current.accepts_transition_from(previous.code):
            issues.append(f"{current.code} cannot follow {previous.code}")

    goals: list[FinalGoal] = []
    for raw_goal in row.get("goals") or []:
        try:
            goals.append(_enum(FinalGoal, raw_goal, "goal"))
        except ValueError as exc:
            issues.append(str(exc))
    if not goals:
        issues.append("no valid goals")

    terminal = chain[-1]
    if goals and terminal.goal_category not in goals:
        issues.append(f"terminal stage {terminal.code} does not serve any of the template goals")

    try:
        base = _number(row.get("base_feasibility"), "base_feasibility", 0.0, 100.0)
    except ValueError as exc:
        issues.append(str(exc))
        base = 0.0

    if issues:
        return None, issues
    template = PathwayTemplate(
        id=template_id,
        name=str(row.get("name") or template_id).strip(),
        description=str(row.get("description") or "").strip(),
        stages=chain,
        base_feasibility=base,
        goals=tuple(goals),
        field_tags=frozenset(str(tag).strip().casefold() for tag in row.get("field_tags") or [] if str(tag).strip()),
        note=str(row.get("note") or "").strip(),
        platform_support=str(row.get("platform_support") or "info_only").strip(),
    )
    return template, []


def _build_templates(rows: Iterable[Any], stages: Mapping[str, VisaStage], problems: list[str]) -> list[PathwayTemplate]:
    templates: list[PathwayTemplate] = []
    seen: set[str] = set()
    for index, row in enumerate(rows):
        if not isinstance(row, Mapping):
            problems.append(f"template #{index}: must be an object")
            continue
        template_id = str(row.get("id") or "").strip()
        if not template_id:
            problems.append(f"template #{index}: missing id")
            continue
        if template_id in seen:
            problems.append(f"duplicate template id {template_id}")
            continue
        seen.add(template_id)
        template, issues = _template_from_row(template_id, row, stages)
        problems.extend(f"template {template_id}: {issue}" for issue in issues)
        if template is not None:
            templates.append(template)
    return templates


def _table(spec: Any, name: str, problems: list[str], value_range: tuple[float, float] | None = None, monotonic: bool = False) -> BreakpointTable | None:
    if isinstance(spec, list):
        spec = {"points": spec}
    if not isinstance(spec, Mapping):
        problems.append(f"{name}: table must be an object")
        return None
    interpolation = spec.get("interpolation", "step")
    if interpolation not in INTERPOLATIONS:
        problems.append(f"{name}: unknown interpolation {interpolation!r}")
        return None
    raw_points = spec.get("points")
    if not isinstance(raw_points, list) or not raw_points:
        problems.append(f"{name}: table needs at least one point")
        return None

    points: list[tuple[float, float]] = []
    for point in raw_points:
        if not isinstance(point, (list, tuple)) or len(point) != 2 or not all(_is_number(v) for v in point):
            problems.append(f"{name}: malformed point {point!r}")
            return None
        points.append((float(point[0]), float(point[1])))

    xs = [x for x, _ in points]
    if any(b <= a for a, b in zip(xs, xs[1:])):
        problems.append(f"{name}: breakpoints must be strictly ascending")
        return None
    if value_range is not None:
        low, high = value_range
        outside = [y for _, y in points if y < low or y > high]
        if outside:
            problems.append(f"{name}: values {outside} outside [{low}, {high}]")
            return None
    if monotonic and any(b[1] < a[1] for a, b in zip(points, points[1:])):
        problems.append(f"{name}: values must be non-decreasing")
        return None
    return BreakpointTable(points=tuple(points), interpolation=interpolation)


def _goal_tables(spec: Any, name: str, problems: list[str]) -> tuple[dict[FinalGoal, BreakpointTable], BreakpointTable | None]:
    tables: dict[FinalGoal, BreakpointTable] = {}
    default: BreakpointTable | None = None
    if not isinstance(spec, Mapping):
        problems.append(f"{name}: must be an object keyed by goal")
        return tables, default
    for key, table_spec in spec.items():
        table = _table(table_spec, f"{name}.{key}", problems, AGE_RANGE)
        if table is None:
            continue
        if key == "default":
            default = table
            continue
        try:
            tables[_enum(FinalGoal, key, "goal")] = table
        except ValueError as exc:
            problems.append(f"{name}: {exc}")
    return tables, default


def _nationality(spec: Any, template_ids: set[str], problems: list[str]) -> tuple[dict, dict, dict]:
    overrides: dict[tuple[str, str], float] = {}
    tiers: dict[str, str] = {}
    tier_multipliers: dict[str, float] = {}
    if not isinstance(spec, Mapping):
        problems.append("nationality: must be an object")
        return overrides, tiers, tier_multipliers

    low, high = NATIONALITY_RANGE
    for tier, multiplier in (spec.get("tier_multipliers") or {}).items():
        try:
            tier_multipliers[str(tier)] = _number(multiplier, f"nationality tier {tier}", low, high)
        except ValueError as exc:
            problems.append(f"nationality: {exc}")

    for tier, codes in (spec.get("tiers") or {}).items():
        if str(tier) not in tier_multipliers:
            problems.append(f"nationality: tier {tier} has no multiplier")
        for code in codes or []:
            code = str(code).strip().upper()
            if code in tiers:
                problems.append(f"nationality: {code} listed in tiers {tiers[code]} and {tier}")
            tiers[code] = str(tier)

    for entry in spec.get("overrides") or []:
        if not isinstance(entry, Mapping):
            problems.append(f"nationality: malformed override {entry!r}")
            continue
        code = str(entry.get("nationality") or "").strip().upper()
        template_id = str(entry.get("template") or "").strip()
        if template_id not in template_ids:
            problems.append(f"nationality: override for unknown template {template_id!r}")
            continue
        try:
            overrides[(code, template_id)] = _number(entry.get("multiplier"), f"nationality override {code}/{template_id}", low, high)
        except ValueError as exc:
            problems.append(f"nationality: {exc}")
    return overrides, tiers, tier_multipliers


def _priority_rules(spec: Any, problems: list[str]) -> dict[PriorityPreference, PriorityRule]:
    rules: dict[PriorityPreference, PriorityRule] = {}
    if not isinstance(spec, Mapping):
        problems.append("priority: must be an object keyed by preference")
        return rules
    for key, rule_spec in spec.items():
        try:
            preference = _enum(PriorityPreference, key, "priority preference")
        except ValueError as exc:
            problems.append(f"priority: {exc}")
            continue
        if not isinstance(rule_spec, Mapping):
            problems.append(f"priority.{key}: must be an object")
            continue
        kind = rule_spec.get("kind")
        if kind not in PRIORITY_KINDS:
            problems.append(f"priority.{key}: unknown kind {kind!r}")
            continue
        value_range = ADDITIVE_POINTS_RANGE if kind == "additive" else MULTIPLICATIVE_FACTOR_RANGE
        table = _table(rule_spec, f"priority.{key}", problems, value_range)
        if table is None:
            continue
        rules[preference] = PriorityRule(
            preference=preference,
            kind=kind,
            table=table,
            description=str(rule_spec.get("description") or ""),
        )
    return rules


def _build_weights(spec: Any, template_ids: set[str], problems: list[str]) -> ScoringWeights:
    if not isinstance(spec, Mapping):
        problems.append("weights: must be an object")
        spec = {}

    age_curves, default_age = _goal_tables(spec.get("age_curves") or {}, "age_curves", problems)
    experience_curves, _ = _goal_tables(spec.get("experience_curves") or {}, "experience_curves", problems)
    overrides, tiers, tier_multipliers = _nationality(spec.get("nationality") or {}, template_ids, problems)

    fund_table = BreakpointTable.constant(1.0)
    if spec.get("fund") is not None:
        fund_table = _table(spec["fund"], "fund", problems, FUND_RANGE, monotonic=True) or fund_table
    education_table = BreakpointTable.constant(1.0)
    if spec.get("education") is not None:
        education_table = _table(spec["education"], "education", problems, EDUCATION_RANGE) or education_table

    wages = spec.get("wages") or {}
    if not isinstance(wages, Mapping):
        problems.append("wages: must be an object")
        wages = {}
    hourly, full_time, precision = DEFAULT_HOURLY_WAGE_USD, DEFAULT_FULL_TIME_WEEKLY_HOURS, 0
    try:
        hourly = _number(wages.get("default_hourly_usd", hourly), "wages.default_hourly_usd")
        full_time = _whole_number(wages.get("full_time_weekly_hours", full_time), "wages.full_time_weekly_hours", 1, 80)
        precision = _whole_number(wages.get("currency_precision", precision), "wages.currency_precision", 0, 4)
    except ValueError as exc:
        problems.append(str(exc))

    return ScoringWeights(
        age_curves=_frozen(age_curves),
        experience_curves=_frozen(experience_curves),
        nationality_overrides=_frozen(overrides),
        nationality_tiers=_frozen(tiers),
        tier_multipliers=_frozen(tier_multipliers),
        fund_table=fund_table,
        education_table=education_table,
        priority_rules=_frozen(_priority_rules(spec.get("priority") or {}, problems)),
        default_age_curve=default_age,
        default_hourly_wage_usd=hourly,
        full_time_weekly_hours=full_time,
        currency_precision=precision,
    )


def build_catalog(payload: Mapping[str, Any]) -> RuleCatalog:
    """Validate a catalog document and freeze it into a `RuleCatalog`.

    Every integrity problem found is reported at once through
    `CatalogIntegrityError`; nothing partially built is ever returned.
    """
    if not isinstance(payload, Mapping):
        raise CatalogIntegrityError(["catalog must be an object"])

    problems: list[str] = []
    version = str(payload.get("version") or "").strip()
    if not version:
        problems.append("catalog version is missing")

    stages = _build_stages(payload.get("stages") or [], problems)
    template_rows = payload.get("templates") or []
    templates = _build_templates(template_rows, stages, problems)
    template_ids = {str(row.get("id")).strip() for row in template_rows if isinstance(row, Mapping)}
    weights = _build_weights(payload.get("weights") or {}, template_ids, problems)

    if problems:
        logger.warning("Rejected catalog %r with %d problem(s)", version, len(problems))
        raise CatalogIntegrityError(problems)

    fastest: dict[FinalGoal, int] = {}
    cheapest: dict[FinalGoal, float] = {}
    for template in templates:
        for goal in template.goals:
            fastest[goal] = min(fastest.get(goal, template.total_duration_months), template.total_duration_months)
            cheapest[goal] = min(cheapest.get(goal, template.total_cost_usd), template.total_cost_usd)

    catalog = RuleCatalog(
        version=version,
        stages=_frozen(stages),
        templates=tuple(templates),
        weights=weights,
        fastest_months_by_goal=_frozen(fastest),
        cheapest_cost_by_goal=_frozen(cheapest),
        fastest_months_overall=min((t.total_duration_months for t in templates), default=0),
        cheapest_cost_overall=min((t.total_cost_usd for t in templates), default=0.0),
    )
    logger.info("Built catalog %s: %d stages, %d templates", version, len(stages), len(templates))
    return catalog


def empty_catalog(version: str = "empty") -> RuleCatalog:
    return build_catalog({"version": version})


class CatalogHolder:
    """Holds the active catalog snapshot; swaps are atomic.

    Readers grab `current` once per request, so in-flight work keeps the
    snapshot it started with.
    """

    def __init__(self, catalog: RuleCatalog):
        self._catalog = catalog
        self._lock = threading.Lock()

    @property
    def current(self) -> RuleCatalog:
        return self._catalog

    def swap(self, catalog: RuleCatalog) -> RuleCatalog:
        if not isinstance(catalog, RuleCatalog):
            raise TypeError(f"Expected RuleCatalog, got {type(catalog).__name__}")
        with self._lock:
            previous = self._catalog
            self._catalog = catalog
        logger.info("Swapped catalog %s -> %s", previous.version, catalog.version)
        return previous

    def swap_payload(self, payload: Mapping[str, Any]) -> RuleCatalog:
        return self.swap(build_catalog(payload))
