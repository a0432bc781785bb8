from __future__ import annotations

import math
from decimal import ROUND_HALF_UP, Decimal

from catalog import (
    AGE_RANGE,
    EDUCATION_RANGE,
    FUND_RANGE,
    NATIONALITY_RANGE,
    PathwayTemplate,
    RuleCatalog,
    ScoringWeights,
)
from models import CandidateProfile, PriorityPreference, ScoreBreakdown


FEASIBILITY_LABELS = (
    (80, "very high"),
    (65, "high"),
    (45, "medium"),
    (25, "low"),
)
LOWEST_LABEL = "very low"

# Multipliers are published (and multiplied) at this precision.
MULTIPLIER_PLACES = 4


def feasibility_label(score: int) -> str:
    for threshold, label in FEASIBILITY_LABELS:
        if score >= threshold:
            return label
    return LOWEST_LABEL


def clamp(value, low, high):
    return max(low, min(high, value))


def to_decimal(value: float) -> Decimal:
    return Decimal(repr(float(value)))


def round_half_up(value: Decimal, places: int = 0) -> Decimal:
    return value.quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP)


def _published(value: float) -> float:
    return round(value, MULTIPLIER_PLACES)


def annualized_cost(template: PathwayTemplate) -> float:
    return template.total_cost_usd * 12 / max(template.total_duration_months, 12)


def age_multiplier(profile: CandidateProfile, template: PathwayTemplate, weights: ScoringWeights) -> float:
    goal = template.primary_goal
    curve = weights.age_curves.get(goal, weights.default_age_curve)
    age_factor = curve.lookup(profile.age) if curve is not None else 1.0
    experience_curve = weights.experience_curves.get(goal)
    experience_factor = experience_curve.lookup(profile.work_experience_years) if experience_curve is not None else 1.0
    return _published(clamp(age_factor * experience_factor, *AGE_RANGE))


def nationality_multiplier(profile: CandidateProfile, template: PathwayTemplate, weights: ScoringWeights) -> float:
    value = weights.nationality_overrides.get((profile.nationality, template.id))
    if value is None:
        tier = weights.nationality_tiers.get(profile.nationality)
        value = weights.tier_multipliers.get(tier, 1.0) if tier is not None else 1.0
    return _published(clamp(value, *NATIONALITY_RANGE))


def fund_multiplier(profile: CandidateProfile, template: PathwayTemplate, weights: ScoringWeights) -> float:
    cost = annualized_cost(template)
    ratio = math.inf if cost <= 0 else profile.available_annual_fund.reference_usd / cost
    return _published(clamp(weights.fund_table.lookup(ratio), *FUND_RANGE))


def education_multiplier(profile: CandidateProfile, template: PathwayTemplate, weights: ScoringWeights) -> float:
    gap = profile.education_level.rank - template.terminal_stage.min_education.rank
    return _published(clamp(weights.education_table.lookup(gap), *EDUCATION_RANGE))


def field_matches(major: str | None, field_tags: frozenset) -> bool:
    if not major:
        return False
    words = set(major.casefold().replace("/", " ").replace(",", " ").split())
    return any(set(tag.split()) <= words for tag in field_tags)


def priority_metric(profile: CandidateProfile, template: PathwayTemplate, catalog: RuleCatalog) -> float:
    preference = profile.priority_preference
    if preference is PriorityPreference.FASTEST:
        reference = catalog.reference_duration(profile.final_goal)
        return max(template.total_duration_months, 1) / max(reference, 1)
    if preference is PriorityPreference.CHEAPEST:
        reference = catalog.reference_cost(profile.final_goal)
        return max(template.total_cost_usd, 1.0) / max(reference, 1.0)
    if preference is PriorityPreference.HIGHEST_SUCCESS:
        return template.base_feasibility / 100
    return 1.0 if field_matches(profile.major, template.field_tags) else 0.0


def score(profile: CandidateProfile, template: PathwayTemplate, catalog: RuleCatalog) -> ScoreBreakdown:
    """Combine the catalog weight tables into a 0-100 feasibility score.

    raw = base_feasibility x age x nationality x fund x education, then the
    priority rule adds points (additive) or scales raw (multiplicative).
    """
    weights = catalog.weights
    factors = (
        age_multiplier(profile, template, weights),
        nationality_multiplier(profile, template, weights),
        fund_multiplier(profile, template, weights),
        education_multiplier(profile, template, weights),
    )

    raw = to_decimal(template.base_feasibility)
    for factor in factors:
        raw *= to_decimal(factor)

    adjustment = Decimal(0)
    kind = "none"
    rule = weights.priority_rules.get(profile.priority_preference)
    if rule is not None:
        kind = rule.kind
        value = to_decimal(_published(rule.table.lookup(priority_metric(profile, template, catalog))))
        adjustment = value if rule.kind == "additive" else raw * (value - 1)

    final = clamp(round_half_up(raw + adjustment), 0, 100)
    return ScoreBreakdown(
        base=_published(template.base_feasibility / 100),
        age_multiplier=factors[0],
        nationality_multiplier=factors[1],
        fund_multiplier=factors[2],
        education_multiplier=factors[3],
        priority_adjustment=float(round_half_up(adjustment, 2)),
        priority_kind=kind,
        final_score=int(final),
    )
