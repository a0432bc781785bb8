from __future__ import annotations

from decimal import Decimal
from enum import Enum
from typing import Any

from catalog import PathwayTemplate, RuleCatalog, VisaStage
from models import CandidateProfile, Milestone, NextStep, ResolvedRequirement
from predicates import PROFILE_FIELDS
from scoring import round_half_up, to_decimal


AVERAGE_WEEKS_PER_MONTH = Decimal("4.345")


def _money(value: Decimal, precision: int) -> float:
    return float(round_half_up(value, precision))


def _placeholder_values(profile: CandidateProfile) -> dict[str, Any]:
    values: dict[str, Any] = {}
    for name, (attr, _) in PROFILE_FIELDS.items():
        value = getattr(profile, attr)
        if isinstance(value, Enum):
            value = value.value
        values[name] = "" if value is None else value
    return values


def resolve_requirements(stage: VisaStage, profile: CandidateProfile) -> list[ResolvedRequirement]:
    values = _placeholder_values(profile)
    return [
        ResolvedRequirement(
            text=requirement.text.format(**values),
            satisfied=requirement.satisfied_when is not None and requirement.satisfied_when.evaluate(profile),
            action_type=requirement.action_type,
        )
        for requirement in stage.base_requirements
    ]


def weekly_hours(stage: VisaStage, catalog: RuleCatalog) -> int:
    if not stage.can_work:
        return 0
    return stage.weekly_work_hour_cap or catalog.weights.full_time_weekly_hours


def estimate_monthly_income(stage: VisaStage, catalog: RuleCatalog) -> float | None:
    if not stage.can_work:
        return None
    amount = Decimal(weekly_hours(stage, catalog)) * to_decimal(catalog.stage_wage_rate(stage)) * AVERAGE_WEEKS_PER_MONTH
    return _money(amount, catalog.weights.currency_precision)


def build_timeline(template: PathwayTemplate, profile: CandidateProfile, catalog: RuleCatalog) -> list[Milestone]:
    precision = catalog.weights.currency_precision
    milestones: list[Milestone] = []
    month = 0
    cumulative = Decimal(0)
    for order, stage in enumerate(template.stages, start=1):
        stage_cost = to_decimal(stage.nominal_cost_usd)
        cumulative += stage_cost
        milestones.append(
            Milestone(
                order=order,
                stage_code=stage.code,
                label=stage.name,
                kind=stage.kind,
                month_from_start=month,
                duration_months=stage.nominal_duration_months,
                stage_cost_usd=_money(stage_cost, precision),
                cumulative_cost_usd=_money(cumulative, precision),
                can_work_part_time=stage.can_work,
                weekly_hours=weekly_hours(stage, catalog),
                estimated_monthly_income=estimate_monthly_income(stage, catalog),
                requirements=resolve_requirements(stage, profile),
                platform_action=stage.platform_action,
            )
        )
        month += stage.nominal_duration_months
    return milestones


def derive_next_steps(milestones: list[Milestone]) -> list[NextStep]:
    for milestone in milestones:
        open_items = milestone.open_requirements
        if open_items:
            return [
                NextStep(
                    action_type=requirement.action_type,
                    title=requirement.text,
                    stage_code=milestone.stage_code,
                    description=f"Needed for {milestone.label} (month {milestone.month_from_start})",
                )
                for requirement in open_items
            ]
    return []
