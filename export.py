from __future__ import annotations

import json
from typing import Any

from errors import ProfileValidationError
from models import DiagnosisResult, Milestone, RecommendedPathway, ScoreBreakdown


def _breakdown_dict(breakdown: ScoreBreakdown) -> dict[str, Any]:
    return {
        "base": breakdown.base,
        "ageMultiplier": breakdown.age_multiplier,
        "nationalityMultiplier": breakdown.nationality_multiplier,
        "fundMultiplier": breakdown.fund_multiplier,
        "educationMultiplier": breakdown.education_multiplier,
        "priorityAdjustment": breakdown.priority_adjustment,
        "priorityKind": breakdown.priority_kind,
        "finalScore": breakdown.final_score,
    }


def _milestone_dict(milestone: Milestone) -> dict[str, Any]:
    return {
        "order": milestone.order,
        "visaCode": milestone.stage_code,
        "label": milestone.label,
        "type": milestone.kind,
        "monthFromStart": milestone.month_from_start,
        "durationMonths": milestone.duration_months,
        "stageCostUsd": milestone.stage_cost_usd,
        "cumulativeCostUsd": milestone.cumulative_cost_usd,
        "canWorkPartTime": milestone.can_work_part_time,
        "weeklyHours": milestone.weekly_hours,
        "estimatedMonthlyIncome": milestone.estimated_monthly_income,
        "requirements": [
            {"text": req.text, "satisfied": req.satisfied, "actionType": req.action_type}
            for req in milestone.requirements
        ],
        "platformAction": milestone.platform_action,
    }


def pathway_to_dict(pathway: RecommendedPathway) -> dict[str, Any]:
    return {
        "id": pathway.id,
        "templateId": pathway.template_id,
        "name": pathway.name,
        "description": pathway.description,
        "feasibilityScore": pathway.feasibility_score,
        "feasibilityLabel": pathway.feasibility_label,
        "totalDurationMonths": pathway.total_duration_months,
        "estimatedCostUsd": pathway.estimated_cost_usd,
        "visaChain": list(pathway.visa_chain),
        "milestones": [_milestone_dict(m) for m in pathway.milestones],
        "scoreBreakdown": _breakdown_dict(pathway.score_breakdown),
        "nextSteps": [
            {
                "actionType": step.action_type,
                "title": step.title,
                "visaCode": step.stage_code,
                "description": step.description,
            }
            for step in pathway.next_steps
        ],
        "note": pathway.note,
        "platformSupport": pathway.platform_support,
    }


def result_to_dict(result: DiagnosisResult) -> dict[str, Any]:
    return {
        "id": result.id,
        "status": result.status,
        "noMatch": result.no_match,
        "input": result.input.model_dump(mode="json", by_alias=True),
        "pathways": [pathway_to_dict(p) for p in result.pathways],
        "meta": {
            "catalogVersion": result.meta.catalog_version,
            "totalPathwaysEvaluated": result.meta.total_pathways_evaluated,
            "hardFilteredOut": result.meta.hard_filtered_out,
            "eligibleCount": result.meta.eligible_count,
            "excluded": dict(result.meta.excluded),
        },
    }


def result_to_json(result: DiagnosisResult) -> bytes:
    return json.dumps(result_to_dict(result), indent=2, ensure_ascii=True).encode("utf-8")


def validation_error_to_dict(error: ProfileValidationError) -> dict[str, Any]:
    return {
        "error": {
            "code": "VALIDATION_ERROR",
            "message": str(error),
            "fields": [item.as_dict() for item in error.errors],
        }
    }
