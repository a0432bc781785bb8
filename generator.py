from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from catalog import PathwayTemplate, RuleCatalog, VisaStage
from models import CandidateProfile


logger = logging.getLogger(__name__)


@dataclass
class GenerationReport:
    eligible: list[PathwayTemplate] = field(default_factory=list)
    excluded: dict[str, str] = field(default_factory=dict)


def project_after_stage(profile: CandidateProfile, stage: VisaStage) -> CandidateProfile:
    """Profile as it would look once `stage` is completed."""
    update: dict[str, Any] = {"current_visa": stage.code}

    topik = stage.grants.get("topikLevel")
    if topik is not None and topik > profile.topik_level:
        update["topik_level"] = topik

    education = stage.grants.get("educationLevel")
    if education is not None and education.rank > profile.education_level.rank:
        update["education_level"] = education

    experience = profile.work_experience_years
    if stage.accrues_experience:
        experience += stage.nominal_duration_months / 12
    experience += stage.grants.get("workExperienceYears", 0.0)
    if experience != profile.work_experience_years:
        update["work_experience_years"] = round(experience, 2)

    return profile.model_copy(update=update)


def exclusion_reason(profile: CandidateProfile, template: PathwayTemplate) -> str | None:
    first = template.stages[0]
    if not first.accepts_transition_from(profile.current_visa):
        return f"current visa {profile.current_visa} cannot move into {first.code}"

    projected = profile
    for stage in template.stages:
        failed = stage.eligibility.explain(projected)
        if failed is not None:
            return f"{stage.code}: requires {failed}"
        projected = project_after_stage(projected, stage)
    return None


def generate_with_report(profile: CandidateProfile, catalog: RuleCatalog) -> GenerationReport:
    report = GenerationReport()
    for template in catalog.templates:
        reason = exclusion_reason(profile, template)
        if reason is None:
            report.eligible.append(template)
        else:
            report.excluded[template.id] = reason
            logger.debug("Excluded %s: %s", template.id, reason)
    return report


def generate(profile: CandidateProfile, catalog: RuleCatalog) -> list[PathwayTemplate]:
    return generate_with_report(profile, catalog).eligible
