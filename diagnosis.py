from __future__ import annotations

import hashlib
import json
import logging
from enum import Enum
from pathlib import Path
from typing import Any, Mapping

from catalog import CatalogHolder, PathwayTemplate, RuleCatalog
from config import DEFAULT_TOP_N, Settings, get_settings
from errors import FieldError, ProfileValidationError
from generator import generate_with_report
from models import (
    CandidateProfile,
    DiagnosisMeta,
    DiagnosisResult,
    Milestone,
    RecommendedPathway,
    ScoreBreakdown,
)
from normalizer import normalize
from ranking import rank
from scoring import feasibility_label, score
from seed import load_catalog_file
from timeline import build_timeline, derive_next_steps


logger = logging.getLogger(__name__)


class DiagnosisState(str, Enum):
    RECEIVED = "RECEIVED"
    NORMALIZING = "NORMALIZING"
    VALID = "VALID"
    INVALID = "INVALID"
    GENERATING = "GENERATING"
    SCORING = "SCORING"
    TIMELINING = "TIMELINING"
    RANKING = "RANKING"
    COMPLETE = "COMPLETE"
    REJECTED = "REJECTED"


TRANSITIONS = {
    DiagnosisState.RECEIVED: {DiagnosisState.NORMALIZING},
    DiagnosisState.NORMALIZING: {DiagnosisState.VALID, DiagnosisState.INVALID},
    DiagnosisState.VALID: {DiagnosisState.GENERATING},
    DiagnosisState.INVALID: {DiagnosisState.REJECTED},
    DiagnosisState.GENERATING: {DiagnosisState.SCORING, DiagnosisState.COMPLETE},
    DiagnosisState.SCORING: {DiagnosisState.TIMELINING},
    DiagnosisState.TIMELINING: {DiagnosisState.RANKING},
    DiagnosisState.RANKING: {DiagnosisState.COMPLETE},
}


class DiagnosisRun:
    def __init__(self) -> None:
        self.state = DiagnosisState.RECEIVED
        self.history = [self.state]

    def advance(self, state: DiagnosisState) -> None:
        if state not in TRANSITIONS.get(self.state, set()):
            raise RuntimeError(f"Illegal diagnosis transition {self.state.value} -> {state.value}")
        logger.debug("diagnosis %s -> %s", self.state.value, state.value)
        self.state = state
        self.history.append(state)


def _requested_top_n(options: Any, default: int | None) -> tuple[int | None, list[FieldError]]:
    if options is None:
        return default, []
    if not isinstance(options, Mapping):
        return default, [FieldError("options", "must be an object")]
    value = options.get("topN", options.get("top_n"))
    if value is None:
        return default, []
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        return default, [FieldError("topN", "must be a positive integer")]
    return value, []


def diagnosis_id(profile: CandidateProfile, catalog_version: str, top_n: int | None) -> str:
    payload = json.dumps(
        {
            "profile": profile.model_dump(mode="json", by_alias=True),
            "catalog": catalog_version,
            "topN": top_n,
        },
        sort_keys=True,
        separators=(",", ":"),
    )
    return "diag-" + hashlib.sha256(payload.encode("utf-8")).hexdigest()[:12]


def assemble_pathway(
    result_id: str,
    template: PathwayTemplate,
    breakdown: ScoreBreakdown,
    milestones: list[Milestone],
) -> RecommendedPathway:
    return RecommendedPathway(
        id=f"{result_id}-{template.id}",
        template_id=template.id,
        name=template.name,
        description=template.description,
        feasibility_score=breakdown.final_score,
        feasibility_label=feasibility_label(breakdown.final_score),
        total_duration_months=template.total_duration_months,
        estimated_cost_usd=milestones[-1].cumulative_cost_usd,
        visa_chain=template.visa_chain,
        milestones=milestones,
        score_breakdown=breakdown,
        next_steps=derive_next_steps(milestones),
        note=template.note,
        platform_support=template.platform_support,
    )


def diagnose(
    raw_profile: Any,
    catalog: RuleCatalog,
    options: Mapping[str, Any] | None = None,
    default_top_n: int | None = DEFAULT_TOP_N,
) -> DiagnosisResult:
    """Run one diagnosis request end to end against a catalog snapshot.

    Raises `ProfileValidationError` listing every bad field (profile and
    options together). An empty candidate set is a normal, complete result.
    """
    run = DiagnosisRun()
    run.advance(DiagnosisState.NORMALIZING)

    top_n, errors = _requested_top_n(options, default_top_n)
    profile: CandidateProfile | None = None
    try:
        profile = normalize(raw_profile)
    except ProfileValidationError as exc:
        errors = exc.errors + errors

    if errors or profile is None:
        run.advance(DiagnosisState.INVALID)
        run.advance(DiagnosisState.REJECTED)
        logger.info("Rejected diagnosis request; invalid fields: %s", ", ".join(err.field for err in errors))
        raise ProfileValidationError(errors)

    run.advance(DiagnosisState.VALID)
    run.advance(DiagnosisState.GENERATING)
    report = generate_with_report(profile, catalog)
    result_id = diagnosis_id(profile, catalog.version, top_n)

    pathways: list[RecommendedPathway] = []
    if report.eligible:
        run.advance(DiagnosisState.SCORING)
        scored = [(template, score(profile, template, catalog)) for template in report.eligible]

        run.advance(DiagnosisState.TIMELINING)
        pathways = [
            assemble_pathway(result_id, template, breakdown, build_timeline(template, profile, catalog))
            for template, breakdown in scored
        ]

        run.advance(DiagnosisState.RANKING)
        pathways = rank(pathways, top_n)

    run.advance(DiagnosisState.COMPLETE)
    meta = DiagnosisMeta(
        catalog_version=catalog.version,
        total_pathways_evaluated=len(catalog.templates),
        hard_filtered_out=len(report.excluded),
        eligible_count=len(report.eligible),
        excluded=dict(report.excluded),
    )
    logger.info(
        "Diagnosis %s complete: %d eligible, %d returned (catalog %s)",
        result_id,
        meta.eligible_count,
        len(pathways),
        catalog.version,
    )
    return DiagnosisResult(id=result_id, input=profile, pathways=pathways, meta=meta, status=run.state.value)


class DiagnosisEngine:
    def __init__(self, catalog: RuleCatalog, default_top_n: int = DEFAULT_TOP_N):
        if default_top_n < 1:
            raise ValueError(f"default_top_n must be at least 1, got {default_top_n}")
        self._holder = CatalogHolder(catalog)
        self.default_top_n = default_top_n

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "DiagnosisEngine":
        settings = settings or get_settings()
        return cls(load_catalog_file(settings.catalog_path), default_top_n=settings.default_top_n)

    @property
    def catalog(self) -> RuleCatalog:
        return self._holder.current

    def diagnose(self, raw_profile: Any, options: Mapping[str, Any] | None = None) -> DiagnosisResult:
        return diagnose(raw_profile, self._holder.current, options, default_top_n=self.default_top_n)

    def swap_catalog(self, catalog: RuleCatalog) -> RuleCatalog:
        return self._holder.swap(catalog)

    def reload_catalog(self, path: str | Path) -> RuleCatalog:
        return self._holder.swap(load_catalog_file(path))
