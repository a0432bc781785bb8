from __future__ import annotations

from typing import Iterable

from config import DEFAULT_TOP_N
from models import RecommendedPathway


def ranking_key(pathway: RecommendedPathway) -> tuple:
    return (
        -pathway.feasibility_score,
        pathway.total_duration_months,
        pathway.estimated_cost_usd,
        pathway.template_id,
    )


def rank(pathways: Iterable[RecommendedPathway], top_n: int | None = DEFAULT_TOP_N) -> list[RecommendedPathway]:
    if top_n is not None and top_n < 1:
        raise ValueError(f"top_n must be at least 1, got {top_n}")
    ordered = sorted(pathways, key=ranking_key)
    return ordered if top_n is None else ordered[:top_n]
