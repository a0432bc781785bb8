from __future__ import annotations

import ast
import csv
import json
import logging
from pathlib import Path
from typing import Any, Mapping

from catalog import RuleCatalog, build_catalog
from config import DEFAULT_CATALOG_PATH
from errors import CatalogIntegrityError


logger = logging.getLogger(__name__)

REQUIRED_STAGE_COLUMNS = {
    "code",
    "name",
    "kind",
    "can_work",
    "weekly_work_hour_cap",
    "duration_months",
    "cost_usd",
    "goal_category",
    "min_education",
    "transition_from",
    "grants_json",
    "accrues_experience",
    "eligibility_json",
    "requirements_json",
}

REQUIRED_TEMPLATE_COLUMNS = {
    "id",
    "name",
    "description",
    "stages",
    "base_feasibility",
    "goals",
    "field_tags",
}


def _parse_json(value: str, default: Any) -> Any:
    raw = (value or "").strip()
    if not raw:
        return default

    # Accept both proper JSON and common CSV-escaped variants like {\"k\":\"v\"}.
    for candidate in (
        raw,
        raw.replace('\\"', '"'),
        raw.replace("'", '"'),
    ):
        try:
            return json.loads(candidate)
        except json.JSONDecodeError:
            continue

    # Last fallback for Python-literal payloads.
    try:
        return ast.literal_eval(raw)
    except (SyntaxError, ValueError):
        raise ValueError(f"Invalid JSON field: {raw}")


def _parse_list(value: str) -> list[str]:
    if not value:
        return []
    return [item.strip() for item in value.split("|") if item.strip()]


def _parse_int(value: str) -> int | None:
    value = (value or "").strip()
    return int(value) if value else None


def _parse_float(value: str) -> float | None:
    value = (value or "").strip()
    return float(value) if value else None


def _parse_bool(value: str) -> bool:
    return str(value).strip().lower() in {"1", "true", "yes", "y"}


def validate_csv_columns(columns: list[str], required: set[str]) -> tuple[bool, list[str]]:
    missing = sorted(required - set(columns))
    return len(missing) == 0, missing


def _reader(csv_text: str, required: set[str]) -> csv.DictReader:
    reader = csv.DictReader(csv_text.splitlines())
    valid, missing = validate_csv_columns(reader.fieldnames or [], required)
    if not valid:
        raise ValueError(f"Missing required columns: {missing}")
    return reader


def load_stages_from_csv(csv_text: str) -> list[dict[str, Any]]:
    rows: list[dict[str, Any]] = []
    for row in _reader(csv_text, REQUIRED_STAGE_COLUMNS):
        transition_from = _parse_list(row["transition_from"])
        rows.append(
            {
                "code": row["code"],
                "name": row["name"],
                "kind": row["kind"] or "stage",
                "can_work": _parse_bool(row["can_work"]),
                "weekly_work_hour_cap": _parse_int(row["weekly_work_hour_cap"]),
                "duration_months": _parse_int(row["duration_months"]),
                "cost_usd": _parse_float(row["cost_usd"]),
                "goal_category": row["goal_category"] or None,
                "min_education": row["min_education"] or None,
                "transition_from": transition_from or None,
                "grants": _parse_json(row["grants_json"], {}),
                "accrues_experience": _parse_bool(row["accrues_experience"]),
                "hourly_wage_usd": _parse_float(row.get("hourly_wage_usd") or ""),
                "platform_action": row.get("platform_action") or "info_only",
                "eligibility": _parse_json(row["eligibility_json"], None),
                "requirements": _parse_json(row["requirements_json"], []),
            }
        )
    return rows


def load_templates_from_csv(csv_text: str) -> list[dict[str, Any]]:
    rows: list[dict[str, Any]] = []
    for row in _reader(csv_text, REQUIRED_TEMPLATE_COLUMNS):
        rows.append(
            {
                "id": row["id"],
                "name": row["name"],
                "description": row["description"],
                "stages": _parse_list(row["stages"]),
                "base_feasibility": _parse_float(row["base_feasibility"]),
                "goals": _parse_list(row["goals"]),
                "field_tags": _parse_list(row["field_tags"]),
                "note": row.get("note") or "",
                "platform_support": row.get("platform_support") or "info_only",
            }
        )
    return rows


def load_catalog_from_dict(payload: Mapping[str, Any]) -> RuleCatalog:
    return build_catalog(payload)


def load_catalog_from_csv(
    stages_csv: str,
    templates_csv: str,
    weights: Mapping[str, Any] | None = None,
    version: str = "csv",
) -> RuleCatalog:
    return build_catalog(
        {
            "version": version,
            "stages": load_stages_from_csv(stages_csv),
            "templates": load_templates_from_csv(templates_csv),
            "weights": dict(weights or {}),
        }
    )


def load_catalog_file(path: str | Path) -> RuleCatalog:
    path = Path(path)
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise CatalogIntegrityError([f"{path.name}: invalid JSON ({exc.msg} at line {exc.lineno})"]) from exc
    catalog = build_catalog(payload)
    logger.info("Loaded catalog %s from %s", catalog.version, path)
    return catalog


def load_default_catalog() -> RuleCatalog:
    return load_catalog_file(DEFAULT_CATALOG_PATH)
