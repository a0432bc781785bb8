import pytest

from builders import base_profile_input, fastest_regression_payload
from catalog import build_catalog, empty_catalog
from config import DEFAULT_CATALOG_PATH, Settings
from diagnosis import DiagnosisEngine, DiagnosisRun, DiagnosisState, diagnose
from errors import ProfileValidationError
from export import result_to_dict, result_to_json
from scoring import feasibility_label
from seed import load_default_catalog


def default_catalog_input() -> dict:
    return {
        "nationality": "VN",
        "age": 20,
        "educationLevel": "HIGH_SCHOOL",
        "availableAnnualFund": "10k-20k",
        "finalGoal": "LONG_TERM_WORK",
        "priorityPreference": "FASTEST",
    }


def test_fastest_preference_favours_short_study_to_work_route() -> None:
    catalog = build_catalog(fastest_regression_payload())

    result = diagnose(base_profile_input(), catalog)

    assert [p.template_id for p in result.pathways] == ["study-work", "lang-study"]
    study_work, lang_study = result.pathways
    assert study_work.total_duration_months == 30
    assert study_work.estimated_cost_usd == 25000.0
    assert lang_study.total_duration_months == 60
    assert lang_study.estimated_cost_usd == 40000.0
    assert lang_study.score_breakdown.base > study_work.score_breakdown.base
    assert study_work.score_breakdown.priority_adjustment == 15.0
    assert lang_study.score_breakdown.priority_adjustment == 0.0
    assert study_work.feasibility_score == 84
    assert lang_study.feasibility_score == 83


def test_diagnosis_is_deterministic() -> None:
    catalog = load_default_catalog()

    first = diagnose(default_catalog_input(), catalog)
    second = diagnose(default_catalog_input(), catalog)

    assert first.id == second.id
    assert first.id.startswith("diag-")
    assert result_to_json(first) == result_to_json(second)


def test_omitted_optionals_match_explicit_neutral_values() -> None:
    catalog = load_default_catalog()
    explicit = default_catalog_input()
    explicit.update({"topikLevel": 0, "workExperienceYears": 0, "major": None, "isEthnicKorean": False, "currentVisa": None})

    assert result_to_dict(diagnose(default_catalog_input(), catalog)) == result_to_dict(diagnose(explicit, catalog))


def test_default_top_n_and_override() -> None:
    catalog = load_default_catalog()

    default = diagnose(default_catalog_input(), catalog)
    wider = diagnose(default_catalog_input(), catalog, {"topN": 5})

    assert default.meta.eligible_count == 6
    assert len(default.pathways) == 3
    assert len(wider.pathways) == 5
    assert [p.template_id for p in wider.pathways[:3]] == [p.template_id for p in default.pathways]


def test_results_are_well_formed() -> None:
    catalog = load_default_catalog()

    result = diagnose(default_catalog_input(), catalog, {"topN": 10})

    assert result.status == "COMPLETE"
    assert result.meta.total_pathways_evaluated == len(catalog.templates)
    assert result.meta.hard_filtered_out + result.meta.eligible_count == len(catalog.templates)
    assert set(result.meta.excluded) == {"PW-005", "PW-009", "PW-010", "PW-013"}
    for pathway in result.pathways:
        assert 0 <= pathway.feasibility_score <= 100
        assert pathway.feasibility_label == feasibility_label(pathway.feasibility_score)
        assert pathway.visa_chain == [m.stage_code for m in pathway.milestones]
        assert pathway.id == f"{result.id}-{pathway.template_id}"


def test_current_visa_exclusions_never_leak_into_results() -> None:
    catalog = load_default_catalog()
    raw = default_catalog_input()
    raw.update({"currentVisa": "E-9", "finalGoal": "PERMANENT_RESIDENCY", "educationLevel": "MASTER", "topikLevel": 5})

    result = diagnose(raw, catalog, {"topN": 10})

    assert "PW-010" not in [p.template_id for p in result.pathways]
    assert result.meta.excluded["PW-010"] == "current visa E-9 cannot move into F-2-7"
    for pathway in result.pathways:
        assert catalog.template(pathway.template_id).stages[0].accepts_transition_from("E-9")


def test_empty_catalog_returns_empty_pathways() -> None:
    result = diagnose(base_profile_input(), empty_catalog())

    assert result.pathways == []
    assert result.no_match is True
    assert result.status == "COMPLETE"
    assert result.meta.total_pathways_evaluated == 0


def test_invalid_profile_and_options_are_reported_together() -> None:
    raw = base_profile_input()
    raw["age"] = 10

    with pytest.raises(ProfileValidationError) as exc_info:
        diagnose(raw, empty_catalog(), {"topN": 0})

    assert [error.field for error in exc_info.value.errors] == ["age", "topN"]


def test_options_must_be_a_mapping() -> None:
    with pytest.raises(ProfileValidationError) as exc_info:
        diagnose(base_profile_input(), empty_catalog(), ["topN", 2])

    assert [error.field for error in exc_info.value.errors] == ["options"]


def test_run_rejects_illegal_transitions() -> None:
    run = DiagnosisRun()
    run.advance(DiagnosisState.NORMALIZING)

    with pytest.raises(RuntimeError):
        run.advance(DiagnosisState.COMPLETE)
    assert run.history == [DiagnosisState.RECEIVED, DiagnosisState.NORMALIZING]


def test_engine_swaps_catalog_between_requests() -> None:
    engine = DiagnosisEngine(build_catalog(fastest_regression_payload()), default_top_n=1)

    before = engine.diagnose(base_profile_input())
    previous = engine.swap_catalog(empty_catalog("v2"))
    after = engine.diagnose(base_profile_input())

    assert [p.template_id for p in before.pathways] == ["study-work"]
    assert previous.version == "regression-1"
    assert after.pathways == []
    assert after.meta.catalog_version == "v2"


def test_engine_from_settings_loads_catalog_file() -> None:
    settings = Settings(catalog_path=DEFAULT_CATALOG_PATH, default_top_n=2, log_level="INFO")

    engine = DiagnosisEngine.from_settings(settings)

    assert engine.catalog.version == "2026.10-kr"
    assert len(engine.diagnose(default_catalog_input()).pathways) == 2


def test_engine_rejects_bad_default_top_n() -> None:
    with pytest.raises(ValueError):
        DiagnosisEngine(empty_catalog(), default_top_n=0)
