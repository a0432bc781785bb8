import pytest

from errors import CatalogIntegrityError
from models import FinalGoal
from seed import (
    _parse_json,
    load_catalog_file,
    load_catalog_from_csv,
    load_default_catalog,
    load_stages_from_csv,
    load_templates_from_csv,
)


STAGES_CSV = """code,name,kind,can_work,weekly_work_hour_cap,duration_months,cost_usd,goal_category,min_education,transition_from,grants_json,accrues_experience,eligibility_json,requirements_json,hourly_wage_usd,platform_action
D-4-1,Language course,entry,true,10,12,8000,LEARN_LANGUAGE,HIGH_SCHOOL,,"{""topikLevel"": 3}",false,"{""type"": ""range"", ""field"": ""age"", ""min"": 16}","[{""text"": ""Admission letter"", ""action"": ""connect_school""}]",7.5,language_school_connect
D-2-2,Bachelor's degree,study_upgrade,true,25,48,32000,STUDY_DEGREE,HIGH_SCHOOL,D-4-1|D-4,"{""educationLevel"": ""BACHELOR""}",no,"{""type"": ""range"", ""field"": ""topikLevel"", ""min"": 3}",[],,university_connect
"""

TEMPLATES_CSV = """id,name,description,stages,base_feasibility,goals,field_tags,note,platform_support
PW-002,Language then degree,Language course then a degree,D-4-1|D-2-2,75,STUDY_DEGREE,Business|IT,Part-time work is capped,full_support
PW-008,Language course,One year of Korean,D-4-1,85,LEARN_LANGUAGE,,,
"""


def test_default_catalog_loads_and_passes_integrity_checks() -> None:
    catalog = load_default_catalog()

    assert catalog.version == "2026.10-kr"
    assert len(catalog.templates) == 10
    assert catalog.stages["D-10"].transition_from == frozenset({"D-2-1", "D-2-2", "D-2-7"})
    assert catalog.template("PW-005").visa_chain == ["D-2-7", "D-10", "E-7-1"]
    assert catalog.reference_duration(FinalGoal.LEARN_LANGUAGE) == 12


def test_load_stages_from_csv_parses_lists_and_json_columns() -> None:
    rows = load_stages_from_csv(STAGES_CSV)

    assert rows[0]["grants"] == {"topikLevel": 3}
    assert rows[0]["transition_from"] is None
    assert rows[0]["requirements"] == [{"text": "Admission letter", "action": "connect_school"}]
    assert rows[0]["hourly_wage_usd"] == 7.5
    assert rows[1]["transition_from"] == ["D-4-1", "D-4"]
    assert rows[1]["accrues_experience"] is False
    assert rows[1]["hourly_wage_usd"] is None


def test_load_templates_from_csv_defaults_optional_columns() -> None:
    rows = load_templates_from_csv(TEMPLATES_CSV)

    assert rows[0]["stages"] == ["D-4-1", "D-2-2"]
    assert rows[0]["field_tags"] == ["Business", "IT"]
    assert rows[1]["field_tags"] == []
    assert rows[1]["platform_support"] == "info_only"


def test_load_catalog_from_csv_builds_a_catalog() -> None:
    catalog = load_catalog_from_csv(STAGES_CSV, TEMPLATES_CSV, version="sheet-3")

    template = catalog.template("PW-002")
    assert catalog.version == "sheet-3"
    assert template.field_tags == frozenset({"business", "it"})
    assert template.total_duration_months == 60
    assert catalog.stages["D-4-1"].grants["topikLevel"] == 3


def test_csv_missing_columns_raise() -> None:
    with pytest.raises(ValueError, match="Missing required columns"):
        load_templates_from_csv("id,name\nPW-1,Broken\n")


def test_parse_json_accepts_escaped_and_python_literals() -> None:
    assert _parse_json('{\\"min\\": 3}', {}) == {"min": 3}
    assert _parse_json("{'min': 3}", {}) == {"min": 3}
    assert _parse_json("", []) == []
    with pytest.raises(ValueError):
        _parse_json("{not json", {})


def test_invalid_json_file_raises_integrity_error(tmp_path) -> None:
    path = tmp_path / "catalog.json"
    path.write_text("{\"version\": ", encoding="utf-8")

    with pytest.raises(CatalogIntegrityError):
        load_catalog_file(path)
