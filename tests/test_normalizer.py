import pytest
from pydantic import ValidationError

from builders import base_profile_input
from errors import ProfileValidationError
from models import EducationLevel, FinalGoal, FundBracket, PriorityPreference
from normalizer import normalize


def test_normalize_applies_neutral_defaults() -> None:
    profile = normalize(base_profile_input())

    assert profile.nationality == "VN"
    assert profile.education_level is EducationLevel.BACHELOR
    assert profile.available_annual_fund is FundBracket.FROM_10K_TO_20K
    assert profile.final_goal is FinalGoal.LONG_TERM_WORK
    assert profile.priority_preference is PriorityPreference.FASTEST
    assert profile.topik_level == 0
    assert profile.work_experience_years == 0
    assert profile.major is None
    assert profile.is_ethnic_korean is False
    assert profile.current_visa is None


def test_normalize_trims_and_ignores_case() -> None:
    raw = base_profile_input()
    raw.update(
        {
            "nationality": " vnm ",
            "educationLevel": "bachelor",
            "availableAnnualFund": "10K-20K",
            "finalGoal": "long_term_work",
            "priorityPreference": "Fastest",
            "currentVisa": " d-10 ",
            "major": "  Computer   Science ",
        }
    )

    profile = normalize(raw)

    assert profile.nationality == "VNM"
    assert profile.education_level is EducationLevel.BACHELOR
    assert profile.available_annual_fund is FundBracket.FROM_10K_TO_20K
    assert profile.current_visa == "D-10"
    assert profile.major == "Computer Science"


def test_blank_optional_fields_fall_back_to_defaults() -> None:
    raw = base_profile_input()
    raw.update({"topikLevel": None, "major": "   ", "currentVisa": "", "workExperienceYears": None})

    profile = normalize(raw)

    assert profile.topik_level == 0
    assert profile.major is None
    assert profile.current_visa is None
    assert profile.work_experience_years == 0


def test_normalize_reports_every_invalid_field_at_once() -> None:
    raw = base_profile_input()
    raw.update({"age": 12, "educationLevel": "PHD", "topikLevel": 9, "nationality": "V1"})
    del raw["finalGoal"]

    with pytest.raises(ProfileValidationError) as exc_info:
        normalize(raw)

    fields = {error.field for error in exc_info.value.errors}
    assert fields == {"age", "educationLevel", "topikLevel", "nationality", "finalGoal"}
    assert all(error.reason for error in exc_info.value.errors)


def test_normalize_rejects_malformed_visa_code_and_fund() -> None:
    raw = base_profile_input()
    raw.update({"currentVisa": "tourist", "availableAnnualFund": "100k"})

    with pytest.raises(ProfileValidationError) as exc_info:
        normalize(raw)

    assert {error.field for error in exc_info.value.errors} == {"currentVisa", "availableAnnualFund"}


def test_normalize_rejects_non_mapping() -> None:
    with pytest.raises(ProfileValidationError) as exc_info:
        normalize(["VN", 25])

    assert [error.field for error in exc_info.value.errors] == ["profile"]


def test_profile_is_immutable() -> None:
    profile = normalize(base_profile_input())

    with pytest.raises(ValidationError):
        profile.age = 30


def test_work_experience_has_no_upper_bound() -> None:
    raw = base_profile_input()
    raw.update({"age": 90, "workExperienceYears": 70})

    profile = normalize(raw)

    assert profile.work_experience_years == 70


def test_negative_work_experience_is_rejected() -> None:
    raw = base_profile_input()
    raw["workExperienceYears"] = -0.5

    with pytest.raises(ProfileValidationError) as exc_info:
        normalize(raw)

    assert [error.field for error in exc_info.value.errors] == ["workExperienceYears"]
