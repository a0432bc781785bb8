import pytest

from builders import profile
from predicates import ALWAYS, AllOf, Range, parse_predicate


def test_empty_spec_means_always() -> None:
    assert parse_predicate(None) is ALWAYS
    assert parse_predicate({}) is ALWAYS
    assert parse_predicate({"type": "always"}).evaluate(profile())


def test_range_on_ordinal_education() -> None:
    predicate = parse_predicate({"type": "range", "field": "educationLevel", "min": "associate"})

    assert isinstance(predicate, Range)
    assert predicate.evaluate(profile(educationLevel="BACHELOR"))
    assert predicate.evaluate(profile(educationLevel="ASSOCIATE"))
    assert not predicate.evaluate(profile(educationLevel="HIGH_SCHOOL"))
    assert predicate.describe() == "educationLevel >= ASSOCIATE"


def test_range_on_fund_bracket_and_numbers() -> None:
    fund = parse_predicate({"type": "range", "field": "availableAnnualFund", "min": "5k-10k", "max": "20k-50k"})
    age = parse_predicate({"type": "range", "field": "age", "min": 18, "max": 39})

    assert fund.evaluate(profile(availableAnnualFund="10k-20k"))
    assert not fund.evaluate(profile(availableAnnualFund="50k+"))
    assert age.evaluate(profile(age=39))
    assert not age.evaluate(profile(age=40))
    assert age.describe() == "age between 18 and 39"


def test_one_of_codes_ignore_case() -> None:
    predicate = parse_predicate({"type": "one_of", "field": "nationality", "values": ["vn", "NP"]})

    assert predicate.evaluate(profile(nationality="VN"))
    assert not predicate.evaluate(profile(nationality="US"))


def test_one_of_on_missing_current_visa_is_false() -> None:
    predicate = parse_predicate({"type": "one_of", "field": "currentVisa", "values": ["D-10"]})

    assert not predicate.evaluate(profile())
    assert predicate.evaluate(profile(currentVisa="d-10"))


def test_equals_flag_and_negation() -> None:
    ethnic = parse_predicate({"type": "equals", "field": "isEthnicKorean", "value": True})
    not_ethnic = parse_predicate({"type": "not", "item": {"type": "equals", "field": "isEthnicKorean", "value": True}})

    assert ethnic.evaluate(profile(isEthnicKorean=True))
    assert not ethnic.evaluate(profile())
    assert not_ethnic.evaluate(profile())


def test_all_and_any_composition() -> None:
    predicate = parse_predicate(
        {
            "type": "any",
            "items": [
                {"type": "range", "field": "topikLevel", "min": 4},
                {
                    "type": "all",
                    "items": [
                        {"type": "range", "field": "workExperienceYears", "min": 3},
                        {"type": "one_of", "field": "finalGoal", "values": ["LONG_TERM_WORK"]},
                    ],
                },
            ],
        }
    )

    assert predicate.evaluate(profile(topikLevel=5))
    assert predicate.evaluate(profile(workExperienceYears=3))
    assert not predicate.evaluate(profile(workExperienceYears=1))


def test_explain_points_at_first_failing_clause() -> None:
    predicate = parse_predicate(
        {
            "type": "all",
            "items": [
                {"type": "range", "field": "age", "max": 40},
                {"type": "range", "field": "topikLevel", "min": 3},
            ],
        }
    )

    assert isinstance(predicate, AllOf)
    assert predicate.explain(profile(topikLevel=3)) is None
    assert predicate.explain(profile(topikLevel=1)) == "topikLevel >= 3"


@pytest.mark.parametrize(
    "spec",
    [
        {"type": "range", "field": "height", "min": 1},
        {"type": "range", "field": "age"},
        {"type": "range", "field": "age", "min": 40, "max": 20},
        {"type": "range", "field": "nationality", "min": 1},
        {"type": "range", "field": "educationLevel", "min": "PHD"},
        {"type": "one_of", "field": "finalGoal", "values": ["RETIRE"]},
        {"type": "one_of", "field": "nationality", "values": []},
        {"type": "equals", "field": "isEthnicKorean", "value": "yes"},
        {"type": "all", "items": []},
        {"type": "not"},
        {"type": "xor", "items": []},
        ["not", "a", "mapping"],
    ],
)
def test_malformed_predicates_are_rejected(spec) -> None:
    with pytest.raises(ValueError):
        parse_predicate(spec)
