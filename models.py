from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


COUNTRY_CODE_PATTERN = r"^[A-Z]{2,3}$"
VISA_CODE_PATTERN = r"^[A-Z]-\d{1,2}(-[0-9A-Z]{1,2})?$"


class EducationLevel(str, Enum):
    BELOW_HIGH_SCHOOL = "BELOW_HIGH_SCHOOL"
    HIGH_SCHOOL = "HIGH_SCHOOL"
    ASSOCIATE = "ASSOCIATE"
    BACHELOR = "BACHELOR"
    MASTER = "MASTER"
    DOCTORATE = "DOCTORATE"

    @property
    def rank(self) -> int:
        return list(EducationLevel).index(self)


class FundBracket(str, Enum):
    UNDER_5K = "<5k"
    FROM_5K_TO_10K = "5k-10k"
    FROM_10K_TO_20K = "10k-20k"
    FROM_20K_TO_50K = "20k-50k"
    OVER_50K = "50k+"

    @property
    def rank(self) -> int:
        return list(FundBracket).index(self)

    @property
    def reference_usd(self) -> int:
        return FUND_REFERENCE_USD[self]


# Representative yearly amount per bracket, used for fund-vs-cost ratios.
FUND_REFERENCE_USD = {
    FundBracket.UNDER_5K: 2500,
    FundBracket.FROM_5K_TO_10K: 7500,
    FundBracket.FROM_10K_TO_20K: 15000,
    FundBracket.FROM_20K_TO_50K: 35000,
    FundBracket.OVER_50K: 60000,
}


class FinalGoal(str, Enum):
    LEARN_LANGUAGE = "LEARN_LANGUAGE"
    SHORT_TERM_WORK = "SHORT_TERM_WORK"
    LONG_TERM_WORK = "LONG_TERM_WORK"
    STUDY_DEGREE = "STUDY_DEGREE"
    PERMANENT_RESIDENCY = "PERMANENT_RESIDENCY"


class PriorityPreference(str, Enum):
    FASTEST = "FASTEST"
    CHEAPEST = "CHEAPEST"
    HIGHEST_SUCCESS = "HIGHEST_SUCCESS"
    SPECIFIC_FIELD = "SPECIFIC_FIELD"


def coerce_enum(enum_cls: type[Enum], value: Any) -> Any:
    """Match an enum by value or member name, ignoring case and padding.

    Unknown values are returned untouched so validation can report them.
    """
    if isinstance(value, enum_cls) or not isinstance(value, str):
        return value
    needle = value.strip().casefold()
    for member in enum_cls:
        if needle in (str(member.value).casefold(), member.name.casefold()):
            return member
    return value.strip()


class CandidateProfile(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    nationality: str = Field(pattern=COUNTRY_CODE_PATTERN)
    age: int = Field(ge=16, le=99)
    education_level: EducationLevel
    available_annual_fund: FundBracket
    final_goal: FinalGoal
    priority_preference: PriorityPreference
    topik_level: int = Field(default=0, ge=0, le=6)
    work_experience_years: float = Field(default=0.0, ge=0)
    major: Optional[str] = Field(default=None, max_length=120)
    is_ethnic_korean: bool = False
    current_visa: Optional[str] = Field(default=None, pattern=VISA_CODE_PATTERN)

    @field_validator("nationality", mode="before")
    @classmethod
    def _upper_country(cls, value: Any) -> Any:
        return value.strip().upper() if isinstance(value, str) else value

    @field_validator("current_visa", mode="before")
    @classmethod
    def _upper_visa(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.strip().upper()
            return value or None
        return value

    @field_validator("major", mode="before")
    @classmethod
    def _strip_major(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = " ".join(value.split())
            return value or None
        return value

    @field_validator("education_level", mode="before")
    @classmethod
    def _education(cls, value: Any) -> Any:
        return coerce_enum(EducationLevel, value)

    @field_validator("available_annual_fund", mode="before")
    @classmethod
    def _fund(cls, value: Any) -> Any:
        return coerce_enum(FundBracket, value)

    @field_validator("final_goal", mode="before")
    @classmethod
    def _goal(cls, value: Any) -> Any:
        return coerce_enum(FinalGoal, value)

    @field_validator("priority_preference", mode="before")
    @classmethod
    def _priority(cls, value: Any) -> Any:
        return coerce_enum(PriorityPreference, value)


@dataclass(frozen=True)
class ScoreBreakdown:
    base: float
    age_multiplier: float
    nationality_multiplier: float
    fund_multiplier: float
    education_multiplier: float
    priority_adjustment: float
    priority_kind: str
    final_score: int


@dataclass(frozen=True)
class ResolvedRequirement:
    text: str
    satisfied: bool
    action_type: str


@dataclass(frozen=True)
class Milestone:
    order: int
    stage_code: str
    label: str
    kind: str
    month_from_start: int
    duration_months: int
    stage_cost_usd: float
    cumulative_cost_usd: float
    can_work_part_time: bool
    weekly_hours: int
    estimated_monthly_income: Optional[float]
    requirements: list[ResolvedRequirement]
    platform_action: str

    @property
    def open_requirements(self) -> list[ResolvedRequirement]:
        return [req for req in self.requirements if not req.satisfied]


@dataclass(frozen=True)
class NextStep:
    action_type: str
    title: str
    stage_code: str
    description: str


@dataclass(frozen=True)
class RecommendedPathway:
    id: str
    template_id: str
    name: str
    description: str
    feasibility_score: int
    feasibility_label: str
    total_duration_months: int
    estimated_cost_usd: float
    visa_chain: list[str]
    milestones: list[Milestone]
    score_breakdown: ScoreBreakdown
    next_steps: list[NextStep]
    note: str = ""
    platform_support: str = "info_only"


@dataclass(frozen=True)
class DiagnosisMeta:
    catalog_version: str
    total_pathways_evaluated: int
    hard_filtered_out: int
    eligible_count: int
    excluded: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class DiagnosisResult:
    id: str
    input: CandidateProfile
    pathways: list[RecommendedPathway]
    meta: DiagnosisMeta
    status: str = "COMPLETE"

    @property
    def no_match(self) -> bool:
        return not self.pathways
