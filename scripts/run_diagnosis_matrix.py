from __future__ import annotations

import sys
from pathlib import Path
from typing import Any

import pandas as pd

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from config import configure_logging
from diagnosis import diagnose
from seed import load_default_catalog


def scenario_inputs() -> list[dict[str, Any]]:
    return [
        {
            "name": "Vietnamese high-school leaver aiming for long-term work",
            "nationality": "VN",
            "age": 20,
            "educationLevel": "HIGH_SCHOOL",
            "availableAnnualFund": "10k-20k",
            "finalGoal": "LONG_TERM_WORK",
            "priorityPreference": "FASTEST",
        },
        {
            "name": "Uzbek bachelor graduate in IT, field-focused",
            "nationality": "UZ",
            "age": 26,
            "educationLevel": "BACHELOR",
            "availableAnnualFund": "20k-50k",
            "finalGoal": "LONG_TERM_WORK",
            "priorityPreference": "SPECIFIC_FIELD",
            "major": "Computer Science",
            "topikLevel": 2,
        },
        {
            "name": "Nepali worker on a tight budget",
            "nationality": "NP",
            "age": 27,
            "educationLevel": "HIGH_SCHOOL",
            "availableAnnualFund": "<5k",
            "finalGoal": "SHORT_TERM_WORK",
            "priorityPreference": "CHEAPEST",
            "workExperienceYears": 3,
        },
        {
            "name": "Chinese ethnic Korean seeking residence",
            "nationality": "CN",
            "age": 34,
            "educationLevel": "HIGH_SCHOOL",
            "availableAnnualFund": "5k-10k",
            "finalGoal": "LONG_TERM_WORK",
            "priorityPreference": "HIGHEST_SUCCESS",
            "isEthnicKorean": True,
        },
        {
            "name": "Filipino E-7 holder applying for points residence",
            "nationality": "PH",
            "age": 31,
            "educationLevel": "MASTER",
            "availableAnnualFund": "20k-50k",
            "finalGoal": "PERMANENT_RESIDENCY",
            "priorityPreference": "HIGHEST_SUCCESS",
            "topikLevel": 5,
            "workExperienceYears": 4,
            "currentVisa": "E-7-1",
        },
        {
            "name": "American retiree learning Korean",
            "nationality": "US",
            "age": 62,
            "educationLevel": "DOCTORATE",
            "availableAnnualFund": "50k+",
            "finalGoal": "LEARN_LANGUAGE",
            "priorityPreference": "FASTEST",
        },
    ]


def main() -> None:
    configure_logging()
    catalog = load_default_catalog()
    summary_rows: list[dict[str, Any]] = []
    for scenario in scenario_inputs():
        profile = {key: value for key, value in scenario.items() if key != "name"}
        result = diagnose(profile, catalog)

        print(f"\n=== {scenario['name']} ===")
        if result.no_match:
            print("Outcome: NO MATCH")
            for template_id, reason in list(result.meta.excluded.items())[:4]:
                print(f"  {template_id}: {reason}")
            summary_rows.append({"scenario": scenario["name"], "top": "-", "score": None, "eligible": 0})
            continue

        print(f"Outcome: {len(result.pathways)} of {result.meta.eligible_count} eligible pathways")
        for idx, pathway in enumerate(result.pathways, start=1):
            chain = " -> ".join(pathway.visa_chain)
            print(
                f"{idx}. {pathway.name} [{chain}] "
                f"(score={pathway.feasibility_score} {pathway.feasibility_label}, "
                f"{pathway.total_duration_months} months, USD {pathway.estimated_cost_usd:,.0f})"
            )
        top = result.pathways[0]
        summary_rows.append(
            {
                "scenario": scenario["name"],
                "top": top.template_id,
                "score": top.feasibility_score,
                "eligible": result.meta.eligible_count,
            }
        )

    print("\n=== Summary ===")
    print(pd.DataFrame(summary_rows).to_string(index=False))


if __name__ == "__main__":
    main()
