from __future__ import annotations

import copy
from typing import Dict, List

FALLBACK_PROJECTS: List[Dict[str, object]] = [
    {
        "id": "verisma",
        "name": "Verisma",
        "locations": [
            {"id": "verisma-nyu", "project_id": "verisma", "name": "NYU Langone", "flat_rate": 18.0},
            {"id": "verisma-baylor", "project_id": "verisma", "name": "Baylor Scott & White", "flat_rate": 17.5},
        ],
    },
    {
        "id": "mro",
        "name": "MRO",
        "locations": [
            {"id": "mro-ucsf", "project_id": "mro", "name": "UCSF Health", "flat_rate": 21.0},
        ],
    },
    {
        "id": "datavant",
        "name": "Datavant",
        "locations": [
            {"id": "datavant-ciox", "project_id": "datavant", "name": "Ciox Remote", "flat_rate": 16.0},
        ],
    },
]

STANDARD_RATE_TIERS: List[Dict[str, object]] = [
    {"level": "low", "base_rate": 8.0},
    {"level": "medium", "base_rate": 10.0},
    {"level": "high", "base_rate": 12.5},
    {"level": "best", "base_rate": 15.0},
]

FALLBACK_RATE_TIERS: Dict[str, List[Dict[str, object]]] = {
    "verisma-nyu": STANDARD_RATE_TIERS,
    "verisma-baylor": STANDARD_RATE_TIERS,
    "mro-ucsf": [
        {"level": "low", "base_rate": 9.0},
        {"level": "medium", "base_rate": 11.0},
        {"level": "high", "base_rate": 13.0},
        {"level": "best", "base_rate": 16.0},
    ],
    "datavant-ciox": STANDARD_RATE_TIERS,
}

FALLBACK_RESOURCES: List[Dict[str, object]] = [
    {
        "id": "res-aisha",
        "name": "Aisha Khan",
        "role": "Release of Information Specialist",
        "avatar_url": None,
        "assigned_locations": [{"location_id": "verisma-nyu"}, {"location_id": "mro-ucsf"}],
    },
    {
        "id": "res-omar",
        "name": "Omar Siddiqui",
        "role": "Logging Associate",
        "avatar_url": None,
        "assigned_locations": [{"location_id": "verisma-baylor"}],
    },
    {
        "id": "res-sana",
        "name": "Sana Malik",
        "role": "QA Reviewer",
        "avatar_url": None,
        "assigned_locations": [{"location_id": "datavant-ciox"}],
    },
]

# Template records carry no period and seed new months with a default set-up.
FALLBACK_BILLING_RECORDS: List[Dict[str, object]] = [
    {
        "id": "bill-template-omar",
        "project_id": "verisma",
        "location_id": "verisma-baylor",
        "resource_id": "res-omar",
        "resource_name": "Omar Siddiqui",
        "hours": 0.0,
        "productivity_level": "high",
        "rate": 12.5,
        "flat_rate": 17.5,
        "costing": 0.0,
        "total_amount": 0.0,
        "description": "Default logging allocation",
        "billable_status": "Billable",
        "month": None,
        "year": None,
    },
]


def fallback_projects() -> List[Dict[str, object]]:
    return copy.deepcopy(FALLBACK_PROJECTS)


def fallback_locations() -> List[Dict[str, object]]:
    return [dict(location) for project in FALLBACK_PROJECTS for location in project["locations"]]


def fallback_rate_tiers(location_id: str) -> List[Dict[str, object]]:
    return [dict(tier) for tier in FALLBACK_RATE_TIERS.get(location_id, [])]


def fallback_resources() -> List[Dict[str, object]]:
    return copy.deepcopy(FALLBACK_RESOURCES)


def fallback_billing_records() -> List[Dict[str, object]]:
    return copy.deepcopy(FALLBACK_BILLING_RECORDS)
