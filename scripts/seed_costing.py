#!/usr/bin/env python3
"""
Seed a month of billing records for the costing demo database.

Bootstraps the schema and fixture client tree, then writes one period record
per live resource assignment. Re-running for the same period updates the
existing records instead of adding duplicates.
"""
from __future__ import annotations

import argparse
import random
import sys
import uuid
from datetime import date
from pathlib import Path
from typing import List, Tuple

ROOT = Path(__file__).resolve().parent.parent

sys.path.append(str(ROOT))

from costing.db import close_pool, initialize_database, open_pool, pool  # type: ignore  # noqa: E402
from costing.models import PRODUCTIVITY_LEVELS  # type: ignore  # noqa: E402


RANDOM = random.Random(42)


def _fetch_assignments() -> List[Tuple[str, str, str, str, float]]:
    with pool.connection() as conn:
        with conn.cursor() as cur:
            cur.execute(
                """
                SELECT l.project_id, a.location_id, a.resource_id, r.name, l.flat_rate
                FROM costing.resource_assignments a
                JOIN costing.locations l ON l.id = a.location_id
                JOIN costing.resources r ON r.id = a.resource_id
                ORDER BY a.location_id, a.resource_id
                """
            )
            return cur.fetchall()


def _rate_for(cur, location_id: str, level: str) -> float:
    cur.execute(
        "SELECT base_rate FROM costing.rate_tiers WHERE location_id = %s AND level = %s",
        (location_id, level),
    )
    row = cur.fetchone()
    return float(row[0]) if row else 0.0


def seed_period(month: int, year: int, max_hours: int) -> int:
    assignments = _fetch_assignments()
    written = 0
    with pool.connection() as conn:
        with conn.cursor() as cur:
            for project_id, location_id, resource_id, resource_name, flat_rate in assignments:
                hours = float(RANDOM.randint(0, max_hours))
                level = RANDOM.choice(PRODUCTIVITY_LEVELS)
                rate = _rate_for(cur, location_id, level)
                flat_rate = float(flat_rate)
                cur.execute(
                    """
                    SELECT id FROM costing.billing_records
                    WHERE location_id = %s AND resource_id = %s AND month = %s AND year = %s
                    """,
                    (location_id, resource_id, month, year),
                )
                existing = cur.fetchone()
                values = {
                    "id": existing[0] if existing else f"bill-{uuid.uuid4().hex[:12]}",
                    "project_id": project_id,
                    "location_id": location_id,
                    "resource_id": resource_id,
                    "resource_name": resource_name,
                    "hours": hours,
                    "level": level,
                    "rate": rate,
                    "flat_rate": flat_rate,
                    "costing": hours * rate,
                    "total_amount": hours * flat_rate,
                    "month": month,
                    "year": year,
                }
                cur.execute(
                    """
                    INSERT INTO costing.billing_records (
                        id, project_id, location_id, resource_id, resource_name, hours,
                        productivity_level, rate, flat_rate, costing, total_amount,
                        description, billable_status, month, year
                    )
                    VALUES (
                        %(id)s, %(project_id)s, %(location_id)s, %(resource_id)s, %(resource_name)s, %(hours)s,
                        %(level)s, %(rate)s, %(flat_rate)s, %(costing)s, %(total_amount)s,
                        'seed', 'Billable', %(month)s, %(year)s
                    )
                    ON CONFLICT (id) DO UPDATE SET
                        hours = EXCLUDED.hours,
                        productivity_level = EXCLUDED.productivity_level,
                        rate = EXCLUDED.rate,
                        costing = EXCLUDED.costing,
                        total_amount = EXCLUDED.total_amount,
                        updated_at = NOW()
                    """,
                    values,
                )
                written += 1
        conn.commit()
    return written


def main() -> None:
    today = date.today()
    parser = argparse.ArgumentParser()
    parser.add_argument("--month", type=int, default=today.month)
    parser.add_argument("--year", type=int, default=today.year)
    parser.add_argument("--max-hours", type=int, default=160)
    args = parser.parse_args()
    open_pool()
    try:
        initialize_database()
        written = seed_period(args.month, args.year, args.max_hours)
        if not written:
            print("No resource assignments found; nothing to seed.")
            return
        print(f"Seeded {written} billing records for {args.month:02d}/{args.year}.")
    finally:
        close_pool()


if __name__ == "__main__":
    main()
