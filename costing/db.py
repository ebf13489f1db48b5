import logging
from typing import Iterable

from psycopg_pool import ConnectionPool

from .config import settings
from .data import (
    fallback_billing_records,
    fallback_locations,
    fallback_projects,
    fallback_rate_tiers,
    fallback_resources,
)

logger = logging.getLogger(__name__)

# start closed, we'll open in app lifespan
pool = ConnectionPool(conninfo=settings.database_url, max_size=10, open=False)


SCHEMA_STATEMENTS: Iterable[str] = (
    """
    CREATE TABLE IF NOT EXISTS costing.projects (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS costing.locations (
        id TEXT PRIMARY KEY,
        project_id TEXT NOT NULL REFERENCES costing.projects(id) ON DELETE CASCADE,
        name TEXT NOT NULL,
        flat_rate NUMERIC(10, 2) NOT NULL DEFAULT 0
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_locations_project_id ON costing.locations(project_id)
    """,
    """
    CREATE TABLE IF NOT EXISTS costing.rate_tiers (
        location_id TEXT NOT NULL REFERENCES costing.locations(id) ON DELETE CASCADE,
        level TEXT NOT NULL,
        base_rate NUMERIC(10, 2) NOT NULL,
        sequence INTEGER NOT NULL DEFAULT 0,
        PRIMARY KEY (location_id, level)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS costing.resources (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        role TEXT,
        avatar_url TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS costing.resource_assignments (
        resource_id TEXT NOT NULL REFERENCES costing.resources(id) ON DELETE CASCADE,
        location_id TEXT NOT NULL REFERENCES costing.locations(id) ON DELETE CASCADE,
        PRIMARY KEY (resource_id, location_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS costing.billing_records (
        id TEXT PRIMARY KEY,
        project_id TEXT NOT NULL,
        location_id TEXT NOT NULL,
        resource_id TEXT NOT NULL,
        resource_name TEXT,
        hours NUMERIC(10, 2) NOT NULL DEFAULT 0,
        productivity_level TEXT NOT NULL DEFAULT 'medium',
        rate NUMERIC(10, 2) NOT NULL DEFAULT 0,
        flat_rate NUMERIC(10, 2) NOT NULL DEFAULT 0,
        costing NUMERIC(12, 2) NOT NULL DEFAULT 0,
        total_amount NUMERIC(12, 2) NOT NULL DEFAULT 0,
        description TEXT,
        billable_status TEXT NOT NULL DEFAULT 'Billable',
        month INTEGER,
        year INTEGER,
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_billing_records_period ON costing.billing_records(year, month)
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_billing_records_location ON costing.billing_records(location_id, resource_id)
    """,
    """
    CREATE TABLE IF NOT EXISTS costing.invoices (
        id TEXT PRIMARY KEY,
        invoice_number TEXT NOT NULL UNIQUE,
        month INTEGER NOT NULL,
        year INTEGER NOT NULL,
        total_costing_amount NUMERIC(14, 2) NOT NULL DEFAULT 0,
        total_billing_amount NUMERIC(14, 2) NOT NULL DEFAULT 0,
        total_billable_amount NUMERIC(14, 2) NOT NULL DEFAULT 0,
        total_non_billable_amount NUMERIC(14, 2) NOT NULL DEFAULT 0,
        lines JSONB NOT NULL DEFAULT '[]'::jsonb,
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS costing.invoice_records (
        invoice_id TEXT NOT NULL REFERENCES costing.invoices(id) ON DELETE CASCADE,
        billing_record_id TEXT NOT NULL REFERENCES costing.billing_records(id),
        PRIMARY KEY (invoice_id, billing_record_id)
    )
    """,
)


def open_pool() -> None:
    if pool.closed:
        pool.open()


def close_pool() -> None:
    if not pool.closed:
        pool.close()


def initialize_database() -> None:
    try:
        ensure_schema()
        seed_database()
    except Exception:  # pragma: no cover
        logger.exception("Database initialization failed")
        raise


def ensure_schema() -> None:
    with pool.connection() as conn:
        with conn.cursor() as cur:
            cur.execute("CREATE SCHEMA IF NOT EXISTS costing")
            cur.execute("SET search_path TO costing, public")
            for statement in SCHEMA_STATEMENTS:
                cur.execute(statement)
        conn.commit()


def seed_database() -> None:
    """Idempotent bootstrap of the demo client tree.

    Only runs when ``costing.projects`` is empty so live data is never touched.
    """
    with pool.connection() as conn:
        with conn.cursor() as cur:
            cur.execute("SELECT COUNT(*) FROM costing.projects")
            (project_count,) = cur.fetchone()

        if project_count:
            return

        logger.info("Seeding costing schema from fallback fixtures")
        with conn.cursor() as cur:
            for project in fallback_projects():
                cur.execute(
                    "INSERT INTO costing.projects (id, name) VALUES (%(id)s, %(name)s) ON CONFLICT (id) DO NOTHING",
                    project,
                )
            for location in fallback_locations():
                cur.execute(
                    """
                    INSERT INTO costing.locations (id, project_id, name, flat_rate)
                    VALUES (%(id)s, %(project_id)s, %(name)s, %(flat_rate)s)
                    ON CONFLICT (id) DO UPDATE SET
                        name = EXCLUDED.name,
                        flat_rate = EXCLUDED.flat_rate
                    """,
                    location,
                )
                for sequence, tier in enumerate(fallback_rate_tiers(location["id"])):
                    cur.execute(
                        """
                        INSERT INTO costing.rate_tiers (location_id, level, base_rate, sequence)
                        VALUES (%s, %s, %s, %s)
                        ON CONFLICT (location_id, level) DO UPDATE SET base_rate = EXCLUDED.base_rate
                        """,
                        (location["id"], tier["level"], tier["base_rate"], sequence),
                    )
            for resource in fallback_resources():
                cur.execute(
                    """
                    INSERT INTO costing.resources (id, name, role, avatar_url)
                    VALUES (%(id)s, %(name)s, %(role)s, %(avatar_url)s)
                    ON CONFLICT (id) DO NOTHING
                    """,
                    resource,
                )
                for assignment in resource["assigned_locations"]:
                    cur.execute(
                        """
                        INSERT INTO costing.resource_assignments (resource_id, location_id)
                        VALUES (%s, %s)
                        ON CONFLICT DO NOTHING
                        """,
                        (resource["id"], assignment["location_id"]),
                    )
            for record in fallback_billing_records():
                cur.execute(
                    """
                    INSERT INTO costing.billing_records (
                        id, project_id, location_id, resource_id, resource_name, hours,
                        productivity_level, rate, flat_rate, costing, total_amount,
                        description, billable_status, month, year
                    )
                    VALUES (
                        %(id)s, %(project_id)s, %(location_id)s, %(resource_id)s, %(resource_name)s, %(hours)s,
                        %(productivity_level)s, %(rate)s, %(flat_rate)s, %(costing)s, %(total_amount)s,
                        %(description)s, %(billable_status)s, %(month)s, %(year)s
                    )
                    ON CONFLICT (id) DO NOTHING
                    """,
                    record,
                )
        conn.commit()
