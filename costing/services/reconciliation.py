from __future__ import annotations

import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, List, Mapping, Tuple

from fastapi import HTTPException, status

from ..config import settings
from ..models import (
    DELETED_RESOURCE_LABEL,
    BillingRecord,
    BillingRow,
    Location,
    Project,
    RateTier,
    ReconcileFilter,
    Resource,
    build_unique_id,
    is_billable_status,
)
from .caches import resolve_rate
from .fanout import gather_all
from .session import CostingSession


logger = logging.getLogger(__name__)

_MergeKey = Tuple[str, str]


@dataclass(frozen=True)
class ReconcileScope:
    projects: Mapping[str, Project]
    locations: Mapping[str, Location]

    @property
    def location_ids(self) -> List[str]:
        return list(self.locations)


def resolve_scope(projects: List[Project], filter_: ReconcileFilter) -> ReconcileScope:
    by_project = {project.id: project for project in projects}
    all_locations = {location.id: location for project in projects for location in project.locations}

    if filter_.location_id:
        location = all_locations.get(filter_.location_id)
        if location is None or location.project_id not in by_project:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Location not found")
        if filter_.project_id and location.project_id != filter_.project_id:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Location does not belong to the selected project",
            )
        return ReconcileScope(projects=by_project, locations={location.id: location})

    if filter_.project_id:
        project = by_project.get(filter_.project_id)
        if project is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Project not found")
        return ReconcileScope(
            projects=by_project,
            locations={location.id: location for location in project.locations},
        )

    return ReconcileScope(projects=by_project, locations=all_locations)


def index_records(records: List[BillingRecord], scope: ReconcileScope) -> Dict[_MergeKey, BillingRecord]:
    """Key records by ``(location_id, resource_id)``; a period record beats a template."""
    indexed: Dict[_MergeKey, BillingRecord] = {}
    for record in records:
        if record.location_id not in scope.locations:
            continue
        key = (record.location_id, record.resource_id)
        current = indexed.get(key)
        if current is not None and current.has_period and not record.has_period:
            continue
        indexed[key] = record
    return indexed


def _row_from_assignment(
    filter_: ReconcileFilter,
    scope: ReconcileScope,
    location: Location,
    resource: Resource,
    rates: List[RateTier],
    record: BillingRecord | None,
) -> BillingRow:
    project = scope.projects[location.project_id]
    base = dict(
        unique_id=build_unique_id(project.id, location.id, resource.id),
        project_id=project.id,
        project_name=project.name,
        location_id=location.id,
        location_name=location.name,
        resource_id=resource.id,
        resource_name=resource.name,
        role=resource.role,
        avatar_url=resource.avatar_url,
        flat_rate=location.flat_rate,
        is_editable=True,
        month=filter_.month,
        year=filter_.year,
    )
    if record is None:
        level = settings.default_productivity_level
        return BillingRow(
            **base,
            billing_id=None,
            is_monthly_record=False,
            hours=0.0,
            productivity_level=level,
            rate=resolve_rate(rates, level),
        )
    return BillingRow(
        **base,
        billing_id=record.id,
        is_monthly_record=record.has_period,
        hours=record.hours,
        productivity_level=record.productivity_level,
        # stored rates go stale when the tier table changes
        rate=resolve_rate(rates, record.productivity_level),
        description=record.description,
        is_billable=is_billable_status(record.billable_status),
    )


def _row_from_record(
    filter_: ReconcileFilter,
    scope: ReconcileScope,
    record: BillingRecord,
    resources: Mapping[str, Resource],
) -> BillingRow | None:
    location = scope.locations.get(record.location_id)
    if location is None:
        return None
    project = scope.projects.get(location.project_id)
    if project is None:
        return None
    resource = resources.get(record.resource_id)
    return BillingRow(
        unique_id=build_unique_id(project.id, location.id, record.resource_id),
        billing_id=record.id,
        is_monthly_record=record.has_period,
        project_id=project.id,
        project_name=project.name,
        location_id=location.id,
        location_name=location.name,
        resource_id=record.resource_id,
        resource_name=resource.name if resource else (record.resource_name or DELETED_RESOURCE_LABEL),
        role=resource.role if resource else None,
        avatar_url=resource.avatar_url if resource else None,
        resource_deleted=resource is None,
        hours=record.hours,
        productivity_level=record.productivity_level,
        rate=record.rate,
        flat_rate=location.flat_rate,
        description=record.description,
        is_billable=is_billable_status(record.billable_status),
        is_editable=False,
        month=filter_.month,
        year=filter_.year,
    )


def merge_rows(
    filter_: ReconcileFilter,
    scope: ReconcileScope,
    rates: Mapping[str, List[RateTier]],
    records: Mapping[_MergeKey, BillingRecord],
    assignments: List[Resource],
    directory: Mapping[str, Resource],
) -> Mapping[_MergeKey, BillingRow]:
    """Fold live assignments, then historical records, into one row per key.

    ``assignments`` must be read fresh for the pass; ``directory`` only
    supplies name, role and avatar for read-only rows.
    """
    merged: Dict[_MergeKey, BillingRow] = {}

    # Pass 1: live assignments
    for resource in assignments:
        for assignment in resource.assigned_locations:
            location = scope.locations.get(assignment.location_id)
            if location is None:
                continue
            key = (location.id, resource.id)
            if key in merged:
                continue
            merged[key] = _row_from_assignment(
                filter_, scope, location, resource, rates.get(location.id, []), records.get(key)
            )

    # Pass 2: orphaned period records fill the gaps only
    for key, record in records.items():
        if key in merged or not record.has_period:
            continue
        if (record.month, record.year) != (filter_.month, filter_.year):
            continue
        row = _row_from_record(filter_, scope, record, directory)
        if row is not None:
            merged[key] = row

    return MappingProxyType(merged)


def _sort_key(row: BillingRow) -> Tuple[str, str, str]:
    return (row.project_name.lower(), row.location_name.lower(), row.resource_name.lower())


async def reconcile(session: CostingSession, filter_: ReconcileFilter) -> List[BillingRow]:
    """Build the reconciled billing view for one period and store it on the session.

    Any store failure propagates as ``BillingStoreError`` and leaves the
    session's previous view in place.
    """
    projects = await session.store.list_projects()
    scope = resolve_scope(projects, filter_)
    if not scope.locations:
        session.view.load(filter_, [])
        return []

    if filter_.single_location:
        record_call = session.store.list_billing_records(
            filter_.month, filter_.year, location_id=filter_.location_id, include_templates=True
        )
    else:
        record_call = session.store.list_billing_records(filter_.month, filter_.year)

    # assignments change between passes; only their metadata is cached
    rates, records, assignments = await gather_all(
        session.rates.prime(scope.location_ids),
        record_call,
        session.store.list_all_resources(),
    )
    session.resources.remember(assignments)
    directory = await session.resources.by_id()
    for resource in assignments:
        directory.setdefault(resource.id, resource)

    merged = merge_rows(filter_, scope, rates, index_records(records, scope), assignments, directory)
    rows = sorted(merged.values(), key=_sort_key)
    session.view.load(filter_, rows)

    orphans = sum(1 for row in rows if not row.is_editable)
    logger.info(
        "Reconciled %s rows (%s read-only) for %s/%s across %s locations",
        len(rows),
        orphans,
        filter_.month,
        filter_.year,
        len(scope.locations),
    )
    return rows
