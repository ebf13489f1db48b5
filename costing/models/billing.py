from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator

ProductivityLevel = Literal["low", "medium", "high", "best"]
BillableStatus = Literal["Billable", "Non-Billable"]

PRODUCTIVITY_LEVELS: tuple[str, ...] = ("low", "medium", "high", "best")

DELETED_RESOURCE_LABEL = "Deleted Resource"


def normalise_level(value: object) -> str:
    level = str(value or "").strip().lower()
    if level not in PRODUCTIVITY_LEVELS:
        raise ValueError(f"Unknown productivity level '{value}'")
    return level


def billable_status_for(is_billable: bool) -> BillableStatus:
    return "Billable" if is_billable else "Non-Billable"


def is_billable_status(status: Optional[str]) -> bool:
    return (status or "Billable").strip().lower() != "non-billable"


class RateTier(BaseModel):
    level: ProductivityLevel
    base_rate: float = Field(alias="baseRate")

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("level", mode="before")
    @classmethod
    def _level(cls, value):
        return normalise_level(value)


class LocationAssignment(BaseModel):
    location_id: str = Field(alias="locationId")

    model_config = ConfigDict(populate_by_name=True)


class Resource(BaseModel):
    id: str
    name: str
    role: Optional[str] = None
    avatar_url: Optional[str] = Field(default=None, alias="avatarUrl")
    assigned_locations: List[LocationAssignment] = Field(default_factory=list, alias="assignedLocations")

    model_config = ConfigDict(populate_by_name=True)


class Location(BaseModel):
    id: str
    project_id: str = Field(alias="projectId")
    name: str
    flat_rate: float = Field(default=0.0, alias="flatRate")

    model_config = ConfigDict(populate_by_name=True)


class Project(BaseModel):
    id: str
    name: str
    locations: List[Location] = Field(default_factory=list)


class BillingRecordPayload(BaseModel):
    project_id: str = Field(alias="projectId")
    location_id: str = Field(alias="locationId")
    resource_id: str = Field(alias="resourceId")
    resource_name: Optional[str] = Field(default=None, alias="resourceName")
    hours: float = 0.0
    productivity_level: ProductivityLevel = Field(default="medium", alias="productivityLevel")
    rate: float = 0.0
    flat_rate: float = Field(default=0.0, alias="flatRate")
    costing: float = 0.0
    total_amount: float = Field(default=0.0, alias="totalAmount")
    description: Optional[str] = None
    billable_status: BillableStatus = Field(default="Billable", alias="billableStatus")
    month: Optional[int] = None
    year: Optional[int] = None

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("productivity_level", mode="before")
    @classmethod
    def _level(cls, value):
        return normalise_level(value or "medium")


class BillingRecord(BillingRecordPayload):
    id: str

    @property
    def has_period(self) -> bool:
        return self.month is not None and self.year is not None


class BillingRow(BaseModel):
    """One reconciled line of the costing view.

    ``costing_amount`` and ``total_bill_amount`` are never stored; they are
    derived from ``hours``, ``rate`` and ``flat_rate`` every time they are read.
    """

    unique_id: str = Field(alias="uniqueId")
    billing_id: Optional[str] = Field(default=None, alias="billingId")
    is_monthly_record: bool = Field(default=False, alias="isMonthlyRecord")
    project_id: str = Field(alias="projectId")
    project_name: str = Field(alias="projectName")
    location_id: str = Field(alias="locationId")
    location_name: str = Field(alias="locationName")
    resource_id: str = Field(alias="resourceId")
    resource_name: str = Field(alias="resourceName")
    role: Optional[str] = None
    avatar_url: Optional[str] = Field(default=None, alias="avatarUrl")
    resource_deleted: bool = Field(default=False, alias="resourceDeleted")
    hours: float = 0.0
    productivity_level: ProductivityLevel = Field(default="medium", alias="productivityLevel")
    rate: float = 0.0
    flat_rate: float = Field(default=0.0, alias="flatRate")
    description: Optional[str] = None
    is_billable: bool = Field(default=True, alias="isBillable")
    is_editable: bool = Field(default=True, alias="isEditable")
    month: int
    year: int

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("productivity_level", mode="before")
    @classmethod
    def _level(cls, value):
        return normalise_level(value or "medium")

    @computed_field(alias="costingAmount")
    @property
    def costing_amount(self) -> float:
        return self.hours * self.rate

    @computed_field(alias="totalBillAmount")
    @property
    def total_bill_amount(self) -> float:
        return self.hours * self.flat_rate

    @property
    def needs_create(self) -> bool:
        return not (self.billing_id and self.is_monthly_record)

    @property
    def stored_resource_name(self) -> Optional[str]:
        # the placeholder label is display-only
        if self.resource_deleted and self.resource_name == DELETED_RESOURCE_LABEL:
            return None
        return self.resource_name

    def to_payload(self, month: Optional[int] = None, year: Optional[int] = None) -> BillingRecordPayload:
        return BillingRecordPayload(
            project_id=self.project_id,
            location_id=self.location_id,
            resource_id=self.resource_id,
            resource_name=self.stored_resource_name,
            hours=self.hours,
            productivity_level=self.productivity_level,
            rate=self.rate,
            flat_rate=self.flat_rate,
            costing=self.costing_amount,
            total_amount=self.total_bill_amount,
            description=self.description,
            billable_status=billable_status_for(self.is_billable),
            month=month if month is not None else self.month,
            year=year if year is not None else self.year,
        )


def build_unique_id(project_id: str, location_id: str, resource_id: str) -> str:
    return f"{project_id}-{location_id}-{resource_id}"


class ReconcileFilter(BaseModel):
    project_id: Optional[str] = Field(default=None, alias="projectId")
    location_id: Optional[str] = Field(default=None, alias="locationId")
    month: int = Field(ge=1, le=12)
    year: int = Field(ge=2000, le=2100)

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("project_id", "location_id", mode="before")
    @classmethod
    def _blank_to_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @property
    def single_location(self) -> bool:
        return self.location_id is not None


EditableField = Literal["hours", "productivity_level", "description", "is_billable"]


class EditResult(BaseModel):
    ok: bool
    row: Optional[BillingRow] = None
    kind: Optional[Literal["validation", "not_found", "busy", "fetch", "sync"]] = None
    error: Optional[str] = None

    @classmethod
    def success(cls, row: BillingRow) -> "EditResult":
        return cls(ok=True, row=row)

    @classmethod
    def failure(cls, kind: str, error: str, row: Optional[BillingRow] = None) -> "EditResult":
        return cls(ok=False, kind=kind, error=error, row=row)


class CostingTotals(BaseModel):
    revenue: float = 0.0
    cost: float = 0.0
    profit: float = 0.0


class BillingRowPage(BaseModel):
    records: List[BillingRow]
    total: int
    page: int
    total_pages: int = Field(alias="totalPages")
    has_more: bool = Field(alias="hasMore")

    model_config = ConfigDict(populate_by_name=True)
