from datetime import datetime
from typing import Any, Literal, get_args

from pydantic import ConfigDict, Field, model_validator

from resource_hub.schemas.base import ApiModel

ResourceStatus = Literal["unverified", "verified", "needs_info", "closed", "limited"]
RESOURCE_STATUSES: tuple[str, ...] = get_args(ResourceStatus)

VerificationRole = Literal["staff", "provider", "system"]
VerificationMethod = Literal["website_check", "phone_call", "email", "in_person", "provider_update"]
VerificationResult = Literal["verified", "needs_info", "closed", "limited", "no_answer"]

MAX_SECONDARY_CATEGORIES = 2

# Columns a caller may write; everything except id and the created/updated stamps.
RESOURCE_WRITABLE_COLUMNS: tuple[str, ...] = (
    "name",
    "description",
    "category",
    "categories",
    "tags",
    "status",
    "address",
    "city",
    "state",
    "zip",
    "lat",
    "lng",
    "service_area",
    "phone",
    "email",
    "website",
    "services",
    "hours",
    "eligibility",
    "access_info",
    "languages",
    "internal_notes",
    "public_notes",
    "confidence_score",
    "last_verified_at",
    "next_verify_due_at",
    "provider_id",
    "is_favorite",
    "notes",
)
RESOURCE_COLUMNS: tuple[str, ...] = ("id", *RESOURCE_WRITABLE_COLUMNS, "created_at", "updated_at")
PUBLIC_RESOURCE_COLUMNS: tuple[str, ...] = (
    "id",
    "name",
    "description",
    "category",
    "categories",
    "tags",
    "status",
    "address",
    "city",
    "state",
    "zip",
    "lat",
    "lng",
    "service_area",
    "phone",
    "email",
    "website",
    "services",
    "hours",
    "eligibility",
    "access_info",
    "languages",
    "public_notes",
    "last_verified_at",
)
RESOURCE_ARRAY_COLUMNS = frozenset({"categories", "tags", "languages"})
NON_NULLABLE_RESOURCE_COLUMNS = frozenset({"name", "category", "status", "is_favorite"})


class _ResourceDetailFields(ApiModel):
    description: str | None = None
    categories: list[str] | None = Field(default=None, max_length=MAX_SECONDARY_CATEGORIES)
    tags: list[str] | None = None
    address: str | None = None
    city: str | None = None
    state: str | None = None
    zip: str | None = None
    lat: float | None = None
    lng: float | None = None
    service_area: str | None = None
    phone: str | None = None
    email: str | None = None
    website: str | None = None
    services: str | None = None
    hours: str | None = None
    eligibility: str | None = None
    access_info: str | None = None
    languages: list[str] | None = None
    internal_notes: str | None = None
    public_notes: str | None = None
    last_verified_at: datetime | None = None
    next_verify_due_at: datetime | None = None
    provider_id: int | None = None
    notes: str | None = None


class ResourceCreate(_ResourceDetailFields):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=1)
    category: str = Field(min_length=1)
    status: ResourceStatus = "unverified"
    confidence_score: int = 20
    is_favorite: bool = False


class ResourcePatch(_ResourceDetailFields):
    """Partial resource update. Only explicitly supplied keys are applied."""

    model_config = ConfigDict(extra="forbid")

    name: str | None = Field(default=None, min_length=1)
    category: str | None = Field(default=None, min_length=1)
    status: ResourceStatus | None = None
    confidence_score: int | None = None
    is_favorite: bool | None = None

    @model_validator(mode="after")
    def _reject_null_required_fields(self) -> "ResourcePatch":
        for field_name in sorted(NON_NULLABLE_RESOURCE_COLUMNS & self.model_fields_set):
            if getattr(self, field_name) is None:
                raise ValueError(f"{to_wire_name(field_name)} cannot be null")
        return self

    def to_changes(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True, by_alias=True, mode="json")


class ResourceOut(ApiModel):
    id: int
    name: str
    description: str | None = None
    category: str
    categories: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    status: ResourceStatus = "unverified"
    address: str | None = None
    city: str | None = None
    state: str | None = None
    zip: str | None = None
    lat: float | None = None
    lng: float | None = None
    service_area: str | None = None
    phone: str | None = None
    email: str | None = None
    website: str | None = None
    services: str | None = None
    hours: str | None = None
    eligibility: str | None = None
    access_info: str | None = None
    languages: list[str] = Field(default_factory=list)
    internal_notes: str | None = None
    public_notes: str | None = None
    confidence_score: int | None = None
    last_verified_at: datetime | None = None
    next_verify_due_at: datetime | None = None
    provider_id: int | None = None
    is_favorite: bool = False
    notes: str | None = None
    created_at: datetime
    updated_at: datetime


class PublicResourceOut(ApiModel):
    id: int
    name: str
    description: str | None = None
    category: str
    categories: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    status: ResourceStatus
    address: str | None = None
    city: str | None = None
    state: str | None = None
    zip: str | None = None
    lat: float | None = None
    lng: float | None = None
    service_area: str | None = None
    phone: str | None = None
    email: str | None = None
    website: str | None = None
    services: str | None = None
    hours: str | None = None
    eligibility: str | None = None
    access_info: str | None = None
    languages: list[str] = Field(default_factory=list)
    public_notes: str | None = None
    last_verified_at: datetime | None = None


class ResourceBulkUpdateRequest(ApiModel):
    ids: list[int] = Field(min_length=1)
    updates: ResourcePatch


class ResourceBulkTagRequest(ApiModel):
    ids: list[int] = Field(min_length=1)
    tag: str = Field(min_length=1)


class VerificationEventCreate(ApiModel):
    model_config = ConfigDict(extra="forbid")

    performed_by_user_id: str | None = None
    performed_by_role: VerificationRole = "staff"
    method: VerificationMethod | None = None
    result: VerificationResult | None = None
    fields_checked: list[str] = Field(default_factory=list)
    notes: str | None = None


class VerificationEventOut(ApiModel):
    id: int
    resource_id: int
    performed_by_user_id: str | None = None
    performed_by_role: VerificationRole | None = None
    method: VerificationMethod | None = None
    result: VerificationResult | None = None
    fields_checked: list[str] = Field(default_factory=list)
    notes: str | None = None
    created_at: datetime


def to_wire_name(field_name: str) -> str:
    field = ResourcePatch.model_fields.get(field_name)
    if field is None or field.alias is None:
        return field_name
    return field.alias
