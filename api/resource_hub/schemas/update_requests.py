from datetime import datetime
from typing import Any, Literal, get_args

from pydantic import ConfigDict, Field, field_validator

from resource_hub.schemas.base import ApiModel
from resource_hub.schemas.resources import ResourcePatch

UpdateRequestStatus = Literal["new", "in_review", "accepted", "rejected"]
UPDATE_REQUEST_STATUSES: tuple[str, ...] = get_args(UpdateRequestStatus)


class UpdateRequestCreate(ApiModel):
    model_config = ConfigDict(extra="forbid")

    resource_id: int | None = None
    submitted_by: str = Field(min_length=1)
    proposed_changes: ResourcePatch = Field(default_factory=ResourcePatch)
    notes: str | None = None
    evidence_link: str | None = None

    @field_validator("submitted_by")
    @classmethod
    def _normalize_submitter(cls, value: str) -> str:
        return value.strip().lower()


class UpdateRequestReviewRequest(ApiModel):
    reviewed_by_user_id: str | None = None


class UpdateRequestOut(ApiModel):
    id: int
    resource_id: int | None = None
    resource_name: str | None = None
    submitted_by: str | None = None
    proposed_changes: dict[str, Any] = Field(default_factory=dict)
    notes: str | None = None
    evidence_link: str | None = None
    status: UpdateRequestStatus = "new"
    reviewed_by_user_id: str | None = None
    created_at: datetime
    updated_at: datetime
