from datetime import datetime
from typing import Any, Literal

from pydantic import ConfigDict, Field, model_validator

from resource_hub.schemas.base import ApiModel

SignalType = Literal["closure", "capacity", "policy", "event", "alert", "rumor"]
SignalLane = Literal["action", "noise"]

SIGNAL_WRITABLE_COLUMNS: tuple[str, ...] = (
    "title",
    "summary",
    "type",
    "lane",
    "impact_score",
    "bs_score",
    "last_verified_at",
    "source_receipts",
    "related_resource_ids",
    "created_by_user_id",
)

# Not null in storage.
SIGNAL_REQUIRED_FIELDS: tuple[str, ...] = (
    "title",
    "lane",
    "impact_score",
    "bs_score",
    "source_receipts",
    "related_resource_ids",
)


class SignalCreate(ApiModel):
    model_config = ConfigDict(extra="forbid")

    title: str = Field(min_length=1)
    summary: str | None = None
    type: SignalType | None = None
    lane: SignalLane = "noise"
    impact_score: int = 0
    bs_score: int = 0
    last_verified_at: datetime | None = None
    source_receipts: list[str] = Field(default_factory=list)
    related_resource_ids: list[int] = Field(default_factory=list)
    created_by_user_id: str | None = None


class SignalPatch(ApiModel):
    model_config = ConfigDict(extra="forbid")

    title: str | None = Field(default=None, min_length=1)
    summary: str | None = None
    type: SignalType | None = None
    lane: SignalLane | None = None
    impact_score: int | None = None
    bs_score: int | None = None
    last_verified_at: datetime | None = None
    source_receipts: list[str] | None = None
    related_resource_ids: list[int] | None = None

    @model_validator(mode="after")
    def _reject_null_required_fields(self) -> "SignalPatch":
        for field_name in SIGNAL_REQUIRED_FIELDS:
            if field_name in self.model_fields_set and getattr(self, field_name) is None:
                raise ValueError(f"{field_name} cannot be null")
        return self

    def to_changes(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True)


class SignalOut(ApiModel):
    id: int
    title: str
    summary: str | None = None
    type: SignalType | None = None
    lane: SignalLane = "noise"
    impact_score: int = 0
    bs_score: int = 0
    last_verified_at: datetime | None = None
    source_receipts: list[str] = Field(default_factory=list)
    related_resource_ids: list[int] = Field(default_factory=list)
    created_by_user_id: str | None = None
    created_at: datetime
    updated_at: datetime
