from datetime import datetime

from pydantic import Field

from resource_hub.schemas.base import ApiModel
from resource_hub.schemas.resources import ResourceOut


class ListCreate(ApiModel):
    name: str = Field(min_length=1)
    description: str | None = None
    created_by_user_id: str | None = None


class ListOut(ApiModel):
    id: int
    name: str
    description: str | None = None
    created_by_user_id: str | None = None
    resource_count: int = 0
    created_at: datetime
    updated_at: datetime


class ListDetailOut(ListOut):
    resources: list[ResourceOut] = Field(default_factory=list)


class ListItemCreate(ApiModel):
    resource_id: int
    sort_order: int = 0
    notes: str | None = None
