from pydantic import Field

from resource_hub.schemas.base import ApiModel


class ManagedTagCreate(ApiModel):
    name: str = Field(min_length=1)
    type: str | None = None
    sort_order: int = 0


class ManagedTagOut(ApiModel):
    id: int
    name: str
    type: str | None = None
    sort_order: int = 0


class ManagedCategoryCreate(ApiModel):
    name: str = Field(min_length=1)
    description: str | None = None
    color: str | None = None
    sort_order: int = 0


class ManagedCategoryOut(ApiModel):
    id: int
    name: str
    description: str | None = None
    color: str | None = None
    sort_order: int = 0
