from datetime import datetime

from pydantic import Field, field_validator

from resource_hub.schemas.base import ApiModel


class ProviderLookupRequest(ApiModel):
    email: str = Field(min_length=1)

    @field_validator("email")
    @classmethod
    def _normalize_email(cls, value: str) -> str:
        return value.strip().lower()


class ProviderRegisterRequest(ApiModel):
    org_name: str = Field(min_length=1)
    contact_name: str | None = None
    email: str = Field(min_length=1)
    phone: str | None = None
    website: str | None = None

    @field_validator("email")
    @classmethod
    def _normalize_email(cls, value: str) -> str:
        normalized = value.strip().lower()
        if "@" not in normalized:
            raise ValueError("email must be a valid email address")
        return normalized


class ProviderOut(ApiModel):
    id: int
    org_name: str
    contact_name: str | None = None
    email: str | None = None
    phone: str | None = None
    website: str | None = None
    verified: bool = False
    created_at: datetime
