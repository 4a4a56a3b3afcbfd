from __future__ import annotations

from typing import Any

from pydantic import ValidationError

from resource_hub.schemas.resources import (
    NON_NULLABLE_RESOURCE_COLUMNS,
    RESOURCE_ARRAY_COLUMNS,
    RESOURCE_WRITABLE_COLUMNS,
    ResourcePatch,
)
from resource_hub.services.errors import RepositoryConflictError, RepositoryValidationError

UPDATE_REQUEST_OPEN_STATUSES = frozenset({"new", "in_review"})
UPDATE_REQUEST_TERMINAL_STATUSES = frozenset({"accepted", "rejected"})
# Open requests may move to review or straight to a terminal state.
UPDATE_REQUEST_TARGET_STATUSES = UPDATE_REQUEST_TERMINAL_STATUSES | {"in_review"}

PROVIDER_UPDATE_EVENT = {
    "performed_by_role": "provider",
    "method": "provider_update",
    "result": "verified",
}


def validate_update_request_transition(*, from_status: str, to_status: str) -> None:
    if from_status in UPDATE_REQUEST_TERMINAL_STATUSES:
        raise RepositoryConflictError("Request already processed")
    if from_status not in UPDATE_REQUEST_OPEN_STATUSES or to_status not in UPDATE_REQUEST_TARGET_STATUSES:
        raise RepositoryConflictError(f"invalid update request transition: {from_status} -> {to_status}")


def check_resource_changes(changes: dict[str, Any]) -> dict[str, Any]:
    unknown = sorted(set(changes) - set(RESOURCE_WRITABLE_COLUMNS))
    if unknown:
        raise RepositoryValidationError(f"unknown resource fields: {', '.join(unknown)}")
    for column in sorted(NON_NULLABLE_RESOURCE_COLUMNS):
        if column in changes and changes[column] is None:
            raise RepositoryValidationError(f"{column} cannot be null")
    checked = dict(changes)
    for column in RESOURCE_ARRAY_COLUMNS:
        if checked.get(column) is not None:
            checked[column] = list(checked[column])
    return checked


def parse_proposed_changes(raw: dict[str, Any]) -> ResourcePatch:
    try:
        return ResourcePatch.model_validate(raw)
    except ValidationError as exc:
        first = exc.errors()[0]
        location = ".".join(str(part) for part in first.get("loc", ()))
        detail = first.get("msg", "invalid value")
        if location:
            raise RepositoryValidationError(f"proposedChanges.{location}: {detail}") from exc
        raise RepositoryValidationError(f"proposedChanges: {detail}") from exc


def provider_update_note(changed_fields: list[str]) -> str:
    return f"Provider update accepted. Changed fields: {', '.join(changed_fields)}"


def normalize_email(email: str) -> str:
    return email.strip().lower()


def extend_tags(tags: list[str] | None, tag: str) -> list[str] | None:
    """Return the tag list with ``tag`` appended, or None when already present."""
    current = list(tags or [])
    if tag in current:
        return None
    current.append(tag)
    return current
