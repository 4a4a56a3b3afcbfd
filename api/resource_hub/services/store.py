import copy
import logging
from collections import Counter
from datetime import datetime, timezone
from itertools import count
from typing import Any

from resource_hub.schemas.resources import RESOURCE_COLUMNS
from resource_hub.schemas.signals import SIGNAL_WRITABLE_COLUMNS
from resource_hub.services.errors import (
    RepositoryConflictError,
    RepositoryNotFoundError,
    RepositoryValidationError,
)
from resource_hub.services.filters import (
    ResourceFilter,
    SignalFilter,
    UpdateRequestFilter,
    distinct_sorted,
    paginate,
)
from resource_hub.services.workflow import (
    PROVIDER_UPDATE_EVENT,
    check_resource_changes,
    extend_tags,
    normalize_email,
    parse_proposed_changes,
    provider_update_note,
    validate_update_request_transition,
)

logger = logging.getLogger(__name__)

RESOURCE_DEFAULTS: dict[str, Any] = {
    "status": "unverified",
    "confidence_score": 20,
    "is_favorite": False,
}
SIGNAL_DEFAULTS: dict[str, Any] = {
    "lane": "noise",
    "impact_score": 0,
    "bs_score": 0,
    "source_receipts": [],
    "related_resource_ids": [],
}


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _newest_first(rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
    return sorted(rows, key=lambda row: (row["created_at"], row["id"]), reverse=True)


class InMemoryRepository:
    """Dict-backed store with the same async surface as ``PostgresRepository``.

    Used for local demos and tests. Rows are copied on the way in and out so
    callers never hold references into the store. There is no awaiting between
    the read and write halves of a mutation, so each call is atomic with respect
    to other coroutines on the loop.
    """

    def __init__(self) -> None:
        self.resources: dict[int, dict[str, Any]] = {}
        self.verification_events: dict[int, dict[str, Any]] = {}
        self.providers: dict[int, dict[str, Any]] = {}
        self.update_requests: dict[int, dict[str, Any]] = {}
        self.signals: dict[int, dict[str, Any]] = {}
        self.lists: dict[int, dict[str, Any]] = {}
        self.list_items: dict[int, dict[str, Any]] = {}
        self.managed_tags: dict[int, dict[str, Any]] = {}
        self.managed_categories: dict[int, dict[str, Any]] = {}
        self._ids: dict[str, count] = {}

    async def close(self) -> None:
        return None

    def _next_id(self, table: str) -> int:
        return next(self._ids.setdefault(table, count(1)))

    # Resources

    def _matching_resources(self, filters: ResourceFilter) -> list[dict[str, Any]]:
        rows = [row for row in self.resources.values() if filters.matches(row)]
        return sorted(rows, key=lambda row: (row["name"], row["id"]))

    async def list_resources(
        self,
        *,
        filters: ResourceFilter,
        limit: int | None = None,
        offset: int | None = None,
    ) -> list[dict[str, Any]]:
        rows = paginate(self._matching_resources(filters), limit=limit, offset=offset)
        return [copy.deepcopy(filters.project(row)) for row in rows]

    async def count_resources(self, *, filters: ResourceFilter) -> int:
        return len(self._matching_resources(filters))

    async def count_resources_by_status(self, *, filters: ResourceFilter) -> dict[str, int]:
        counts = Counter(row["status"] for row in self._matching_resources(filters.without_status()))
        return dict(sorted(counts.items()))

    async def list_resource_categories(self, *, public: bool = False) -> list[str]:
        rows = self._matching_resources(ResourceFilter(public=public))
        values: list[Any] = []
        for row in rows:
            values.append(row.get("category"))
            values.extend(row.get("categories") or [])
        return distinct_sorted(values)

    async def list_resource_tags(self, *, public: bool = False) -> list[str]:
        rows = self._matching_resources(ResourceFilter(public=public))
        return distinct_sorted(tag for row in rows for tag in row.get("tags") or [])

    def _require_resource(self, resource_id: int) -> dict[str, Any]:
        row = self.resources.get(resource_id)
        if row is None:
            raise RepositoryNotFoundError("Resource not found")
        return row

    async def get_resource(self, resource_id: int, *, public: bool = False) -> dict[str, Any]:
        filters = ResourceFilter(public=public)
        row = self.resources.get(resource_id)
        if row is None or not filters.matches(row):
            raise RepositoryNotFoundError("Resource not found")
        return copy.deepcopy(filters.project(row))

    async def create_resource(self, *, values: dict[str, Any]) -> dict[str, Any]:
        checked = check_resource_changes(values)
        for column in ("name", "category"):
            if not checked.get(column):
                raise RepositoryValidationError(f"{column} is required")
        now = _now()
        row: dict[str, Any] = {column: None for column in RESOURCE_COLUMNS}
        row.update(RESOURCE_DEFAULTS)
        row.update({column: value for column, value in checked.items() if value is not None})
        for column in ("categories", "tags", "languages"):
            row[column] = list(row.get(column) or [])
        row.update(id=self._next_id("resources"), created_at=now, updated_at=now)
        self.resources[row["id"]] = row
        logger.info("resource created id=%s status=%s", row["id"], row["status"])
        return copy.deepcopy(row)

    def _apply_resource_changes(self, row: dict[str, Any], changes: dict[str, Any]) -> None:
        for column, value in changes.items():
            if column in ("categories", "tags", "languages"):
                value = list(value or [])
            row[column] = copy.deepcopy(value)
        row["updated_at"] = _now()

    async def update_resource(self, resource_id: int, *, changes: dict[str, Any]) -> dict[str, Any]:
        checked = check_resource_changes(changes)
        row = self._require_resource(resource_id)
        self._apply_resource_changes(row, checked)
        return copy.deepcopy(row)

    async def delete_resource(self, resource_id: int) -> None:
        self._require_resource(resource_id)
        self.list_items = {
            item_id: item for item_id, item in self.list_items.items() if item["resource_id"] != resource_id
        }
        self.verification_events = {
            event_id: event
            for event_id, event in self.verification_events.items()
            if event["resource_id"] != resource_id
        }
        del self.resources[resource_id]
        logger.info("resource deleted id=%s", resource_id)

    async def bulk_update_resources(self, *, ids: list[int], changes: dict[str, Any]) -> list[dict[str, Any]]:
        if not ids:
            raise RepositoryValidationError("ids must not be empty")
        checked = check_resource_changes(changes)
        updated = []
        for resource_id in dict.fromkeys(ids):
            row = self.resources.get(resource_id)
            if row is None:
                continue
            self._apply_resource_changes(row, checked)
            updated.append(row)
        updated.sort(key=lambda row: (row["name"], row["id"]))
        logger.info("bulk resource update requested=%s updated=%s fields=%s", len(ids), len(updated), sorted(checked))
        return copy.deepcopy(updated)

    async def bulk_add_tag(self, *, ids: list[int], tag: str) -> list[dict[str, Any]]:
        if not ids:
            raise RepositoryValidationError("ids must not be empty")
        results = []
        for resource_id in dict.fromkeys(ids):
            row = self.resources.get(resource_id)
            if row is None:
                continue
            extended = extend_tags(row.get("tags"), tag)
            if extended is not None:
                self._apply_resource_changes(row, {"tags": extended})
            results.append(copy.deepcopy(row))
        logger.info("bulk tag add tag=%s requested=%s matched=%s", tag, len(ids), len(results))
        return results

    # Verification events

    async def list_verification_events(self, resource_id: int) -> list[dict[str, Any]]:
        self._require_resource(resource_id)
        rows = [event for event in self.verification_events.values() if event["resource_id"] == resource_id]
        return copy.deepcopy(_newest_first(rows))

    def _insert_verification_event(self, resource_id: int, values: dict[str, Any]) -> dict[str, Any]:
        event = {
            "id": self._next_id("verification_events"),
            "resource_id": resource_id,
            "performed_by_user_id": values.get("performed_by_user_id"),
            "performed_by_role": values.get("performed_by_role") or "staff",
            "method": values.get("method"),
            "result": values.get("result"),
            "fields_checked": list(values.get("fields_checked") or []),
            "notes": values.get("notes"),
            "created_at": _now(),
        }
        self.verification_events[event["id"]] = event
        return event

    async def create_verification_event(self, resource_id: int, *, values: dict[str, Any]) -> dict[str, Any]:
        self._require_resource(resource_id)
        return copy.deepcopy(self._insert_verification_event(resource_id, values))

    # Providers

    async def get_provider(self, provider_id: int) -> dict[str, Any]:
        row = self.providers.get(provider_id)
        if row is None:
            raise RepositoryNotFoundError("Provider not found")
        return copy.deepcopy(row)

    def _provider_by_email(self, email: str) -> dict[str, Any] | None:
        normalized = normalize_email(email)
        for row in self.providers.values():
            if normalize_email(row.get("email") or "") == normalized:
                return row
        return None

    async def get_provider_by_email(self, email: str) -> dict[str, Any]:
        row = self._provider_by_email(email)
        if row is None:
            raise RepositoryNotFoundError("Provider not found")
        return copy.deepcopy(row)

    async def register_provider(self, *, values: dict[str, Any]) -> dict[str, Any]:
        email = normalize_email(values["email"])
        if self._provider_by_email(email) is not None:
            raise RepositoryConflictError("A provider with this email already exists")
        row = {
            "id": self._next_id("providers"),
            "org_name": values["org_name"],
            "contact_name": values.get("contact_name"),
            "email": email,
            "phone": values.get("phone"),
            "website": values.get("website"),
            "verified": False,
            "created_at": _now(),
        }
        self.providers[row["id"]] = row
        logger.info("provider registered id=%s", row["id"])
        return copy.deepcopy(row)

    # Update requests

    def _update_request_view(self, row: dict[str, Any]) -> dict[str, Any]:
        item = copy.deepcopy(row)
        resource = self.resources.get(row["resource_id"]) if row["resource_id"] is not None else None
        item["resource_name"] = resource["name"] if resource else None
        return item

    def _require_update_request(self, request_id: int) -> dict[str, Any]:
        row = self.update_requests.get(request_id)
        if row is None:
            raise RepositoryNotFoundError("Update request not found")
        return row

    def _matching_update_requests(self, filters: UpdateRequestFilter) -> list[dict[str, Any]]:
        return _newest_first([row for row in self.update_requests.values() if filters.matches(row)])

    async def list_update_requests(
        self,
        *,
        filters: UpdateRequestFilter,
        limit: int | None = None,
        offset: int | None = None,
    ) -> list[dict[str, Any]]:
        rows = paginate(self._matching_update_requests(filters), limit=limit, offset=offset)
        return [self._update_request_view(row) for row in rows]

    async def count_update_requests(self, *, filters: UpdateRequestFilter) -> int:
        return len(self._matching_update_requests(filters))

    async def get_update_request(self, request_id: int) -> dict[str, Any]:
        return self._update_request_view(self._require_update_request(request_id))

    async def create_update_request(self, *, values: dict[str, Any]) -> dict[str, Any]:
        resource_id = values.get("resource_id")
        if resource_id is not None:
            self._require_resource(resource_id)
        now = _now()
        submitted_by = values.get("submitted_by")
        row = {
            "id": self._next_id("update_requests"),
            "resource_id": resource_id,
            "submitted_by": normalize_email(submitted_by) if submitted_by else None,
            "proposed_changes": copy.deepcopy(values.get("proposed_changes") or {}),
            "notes": values.get("notes"),
            "evidence_link": values.get("evidence_link"),
            "status": "new",
            "reviewed_by_user_id": None,
            "created_at": now,
            "updated_at": now,
        }
        self.update_requests[row["id"]] = row
        logger.info("update request submitted id=%s resource_id=%s", row["id"], resource_id)
        return self._update_request_view(row)

    async def start_update_request_review(
        self,
        request_id: int,
        *,
        reviewed_by_user_id: str | None,
    ) -> dict[str, Any]:
        row = self._require_update_request(request_id)
        validate_update_request_transition(from_status=row["status"], to_status="in_review")
        row["status"] = "in_review"
        if reviewed_by_user_id is not None:
            row["reviewed_by_user_id"] = reviewed_by_user_id
        row["updated_at"] = _now()
        logger.info("update request in review id=%s", request_id)
        return self._update_request_view(row)

    async def accept_update_request(self, request_id: int, *, reviewed_by_user_id: str | None) -> dict[str, Any]:
        row = self._require_update_request(request_id)
        validate_update_request_transition(from_status=row["status"], to_status="accepted")

        # Validate everything before the first write so a failure leaves no partial state.
        resource_id = row["resource_id"]
        proposed = row.get("proposed_changes") or {}
        changed_fields: list[str] = []
        if resource_id is not None and proposed:
            patch = parse_proposed_changes(proposed)
            changes = check_resource_changes(patch.to_changes())
            resource = self._require_resource(resource_id)
            changed_fields = list(patch.to_wire())
            self._apply_resource_changes(resource, {**changes, "last_verified_at": _now()})
            self._insert_verification_event(
                resource_id,
                {
                    **PROVIDER_UPDATE_EVENT,
                    "performed_by_user_id": reviewed_by_user_id,
                    "fields_checked": changed_fields,
                    "notes": provider_update_note(changed_fields),
                },
            )

        row["status"] = "accepted"
        row["reviewed_by_user_id"] = reviewed_by_user_id
        row["updated_at"] = _now()
        logger.info(
            "update request accepted id=%s resource_id=%s fields=%s",
            request_id,
            resource_id,
            changed_fields,
        )
        return self._update_request_view(row)

    async def reject_update_request(self, request_id: int, *, reviewed_by_user_id: str | None) -> dict[str, Any]:
        row = self._require_update_request(request_id)
        validate_update_request_transition(from_status=row["status"], to_status="rejected")
        row["status"] = "rejected"
        row["reviewed_by_user_id"] = reviewed_by_user_id
        row["updated_at"] = _now()
        logger.info("update request rejected id=%s", request_id)
        return self._update_request_view(row)

    # Signals

    def _matching_signals(self, filters: SignalFilter) -> list[dict[str, Any]]:
        return _newest_first([row for row in self.signals.values() if filters.matches(row)])

    async def list_signals(
        self,
        *,
        filters: SignalFilter,
        limit: int | None = None,
        offset: int | None = None,
    ) -> list[dict[str, Any]]:
        return copy.deepcopy(paginate(self._matching_signals(filters), limit=limit, offset=offset))

    async def count_signals(self, *, filters: SignalFilter) -> int:
        return len(self._matching_signals(filters))

    def _require_signal(self, signal_id: int) -> dict[str, Any]:
        row = self.signals.get(signal_id)
        if row is None:
            raise RepositoryNotFoundError("Signal not found")
        return row

    @staticmethod
    def _check_signal_changes(changes: dict[str, Any]) -> dict[str, Any]:
        unknown = sorted(set(changes) - set(SIGNAL_WRITABLE_COLUMNS))
        if unknown:
            raise RepositoryValidationError(f"unknown signal fields: {', '.join(unknown)}")
        return copy.deepcopy(changes)

    async def get_signal(self, signal_id: int) -> dict[str, Any]:
        return copy.deepcopy(self._require_signal(signal_id))

    async def create_signal(self, *, values: dict[str, Any]) -> dict[str, Any]:
        checked = self._check_signal_changes(values)
        if not checked.get("title"):
            raise RepositoryValidationError("title is required")
        now = _now()
        row: dict[str, Any] = {column: None for column in SIGNAL_WRITABLE_COLUMNS}
        row.update(copy.deepcopy(SIGNAL_DEFAULTS))
        row.update({column: value for column, value in checked.items() if value is not None})
        row.update(id=self._next_id("signals"), created_at=now, updated_at=now)
        self.signals[row["id"]] = row
        return copy.deepcopy(row)

    async def update_signal(self, signal_id: int, *, changes: dict[str, Any]) -> dict[str, Any]:
        checked = self._check_signal_changes(changes)
        row = self._require_signal(signal_id)
        row.update(checked)
        row["updated_at"] = _now()
        return copy.deepcopy(row)

    async def delete_signal(self, signal_id: int) -> None:
        self._require_signal(signal_id)
        del self.signals[signal_id]

    # Lists

    def _require_list(self, list_id: int) -> dict[str, Any]:
        row = self.lists.get(list_id)
        if row is None:
            raise RepositoryNotFoundError("List not found")
        return row

    def _items_for(self, list_id: int) -> list[dict[str, Any]]:
        items = [item for item in self.list_items.values() if item["list_id"] == list_id]
        return sorted(items, key=lambda item: (item["sort_order"], item["id"]))

    async def list_lists(self) -> list[dict[str, Any]]:
        rows = []
        for row in _newest_first(list(self.lists.values())):
            item = copy.deepcopy(row)
            item["resource_count"] = len(self._items_for(row["id"]))
            rows.append(item)
        return rows

    async def get_list(self, list_id: int) -> dict[str, Any]:
        item = copy.deepcopy(self._require_list(list_id))
        item["resources"] = [
            copy.deepcopy(self.resources[entry["resource_id"]])
            for entry in self._items_for(list_id)
            if entry["resource_id"] in self.resources
        ]
        item["resource_count"] = len(item["resources"])
        return item

    async def create_list(self, *, values: dict[str, Any]) -> dict[str, Any]:
        now = _now()
        row = {
            "id": self._next_id("lists"),
            "name": values["name"],
            "description": values.get("description"),
            "created_by_user_id": values.get("created_by_user_id"),
            "created_at": now,
            "updated_at": now,
        }
        self.lists[row["id"]] = row
        return {**copy.deepcopy(row), "resource_count": 0}

    async def add_resource_to_list(
        self,
        list_id: int,
        resource_id: int,
        *,
        sort_order: int = 0,
        notes: str | None = None,
    ) -> None:
        list_row = self._require_list(list_id)
        self._require_resource(resource_id)
        if any(item["resource_id"] == resource_id for item in self._items_for(list_id)):
            return
        item_id = self._next_id("list_items")
        self.list_items[item_id] = {
            "id": item_id,
            "list_id": list_id,
            "resource_id": resource_id,
            "sort_order": sort_order,
            "notes": notes,
        }
        list_row["updated_at"] = _now()

    async def remove_resource_from_list(self, list_id: int, resource_id: int) -> None:
        self.list_items = {
            item_id: item
            for item_id, item in self.list_items.items()
            if not (item["list_id"] == list_id and item["resource_id"] == resource_id)
        }

    # Managed vocabularies

    @staticmethod
    def _vocabulary_order(rows: dict[int, dict[str, Any]]) -> list[dict[str, Any]]:
        return copy.deepcopy(sorted(rows.values(), key=lambda row: (row["sort_order"], row["name"])))

    async def list_managed_tags(self) -> list[dict[str, Any]]:
        return self._vocabulary_order(self.managed_tags)

    async def create_managed_tag(self, *, values: dict[str, Any]) -> dict[str, Any]:
        if any(row["name"] == values["name"] for row in self.managed_tags.values()):
            raise RepositoryConflictError("Managed tag already exists")
        row = {
            "id": self._next_id("managed_tags"),
            "name": values["name"],
            "type": values.get("type"),
            "sort_order": values.get("sort_order", 0),
        }
        self.managed_tags[row["id"]] = row
        return copy.deepcopy(row)

    async def delete_managed_tag(self, tag_id: int) -> None:
        if self.managed_tags.pop(tag_id, None) is None:
            raise RepositoryNotFoundError("Managed tag not found")

    async def list_managed_categories(self) -> list[dict[str, Any]]:
        return self._vocabulary_order(self.managed_categories)

    async def create_managed_category(self, *, values: dict[str, Any]) -> dict[str, Any]:
        if any(row["name"] == values["name"] for row in self.managed_categories.values()):
            raise RepositoryConflictError("Managed category already exists")
        row = {
            "id": self._next_id("managed_categories"),
            "name": values["name"],
            "description": values.get("description"),
            "color": values.get("color"),
            "sort_order": values.get("sort_order", 0),
        }
        self.managed_categories[row["id"]] = row
        return copy.deepcopy(row)

    async def delete_managed_category(self, category_id: int) -> None:
        if self.managed_categories.pop(category_id, None) is None:
            raise RepositoryNotFoundError("Managed category not found")


__all__ = ["InMemoryRepository"]
