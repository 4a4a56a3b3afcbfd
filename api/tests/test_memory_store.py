from __future__ import annotations

import asyncio
from collections.abc import Coroutine
from datetime import datetime, timedelta, timezone
from typing import Any, TypeVar

import pytest

from resource_hub.services.errors import (
    RepositoryConflictError,
    RepositoryNotFoundError,
    RepositoryValidationError,
)
from resource_hub.services.filters import ResourceFilter, SignalFilter, UpdateRequestFilter
from resource_hub.services.store import InMemoryRepository

T = TypeVar("T")


def _run(coro: Coroutine[Any, Any, T]) -> T:
    return asyncio.run(coro)


def _seed(repo: InMemoryRepository) -> dict[str, int]:
    async def seed() -> dict[str, int]:
        pantry = await repo.create_resource(
            values={"name": "Eastside Food Pantry", "category": "Food", "tags": ["Groceries"], "status": "verified"}
        )
        clinic = await repo.create_resource(
            values={
                "name": "Community Clinic",
                "category": "Health",
                "categories": ["Dental"],
                "tags": ["Dental", "Walk-in"],
                "internal_notes": "call before noon",
            }
        )
        shelter = await repo.create_resource(
            values={"name": "Old Shelter", "category": "Housing", "tags": ["Dental"], "status": "closed"}
        )
        favorite = await repo.create_resource(
            values={"name": "Community Clinic", "category": "Health", "is_favorite": True}
        )
        return {"pantry": pantry["id"], "clinic": clinic["id"], "shelter": shelter["id"], "favorite": favorite["id"]}

    return _run(seed())


def test_create_resource_applies_defaults(memory_repo: InMemoryRepository) -> None:
    row = _run(memory_repo.create_resource(values={"name": "Food Bank", "category": "Food"}))

    assert row["status"] == "unverified"
    assert row["confidence_score"] == 20
    assert row["is_favorite"] is False
    assert row["tags"] == []
    assert row["created_at"] == row["updated_at"]


def test_create_resource_requires_name_and_category(memory_repo: InMemoryRepository) -> None:
    with pytest.raises(RepositoryValidationError, match="category is required"):
        _run(memory_repo.create_resource(values={"name": "Food Bank"}))


@pytest.mark.parametrize(
    "filters",
    [
        ResourceFilter(),
        ResourceFilter(search="clinic"),
        ResourceFilter(tag="Dental"),
        ResourceFilter(status="closed"),
        ResourceFilter(is_favorite=True),
        ResourceFilter(category="Health", tag="Dental"),
        ResourceFilter().for_public(),
        ResourceFilter(tag="Dental").for_public(),
    ],
)
def test_count_matches_unpaginated_list(memory_repo: InMemoryRepository, filters: ResourceFilter) -> None:
    _seed(memory_repo)

    rows = _run(memory_repo.list_resources(filters=filters))
    count = _run(memory_repo.count_resources(filters=filters))

    assert count == len(rows)


def test_list_orders_by_name_then_id(memory_repo: InMemoryRepository) -> None:
    ids = _seed(memory_repo)

    rows = _run(memory_repo.list_resources(filters=ResourceFilter()))

    assert [row["id"] for row in rows] == [ids["clinic"], ids["favorite"], ids["pantry"], ids["shelter"]]


def test_list_paginates(memory_repo: InMemoryRepository) -> None:
    ids = _seed(memory_repo)

    rows = _run(memory_repo.list_resources(filters=ResourceFilter(), limit=2, offset=1))

    assert [row["id"] for row in rows] == [ids["favorite"], ids["pantry"]]


def test_tag_filter_is_exact(memory_repo: InMemoryRepository) -> None:
    ids = _seed(memory_repo)

    exact = _run(memory_repo.list_resources(filters=ResourceFilter(tag="Dental")))
    folded = _run(memory_repo.list_resources(filters=ResourceFilter(tag="dental")))
    partial = _run(memory_repo.list_resources(filters=ResourceFilter(tag="Den")))

    assert {row["id"] for row in exact} == {ids["clinic"], ids["shelter"]}
    assert folded == []
    assert partial == []


def test_public_listing_never_returns_closed(memory_repo: InMemoryRepository) -> None:
    ids = _seed(memory_repo)

    rows = _run(memory_repo.list_resources(filters=ResourceFilter(status="closed").for_public()))
    all_public = _run(memory_repo.list_resources(filters=ResourceFilter().for_public()))

    assert rows == []
    assert ids["shelter"] not in {row["id"] for row in all_public}
    assert all("internal_notes" not in row for row in all_public)
    with pytest.raises(RepositoryNotFoundError):
        _run(memory_repo.get_resource(ids["shelter"], public=True))


def test_status_counts_ignore_status_filter(memory_repo: InMemoryRepository) -> None:
    _seed(memory_repo)

    counts = _run(memory_repo.count_resources_by_status(filters=ResourceFilter(status="verified")))

    assert counts == {"closed": 1, "unverified": 2, "verified": 1}


def test_vocabularies_are_distinct_and_sorted(memory_repo: InMemoryRepository) -> None:
    _seed(memory_repo)

    assert _run(memory_repo.list_resource_categories()) == ["Dental", "Food", "Health", "Housing"]
    assert _run(memory_repo.list_resource_categories(public=True)) == ["Dental", "Food", "Health"]
    assert _run(memory_repo.list_resource_tags()) == ["Dental", "Groceries", "Walk-in"]


def test_update_resource_stamps_updated_at(memory_repo: InMemoryRepository) -> None:
    ids = _seed(memory_repo)
    before = _run(memory_repo.get_resource(ids["pantry"]))

    row = _run(memory_repo.update_resource(ids["pantry"], changes={"status": "closed", "phone": "555-0100"}))

    assert row["status"] == "closed"
    assert row["phone"] == "555-0100"
    assert row["updated_at"] >= before["updated_at"]


def test_update_missing_resource_is_not_found(memory_repo: InMemoryRepository) -> None:
    with pytest.raises(RepositoryNotFoundError):
        _run(memory_repo.update_resource(999, changes={"status": "verified"}))


def test_delete_resource_cascades(memory_repo: InMemoryRepository) -> None:
    ids = _seed(memory_repo)

    async def scenario() -> None:
        target = await memory_repo.create_list(values={"name": "Dental care"})
        await memory_repo.add_resource_to_list(target["id"], ids["clinic"])
        await memory_repo.create_verification_event(ids["clinic"], values={"method": "phone_call", "result": "verified"})

        await memory_repo.delete_resource(ids["clinic"])

        detail = await memory_repo.get_list(target["id"])
        assert detail["resources"] == []
        assert detail["resource_count"] == 0
        with pytest.raises(RepositoryNotFoundError):
            await memory_repo.list_verification_events(ids["clinic"])

    _run(scenario())

    assert not memory_repo.list_items
    assert not memory_repo.verification_events


def test_bulk_update_skips_missing_ids(memory_repo: InMemoryRepository) -> None:
    ids = _seed(memory_repo)

    rows = _run(memory_repo.bulk_update_resources(ids=[ids["pantry"], 999], changes={"status": "needs_info"}))

    assert [row["id"] for row in rows] == [ids["pantry"]]
    assert rows[0]["status"] == "needs_info"


def test_bulk_update_rejects_empty_ids(memory_repo: InMemoryRepository) -> None:
    with pytest.raises(RepositoryValidationError):
        _run(memory_repo.bulk_update_resources(ids=[], changes={"status": "verified"}))


def test_bulk_add_tag_does_not_duplicate(memory_repo: InMemoryRepository) -> None:
    ids = _seed(memory_repo)

    rows = _run(memory_repo.bulk_add_tag(ids=[ids["clinic"], ids["pantry"], 999], tag="Dental"))

    assert [row["id"] for row in rows] == [ids["clinic"], ids["pantry"]]
    assert rows[0]["tags"] == ["Dental", "Walk-in"]
    assert rows[1]["tags"] == ["Groceries", "Dental"]


def test_bulk_add_tag_returns_each_resource_once(memory_repo: InMemoryRepository) -> None:
    ids = _seed(memory_repo)

    rows = _run(memory_repo.bulk_add_tag(ids=[ids["pantry"], ids["pantry"], ids["clinic"]], tag="Dental"))

    assert [row["id"] for row in rows] == [ids["pantry"], ids["clinic"]]
    assert rows[0]["tags"] == ["Groceries", "Dental"]


def test_accept_update_request_applies_changes_and_audits(memory_repo: InMemoryRepository) -> None:
    ids = _seed(memory_repo)

    async def scenario() -> dict[str, Any]:
        request = await memory_repo.create_update_request(
            values={
                "resource_id": ids["pantry"],
                "submitted_by": "Owner@Pantry.org",
                "proposed_changes": {"phone": "555-0100"},
            }
        )
        return await memory_repo.accept_update_request(request["id"], reviewed_by_user_id="staff-1")

    accepted = _run(scenario())
    resource = _run(memory_repo.get_resource(ids["pantry"]))
    events = _run(memory_repo.list_verification_events(ids["pantry"]))

    assert accepted["status"] == "accepted"
    assert accepted["reviewed_by_user_id"] == "staff-1"
    assert accepted["submitted_by"] == "owner@pantry.org"
    assert accepted["resource_name"] == "Eastside Food Pantry"
    assert resource["phone"] == "555-0100"
    assert datetime.now(timezone.utc) - resource["last_verified_at"] < timedelta(minutes=1)
    assert len(events) == 1
    assert events[0]["method"] == "provider_update"
    assert events[0]["result"] == "verified"
    assert events[0]["performed_by_role"] == "provider"
    assert events[0]["fields_checked"] == ["phone"]
    assert events[0]["notes"] == "Provider update accepted. Changed fields: phone"


def test_accept_without_changes_only_flips_status(memory_repo: InMemoryRepository) -> None:
    ids = _seed(memory_repo)

    async def scenario() -> dict[str, Any]:
        request = await memory_repo.create_update_request(
            values={"resource_id": ids["pantry"], "submitted_by": "owner@pantry.org", "proposed_changes": {}}
        )
        return await memory_repo.accept_update_request(request["id"], reviewed_by_user_id=None)

    accepted = _run(scenario())

    assert accepted["status"] == "accepted"
    assert _run(memory_repo.list_verification_events(ids["pantry"])) == []


@pytest.mark.parametrize("terminal", ["accept", "reject"])
def test_processed_request_conflicts_and_changes_nothing(memory_repo: InMemoryRepository, terminal: str) -> None:
    ids = _seed(memory_repo)

    async def scenario() -> None:
        request = await memory_repo.create_update_request(
            values={"resource_id": ids["pantry"], "submitted_by": "owner@pantry.org", "proposed_changes": {}}
        )
        if terminal == "accept":
            await memory_repo.accept_update_request(request["id"], reviewed_by_user_id="staff-1")
        else:
            await memory_repo.reject_update_request(request["id"], reviewed_by_user_id="staff-1")
        before = await memory_repo.get_update_request(request["id"])

        for action in (memory_repo.accept_update_request, memory_repo.reject_update_request):
            with pytest.raises(RepositoryConflictError, match="Request already processed"):
                await action(request["id"], reviewed_by_user_id="staff-2")

        assert await memory_repo.get_update_request(request["id"]) == before

    _run(scenario())


def test_accept_for_deleted_resource_leaves_request_open(memory_repo: InMemoryRepository) -> None:
    ids = _seed(memory_repo)

    async def scenario() -> None:
        request = await memory_repo.create_update_request(
            values={
                "resource_id": ids["pantry"],
                "submitted_by": "owner@pantry.org",
                "proposed_changes": {"hours": "9-5"},
            }
        )
        await memory_repo.delete_resource(ids["pantry"])

        with pytest.raises(RepositoryNotFoundError):
            await memory_repo.accept_update_request(request["id"], reviewed_by_user_id="staff-1")

        stored = await memory_repo.get_update_request(request["id"])
        assert stored["status"] == "new"
        assert stored["resource_name"] is None

    _run(scenario())


def test_review_then_reject(memory_repo: InMemoryRepository) -> None:
    async def scenario() -> None:
        request = await memory_repo.create_update_request(
            values={"resource_id": None, "submitted_by": "owner@pantry.org", "proposed_changes": {}}
        )
        in_review = await memory_repo.start_update_request_review(request["id"], reviewed_by_user_id="staff-1")
        assert in_review["status"] == "in_review"

        rejected = await memory_repo.reject_update_request(request["id"], reviewed_by_user_id="staff-1")
        assert rejected["status"] == "rejected"
        assert await memory_repo.count_update_requests(filters=UpdateRequestFilter(status="rejected")) == 1

    _run(scenario())


def test_update_request_for_unknown_resource_is_not_found(memory_repo: InMemoryRepository) -> None:
    with pytest.raises(RepositoryNotFoundError):
        _run(
            memory_repo.create_update_request(
                values={"resource_id": 404, "submitted_by": "owner@pantry.org", "proposed_changes": {}}
            )
        )


def test_list_membership_is_idempotent(memory_repo: InMemoryRepository) -> None:
    ids = _seed(memory_repo)

    async def scenario() -> dict[str, Any]:
        target = await memory_repo.create_list(values={"name": "Favorites"})
        await memory_repo.add_resource_to_list(target["id"], ids["clinic"])
        await memory_repo.add_resource_to_list(target["id"], ids["clinic"])
        return await memory_repo.get_list(target["id"])

    detail = _run(scenario())

    assert len(memory_repo.list_items) == 1
    assert [row["id"] for row in detail["resources"]] == [ids["clinic"]]


def test_list_resources_follow_sort_order(memory_repo: InMemoryRepository) -> None:
    ids = _seed(memory_repo)

    async def scenario() -> dict[str, Any]:
        target = await memory_repo.create_list(values={"name": "Route"})
        await memory_repo.add_resource_to_list(target["id"], ids["pantry"], sort_order=2)
        await memory_repo.add_resource_to_list(target["id"], ids["clinic"], sort_order=1)
        return await memory_repo.get_list(target["id"])

    detail = _run(scenario())

    assert [row["id"] for row in detail["resources"]] == [ids["clinic"], ids["pantry"]]


def test_add_to_unknown_list_is_not_found(memory_repo: InMemoryRepository) -> None:
    ids = _seed(memory_repo)

    with pytest.raises(RepositoryNotFoundError, match="List not found"):
        _run(memory_repo.add_resource_to_list(99, ids["clinic"]))


def test_provider_email_is_case_insensitive(memory_repo: InMemoryRepository) -> None:
    async def scenario() -> None:
        created = await memory_repo.register_provider(values={"org_name": "Pantry", "email": "Owner@Pantry.org"})
        assert created["email"] == "owner@pantry.org"
        assert created["verified"] is False

        found = await memory_repo.get_provider_by_email("OWNER@pantry.ORG")
        assert found["id"] == created["id"]

        with pytest.raises(RepositoryConflictError):
            await memory_repo.register_provider(values={"org_name": "Other", "email": "owner@PANTRY.org"})

    _run(scenario())


def test_unknown_provider_lookup_is_not_found(memory_repo: InMemoryRepository) -> None:
    with pytest.raises(RepositoryNotFoundError):
        _run(memory_repo.get_provider_by_email("nobody@example.org"))


def test_signals_default_lane_and_filter(memory_repo: InMemoryRepository) -> None:
    async def scenario() -> None:
        noise = await memory_repo.create_signal(values={"title": "Rumor about bridge"})
        assert noise["lane"] == "noise"
        assert noise["impact_score"] == 0
        assert noise["source_receipts"] == []

        action = await memory_repo.create_signal(values={"title": "Shelter full", "type": "capacity"})
        moved = await memory_repo.update_signal(action["id"], changes={"lane": "action"})
        assert moved["lane"] == "action"

        rows = await memory_repo.list_signals(filters=SignalFilter(lane="action"))
        assert [row["id"] for row in rows] == [action["id"]]
        assert await memory_repo.count_signals(filters=SignalFilter()) == 2

        newest_first = await memory_repo.list_signals(filters=SignalFilter())
        assert [row["id"] for row in newest_first] == [action["id"], noise["id"]]

        await memory_repo.delete_signal(noise["id"])
        with pytest.raises(RepositoryNotFoundError):
            await memory_repo.get_signal(noise["id"])

    _run(scenario())


def test_managed_vocabulary_names_are_unique(memory_repo: InMemoryRepository) -> None:
    async def scenario() -> None:
        await memory_repo.create_managed_tag(values={"name": "Walk-in", "sort_order": 2})
        await memory_repo.create_managed_tag(values={"name": "Dental", "sort_order": 1})
        with pytest.raises(RepositoryConflictError):
            await memory_repo.create_managed_tag(values={"name": "Dental"})

        tags = await memory_repo.list_managed_tags()
        assert [row["name"] for row in tags] == ["Dental", "Walk-in"]

        category = await memory_repo.create_managed_category(values={"name": "Food", "color": "#00aa00"})
        await memory_repo.delete_managed_category(category["id"])
        assert await memory_repo.list_managed_categories() == []
        with pytest.raises(RepositoryNotFoundError):
            await memory_repo.delete_managed_category(category["id"])

    _run(scenario())
