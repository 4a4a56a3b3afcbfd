from __future__ import annotations

import asyncio
import os
from collections.abc import Coroutine
from pathlib import Path
from typing import Any, TypeVar

import asyncpg  # type: ignore[import-untyped]
import pytest
from fastapi.testclient import TestClient

from resource_hub.core.config import get_settings
from resource_hub.main import app
from resource_hub.services.repository import get_repository

SCHEMA_PATH = Path(__file__).resolve().parents[2] / "db" / "schema.sql"

T = TypeVar("T")


@pytest.fixture(scope="session")
def database_url() -> str:
    url = os.getenv("RH_DATABASE_URL") or os.getenv("DATABASE_URL")
    if not url:
        pytest.skip("integration tests require RH_DATABASE_URL or DATABASE_URL")
    _run(_apply_schema(url))
    return url


@pytest.fixture(autouse=True)
def reset_tables(database_url: str) -> None:
    _run(_truncate_tables(database_url))


@pytest.fixture
def pg_client(database_url: str) -> TestClient:
    previous_backend = os.environ.get("RH_STORE_BACKEND")
    os.environ["RH_STORE_BACKEND"] = "postgres"
    os.environ["RH_DATABASE_URL"] = database_url
    get_settings.cache_clear()
    get_repository.cache_clear()

    with TestClient(app) as client:
        yield client

    os.environ["RH_STORE_BACKEND"] = previous_backend or "memory"
    os.environ.pop("RH_DATABASE_URL", None)
    get_repository.cache_clear()
    get_settings.cache_clear()


def _create_resource(client: TestClient, **fields: Any) -> dict[str, Any]:
    response = client.post("/resources", json={"name": "Eastside Food Pantry", "category": "Food", **fields})
    assert response.status_code == 201, response.text
    return response.json()


def test_resource_filters_count_and_public_projection(pg_client: TestClient) -> None:
    clinic = _create_resource(pg_client, name="Community Clinic", category="Health", tags=["Dental"])
    _create_resource(pg_client, name="Dental Van", category="Health", tags=["Dental"], status="closed")
    _create_resource(pg_client, name="Food 50%_off", tags=["dental"])

    listed = pg_client.get("/resources", params={"tag": "Dental"}).json()
    assert [row["name"] for row in listed] == ["Community Clinic", "Dental Van"]
    assert pg_client.get("/resources/count", params={"tag": "Dental"}).json() == {"count": 2}

    assert [row["name"] for row in pg_client.get("/resources", params={"search": "%_"}).json()] == ["Food 50%_off"]
    assert pg_client.get("/resources", params={"search": "50%x"}).json() == []

    public = pg_client.get("/public/resources", params={"tag": "Dental", "status": "closed"}).json()
    assert public == []
    public_all = pg_client.get("/public/resources", params={"tag": "Dental"}).json()
    assert [row["id"] for row in public_all] == [clinic["id"]]
    assert "internalNotes" not in public_all[0]

    assert pg_client.get("/resources/status-counts").json() == {"closed": 1, "unverified": 2}
    assert pg_client.get("/tags").json() == ["Dental", "dental"]
    assert pg_client.get("/public/categories").json() == ["Food", "Health"]


def test_create_defaults_and_partial_update(pg_client: TestClient) -> None:
    created = _create_resource(pg_client, phone="555-0000")
    assert created["status"] == "unverified"
    assert created["confidenceScore"] == 20
    assert created["isFavorite"] is False
    assert created["tags"] == []

    updated = pg_client.put(f"/resources/{created['id']}", json={"phone": None, "tags": ["Walk-in"]}).json()
    assert updated["phone"] is None
    assert updated["tags"] == ["Walk-in"]
    assert updated["name"] == created["name"]
    assert updated["updatedAt"] >= created["updatedAt"]


def test_accept_update_request_is_applied_in_one_transaction(pg_client: TestClient, database_url: str) -> None:
    resource = _create_resource(pg_client)
    submitted = pg_client.post(
        "/update-requests",
        json={"resourceId": resource["id"], "submittedBy": "Owner@Pantry.org", "proposedChanges": {"phone": "555-0100"}},
    ).json()
    assert submitted["resourceName"] == "Eastside Food Pantry"
    assert submitted["proposedChanges"] == {"phone": "555-0100"}

    accepted = pg_client.post(f"/update-requests/{submitted['id']}/accept", json={"reviewedByUserId": "staff-1"})
    assert accepted.status_code == 200
    assert accepted.json()["status"] == "accepted"

    updated = pg_client.get(f"/resources/{resource['id']}").json()
    assert updated["phone"] == "555-0100"
    assert updated["lastVerifiedAt"] is not None

    events = pg_client.get(f"/resources/{resource['id']}/verification-events").json()
    assert len(events) == 1
    assert events[0]["method"] == "provider_update"
    assert events[0]["result"] == "verified"
    assert events[0]["fieldsChecked"] == ["phone"]

    conflict = pg_client.post(f"/update-requests/{submitted['id']}/accept")
    assert conflict.status_code == 409
    assert _run(_fetchval(database_url, "select count(*) from verification_events")) == 1


def test_accept_for_deleted_resource_rolls_back(pg_client: TestClient) -> None:
    resource = _create_resource(pg_client)
    submitted = pg_client.post(
        "/update-requests",
        json={"resourceId": resource["id"], "submittedBy": "owner@pantry.org", "proposedChanges": {"hours": "9-5"}},
    ).json()
    assert pg_client.delete(f"/resources/{resource['id']}").status_code == 204

    response = pg_client.post(f"/update-requests/{submitted['id']}/accept")

    assert response.status_code == 404
    assert pg_client.get(f"/update-requests/{submitted['id']}").json()["status"] == "new"


def test_delete_resource_cascades(pg_client: TestClient, database_url: str) -> None:
    resource = _create_resource(pg_client)
    list_id = pg_client.post("/lists", json={"name": "Pantries"}).json()["id"]
    pg_client.post(f"/lists/{list_id}/items", json={"resourceId": resource["id"]})
    pg_client.post(f"/lists/{list_id}/items", json={"resourceId": resource["id"]})
    pg_client.post(
        f"/resources/{resource['id']}/verification-events",
        json={"method": "website_check", "result": "verified"},
    )
    assert _run(_fetchval(database_url, "select count(*) from list_items")) == 1

    assert pg_client.delete(f"/resources/{resource['id']}").status_code == 204

    assert _run(_fetchval(database_url, "select count(*) from list_items")) == 0
    assert _run(_fetchval(database_url, "select count(*) from verification_events")) == 0
    assert pg_client.get(f"/lists/{list_id}").json()["resources"] == []
    assert pg_client.delete(f"/resources/{resource['id']}").status_code == 404


def test_provider_email_uniqueness_is_case_insensitive(pg_client: TestClient) -> None:
    created = pg_client.post("/providers/register", json={"orgName": "Pantry", "email": "Owner@Pantry.org"})
    assert created.status_code == 201

    duplicate = pg_client.post("/providers/register", json={"orgName": "Other", "email": "OWNER@pantry.org"})
    assert duplicate.status_code == 409

    lookup = pg_client.post("/providers/lookup", json={"email": "owner@PANTRY.org"})
    assert lookup.json()["id"] == created.json()["id"]


def test_bulk_operations(pg_client: TestClient) -> None:
    first = _create_resource(pg_client, name="A", tags=["Food"])
    second = _create_resource(pg_client, name="B")

    bulk = pg_client.put(
        "/resources/bulk",
        json={"ids": [second["id"], first["id"], 999], "updates": {"status": "limited"}},
    ).json()
    assert [row["id"] for row in bulk] == [first["id"], second["id"]]
    assert {row["status"] for row in bulk} == {"limited"}

    tagged = pg_client.post(
        "/resources/bulk/tags", json={"ids": [first["id"], second["id"], second["id"]], "tag": "Food"}
    ).json()
    assert [row["tags"] for row in tagged] == [["Food"], ["Food"]]


def test_signals_lists_and_vocabularies(pg_client: TestClient) -> None:
    signal = pg_client.post("/signals", json={"title": "Bridge closed", "type": "closure"}).json()
    assert signal["lane"] == "noise"
    moved = pg_client.put(f"/signals/{signal['id']}", json={"lane": "action"}).json()
    assert moved["lane"] == "action"
    assert pg_client.get("/signals/count", params={"lane": "action"}).json() == {"count": 1}

    assert pg_client.post("/managed-tags", json={"name": "Walk-in"}).status_code == 201
    assert pg_client.post("/managed-tags", json={"name": "Walk-in"}).status_code == 409

    lists = pg_client.get("/lists").json()
    assert lists == []


def test_export_csv_reads_from_postgres(pg_client: TestClient) -> None:
    _create_resource(pg_client, name='He said "hi"', tags=["a", "b"])

    response = pg_client.get("/resources/export/csv")

    assert response.status_code == 200
    assert response.text.splitlines()[1].startswith('"He said ""hi""","","Food","","a; b","unverified"')


def _run(coro: Coroutine[Any, Any, T]) -> T:
    return asyncio.run(coro)


async def _apply_schema(database_url: str) -> None:
    conn = await asyncpg.connect(database_url)
    try:
        await conn.execute(SCHEMA_PATH.read_text())
    finally:
        await conn.close()


async def _truncate_tables(database_url: str) -> None:
    conn = await asyncpg.connect(database_url)
    try:
        await conn.execute(
            """
            truncate table
              list_items,
              lists,
              verification_events,
              update_requests,
              signal_items,
              providers,
              managed_tags,
              managed_categories,
              resources
            restart identity cascade
            """
        )
    finally:
        await conn.close()


async def _fetchval(database_url: str, query: str, *args: Any) -> Any:
    conn = await asyncpg.connect(database_url)
    try:
        return await conn.fetchval(query, *args)
    finally:
        await conn.close()
