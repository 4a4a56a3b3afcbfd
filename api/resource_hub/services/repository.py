from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any, Protocol

import asyncpg  # type: ignore[import-untyped]
from asyncpg import exceptions as pg_exc

from resource_hub.core.config import get_settings
from resource_hub.schemas.resources import RESOURCE_ARRAY_COLUMNS, RESOURCE_COLUMNS
from resource_hub.schemas.signals import SIGNAL_WRITABLE_COLUMNS
from resource_hub.services.errors import (
    RepositoryConflictError,
    RepositoryError,
    RepositoryNotFoundError,
    RepositoryUnavailableError,
    RepositoryValidationError,
)
from resource_hub.services.filters import (
    Bind,
    ResourceFilter,
    SignalFilter,
    UpdateRequestFilter,
    pagination_clause,
    where_clause,
)
from resource_hub.services.store import InMemoryRepository
from resource_hub.services.workflow import (
    PROVIDER_UPDATE_EVENT,
    check_resource_changes,
    extend_tags,
    normalize_email,
    parse_proposed_changes,
    provider_update_note,
    validate_update_request_transition,
)

__all__ = [
    "PostgresRepository",
    "RepositoryConflictError",
    "RepositoryError",
    "RepositoryNotFoundError",
    "RepositoryUnavailableError",
    "RepositoryValidationError",
    "ResourceHubRepository",
    "get_repository",
]

logger = logging.getLogger(__name__)

SIGNAL_COLUMNS = ("id", *SIGNAL_WRITABLE_COLUMNS, "created_at", "updated_at")
UPDATE_REQUEST_COLUMNS = (
    "id",
    "resource_id",
    "submitted_by",
    "proposed_changes",
    "notes",
    "evidence_link",
    "status",
    "reviewed_by_user_id",
    "created_at",
    "updated_at",
)
PROVIDER_COLUMNS = ("id", "org_name", "contact_name", "email", "phone", "website", "verified", "created_at")
VERIFICATION_EVENT_COLUMNS = (
    "id",
    "resource_id",
    "performed_by_user_id",
    "performed_by_role",
    "method",
    "result",
    "fields_checked",
    "notes",
    "created_at",
)
LIST_COLUMNS = ("id", "name", "description", "created_by_user_id", "created_at", "updated_at")


def _select(columns: tuple[str, ...], alias: str) -> str:
    return ", ".join(f"{alias}.{column}" for column in columns)


def _binder() -> tuple[list[Any], Bind]:
    params: list[Any] = []

    def bind(value: Any) -> str:
        params.append(value)
        return f"${len(params)}"

    return params, bind


class ResourceHubRepository(Protocol):
    """Operations every store backend provides to the HTTP layer."""

    async def close(self) -> None: ...

    async def list_resources(
        self, *, filters: ResourceFilter, limit: int | None = None, offset: int | None = None
    ) -> list[dict[str, Any]]: ...

    async def count_resources(self, *, filters: ResourceFilter) -> int: ...

    async def count_resources_by_status(self, *, filters: ResourceFilter) -> dict[str, int]: ...

    async def list_resource_categories(self, *, public: bool = False) -> list[str]: ...

    async def list_resource_tags(self, *, public: bool = False) -> list[str]: ...

    async def get_resource(self, resource_id: int, *, public: bool = False) -> dict[str, Any]: ...

    async def create_resource(self, *, values: dict[str, Any]) -> dict[str, Any]: ...

    async def update_resource(self, resource_id: int, *, changes: dict[str, Any]) -> dict[str, Any]: ...

    async def delete_resource(self, resource_id: int) -> None: ...

    async def bulk_update_resources(self, *, ids: list[int], changes: dict[str, Any]) -> list[dict[str, Any]]: ...

    async def bulk_add_tag(self, *, ids: list[int], tag: str) -> list[dict[str, Any]]: ...

    async def list_verification_events(self, resource_id: int) -> list[dict[str, Any]]: ...

    async def create_verification_event(self, resource_id: int, *, values: dict[str, Any]) -> dict[str, Any]: ...

    async def get_provider(self, provider_id: int) -> dict[str, Any]: ...

    async def get_provider_by_email(self, email: str) -> dict[str, Any]: ...

    async def register_provider(self, *, values: dict[str, Any]) -> dict[str, Any]: ...

    async def list_update_requests(
        self, *, filters: UpdateRequestFilter, limit: int | None = None, offset: int | None = None
    ) -> list[dict[str, Any]]: ...

    async def count_update_requests(self, *, filters: UpdateRequestFilter) -> int: ...

    async def get_update_request(self, request_id: int) -> dict[str, Any]: ...

    async def create_update_request(self, *, values: dict[str, Any]) -> dict[str, Any]: ...

    async def start_update_request_review(
        self, request_id: int, *, reviewed_by_user_id: str | None
    ) -> dict[str, Any]: ...

    async def accept_update_request(self, request_id: int, *, reviewed_by_user_id: str | None) -> dict[str, Any]: ...

    async def reject_update_request(self, request_id: int, *, reviewed_by_user_id: str | None) -> dict[str, Any]: ...

    async def list_signals(
        self, *, filters: SignalFilter, limit: int | None = None, offset: int | None = None
    ) -> list[dict[str, Any]]: ...

    async def count_signals(self, *, filters: SignalFilter) -> int: ...

    async def get_signal(self, signal_id: int) -> dict[str, Any]: ...

    async def create_signal(self, *, values: dict[str, Any]) -> dict[str, Any]: ...

    async def update_signal(self, signal_id: int, *, changes: dict[str, Any]) -> dict[str, Any]: ...

    async def delete_signal(self, signal_id: int) -> None: ...

    async def list_lists(self) -> list[dict[str, Any]]: ...

    async def get_list(self, list_id: int) -> dict[str, Any]: ...

    async def create_list(self, *, values: dict[str, Any]) -> dict[str, Any]: ...

    async def add_resource_to_list(
        self, list_id: int, resource_id: int, *, sort_order: int = 0, notes: str | None = None
    ) -> None: ...

    async def remove_resource_from_list(self, list_id: int, resource_id: int) -> None: ...

    async def list_managed_tags(self) -> list[dict[str, Any]]: ...

    async def create_managed_tag(self, *, values: dict[str, Any]) -> dict[str, Any]: ...

    async def delete_managed_tag(self, tag_id: int) -> None: ...

    async def list_managed_categories(self) -> list[dict[str, Any]]: ...

    async def create_managed_category(self, *, values: dict[str, Any]) -> dict[str, Any]: ...

    async def delete_managed_category(self, category_id: int) -> None: ...


class PostgresRepository:
    def __init__(
        self,
        database_url: str | None,
        min_pool_size: int,
        max_pool_size: int,
        command_timeout_seconds: float = 15.0,
    ) -> None:
        self.database_url = database_url
        self.min_pool_size = min_pool_size
        self.max_pool_size = max_pool_size
        self.command_timeout_seconds = command_timeout_seconds
        self._pool: asyncpg.Pool | None = None

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None

    # Resources

    async def list_resources(
        self,
        *,
        filters: ResourceFilter,
        limit: int | None = None,
        offset: int | None = None,
    ) -> list[dict[str, Any]]:
        pool = await self._get_pool()
        params, bind = _binder()
        where_sql = where_clause(filters.to_sql(bind, alias="r"))
        page_sql = pagination_clause(bind, limit=limit, offset=offset)
        rows = await pool.fetch(
            f"""
            select {_select(filters.columns, "r")}
            from resources r
            where {where_sql}
            order by r.name asc, r.id asc
            {page_sql}
            """,
            *params,
        )
        return [self._resource_row_to_dict(row) for row in rows]

    async def count_resources(self, *, filters: ResourceFilter) -> int:
        pool = await self._get_pool()
        params, bind = _binder()
        where_sql = where_clause(filters.to_sql(bind, alias="r"))
        count = await pool.fetchval(
            f"select count(*)::int from resources r where {where_sql}",
            *params,
        )
        return int(count or 0)

    async def count_resources_by_status(self, *, filters: ResourceFilter) -> dict[str, int]:
        pool = await self._get_pool()
        params, bind = _binder()
        where_sql = where_clause(filters.without_status().to_sql(bind, alias="r"))
        rows = await pool.fetch(
            f"""
            select r.status, count(*)::int as count
            from resources r
            where {where_sql}
            group by r.status
            order by r.status asc
            """,
            *params,
        )
        return {row["status"]: int(row["count"]) for row in rows}

    async def list_resource_categories(self, *, public: bool = False) -> list[str]:
        pool = await self._get_pool()
        scope_sql = "r.status <> 'closed'" if public else "true"
        rows = await pool.fetch(
            f"""
            select value
            from (
              select r.category as value from resources r where {scope_sql}
              union
              select unnest(r.categories) as value from resources r where {scope_sql}
            ) vocabulary
            where value is not null and value <> ''
            group by value
            order by value collate "C" asc
            """
        )
        return [row["value"] for row in rows]

    async def list_resource_tags(self, *, public: bool = False) -> list[str]:
        pool = await self._get_pool()
        scope_sql = "r.status <> 'closed'" if public else "true"
        rows = await pool.fetch(
            f"""
            select tag
            from resources r
            cross join unnest(r.tags) as resource_tag(tag)
            where {scope_sql} and tag <> ''
            group by tag
            order by tag collate "C" asc
            """
        )
        return [row["tag"] for row in rows]

    async def get_resource(self, resource_id: int, *, public: bool = False) -> dict[str, Any]:
        pool = await self._get_pool()
        filters = ResourceFilter(public=public)
        params, bind = _binder()
        conditions = [f"r.id = {bind(resource_id)}", *filters.to_sql(bind, alias="r")]
        try:
            row = await pool.fetchrow(
                f"select {_select(filters.columns, 'r')} from resources r where {where_clause(conditions)}",
                *params,
            )
        except asyncpg.DataError as exc:
            raise RepositoryNotFoundError("Resource not found") from exc
        if not row:
            raise RepositoryNotFoundError("Resource not found")
        return self._resource_row_to_dict(row)

    async def create_resource(self, *, values: dict[str, Any]) -> dict[str, Any]:
        checked = check_resource_changes(values)
        pool = await self._get_pool()
        params, bind = _binder()
        columns = list(checked)
        placeholders = [bind(checked[column]) for column in columns]
        row = await pool.fetchrow(
            f"""
            insert into resources as r ({", ".join(columns)})
            values ({", ".join(placeholders)})
            returning {_select(RESOURCE_COLUMNS, "r")}
            """,
            *params,
        )
        logger.info("resource created id=%s status=%s", row["id"], row["status"])
        return self._resource_row_to_dict(row)

    async def update_resource(self, resource_id: int, *, changes: dict[str, Any]) -> dict[str, Any]:
        checked = check_resource_changes(changes)
        pool = await self._get_pool()
        try:
            row = await self._apply_resource_changes(conn=pool, resource_id=resource_id, changes=checked)
        except asyncpg.DataError as exc:
            raise RepositoryNotFoundError("Resource not found") from exc
        if not row:
            raise RepositoryNotFoundError("Resource not found")
        return self._resource_row_to_dict(row)

    async def delete_resource(self, resource_id: int) -> None:
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                exists = await conn.fetchval(
                    "select 1 from resources where id = $1 for update",
                    resource_id,
                )
                if not exists:
                    raise RepositoryNotFoundError("Resource not found")
                await conn.execute("delete from list_items where resource_id = $1", resource_id)
                await conn.execute("delete from verification_events where resource_id = $1", resource_id)
                await conn.execute("delete from resources where id = $1", resource_id)
        logger.info("resource deleted id=%s", resource_id)

    async def bulk_update_resources(self, *, ids: list[int], changes: dict[str, Any]) -> list[dict[str, Any]]:
        if not ids:
            raise RepositoryValidationError("ids must not be empty")
        checked = check_resource_changes(changes)
        pool = await self._get_pool()
        params, bind = _binder()
        assignments = [f"{column} = {bind(value)}" for column, value in checked.items()]
        assignments.append("updated_at = now()")
        ids_token = bind(list(ids))
        rows = await pool.fetch(
            f"""
            with updated as (
              update resources as r
              set {", ".join(assignments)}
              where r.id = any({ids_token}::int[])
              returning r.*
            )
            select {_select(RESOURCE_COLUMNS, "r")}
            from updated r
            order by r.name asc, r.id asc
            """,
            *params,
        )
        logger.info("bulk resource update requested=%s updated=%s fields=%s", len(ids), len(rows), sorted(checked))
        return [self._resource_row_to_dict(row) for row in rows]

    async def bulk_add_tag(self, *, ids: list[int], tag: str) -> list[dict[str, Any]]:
        if not ids:
            raise RepositoryValidationError("ids must not be empty")
        pool = await self._get_pool()
        results: list[dict[str, Any]] = []
        # Each resource is read and written on its own; an error part-way leaves earlier rows tagged.
        for resource_id in dict.fromkeys(ids):
            row = await pool.fetchrow(
                f"select {_select(RESOURCE_COLUMNS, 'r')} from resources r where r.id = $1",
                resource_id,
            )
            if not row:
                continue
            extended = extend_tags(row["tags"], tag)
            if extended is not None:
                row = await self._apply_resource_changes(
                    conn=pool,
                    resource_id=resource_id,
                    changes={"tags": extended},
                )
                if not row:
                    continue
            results.append(self._resource_row_to_dict(row))
        logger.info("bulk tag add tag=%s requested=%s matched=%s", tag, len(ids), len(results))
        return results

    # Verification events

    async def list_verification_events(self, resource_id: int) -> list[dict[str, Any]]:
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            exists = await conn.fetchval("select 1 from resources where id = $1", resource_id)
            if not exists:
                raise RepositoryNotFoundError("Resource not found")
            rows = await conn.fetch(
                f"""
                select {_select(VERIFICATION_EVENT_COLUMNS, "ve")}
                from verification_events ve
                where ve.resource_id = $1
                order by ve.created_at desc, ve.id desc
                """,
                resource_id,
            )
        return [self._verification_event_row_to_dict(row) for row in rows]

    async def create_verification_event(self, resource_id: int, *, values: dict[str, Any]) -> dict[str, Any]:
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                exists = await conn.fetchval("select 1 from resources where id = $1", resource_id)
                if not exists:
                    raise RepositoryNotFoundError("Resource not found")
                row = await self._insert_verification_event(conn=conn, resource_id=resource_id, values=values)
        return self._verification_event_row_to_dict(row)

    # Providers

    async def get_provider(self, provider_id: int) -> dict[str, Any]:
        pool = await self._get_pool()
        row = await pool.fetchrow(
            f"select {_select(PROVIDER_COLUMNS, 'p')} from providers p where p.id = $1",
            provider_id,
        )
        if not row:
            raise RepositoryNotFoundError("Provider not found")
        return self._provider_row_to_dict(row)

    async def get_provider_by_email(self, email: str) -> dict[str, Any]:
        pool = await self._get_pool()
        row = await pool.fetchrow(
            f"select {_select(PROVIDER_COLUMNS, 'p')} from providers p where lower(p.email) = $1",
            normalize_email(email),
        )
        if not row:
            raise RepositoryNotFoundError("Provider not found")
        return self._provider_row_to_dict(row)

    async def register_provider(self, *, values: dict[str, Any]) -> dict[str, Any]:
        email = normalize_email(values["email"])
        pool = await self._get_pool()
        try:
            async with pool.acquire() as conn:
                async with conn.transaction():
                    existing = await conn.fetchval("select 1 from providers where lower(email) = $1", email)
                    if existing:
                        raise RepositoryConflictError("A provider with this email already exists")
                    row = await conn.fetchrow(
                        f"""
                        insert into providers as p (org_name, contact_name, email, phone, website, verified)
                        values ($1, $2, $3, $4, $5, false)
                        returning {_select(PROVIDER_COLUMNS, "p")}
                        """,
                        values["org_name"],
                        values.get("contact_name"),
                        email,
                        values.get("phone"),
                        values.get("website"),
                    )
        except pg_exc.UniqueViolationError as exc:
            raise RepositoryConflictError("A provider with this email already exists") from exc
        logger.info("provider registered id=%s", row["id"])
        return self._provider_row_to_dict(row)

    # Update requests

    async def list_update_requests(
        self,
        *,
        filters: UpdateRequestFilter,
        limit: int | None = None,
        offset: int | None = None,
    ) -> list[dict[str, Any]]:
        pool = await self._get_pool()
        params, bind = _binder()
        where_sql = where_clause(filters.to_sql(bind, alias="ur"))
        page_sql = pagination_clause(bind, limit=limit, offset=offset)
        rows = await pool.fetch(
            f"""
            select {_select(UPDATE_REQUEST_COLUMNS, "ur")}, r.name as resource_name
            from update_requests ur
            left join resources r on r.id = ur.resource_id
            where {where_sql}
            order by ur.created_at desc, ur.id desc
            {page_sql}
            """,
            *params,
        )
        return [self._update_request_row_to_dict(row) for row in rows]

    async def count_update_requests(self, *, filters: UpdateRequestFilter) -> int:
        pool = await self._get_pool()
        params, bind = _binder()
        where_sql = where_clause(filters.to_sql(bind, alias="ur"))
        count = await pool.fetchval(
            f"select count(*)::int from update_requests ur where {where_sql}",
            *params,
        )
        return int(count or 0)

    async def get_update_request(self, request_id: int) -> dict[str, Any]:
        pool = await self._get_pool()
        row = await self._fetch_update_request_row(conn=pool, request_id=request_id)
        if not row:
            raise RepositoryNotFoundError("Update request not found")
        return self._update_request_row_to_dict(row)

    async def create_update_request(self, *, values: dict[str, Any]) -> dict[str, Any]:
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                resource_id = values.get("resource_id")
                if resource_id is not None:
                    exists = await conn.fetchval("select 1 from resources where id = $1", resource_id)
                    if not exists:
                        raise RepositoryNotFoundError("Resource not found")
                request_id = await conn.fetchval(
                    """
                    insert into update_requests (resource_id, submitted_by, proposed_changes, notes, evidence_link, status)
                    values ($1, $2, $3::jsonb, $4, $5, 'new')
                    returning id
                    """,
                    resource_id,
                    values.get("submitted_by"),
                    json.dumps(values.get("proposed_changes") or {}),
                    values.get("notes"),
                    values.get("evidence_link"),
                )
                row = await self._fetch_update_request_row(conn=conn, request_id=request_id)
        logger.info("update request submitted id=%s resource_id=%s", request_id, values.get("resource_id"))
        return self._update_request_row_to_dict(row)

    async def start_update_request_review(
        self,
        request_id: int,
        *,
        reviewed_by_user_id: str | None,
    ) -> dict[str, Any]:
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                status = await conn.fetchval(
                    "select status from update_requests where id = $1 for update",
                    request_id,
                )
                if status is None:
                    raise RepositoryNotFoundError("Update request not found")
                validate_update_request_transition(from_status=status, to_status="in_review")
                await conn.execute(
                    """
                    update update_requests
                    set status = 'in_review',
                        reviewed_by_user_id = coalesce($2, reviewed_by_user_id),
                        updated_at = now()
                    where id = $1
                    """,
                    request_id,
                    reviewed_by_user_id,
                )
                row = await self._fetch_update_request_row(conn=conn, request_id=request_id)
        logger.info("update request in review id=%s", request_id)
        return self._update_request_row_to_dict(row)

    async def accept_update_request(self, request_id: int, *, reviewed_by_user_id: str | None) -> dict[str, Any]:
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                request_row = await conn.fetchrow(
                    """
                    select id, resource_id, status, proposed_changes
                    from update_requests
                    where id = $1
                    for update
                    """,
                    request_id,
                )
                if not request_row:
                    raise RepositoryNotFoundError("Update request not found")
                validate_update_request_transition(from_status=request_row["status"], to_status="accepted")

                proposed = self._coerce_json_dict(request_row["proposed_changes"])
                resource_id = request_row["resource_id"]
                changed_fields: list[str] = []
                if resource_id is not None and proposed:
                    patch = parse_proposed_changes(proposed)
                    changes = check_resource_changes(patch.to_changes())
                    changes["last_verified_at"] = datetime.now(timezone.utc)
                    resource_row = await self._apply_resource_changes(
                        conn=conn,
                        resource_id=resource_id,
                        changes=changes,
                    )
                    if not resource_row:
                        raise RepositoryNotFoundError("Resource not found")
                    changed_fields = list(patch.to_wire())
                    await self._insert_verification_event(
                        conn=conn,
                        resource_id=resource_id,
                        values={
                            **PROVIDER_UPDATE_EVENT,
                            "performed_by_user_id": reviewed_by_user_id,
                            "fields_checked": changed_fields,
                            "notes": provider_update_note(changed_fields),
                        },
                    )

                await conn.execute(
                    """
                    update update_requests
                    set status = 'accepted', reviewed_by_user_id = $2, updated_at = now()
                    where id = $1
                    """,
                    request_id,
                    reviewed_by_user_id,
                )
                row = await self._fetch_update_request_row(conn=conn, request_id=request_id)
        logger.info(
            "update request accepted id=%s resource_id=%s fields=%s",
            request_id,
            resource_id,
            changed_fields,
        )
        return self._update_request_row_to_dict(row)

    async def reject_update_request(self, request_id: int, *, reviewed_by_user_id: str | None) -> dict[str, Any]:
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                status = await conn.fetchval(
                    "select status from update_requests where id = $1 for update",
                    request_id,
                )
                if status is None:
                    raise RepositoryNotFoundError("Update request not found")
                validate_update_request_transition(from_status=status, to_status="rejected")
                await conn.execute(
                    """
                    update update_requests
                    set status = 'rejected', reviewed_by_user_id = $2, updated_at = now()
                    where id = $1
                    """,
                    request_id,
                    reviewed_by_user_id,
                )
                row = await self._fetch_update_request_row(conn=conn, request_id=request_id)
        logger.info("update request rejected id=%s", request_id)
        return self._update_request_row_to_dict(row)

    # Signals

    async def list_signals(
        self,
        *,
        filters: SignalFilter,
        limit: int | None = None,
        offset: int | None = None,
    ) -> list[dict[str, Any]]:
        pool = await self._get_pool()
        params, bind = _binder()
        where_sql = where_clause(filters.to_sql(bind, alias="s"))
        page_sql = pagination_clause(bind, limit=limit, offset=offset)
        rows = await pool.fetch(
            f"""
            select {_select(SIGNAL_COLUMNS, "s")}
            from signal_items s
            where {where_sql}
            order by s.created_at desc, s.id desc
            {page_sql}
            """,
            *params,
        )
        return [self._signal_row_to_dict(row) for row in rows]

    async def count_signals(self, *, filters: SignalFilter) -> int:
        pool = await self._get_pool()
        params, bind = _binder()
        where_sql = where_clause(filters.to_sql(bind, alias="s"))
        count = await pool.fetchval(f"select count(*)::int from signal_items s where {where_sql}", *params)
        return int(count or 0)

    async def get_signal(self, signal_id: int) -> dict[str, Any]:
        pool = await self._get_pool()
        row = await pool.fetchrow(
            f"select {_select(SIGNAL_COLUMNS, 's')} from signal_items s where s.id = $1",
            signal_id,
        )
        if not row:
            raise RepositoryNotFoundError("Signal not found")
        return self._signal_row_to_dict(row)

    async def create_signal(self, *, values: dict[str, Any]) -> dict[str, Any]:
        checked = self._check_signal_changes(values)
        pool = await self._get_pool()
        params, bind = _binder()
        columns = list(checked)
        placeholders = [bind(checked[column]) for column in columns]
        row = await pool.fetchrow(
            f"""
            insert into signal_items as s ({", ".join(columns)})
            values ({", ".join(placeholders)})
            returning {_select(SIGNAL_COLUMNS, "s")}
            """,
            *params,
        )
        return self._signal_row_to_dict(row)

    async def update_signal(self, signal_id: int, *, changes: dict[str, Any]) -> dict[str, Any]:
        checked = self._check_signal_changes(changes)
        pool = await self._get_pool()
        params, bind = _binder()
        assignments = [f"{column} = {bind(value)}" for column, value in checked.items()]
        assignments.append("updated_at = now()")
        id_token = bind(signal_id)
        row = await pool.fetchrow(
            f"""
            update signal_items as s
            set {", ".join(assignments)}
            where s.id = {id_token}
            returning {_select(SIGNAL_COLUMNS, "s")}
            """,
            *params,
        )
        if not row:
            raise RepositoryNotFoundError("Signal not found")
        return self._signal_row_to_dict(row)

    async def delete_signal(self, signal_id: int) -> None:
        pool = await self._get_pool()
        deleted = await pool.fetchval("delete from signal_items where id = $1 returning id", signal_id)
        if deleted is None:
            raise RepositoryNotFoundError("Signal not found")

    # Lists

    async def list_lists(self) -> list[dict[str, Any]]:
        pool = await self._get_pool()
        rows = await pool.fetch(
            f"""
            select {_select(LIST_COLUMNS, "l")}, count(li.id)::int as resource_count
            from lists l
            left join list_items li on li.list_id = l.id
            group by l.id
            order by l.created_at desc, l.id desc
            """
        )
        return [self._list_row_to_dict(row) for row in rows]

    async def get_list(self, list_id: int) -> dict[str, Any]:
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            list_row = await conn.fetchrow(
                f"select {_select(LIST_COLUMNS, 'l')} from lists l where l.id = $1",
                list_id,
            )
            if not list_row:
                raise RepositoryNotFoundError("List not found")
            resource_rows = await conn.fetch(
                f"""
                select {_select(RESOURCE_COLUMNS, "r")}
                from list_items li
                join resources r on r.id = li.resource_id
                where li.list_id = $1
                order by li.sort_order asc, li.id asc
                """,
                list_id,
            )
        item = self._list_row_to_dict(list_row)
        item["resources"] = [self._resource_row_to_dict(row) for row in resource_rows]
        item["resource_count"] = len(item["resources"])
        return item

    async def create_list(self, *, values: dict[str, Any]) -> dict[str, Any]:
        pool = await self._get_pool()
        row = await pool.fetchrow(
            f"""
            insert into lists as l (name, description, created_by_user_id)
            values ($1, $2, $3)
            returning {_select(LIST_COLUMNS, "l")}
            """,
            values["name"],
            values.get("description"),
            values.get("created_by_user_id"),
        )
        return self._list_row_to_dict(row)

    async def add_resource_to_list(
        self,
        list_id: int,
        resource_id: int,
        *,
        sort_order: int = 0,
        notes: str | None = None,
    ) -> None:
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                if not await conn.fetchval("select 1 from lists where id = $1", list_id):
                    raise RepositoryNotFoundError("List not found")
                if not await conn.fetchval("select 1 from resources where id = $1", resource_id):
                    raise RepositoryNotFoundError("Resource not found")
                await conn.execute(
                    """
                    insert into list_items (list_id, resource_id, sort_order, notes)
                    values ($1, $2, $3, $4)
                    on conflict (list_id, resource_id) do nothing
                    """,
                    list_id,
                    resource_id,
                    sort_order,
                    notes,
                )
                await conn.execute("update lists set updated_at = now() where id = $1", list_id)

    async def remove_resource_from_list(self, list_id: int, resource_id: int) -> None:
        pool = await self._get_pool()
        await pool.execute(
            "delete from list_items where list_id = $1 and resource_id = $2",
            list_id,
            resource_id,
        )

    # Managed vocabularies

    async def list_managed_tags(self) -> list[dict[str, Any]]:
        pool = await self._get_pool()
        rows = await pool.fetch("select id, name, type, sort_order from managed_tags order by sort_order asc, name asc")
        return [dict(row) for row in rows]

    async def create_managed_tag(self, *, values: dict[str, Any]) -> dict[str, Any]:
        pool = await self._get_pool()
        try:
            row = await pool.fetchrow(
                """
                insert into managed_tags (name, type, sort_order)
                values ($1, $2, $3)
                returning id, name, type, sort_order
                """,
                values["name"],
                values.get("type"),
                values.get("sort_order", 0),
            )
        except pg_exc.UniqueViolationError as exc:
            raise RepositoryConflictError("Managed tag already exists") from exc
        return dict(row)

    async def delete_managed_tag(self, tag_id: int) -> None:
        pool = await self._get_pool()
        deleted = await pool.fetchval("delete from managed_tags where id = $1 returning id", tag_id)
        if deleted is None:
            raise RepositoryNotFoundError("Managed tag not found")

    async def list_managed_categories(self) -> list[dict[str, Any]]:
        pool = await self._get_pool()
        rows = await pool.fetch(
            """
            select id, name, description, color, sort_order
            from managed_categories
            order by sort_order asc, name asc
            """
        )
        return [dict(row) for row in rows]

    async def create_managed_category(self, *, values: dict[str, Any]) -> dict[str, Any]:
        pool = await self._get_pool()
        try:
            row = await pool.fetchrow(
                """
                insert into managed_categories (name, description, color, sort_order)
                values ($1, $2, $3, $4)
                returning id, name, description, color, sort_order
                """,
                values["name"],
                values.get("description"),
                values.get("color"),
                values.get("sort_order", 0),
            )
        except pg_exc.UniqueViolationError as exc:
            raise RepositoryConflictError("Managed category already exists") from exc
        return dict(row)

    async def delete_managed_category(self, category_id: int) -> None:
        pool = await self._get_pool()
        deleted = await pool.fetchval("delete from managed_categories where id = $1 returning id", category_id)
        if deleted is None:
            raise RepositoryNotFoundError("Managed category not found")

    # Internals

    async def _apply_resource_changes(
        self,
        *,
        conn: asyncpg.Connection | asyncpg.Pool,
        resource_id: int,
        changes: dict[str, Any],
    ) -> asyncpg.Record | None:
        params, bind = _binder()
        assignments = [f"{column} = {bind(value)}" for column, value in changes.items()]
        assignments.append("updated_at = now()")
        id_token = bind(resource_id)
        return await conn.fetchrow(
            f"""
            update resources as r
            set {", ".join(assignments)}
            where r.id = {id_token}
            returning {_select(RESOURCE_COLUMNS, "r")}
            """,
            *params,
        )

    async def _insert_verification_event(
        self,
        *,
        conn: asyncpg.Connection,
        resource_id: int,
        values: dict[str, Any],
    ) -> asyncpg.Record:
        return await conn.fetchrow(
            f"""
            insert into verification_events as ve (
              resource_id,
              performed_by_user_id,
              performed_by_role,
              method,
              result,
              fields_checked,
              notes
            )
            values ($1, $2, $3, $4, $5, $6::jsonb, $7)
            returning {_select(VERIFICATION_EVENT_COLUMNS, "ve")}
            """,
            resource_id,
            values.get("performed_by_user_id"),
            values.get("performed_by_role") or "staff",
            values.get("method"),
            values.get("result"),
            json.dumps(list(values.get("fields_checked") or [])),
            values.get("notes"),
        )

    async def _fetch_update_request_row(
        self,
        *,
        conn: asyncpg.Connection | asyncpg.Pool,
        request_id: int,
    ) -> asyncpg.Record | None:
        return await conn.fetchrow(
            f"""
            select {_select(UPDATE_REQUEST_COLUMNS, "ur")}, r.name as resource_name
            from update_requests ur
            left join resources r on r.id = ur.resource_id
            where ur.id = $1
            """,
            request_id,
        )

    async def _get_pool(self) -> asyncpg.Pool:
        if not self.database_url:
            raise RepositoryUnavailableError("RH_DATABASE_URL is required")

        if self._pool is not None:
            return self._pool

        try:
            self._pool = await asyncpg.create_pool(
                dsn=self.database_url,
                min_size=self.min_pool_size,
                max_size=self.max_pool_size,
                command_timeout=self.command_timeout_seconds,
            )
            return self._pool
        except Exception as exc:  # pragma: no cover - depends on environment
            raise RepositoryUnavailableError("database unavailable") from exc

    @staticmethod
    def _check_signal_changes(changes: dict[str, Any]) -> dict[str, Any]:
        unknown = sorted(set(changes) - set(SIGNAL_WRITABLE_COLUMNS))
        if unknown:
            raise RepositoryValidationError(f"unknown signal fields: {', '.join(unknown)}")
        return dict(changes)

    @staticmethod
    def _resource_row_to_dict(row: asyncpg.Record) -> dict[str, Any]:
        item = dict(row)
        for column in RESOURCE_ARRAY_COLUMNS:
            if column in item:
                item[column] = list(item[column] or [])
        if "is_favorite" in item:
            item["is_favorite"] = bool(item["is_favorite"])
        return item

    @staticmethod
    def _provider_row_to_dict(row: asyncpg.Record) -> dict[str, Any]:
        item = dict(row)
        item["verified"] = bool(item.get("verified"))
        return item

    def _verification_event_row_to_dict(self, row: asyncpg.Record) -> dict[str, Any]:
        item = dict(row)
        fields_checked = item.get("fields_checked")
        if isinstance(fields_checked, str):
            try:
                fields_checked = json.loads(fields_checked)
            except json.JSONDecodeError:
                fields_checked = []
        if not isinstance(fields_checked, list):
            fields_checked = []
        item["fields_checked"] = [str(value) for value in fields_checked]
        return item

    def _update_request_row_to_dict(self, row: asyncpg.Record) -> dict[str, Any]:
        item = dict(row)
        item["proposed_changes"] = self._coerce_json_dict(item.get("proposed_changes"))
        return item

    @staticmethod
    def _signal_row_to_dict(row: asyncpg.Record) -> dict[str, Any]:
        item = dict(row)
        item["source_receipts"] = list(item.get("source_receipts") or [])
        item["related_resource_ids"] = list(item.get("related_resource_ids") or [])
        return item

    @staticmethod
    def _list_row_to_dict(row: asyncpg.Record) -> dict[str, Any]:
        item = dict(row)
        item["resource_count"] = int(item.get("resource_count") or 0)
        return item

    @staticmethod
    def _coerce_json_dict(value: Any) -> dict[str, Any]:
        if isinstance(value, str):
            try:
                value = json.loads(value)
            except json.JSONDecodeError:
                return {}
        if not isinstance(value, dict):
            return {}
        return value


@lru_cache
def get_repository() -> ResourceHubRepository:
    settings = get_settings()
    if settings.store_backend == "memory":
        return InMemoryRepository()
    return PostgresRepository(
        database_url=settings.database_url,
        min_pool_size=settings.database_pool_min_size,
        max_pool_size=settings.database_pool_max_size,
        command_timeout_seconds=settings.database_command_timeout_seconds,
    )
