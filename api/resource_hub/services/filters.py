"""Predicate composition shared by the Postgres and in-memory stores.

Each filter renders to SQL conditions through a caller-owned ``bind`` closure
(which appends a value and returns its ``$n`` placeholder) and evaluates the
same conditions against plain dict rows. List and count queries are always
built from one filter instance so they cannot disagree.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, replace
from typing import Any

from resource_hub.schemas.resources import PUBLIC_RESOURCE_COLUMNS, RESOURCE_COLUMNS

Bind = Callable[[Any], str]


def escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def where_clause(conditions: list[str]) -> str:
    return " and ".join(conditions) if conditions else "true"


def pagination_clause(bind: Bind, *, limit: int | None, offset: int | None) -> str:
    parts: list[str] = []
    if limit is not None:
        parts.append(f"limit {bind(limit)}")
    if offset:
        parts.append(f"offset {bind(offset)}")
    return " ".join(parts)


def paginate(rows: list[dict[str, Any]], *, limit: int | None, offset: int | None) -> list[dict[str, Any]]:
    start = offset or 0
    if limit is None:
        return rows[start:]
    return rows[start : start + limit]


def _contains_ci(haystack: Any, needle: str) -> bool:
    return isinstance(haystack, str) and needle.lower() in haystack.lower()


@dataclass(frozen=True, slots=True)
class ResourceFilter:
    search: str | None = None
    category: str | None = None
    status: str | None = None
    is_favorite: bool | None = None
    tag: str | None = None
    provider_id: int | None = None
    public: bool = False

    def for_public(self) -> ResourceFilter:
        return replace(self, public=True)

    def without_status(self) -> ResourceFilter:
        return replace(self, status=None)

    @property
    def columns(self) -> tuple[str, ...]:
        return PUBLIC_RESOURCE_COLUMNS if self.public else RESOURCE_COLUMNS

    def to_sql(self, bind: Bind, alias: str = "r") -> list[str]:
        conditions: list[str] = []
        if self.search:
            conditions.append(f"{alias}.name ilike {bind(f'%{escape_like(self.search)}%')}")
        if self.category:
            conditions.append(f"{alias}.category = {bind(self.category)}")
        if self.status:
            conditions.append(f"{alias}.status = {bind(self.status)}")
        if self.is_favorite is not None:
            conditions.append(f"{alias}.is_favorite = {bind(self.is_favorite)}")
        if self.tag:
            conditions.append(f"{bind(self.tag)} = any(coalesce({alias}.tags, '{{}}'::text[]))")
        if self.provider_id is not None:
            conditions.append(f"{alias}.provider_id = {bind(self.provider_id)}")
        if self.public:
            conditions.append(f"{alias}.status <> 'closed'")
        return conditions

    def matches(self, row: Mapping[str, Any]) -> bool:
        if self.search and not _contains_ci(row.get("name"), self.search):
            return False
        if self.category and row.get("category") != self.category:
            return False
        if self.status and row.get("status") != self.status:
            return False
        if self.is_favorite is not None and bool(row.get("is_favorite")) != self.is_favorite:
            return False
        if self.tag and self.tag not in (row.get("tags") or []):
            return False
        if self.provider_id is not None and row.get("provider_id") != self.provider_id:
            return False
        if self.public and row.get("status") == "closed":
            return False
        return True

    def project(self, row: Mapping[str, Any]) -> dict[str, Any]:
        return {column: row.get(column) for column in self.columns}


@dataclass(frozen=True, slots=True)
class SignalFilter:
    type: str | None = None
    lane: str | None = None
    search: str | None = None

    def to_sql(self, bind: Bind, alias: str = "s") -> list[str]:
        conditions: list[str] = []
        if self.type:
            conditions.append(f"{alias}.type = {bind(self.type)}")
        if self.lane:
            conditions.append(f"{alias}.lane = {bind(self.lane)}")
        if self.search:
            conditions.append(f"{alias}.title ilike {bind(f'%{escape_like(self.search)}%')}")
        return conditions

    def matches(self, row: Mapping[str, Any]) -> bool:
        if self.type and row.get("type") != self.type:
            return False
        if self.lane and row.get("lane") != self.lane:
            return False
        if self.search and not _contains_ci(row.get("title"), self.search):
            return False
        return True


@dataclass(frozen=True, slots=True)
class UpdateRequestFilter:
    status: str | None = None
    submitted_by: str | None = None

    def to_sql(self, bind: Bind, alias: str = "ur") -> list[str]:
        conditions: list[str] = []
        if self.status:
            conditions.append(f"{alias}.status = {bind(self.status)}")
        if self.submitted_by:
            conditions.append(f"{alias}.submitted_by = {bind(self.submitted_by.lower())}")
        return conditions

    def matches(self, row: Mapping[str, Any]) -> bool:
        if self.status and row.get("status") != self.status:
            return False
        if self.submitted_by and row.get("submitted_by") != self.submitted_by.lower():
            return False
        return True


def distinct_sorted(values: Iterable[Any]) -> list[str]:
    return sorted({value for value in values if isinstance(value, str) and value})
