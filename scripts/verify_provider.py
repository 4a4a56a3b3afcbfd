#!/usr/bin/env python3
"""Emit SQL that sets (or clears) the staff-controlled provider verified flag."""

from __future__ import annotations

import argparse


def _quote_sql(value: str) -> str:
    escaped = value.replace("'", "''")
    return f"'{escaped}'"


def render_sql(*, provider_id: int | None, email: str | None, verified: bool) -> str:
    if provider_id is not None:
        target_where = f"id = {int(provider_id)}"
    else:
        assert email is not None
        target_where = f"lower(email) = {_quote_sql(email.strip().lower())}"

    verified_value = "true" if verified else "false"
    return f"""-- Provider verification SQL
-- Run this in a privileged Postgres session against the resource hub database.

update providers
set verified = {verified_value}
where {target_where}
returning id, org_name, email, verified;
"""


def main() -> None:
    parser = argparse.ArgumentParser(description="Emit SQL to mark a provider as verified.")
    identity_group = parser.add_mutually_exclusive_group(required=True)
    identity_group.add_argument("--provider-id", type=int, help="providers.id")
    identity_group.add_argument("--email", help="Provider email (matched case-insensitively)")
    parser.add_argument(
        "--revoke",
        action="store_true",
        help="Clear the verified flag instead of setting it",
    )
    args = parser.parse_args()

    print(
        render_sql(
            provider_id=args.provider_id,
            email=args.email,
            verified=not args.revoke,
        )
    )


if __name__ == "__main__":
    main()
