from __future__ import annotations

import csv
import io
from collections.abc import Iterable, Mapping
from datetime import datetime
from typing import Any

ARRAY_SEPARATOR = "; "

# (header label, resource column) in export order.
CSV_COLUMNS: tuple[tuple[str, str], ...] = (
    ("Name", "name"),
    ("Description", "description"),
    ("Category", "category"),
    ("Categories", "categories"),
    ("Tags", "tags"),
    ("Status", "status"),
    ("Address", "address"),
    ("City", "city"),
    ("State", "state"),
    ("Zip", "zip"),
    ("Service Area", "service_area"),
    ("Phone", "phone"),
    ("Email", "email"),
    ("Website", "website"),
    ("Services", "services"),
    ("Hours", "hours"),
    ("Eligibility", "eligibility"),
    ("Access Info", "access_info"),
    ("Languages", "languages"),
    ("Internal Notes", "internal_notes"),
    ("Public Notes", "public_notes"),
    ("Confidence Score", "confidence_score"),
    ("Last Verified At", "last_verified_at"),
)


def format_csv_value(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        return ARRAY_SEPARATOR.join(str(item) for item in value)
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


def render_resources_csv(rows: Iterable[Mapping[str, Any]]) -> str:
    """Header line, then one fully quoted line per row with no trailing newline."""
    header = ",".join(label for label, _ in CSV_COLUMNS)
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    for row in rows:
        writer.writerow([format_csv_value(row.get(column)) for _, column in CSV_COLUMNS])
    return header + "\n" + buffer.getvalue().removesuffix("\n")
