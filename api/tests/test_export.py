from __future__ import annotations

from datetime import datetime, timezone

from resource_hub.services.export import CSV_COLUMNS, format_csv_value, render_resources_csv


def test_header_row_is_title_case_in_column_order() -> None:
    header = render_resources_csv([]).splitlines()[0]

    assert header.startswith("Name,Description,Category,Categories,Tags,Status,")
    assert header.endswith(",Confidence Score,Last Verified At")
    assert len(header.split(",")) == len(CSV_COLUMNS)


def test_embedded_quotes_are_doubled() -> None:
    output = render_resources_csv([{"name": 'He said "hi"', "category": "Food"}])
    data_row = output.splitlines()[1]

    assert data_row.startswith('"He said ""hi""","","Food",')


def test_arrays_join_and_nulls_are_empty() -> None:
    row = {
        "name": "Clinic",
        "category": "Health",
        "categories": ["Dental", "Vision"],
        "tags": [],
        "languages": None,
        "confidence_score": 20,
        "last_verified_at": datetime(2024, 3, 1, 12, 30, tzinfo=timezone.utc),
    }
    fields = render_resources_csv([row]).splitlines()[1].split('","')

    assert fields[3] == "Dental; Vision"
    assert fields[4] == ""
    assert fields[-2] == "20"
    assert fields[-1] == '2024-03-01T12:30:00+00:00"'


def test_rows_are_newline_separated() -> None:
    output = render_resources_csv([{"name": "A"}, {"name": "B"}])

    assert output.count("\n") == 2
    assert not output.endswith("\n")
    assert "\r" not in output


def test_empty_export_is_header_line_only() -> None:
    output = render_resources_csv([])

    assert output.endswith(",Last Verified At\n")
    assert output.count("\n") == 1


def test_format_csv_value() -> None:
    assert format_csv_value(None) == ""
    assert format_csv_value(["a", "b"]) == "a; b"
    assert format_csv_value(False) == "False"
