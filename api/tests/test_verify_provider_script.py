from __future__ import annotations

import subprocess
import sys
from pathlib import Path


SCRIPT_PATH = Path(__file__).resolve().parents[2] / "scripts" / "verify_provider.py"


def _run_script(*args: str) -> str:
    completed = subprocess.run(
        [sys.executable, str(SCRIPT_PATH), *args],
        check=True,
        capture_output=True,
        text=True,
    )
    return completed.stdout


def test_verify_script_emits_sql_for_provider_id_target() -> None:
    output = _run_script("--provider-id", "42")

    assert "update providers" in output
    assert "set verified = true" in output
    assert "where id = 42" in output


def test_verify_script_normalizes_and_quotes_email_target() -> None:
    output = _run_script("--email", "  O'Brien@Example.ORG ")

    assert "where lower(email) = 'o''brien@example.org'" in output


def test_verify_script_revoke_clears_flag() -> None:
    output = _run_script("--email", "team@example.org", "--revoke")

    assert "set verified = false" in output


def test_verify_script_requires_a_target() -> None:
    completed = subprocess.run(
        [sys.executable, str(SCRIPT_PATH)],
        capture_output=True,
        text=True,
    )

    assert completed.returncode != 0
    assert "one of the arguments" in completed.stderr
