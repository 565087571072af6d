from __future__ import annotations

import json
import sys

import pytest

from tablesync.domain.models import RowAuditLog
import scripts.list_changes as list_changes_script


class DummySession:
    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False


class DummySessionFactory:
    def __call__(self):
        # Stand in for SessionLocal() without touching a database.
        return DummySession()


def test_list_changes_prints_json_lines(monkeypatch, capsys) -> None:
    row = RowAuditLog(
        log_id=1,
        source_table="public.customer1",
        subject_id=18,
        operation_kind="INSERT",
        old_image=None,
        new_image={"customer_id": "18"},
    )

    async def _fake_list_changes(_session, **filters):
        assert filters["operation"] == "INSERT"
        return [row]

    monkeypatch.setattr(list_changes_script, "SessionLocal", DummySessionFactory())
    monkeypatch.setattr(list_changes_script, "list_changes", _fake_list_changes)
    monkeypatch.setattr(sys, "argv", ["list_changes.py", "--operation", "INSERT"])

    assert list_changes_script.main() == 0
    printed = json.loads(capsys.readouterr().out.strip())
    assert printed["subject_id"] == 18
    assert printed["old_image"] is None


def test_list_changes_maps_failures_to_exit_code(monkeypatch, capsys) -> None:
    async def _failing_list_changes(_session, **_filters):
        error = RuntimeError("connection refused")
        error.add_note("while reading public.row_audit_log")
        raise error

    monkeypatch.setattr(list_changes_script, "SessionLocal", DummySessionFactory())
    monkeypatch.setattr(list_changes_script, "list_changes", _failing_list_changes)
    monkeypatch.setattr(sys, "argv", ["list_changes.py"])

    assert list_changes_script.main() == 1
    err = capsys.readouterr().err
    assert "list_changes failed: connection refused" in err
    assert "note: while reading public.row_audit_log" in err


def test_list_changes_rejects_unknown_operation(monkeypatch) -> None:
    monkeypatch.setattr(sys, "argv", ["list_changes.py", "--operation", "MERGE"])
    with pytest.raises(SystemExit):
        list_changes_script.main()
