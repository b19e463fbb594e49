"""Tests for CLI module."""

import json
import re
from pathlib import Path
from uuid import uuid4

import pytest

from ledger_reconciler.cli import get_default_db_path, load_rows, main
from ledger_reconciler.exceptions import ParseError


def _value_after(output: str, label: str) -> str:
    for line in output.splitlines():
        if line.strip().startswith(label):
            return line.split(label, 1)[1].strip().split()[0]
    raise AssertionError(f"{label!r} not found in output:\n{output}")


_UUID = re.compile(r"^([0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12})\s")


def _ids(output: str) -> list[str]:
    """UUIDs that start a line of tabular output."""
    return [m.group(1) for line in output.splitlines() if (m := _UUID.match(line))]


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    path = tmp_path / "recon.db"
    assert main(["--database", str(path), "init"]) == 0
    return path


@pytest.fixture
def run(db_path: Path, capsys):
    """Run a CLI command against the test database and return (code, stdout)."""

    def _run(*argv: str) -> tuple[int, str]:
        capsys.readouterr()
        code = main(["--database", str(db_path), *argv])
        return code, capsys.readouterr().out

    return _run


@pytest.fixture
def account_id() -> str:
    return str(uuid4())


@pytest.fixture
def session_id(run, account_id: str) -> str:
    code, out = run(
        "session", "create",
        "--account-id", account_id,
        "--start", "2024-01-01",
        "--end", "2024-01-31",
    )
    assert code == 0
    return _value_after(out, "Session created:")


@pytest.fixture
def statement_file(tmp_path: Path) -> Path:
    path = tmp_path / "statement.json"
    path.write_text(
        json.dumps(
            [
                {"date": "2024-01-05", "amount": "-150.00", "description": "OFFICE SUPPLIES CO"},
                {"date": "2024-01-10", "amount": "-75.00", "description": "Misc"},
                {"date": "2024-01-11"},
            ]
        )
    )
    return path


class TestGetDefaultDbPath:
    def test_returns_settings_path(self) -> None:
        result = get_default_db_path()

        assert isinstance(result, Path)
        assert result.suffix == ".db"


class TestInit:
    def test_creates_new_database(self, tmp_path: Path, capsys) -> None:
        path = tmp_path / "nested" / "recon.db"

        assert main(["-d", str(path), "init"]) == 0
        assert path.exists()
        assert "Initialized database" in capsys.readouterr().out

    def test_refuses_to_overwrite_without_force(self, db_path: Path, capsys) -> None:
        assert main(["-d", str(db_path), "init"]) == 1
        assert "already exists" in capsys.readouterr().out

    def test_force_reinitializes(self, db_path: Path) -> None:
        assert main(["-d", str(db_path), "init", "--force"]) == 0

    def test_commands_require_database(self, tmp_path: Path, capsys) -> None:
        code = main(["-d", str(tmp_path / "missing.db"), "session", "list"])

        assert code == 1
        assert "Database not found" in capsys.readouterr().out


class TestMain:
    def test_no_command_prints_help(self, capsys) -> None:
        assert main([]) == 0
        assert "usage" in capsys.readouterr().out.lower()

    def test_group_without_subcommand_prints_help(self, capsys) -> None:
        assert main(["session"]) == 0
        assert "usage" in capsys.readouterr().out.lower()

    def test_serve_runs_uvicorn(self, monkeypatch: pytest.MonkeyPatch) -> None:
        import uvicorn

        calls: list[tuple[str, dict]] = []
        monkeypatch.setattr(uvicorn, "run", lambda app, **kwargs: calls.append((app, kwargs)))

        assert main(["serve", "--port", "9000"]) == 0
        assert calls[0][0] == "ledger_reconciler.api.app:app"
        assert calls[0][1]["port"] == 9000


class TestLoadRows:
    def test_reads_array(self, statement_file: Path) -> None:
        assert len(load_rows(statement_file)) == 3

    def test_rejects_object(self, tmp_path: Path) -> None:
        path = tmp_path / "rows.json"
        path.write_text('{"date": "2024-01-05"}')
        with pytest.raises(ParseError, match="JSON array"):
            load_rows(path)

    def test_rejects_bad_json(self, tmp_path: Path) -> None:
        path = tmp_path / "rows.json"
        path.write_text("[{")
        with pytest.raises(ParseError, match="invalid JSON"):
            load_rows(path)

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ParseError, match="file not found"):
            load_rows(tmp_path / "absent.json")


class TestSessionCommands:
    def test_create_and_show(self, run, session_id: str) -> None:
        code, out = run("session", "show", "--session-id", session_id)

        assert code == 0
        assert "Status: draft" in out
        assert "(not set)" in out

    def test_invalid_period(self, run, account_id: str) -> None:
        code, out = run(
            "session", "create",
            "--account-id", account_id,
            "--start", "2024-02-01",
            "--end", "2024-01-01",
        )
        assert code == 1
        assert "Error:" in out

    def test_list(self, run, session_id: str) -> None:
        code, out = run("session", "list", "--status", "draft")

        assert code == 0
        assert session_id in out
        assert "Total: 1 sessions" in out

    def test_unknown_session(self, run) -> None:
        code, out = run("session", "show", "--session-id", str(uuid4()))
        assert code == 1
        assert "not found" in out


class TestReconcileWorkflow:
    def test_full_workflow(
        self, run, session_id: str, account_id: str, statement_file: Path
    ) -> None:
        for date, amount in (("2024-01-05", "-150.00"), ("2024-01-10", "-75.00")):
            code, _ = run(
                "ledger", "add",
                "--account-id", account_id,
                "--date", date,
                "--amount", amount,
            )
            assert code == 0

        code, out = run("upload", "--session-id", session_id, "--file", str(statement_file))
        assert code == 0
        assert "Items created: 2" in out
        assert "Rejected rows: 1" in out
        assert "MISSING_FIELD" in out

        code, out = run("auto-match", "--session-id", session_id)
        assert code == 0
        assert "Matched: 2" in out

        code, out = run("items", "--session-id", session_id, "--status", "matched")
        assert "Total: 2 items" in out

        code, out = run("session", "balance", "--session-id", session_id, "--amount", "-224.50")
        assert code == 0

        code, out = run("session", "complete", "--session-id", session_id)
        assert code == 1
        assert "Error:" in out

        code, out = run(
            "session", "complete", "--session-id", session_id, "--acknowledge-discrepancy"
        )
        assert code == 0
        assert "discrepancy" in out

        code, out = run("session", "rollback", "--session-id", session_id)
        assert code == 0
        assert "in_progress" in out

        code, out = run("adjust", "--session-id", session_id, "--amount", "0.50")
        assert code == 0
        adjustment_id = _value_after(out, "Adjustment added:")

        code, out = run("auto-match", "--session-id", session_id)
        assert "Matched: 2" in out

        code, out = run("session", "summary", "--session-id", session_id)
        assert "Balanced: yes" in out

        code, out = run("session", "complete", "--session-id", session_id)
        assert code == 0
        assert "completed" in out

        code, out = run("adjust", "--session-id", session_id, "--remove", adjustment_id)
        assert code == 1

        code, out = run("session", "archive", "--session-id", session_id)
        assert code == 0

    def test_item_commands(
        self, run, session_id: str, account_id: str, statement_file: Path
    ) -> None:
        run("upload", "--session-id", session_id, "--file", str(statement_file))
        run(
            "ledger", "add",
            "--account-id", account_id,
            "--date", "2024-01-20",
            "--amount", "-150.00",
        )
        code, out = run("ledger", "list", "--account-id", account_id)
        txn_id = _ids(out)[0]
        code, out = run("items", "--session-id", session_id, "--limit", "1")
        item_id = _ids(out)[0]

        code, out = run(
            "match", "--session-id", session_id, "--item-id", item_id,
            "--transaction-id", txn_id,
        )
        assert code == 0
        assert txn_id in out

        code, out = run("ignore", "--session-id", session_id, "--item-id", item_id)
        assert code == 1
        assert "Cannot ignore" in out

        assert run("unmatch", "--session-id", session_id, "--item-id", item_id)[0] == 0
        code, out = run("ignore", "--session-id", session_id, "--item-id", item_id)
        assert "ignored" in out
        code, out = run("restore", "--session-id", session_id, "--item-id", item_id)
        assert "unmatched" in out

    def test_upload_bad_file(self, run, session_id: str, tmp_path: Path) -> None:
        path = tmp_path / "rows.json"
        path.write_text("not json")

        code, out = run("upload", "--session-id", session_id, "--file", str(path))

        assert code == 1
        assert "invalid JSON" in out
