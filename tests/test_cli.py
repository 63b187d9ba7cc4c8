"""Tests for the command line interface."""
import json

import pytest

from poolrota.cli import main

DATE = "2025-07-01"


@pytest.fixture
def cli_env(tmp_path, monkeypatch):
    monkeypatch.setenv("POOLROTA_LOG_FILE", "")
    monkeypatch.delenv("POOLROTA_DB", raising=False)
    roster = tmp_path / "roster.csv"
    lines = ["id,name,dob"] + [f"g-{i:02d},Guard {i},1990-01-01" for i in range(1, 13)]
    roster.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return ["--db", str(tmp_path / "rotation.db"), "--roster", str(roster)]


def run(capsys, argv):
    code = main(argv)
    captured = capsys.readouterr()
    return code, captured


class TestCli:

    def test_autopopulate_then_rotate(self, cli_env, capsys):
        code, out = run(capsys, cli_env + ["autopopulate", "--date", DATE, "--now", f"{DATE}T10:00:00Z"])
        assert code == 0
        state = json.loads(out.out)
        assert state["assigned"]["1.1"] == "g-01"
        assert state["rev"] == 1

        code, out = run(capsys, cli_env + ["rotate", "--date", DATE, "--now", f"{DATE}T10:15:00Z"])
        assert code == 0
        state = json.loads(out.out)
        assert state["assigned"]["1.2"] == "g-01"
        assert state["assigned"]["1.1"] == "g-12"
        assert state["rev"] == 2

    def test_board(self, cli_env, capsys):
        run(capsys, cli_env + ["autopopulate", "--date", DATE])
        code, out = run(capsys, cli_env + ["board", "--date", DATE])
        assert code == 0
        board = json.loads(out.out)
        assert len(board["seats"]) == 11
        assert board["seats"][0] == {
            "stationId": "1.1", "guardId": "g-01", "updatedAt": board["seats"][0]["updatedAt"],
        }

    def test_diag_and_fix(self, cli_env, capsys):
        run(capsys, cli_env + ["autopopulate", "--date", DATE])
        code, out = run(capsys, cli_env + ["diag", "--date", DATE])
        assert code == 0
        assert json.loads(out.out)["unknownAssigned"] == 0

        code, out = run(capsys, cli_env + ["fix-ids", "--date", DATE])
        assert json.loads(out.out)["applied"] is False

    def test_sandbox_instance(self, cli_env, capsys):
        run(capsys, cli_env + ["--instance", "sandbox-01", "autopopulate", "--date", DATE])
        code, out = run(capsys, cli_env + ["board", "--date", DATE])
        board = json.loads(out.out)
        assert all(seat["guardId"] is None for seat in board["seats"])
        assert board["rev"] == 0

    def test_validation_error_exit_code(self, cli_env, capsys):
        code, out = run(capsys, cli_env + ["rotate", "--date", "not-a-date"])
        assert code == 2
        assert json.loads(out.err.strip().splitlines()[-1])["kind"] == "validation_error"

    def test_unreadable_roster_exit_code(self, tmp_path, monkeypatch, capsys):
        monkeypatch.setenv("POOLROTA_LOG_FILE", "")
        roster = tmp_path / "no_ids.csv"
        roster.write_text("name\nGuard 1\n", encoding="utf-8")
        argv = ["--db", str(tmp_path / "r.db"), "--roster", str(roster), "board", "--date", DATE]
        code, out = run(capsys, argv)
        assert code == 2
        assert json.loads(out.err.strip().splitlines()[-1])["kind"] == "validation_error"

    def test_purge_unknown_needs_roster(self, tmp_path, monkeypatch, capsys):
        monkeypatch.setenv("POOLROTA_LOG_FILE", "")
        code, out = run(capsys, ["--db", str(tmp_path / "r.db"), "purge-unknown", "--date", DATE])
        assert code == 2
