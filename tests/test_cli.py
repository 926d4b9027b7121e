from pathlib import Path

import pytest
from typer.testing import CliRunner

from quizparty.core.persistence import BOARD_SLOT, MATCH_SLOT
from quizparty.services.cli import app

DATA_DIR = Path(__file__).resolve().parents[1] / "data"

runner = CliRunner()


@pytest.fixture
def cli_env(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    return {
        "QUIZPARTY_SAVE_DIR": str(tmp_path / "saves"),
        "QUIZPARTY_MATCH_QUESTIONS": str(DATA_DIR / "match_questions.txt"),
        "QUIZPARTY_BOARD_QUESTIONS": str(DATA_DIR / "board_questions.txt"),
        "QUIZPARTY_LOG_LEVEL": "WARNING",
    }


def invoke(args, env):
    return runner.invoke(app, args, env=env)


def test_check_questions_accepts_bundled_files(cli_env):
    result = invoke(["check-questions", str(DATA_DIR / "board_questions.txt"), "--variant", "board"], cli_env)
    assert result.exit_code == 0, result.output
    assert "skipped 0 line(s)" in result.output


def test_check_questions_fails_on_missing_file(cli_env, tmp_path):
    result = invoke(["check-questions", str(tmp_path / "nope.txt")], cli_env)
    assert result.exit_code == 1
    assert "fallback" in result.output


def test_board_layout_lists_checkpoints(cli_env):
    result = invoke(["board-layout", "--seed", "3"], cli_env)
    assert result.exit_code == 0, result.output
    assert "Checkpoints: 14, 28, 42" in result.output
    assert "Markers: 21" in result.output


def test_simulated_match_is_saved_and_inspectable(cli_env, tmp_path):
    result = invoke(["simulate-match", "--seed", "1", "--accuracy", "1.0"], cli_env)
    assert result.exit_code == 0, result.output
    assert (tmp_path / "saves" / f"{MATCH_SLOT}.json").exists()

    inspected = invoke(["inspect-save", "match"], cli_env)
    assert inspected.exit_code == 0, inspected.output
    assert "Match game COMPLETED" in inspected.output
    assert "Winner:" in inspected.output

    cleared = invoke(["clear-save", "match"], cli_env)
    assert "Cleared match save" in cleared.output
    assert "No saved match state" in invoke(["inspect-save", "match"], cli_env).output


def test_simulate_board_without_save_leaves_no_file(cli_env, tmp_path):
    result = invoke(["simulate-board", "--seed", "2", "--accuracy", "0.5", "--no-save"], cli_env)
    assert result.exit_code == 0, result.output
    assert not (tmp_path / "saves" / f"{BOARD_SLOT}.json").exists()


def test_inspect_reports_discarded_board_save(cli_env, tmp_path):
    saves = tmp_path / "saves"
    saves.mkdir()
    (saves / f"{BOARD_SLOT}.json").write_text('{"schema_version": 1}', encoding="utf-8")

    result = invoke(["inspect-save", "board"], cli_env)
    assert result.exit_code == 0, result.output
    assert "Saved board state was discarded (SnapshotVersionError)" in result.output
    assert not (saves / f"{BOARD_SLOT}.json").exists()
