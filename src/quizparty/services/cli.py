"""Typer CLI entry point for checking question files and running headless games."""

from __future__ import annotations

import logging
import sys
from enum import Enum
from pathlib import Path
from typing import Optional

import structlog
import typer
from dotenv import load_dotenv

from ..config.settings import DEFAULT_CONFIG_PATH, GameConfig, load_game_config
from ..core.board_game import BoardGame
from ..core.persistence import FileSlotStore, SaveSlot, autosave, board_slot, match_slot
from ..core.questions import QuestionPool, QuestionVariant, load_questions
from ..core.rulesets import format_elapsed
from ..core.schemas import BoardGameSnapshot, MatchGameSnapshot
from ..utils.rng import build_rng
from .narrator import GameNarrator
from .simulation import simulate_board, simulate_match

LOGGER = structlog.get_logger(__name__)

app = typer.Typer(help="Quiz-gated match and board games.", invoke_without_command=False)
_configured_level: Optional[str] = None


class GameKind(str, Enum):
    MATCH = "match"
    BOARD = "board"


def configure_logging(level: str = "INFO") -> None:
    global _configured_level
    if _configured_level == level:
        return
    threshold = logging.getLevelName(level.upper())
    if not isinstance(threshold, int):
        threshold = logging.INFO
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(colors=False),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(threshold),
        # resolve stderr per call; the stream may be swapped after configuration
        logger_factory=lambda *_: structlog.PrintLogger(file=sys.stderr),
        cache_logger_on_first_use=False,
    )
    _configured_level = level


def _prepare(config_path: Path) -> GameConfig:
    load_dotenv()
    config = load_game_config(config_path)
    configure_logging(config.log_level)
    return config


def _slot(config: GameConfig, game: GameKind) -> SaveSlot:
    store = FileSlotStore(config.save_dir)
    return match_slot(store) if game is GameKind.MATCH else board_slot(store)


@app.command("check-questions")
def check_questions(
    path: Path = typer.Argument(..., help="Question file to parse"),
    variant: QuestionVariant = typer.Option(QuestionVariant.MATCH, help="Question file format"),
    config: Path = typer.Option(DEFAULT_CONFIG_PATH, help="Path to configuration JSON"),
) -> None:
    """Parse a question file and report what would be loaded."""

    _prepare(config)
    report = load_questions(path, variant)
    GameNarrator().question_report(report)
    if report.used_fallback:
        raise typer.Exit(code=1)


@app.command("board-layout")
def board_layout(
    seed: Optional[int] = typer.Option(None, help="Seed for marker placement"),
    config: Path = typer.Option(DEFAULT_CONFIG_PATH, help="Path to configuration JSON"),
) -> None:
    """Print a freshly generated board with its checkpoints and markers."""

    settings = _prepare(config)
    seed = seed if seed is not None else settings.seed
    game = BoardGame(QuestionPool.load(settings.board_questions_path, QuestionVariant.BOARD), rng=build_rng(seed=seed))
    narrator = GameNarrator()
    narrator.board_grid(game)
    narrator.notes(
        [
            f"Checkpoints: {', '.join(str(cell) for cell in game.checkpoints)}",
            f"Markers: {len(game.markers)} ({sum(1 for m in game.markers.values() if m.value == 'forced')} forced)",
        ]
    )


@app.command("simulate-match")
def simulate_match_command(
    seed: Optional[int] = typer.Option(None, help="Seed for deterministic simulation"),
    accuracy: float = typer.Option(0.7, min=0.0, max=1.0, help="Chance that a team answers correctly"),
    save: bool = typer.Option(True, "--save/--no-save", help="Autosave into the match slot"),
    config: Path = typer.Option(DEFAULT_CONFIG_PATH, help="Path to configuration JSON"),
) -> None:
    """Auto-play a full match game and print the final scoreboard."""

    settings = _prepare(config)
    seed = seed if seed is not None else settings.seed
    pool = QuestionPool.load(settings.match_questions_path, QuestionVariant.MATCH)
    on_commit = autosave(_slot(settings, GameKind.MATCH)) if save else None
    LOGGER.info("simulation.start", game="match", seed=seed, accuracy=accuracy, save=save)

    game = simulate_match(pool, seed=seed, accuracy=accuracy, on_commit=on_commit)
    GameNarrator().match_scoreboard(game)


@app.command("simulate-board")
def simulate_board_command(
    seed: Optional[int] = typer.Option(None, help="Seed for deterministic simulation"),
    accuracy: float = typer.Option(0.7, min=0.0, max=1.0, help="Chance that a team answers correctly"),
    max_turns: int = typer.Option(200, min=1, help="Stop after this many moves"),
    save: bool = typer.Option(True, "--save/--no-save", help="Autosave into the board slot"),
    config: Path = typer.Option(DEFAULT_CONFIG_PATH, help="Path to configuration JSON"),
) -> None:
    """Auto-play the board game and print the board and ranking."""

    settings = _prepare(config)
    seed = seed if seed is not None else settings.seed
    pool = QuestionPool.load(settings.board_questions_path, QuestionVariant.BOARD)
    on_commit = autosave(_slot(settings, GameKind.BOARD)) if save else None
    LOGGER.info("simulation.start", game="board", seed=seed, accuracy=accuracy, max_turns=max_turns, save=save)

    game = simulate_board(pool, seed=seed, accuracy=accuracy, max_turns=max_turns, on_commit=on_commit)
    narrator = GameNarrator()
    narrator.board_grid(game)
    narrator.board_ranking(game)


@app.command("inspect-save")
def inspect_save(
    game: GameKind = typer.Argument(..., help="Which game's save slot to read"),
    config: Path = typer.Option(DEFAULT_CONFIG_PATH, help="Path to configuration JSON"),
) -> None:
    """Summarize the saved state of a game."""

    settings = _prepare(config)
    slot = _slot(settings, game)
    snapshot = slot.load()
    if snapshot is None:
        if slot.last_discard_reason:
            typer.echo(f"Saved {game.value} state was discarded ({slot.last_discard_reason})")
        else:
            typer.echo(f"No saved {game.value} state")
        return

    if isinstance(snapshot, MatchGameSnapshot):
        scores = ", ".join(f"{p.name}: {p.points}" for p in snapshot.players)
        typer.echo(
            f"Match game {snapshot.phase.value}: pairs {snapshot.matched_pairs}, "
            f"time {format_elapsed(snapshot.elapsed_seconds)}, {scores}"
        )
        if snapshot.winner is not None:
            typer.echo(f"Winner: {snapshot.winner}")
    elif isinstance(snapshot, BoardGameSnapshot):
        positions = ", ".join(
            f"{p.name}: cell {p.position}" + (f" (rank {p.rank})" if p.rank else "") for p in snapshot.players
        )
        typer.echo(f"Board game {snapshot.phase.value}: {positions}")


@app.command("clear-save")
def clear_save(
    game: GameKind = typer.Argument(..., help="Which game's save slot to clear"),
    config: Path = typer.Option(DEFAULT_CONFIG_PATH, help="Path to configuration JSON"),
) -> None:
    """Delete the saved state of a game."""

    settings = _prepare(config)
    _slot(settings, game).clear()
    typer.echo(f"Cleared {game.value} save")


if __name__ == "__main__":  # pragma: no cover
    app()
