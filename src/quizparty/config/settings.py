"""Runtime configuration: file locations, save directory, seed and log level."""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Mapping, Optional

import orjson
import structlog

LOGGER = structlog.get_logger(__name__)

DEFAULT_CONFIG_PATH = Path("config/quizparty.json")

ENV_SAVE_DIR = "QUIZPARTY_SAVE_DIR"
ENV_SEED = "QUIZPARTY_SEED"
ENV_LOG_LEVEL = "QUIZPARTY_LOG_LEVEL"
ENV_MATCH_QUESTIONS = "QUIZPARTY_MATCH_QUESTIONS"
ENV_BOARD_QUESTIONS = "QUIZPARTY_BOARD_QUESTIONS"


@dataclass(slots=True, frozen=True)
class GameConfig:
    """Configuration derived from config/quizparty.json and the environment."""

    match_questions_path: Path = Path("data/match_questions.txt")
    board_questions_path: Path = Path("data/board_questions.txt")
    save_dir: Path = Path(".quizparty/saves")
    seed: Optional[int] = None
    log_level: str = "INFO"


def _parse_seed(value: object) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        LOGGER.warning("config.invalid_seed", value=value)
        return None


def load_game_config(
    path: Path = DEFAULT_CONFIG_PATH,
    *,
    environ: Optional[Mapping[str, str]] = None,
) -> GameConfig:
    """Load configuration from disk, falling back to defaults, then apply environment overrides."""

    config = GameConfig()
    if path.exists():
        data = orjson.loads(path.read_bytes())
        if isinstance(data, dict):
            config = GameConfig(
                match_questions_path=Path(data.get("match_questions_path", config.match_questions_path)),
                board_questions_path=Path(data.get("board_questions_path", config.board_questions_path)),
                save_dir=Path(data.get("save_dir", config.save_dir)),
                seed=_parse_seed(data.get("seed")),
                log_level=str(data.get("log_level", config.log_level)).upper(),
            )

    env = os.environ if environ is None else environ
    overrides = {}
    if env.get(ENV_MATCH_QUESTIONS):
        overrides["match_questions_path"] = Path(env[ENV_MATCH_QUESTIONS])
    if env.get(ENV_BOARD_QUESTIONS):
        overrides["board_questions_path"] = Path(env[ENV_BOARD_QUESTIONS])
    if env.get(ENV_SAVE_DIR):
        overrides["save_dir"] = Path(env[ENV_SAVE_DIR])
    if env.get(ENV_SEED):
        overrides["seed"] = _parse_seed(env[ENV_SEED])
    if env.get(ENV_LOG_LEVEL):
        overrides["log_level"] = env[ENV_LOG_LEVEL].upper()
    return replace(config, **overrides) if overrides else config
