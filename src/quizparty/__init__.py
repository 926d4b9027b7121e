"""Quiz-gated match card game and snakes & ladders board game."""

from .core import assignment, board_game, clock, events, match_game, persistence, questions, rulesets, schemas
from .utils import rng
from .services import cli, narrator, simulation, sound

__all__ = [
    "assignment",
    "board_game",
    "clock",
    "cli",
    "events",
    "match_game",
    "narrator",
    "persistence",
    "questions",
    "rng",
    "rulesets",
    "schemas",
    "simulation",
    "sound",
]
