"""Game rules, state machines and persisted snapshots."""

from . import assignment, board_game, clock, events, match_game, persistence, questions, rulesets, schemas

__all__ = [
    "assignment",
    "board_game",
    "clock",
    "events",
    "match_game",
    "persistence",
    "questions",
    "rulesets",
    "schemas",
]
