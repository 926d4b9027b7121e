"""Fixed rules for the match card game and the snakes & ladders board game.

Both games ship with a single ruleset each. The values live here so the state
machines and the tests read them from one place; they are not user configuration.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple


@dataclass(frozen=True)
class MatchRules:
    """Rules of the two-player memory match game."""

    players: int = 2
    pairs: int = 7
    card_points: int = 100
    match_bonus: int = 100
    clue_penalty: int = 20
    max_clue_reveals: int = 2
    max_turn_attempts: int = 2
    wrong_answers_before_rotation: int = 3
    continue_choice_delay: float = 1.0
    click_debounce: float = 0.5
    default_names: Tuple[str, ...] = ("Team 1", "Team 2")

    def __post_init__(self) -> None:
        if len(self.default_names) != self.players:
            raise ValueError(f"Expected {self.players} default names, got {len(self.default_names)}")
        if self.max_clue_reveals * self.clue_penalty > self.card_points:
            raise ValueError("Clue penalties cannot exceed the card's starting points")

    @property
    def card_count(self) -> int:
        return self.pairs * 2

    @property
    def min_card_points(self) -> int:
        """Points left on a card after every clue has been revealed."""
        return self.card_points - self.max_clue_reveals * self.clue_penalty


@dataclass(frozen=True)
class BoardRules:
    """Rules of the three-player snakes & ladders board game."""

    players: int = 3
    size: int = 7
    min_steps: int = 1
    max_steps: int = 6
    marker_wrong_answers_before_rotation: int = 2
    checkpoint_wrong_answers_before_rotation: int = 1
    supplementary_marker_ratio: int = 4
    default_names: Tuple[str, ...] = ("Team 1", "Team 2", "Team 3")

    def __post_init__(self) -> None:
        if len(self.default_names) != self.players:
            raise ValueError(f"Expected {self.players} default names, got {len(self.default_names)}")
        if self.size < 2:
            raise ValueError("Board size must be at least 2")

    @property
    def start_cell(self) -> int:
        return 1

    @property
    def final_cell(self) -> int:
        return self.size * self.size


MATCH_RULES = MatchRules()
BOARD_RULES = BoardRules()

TIMER_INTERVAL = 1.0


def format_elapsed(seconds: int) -> str:
    """Format elapsed seconds as ``MM:SS``."""
    minutes, secs = divmod(max(0, int(seconds)), 60)
    return f"{minutes:02d}:{secs:02d}"
