"""Semantic game events emitted by the state machines.

The state machines only describe what happened; audio, animation and any other
presentation concern subscribes to the bus and reacts on its own.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List

import structlog

LOGGER = structlog.get_logger(__name__)


class EventKind(str, Enum):
    """Events shared by both games."""

    GAME_STARTED = "game_started"
    GAME_FINISHED = "game_finished"
    GAME_PAUSED = "game_paused"
    GAME_RESUMED = "game_resumed"
    TURN_SWITCHED = "turn_switched"
    QUESTION_ROTATED = "question_rotated"

    # Match game
    CARD_OPENED = "card_opened"
    CARD_FLIPPED = "card_flipped"
    MATCH_FOUND = "match_found"
    POINTS_GAINED = "points_gained"
    CONTINUE_OFFERED = "continue_offered"
    CLUE_REVEALED = "clue_revealed"

    # Board game
    PLAYER_MOVED = "player_moved"
    PLAYER_FINISHED = "player_finished"
    CHALLENGE_OPENED = "challenge_opened"
    CHALLENGE_RESOLVED = "challenge_resolved"
    CHALLENGE_DECLINED = "challenge_declined"
    REWARD_OFFERED = "reward_offered"
    SHIELD_GAINED = "shield_gained"
    SHIELD_BROKEN = "shield_broken"


@dataclass(frozen=True)
class GameEvent:
    """A single fire-and-forget notification."""

    kind: EventKind
    game: str
    payload: Dict[str, Any] = field(default_factory=dict)


Listener = Callable[[GameEvent], None]


class EventBus:
    """Synchronous in-process fan-out of game events."""

    def __init__(self) -> None:
        self._listeners: List[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener`` and return a callable that unsubscribes it."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def emit(self, kind: EventKind, game: str, **payload: Any) -> GameEvent:
        event = GameEvent(kind=kind, game=game, payload=payload)
        for listener in list(self._listeners):
            # listener errors never propagate into game state
            try:
                listener(event)
            except Exception as exc:  # noqa: BLE001
                LOGGER.warning("events.listener_failed", kind=kind.value, error=str(exc))
        return event
