import random
from typing import Dict, List

import pytest

from quizparty.core.board_game import BoardGame
from quizparty.core.clock import ManualScheduler
from quizparty.core.events import EventBus, EventKind, GameEvent
from quizparty.core.match_game import MatchGame
from quizparty.core.questions import Question, QuestionPool
from quizparty.core.schemas import MarkerType


def make_match_pool(count: int = 10) -> QuestionPool:
    return QuestionPool(
        [Question(id=i, question_text=f"Match question {i}?", answer_text=f"answer{i}") for i in range(1, count + 1)]
    )


def make_board_pool(count: int = 30) -> QuestionPool:
    return QuestionPool(
        [
            Question(
                id=i,
                question_text=f"Board question {i}?",
                options=("first", "second", "third", "fourth"),
                correct_index=(i - 1) % 4,
            )
            for i in range(1, count + 1)
        ]
    )


def twin_indices(game: MatchGame, face: int) -> List[int]:
    return [index for index, card in enumerate(game.cards) if card.face == face]


def set_board_layout(game: BoardGame, markers: Dict[int, MarkerType]) -> None:
    """Replace the random markers with a fixed layout."""
    game.markers = dict(markers)
    game.engine.reset()
    game.engine.assign_initial(game.challenge_cells)


class EventRecorder:
    def __init__(self, bus: EventBus) -> None:
        self.events: List[GameEvent] = []
        bus.subscribe(self.events.append)

    def kinds(self) -> List[EventKind]:
        return [event.kind for event in self.events]

    def of(self, kind: EventKind) -> List[GameEvent]:
        return [event for event in self.events if event.kind is kind]


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def bus() -> EventBus:
    return EventBus()


@pytest.fixture
def recorder(bus: EventBus) -> EventRecorder:
    return EventRecorder(bus)


@pytest.fixture
def match_game(scheduler: ManualScheduler, bus: EventBus) -> MatchGame:
    game = MatchGame(make_match_pool(), rng=random.Random(7), scheduler=scheduler, events=bus)
    game.set_player_names("Alpha", "Beta")
    return game


@pytest.fixture
def board_game(bus: EventBus) -> BoardGame:
    game = BoardGame(make_board_pool(), rng=random.Random(11), events=bus)
    game.set_player_names(["Red", "Green", "Blue"])
    return game
