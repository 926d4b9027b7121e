"""Finite state machine for the two-player memory match game.

Cards are addressed by 0-based index in the click API; per-card bookkeeping
(points and question state) is keyed by 1-based position (``index + 1``).
"""

from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

import structlog

from ..utils.rng import build_rng, shuffle
from .assignment import AssignmentEngine, RotationPolicy
from .clock import GameTimer, Handle, ManualScheduler, Scheduler
from .events import EventBus, EventKind
from .questions import Question, QuestionPool
from .rulesets import MATCH_RULES, MatchRules
from .schemas import (
    TIE,
    CardSnapshot,
    MatchGameSnapshot,
    MatchPhase,
    MatchPlayerSnapshot,
    PointGainSnapshot,
    TurnPhase,
    Winner,
)

LOGGER = structlog.get_logger(__name__)

GAME = "match"


@dataclass
class Card:
    """A face-down card; two cards share each face value."""

    face: int
    flipped: bool = False
    matched: bool = False


@dataclass
class MatchPlayer:
    id: int
    name: str
    points: int = 0
    matches: int = 0
    attempts: int = 0


@dataclass(frozen=True)
class PointGain:
    """Points awarded in one resolution, for score animations."""

    player_id: int
    amount: int
    sequence: int


CommitHook = Callable[[MatchGameSnapshot], None]


def decide_winner(players: List[MatchPlayer]) -> Winner:
    """Winner by points, then by matches, otherwise a tie."""
    first, second = players
    if first.points != second.points:
        return first.id if first.points > second.points else second.id
    if first.matches != second.matches:
        return first.id if first.matches > second.matches else second.id
    return TIE


class MatchGame:
    """Turn, scoring and question flow of the match card game."""

    def __init__(
        self,
        pool: QuestionPool,
        *,
        rng: Optional[random.Random] = None,
        scheduler: Optional[Scheduler] = None,
        events: Optional[EventBus] = None,
        on_commit: Optional[CommitHook] = None,
        rules: MatchRules = MATCH_RULES,
    ) -> None:
        self.pool = pool
        self.rules = rules
        self.rng = rng or build_rng()
        self.scheduler = scheduler or ManualScheduler()
        self.events = events or EventBus()
        self.on_commit = on_commit
        self.engine = AssignmentEngine(pool, rng=self.rng)
        self.policy = RotationPolicy("card", rules.wrong_answers_before_rotation)
        self.timer = GameTimer(self.scheduler, on_tick=self._on_tick)

        self.players: List[MatchPlayer] = [
            MatchPlayer(id=seat, name=name) for seat, name in enumerate(rules.default_names, start=1)
        ]
        self.phase = MatchPhase.NAME_INPUT
        self.names_set = False
        self.paused = False

        self.cards: List[Card] = []
        self.opened_cards: List[int] = []
        self.matched_pairs = 0
        self.attempts = 0
        self.card_points: Dict[int, int] = {}
        self.current_player = 1
        self.winner: Winner = None
        self.last_point_gain: Optional[PointGain] = None

        self.current_turn_attempts = 0
        self.continue_choice_pending = False
        self.first_attempt_in_turn = True
        self.processing_click = False
        self.pending_card_index: Optional[int] = None

        self._epoch = 0
        self._turn_token = 0
        self._gain_sequence = 0
        self._deferred: List[Handle] = []
        self._initialize_board()

    # ------------------------------------------------------------------
    # Derived state
    # ------------------------------------------------------------------

    @property
    def started(self) -> bool:
        return self.phase is not MatchPhase.NAME_INPUT

    @property
    def completed(self) -> bool:
        return self.phase is MatchPhase.COMPLETED

    @property
    def question_open(self) -> bool:
        return self.pending_card_index is not None

    @property
    def turn_phase(self) -> TurnPhase:
        if self.question_open:
            return TurnPhase.QUESTION_OPEN
        if self.continue_choice_pending:
            return TurnPhase.CONTINUE_CHOICE
        return TurnPhase.AWAITING_FLIP

    @property
    def elapsed_seconds(self) -> int:
        return self.timer.elapsed

    @property
    def current_question(self) -> Optional[Question]:
        if self.pending_card_index is None:
            return None
        return self.engine.question_for(self.pending_card_index + 1)

    def player(self, player_id: int) -> MatchPlayer:
        return self.players[player_id - 1]

    def points_of(self, position: int) -> int:
        return self.card_points.get(position, 0)

    def revealed_clue_indices(self, position: int) -> List[int]:
        state = self.engine.sites.get(position)
        return list(state.revealed_clue_indices) if state else []

    def wrong_count(self, position: int) -> int:
        state = self.engine.sites.get(position)
        return state.wrong_attempts if state else 0

    # ------------------------------------------------------------------
    # Game lifecycle
    # ------------------------------------------------------------------

    def set_player_names(self, first: str, second: str) -> None:
        """Store team names and start a fresh game."""
        for player, name in zip(self.players, (first, second)):
            player.name = name.strip() or self.rules.default_names[player.id - 1]
        self.names_set = True
        self.start_game()

    def start_game(self) -> None:
        self._invalidate_deferred()
        self._initialize_board()
        self.phase = MatchPhase.PLAYING
        self.timer.reset()
        self.timer.start()
        LOGGER.info("match.started", players=[p.name for p in self.players])
        self.events.emit(EventKind.GAME_STARTED, GAME)
        self._commit()

    def reset_game(self) -> None:
        """Stop the game and clear the board; team names are kept."""
        self._invalidate_deferred()
        self.timer.reset()
        self._initialize_board()
        self.phase = MatchPhase.NAME_INPUT
        self._commit()

    def reset_to_name_input(self) -> None:
        self.names_set = False
        self.reset_game()

    def pause(self) -> bool:
        if self.phase is not MatchPhase.PLAYING or self.paused:
            return False
        if self.question_open:
            self._close_question()
        self.paused = True
        self.timer.pause()
        self.events.emit(EventKind.GAME_PAUSED, GAME)
        self._commit()
        return True

    def resume(self) -> bool:
        if not self.paused:
            return False
        self.paused = False
        self.timer.resume()
        self.events.emit(EventKind.GAME_RESUMED, GAME)
        self._commit()
        return True

    def force_end(self) -> bool:
        """End the game now and decide the winner from current scores."""
        if self.phase is not MatchPhase.PLAYING:
            return False
        self.pending_card_index = None
        self.paused = False
        self._complete()
        self._commit()
        return True

    # ------------------------------------------------------------------
    # Turn actions
    # ------------------------------------------------------------------

    def click_card(self, index: int) -> bool:
        """Open the question of card ``index``; return False when the click is ignored."""
        if self.phase is not MatchPhase.PLAYING or self.paused or self.processing_click:
            return False
        if not 0 <= index < len(self.cards):
            return False
        card = self.cards[index]
        if (
            card.flipped
            or card.matched
            or self.question_open
            or self.continue_choice_pending
            or self.current_turn_attempts >= self.rules.max_turn_attempts
        ):
            return False

        self.processing_click = True
        self.current_turn_attempts += 1
        self.pending_card_index = index
        position = index + 1
        state = self.engine.ensure_site(position)
        self.engine.mark_asked(position)
        self._defer(self.rules.click_debounce, self._release_click)
        LOGGER.debug("match.card_opened", position=position, player=self.current_player, question_id=state.question_id)
        self.events.emit(
            EventKind.CARD_OPENED,
            GAME,
            position=position,
            player_id=self.current_player,
            question_id=state.question_id,
        )
        self._commit()
        return True

    def answer_correct(self) -> bool:
        if self.pending_card_index is None or self.phase is not MatchPhase.PLAYING:
            return False
        index = self.pending_card_index
        position = index + 1
        player = self.player(self.current_player)
        self._count_attempt(player)
        gained = self._take_card_points(position, player)

        self.pending_card_index = None
        card = self.cards[index]
        card.flipped = True
        self.engine.discard(position)
        self.events.emit(EventKind.CARD_FLIPPED, GAME, position=position, face=card.face)

        twin = next(
            (
                opened
                for opened in self.opened_cards
                if opened != index and self.cards[opened].face == card.face and not self.cards[opened].matched
            ),
            None,
        )
        self.opened_cards.append(index)

        if twin is None:
            self._after_correct_answer()
            if gained > 0:
                self._register_gain(player.id, gained)
            self._commit()
            return True

        card.matched = True
        self.cards[twin].matched = True
        self.matched_pairs += 1
        player.matches += 1
        player.points += self.rules.match_bonus
        self._register_gain(player.id, gained + self.rules.match_bonus)
        LOGGER.info("match.pair_found", player=player.id, face=card.face, pairs=self.matched_pairs)
        self.events.emit(
            EventKind.MATCH_FOUND,
            GAME,
            player_id=player.id,
            positions=[twin + 1, position],
            face=card.face,
        )
        if self.matched_pairs >= self.rules.pairs:
            self._complete()
        else:
            self._after_correct_answer()
        self._commit()
        return True

    def answer_wrong(self, option_index: Optional[int] = None) -> bool:
        """Record a wrong answer; the turn always passes to the other player."""
        if self.pending_card_index is None or self.phase is not MatchPhase.PLAYING:
            return False
        position = self.pending_card_index + 1
        self._count_attempt(self.player(self.current_player))
        if self.engine.record_wrong(position, option_index, policy=self.policy):
            self.events.emit(EventKind.QUESTION_ROTATED, GAME, site=position)
        self.pending_card_index = None
        self.switch_player()
        self._commit()
        return True

    def close_question(self) -> bool:
        """Close the question without answering; the attempt is refunded."""
        if not self.question_open:
            return False
        self._close_question()
        self._commit()
        return True

    def reveal_clue(self) -> bool:
        """Reveal one answer character for the open card at a point cost."""
        if self.pending_card_index is None:
            return False
        position = self.pending_card_index + 1
        if not self.engine.reveal_clue(position, limit=self.rules.max_clue_reveals):
            return False
        self.card_points[position] = max(0, self.card_points.get(position, 0) - self.rules.clue_penalty)
        self.events.emit(
            EventKind.CLUE_REVEALED,
            GAME,
            position=position,
            revealed=self.revealed_clue_indices(position),
            points=self.card_points[position],
        )
        self._commit()
        return True

    def continue_turn(self) -> bool:
        if not self.continue_choice_pending:
            return False
        self.continue_choice_pending = False
        self._commit()
        return True

    def end_turn(self) -> bool:
        if not self.continue_choice_pending:
            return False
        self.continue_choice_pending = False
        self.switch_player()
        self._commit()
        return True

    def switch_player(self) -> None:
        self.current_player = 2 if self.current_player == 1 else 1
        self._reset_turn_state()
        LOGGER.debug("match.turn_switched", player=self.current_player)
        self.events.emit(EventKind.TURN_SWITCHED, GAME, player_id=self.current_player)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def snapshot(self) -> MatchGameSnapshot:
        gain = self.last_point_gain
        return MatchGameSnapshot(
            phase=self.phase,
            names_set=self.names_set,
            paused=self.paused,
            players=[
                MatchPlayerSnapshot(id=p.id, name=p.name, points=p.points, matches=p.matches, attempts=p.attempts)
                for p in self.players
            ],
            current_player=self.current_player,
            cards=[CardSnapshot(face=c.face, flipped=c.flipped, matched=c.matched) for c in self.cards],
            opened_cards=list(self.opened_cards),
            matched_pairs=self.matched_pairs,
            attempts=self.attempts,
            elapsed_seconds=self.timer.elapsed,
            card_points=dict(self.card_points),
            current_turn_attempts=self.current_turn_attempts,
            continue_choice_pending=self.continue_choice_pending,
            first_attempt_in_turn=self.first_attempt_in_turn,
            pending_card_index=self.pending_card_index,
            winner=self.winner,
            last_point_gain=(
                PointGainSnapshot(player_id=gain.player_id, amount=gain.amount, sequence=gain.sequence)
                if gain
                else None
            ),
            engine=self.engine.snapshot(),
        )

    def restore(self, snapshot: MatchGameSnapshot) -> None:
        """Load a saved game; pending deferred prompts are not carried over."""
        self._invalidate_deferred()
        self.phase = snapshot.phase
        self.names_set = snapshot.names_set
        self.paused = snapshot.paused
        self.players = [
            MatchPlayer(id=p.id, name=p.name, points=p.points, matches=p.matches, attempts=p.attempts)
            for p in snapshot.players
        ]
        self.current_player = snapshot.current_player
        self.cards = [Card(face=c.face, flipped=c.flipped, matched=c.matched) for c in snapshot.cards]
        self.opened_cards = list(snapshot.opened_cards)
        self.matched_pairs = snapshot.matched_pairs
        self.attempts = snapshot.attempts
        self.card_points = dict(snapshot.card_points)
        self.current_turn_attempts = snapshot.current_turn_attempts
        self.continue_choice_pending = snapshot.continue_choice_pending
        self.first_attempt_in_turn = snapshot.first_attempt_in_turn
        self.processing_click = False
        self.pending_card_index = snapshot.pending_card_index
        self.winner = snapshot.winner
        gain = snapshot.last_point_gain
        self.last_point_gain = PointGain(gain.player_id, gain.amount, gain.sequence) if gain else None
        self._gain_sequence = gain.sequence if gain else 0
        self.engine.restore(snapshot.engine)

        self.timer.reset(snapshot.elapsed_seconds)
        if self.phase is MatchPhase.PLAYING:
            self.timer.start()
            if self.paused:
                self.timer.pause()
        LOGGER.info("match.restored", phase=self.phase.value, pairs=self.matched_pairs)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _initialize_board(self) -> None:
        faces = [face for face in range(1, self.rules.pairs + 1) for _ in range(2)]
        shuffle(faces, self.rng)
        self.cards = [Card(face=face) for face in faces]
        self.opened_cards = []
        self.matched_pairs = 0
        self.attempts = 0
        self.card_points = {position: self.rules.card_points for position in range(1, len(self.cards) + 1)}
        for player in self.players:
            player.points = 0
            player.matches = 0
            player.attempts = 0
        self.current_player = 1
        self.winner = None
        self.paused = False
        self.pending_card_index = None
        self.last_point_gain = None
        self._gain_sequence = 0
        self.engine.reset()
        self._reset_turn_state()

    def _reset_turn_state(self) -> None:
        self.current_turn_attempts = 0
        self.continue_choice_pending = False
        self.first_attempt_in_turn = True
        self.processing_click = False
        self._turn_token += 1

    def _close_question(self) -> None:
        self.pending_card_index = None
        self.current_turn_attempts = max(0, self.current_turn_attempts - 1)
        self.processing_click = False

    def _count_attempt(self, player: MatchPlayer) -> None:
        self.attempts += 1
        player.attempts += 1

    def _take_card_points(self, position: int, player: MatchPlayer) -> int:
        points = self.card_points.get(position, 0)
        if points <= 0:
            return 0
        player.points += points
        self.card_points[position] = 0
        return points

    def _register_gain(self, player_id: int, amount: int) -> None:
        if amount <= 0:
            return
        self._gain_sequence += 1
        self.last_point_gain = PointGain(player_id=player_id, amount=amount, sequence=self._gain_sequence)
        self.events.emit(EventKind.POINTS_GAINED, GAME, player_id=player_id, amount=amount)

    def _after_correct_answer(self) -> None:
        if self.current_turn_attempts >= self.rules.max_turn_attempts:
            self.switch_player()
        else:
            self._defer(self.rules.continue_choice_delay, self._offer_continue_choice)

    def _offer_continue_choice(self) -> None:
        if self.phase is not MatchPhase.PLAYING or self.question_open:
            return
        self.continue_choice_pending = True
        self.first_attempt_in_turn = False
        self.events.emit(EventKind.CONTINUE_OFFERED, GAME, player_id=self.current_player)
        self._commit()

    def _release_click(self) -> None:
        self.processing_click = False

    def _complete(self) -> None:
        self.phase = MatchPhase.COMPLETED
        self.timer.stop()
        self._invalidate_deferred()
        self._reset_turn_state()
        self.winner = decide_winner(self.players)
        LOGGER.info(
            "match.completed",
            winner=self.winner,
            points=[p.points for p in self.players],
            elapsed=self.timer.elapsed,
        )
        self.events.emit(EventKind.GAME_FINISHED, GAME, winner=self.winner)

    def _defer(self, delay: float, action: Callable[[], None]) -> None:
        """Run ``action`` later unless the game or the turn changed in the meantime."""
        epoch, turn = self._epoch, self._turn_token

        def _guarded() -> None:
            if epoch != self._epoch or turn != self._turn_token:
                return
            action()

        self._deferred.append(self.scheduler.call_later(delay, _guarded))

    def _invalidate_deferred(self) -> None:
        self._epoch += 1
        for handle in self._deferred:
            handle.cancel()
        self._deferred.clear()

    def _on_tick(self, elapsed: int) -> None:
        self._commit()

    def _commit(self) -> None:
        if self.on_commit is not None:
            self.on_commit(self.snapshot())
