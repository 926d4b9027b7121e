"""Finite state machine for the three-player snakes & ladders board game.

Cells are numbered ``1..N*N`` in boustrophedon order: row 0 (bottom) runs left to
right, row 1 right to left, and so on. Dice and movement input come from outside;
this module owns player positions, challenge cells, and the turn hand-off.
"""

from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence

import structlog

from ..utils.rng import build_rng, shuffled_copy
from .assignment import AssignmentEngine, RotationPolicy
from .events import EventBus, EventKind
from .questions import Question, QuestionPool
from .rulesets import BOARD_RULES, BoardRules
from .schemas import (
    BoardGameSnapshot,
    BoardPhase,
    BoardPlayerSnapshot,
    ChallengeSnapshot,
    ChallengeSource,
    MarkerType,
)

LOGGER = structlog.get_logger(__name__)

GAME = "board"


class GameStateError(RuntimeError):
    """Raised when the board game is driven with arguments that cannot be ignored."""


def row_entry_cell(size: int, row: int) -> int:
    """Cell where travel enters ``row``: leftmost on even rows, rightmost on odd rows."""
    return row * size + 1 if row % 2 == 0 else (row + 1) * size


def generate_checkpoints(size: int) -> List[int]:
    """Checkpoint cells on every other interior row (7x7 gives 14, 28, 42)."""
    if size <= 2:
        return []
    return [row_entry_cell(size, row) for row in range(1, size - 1) if row % 2 == 1]


def row_cells(size: int, row: int) -> List[int]:
    """Cell numbers of logical ``row`` (0 = bottom) in ascending order."""
    return list(range(row * size + 1, (row + 1) * size + 1))


def board_rows(size: int) -> List[List[int]]:
    """Rows top to bottom, each in left-to-right display order."""
    rows = []
    for row in range(size - 1, -1, -1):
        cells = row_cells(size, row)
        rows.append(cells if row % 2 == 0 else list(reversed(cells)))
    return rows


def generate_markers(
    size: int,
    checkpoints: Sequence[int],
    rng: random.Random,
    *,
    supplementary_ratio: int = BOARD_RULES.supplementary_marker_ratio,
) -> Dict[int, MarkerType]:
    """Tag challenge cells as optional or forced.

    Every row with at least two eligible cells gets one optional and one forced
    marker. A row with a single eligible cell gets one marker whose type
    alternates with row parity. A further ``1/supplementary_ratio`` of the
    leftover eligible cells is split evenly between the two types. The start
    cell, the final cell and checkpoints are never marked.
    """
    final = size * size
    skip = set(checkpoints) | {1, final}
    markers: Dict[int, MarkerType] = {}
    leftover: List[int] = []
    for row in range(size):
        eligible = [cell for cell in row_cells(size, row) if cell not in skip]
        if not eligible:
            continue
        if len(eligible) == 1:
            markers[eligible[0]] = MarkerType.OPTIONAL if row % 2 == 0 else MarkerType.FORCED
            continue
        picked = shuffled_copy(eligible, rng)
        markers[picked[0]] = MarkerType.OPTIONAL
        markers[picked[1]] = MarkerType.FORCED
        leftover.extend(picked[2:])

    extra = shuffled_copy(leftover, rng)[: len(leftover) // supplementary_ratio]
    half = len(extra) // 2
    for cell in extra[:half]:
        markers[cell] = MarkerType.OPTIONAL
    for cell in extra[half:]:
        markers[cell] = MarkerType.FORCED
    return dict(sorted(markers.items()))


@dataclass
class BoardPlayer:
    id: int
    name: str
    position: int = 1
    finished: bool = False
    rank: Optional[int] = None
    shield: int = 0


@dataclass
class Challenge:
    """An open question at a board cell."""

    cell: int
    source: ChallengeSource
    marker_type: MarkerType
    landed_player_id: int
    answerer_id: Optional[int] = None


CommitHook = Callable[[BoardGameSnapshot], None]


class BoardGame:
    """Turns, challenges and rewards of the snakes & ladders board."""

    def __init__(
        self,
        pool: QuestionPool,
        *,
        rng: Optional[random.Random] = None,
        events: Optional[EventBus] = None,
        on_commit: Optional[CommitHook] = None,
        rules: BoardRules = BOARD_RULES,
    ) -> None:
        self.pool = pool
        self.rules = rules
        self.rng = rng or build_rng()
        self.events = events or EventBus()
        self.on_commit = on_commit
        self.engine = AssignmentEngine(pool, rng=self.rng)
        self.marker_policy = RotationPolicy("marker", rules.marker_wrong_answers_before_rotation)
        self.checkpoint_policy = RotationPolicy("checkpoint", rules.checkpoint_wrong_answers_before_rotation)

        self.players: List[BoardPlayer] = [
            BoardPlayer(id=seat, name=name, position=rules.start_cell)
            for seat, name in enumerate(rules.default_names, start=1)
        ]
        self.phase = BoardPhase.NAME_INPUT
        self.selected_player_id: Optional[int] = None
        self.steps = rules.min_steps
        self.next_rank = 1
        self.checkpoints: List[int] = []
        self.markers: Dict[int, MarkerType] = {}
        self.visited_checkpoints: Dict[int, List[int]] = {}
        self.challenge: Optional[Challenge] = None
        self.reward_player_id: Optional[int] = None
        self._generate_layout()

    # ------------------------------------------------------------------
    # Derived state
    # ------------------------------------------------------------------

    @property
    def challenge_cells(self) -> List[int]:
        return sorted(set(self.markers) | set(self.checkpoints))

    @property
    def current_question(self) -> Optional[Question]:
        if self.challenge is None:
            return None
        return self.engine.question_for(self.challenge.cell)

    @property
    def disabled_options(self) -> List[int]:
        if self.challenge is None:
            return []
        return self.engine.disabled_options(self.challenge.cell)

    def player(self, player_id: int) -> BoardPlayer:
        for player in self.players:
            if player.id == player_id:
                return player
        raise GameStateError(f"Unknown player id {player_id}")

    def ranking(self) -> List[BoardPlayer]:
        """Finished players by rank, then the rest by position."""
        return sorted(
            self.players,
            key=lambda p: (p.rank is None, p.rank or 0, -p.position, p.id),
        )

    def has_visited_checkpoint(self, player_id: int, cell: int) -> bool:
        return cell in self.visited_checkpoints.get(player_id, [])

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------

    def set_player_names(self, names: Sequence[str]) -> None:
        if self.phase is not BoardPhase.NAME_INPUT:
            raise GameStateError(f"Names can only be set before the game starts, not in {self.phase.value}")
        if len(names) != self.rules.players:
            raise GameStateError(f"Expected {self.rules.players} names, got {len(names)}")
        for player, name in zip(self.players, names):
            player.name = name.strip() or self.rules.default_names[player.id - 1]
        self.phase = BoardPhase.PLAYING
        self.selected_player_id = self.players[0].id
        LOGGER.info("board.started", players=[p.name for p in self.players])
        self.events.emit(EventKind.GAME_STARTED, GAME)
        self._commit()

    def reset(self) -> None:
        """Clear positions, ranks and question state, regenerate the board and return to name input."""
        for player in self.players:
            player.position = self.rules.start_cell
            player.finished = False
            player.rank = None
            player.shield = 0
        self.phase = BoardPhase.NAME_INPUT
        self.selected_player_id = None
        self.steps = self.rules.min_steps
        self.next_rank = 1
        self.challenge = None
        self.reward_player_id = None
        self._generate_layout()
        LOGGER.info("board.reset")
        self._commit()

    def _generate_layout(self) -> None:
        self.checkpoints = generate_checkpoints(self.rules.size)
        self.markers = generate_markers(
            self.rules.size,
            self.checkpoints,
            self.rng,
            supplementary_ratio=self.rules.supplementary_marker_ratio,
        )
        self.visited_checkpoints = {}
        self.engine.reset()
        self.engine.assign_initial(self.challenge_cells)

    # ------------------------------------------------------------------
    # Movement input
    # ------------------------------------------------------------------

    def select_player(self, player_id: int) -> bool:
        player = self.player(player_id)
        if self.phase is not BoardPhase.PLAYING or self.challenge is not None or player.finished:
            return False
        self.selected_player_id = player_id
        self._commit()
        return True

    def set_steps(self, value: int) -> int:
        self.steps = max(self.rules.min_steps, min(self.rules.max_steps, int(value)))
        self._commit()
        return self.steps

    def increment_steps(self) -> int:
        return self.set_steps(self.steps + 1)

    def decrement_steps(self) -> int:
        return self.set_steps(self.steps - 1)

    def move_player(self, player_id: int, delta: int) -> int:
        """Move a player by ``delta`` cells, clamped to the board; return the new position."""
        position = self._move(self.player(player_id), delta)
        self._commit()
        return position

    def _move(self, player: BoardPlayer, delta: int) -> int:
        if player.finished:
            return player.position
        start = player.position
        player.position = max(self.rules.start_cell, min(self.rules.final_cell, start + delta))
        if player.position != start:
            self.events.emit(EventKind.PLAYER_MOVED, GAME, player_id=player.id, start=start, end=player.position)
        if player.position == self.rules.final_cell:
            self._finish(player)
        return player.position

    def advance_selected(self) -> bool:
        """Move the selected player by the step count and run the post-move checks."""
        if self.phase is not BoardPhase.PLAYING or self.challenge is not None:
            return False
        if self.selected_player_id is None:
            return False
        player = self.player(self.selected_player_id)
        if player.finished:
            return False

        start = player.position
        self._move(player, self.steps)
        LOGGER.debug("board.advanced", player=player.id, start=start, end=player.position)
        if player.finished:
            self.hand_off_turn(player.id)
        else:
            checkpoint = self.crossed_checkpoint(start, player.position, player.id)
            if checkpoint is not None:
                self.trigger_checkpoint(player.id, checkpoint)
            elif not self.maybe_trigger_marker(player.id):
                self.hand_off_turn(player.id)
        self._commit()
        return True

    def crossed_checkpoint(self, start: int, end: int, player_id: int) -> Optional[int]:
        """First unvisited checkpoint on the path after ``start`` up to and including ``end``."""
        if start == end:
            return None
        step = 1 if end > start else -1
        checkpoints = set(self.checkpoints)
        for cell in range(start + step, end + step, step):
            if cell in checkpoints and not self.has_visited_checkpoint(player_id, cell):
                return cell
        return None

    # ------------------------------------------------------------------
    # Challenges
    # ------------------------------------------------------------------

    def maybe_trigger_marker(self, player_id: int) -> bool:
        """Open a challenge if the player stands on a marked cell."""
        player = self.player(player_id)
        if player.finished or self.challenge is not None:
            return False
        marker = self.markers.get(player.position)
        if marker is None:
            return False
        self._open_challenge(player.position, ChallengeSource.MARKER, marker, player)
        return True

    def trigger_checkpoint(self, player_id: int, cell: int) -> bool:
        """Open a forced checkpoint challenge; the checkpoint is spent for this player at once."""
        player = self.player(player_id)
        if player.finished or self.challenge is not None or self.has_visited_checkpoint(player_id, cell):
            return False
        self._open_challenge(cell, ChallengeSource.CHECKPOINT, MarkerType.FORCED, player)
        self.visited_checkpoints.setdefault(player_id, []).append(cell)
        return True

    def _open_challenge(self, cell: int, source: ChallengeSource, marker: MarkerType, player: BoardPlayer) -> None:
        state = self.engine.ensure_site(cell)
        self.challenge = Challenge(cell=cell, source=source, marker_type=marker, landed_player_id=player.id)
        if marker is MarkerType.FORCED:
            self._commit_answerer(player.id)
        LOGGER.debug("board.challenge_opened", cell=cell, source=source.value, marker=marker.value, player=player.id)
        self.events.emit(
            EventKind.CHALLENGE_OPENED,
            GAME,
            cell=cell,
            source=source.value,
            marker=marker.value,
            player_id=player.id,
            question_id=state.question_id,
        )

    def decide_answerer(self, player_id: int) -> bool:
        """Pick who answers an optional challenge; the landing player or a delegate."""
        self.player(player_id)
        if self.challenge is None or self.challenge.answerer_id is not None:
            return False
        self._commit_answerer(player_id)
        self._commit()
        return True

    def _commit_answerer(self, player_id: int) -> None:
        if self.challenge is None:
            raise GameStateError("No open challenge to assign an answerer to")
        self.challenge.answerer_id = player_id
        self.engine.mark_asked(self.challenge.cell)

    def submit_answer(self, selected_index: int) -> Optional[bool]:
        """Judge the answer; returns correctness or None when the answer was not accepted."""
        challenge = self.challenge
        if challenge is None or challenge.answerer_id is None:
            return None
        question = self.current_question
        if question is None or not 0 <= selected_index < len(question.options):
            return None
        if selected_index in self.engine.disabled_options(challenge.cell):
            return None

        correct = question.is_correct(selected_index)
        if correct:
            self.engine.record_correct(challenge.cell)
        else:
            policy = self.checkpoint_policy if challenge.source is ChallengeSource.CHECKPOINT else self.marker_policy
            if self.engine.record_wrong(challenge.cell, selected_index, policy=policy):
                self.events.emit(EventKind.QUESTION_ROTATED, GAME, site=challenge.cell)
        LOGGER.info(
            "board.challenge_resolved",
            cell=challenge.cell,
            answerer=challenge.answerer_id,
            correct=correct,
        )
        self.events.emit(
            EventKind.CHALLENGE_RESOLVED,
            GAME,
            cell=challenge.cell,
            player_id=challenge.answerer_id,
            correct=correct,
        )
        self.challenge = None
        if correct:
            self.reward_player_id = challenge.answerer_id
            self.events.emit(EventKind.REWARD_OFFERED, GAME, player_id=challenge.answerer_id)
        self.hand_off_turn(challenge.landed_player_id)
        self._commit()
        return correct

    def close_challenge(self) -> bool:
        """Decline an optional challenge; forced challenges must be answered."""
        challenge = self.challenge
        if challenge is None or challenge.marker_type is MarkerType.FORCED:
            return False
        self.challenge = None
        self.events.emit(EventKind.CHALLENGE_DECLINED, GAME, cell=challenge.cell, player_id=challenge.landed_player_id)
        self.hand_off_turn(challenge.landed_player_id)
        self._commit()
        return True

    # ------------------------------------------------------------------
    # Turn hand-off and ranking
    # ------------------------------------------------------------------

    def next_active_player_id(self, from_id: int) -> Optional[int]:
        """Next unfinished player after ``from_id`` in seat order, wrapping around."""
        ids = [p.id for p in self.players]
        start = ids.index(from_id) if from_id in ids else 0
        for step in range(1, len(ids) + 1):
            candidate = self.players[(start + step) % len(ids)]
            if not candidate.finished:
                return candidate.id
        return None

    def hand_off_turn(self, from_id: int) -> Optional[int]:
        self.selected_player_id = self.next_active_player_id(from_id)
        if self.selected_player_id is not None:
            self.events.emit(EventKind.TURN_SWITCHED, GAME, player_id=self.selected_player_id)
        return self.selected_player_id

    def _finish(self, player: BoardPlayer) -> None:
        player.finished = True
        player.rank = self.next_rank
        self.next_rank += 1
        LOGGER.info("board.player_finished", player=player.id, rank=player.rank)
        self.events.emit(EventKind.PLAYER_FINISHED, GAME, player_id=player.id, rank=player.rank)
        if all(p.finished for p in self.players):
            self.phase = BoardPhase.COMPLETED
            self.selected_player_id = None
            LOGGER.info("board.completed", ranking=[p.id for p in self.ranking()])
            self.events.emit(EventKind.GAME_FINISHED, GAME, ranking=[p.id for p in self.ranking()])

    # ------------------------------------------------------------------
    # Shields and rewards
    # ------------------------------------------------------------------

    def grant_shield(self, player_id: int) -> int:
        player = self.player(player_id)
        player.shield += 1
        self.events.emit(EventKind.SHIELD_GAINED, GAME, player_id=player_id, shield=player.shield)
        self._commit()
        return player.shield

    def absorb_hit(self, player_id: int) -> bool:
        """Consume one shield if the player has any; True when the hit was absorbed."""
        player = self.player(player_id)
        if player.shield <= 0:
            return False
        player.shield -= 1
        self.events.emit(EventKind.SHIELD_BROKEN, GAME, player_id=player_id, shield=player.shield)
        self._commit()
        return True

    def claim_shield_reward(self) -> bool:
        if self.reward_player_id is None:
            return False
        player_id = self.reward_player_id
        self.reward_player_id = None
        self.grant_shield(player_id)
        return True

    def dismiss_reward(self) -> bool:
        if self.reward_player_id is None:
            return False
        self.reward_player_id = None
        self._commit()
        return True

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def snapshot(self) -> BoardGameSnapshot:
        challenge = self.challenge
        return BoardGameSnapshot(
            phase=self.phase,
            players=[
                BoardPlayerSnapshot(
                    id=p.id,
                    name=p.name,
                    position=p.position,
                    finished=p.finished,
                    rank=p.rank,
                    shield=p.shield,
                )
                for p in self.players
            ],
            selected_player_id=self.selected_player_id,
            steps=self.steps,
            next_rank=self.next_rank,
            markers=dict(self.markers),
            checkpoints=list(self.checkpoints),
            visited_checkpoints={pid: list(cells) for pid, cells in self.visited_checkpoints.items()},
            challenge=(
                ChallengeSnapshot(
                    cell=challenge.cell,
                    source=challenge.source,
                    marker_type=challenge.marker_type,
                    landed_player_id=challenge.landed_player_id,
                    answerer_id=challenge.answerer_id,
                )
                if challenge
                else None
            ),
            reward_player_id=self.reward_player_id,
            engine=self.engine.snapshot(),
        )

    def restore(self, snapshot: BoardGameSnapshot) -> None:
        self.phase = snapshot.phase
        self.players = [
            BoardPlayer(
                id=p.id,
                name=p.name,
                position=p.position,
                finished=p.finished,
                rank=p.rank,
                shield=p.shield,
            )
            for p in snapshot.players
        ]
        self.selected_player_id = snapshot.selected_player_id
        self.steps = snapshot.steps
        self.next_rank = snapshot.next_rank
        self.markers = dict(snapshot.markers)
        self.checkpoints = list(snapshot.checkpoints)
        self.visited_checkpoints = {pid: list(cells) for pid, cells in snapshot.visited_checkpoints.items()}
        saved = snapshot.challenge
        self.challenge = (
            Challenge(
                cell=saved.cell,
                source=saved.source,
                marker_type=saved.marker_type,
                landed_player_id=saved.landed_player_id,
                answerer_id=saved.answerer_id,
            )
            if saved
            else None
        )
        self.reward_player_id = snapshot.reward_player_id
        self.engine.restore(snapshot.engine)
        # challenge cells saved before any question was mapped
        self.engine.assign_initial(self.challenge_cells)
        LOGGER.info("board.restored", phase=self.phase.value)

    def _commit(self) -> None:
        if self.on_commit is not None:
            self.on_commit(self.snapshot())
