"""Pydantic contracts for persisted game snapshots and settings."""

from __future__ import annotations

from enum import Enum
from typing import Dict, List, Literal, Optional, Union

import orjson
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

SCHEMA_VERSION = 2


class MatchPhase(str, Enum):
    """Top-level states of the match game."""

    NAME_INPUT = "NAME_INPUT"
    PLAYING = "PLAYING"
    COMPLETED = "COMPLETED"


class TurnPhase(str, Enum):
    """Per-turn sub-states of the match game."""

    AWAITING_FLIP = "AWAITING_FLIP"
    QUESTION_OPEN = "QUESTION_OPEN"
    CONTINUE_CHOICE = "CONTINUE_CHOICE"


class BoardPhase(str, Enum):
    """Top-level states of the board game."""

    NAME_INPUT = "NAME_INPUT"
    PLAYING = "PLAYING"
    COMPLETED = "COMPLETED"


class MarkerType(str, Enum):
    """Board cell challenge markers."""

    OPTIONAL = "optional"
    FORCED = "forced"


class ChallengeSource(str, Enum):
    """What opened a board challenge."""

    MARKER = "marker"
    CHECKPOINT = "checkpoint"


TIE = "tie"
Winner = Optional[Union[int, Literal["tie"]]]


class Snapshot(BaseModel):
    """Base for immutable, strictly-shaped snapshot models."""

    model_config = ConfigDict(extra="forbid", frozen=True)


class SiteSnapshot(Snapshot):
    question_id: int
    wrong_options: List[int] = Field(default_factory=list)
    wrong_attempts: int = Field(0, ge=0)
    asked: bool = False
    revealed_clue_indices: List[int] = Field(default_factory=list, max_length=2)


class EngineSnapshot(Snapshot):
    sites: Dict[int, SiteSnapshot] = Field(default_factory=dict)
    used_question_ids: List[int] = Field(default_factory=list)


class CardSnapshot(Snapshot):
    face: int
    flipped: bool = False
    matched: bool = False


class MatchPlayerSnapshot(Snapshot):
    id: int
    name: str
    points: int = 0
    matches: int = 0
    attempts: int = 0


class PointGainSnapshot(Snapshot):
    player_id: int
    amount: int
    sequence: int


class MatchGameSnapshot(Snapshot):
    """Everything needed to resume a match game."""

    schema_version: int = SCHEMA_VERSION
    game: Literal["match"] = "match"
    phase: MatchPhase
    names_set: bool
    paused: bool = False
    players: List[MatchPlayerSnapshot] = Field(min_length=2, max_length=2)
    current_player: int
    cards: List[CardSnapshot]
    opened_cards: List[int] = Field(default_factory=list)
    matched_pairs: int = 0
    attempts: int = 0
    elapsed_seconds: int = 0
    card_points: Dict[int, int] = Field(default_factory=dict)
    current_turn_attempts: int = Field(0, ge=0, le=2)
    continue_choice_pending: bool = False
    first_attempt_in_turn: bool = True
    pending_card_index: Optional[int] = None
    winner: Winner = None
    last_point_gain: Optional[PointGainSnapshot] = None
    engine: EngineSnapshot = Field(default_factory=EngineSnapshot)


class BoardPlayerSnapshot(Snapshot):
    id: int
    name: str
    position: int = 1
    finished: bool = False
    rank: Optional[int] = None
    shield: int = Field(0, ge=0)


class ChallengeSnapshot(Snapshot):
    cell: int
    source: ChallengeSource
    marker_type: MarkerType
    landed_player_id: int
    answerer_id: Optional[int] = None


class BoardGameSnapshot(Snapshot):
    """Everything needed to resume a board game."""

    schema_version: int = SCHEMA_VERSION
    game: Literal["board"] = "board"
    phase: BoardPhase
    players: List[BoardPlayerSnapshot] = Field(min_length=3, max_length=3)
    selected_player_id: Optional[int] = None
    steps: int = 1
    next_rank: int = 1
    markers: Dict[int, MarkerType] = Field(default_factory=dict)
    checkpoints: List[int] = Field(default_factory=list)
    visited_checkpoints: Dict[int, List[int]] = Field(default_factory=dict)
    challenge: Optional[ChallengeSnapshot] = None
    reward_player_id: Optional[int] = None
    engine: EngineSnapshot = Field(default_factory=EngineSnapshot)


GameSnapshot = Union[MatchGameSnapshot, BoardGameSnapshot]


class VolumeSettings(BaseModel):
    """Background-music and sound-effect volumes, clamped to [0, 1]."""

    model_config = ConfigDict(frozen=True)

    bgm_volume: float = 0.1
    sfx_volume: float = 0.5

    @field_validator("bgm_volume", "sfx_volume", mode="before")
    @classmethod
    def _clamp(cls, value: object) -> float:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError("volume must be a number")
        return max(0.0, min(1.0, float(value)))


class SnapshotVersionError(ValueError):
    """Raised when a stored snapshot carries another schema version."""

    def __init__(self, found: object):
        self.found = found
        super().__init__(f"Snapshot schema version {found!r} does not match {SCHEMA_VERSION}")


def snapshot_to_json(snapshot: BaseModel) -> bytes:
    """Serialize a snapshot to JSON bytes."""
    return orjson.dumps(snapshot.model_dump(mode="json"), option=orjson.OPT_NON_STR_KEYS)


def validate_snapshot(model: type[Snapshot], data: bytes | str) -> Snapshot:
    """Parse stored bytes into ``model``.

    Raises:
        SnapshotVersionError: the payload is tagged with a different schema version
        ValidationError: the payload does not have the current shape
        orjson.JSONDecodeError: the payload is not JSON
    """
    raw = orjson.loads(data)
    if not isinstance(raw, dict):
        raise SnapshotVersionError(None)
    version = raw.get("schema_version")
    if version != SCHEMA_VERSION:
        raise SnapshotVersionError(version)
    return model.model_validate(raw)


__all__ = [
    "SCHEMA_VERSION",
    "TIE",
    "BoardGameSnapshot",
    "BoardPhase",
    "BoardPlayerSnapshot",
    "CardSnapshot",
    "ChallengeSnapshot",
    "ChallengeSource",
    "EngineSnapshot",
    "GameSnapshot",
    "MarkerType",
    "MatchGameSnapshot",
    "MatchPhase",
    "MatchPlayerSnapshot",
    "PointGainSnapshot",
    "SiteSnapshot",
    "SnapshotVersionError",
    "TurnPhase",
    "ValidationError",
    "VolumeSettings",
    "Winner",
    "snapshot_to_json",
    "validate_snapshot",
]
