"""Durable key-value slots for game snapshots and settings.

Nothing here may block play: unreadable or stale data reads as "no saved
state", and failed writes are logged and dropped.
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Callable, Dict, Generic, Optional, Protocol, Type, TypeVar

import orjson
import structlog
from pydantic import BaseModel, ValidationError

from .schemas import (
    BoardGameSnapshot,
    MatchGameSnapshot,
    SnapshotVersionError,
    VolumeSettings,
    snapshot_to_json,
    validate_snapshot,
)

LOGGER = structlog.get_logger(__name__)

MATCH_SLOT = "matchGame"
BOARD_SLOT = "snakesLadders"
VOLUME_SLOT = "gameVolumeSettings"

_KEY_PATTERN = re.compile(r"^[A-Za-z0-9_.-]+$")

M = TypeVar("M", bound=BaseModel)


class StorageError(RuntimeError):
    """Raised by slot stores when the underlying storage fails."""


class SlotStore(Protocol):
    """Raw bytes keyed by slot name."""

    def read(self, key: str) -> Optional[bytes]:
        ...

    def write(self, key: str, data: bytes) -> None:
        ...

    def delete(self, key: str) -> None:
        ...


class MemorySlotStore:
    """In-process store, used by tests and headless runs."""

    def __init__(self) -> None:
        self.data: Dict[str, bytes] = {}

    def read(self, key: str) -> Optional[bytes]:
        return self.data.get(key)

    def write(self, key: str, data: bytes) -> None:
        self.data[key] = data

    def delete(self, key: str) -> None:
        self.data.pop(key, None)


class FileSlotStore:
    """One ``<key>.json`` file per slot under ``root``."""

    def __init__(self, root: Path | str) -> None:
        self.root = Path(root)

    def path_for(self, key: str) -> Path:
        if not _KEY_PATTERN.match(key):
            raise ValueError(f"Invalid slot key {key!r}")
        return self.root / f"{key}.json"

    def read(self, key: str) -> Optional[bytes]:
        path = self.path_for(key)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise StorageError(f"Cannot read {path}: {exc}") from exc

    def write(self, key: str, data: bytes) -> None:
        path = self.path_for(key)
        tmp = path.with_suffix(".json.tmp")
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            tmp.write_bytes(data)
            os.replace(tmp, path)
        except OSError as exc:
            raise StorageError(f"Cannot write {path}: {exc}") from exc

    def delete(self, key: str) -> None:
        path = self.path_for(key)
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            raise StorageError(f"Cannot delete {path}: {exc}") from exc


class SaveSlot(Generic[M]):
    """Typed view over one store key.

    ``load`` returns ``None`` for a missing slot, a storage failure, or a payload
    that does not validate against the current schema; invalid payloads are also
    removed so the next start is a cold one.
    """

    def __init__(self, store: SlotStore, key: str, model: Type[M]) -> None:
        self.store = store
        self.key = key
        self.model = model
        self.last_discard_reason: Optional[str] = None

    def load(self) -> Optional[M]:
        self.last_discard_reason = None
        try:
            raw = self.store.read(self.key)
        except StorageError as exc:
            LOGGER.warning("save.read_failed", slot=self.key, error=str(exc))
            return None
        if raw is None:
            return None
        try:
            return self._parse(raw)
        except (SnapshotVersionError, ValidationError, orjson.JSONDecodeError) as exc:
            self.last_discard_reason = type(exc).__name__
            LOGGER.warning("save.discarded", slot=self.key, reason=self.last_discard_reason, error=str(exc))
            self.clear()
            return None

    def _parse(self, raw: bytes) -> M:
        if "schema_version" in self.model.model_fields:
            return validate_snapshot(self.model, raw)  # type: ignore[arg-type,return-value]
        return self.model.model_validate(orjson.loads(raw))

    def save(self, value: M) -> bool:
        try:
            self.store.write(self.key, snapshot_to_json(value))
        except StorageError as exc:
            LOGGER.warning("save.write_dropped", slot=self.key, error=str(exc))
            return False
        return True

    def clear(self) -> None:
        try:
            self.store.delete(self.key)
        except StorageError as exc:
            LOGGER.warning("save.clear_failed", slot=self.key, error=str(exc))


def match_slot(store: SlotStore) -> SaveSlot[MatchGameSnapshot]:
    return SaveSlot(store, MATCH_SLOT, MatchGameSnapshot)


def board_slot(store: SlotStore) -> SaveSlot[BoardGameSnapshot]:
    return SaveSlot(store, BOARD_SLOT, BoardGameSnapshot)


def volume_slot(store: SlotStore) -> SaveSlot[VolumeSettings]:
    return SaveSlot(store, VOLUME_SLOT, VolumeSettings)


def autosave(slot: SaveSlot[M]) -> Callable[[M], None]:
    """Commit hook that writes every snapshot handed over by a game."""

    def _on_commit(snapshot: M) -> None:
        slot.save(snapshot)

    return _on_commit
