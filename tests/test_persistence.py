import random

import orjson
import pytest
from conftest import make_board_pool, make_match_pool, set_board_layout, twin_indices

from quizparty.core.board_game import BoardGame
from quizparty.core.clock import ManualScheduler
from quizparty.core.match_game import MatchGame
from quizparty.core.persistence import (
    MATCH_SLOT,
    FileSlotStore,
    MemorySlotStore,
    StorageError,
    autosave,
    board_slot,
    match_slot,
    volume_slot,
)
from quizparty.core.schemas import (
    SCHEMA_VERSION,
    BoardGameSnapshot,
    MarkerType,
    MatchGameSnapshot,
    MatchPhase,
    SnapshotVersionError,
    VolumeSettings,
    snapshot_to_json,
    validate_snapshot,
)


class BrokenStore:
    def read(self, key):
        raise StorageError("disk unplugged")

    def write(self, key, data):
        raise StorageError("disk full")

    def delete(self, key):
        raise StorageError("read only")


def test_in_progress_match_round_trips(match_game, scheduler):
    first, _ = twin_indices(match_game, 1)
    match_game.click_card(first)
    match_game.answer_correct()
    scheduler.advance(3)
    assert match_game.continue_turn()
    assert match_game.click_card(twin_indices(match_game, 2)[0])
    assert match_game.reveal_clue()

    restored_snapshot = validate_snapshot(MatchGameSnapshot, snapshot_to_json(match_game.snapshot()))
    assert restored_snapshot.model_dump() == match_game.snapshot().model_dump()

    clone = MatchGame(make_match_pool(), rng=random.Random(99), scheduler=ManualScheduler())
    clone.restore(restored_snapshot)
    assert clone.snapshot() == match_game.snapshot()
    assert clone.current_question == match_game.current_question
    assert clone.timer.running


def test_completed_match_round_trips(match_game):
    match_game.force_end()
    snapshot = validate_snapshot(MatchGameSnapshot, snapshot_to_json(match_game.snapshot()))
    assert snapshot.phase is MatchPhase.COMPLETED
    assert snapshot.winner == match_game.winner

    clone = MatchGame(make_match_pool(), scheduler=ManualScheduler())
    clone.restore(snapshot)
    assert not clone.timer.running
    assert clone.snapshot().model_dump() == snapshot.model_dump()


def test_board_with_open_challenge_round_trips(board_game):
    set_board_layout(board_game, {4: MarkerType.OPTIONAL})
    board_game.set_steps(3)
    board_game.advance_selected()
    board_game.decide_answerer(2)
    board_game.grant_shield(3)

    snapshot = validate_snapshot(BoardGameSnapshot, snapshot_to_json(board_game.snapshot()))
    clone = BoardGame(make_board_pool(), rng=random.Random(1))
    clone.restore(snapshot)

    assert clone.snapshot() == board_game.snapshot()
    assert clone.challenge.answerer_id == 2
    assert clone.current_question == board_game.current_question
    assert clone.submit_answer(clone.current_question.correct_index) is True


def test_stale_schema_version_is_rejected(match_game):
    payload = orjson.loads(snapshot_to_json(match_game.snapshot()))
    payload["schema_version"] = SCHEMA_VERSION - 1
    with pytest.raises(SnapshotVersionError):
        validate_snapshot(MatchGameSnapshot, orjson.dumps(payload))


def test_slot_discards_and_clears_stale_snapshot(match_game):
    store = MemorySlotStore()
    payload = orjson.loads(snapshot_to_json(match_game.snapshot()))
    payload["schema_version"] = 1
    store.write(MATCH_SLOT, orjson.dumps(payload))

    slot = match_slot(store)
    assert slot.load() is None
    assert slot.last_discard_reason == "SnapshotVersionError"
    assert MATCH_SLOT not in store.data


@pytest.mark.parametrize("raw", [b"{not json", b"[]", b'{"schema_version": 2, "phase": "NOPE"}'])
def test_slot_discards_corrupt_payloads(raw):
    store = MemorySlotStore()
    store.write(MATCH_SLOT, raw)
    slot = match_slot(store)
    assert slot.load() is None
    assert slot.last_discard_reason is not None
    assert store.data == {}


def test_missing_slot_loads_as_none():
    slot = board_slot(MemorySlotStore())
    assert slot.load() is None
    assert slot.last_discard_reason is None


def test_storage_failures_never_raise(match_game):
    slot = match_slot(BrokenStore())
    assert slot.load() is None
    assert slot.save(match_game.snapshot()) is False
    slot.clear()


def test_file_store_writes_atomically(tmp_path, match_game):
    store = FileSlotStore(tmp_path / "saves")
    slot = match_slot(store)
    assert slot.save(match_game.snapshot())

    path = store.path_for(MATCH_SLOT)
    assert path.exists()
    assert not path.with_suffix(".json.tmp").exists()
    assert slot.load().model_dump() == match_game.snapshot().model_dump()

    slot.clear()
    assert not path.exists()
    slot.clear()


def test_file_store_rejects_unsafe_keys(tmp_path):
    with pytest.raises(ValueError):
        FileSlotStore(tmp_path).path_for("../escape")


def test_autosave_persists_every_commit(scheduler):
    store = MemorySlotStore()
    slot = match_slot(store)
    game = MatchGame(make_match_pool(), scheduler=scheduler, on_commit=autosave(slot))
    game.set_player_names("A", "B")
    game.click_card(0)
    game.answer_wrong()

    saved = slot.load()
    assert saved.model_dump() == game.snapshot().model_dump()
    assert saved.attempts == 1


def test_volume_settings_round_trip_and_clamp():
    store = MemorySlotStore()
    slot = volume_slot(store)
    assert slot.save(VolumeSettings(bgm_volume=1.7, sfx_volume=-0.2))
    assert slot.load() == VolumeSettings(bgm_volume=1.0, sfx_volume=0.0)


def test_invalid_volume_settings_are_discarded():
    store = MemorySlotStore()
    slot = volume_slot(store)
    store.write(slot.key, b'{"bgm_volume": "loud"}')
    assert slot.load() is None
    assert store.data == {}
