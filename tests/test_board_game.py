import random

import pytest
from conftest import make_board_pool, set_board_layout

from quizparty.core.board_game import (
    BoardGame,
    GameStateError,
    board_rows,
    generate_checkpoints,
    generate_markers,
    row_cells,
)
from quizparty.core.events import EventKind
from quizparty.core.schemas import BoardPhase, ChallengeSource, MarkerType


def wrong_option(game: BoardGame) -> int:
    question = game.current_question
    return next(i for i in range(4) if i != question.correct_index and i not in game.disabled_options)


def test_checkpoints_sit_on_alternate_interior_rows():
    assert generate_checkpoints(7) == [14, 28, 42]
    assert generate_checkpoints(3) == [6]
    assert generate_checkpoints(2) == []


def test_board_rows_zigzag():
    rows = board_rows(3)
    assert rows == [[7, 8, 9], [6, 5, 4], [1, 2, 3]]
    assert row_cells(7, 1) == [8, 9, 10, 11, 12, 13, 14]


@pytest.mark.parametrize("seed", range(20))
def test_every_row_gets_an_optional_and_a_forced_marker(seed):
    checkpoints = generate_checkpoints(7)
    markers = generate_markers(7, checkpoints, random.Random(seed))

    assert 1 not in markers and 49 not in markers
    assert not set(checkpoints) & set(markers)
    for row in range(7):
        types = {markers[cell] for cell in row_cells(7, row) if cell in markers}
        assert MarkerType.OPTIONAL in types
        assert MarkerType.FORCED in types


def test_supplementary_markers_take_a_quarter_of_leftover_cells():
    markers = generate_markers(7, [14, 28, 42], random.Random(3))
    values = list(markers.values())
    # 44 eligible cells: 14 guaranteed, 30 left over, 7 supplementary
    assert len(markers) == 21
    assert values.count(MarkerType.OPTIONAL) == 10
    assert values.count(MarkerType.FORCED) == 11


def test_single_eligible_cell_rows_alternate_marker_type():
    assert generate_markers(2, [], random.Random(0)) == {2: MarkerType.OPTIONAL, 3: MarkerType.FORCED}


def test_new_game_assigns_unique_questions_to_all_challenge_cells(board_game):
    assert board_game.phase is BoardPhase.PLAYING
    assert [p.position for p in board_game.players] == [1, 1, 1]
    assert board_game.selected_player_id == 1
    assert sorted(board_game.engine.sites) == board_game.challenge_cells
    question_ids = [state.question_id for state in board_game.engine.sites.values()]
    assert len(set(question_ids)) == len(question_ids)


def test_names_must_cover_three_players():
    game = BoardGame(make_board_pool())
    with pytest.raises(GameStateError):
        game.set_player_names(["A", "B"])
    with pytest.raises(GameStateError):
        game.select_player(9)


def test_steps_are_clamped(board_game):
    assert board_game.set_steps(10) == 6
    assert board_game.increment_steps() == 6
    assert board_game.set_steps(0) == 1
    assert board_game.decrement_steps() == 1
    assert board_game.increment_steps() == 2


def test_plain_move_hands_off_turn(board_game, recorder):
    set_board_layout(board_game, {})
    board_game.set_steps(3)
    assert board_game.advance_selected()

    assert board_game.player(1).position == 4
    assert board_game.challenge is None
    assert board_game.selected_player_id == 2
    assert EventKind.PLAYER_MOVED in recorder.kinds()


def test_forced_marker_challenges_landing_player(board_game, recorder):
    set_board_layout(board_game, {4: MarkerType.FORCED})
    board_game.set_steps(3)
    board_game.advance_selected()

    challenge = board_game.challenge
    assert challenge.source is ChallengeSource.MARKER
    assert challenge.answerer_id == 1
    assert board_game.engine.sites[4].asked
    asked_id = board_game.engine.sites[4].question_id
    assert asked_id in board_game.engine.used_question_ids
    assert not board_game.advance_selected()

    assert board_game.submit_answer(board_game.current_question.correct_index) is True
    assert board_game.challenge is None
    assert board_game.selected_player_id == 2
    assert board_game.reward_player_id == 1
    assert board_game.engine.sites[4].question_id != asked_id
    assert EventKind.REWARD_OFFERED in recorder.kinds()

    assert board_game.claim_shield_reward()
    assert board_game.player(1).shield == 1
    assert board_game.reward_player_id is None


def test_optional_marker_waits_for_answerer(board_game):
    set_board_layout(board_game, {4: MarkerType.OPTIONAL})
    board_game.set_steps(3)
    board_game.advance_selected()

    assert board_game.challenge.answerer_id is None
    assert not board_game.engine.sites[4].asked
    assert board_game.submit_answer(0) is None

    assert board_game.decide_answerer(3)
    assert not board_game.decide_answerer(2)
    assert board_game.engine.sites[4].asked
    assert board_game.submit_answer(wrong_option(board_game)) is False
    assert board_game.reward_player_id is None
    # turn passes after the landing player, not the answerer
    assert board_game.selected_player_id == 2


def test_declining_optional_challenge_passes_turn(board_game, recorder):
    set_board_layout(board_game, {4: MarkerType.OPTIONAL})
    board_game.set_steps(3)
    board_game.advance_selected()

    assert board_game.close_challenge()
    assert board_game.challenge is None
    assert board_game.selected_player_id == 2
    assert EventKind.CHALLENGE_DECLINED in recorder.kinds()
    assert not board_game.close_challenge()


def test_forced_challenge_cannot_be_declined(board_game):
    set_board_layout(board_game, {4: MarkerType.FORCED})
    board_game.set_steps(3)
    board_game.advance_selected()
    assert not board_game.close_challenge()
    assert board_game.challenge is not None


def test_marker_question_rotates_after_two_wrong_answers(board_game):
    set_board_layout(board_game, {4: MarkerType.FORCED})
    board_game.set_steps(3)
    board_game.advance_selected()
    original = board_game.current_question.id

    first_wrong = wrong_option(board_game)
    assert board_game.submit_answer(first_wrong) is False
    assert board_game.engine.question_for(4).id == original
    assert board_game.engine.disabled_options(4) == [first_wrong]

    board_game.move_player(2, 3)
    assert board_game.maybe_trigger_marker(2)
    assert board_game.challenge.answerer_id == 2
    assert board_game.submit_answer(first_wrong) is None
    assert board_game.submit_answer(wrong_option(board_game)) is False

    assert board_game.engine.question_for(4).id != original
    assert board_game.engine.disabled_options(4) == []


def test_checkpoint_fires_once_per_player(board_game):
    set_board_layout(board_game, {})
    board_game.move_player(1, 11)
    board_game.set_steps(3)
    board_game.advance_selected()

    challenge = board_game.challenge
    assert challenge.source is ChallengeSource.CHECKPOINT
    assert challenge.cell == 14
    assert challenge.answerer_id == 1
    assert board_game.has_visited_checkpoint(1, 14)

    original = board_game.current_question.id
    assert board_game.submit_answer(wrong_option(board_game)) is False
    assert board_game.engine.question_for(14).id != original

    board_game.move_player(1, -5)
    assert board_game.select_player(1)
    board_game.set_steps(6)
    board_game.advance_selected()
    assert board_game.player(1).position == 16
    assert board_game.challenge is None

    board_game.move_player(2, 12)
    board_game.select_player(2)
    board_game.set_steps(1)
    board_game.advance_selected()
    assert board_game.challenge.cell == 14
    assert board_game.challenge.landed_player_id == 2


def test_crossed_checkpoint_scans_in_travel_direction(board_game):
    assert board_game.crossed_checkpoint(10, 20, 1) == 14
    assert board_game.crossed_checkpoint(20, 10, 1) == 14
    assert board_game.crossed_checkpoint(10, 14, 1) == 14
    assert board_game.crossed_checkpoint(14, 20, 1) is None
    assert board_game.crossed_checkpoint(12, 12, 1) is None
    assert board_game.crossed_checkpoint(10, 30, 1) == 14

    assert board_game.trigger_checkpoint(1, 14)
    assert board_game.crossed_checkpoint(10, 30, 1) == 28
    assert board_game.crossed_checkpoint(10, 30, 2) == 14


def test_rotation_avoids_questions_active_elsewhere(board_game):
    set_board_layout(board_game, {4: MarkerType.FORCED})
    for _ in range(10):
        board_game.move_player(1, 4 - board_game.player(1).position)
        assert board_game.maybe_trigger_marker(1)
        board_game.submit_answer(board_game.current_question.correct_index)
        active = board_game.engine.active_question_ids(exclude_site=4)
        assert board_game.engine.question_for(4).id not in active


def test_finishing_ranks_players_and_completes_game(board_game, recorder):
    set_board_layout(board_game, {})
    for player in board_game.players:
        board_game.move_player(player.id, 46)
    board_game.set_steps(6)

    for expected_rank in (1, 2, 3):
        player_id = board_game.selected_player_id
        board_game.advance_selected()
        assert board_game.player(player_id).position == 49
        assert board_game.player(player_id).rank == expected_rank

    assert board_game.phase is BoardPhase.COMPLETED
    assert board_game.selected_player_id is None
    assert [p.rank for p in board_game.ranking()] == [1, 2, 3]
    assert len(recorder.of(EventKind.PLAYER_FINISHED)) == 3
    assert EventKind.GAME_FINISHED in recorder.kinds()
    assert not board_game.advance_selected()


def test_next_active_player_skips_finished(board_game):
    board_game.players[1].finished = True
    assert board_game.next_active_player_id(1) == 3
    assert board_game.next_active_player_id(3) == 1
    for player in board_game.players:
        player.finished = True
    assert board_game.next_active_player_id(1) is None


def test_move_player_clamps_to_board(board_game):
    assert board_game.move_player(1, -10) == 1
    assert board_game.move_player(2, 100) == 49
    assert board_game.player(2).finished


def test_shield_hooks(board_game, recorder):
    assert board_game.grant_shield(2) == 1
    assert board_game.absorb_hit(2)
    assert not board_game.absorb_hit(2)
    assert board_game.player(2).shield == 0
    assert EventKind.SHIELD_BROKEN in recorder.kinds()
    assert not board_game.claim_shield_reward()
    assert not board_game.dismiss_reward()


def test_reset_returns_to_name_input_with_fresh_board(board_game):
    board_game.move_player(1, 11)
    board_game.set_steps(3)
    board_game.advance_selected()
    board_game.submit_answer(board_game.current_question.correct_index)

    board_game.reset()
    assert board_game.phase is BoardPhase.NAME_INPUT
    assert [p.position for p in board_game.players] == [1, 1, 1]
    assert board_game.visited_checkpoints == {}
    assert board_game.engine.used_question_ids == []
    assert board_game.reward_player_id is None
    assert board_game.selected_player_id is None
    assert sorted(board_game.engine.sites) == board_game.challenge_cells
    assert not board_game.advance_selected()


def test_names_cannot_restart_a_finished_game_without_reset(board_game):
    for player in board_game.players:
        board_game.move_player(player.id, 48)
    assert board_game.phase is BoardPhase.COMPLETED

    with pytest.raises(GameStateError):
        board_game.set_player_names(["A", "B", "C"])
    assert board_game.phase is BoardPhase.COMPLETED

    board_game.reset()
    board_game.set_player_names(["A", "B", "C"])
    assert board_game.phase is BoardPhase.PLAYING
    assert board_game.selected_player_id == 1


def test_answerer_needs_an_open_challenge(board_game):
    assert board_game.challenge is None
    assert not board_game.decide_answerer(1)
    assert board_game.submit_answer(0) is None
