"""Seeded headless auto-play of both games.

Drives the real state machines with simulated players and a virtual clock, so a
whole game runs instantly and reproducibly for a given seed.
"""

from __future__ import annotations

import random
from typing import Optional

import structlog

from ..core.board_game import BoardGame, CommitHook as BoardCommitHook
from ..core.clock import ManualScheduler
from ..core.events import EventBus
from ..core.match_game import CommitHook as MatchCommitHook, MatchGame
from ..core.questions import QuestionPool
from ..core.schemas import BoardPhase
from ..utils.rng import build_rng

LOGGER = structlog.get_logger(__name__)

MAX_MATCH_ACTIONS = 2000
CONTINUE_PROBABILITY = 0.7
CLUE_PROBABILITY = 0.2
DECLINE_PROBABILITY = 0.3
SHIELD_PROBABILITY = 0.5


def _players_rng(seed: Optional[int]) -> random.Random:
    # simulated players draw from their own stream so game shuffles stay reproducible
    return build_rng(seed=None if seed is None else seed + 1)


def simulate_match(
    pool: QuestionPool,
    *,
    seed: Optional[int] = None,
    accuracy: float = 0.7,
    events: Optional[EventBus] = None,
    on_commit: Optional[MatchCommitHook] = None,
    max_actions: int = MAX_MATCH_ACTIONS,
) -> MatchGame:
    """Play a match game to completion; force-ends it after ``max_actions`` card clicks."""
    scheduler = ManualScheduler()
    players = _players_rng(seed)
    game = MatchGame(pool, rng=build_rng(seed=seed), scheduler=scheduler, events=events, on_commit=on_commit)
    game.set_player_names(*game.rules.default_names)
    LOGGER.info("simulation.match_start", seed=seed, accuracy=accuracy)

    actions = 0
    while not game.completed and actions < max_actions:
        if game.continue_choice_pending:
            if players.random() < CONTINUE_PROBABILITY:
                game.continue_turn()
            else:
                game.end_turn()
            continue

        candidates = [index for index, card in enumerate(game.cards) if not card.flipped and not card.matched]
        if not candidates:
            break
        actions += 1
        if not game.click_card(players.choice(candidates)):
            scheduler.advance(game.rules.continue_choice_delay)
            continue
        if players.random() < CLUE_PROBABILITY:
            game.reveal_clue()
        if players.random() < accuracy:
            game.answer_correct()
        else:
            game.answer_wrong()
        scheduler.advance(game.rules.continue_choice_delay)

    if not game.completed:
        game.force_end()
    LOGGER.info("simulation.match_end", winner=game.winner, actions=actions, elapsed=game.elapsed_seconds)
    return game


def simulate_board(
    pool: QuestionPool,
    *,
    seed: Optional[int] = None,
    accuracy: float = 0.7,
    max_turns: int = 200,
    events: Optional[EventBus] = None,
    on_commit: Optional[BoardCommitHook] = None,
) -> BoardGame:
    """Play board turns until every team finishes or ``max_turns`` is reached."""
    players = _players_rng(seed)
    game = BoardGame(pool, rng=build_rng(seed=seed), events=events, on_commit=on_commit)
    game.set_player_names(list(game.rules.default_names))
    LOGGER.info("simulation.board_start", seed=seed, accuracy=accuracy, max_turns=max_turns)

    turns = 0
    while game.phase is BoardPhase.PLAYING and turns < max_turns:
        turns += 1
        game.set_steps(players.randint(game.rules.min_steps, game.rules.max_steps))
        if not game.advance_selected():
            break

        challenge = game.challenge
        if challenge is not None:
            if challenge.answerer_id is None:
                if players.random() < DECLINE_PROBABILITY:
                    game.close_challenge()
                    continue
                game.decide_answerer(challenge.landed_player_id)
            question = game.current_question
            if question is None:
                break
            open_options = [i for i in range(len(question.options)) if i not in game.disabled_options]
            wrong = [i for i in open_options if not question.is_correct(i)]
            if players.random() < accuracy or not wrong:
                choice = question.correct_index if question.correct_index in open_options else open_options[0]
            else:
                choice = players.choice(wrong)
            game.submit_answer(choice)

        if game.reward_player_id is not None:
            if players.random() < SHIELD_PROBABILITY:
                game.claim_shield_reward()
            else:
                game.dismiss_reward()

    LOGGER.info(
        "simulation.board_end",
        turns=turns,
        completed=game.phase is BoardPhase.COMPLETED,
        ranking=[p.id for p in game.ranking()],
    )
    return game
