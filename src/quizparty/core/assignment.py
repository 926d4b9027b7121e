"""Question assignment and rotation across challenge sites.

A challenge site is a match-game card position or a board-game cell. Each site
holds one question plus the wrong-answer history for that question.
"""

from __future__ import annotations

import random
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional, Set

import structlog

from ..utils.rng import Deck
from .questions import Question, QuestionPool
from .schemas import EngineSnapshot, SiteSnapshot

LOGGER = structlog.get_logger(__name__)


@dataclass
class SiteState:
    """Question state of a single challenge site."""

    question_id: int
    wrong_options: List[int] = field(default_factory=list)
    wrong_attempts: int = 0
    asked: bool = False
    revealed_clue_indices: List[int] = field(default_factory=list)


@dataclass(frozen=True)
class RotationPolicy:
    """When a wrong answer replaces a site's question.

    ``wrong_threshold`` counts cumulative wrong answers at the site; 1 means the
    question is replaced right after the first wrong answer.
    """

    name: str
    wrong_threshold: int

    def __post_init__(self) -> None:
        if self.wrong_threshold < 1:
            raise ValueError("wrong_threshold must be at least 1")

    def should_rotate(self, wrong_attempts: int) -> bool:
        return wrong_attempts >= self.wrong_threshold


class AssignmentEngine:
    """Maps challenge sites to questions and rotates them.

    ``used_question_ids`` is append-only for the lifetime of a game: it records
    every question that has been asked at any site and only shrinks on ``reset``.
    """

    def __init__(self, pool: QuestionPool, *, rng: random.Random) -> None:
        self.pool = pool
        self.rng = rng
        self.deck: Deck[int] = Deck(pool.ids, rng)
        self.sites: Dict[int, SiteState] = {}
        self.used_question_ids: List[int] = []

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def __contains__(self, site: object) -> bool:
        return site in self.sites

    def question_for(self, site: int) -> Optional[Question]:
        state = self.sites.get(site)
        if state is None:
            return None
        return self.pool.get_by_id(state.question_id)

    def disabled_options(self, site: int) -> List[int]:
        state = self.sites.get(site)
        return sorted(state.wrong_options) if state else []

    def active_question_ids(self, *, exclude_site: Optional[int] = None) -> Set[int]:
        return {state.question_id for key, state in self.sites.items() if key != exclude_site}

    # ------------------------------------------------------------------
    # Assignment
    # ------------------------------------------------------------------

    def assign_initial(self, sites: Iterable[int]) -> None:
        """Give every site a question, maximising uniqueness across the board.

        Sites already holding a question keep it; entries for sites outside
        ``sites`` are dropped. When the pool is smaller than the number of sites,
        questions wrap around and duplicates are accepted.
        """
        wanted = sorted(set(sites))
        wanted_set = set(wanted)
        for stale in [key for key in self.sites if key not in wanted_set]:
            del self.sites[stale]

        order = self.deck.order
        if not order:
            return
        assigned = self.active_question_ids()
        cursor = 0
        for site in wanted:
            if site in self.sites:
                continue
            chosen: Optional[int] = None
            for offset in range(len(order)):
                candidate = order[(cursor + offset) % len(order)]
                if candidate not in assigned:
                    chosen = candidate
                    cursor = (cursor + offset + 1) % len(order)
                    break
            if chosen is None:
                chosen = order[cursor]
                cursor = (cursor + 1) % len(order)
                LOGGER.debug("assignment.duplicate_accepted", site=site, question_id=chosen)
            self.sites[site] = SiteState(question_id=chosen)
            assigned.add(chosen)

    def ensure_site(self, site: int) -> SiteState:
        """Return the site's state, assigning a question lazily on first visit."""
        state = self.sites.get(site)
        if state is None:
            state = SiteState(question_id=self._select_question(site))
            self.sites[site] = state
        return state

    def reassign(self, site: int) -> SiteState:
        """Replace the site's question and clear its wrong-answer history."""
        previous = self.sites.get(site)
        state = SiteState(question_id=self._select_question(site))
        self.sites[site] = state
        LOGGER.debug(
            "assignment.rotated",
            site=site,
            previous=previous.question_id if previous else None,
            question_id=state.question_id,
        )
        return state

    def discard(self, site: int) -> None:
        self.sites.pop(site, None)

    def reset(self) -> None:
        self.sites.clear()
        self.used_question_ids.clear()
        self.deck.reshuffle()

    def _select_question(self, site: int) -> int:
        current = self.sites[site].question_id if site in self.sites else None
        elsewhere = self.active_question_ids(exclude_site=site)
        used = set(self.used_question_ids)

        # within each tier a different question is preferred over keeping the current one
        tiers: List[Callable[[int], bool]] = [
            lambda qid: qid != current and qid not in used and qid not in elsewhere,
            lambda qid: qid not in used and qid not in elsewhere,
            lambda qid: qid != current and qid not in elsewhere,
            lambda qid: qid not in elsewhere,
            lambda qid: qid != current,
        ]
        order = self.deck.order
        for accept in tiers:
            for qid in order:
                if accept(qid):
                    return qid
        drawn = self.deck.draw()
        if drawn is None:
            raise LookupError("question pool is empty")
        return drawn

    # ------------------------------------------------------------------
    # Answer bookkeeping
    # ------------------------------------------------------------------

    def mark_asked(self, site: int) -> None:
        """Record that the site's question was put to a committed answerer."""
        state = self.sites.get(site)
        if state is None or state.asked:
            return
        state.asked = True
        if state.question_id not in self.used_question_ids:
            self.used_question_ids.append(state.question_id)

    def record_correct(self, site: int) -> SiteState:
        return self.reassign(site)

    def record_wrong(self, site: int, option_index: Optional[int], *, policy: RotationPolicy) -> bool:
        """Mark ``option_index`` wrong at ``site``; return True if the question rotated.

        A wrong option stays disabled at the site until its question is replaced.
        """
        state = self.ensure_site(site)
        if option_index is not None and option_index not in state.wrong_options:
            state.wrong_options.append(option_index)
        state.wrong_attempts += 1
        if policy.should_rotate(state.wrong_attempts):
            self.reassign(site)
            return True
        return False

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def snapshot(self) -> EngineSnapshot:
        return EngineSnapshot(
            sites={
                site: SiteSnapshot(
                    question_id=state.question_id,
                    wrong_options=list(state.wrong_options),
                    wrong_attempts=state.wrong_attempts,
                    asked=state.asked,
                    revealed_clue_indices=list(state.revealed_clue_indices),
                )
                for site, state in self.sites.items()
            },
            used_question_ids=list(self.used_question_ids),
        )

    def restore(self, snapshot: EngineSnapshot) -> None:
        self.sites = {
            site: SiteState(
                question_id=entry.question_id,
                wrong_options=list(entry.wrong_options),
                wrong_attempts=entry.wrong_attempts,
                asked=entry.asked,
                revealed_clue_indices=list(entry.revealed_clue_indices),
            )
            for site, entry in snapshot.sites.items()
        }
        self.used_question_ids = list(snapshot.used_question_ids)

    def reveal_clue(self, site: int, *, limit: int) -> bool:
        """Reveal one random character of the site's answer; True if a new one was revealed."""
        state = self.ensure_site(site)
        if len(state.revealed_clue_indices) >= limit:
            return False
        question = self.pool.get_by_id(state.question_id)
        answer = question.answer_text if question else ""
        candidates = [
            index
            for index, char in enumerate(answer)
            if char.isascii() and char.isalnum() and index not in state.revealed_clue_indices
        ]
        if not candidates:
            return False
        state.revealed_clue_indices.append(self.rng.choice(candidates))
        return True
