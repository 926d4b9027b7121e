"""Seeded randomness helpers shared by both games."""

from __future__ import annotations

import random
from typing import Generic, List, MutableSequence, Optional, Sequence, TypeVar

T = TypeVar("T")


def build_rng(*, seed: int | None = None) -> random.Random:
    """Return a deterministic random generator."""
    return random.Random(seed)


def shuffle(items: MutableSequence[T], rng: random.Random) -> MutableSequence[T]:
    """Shuffle ``items`` in place with Fisher-Yates and return the same sequence.

    Args:
        items: Sequence to permute
        rng: Random number generator

    Returns:
        The shuffled sequence (same object as ``items``)
    """
    for i in range(len(items) - 1, 0, -1):
        j = rng.randint(0, i)
        items[i], items[j] = items[j], items[i]
    return items


def shuffled_copy(items: Sequence[T], rng: random.Random) -> List[T]:
    """Return a shuffled copy, leaving ``items`` untouched."""
    return list(shuffle(list(items), rng))


class Deck(Generic[T]):
    """Deal items without replacement, reshuffling a fresh copy once a lap is exhausted.

    No item repeats within one lap. Across laps nothing is excluded, so the first
    draw of a new lap may equal the last draw of the previous one.
    """

    def __init__(self, source: Sequence[T], rng: random.Random) -> None:
        self._source: List[T] = list(source)
        self._rng = rng
        self._order: List[T] = shuffled_copy(self._source, rng)
        self._cursor = 0
        self.laps = 0

    def __len__(self) -> int:
        return len(self._source)

    @property
    def order(self) -> List[T]:
        """Current lap order (a copy)."""
        return list(self._order)

    def draw(self) -> Optional[T]:
        if not self._source:
            return None
        if self._cursor >= len(self._order):
            self.reshuffle()
            self.laps += 1
        item = self._order[self._cursor]
        self._cursor += 1
        return item

    def reshuffle(self) -> None:
        self._order = shuffled_copy(self._source, self._rng)
        self._cursor = 0
