"""Question records, question-file parsers and the in-memory question pool."""

from __future__ import annotations

import random
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, Iterator, List, Optional, Sequence, Tuple

import structlog

LOGGER = structlog.get_logger(__name__)

FIELD_SEPARATOR = "|"
MATCH_MIN_FIELDS = 2
BOARD_MIN_FIELDS = 6

ANSWER_KEYS: Dict[str, int] = {
    "A": 0,
    "B": 1,
    "C": 2,
    "D": 3,
    "1": 0,
    "2": 1,
    "3": 2,
    "4": 3,
}


class QuestionVariant(str, Enum):
    """Line formats of the two question files."""

    MATCH = "match"
    BOARD = "board"


class QuestionParseError(ValueError):
    """Raised when a question line cannot be parsed."""


@dataclass(frozen=True)
class Question:
    """A loaded question; immutable once loaded.

    Match-game questions carry ``answer_text`` and optional ``clues``; board-game
    questions carry four ``options`` and a ``correct_index``.
    """

    id: int
    question_text: str
    options: Tuple[str, ...] = ()
    correct_index: Optional[int] = None
    answer_text: str = ""
    clues: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def is_multiple_choice(self) -> bool:
        return self.correct_index is not None

    def is_correct(self, option_index: int) -> bool:
        return self.correct_index is not None and option_index == self.correct_index


def _split_fields(line: str) -> List[str]:
    return [part.strip() for part in line.split(FIELD_SEPARATOR) if part.strip()]


def parse_match_line(line: str, question_id: int) -> Question:
    """Parse ``Question | Answer | Clue 1 | Clue 2 | ...``."""
    parts = _split_fields(line)
    if len(parts) < MATCH_MIN_FIELDS:
        raise QuestionParseError(
            f"expected at least {MATCH_MIN_FIELDS} fields ('question | answer'), got {len(parts)}"
        )
    question, answer, *clues = parts
    return Question(id=question_id, question_text=question, answer_text=answer, clues=tuple(clues))


def parse_board_line(line: str, question_id: int) -> Question:
    """Parse ``Question | A | B | C | D | Key`` where Key is A-D or 1-4."""
    parts = _split_fields(line)
    if len(parts) < BOARD_MIN_FIELDS:
        raise QuestionParseError(f"expected {BOARD_MIN_FIELDS} fields, got {len(parts)}")
    question, a, b, c, d, key = parts[:BOARD_MIN_FIELDS]
    correct_index = ANSWER_KEYS.get(key.upper())
    if correct_index is None:
        raise QuestionParseError(f"invalid answer key {key!r}")
    return Question(id=question_id, question_text=question, options=(a, b, c, d), correct_index=correct_index)


PARSERS: Dict[QuestionVariant, Callable[[str, int], Question]] = {
    QuestionVariant.MATCH: parse_match_line,
    QuestionVariant.BOARD: parse_board_line,
}


MATCH_FALLBACK: Tuple[Question, ...] = (
    Question(id=1, question_text="What is phishing?", answer_text="phishing"),
    Question(id=2, question_text="What does MFA stand for?", answer_text="multi factor"),
)

BOARD_FALLBACK: Tuple[Question, ...] = (
    Question(
        id=1,
        question_text="What is phishing?",
        options=(
            "An attempt to trick users into handing over data",
            "A data encryption technique",
            "A daily backup method",
            "A firewall appliance",
        ),
        correct_index=0,
    ),
    Question(
        id=2,
        question_text="A strong password should be?",
        options=(
            "Your date of birth",
            "Short and easy to remember",
            "Long, unique and mixing character types",
            "The same for every account",
        ),
        correct_index=2,
    ),
)

FALLBACKS: Dict[QuestionVariant, Tuple[Question, ...]] = {
    QuestionVariant.MATCH: MATCH_FALLBACK,
    QuestionVariant.BOARD: BOARD_FALLBACK,
}


@dataclass
class LoadReport:
    """Outcome of a question-file load."""

    questions: List[Question]
    skipped_lines: List[int] = field(default_factory=list)
    used_fallback: bool = False
    error: Optional[str] = None


def parse_questions(text: str, variant: QuestionVariant) -> LoadReport:
    """Parse question-file text, skipping (and logging) malformed lines."""
    parser = PARSERS[variant]
    questions: List[Question] = []
    skipped: List[int] = []
    for line_number, raw in enumerate(text.splitlines(), start=1):
        line = raw.strip()
        if not line:
            continue
        try:
            questions.append(parser(line, len(questions) + 1))
        except QuestionParseError as exc:
            skipped.append(line_number)
            LOGGER.warning("questions.line_skipped", variant=variant.value, line=line_number, reason=str(exc))
    return LoadReport(questions=questions, skipped_lines=skipped)


def load_questions(path: Path, variant: QuestionVariant) -> LoadReport:
    """Load a question file, falling back to the built-in set when nothing usable is found."""
    try:
        text = Path(path).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        LOGGER.warning("questions.load_failed", path=str(path), error=str(exc))
        return LoadReport(questions=list(FALLBACKS[variant]), used_fallback=True, error=str(exc))

    report = parse_questions(text, variant)
    if not report.questions:
        LOGGER.warning("questions.empty", path=str(path), skipped=len(report.skipped_lines))
        report.questions = list(FALLBACKS[variant])
        report.used_fallback = True
        report.error = "no valid question lines"
    LOGGER.info(
        "questions.loaded",
        path=str(path),
        variant=variant.value,
        total=len(report.questions),
        skipped=len(report.skipped_lines),
        fallback=report.used_fallback,
    )
    return report


class QuestionPool:
    """Ordered collection of questions with stable ids."""

    def __init__(self, questions: Sequence[Question]) -> None:
        self._questions: List[Question] = list(questions)
        self._by_id: Dict[int, Question] = {q.id: q for q in self._questions}

    @classmethod
    def load(cls, path: Path, variant: QuestionVariant) -> "QuestionPool":
        return cls(load_questions(path, variant).questions)

    @classmethod
    def fallback(cls, variant: QuestionVariant) -> "QuestionPool":
        return cls(FALLBACKS[variant])

    def __len__(self) -> int:
        return len(self._questions)

    def __iter__(self) -> Iterator[Question]:
        return iter(self._questions)

    def __contains__(self, question_id: object) -> bool:
        return question_id in self._by_id

    @property
    def ids(self) -> List[int]:
        return [q.id for q in self._questions]

    def get_by_id(self, question_id: int) -> Optional[Question]:
        """Return the question with ``question_id``, or the first question if unknown."""
        question = self._by_id.get(question_id)
        if question is None:
            LOGGER.warning("questions.unknown_id", question_id=question_id)
            return self._questions[0] if self._questions else None
        return question

    def get_random(self, rng: random.Random) -> Optional[Question]:
        if not self._questions:
            return None
        return self._questions[rng.randrange(len(self._questions))]
