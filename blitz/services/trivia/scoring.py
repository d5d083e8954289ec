from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional, Tuple

POINTS = {
    'easy': 2,
    'medium': 6,
    'hard': 15,
}


@dataclass(frozen=True)
class TriviaQuestion:
    """A question as held by a round: detached from the database and read-only."""

    id: int
    week: int
    text: str
    difficulty: str
    correct_answers: Tuple[str, ...]

    @property
    def points(self) -> int:
        return points_for(self.difficulty)

    def public_dict(self) -> dict:
        return {
            'id': self.id,
            'week': self.week,
            'text': self.text,
            'difficulty': self.difficulty,
            'points': self.points,
        }


def points_for(difficulty: str) -> int:
    """Point value of a correct answer; unknown difficulties are worth nothing."""
    return POINTS.get((difficulty or '').lower(), 0)


def normalize_answer(text: Optional[str]) -> str:
    return (text or '').strip().casefold()


def is_correct(accepted: Iterable[str], answer: Optional[str]) -> bool:
    """Exact match after trimming and case folding; blank answers never match."""
    given = normalize_answer(answer)
    if not given:
        return False
    return any(normalize_answer(a) == given for a in accepted)

