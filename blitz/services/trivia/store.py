"""Database-backed question source, score sink and leaderboard."""

from typing import Iterable, List

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from blitz import db
from blitz.models import DIFFICULTIES, Question, User, WeeklyScore
from .scoring import TriviaQuestion

SCORE_POLICIES = ('overwrite', 'max')


def to_trivia_question(question: Question) -> TriviaQuestion:
    return TriviaQuestion(
        id=question.id,
        week=question.week,
        text=question.text,
        difficulty=question.difficulty,
        correct_answers=tuple(question.answers),
    )


def fetch_questions(week: int) -> List[TriviaQuestion]:
    """All questions for ``week``, ordered by id."""
    rows = Question.query.filter_by(week=week).order_by(Question.id.asc()).all()
    return [to_trivia_question(q) for q in rows]


def available_weeks() -> List[int]:
    """Distinct playable weeks, most recent first."""
    rows = db.session.query(Question.week).distinct().order_by(Question.week.desc()).all()
    return [row[0] for row in rows]


def record_score(user_id: int, week: int, score: int, policy: str = 'overwrite') -> WeeklyScore:
    """Upsert the (user, week) score.

    ``overwrite`` stores the latest score, ``max`` keeps the best one. When a
    concurrent write inserts the row first, the unique constraint rejects this
    insert and the update is applied to that row instead.
    """
    if policy not in SCORE_POLICIES:
        raise ValueError(f'Unknown score policy: {policy}')
    try:
        return _apply_score(user_id, week, score, policy)
    except IntegrityError:
        db.session.rollback()
    except SQLAlchemyError:
        db.session.rollback()
        raise
    try:
        return _apply_score(user_id, week, score, policy)
    except SQLAlchemyError:
        db.session.rollback()
        raise


def _existing_score(user_id: int, week: int):
    return WeeklyScore.query.filter_by(user_id=user_id, week=week).first()


def _apply_score(user_id: int, week: int, score: int, policy: str) -> WeeklyScore:
    entry = _existing_score(user_id, week)
    if entry is None:
        entry = WeeklyScore(user_id=user_id, week=week, score=score)
    elif policy == 'max':
        entry.score = max(entry.score, score)
    else:
        entry.score = score
    db.session.add(entry)
    db.session.commit()
    return entry


def leaderboard(week: int, limit: int = 10) -> List[dict]:
    rows = (
        db.session.query(WeeklyScore, User.username)
        .outerjoin(User, User.id == WeeklyScore.user_id)
        .filter(WeeklyScore.week == week)
        .order_by(WeeklyScore.score.desc(), WeeklyScore.updated_at.asc(), WeeklyScore.id.asc())
        .limit(limit)
        .all()
    )
    return [
        {
            'rank': idx + 1,
            'username': username or 'Anonymous',
            'score': entry.score,
            'week': entry.week,
        }
        for idx, (entry, username) in enumerate(rows)
    ]


def _validate_record(idx: int, record: dict) -> dict:
    if not isinstance(record, dict):
        raise ValueError(f'Question #{idx}: expected an object')
    week = record.get('week')
    if isinstance(week, bool) or not isinstance(week, int) or week < 1:
        raise ValueError(f'Question #{idx}: week must be a positive integer')
    text = (record.get('text') or record.get('question') or '').strip()
    if not text:
        raise ValueError(f'Question #{idx}: text is required')
    difficulty = (record.get('difficulty') or '').strip().lower()
    if difficulty not in DIFFICULTIES:
        raise ValueError(f'Question #{idx}: difficulty must be one of {", ".join(DIFFICULTIES)}')
    answers = record.get('correct_answers')
    if (
        not isinstance(answers, list)
        or not answers
        or not all(isinstance(a, str) and a.strip() for a in answers)
    ):
        raise ValueError(f'Question #{idx}: correct_answers must be a non-empty list of strings')
    return {'week': week, 'text': text, 'difficulty': difficulty, 'answers': answers}


def load_questions(records: Iterable[dict]) -> List[Question]:
    """Validate and insert question records; nothing is written if any record is invalid."""
    cleaned = [_validate_record(idx, record) for idx, record in enumerate(records, start=1)]
    created = []
    try:
        for item in cleaned:
            question = Question(week=item['week'], text=item['text'], difficulty=item['difficulty'])
            question.answers = item['answers']
            db.session.add(question)
            created.append(question)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        raise
    return created
