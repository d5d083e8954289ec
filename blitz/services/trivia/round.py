"""Round controller: the lifecycle of one player's trivia round.

A round moves through ``idle -> loading -> active -> complete``. While active
it owns a single countdown timer; every question transition replaces that
timer and completion stops it. Completion fires the score submission at most
once per session, and replaying the same week starts a new session.

The controller knows nothing about Flask. Its collaborators are injected:

- ``question_source(week)`` returns the week's questions
- ``score_sink(user_id, week, score)`` records a finished round
- ``identity()`` returns the player's user id, or ``None`` when anonymous
- ``timer`` exposes ``start(key, on_tick)`` and ``stop()``
- ``dispatch(fn, *args)`` runs the score submission without blocking the round
"""

from __future__ import annotations

import logging
import threading
from enum import Enum
from typing import Callable, Iterable, Optional, Tuple

from .scoring import TriviaQuestion, is_correct, normalize_answer

DEFAULT_QUESTION_DURATION = 20

logger = logging.getLogger(__name__)


class Phase(str, Enum):
    IDLE = 'idle'
    LOADING = 'loading'
    ACTIVE = 'active'
    COMPLETE = 'complete'


class RoundError(Exception):
    status_code = 400


class QuestionLoadError(RoundError):
    status_code = 503


class NoQuestionsError(RoundError):
    status_code = 404


class InvalidTransition(RoundError):
    status_code = 409


def _run_inline(fn, *args):
    fn(*args)


class RoundController:

    def __init__(
        self,
        question_source: Callable[[int], Iterable[TriviaQuestion]],
        score_sink: Optional[Callable[[int, int, int], object]] = None,
        identity: Optional[Callable[[], Optional[int]]] = None,
        timer=None,
        dispatch: Optional[Callable] = None,
        duration: int = DEFAULT_QUESTION_DURATION,
        on_change: Optional[Callable[['RoundController'], None]] = None,
        log: Optional[logging.Logger] = None,
    ):
        self.question_source = question_source
        self.score_sink = score_sink
        self.identity = identity or (lambda: None)
        self.timer = timer
        self.dispatch = dispatch or _run_inline
        self.duration = int(duration)
        self.on_change = on_change
        self.log = log or logger
        self._lock = threading.RLock()

        self.phase = Phase.IDLE
        self.week: Optional[int] = None
        self.questions: Tuple[TriviaQuestion, ...] = ()
        self.current_index = 0
        self.score = 0
        self.time_remaining = self.duration
        self.pending_answer = ''
        self.session = 0
        self.error: Optional[str] = None
        self._completed_session: Optional[int] = None
        self._submitted_session: Optional[int] = None

    # -- views ---------------------------------------------------------------

    @property
    def is_complete(self) -> bool:
        return self.current_index > 0 and self.current_index >= len(self.questions)

    @property
    def current_question(self) -> Optional[TriviaQuestion]:
        if self.phase != Phase.ACTIVE:
            return None
        return self.questions[self.current_index]

    @property
    def timer_key(self) -> Tuple[int, int]:
        return (self.session, self.current_index)

    def to_dict(self) -> dict:
        with self._lock:
            question = self.current_question
            return {
                'phase': self.phase.value,
                'week': self.week,
                'session': self.session,
                'question_index': self.current_index,
                'total_questions': len(self.questions),
                'score': self.score,
                'time_remaining': self.time_remaining,
                'pending_answer': self.pending_answer,
                'current_question': question.public_dict() if question else None,
                'is_complete': self.phase == Phase.COMPLETE,
                'score_submitted': self.phase == Phase.COMPLETE and self._submitted_session == self.session,
                'error': self.error,
            }

    # -- transitions ---------------------------------------------------------

    def select_week(self, week: int) -> None:
        """Load ``week`` and start its first session.

        Raises ``QuestionLoadError`` when the source fails and
        ``NoQuestionsError`` when the week has nothing to play. Either way the
        round is left idle with ``error`` set, ready for another selection, and
        any previously completed round is dropped.
        """
        with self._lock:
            if self.phase in (Phase.LOADING, Phase.ACTIVE):
                raise InvalidTransition(f'Cannot select a week while the round is {self.phase.value}')
            self.phase = Phase.LOADING
            self.error = None

        try:
            loaded = list(self.question_source(week))
        except Exception as exc:
            self.log.warning(f"[round-load-failed] week={week} error={exc!r}")
            with self._lock:
                self._fail_load('Failed to load questions.')
            raise QuestionLoadError(self.error) from exc

        with self._lock:
            if self.phase != Phase.LOADING:
                # Closed or sent back to week selection while loading
                return
            if not loaded:
                self._fail_load(f'No questions available for week {week}')
                raise NoQuestionsError(self.error)
            self.week = week
            self.questions = tuple(sorted(loaded, key=lambda q: q.id))
            self._begin_session()
            self._notify()

    def set_answer(self, text: Optional[str]) -> None:
        with self._lock:
            self._require_active()
            self.pending_answer = text or ''

    def submit_answer(self, answer: Optional[str] = None) -> dict:
        """Judge the pending answer (or ``answer`` when given) and advance."""
        with self._lock:
            self._require_active()
            if answer is not None:
                self.pending_answer = answer
            result = self._judge_and_advance()
            self._notify()
            return result

    def tick(self, key: Optional[Tuple[int, int]] = None) -> None:
        """One second elapses. Ticks for an earlier question or session are ignored."""
        with self._lock:
            if self.phase != Phase.ACTIVE:
                return
            if key is not None and key != self.timer_key:
                self.log.debug(f"[timer-stale] key={key} current={self.timer_key}")
                return
            self.time_remaining = max(0, self.time_remaining - 1)
            if self.time_remaining == 0:
                self.log.info(
                    f"[timer-expired] week={self.week} session={self.session} question={self.current_index}"
                )
                self._judge_and_advance()
            self._notify()

    def restart(self) -> None:
        """Replay the same week as a new session."""
        with self._lock:
            if self.phase != Phase.COMPLETE:
                raise InvalidTransition('Only a completed round can be replayed')
            self._begin_session()
            self._notify()

    def back_to_weeks(self) -> None:
        """Drop the loaded questions and return to week selection."""
        with self._lock:
            self._reset()
            self._notify()

    def close(self) -> None:
        with self._lock:
            self._reset()

    # -- internals -----------------------------------------------------------

    def _require_active(self) -> None:
        if self.phase != Phase.ACTIVE:
            raise InvalidTransition('No question is waiting for an answer')

    def _reset(self) -> None:
        self._stop_timer()
        self.phase = Phase.IDLE
        self.week = None
        self.questions = ()
        self.current_index = 0
        self.score = 0
        self.time_remaining = self.duration
        self.pending_answer = ''
        self.error = None

    def _fail_load(self, message: str) -> None:
        # A failed selection leaves nothing of the previous round behind
        self._reset()
        self.error = message
        self._notify()

    def _begin_session(self) -> None:
        self.session += 1
        self.current_index = 0
        self.score = 0
        self.pending_answer = ''
        self.time_remaining = self.duration
        self.error = None
        self.phase = Phase.ACTIVE
        self.log.info(
            f"[round-start] week={self.week} session={self.session} questions={len(self.questions)}"
        )
        self._start_timer()

    def _judge_and_advance(self) -> dict:
        question = self.questions[self.current_index]
        answered = bool(normalize_answer(self.pending_answer))
        correct = is_correct(question.correct_answers, self.pending_answer)
        earned = question.points if correct else 0
        self.score += earned

        self.current_index += 1
        self.pending_answer = ''
        self.time_remaining = self.duration
        if self.current_index >= len(self.questions):
            self._complete()
        else:
            self._start_timer()

        return {
            'question_id': question.id,
            'answered': answered,
            'correct': correct,
            'points': earned,
        }

    def _complete(self) -> None:
        self.phase = Phase.COMPLETE
        self._stop_timer()
        if not self.is_complete or self._completed_session == self.session:
            return
        self._completed_session = self.session

        user_id = self.identity()
        self.log.info(
            f"[round-complete] week={self.week} session={self.session} score={self.score} user={user_id}"
        )
        if user_id is None or self.score_sink is None:
            return
        self._submitted_session = self.session
        # Values are captured now so a later session can never leak into this write
        self.dispatch(self._submit_score, user_id, self.week, self.score, self.session)

    def _submit_score(self, user_id: int, week: int, score: int, session: int) -> None:
        try:
            self.score_sink(user_id, week, score)
        except Exception as exc:
            self.log.warning(
                f"[score-submit-failed] user={user_id} week={week} session={session} score={score} error={exc!r}"
            )
            return
        self.log.info(f"[score-submitted] user={user_id} week={week} session={session} score={score}")

    def _start_timer(self) -> None:
        if self.timer is not None:
            self.timer.start(self.timer_key, self.tick)

    def _stop_timer(self) -> None:
        if self.timer is not None:
            self.timer.stop()

    def _notify(self) -> None:
        if self.on_change is not None:
            self.on_change(self)
