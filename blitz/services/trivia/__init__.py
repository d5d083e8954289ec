"""Trivia domain services: scoring, the round controller and its collaborators.

The round controller is plain Python; ``store``, ``identity``, ``timer`` and
``registry`` bind it to the database, Flask-Login and Socket.IO so the HTTP
routes stay thin.
"""

from .round import (  # noqa: F401
    InvalidTransition,
    NoQuestionsError,
    Phase,
    QuestionLoadError,
    RoundController,
    RoundError,
)
from .scoring import POINTS, TriviaQuestion  # noqa: F401
