"""
quizwire: a multiple-choice quiz served over a line-oriented TCP protocol.
"""

from .exceptions import (
    InvalidQuestionError,
    MalformedFrameError,
    QuestionLoadError,
    QuizError,
    ServerStartError,
)
from .questions import Question, QuestionBank, load_questions, parse_questions
from .server_tcp import ConnectionListener, QuizServer
from .session import Phase, SessionProtocol, SessionResult

__version__ = "1.0.0"

__all__ = [
    "ConnectionListener",
    "InvalidQuestionError",
    "MalformedFrameError",
    "Phase",
    "Question",
    "QuestionBank",
    "QuestionLoadError",
    "QuizError",
    "QuizServer",
    "ServerStartError",
    "SessionProtocol",
    "SessionResult",
    "load_questions",
    "parse_questions",
]
