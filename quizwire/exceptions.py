"""
Exception types raised by the quiz server.

Only MalformedFrameError is expected during normal operation: the session
catches it and answers with an ERROR frame. The others are reported to
whoever is trying to start the server.
"""


class QuizError(Exception):
    """Base exception for the quiz server."""


class InvalidQuestionError(QuizError):
    """Raised when a question has no text, no options or a bad answer number."""


class QuestionLoadError(QuizError):
    """Raised when the question file is missing, unreadable or has no valid questions."""


class MalformedFrameError(QuizError):
    """
    Raised for a client frame that cannot be accepted.

    The message is sent back to the client verbatim in an ERROR frame.
    """


class ServerStartError(QuizError):
    """Raised when the listener cannot bind or has nothing to serve."""
