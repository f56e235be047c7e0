"""
Server settings and logging setup.

Defaults live here as module constants. Environment variables override
them, and the command line overrides both.

Environment Variables:
    QUIZWIRE_HOST:        interface to listen on
    QUIZWIRE_PORT:        TCP port
    QUIZWIRE_QUESTIONS:   path to the questions file
    QUIZWIRE_MAX_WORKERS: upper bound on concurrent sessions
    QUIZWIRE_LOG_LEVEL:   DEBUG / INFO / WARNING / ERROR / CRITICAL
"""

import logging
import os
from dataclasses import dataclass
from typing import Mapping, Optional

DEFAULT_HOST = "0.0.0.0"          # Listen on all interfaces
DEFAULT_PORT = 12345
DEFAULT_QUESTIONS_PATH = "questions.txt"
DEFAULT_MAX_WORKERS = 64
DEFAULT_LOG_LEVEL = "INFO"
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


@dataclass
class ServerConfig:
    """Settings for one quiz server run."""

    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    questions_path: str = DEFAULT_QUESTIONS_PATH
    max_workers: int = DEFAULT_MAX_WORKERS
    reprompt_on_error: bool = False
    log_level: str = DEFAULT_LOG_LEVEL

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ServerConfig":
        """
        Build a config from defaults plus QUIZWIRE_* environment variables.

        Raises:
            ValueError: a numeric variable is not an integer or is out of range,
                or the log level is unknown
        """
        env = os.environ if environ is None else environ
        config = cls()

        if env.get("QUIZWIRE_HOST"):
            config.host = env["QUIZWIRE_HOST"]
        if env.get("QUIZWIRE_PORT"):
            config.port = _int_setting("QUIZWIRE_PORT", env["QUIZWIRE_PORT"])
        if env.get("QUIZWIRE_QUESTIONS"):
            config.questions_path = env["QUIZWIRE_QUESTIONS"]
        if env.get("QUIZWIRE_MAX_WORKERS"):
            config.max_workers = _int_setting("QUIZWIRE_MAX_WORKERS", env["QUIZWIRE_MAX_WORKERS"])
        if env.get("QUIZWIRE_LOG_LEVEL"):
            config.log_level = env["QUIZWIRE_LOG_LEVEL"].upper()

        config.validate()
        return config

    def validate(self) -> None:
        if not 0 <= self.port <= 65535:
            raise ValueError(f"Port must be between 0 and 65535, got {self.port}")
        if self.max_workers < 1:
            raise ValueError(f"max_workers must be at least 1, got {self.max_workers}")
        if self.log_level.upper() not in LOG_LEVELS:
            raise ValueError(
                f"Log level must be one of {', '.join(LOG_LEVELS)}, got {self.log_level!r}"
            )


def _int_setting(name: str, raw: str) -> int:
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


def setup_logging(level: str = DEFAULT_LOG_LEVEL) -> None:
    """Configure root logging for the server process."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler()],
    )
