"""
Question model, the shared question bank, and the questions.txt loader.

File format (one item per line, blank lines ignored):

    Q: Which protocol is connection-oriented?
    1. UDP
    2. TCP
    A: 2

- "Q:" starts a new question and closes the previous one.
- "<number>. <text>" adds an option to the current question.
- "A: <number>" names the correct option (1-based).

A question that ends up without options or without a usable answer number
is dropped. A non-numeric answer line is skipped with a warning.
"""

import logging
import os
import re
from dataclasses import dataclass, field
from typing import Iterable, Iterator, List, Optional, Sequence, Tuple

from .exceptions import InvalidQuestionError, QuestionLoadError

logger = logging.getLogger(__name__)

OPTION_LINE = re.compile(r"^\d+\..*")


@dataclass(frozen=True)
class Question:
    """One multiple-choice question. Options are numbered from 1 on the wire."""

    text: str
    options: Tuple[str, ...]
    correct_option: int

    def __post_init__(self) -> None:
        # Accept any sequence but always store a tuple.
        object.__setattr__(self, "options", tuple(self.options))
        if not is_valid_question(self.text, self.options, self.correct_option):
            raise InvalidQuestionError(
                f"Invalid question {self.text!r}: "
                f"{len(self.options)} option(s), correct option {self.correct_option}"
            )

    @property
    def option_count(self) -> int:
        return len(self.options)

    def is_correct(self, answer: int) -> bool:
        return answer == self.correct_option


def is_valid_question(text: Optional[str], options: Sequence[str], correct_option: int) -> bool:
    """Return True if the parts would make a valid Question."""
    return (
        bool(text)
        and len(options) > 0
        and 1 <= correct_option <= len(options)
    )


class QuestionBank:
    """
    Ordered, fixed-size list of questions.

    Built once before the server starts and then shared by every session.
    There are no mutating methods, so no locking is needed.
    """

    def __init__(self, questions: Iterable[Question] = ()) -> None:
        items = tuple(questions)
        for q in items:
            if not isinstance(q, Question):
                raise InvalidQuestionError(f"Not a Question: {q!r}")
        self._questions: Tuple[Question, ...] = items

    def __len__(self) -> int:
        return len(self._questions)

    def __getitem__(self, index: int) -> Question:
        return self._questions[index]

    def __iter__(self) -> Iterator[Question]:
        return iter(self._questions)

    def __bool__(self) -> bool:
        return bool(self._questions)

    def __repr__(self) -> str:
        return f"QuestionBank({len(self._questions)} questions)"


# ---------- Loader ----------


@dataclass
class _Draft:
    """A question while its lines are still being read."""

    text: str
    options: List[str] = field(default_factory=list)
    correct_option: int = 0

    def build(self) -> Optional[Question]:
        if not is_valid_question(self.text, self.options, self.correct_option):
            return None
        return Question(self.text, tuple(self.options), self.correct_option)


def parse_questions(lines: Iterable[str]) -> List[Question]:
    """
    Parse question-file lines into valid Question objects.

    Invalid questions are dropped without error. Returns an empty list
    if nothing valid was found.
    """
    questions: List[Question] = []
    current: Optional[_Draft] = None

    def finish(draft: Optional[_Draft]) -> None:
        if draft is None:
            return
        question = draft.build()
        if question is not None:
            questions.append(question)
        else:
            logger.debug("Dropping incomplete question: %r", draft.text)

    for raw_line in lines:
        line = raw_line.strip()

        if not line:
            continue

        if line.startswith("Q:"):
            finish(current)
            current = _Draft(text=line[2:].strip())
        elif current is None:
            # Options and answers before the first question have nowhere to go
            continue
        elif OPTION_LINE.match(line):
            current.options.append(line[line.index(".") + 1:].strip())
        elif line.startswith("A:"):
            try:
                current.correct_option = int(line[2:].strip())
            except ValueError:
                logger.warning("Invalid answer format: %s", line)

    finish(current)
    return questions


def load_questions(path: str) -> QuestionBank:
    """
    Load a QuestionBank from a questions file.

    Raises:
        QuestionLoadError: file missing or unreadable, or no valid questions in it
    """
    qpath = os.path.abspath(path)

    if not os.path.isfile(qpath):
        raise QuestionLoadError(f"Question file not found: {qpath}")

    try:
        with open(qpath, "r", encoding="utf-8") as f:
            questions = parse_questions(f)
    except (OSError, UnicodeDecodeError) as e:
        raise QuestionLoadError(f"Error reading question file {qpath}: {e}") from e

    if not questions:
        raise QuestionLoadError(f"No valid questions found in {qpath}")

    logger.info("Loaded %d questions from %s", len(questions), qpath)
    return QuestionBank(questions)
