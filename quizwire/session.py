"""
Per-connection quiz session.

A SessionProtocol walks one client through the whole QuestionBank, in order,
exactly once:

1. Send TOTAL:<n>.
2. For each question (phase AWAITING_ANSWER):
   - send QUESTION and OPTIONS,
   - read lines until a valid ANSWER arrives,
   - (phase ADVANCING) send RESULT and SCORE, move to the next question.
3. (phase FINISHED) send FINISHED with the final score.

Bad answers (not a number, out of range) get one ERROR frame and the client
answers the same question again. Lines that are not ANSWER frames are
ignored. End of stream or a socket error ends the session without sending
anything else.

The session owns its position and score; the only shared object is the
read-only QuestionBank.
"""

import enum
import logging
from dataclasses import dataclass
from typing import Optional

from . import protocol
from .events import EventSink, NullSink
from .exceptions import MalformedFrameError
from .questions import QuestionBank

logger = logging.getLogger(__name__)


class Phase(enum.Enum):
    AWAITING_ANSWER = "AwaitingAnswer"
    ADVANCING = "Advancing"
    FINISHED = "Finished"


@dataclass
class SessionResult:
    """Outcome of one session, returned by SessionProtocol.run()."""

    score: int
    position: int
    total: int
    completed: bool


class _Disconnected(Exception):
    """Internal: the client went away (EOF or socket error)."""


class SessionProtocol:
    """State machine for one connected client."""

    def __init__(
        self,
        reader: protocol.LineReader,
        writer: protocol.FrameWriter,
        bank: QuestionBank,
        sink: Optional[EventSink] = None,
        client: str = "client",
        reprompt_on_error: bool = False,
    ) -> None:
        self.reader = reader
        self.writer = writer
        self.bank = bank
        self.sink = sink or NullSink()
        self.client = client
        self.reprompt_on_error = reprompt_on_error

        self.position = 0
        self.score = 0
        self.phase = Phase.AWAITING_ANSWER if len(bank) else Phase.FINISHED

    @property
    def total(self) -> int:
        return len(self.bank)

    def result(self) -> SessionResult:
        return SessionResult(
            score=self.score,
            position=self.position,
            total=self.total,
            completed=self.phase is Phase.FINISHED,
        )

    # ---------- I/O helpers ----------

    def _send(self, frame_text: str) -> None:
        try:
            self.writer.send(frame_text)
        except OSError as e:
            raise _Disconnected(f"send failed: {e}") from e
        self.sink.emit("frame_sent", client=self.client, frame=frame_text.split("\n", 1)[0])

    def _receive(self) -> protocol.Frame:
        line = self.reader.read_line()
        if line is None:
            raise _Disconnected("end of stream")
        self.sink.emit("frame_received", client=self.client, frame=line)
        return protocol.decode_line(line)

    def _send_question(self) -> None:
        question = self.bank[self.position]
        self._send(protocol.encode_question(question.text))
        self._send(protocol.encode_options(question.options))

    # ---------- State machine ----------

    def run(self) -> SessionResult:
        """
        Drive the session to completion or disconnect.

        Socket errors never escape; the caller only needs to close the
        connection afterwards.
        """
        try:
            self._send(protocol.encode_total(self.total))

            while self.phase is not Phase.FINISHED:
                self._await_answer()

            self._send(protocol.encode_finished(self.score, self.total))
        except _Disconnected as e:
            self.phase = Phase.FINISHED
            self.sink.emit(
                "session_aborted",
                client=self.client,
                reason=str(e),
                position=self.position,
                score=self.score,
            )
            logger.debug("Session for %s aborted: %s", self.client, e)
            return SessionResult(self.score, self.position, self.total, completed=False)

        self.sink.emit(
            "session_finished", client=self.client, score=self.score, total=self.total
        )
        return self.result()

    def _await_answer(self) -> None:
        """One AWAITING_ANSWER visit: ask, then loop until a valid answer."""
        question = self.bank[self.position]
        self._send_question()

        while True:
            frame = self._receive()

            if frame.kind != protocol.ANSWER:
                # Not an answer: nothing to acknowledge, wait for the next line
                continue

            try:
                answer = protocol.parse_answer(frame, question.option_count)
            except MalformedFrameError as e:
                self.sink.emit(
                    "answer_rejected",
                    client=self.client,
                    question=self.position + 1,
                    reason=str(e),
                )
                self._send(protocol.encode_error(str(e)))
                if self.reprompt_on_error:
                    self._send_question()
                continue

            self._advance(answer)
            return

    def _advance(self, answer: int) -> None:
        self.phase = Phase.ADVANCING
        question = self.bank[self.position]
        correct = question.is_correct(answer)
        if correct:
            self.score += 1

        self.sink.emit(
            "answer_recorded",
            client=self.client,
            question=self.position + 1,
            answer=answer,
            correct=correct,
        )
        self._send(protocol.encode_result(correct, question.correct_option))

        self.position += 1
        self._send(protocol.encode_score(self.score, self.position))

        if self.position < self.total:
            self.phase = Phase.AWAITING_ANSWER
        else:
            self.phase = Phase.FINISHED
