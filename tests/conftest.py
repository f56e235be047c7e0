import socket
import threading
import time
from typing import Callable, List, Optional

import pytest

from quizwire.events import QueueSink
from quizwire.protocol import ENCODING, Frame, FrameWriter, LineReader, read_frame
from quizwire.questions import Question, QuestionBank
from quizwire.server_tcp import ConnectionListener, _close_socket
from quizwire.session import SessionProtocol, SessionResult

IO_TIMEOUT = 5.0


def wait_until(predicate: Callable[[], bool], timeout: float = IO_TIMEOUT) -> bool:
    """Poll predicate until it is true or the timeout passes."""
    deadline = time.time() + timeout
    while time.time() < deadline:
        if predicate():
            return True
        time.sleep(0.02)
    return predicate()


class SessionHarness:
    """
    Run one SessionProtocol over a socketpair on a background thread.

    The test plays the client side through frame() / send().
    """

    def __init__(self, bank: QuestionBank, **session_kwargs) -> None:
        self.server_sock, self.client_sock = socket.socketpair()
        self.client_sock.settimeout(IO_TIMEOUT)
        self.sink = QueueSink()
        self.session = SessionProtocol(
            LineReader(self.server_sock),
            FrameWriter(self.server_sock),
            bank,
            sink=self.sink,
            client="test",
            **session_kwargs,
        )
        self.reader = LineReader(self.client_sock)
        self.result: Optional[SessionResult] = None
        self._thread = threading.Thread(target=self._run, daemon=True)

    def _run(self) -> None:
        try:
            self.result = self.session.run()
        finally:
            _close_socket(self.server_sock)

    def start(self) -> "SessionHarness":
        self._thread.start()
        return self

    def frame(self) -> Optional[Frame]:
        return read_frame(self.reader)

    def frames(self, count: int) -> List[Frame]:
        return [self.frame() for _ in range(count)]

    def send(self, line: str) -> None:
        self.client_sock.sendall((line + "\n").encode(ENCODING))

    def disconnect(self) -> None:
        self.client_sock.close()

    def finish(self) -> SessionResult:
        self._thread.join(IO_TIMEOUT)
        assert not self._thread.is_alive(), "session did not terminate"
        return self.result

    def close(self) -> None:
        for sock in (self.client_sock, self.server_sock):
            try:
                sock.close()
            except OSError:
                pass


@pytest.fixture
def arithmetic_question() -> Question:
    return Question("2+2=?", ("3", "4", "5"), 2)


@pytest.fixture
def single_bank(arithmetic_question: Question) -> QuestionBank:
    return QuestionBank([arithmetic_question])


@pytest.fixture
def sample_bank() -> QuestionBank:
    return QuestionBank(
        [
            Question("2+2=?", ("3", "4", "5"), 2),
            Question("Capital of France?", ("London", "Paris", "Berlin", "Madrid"), 2),
            Question("Which protocol is connectionless?", ("TCP", "UDP"), 2),
        ]
    )


@pytest.fixture
def harness_factory():
    """Build SessionHarness objects and close their sockets afterwards."""
    created: List[SessionHarness] = []

    def factory(bank: QuestionBank, **kwargs) -> SessionHarness:
        harness = SessionHarness(bank, **kwargs)
        created.append(harness)
        return harness

    yield factory

    for harness in created:
        harness.close()


@pytest.fixture
def running_listener(sample_bank: QuestionBank):
    """A ConnectionListener on an ephemeral loopback port."""
    sink = QueueSink()
    listener = ConnectionListener(sink=sink, max_workers=8)
    listener.start(("127.0.0.1", 0), sample_bank)
    listener.test_sink = sink
    yield listener
    listener.stop()
    listener.join(IO_TIMEOUT)
