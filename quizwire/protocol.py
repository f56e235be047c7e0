"""
Line-oriented wire protocol shared by the quiz server and client.

Every frame is one "KIND:payload" line terminated by "\\n". The only
multi-line frame is OPTIONS, which announces a count and is followed by
that many raw option lines.

Server -> client:
    TOTAL:<question count>
    QUESTION:<text>
    OPTIONS:<count>        followed by <count> option lines
    RESULT:CORRECT
    RESULT:INCORRECT:<correct option number>
    SCORE:<score>/<answered>
    FINISHED:<summary>
    ERROR:<message>

Client -> server:
    ANSWER:<option number, 1-based>
"""

import socket
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from .exceptions import MalformedFrameError

ENCODING = "utf-8"
RECV_SIZE = 4096
MAX_LINE_LENGTH = 64 * 1024   # Bytes; a longer line is treated as a disconnect

TOTAL = "TOTAL"
QUESTION = "QUESTION"
OPTIONS = "OPTIONS"
ANSWER = "ANSWER"
RESULT = "RESULT"
SCORE = "SCORE"
FINISHED = "FINISHED"
ERROR = "ERROR"
UNKNOWN = "UNKNOWN"

KNOWN_KINDS = (TOTAL, QUESTION, OPTIONS, ANSWER, RESULT, SCORE, FINISHED, ERROR)

CORRECT = "CORRECT"
INCORRECT = "INCORRECT"


@dataclass
class Frame:
    """
    One decoded protocol message.

    ``options`` is only filled in for OPTIONS frames read with read_frame().
    """

    kind: str
    payload: str = ""
    options: List[str] = field(default_factory=list)


# ---------- Encoding ----------


def _one_line(text: str) -> str:
    """Flatten embedded line breaks so a text field cannot split a frame."""
    return " ".join(str(text).splitlines())


def encode_total(count: int) -> str:
    return f"{TOTAL}:{count}\n"


def encode_question(text: str) -> str:
    return f"{QUESTION}:{_one_line(text)}\n"


def encode_options(options: Sequence[str]) -> str:
    """OPTIONS header plus one line per option, as a single block."""
    lines = [f"{OPTIONS}:{len(options)}"]
    lines.extend(_one_line(opt) for opt in options)
    return "\n".join(lines) + "\n"


def encode_answer(option: int) -> str:
    return f"{ANSWER}:{option}\n"


def encode_result(correct: bool, correct_option: int) -> str:
    if correct:
        return f"{RESULT}:{CORRECT}\n"
    return f"{RESULT}:{INCORRECT}:{correct_option}\n"


def encode_score(score: int, position: int) -> str:
    return f"{SCORE}:{score}/{position}\n"


def encode_finished(score: int, total: int) -> str:
    return f"{FINISHED}:{finished_summary(score, total)}\n"


def encode_error(message: str) -> str:
    return f"{ERROR}:{_one_line(message)}\n"


def finished_summary(score: int, total: int) -> str:
    return f"Your final score is {score} out of {total}"


# ---------- Decoding ----------


def decode_line(line: str) -> Frame:
    """
    Split one wire line into a Frame.

    Lines without a known "KIND:" prefix decode to an UNKNOWN frame
    carrying the whole line.
    """
    line = line.rstrip("\r\n")
    kind, sep, payload = line.partition(":")
    if not sep or kind not in KNOWN_KINDS:
        return Frame(UNKNOWN, line)
    return Frame(kind, payload)


def parse_int(frame: Frame) -> int:
    """Integer payload of TOTAL / OPTIONS / ANSWER frames."""
    try:
        return int(frame.payload.strip())
    except ValueError:
        raise MalformedFrameError(f"Invalid {frame.kind.lower()} format") from None


def parse_answer(frame: Frame, option_count: int) -> int:
    """
    Return the option number carried by an ANSWER frame.

    Raises:
        MalformedFrameError: payload is not an integer, or not in [1, option_count]
    """
    if frame.kind != ANSWER:
        raise MalformedFrameError(f"Expected {ANSWER}, got {frame.kind}")

    try:
        answer = int(frame.payload.strip())
    except ValueError:
        raise MalformedFrameError("Invalid answer format") from None

    if not 1 <= answer <= option_count:
        raise MalformedFrameError(f"Answer must be between 1 and {option_count}")
    return answer


def parse_result(frame: Frame):
    """Return (correct, revealed option or None) for a RESULT frame."""
    status, _, revealed = frame.payload.partition(":")
    if status == CORRECT:
        return True, None
    if status == INCORRECT:
        try:
            return False, int(revealed)
        except ValueError:
            raise MalformedFrameError("Invalid result format") from None
    raise MalformedFrameError(f"Unknown result {status!r}")


def parse_score(frame: Frame):
    """Return (score, answered) for a SCORE frame such as "2/3"."""
    score, sep, answered = frame.payload.partition("/")
    try:
        if not sep:
            raise ValueError(frame.payload)
        return int(score), int(answered)
    except ValueError:
        raise MalformedFrameError("Invalid score format") from None


# ---------- Socket I/O ----------


class LineReader:
    """
    Buffered line reader over a connected socket.

    TCP is a byte stream: one recv() can hold half a line, several lines,
    or half of a multi-byte character, so raw bytes are buffered and only
    complete lines are decoded.
    """

    def __init__(self, sock: socket.socket, max_line: int = MAX_LINE_LENGTH) -> None:
        self.sock = sock
        self.max_line = max_line
        self._buffer = b""
        self.closed = False

    def read_line(self) -> Optional[str]:
        """
        Return the next line without its terminator.

        Returns None once the peer has closed the connection or the socket
        fails, or once a line grows past max_line without a terminator.
        A partial line left in the buffer at that point is dropped.
        """
        while b"\n" not in self._buffer:
            if self.closed:
                return None
            if len(self._buffer) > self.max_line:
                self.closed = True
                self._buffer = b""
                return None
            try:
                chunk = self.sock.recv(RECV_SIZE)
            except OSError:
                chunk = b""
            if not chunk:
                self.closed = True
                return None
            self._buffer += chunk

        line, self._buffer = self._buffer.split(b"\n", 1)
        return line.decode(ENCODING, errors="replace").rstrip("\r")


class FrameWriter:
    """
    Write encoded frames to a socket.

    Each frame (including a whole OPTIONS block) goes out in one sendall()
    call. OSError is left to the caller: the session treats it as a
    disconnect.
    """

    def __init__(self, sock: socket.socket) -> None:
        self.sock = sock

    def send(self, frame_text: str) -> None:
        self.sock.sendall(frame_text.encode(ENCODING))


def read_frame(reader: LineReader) -> Optional[Frame]:
    """
    Read one whole frame, including the option lines after OPTIONS.

    Returns None at end of stream. If the stream ends inside an OPTIONS
    block the frame is returned with the options received so far, and the
    reader is left closed.
    """
    line = reader.read_line()
    if line is None:
        return None

    frame = decode_line(line)
    if frame.kind == OPTIONS:
        count = parse_int(frame)
        for _ in range(count):
            option = reader.read_line()
            if option is None:
                break
            frame.options.append(option)
    return frame
