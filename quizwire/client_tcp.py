"""
Terminal client for the TCP quiz server.

Features:
- Connect to the server and show the number of questions
- Display each question with numbered options
- Submit answers by option number
- Show right/wrong feedback and the running score
- Show the final score when the quiz is over

Usage:
    quizwire-client [--host HOST] [--port PORT]

    Then answer each question by typing the option number and pressing Enter.

QuizClient can also be driven from code (tests, bots) without the terminal UI.
"""

import argparse
import socket
from typing import Optional

from colorama import Fore, Style, init

from . import protocol
from .config import DEFAULT_PORT

DEFAULT_HOST = "127.0.0.1"
CONNECT_TIMEOUT = 10


class QuizClient:
    """Headless protocol client: one connection, one frame at a time."""

    def __init__(self, host: str = DEFAULT_HOST, port: int = DEFAULT_PORT) -> None:
        self.host = host
        self.port = port
        self.sock: Optional[socket.socket] = None
        self.reader: Optional[protocol.LineReader] = None
        self.writer: Optional[protocol.FrameWriter] = None

    def connect(self, timeout: float = CONNECT_TIMEOUT) -> None:
        """Raises OSError if the server cannot be reached."""
        self.sock = socket.create_connection((self.host, self.port), timeout=timeout)
        self.sock.settimeout(None)  # Remove timeout after connection
        self.reader = protocol.LineReader(self.sock)
        self.writer = protocol.FrameWriter(self.sock)

    def next_frame(self) -> Optional[protocol.Frame]:
        """Next frame from the server, or None once the connection is closed."""
        return protocol.read_frame(self.reader)

    def send_answer(self, option: int) -> None:
        self.writer.send(protocol.encode_answer(option))

    def send_raw(self, line: str) -> None:
        self.writer.send(line.rstrip("\n") + "\n")

    def close(self) -> None:
        if self.sock is not None:
            try:
                self.sock.close()
            except OSError:
                pass
            self.sock = None

    def __enter__(self) -> "QuizClient":
        self.connect()
        return self

    def __exit__(self, *exc) -> None:
        self.close()


# ---------- Terminal UI ----------


def print_separator(char="═", length=60, color=Fore.CYAN):
    print(color + char * length)


def print_header():
    print_separator()
    print(Fore.CYAN + Style.BRIGHT + "  QUIZWIRE - TCP QUIZ CLIENT")
    print_separator()
    print()


def print_question(number, total, text, options):
    print()
    print_separator("━", 60, Fore.YELLOW)
    print(Fore.YELLOW + Style.BRIGHT + f"QUESTION {number}/{total}")
    print_separator("━", 60, Fore.YELLOW)
    print(Fore.WHITE + Style.BRIGHT + text)
    print()
    for i, option in enumerate(options, 1):
        print(f"  {Fore.CYAN}{i}.{Style.RESET_ALL} {option}")
    print()


def print_result(correct, revealed):
    if correct:
        print(Fore.GREEN + Style.BRIGHT + "✅ Correct answer!")
    else:
        print(Fore.RED + Style.BRIGHT + f"❌ Incorrect! The correct answer was: {revealed}")


def ask_for_answer(option_count: int) -> Optional[int]:
    """Prompt until the user types a number; None on EOF."""
    while True:
        try:
            raw = input(f"Your answer (1-{option_count}): ").strip()
        except EOFError:
            return None
        try:
            return int(raw)
        except ValueError:
            print(Fore.RED + "Please enter an option number.")


def play(client: QuizClient) -> bool:
    """
    Run the interactive quiz loop over an open connection.

    Returns True if the quiz reached FINISHED.

    After an ERROR the user answers again straight away. A server running
    with --reprompt also re-sends the open question; that copy is not
    numbered or answered a second time.
    """
    total = 0
    number = 0
    question_text = ""
    option_count = 0
    answer_pending = False  # Retry sent after ERROR, no RESULT yet

    while True:
        frame = client.next_frame()
        if frame is None:
            print(Fore.RED + "\n[ERROR] Connection closed by server.")
            return False

        if frame.kind == protocol.TOTAL:
            total = protocol.parse_int(frame)
            print(Fore.CYAN + f"This quiz has {total} question(s).")

        elif frame.kind == protocol.QUESTION:
            question_text = frame.payload

        elif frame.kind == protocol.OPTIONS:
            option_count = len(frame.options)
            if answer_pending:
                continue
            number += 1
            print_question(number, total, question_text, frame.options)
            answer = ask_for_answer(option_count)
            if answer is None:
                return False
            client.send_answer(answer)

        elif frame.kind == protocol.RESULT:
            answer_pending = False
            print_result(*protocol.parse_result(frame))

        elif frame.kind == protocol.SCORE:
            score, answered = protocol.parse_score(frame)
            print(Fore.CYAN + f"Score: {score}/{answered}")

        elif frame.kind == protocol.ERROR:
            print(Fore.RED + Style.BRIGHT + f"Server error: {frame.payload}")
            # Server keeps the same question open
            answer = ask_for_answer(option_count)
            if answer is None:
                return False
            client.send_answer(answer)
            answer_pending = True

        elif frame.kind == protocol.FINISHED:
            print()
            print_separator("═", 60, Fore.MAGENTA)
            print(Fore.MAGENTA + Style.BRIGHT + "🎉 QUIZ COMPLETED!")
            print(Fore.MAGENTA + frame.payload)
            print_separator("═", 60, Fore.MAGENTA)
            return True


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Answer a quiz served over TCP.")
    parser.add_argument("--host", default=DEFAULT_HOST)
    parser.add_argument("--port", type=int, default=DEFAULT_PORT)
    args = parser.parse_args(argv)

    init(autoreset=True)
    print_header()

    client = QuizClient(args.host, args.port)
    try:
        print(Fore.CYAN + f"Connecting to {args.host}:{args.port}...")
        client.connect()
    except socket.timeout:
        print(Fore.RED + "❌ Connection timeout. Server may be unreachable.")
        return 1
    except ConnectionRefusedError:
        print(Fore.RED + "❌ Connection refused. Is the server running?")
        return 1
    except OSError as e:
        print(Fore.RED + f"❌ Connection error: {e}")
        return 1

    try:
        finished = play(client)
    except KeyboardInterrupt:
        print(Fore.YELLOW + "\n\n👋 Disconnecting...")
        finished = False
    except OSError as e:
        print(Fore.RED + f"\n[ERROR] Connection lost: {e}")
        finished = False
    finally:
        client.close()

    return 0 if finished else 1


if __name__ == "__main__":
    raise SystemExit(main())
