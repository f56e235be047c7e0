"""
TCP quiz server.

Responsibilities:
- Load quiz questions from questions.txt (see questions.py for the format).
- Accept TCP connections from any number of clients.
- Run one independent SessionProtocol per connection on a worker thread.
- Stop cleanly: stop accepting, drop live connections, never block the caller.

Control flow (high level):
1. main():
   - Read settings (defaults, environment, command line).
   - QuizServer.start(): load questions, bind, start the listener.
   - Wait for Ctrl+C / SIGTERM, then QuizServer.stop().

2. ConnectionListener._accept_loop() (one long-lived thread):
   - For each new connection, submit _handle_client() to the worker pool.

3. ConnectionListener._handle_client() (one worker per connection):
   - Run the session to completion or disconnect, then close the socket.

Sessions share nothing but the read-only QuestionBank, so the only lock here
guards the listener's own set of open connections.
"""

import argparse
import dataclasses
import functools
import logging
import signal
import socket
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Optional, Set, Tuple

from .config import DEFAULT_MAX_WORKERS, ServerConfig, setup_logging
from .events import EventSink, LoggingSink
from .exceptions import QuestionLoadError, ServerStartError
from .protocol import FrameWriter, LineReader
from .questions import QuestionBank, load_questions
from .session import SessionProtocol

logger = logging.getLogger(__name__)

LISTEN_BACKLOG = 50
ACCEPT_POLL_INTERVAL = 0.5   # Seconds; bounds how long stop() waits on accept()


def _close_socket(sock: socket.socket) -> None:
    """Shut down and close a socket, ignoring errors from an already-dead peer."""
    try:
        sock.shutdown(socket.SHUT_RDWR)
    except OSError:
        pass
    try:
        sock.close()
    except OSError:
        pass


class ConnectionListener:
    """
    Accept loop plus a worker pool of quiz sessions.

    The pool starts empty and adds threads as connections arrive, up to
    max_workers. Connections beyond that wait in the pool's queue.
    """

    def __init__(
        self,
        sink: Optional[EventSink] = None,
        max_workers: int = DEFAULT_MAX_WORKERS,
        reprompt_on_error: bool = False,
    ) -> None:
        self.sink = sink or LoggingSink()
        self.max_workers = max_workers
        self.reprompt_on_error = reprompt_on_error

        self._bank: Optional[QuestionBank] = None
        self._server_socket: Optional[socket.socket] = None
        self._pool: Optional[ThreadPoolExecutor] = None
        self._accept_thread: Optional[threading.Thread] = None
        self._running = threading.Event()

        self._connections_lock = threading.Lock()
        self._connections: Set[socket.socket] = set()

    # ---------- Status ----------

    @property
    def is_running(self) -> bool:
        return self._running.is_set()

    @property
    def address(self) -> Optional[Tuple[str, int]]:
        """Actual bound (host, port), useful when started on port 0."""
        if self._server_socket is None or not self.is_running:
            return None
        return self._server_socket.getsockname()[:2]

    @property
    def active_sessions(self) -> int:
        with self._connections_lock:
            return len(self._connections)

    # ---------- Lifecycle ----------

    def start(self, address: Tuple[str, int], bank: QuestionBank) -> None:
        """
        Bind to address and start accepting connections in the background.

        Raises:
            ServerStartError: already running, or the address cannot be bound
        """
        if self.is_running:
            raise ServerStartError("Listener is already running")

        srv = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            srv.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            srv.bind(address)
            srv.listen(LISTEN_BACKLOG)
            srv.settimeout(ACCEPT_POLL_INTERVAL)
        except OSError as e:
            srv.close()
            raise ServerStartError(f"Failed to start server on {address[0]}:{address[1]}: {e}") from e

        self._bank = bank
        self._server_socket = srv
        self._pool = ThreadPoolExecutor(
            max_workers=self.max_workers,
            thread_name_prefix="quiz-session",
        )
        self._running.set()

        self._accept_thread = threading.Thread(
            target=self._accept_loop,
            args=(srv, self._pool),
            name="quiz-accept",
            daemon=True,
        )
        self._accept_thread.start()

        host, port = srv.getsockname()[:2]
        self.sink.emit("server_started", host=host, port=port, questions=len(bank))

    def stop(self) -> None:
        """
        Stop accepting and cancel running sessions. Returns immediately.

        Live connections are shut down so their sessions see end of stream
        and release themselves; queued sessions are cancelled.
        """
        if not self.is_running:
            return
        self._running.clear()

        if self._server_socket is not None:
            _close_socket(self._server_socket)

        with self._connections_lock:
            live = list(self._connections)
        for conn in live:
            try:
                conn.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass

        if self._pool is not None:
            self._pool.shutdown(wait=False, cancel_futures=True)

        self.sink.emit("server_stopped", dropped=len(live))

    def join(self, timeout: Optional[float] = None) -> None:
        """Wait for the accept thread to exit (after stop())."""
        if self._accept_thread is not None:
            self._accept_thread.join(timeout)

    # ---------- Accept loop ----------

    def _accept_loop(self, srv: socket.socket, pool: ThreadPoolExecutor) -> None:
        """
        Accept connections until stop() is called.

        Errors while running are reported and the loop carries on; errors
        caused by stop() closing the socket are not.
        """
        while self.is_running:
            try:
                conn, addr = srv.accept()
            except socket.timeout:
                continue
            except OSError as e:
                if not self.is_running:
                    break
                self.sink.emit("accept_failed", error=str(e))
                if srv.fileno() == -1:
                    # The socket itself is gone; nothing left to accept on
                    break
                continue

            conn.settimeout(None)
            client = f"{addr[0]}:{addr[1]}"

            with self._connections_lock:
                self._connections.add(conn)

            if not self.is_running:
                self._release(conn)
                break

            try:
                future = pool.submit(self._handle_client, conn, client)
            except RuntimeError:
                # Pool already shut down by stop()
                self._release(conn)
                break

            future.add_done_callback(functools.partial(self._release_if_cancelled, conn))
            self.sink.emit("client_connected", client=client)

    def _handle_client(self, conn: socket.socket, client: str) -> None:
        """Run one session on this worker thread and always release the socket."""
        try:
            session = SessionProtocol(
                LineReader(conn),
                FrameWriter(conn),
                self._bank,
                sink=self.sink,
                client=client,
                reprompt_on_error=self.reprompt_on_error,
            )
            result = session.run()
            if result.completed:
                logger.info(
                    "Client %s finished quiz with score %d/%d",
                    client, result.score, result.total,
                )
            else:
                logger.info(
                    "Client %s disconnected at question %d (score %d)",
                    client, result.position + 1, result.score,
                )
        except Exception:
            logger.exception("Unexpected error in session for %s", client)
        finally:
            self._release(conn)

    def _release_if_cancelled(self, conn: socket.socket, future) -> None:
        # A queued session cancelled by stop() never runs its finally block
        if future.cancelled():
            self._release(conn)

    def _release(self, conn: socket.socket) -> None:
        with self._connections_lock:
            self._connections.discard(conn)
        _close_socket(conn)


class QuizServer:
    """
    Lifecycle control around a ConnectionListener.

    Keeps the settings and the loaded QuestionBank, and exposes the running
    status and question count for whatever is displaying the server.
    """

    def __init__(self, config: Optional[ServerConfig] = None, sink: Optional[EventSink] = None) -> None:
        self.config = config or ServerConfig()
        self.sink = sink or LoggingSink()
        self.bank: Optional[QuestionBank] = None
        self._listener: Optional[ConnectionListener] = None

    def configure(self, host: str, port: int) -> None:
        if self.is_running:
            raise ServerStartError("Cannot reconfigure a running server")
        candidate = dataclasses.replace(self.config, host=host, port=port)
        candidate.validate()
        self.config = candidate

    def load_questions(self, path: Optional[str] = None) -> int:
        """
        Load the question file (config.questions_path by default).

        Returns the number of questions loaded.

        Raises:
            QuestionLoadError: file missing, unreadable or without valid questions
        """
        target = path if path is not None else self.config.questions_path
        self.bank = load_questions(target)
        self.config.questions_path = target
        return len(self.bank)

    def use_question_bank(self, bank: QuestionBank) -> None:
        """Serve an already-built bank instead of loading a file."""
        self.bank = bank

    @property
    def question_count(self) -> int:
        return len(self.bank) if self.bank is not None else 0

    @property
    def is_running(self) -> bool:
        return self._listener is not None and self._listener.is_running

    @property
    def address(self) -> Optional[Tuple[str, int]]:
        return self._listener.address if self._listener is not None else None

    @property
    def status(self) -> str:
        if not self.is_running:
            return "stopped"
        host, port = self.address
        return f"running on {host}:{port}"

    def start(self) -> None:
        """
        Load questions if needed, bind and start serving.

        Raises:
            ServerStartError: no usable questions, or the port is unavailable
        """
        if self.is_running:
            raise ServerStartError("Server is already running")

        if self.bank is None:
            try:
                self.load_questions()
            except QuestionLoadError as e:
                raise ServerStartError(str(e)) from e

        if not self.bank:
            raise ServerStartError("No questions loaded")

        listener = ConnectionListener(
            sink=self.sink,
            max_workers=self.config.max_workers,
            reprompt_on_error=self.config.reprompt_on_error,
        )
        listener.start((self.config.host, self.config.port), self.bank)
        self._listener = listener

    def stop(self) -> None:
        if self._listener is not None:
            self._listener.stop()


# ---------- Command line ----------


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Serve a multiple-choice quiz over TCP.")
    parser.add_argument("--host", help="interface to listen on")
    parser.add_argument("--port", type=int, help="TCP port")
    parser.add_argument("--questions", help="path to the questions file")
    parser.add_argument("--max-workers", type=int, help="maximum concurrent sessions")
    parser.add_argument(
        "--reprompt",
        action="store_true",
        help="re-send the question after rejecting an answer",
    )
    parser.add_argument("--log-level", help="DEBUG, INFO, WARNING, ERROR or CRITICAL")
    return parser


def config_from_args(args: argparse.Namespace) -> ServerConfig:
    config = ServerConfig.from_env()
    if args.host:
        config.host = args.host
    if args.port is not None:
        config.port = args.port
    if args.questions:
        config.questions_path = args.questions
    if args.max_workers is not None:
        config.max_workers = args.max_workers
    if args.reprompt:
        config.reprompt_on_error = True
    if args.log_level:
        config.log_level = args.log_level.upper()
    config.validate()
    return config


def main(argv=None) -> int:
    """
    Entry point for the quiz server.

    - Reads settings and sets up logging.
    - Starts the server (questions loaded on start).
    - Serves until Ctrl+C or SIGTERM, then stops gracefully.
    """
    parser = build_arg_parser()
    args = parser.parse_args(argv)
    try:
        config = config_from_args(args)
    except ValueError as e:
        parser.error(str(e))

    setup_logging(config.log_level)

    server = QuizServer(config)
    try:
        server.start()
    except ServerStartError as e:
        logger.error("%s", e)
        return 1

    logger.info("Server %s with %d questions", server.status, server.question_count)
    logger.info("Press Ctrl+C to stop the server")

    shutdown = threading.Event()

    def signal_handler(sig, frame):
        logger.info("Shutting down gracefully...")
        shutdown.set()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    while not shutdown.is_set():
        shutdown.wait(1)

    server.stop()
    logger.info("Server stopped")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
