"""Tests for settings, command-line parsing and the event sinks."""

import logging
import threading

import pytest

from quizwire.config import DEFAULT_PORT, ServerConfig
from quizwire.events import LoggingSink, NullSink, QueueSink
from quizwire.server_tcp import build_arg_parser, config_from_args


class TestServerConfig:

    def test_defaults(self):
        config = ServerConfig.from_env({})

        assert config.host == "0.0.0.0"
        assert config.port == DEFAULT_PORT == 12345
        assert config.questions_path == "questions.txt"
        assert config.reprompt_on_error is False

    def test_environment_overrides(self):
        config = ServerConfig.from_env(
            {
                "QUIZWIRE_HOST": "127.0.0.1",
                "QUIZWIRE_PORT": "9000",
                "QUIZWIRE_QUESTIONS": "/tmp/q.txt",
                "QUIZWIRE_MAX_WORKERS": "4",
                "QUIZWIRE_LOG_LEVEL": "debug",
            }
        )

        assert config.host == "127.0.0.1"
        assert config.port == 9000
        assert config.questions_path == "/tmp/q.txt"
        assert config.max_workers == 4
        assert config.log_level == "DEBUG"

    def test_empty_values_keep_defaults(self):
        config = ServerConfig.from_env({"QUIZWIRE_PORT": "", "QUIZWIRE_HOST": ""})

        assert config.port == DEFAULT_PORT
        assert config.host == "0.0.0.0"

    @pytest.mark.parametrize(
        "env",
        [
            {"QUIZWIRE_PORT": "eighty"},
            {"QUIZWIRE_PORT": "70000"},
            {"QUIZWIRE_MAX_WORKERS": "0"},
            {"QUIZWIRE_MAX_WORKERS": "many"},
            {"QUIZWIRE_LOG_LEVEL": "loud"},
        ],
    )
    def test_invalid_values(self, env):
        with pytest.raises(ValueError):
            ServerConfig.from_env(env)

    def test_reads_process_environment(self, monkeypatch):
        monkeypatch.setenv("QUIZWIRE_PORT", "8123")

        assert ServerConfig.from_env().port == 8123


class TestCommandLine:

    def test_arguments_override_environment(self, monkeypatch):
        monkeypatch.setenv("QUIZWIRE_PORT", "8123")
        monkeypatch.setenv("QUIZWIRE_HOST", "10.0.0.1")
        args = build_arg_parser().parse_args(
            ["--port", "9999", "--questions", "quiz.txt", "--reprompt", "--max-workers", "2"]
        )

        config = config_from_args(args)

        assert config.port == 9999
        assert config.host == "10.0.0.1"
        assert config.questions_path == "quiz.txt"
        assert config.reprompt_on_error is True
        assert config.max_workers == 2

    def test_invalid_port_argument(self, monkeypatch):
        monkeypatch.delenv("QUIZWIRE_PORT", raising=False)
        args = build_arg_parser().parse_args(["--port", "-5"])

        with pytest.raises(ValueError):
            config_from_args(args)

    def test_unknown_log_level_argument(self, monkeypatch):
        monkeypatch.delenv("QUIZWIRE_LOG_LEVEL", raising=False)
        args = build_arg_parser().parse_args(["--log-level", "chatty"])

        with pytest.raises(ValueError, match="Log level"):
            config_from_args(args)

    def test_log_level_argument_is_case_insensitive(self, monkeypatch):
        monkeypatch.delenv("QUIZWIRE_LOG_LEVEL", raising=False)
        args = build_arg_parser().parse_args(["--log-level", "warning"])

        assert config_from_args(args).log_level == "WARNING"


class TestEventSinks:

    def test_null_sink_accepts_anything(self):
        NullSink().emit("anything", a=1)

    def test_queue_sink_collects_events_in_order(self):
        sink = QueueSink()

        sink.emit("client_connected", client="1.2.3.4:5")
        sink.emit("session_finished", client="1.2.3.4:5", score=1, total=1)

        assert sink.drain() == [
            ("client_connected", {"client": "1.2.3.4:5"}),
            ("session_finished", {"client": "1.2.3.4:5", "score": 1, "total": 1}),
        ]
        assert sink.drain() == []

    def test_queue_sink_from_many_threads(self):
        sink = QueueSink()

        def worker(n):
            for i in range(100):
                sink.emit("frame_sent", worker=n, i=i)

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(sink.drain()) == 400

    def test_logging_sink_levels_and_extra(self, caplog):
        sink = LoggingSink(logging.getLogger("quizwire.test"))

        with caplog.at_level(logging.DEBUG, logger="quizwire.test"):
            sink.emit("server_started", host="0.0.0.0", port=12345)
            sink.emit("accept_failed", error="boom")
            sink.emit("frame_sent", frame="TOTAL:1")

        levels = [(r.event_type, r.levelno) for r in caplog.records]
        assert levels == [
            ("server_started", logging.INFO),
            ("accept_failed", logging.WARNING),
            ("frame_sent", logging.DEBUG),
        ]
        assert "server_started host=0.0.0.0 port=12345" in caplog.text
