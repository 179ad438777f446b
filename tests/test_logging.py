"""Tests for loguru configuration and helpers."""

import re

import pytest
from loguru import logger

from kmod_deployer.logging import LoggerFactory, setup_logging, stage_context


LINE_PATTERN = re.compile(
    r"^\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2}\.\d{3} \[(?P<level>[A-Z]+)\] (?P<message>.*)$"
)


@pytest.fixture
def log_file(tmp_path):
    return tmp_path / "var" / "log" / "installer.log"


def read_lines(path):
    # Closing the sinks flushes the file.
    logger.remove()
    return path.read_text(encoding="utf-8").splitlines()


class TestSetupLogging:
    """Tests for setup_logging()."""

    def test_creates_parent_directories(self, log_file):
        setup_logging(log_file=log_file, console=False)
        logger.info("hello")
        assert read_lines(log_file)

    def test_line_format(self, log_file):
        setup_logging(log_file=log_file, console=False)
        logger.warning("Secure Boot is enabled")

        (line,) = read_lines(log_file)

        match = LINE_PATTERN.match(line)
        assert match is not None
        assert match.group("level") == "WARNING"
        assert match.group("message") == "Secure Boot is enabled"

    def test_writes_nothing_by_itself(self, log_file):
        """Test configuring logging leaves the log file empty."""
        setup_logging(log_file=log_file, console=False)
        assert read_lines(log_file) == []

    def test_appends_across_runs(self, log_file):
        setup_logging(log_file=log_file, console=False)
        logger.info("first run")
        setup_logging(log_file=log_file, console=False)
        logger.info("second run")

        lines = read_lines(log_file)

        assert [LINE_PATTERN.match(line).group("message") for line in lines] == [
            "first run",
            "second run",
        ]

    def test_debug_level(self, log_file):
        setup_logging(log_file=log_file, console=False)
        logger.debug("hidden")
        setup_logging(debug=True, log_file=log_file, console=False)
        logger.debug("shown")

        assert [line.endswith("shown") for line in read_lines(log_file)] == [True]

    def test_console_sink(self, capsys):
        setup_logging(log_file=None, console=True)
        LoggerFactory.for_lock().info("Acquired exclusive lock")

        err = capsys.readouterr().err

        assert "Acquired exclusive lock" in err
        assert "lock" in err

    def test_braces_are_logged_verbatim(self, log_file):
        setup_logging(log_file=log_file, console=False)
        logger.error("make: struct {int x;} rejected")
        assert read_lines(log_file)[0].endswith("make: struct {int x;} rejected")


class TestBoundLoggers:
    """Tests for bound logger helpers."""

    @pytest.mark.parametrize(
        "factory,source",
        [
            (LoggerFactory.for_pipeline, "pipeline"),
            (LoggerFactory.for_lock, "lock"),
            (LoggerFactory.for_actions, "actions"),
            (LoggerFactory.for_system, "system"),
        ],
    )
    def test_factory_sources(self, factory, source):
        records = []
        logger.add(lambda m: records.append(m.record["extra"]), level="DEBUG")

        factory().info("x")

        assert records[0]["source"] == source

    def test_for_stage(self):
        records = []
        logger.add(lambda m: records.append(m.record["extra"]), level="DEBUG")
        LoggerFactory.for_stage("compile").info("x")
        assert records[0]["tags"] == ["stage", "compile"]


class TestStageContext:
    """Tests for stage_context()."""

    def test_logs_start_and_completion(self, log_messages):
        with stage_context("fetch"):
            pass

        messages = [msg for _, msg in log_messages]
        assert messages[0] == "Stage fetch started"
        assert messages[1].startswith("Stage fetch completed in")

    def test_reraises_and_logs_abort(self, log_messages):
        with pytest.raises(RuntimeError):
            with stage_context("compile"):
                raise RuntimeError("boom")

        assert "aborted" in log_messages[-1][1]
        assert "RuntimeError" in log_messages[-1][1]
        assert all(level == "DEBUG" for level, _ in log_messages)
