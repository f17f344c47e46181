"""Tests for logging and console output."""

import io
import sys
from pathlib import Path

import pytest
from loguru import logger
from rich.console import Console

from tube_keeper.core import output


@pytest.fixture
def captured(monkeypatch: pytest.MonkeyPatch) -> io.StringIO:
    """Swap the shared console for one writing to a buffer."""
    buffer = io.StringIO()
    monkeypatch.setattr(output, "_console", Console(file=buffer, width=120))
    return buffer


@pytest.fixture
def restore_logger():
    yield
    logger.remove()
    logger.add(sys.stderr)


class TestGetConsole:
    """Tests for the shared console."""

    def test_returns_same_instance(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """The console is created once and reused."""
        monkeypatch.setattr(output, "_console", None)
        first = output.get_console()
        assert isinstance(first, Console)
        assert output.get_console() is first

    def test_reexported_from_core(self) -> None:
        """The CLI imports the console helper from the core package."""
        from tube_keeper.core import get_console

        assert get_console is output.get_console


class TestLog:
    """Tests for log()."""

    def test_prints_to_shared_console(self, captured: io.StringIO) -> None:
        """User-facing messages reach the shared console."""
        output.log("Synced 3 tracks", level="success")
        assert "Synced 3 tracks" in captured.getvalue()

    def test_quiet_does_not_print(self, captured: io.StringIO) -> None:
        """quiet=True only logs."""
        output.log("background detail", quiet=True)
        assert captured.getvalue() == ""

    def test_debug_is_not_printed(self, captured: io.StringIO) -> None:
        """Debug messages go to the log file only."""
        output.log("internal state", level="debug")
        assert captured.getvalue() == ""

    def test_messages_are_written_to_log_file(
        self, tmp_path: Path, captured: io.StringIO, restore_logger
    ) -> None:
        """setup_loguru adds a file sink that log() writes to."""
        log_file = output.get_log_file_path(tmp_path / "data")
        output.setup_loguru(log_file, level="DEBUG")

        output.log("[brackets] kept literal", level="warning")
        logger.remove()

        content = log_file.read_text(encoding="utf-8")
        assert "WARNING" in content
        assert "[brackets] kept literal" in content
        assert "[brackets] kept literal" in captured.getvalue()
