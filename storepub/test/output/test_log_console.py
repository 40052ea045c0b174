"""Tests for storepub.output (logger, sinks, console)."""

from __future__ import annotations

import pytest

from storepub.core.clock import ManualClock
from storepub.output.console import MockConsole, RichConsole, Style
from storepub.output.log import LogLevel, MemoryLogSink, PublishLogger, RichLogSink
from storepub.secrets.vault import REDACTED


class TestPublishLogger:
    def test_entries_reach_sink_and_history(self, clock: ManualClock) -> None:
        sink = MemoryLogSink()
        logger = PublishLogger(sink, clock=clock)
        logger.info("Uploading", {"bundleId": "com.example.app"}, code="UPLOAD_START")
        logger.warn("slow")

        assert sink.messages == ["Uploading", "slow"]
        assert [e.level for e in logger.entries()] == [LogLevel.INFO, LogLevel.WARN]
        assert logger.by_code("UPLOAD_START")[0].data == {"bundleId": "com.example.app"}
        assert sink.has_warning()

    def test_history_is_bounded(self) -> None:
        logger = PublishLogger(max_entries=3)
        for i in range(5):
            logger.debug(f"m{i}")
        assert [e.message for e in logger.entries()] == ["m2", "m3", "m4"]

    def test_clear_and_export(self, clock: ManualClock) -> None:
        logger = PublishLogger(clock=clock)
        logger.error("boom", code="JOB_FAILED")
        assert logger.export() == "2024-01-01T00:00:00Z [ERROR] [JOB_FAILED] boom"
        logger.clear()
        assert logger.entries() == []

    def test_known_secrets_are_redacted(self) -> None:
        sink = MemoryLogSink()
        logger = PublishLogger(sink, secrets={"EAS_ACCESS_TOKEN": "expo-token-123456"})
        logger.info("using expo-token-123456", {"note": "expo-token-123456"})

        entry = sink.entries[0]
        assert entry.message == f"using {REDACTED}"
        assert entry.data == {"note": REDACTED}

    def test_sensitive_keys_and_long_values_are_redacted(self) -> None:
        logger = PublishLogger()
        entry = logger.info(
            "ctx",
            {"password": "pw", "nested": {"token": "t"}, "blob": "x" * 51, "count": 3},
        )
        assert entry.data == {
            "password": REDACTED,
            "nested": {"token": REDACTED},
            "blob": REDACTED,
            "count": 3,
        }

    def test_iteration(self) -> None:
        logger = PublishLogger()
        logger.info("a")
        assert [e.message for e in logger] == ["a"]


class TestRichLogSink:
    def test_filters_below_min_level(self, capsys: pytest.CaptureFixture[str]) -> None:
        logger = PublishLogger(RichLogSink(min_level=LogLevel.WARN))
        logger.info("hidden message")
        logger.warn("visible [not markup]", code="JOB_RETRY_SCHEDULED")

        err = capsys.readouterr().err
        assert "hidden message" not in err
        assert "visible [not markup]" in err
        assert "[JOB_RETRY_SCHEDULED]" in err


class TestConsoles:
    def test_mock_console_records_styles(self) -> None:
        console = MockConsole()
        console.header("Preflight")
        console.success("done")
        console.warning("careful")
        console.bullet("item", Style.DIM)

        assert console.text == "Preflight\nok done\nwarning: careful\n  - item"
        assert not console.has_error()
        console.error("bad")
        assert console.has_error()
        assert console.find("careful")[0].style == Style.WARNING

    def test_rich_console_escapes_markup(self, capsys: pytest.CaptureFixture[str]) -> None:
        console = RichConsole()
        console.error("missing [bold]field[/bold]")
        console.print("[dim]literal[/dim]")

        out = capsys.readouterr().out
        assert "error: missing [bold]field[/bold]" in out
        assert "[dim]literal[/dim]" in out
