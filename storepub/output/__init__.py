"""Console output and logging sinks."""

from .console import ConsoleProtocol, MockConsole, OutputRecord, RichConsole, Style
from .log import LogEntry, LogLevel, LogSink, MemoryLogSink, PublishLogger, RichLogSink

__all__ = [
    "ConsoleProtocol",
    "LogEntry",
    "LogLevel",
    "LogSink",
    "MemoryLogSink",
    "MockConsole",
    "OutputRecord",
    "PublishLogger",
    "RichConsole",
    "RichLogSink",
    "Style",
]
