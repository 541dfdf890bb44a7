import io
import json
import logging

import pytest
from rich.console import Console

from treewatcher.events import EventKind
from treewatcher.output import ConsoleReporter, LoggingReporter


def make_console():
    return Console(file=io.StringIO(), width=200, color_system=None)


def test_text_output():
    console = make_console()
    reporter = ConsoleReporter(console=console)

    reporter(EventKind.CREATED, "/tmp/R/a")
    reporter(EventKind.DELETED, "/tmp/R/[weird] name")

    lines = console.file.getvalue().splitlines()
    assert lines[0].split() == ["CREATED", "/tmp/R/a"]
    # Paths are printed verbatim, never interpreted as markup.
    assert lines[1] == "DELETED  /tmp/R/[weird] name"


def test_json_output():
    console = make_console()
    reporter = ConsoleReporter(console=console, fmt="json")

    reporter(EventKind.MODIFIED, "/tmp/R/f.txt")

    record = json.loads(console.file.getvalue())
    assert record["kind"] == "modified"
    assert record["path"] == "/tmp/R/f.txt"
    assert "timestamp" in record


def test_unknown_format_is_rejected():
    with pytest.raises(ValueError):
        ConsoleReporter(console=make_console(), fmt="xml")


def test_logging_reporter(caplog):
    reporter = LoggingReporter(logging.getLogger("treewatcher-test-events"))

    with caplog.at_level(logging.INFO, logger="treewatcher-test-events"):
        reporter(EventKind.DELETED, "/tmp/R/a")

    assert "DELETED /tmp/R/a" in caplog.text
