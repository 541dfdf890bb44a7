"""
Output collaborators receiving the changes processed by the event loop.

A reporter is any callable taking ``(kind, path)``.
"""

import json
import logging
import time
from typing import Optional

from rich.console import Console
from rich.text import Text

from treewatcher.events import EventKind

OUTPUT_FORMATS = ("text", "json")

KIND_STYLES = {
    EventKind.CREATED: "green",
    EventKind.DELETED: "red",
    EventKind.MODIFIED: "yellow",
}


class ConsoleReporter:
    """
    Print each change to a rich console, as styled text or as JSON lines.

    Attributes:
        console: Console the changes are printed to.
        fmt: "text" or "json".
    """

    def __init__(self, console: Optional[Console] = None, fmt: str = "text"):
        if fmt not in OUTPUT_FORMATS:
            raise ValueError(f"Unknown output format: {fmt}")
        self.console = console or Console()
        self.fmt = fmt

    def __call__(self, kind: EventKind, path: str):
        if self.fmt == "json":
            record = {"kind": kind.value, "path": path, "timestamp": time.time()}
            self.console.print(json.dumps(record), markup=False, highlight=False, soft_wrap=True)
        else:
            line = Text.assemble((f"{kind.name:<8}", KIND_STYLES[kind]), " ", path)
            self.console.print(line, highlight=False, soft_wrap=True)


class LoggingReporter:
    """Log each change at INFO level; used when no terminal is attached."""

    def __init__(self, logger: logging.Logger):
        self.logger = logger

    def __call__(self, kind: EventKind, path: str):
        self.logger.info(f"{kind.name} {path}")
