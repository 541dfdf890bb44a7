"""
Event types shared by the watch service, the registry and the event loop.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Hashable


class EventKind(Enum):
    """Kinds of change reported for entries of a watched directory."""

    CREATED = "created"
    DELETED = "deleted"
    MODIFIED = "modified"


@dataclass(frozen=True)
class RawEvent:
    """
    A single notification delivered by the watch service.

    Attributes:
        kind: What happened to the entry.
        handle: Watch handle the event was reported against.
        name: Name of the affected entry, relative to the handle's directory.
    """

    kind: EventKind
    handle: Hashable
    name: str
