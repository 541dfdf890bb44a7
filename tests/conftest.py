"""
Shared fixtures for the treewatcher tests.

FakeWatchService stands in for inotify: tests script which handles get
signaled and which events are queued against them.
"""

import os
from collections import deque

import pytest

from treewatcher.events import RawEvent
from treewatcher.registry import WatchRegistry
from treewatcher.service import RegistrationError, WatchService


class FakeWatchService(WatchService):
    """In-memory watch service. Running out of signals acts as Ctrl-C."""

    def __init__(self):
        self.watches = {}
        self.events = {}
        self.signals = deque()
        self.invalid = set()
        self.unwatchable = set()
        self.register_calls = []
        self.closed = False
        self._next_handle = 1

    def register(self, directory):
        self.register_calls.append(directory)
        if directory in self.unwatchable or not os.path.isdir(directory):
            raise RegistrationError(directory, PermissionError(13, "Permission denied"))
        # Like inotify, watching the same directory again yields the same handle.
        for handle, path in self.watches.items():
            if path == directory and handle not in self.invalid:
                return handle
        handle = self._next_handle
        self._next_handle += 1
        self.watches[handle] = directory
        return handle

    def wait_for_signal(self):
        if not self.signals:
            raise KeyboardInterrupt
        return self.signals.popleft()

    def pending_events(self, handle):
        return self.events.pop(handle, [])

    def reset(self, handle):
        return handle not in self.invalid

    def close(self):
        self.closed = True

    def emit(self, handle, kind, name):
        self.events.setdefault(handle, []).append(RawEvent(kind, handle, name))
        if handle not in self.signals:
            self.signals.append(handle)

    def invalidate(self, handle):
        self.invalid.add(handle)
        if handle not in self.signals:
            self.signals.append(handle)


@pytest.fixture
def service():
    return FakeWatchService()


@pytest.fixture
def registry(service):
    return WatchRegistry(service)


@pytest.fixture
def reported():
    return []


@pytest.fixture
def reporter(reported):
    def record(kind, path):
        reported.append((kind, path))

    return record


@pytest.fixture
def tree(tmp_path):
    """A root directory with nested subdirectories and a few files."""
    root = tmp_path / "root"
    (root / "a" / "b").mkdir(parents=True)
    (root / "c").mkdir()
    (root / "a" / "file.txt").write_text("content")
    (root / "c" / "other.txt").write_text("content")
    return root
