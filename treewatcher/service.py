"""
Watch service module for treewatcher.

The watch service is the OS notification collaborator of the event loop:
it hands out a handle for every registered directory, signals handles that
have queued events, and reports when a handle is no longer valid.

This module provides:
- The WatchService interface the registry and the event loop rely on
- InotifyWatchService, the Linux implementation built on inotify_simple
- The exceptions raised when a directory or the service itself cannot be used
"""

import logging
import os
from collections import deque
from typing import Deque, Dict, Hashable, List, Optional, Set

from inotify_simple import INotify, flags

from treewatcher.events import EventKind, RawEvent


class WatchServiceError(Exception):
    """Base class for watch service failures."""

    pass


class WatchServiceInitError(WatchServiceError):
    """Raised when the underlying notification service cannot be created."""

    pass


class RegistrationError(WatchServiceError):
    """Raised when a directory cannot be registered with the watch service."""

    def __init__(self, path: str, cause: Optional[BaseException] = None):
        self.path = path
        self.cause = cause
        reason = f": {cause}" if cause else ""
        super().__init__(f"Cannot watch {path}{reason}")


class WatchService:
    """
    Interface of a directory watch service.

    Handles are opaque: the only requirement is that they are hashable and
    unique for the lifetime of a registration.
    """

    def register(self, directory: str) -> Hashable:
        """Watch the immediate children of *directory* and return its handle."""
        raise NotImplementedError

    def wait_for_signal(self) -> Hashable:
        """Block until a handle has pending events and return it."""
        raise NotImplementedError

    def pending_events(self, handle: Hashable) -> List[RawEvent]:
        """Drain the events queued against *handle*."""
        raise NotImplementedError

    def reset(self, handle: Hashable) -> bool:
        """Make *handle* ready to be signaled again; False if it is no longer valid."""
        raise NotImplementedError

    def close(self):
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()


# Renames show up as a delete in the source directory and a create in the
# destination directory.
KIND_FLAGS = (
    (flags.CREATE | flags.MOVED_TO, EventKind.CREATED),
    (flags.DELETE | flags.MOVED_FROM, EventKind.DELETED),
    (flags.MODIFY | flags.ATTRIB, EventKind.MODIFIED),
)

WATCH_MASK = (
    flags.CREATE
    | flags.DELETE
    | flags.MODIFY
    | flags.ATTRIB
    | flags.MOVED_FROM
    | flags.MOVED_TO
    | flags.MOVE_SELF
    | flags.ONLYDIR
    | flags.DONT_FOLLOW
)

# IN_IGNORED follows IN_DELETE_SELF and every other way a watch goes away.
INVALIDATING_FLAGS = flags.IGNORED | flags.MOVE_SELF


def event_kind(mask: int) -> Optional[EventKind]:
    """Map an inotify event mask to an EventKind, or None if it carries no change."""
    for kind_flags, kind in KIND_FLAGS:
        if mask & kind_flags:
            return kind
    return None


class InotifyWatchService(WatchService):
    """
    Watch service backed by Linux inotify.

    inotify reports events for every watch descriptor through one file
    descriptor. Events read from it are queued per watch descriptor, and
    descriptors are signaled in the order their first pending event arrived.
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)
        try:
            self._inotify = INotify()
        except (OSError, AttributeError) as e:
            # AttributeError: the C library has no inotify entry points.
            raise WatchServiceInitError(f"Unable to create inotify instance: {e}") from e

        self._pending: Dict[int, List[RawEvent]] = {}
        self._signaled: Deque[int] = deque()
        self._queued: Set[int] = set()
        self._directories: Dict[int, str] = {}
        self._invalid: Set[int] = set()
        # Descriptors removed with rm_watch whose IN_IGNORED is still in flight.
        self._removed: Set[int] = set()

    def register(self, directory: str) -> int:
        try:
            wd = self._inotify.add_watch(directory, WATCH_MASK)
        except OSError as e:
            raise RegistrationError(directory, e) from e
        self._invalid.discard(wd)
        self._removed.discard(wd)
        self._directories[wd] = directory
        self.logger.debug(f"Watching {directory} (wd={wd})")
        return wd

    def wait_for_signal(self, timeout: Optional[int] = None) -> Optional[int]:
        """
        Block until a watch descriptor is signaled and return it.

        Args:
            timeout: Milliseconds to wait for inotify to become readable, or
                None to wait indefinitely.

        Returns:
            The signaled watch descriptor, or None if the timeout expired.
        """
        while not self._signaled:
            for event in self._inotify.read(timeout=timeout):
                self._enqueue(event)
            if timeout is not None and not self._signaled:
                return None
        wd = self._signaled.popleft()
        self._queued.discard(wd)
        return wd

    def pending_events(self, handle: int) -> List[RawEvent]:
        return self._pending.pop(handle, [])

    def reset(self, handle: int) -> bool:
        if handle in self._invalid:
            self._invalid.discard(handle)
            self._pending.pop(handle, None)
            self._directories.pop(handle, None)
            return False
        return True

    def close(self):
        self._inotify.close()

    def _signal(self, wd: int):
        if wd not in self._queued:
            self._queued.add(wd)
            self._signaled.append(wd)

    def _enqueue(self, event):
        if event.mask & flags.Q_OVERFLOW:
            self.logger.warning("inotify event queue overflowed; some changes were lost")
            return

        if event.mask & INVALIDATING_FLAGS:
            if event.mask & flags.IGNORED and event.wd in self._removed:
                self._removed.discard(event.wd)
            elif event.mask & flags.MOVE_SELF:
                self._detach(event.wd)
            else:
                self._invalidate(event.wd)
            return

        kind = event_kind(event.mask)
        if kind is None or not event.name:
            return
        self._pending.setdefault(event.wd, []).append(RawEvent(kind, event.wd, event.name))
        self._signal(event.wd)

    def _invalidate(self, wd: int):
        if wd not in self._invalid:
            self._invalid.add(wd)
            self._signal(wd)

    def _detach(self, wd: int):
        """
        Invalidate a watched directory that moved away, and every watch
        registered below it: their recorded paths are all stale.
        """
        doomed = [wd]
        directory = self._directories.get(wd)
        if directory is not None:
            prefix = directory.rstrip(os.sep) + os.sep
            doomed.extend(d for d, path in self._directories.items() if path.startswith(prefix))
        for d in doomed:
            if d not in self._invalid:
                self._remove_watch(d)
                self._invalidate(d)

    def _remove_watch(self, wd: int):
        try:
            self._inotify.rm_watch(wd)
        except OSError as e:
            self.logger.debug(f"rm_watch({wd}) failed: {e}")
            return
        self._removed.add(wd)
