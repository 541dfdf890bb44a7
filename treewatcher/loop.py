"""
Event loop module for treewatcher.

The event loop is the single thread of control of a watch run. Each
iteration waits for a signaled handle, resolves it to its directory,
reports every pending change, extends the registry with newly created
directories, and retires handles whose directories are gone.

Changes made inside a new directory before it is registered are not
reported; only changes from the moment its registration completes are.
"""

import logging
import os
from typing import Callable, Hashable, List, Optional, Tuple

from treewatcher.events import EventKind, RawEvent
from treewatcher.registry import WatchRegistry, is_real_directory
from treewatcher.service import InotifyWatchService, WatchService

Reporter = Callable[[EventKind, str], None]


class WatchCancelled(Exception):
    """Raised to end a watch run from a signal handler."""

    pass


def cancel_on_signal(signum, frame):
    """Signal handler turning SIGTERM into a clean cancellation."""
    raise WatchCancelled(f"Received signal {signum}")


class EventLoop:
    """
    Drive a watch service and keep the registry in step with the tree.

    Attributes:
        service: Watch service delivering the notifications.
        registry: Registry of watched directories.
        reporter: Callable receiving (kind, path) for every processed change.
        logger: Logger instance.
        stats: Counters of processed signals, events and retired handles.
    """

    def __init__(
        self,
        service: WatchService,
        registry: WatchRegistry,
        reporter: Reporter,
        logger: Optional[logging.Logger] = None,
    ):
        self.service = service
        self.registry = registry
        self.reporter = reporter
        self.logger = logger or logging.getLogger(__name__)
        self.stats = {"signals": 0, "events": 0, "retired": 0}

    def run(self):
        """
        Process notifications until cancelled or nothing is left to watch.
        """
        if self.registry.is_empty():
            self.logger.warning("No directories are being watched; nothing to do.")
            return

        while True:
            try:
                handle = self.service.wait_for_signal()
            except (KeyboardInterrupt, WatchCancelled):
                self.logger.info("Watch cancelled.")
                return

            self.process(handle)

            if self.registry.is_empty():
                self.logger.info("All watched directories are gone; stopping.")
                return

    def process(self, handle: Hashable) -> List[Tuple[EventKind, str]]:
        """
        Handle one signaled watch handle: resolve, drain, reset.

        Args:
            handle: Handle returned by the watch service.

        Returns:
            List of (kind, path) pairs reported, in drain order.
        """
        self.stats["signals"] += 1
        reported = []

        directory = self.registry.lookup(handle)
        if directory is None:
            discarded = self.service.pending_events(handle)
            self.logger.warning(
                f"Events for unknown watch handle {handle!r}; skipping {len(discarded)} event(s)"
            )
        else:
            for event in self.service.pending_events(handle):
                result = self.dispatch(directory, event)
                if result is not None:
                    reported.append(result)

        if not self.service.reset(handle):
            path = self.registry.retire(handle)
            if path is not None:
                self.stats["retired"] += 1
                self.logger.info(f"Stopped watching {path}: no longer accessible")

        return reported

    def dispatch(self, directory: str, event: RawEvent) -> Optional[Tuple[EventKind, str]]:
        """
        Report one event and register the directory it created, if any.

        Returns:
            The reported (kind, path) pair, or None if the reporter failed.
        """
        path = os.path.join(directory, event.name)
        self.stats["events"] += 1
        result = (event.kind, path)
        try:
            self.reporter(event.kind, path)
        except OSError as e:
            self.logger.error(f"Error reporting {event.kind.value} event for {path}: {e}")
            result = None

        if event.kind is EventKind.CREATED and is_real_directory(path):
            self.registry.register_tree(path)

        return result


def run_watcher(
    root: str,
    reporter: Reporter,
    service_factory: Callable[[], WatchService] = InotifyWatchService,
    logger: Optional[logging.Logger] = None,
) -> EventLoop:
    """
    Watch *root* recursively until cancelled or every directory is gone.

    Raises:
        WatchServiceInitError: If the watch service cannot be created.

    Returns:
        EventLoop: The finished loop, for its stats.
    """
    logger = logger or logging.getLogger(__name__)
    root = os.path.abspath(root)

    with service_factory() as service:
        registry = WatchRegistry(service)
        loop = EventLoop(service, registry, reporter)
        try:
            count = registry.register_tree(root)
            logger.info(f"Watching {root} ({count} directories)")
            loop.run()
        except (KeyboardInterrupt, WatchCancelled):
            logger.info("Watch cancelled.")

    logger.info(
        f"Stopped after {loop.stats['events']} events, "
        f"{loop.stats['retired']} directories retired"
    )
    return loop
