"""
Watch registry for treewatcher.

Keeps the association between live watch handles and the directories they
observe, and registers whole directory trees with the watch service.
"""

import logging
import os
from typing import Dict, Hashable, Iterator, List, Optional

from treewatcher.service import RegistrationError, WatchService


def is_real_directory(path: str) -> bool:
    """True for directories that are not symlinks."""
    return os.path.isdir(path) and not os.path.islink(path)


def walk_directories(root: str, logger: Optional[logging.Logger] = None) -> Iterator[str]:
    """
    Yield *root* and every directory beneath it, parents before children.

    Symlinks are never followed. A directory that cannot be listed is
    logged and skipped without affecting its siblings.

    Args:
        root: Directory to start from.
        logger: Logger for unreadable directories.

    Yields:
        str: Directory paths.
    """
    logger = logger or logging.getLogger(__name__)
    stack = [root]
    while stack:
        current = stack.pop()
        yield current
        try:
            with os.scandir(current) as entries:
                for entry in entries:
                    try:
                        if entry.is_dir(follow_symlinks=False):
                            stack.append(entry.path)
                    except OSError as e:
                        logger.warning(f"Error accessing {entry.path}: {e}")
        except FileNotFoundError:
            logger.debug(f"Directory vanished before it could be listed: {current}")
        except OSError as e:
            logger.warning(f"Error listing directory {current}: {e}")


class WatchRegistry:
    """
    Mapping from watch handle to the directory it observes.

    A directory maps from at most one live handle. Registering a directory
    that is already live replaces its entry: the previous handle, if the
    service issued a different one, is dropped from the registry.

    Attributes:
        service: Watch service issuing the handles.
        logger: Logger instance.
    """

    def __init__(self, service: WatchService, logger: Optional[logging.Logger] = None):
        self.service = service
        self.logger = logger or logging.getLogger(__name__)
        self._paths: Dict[Hashable, str] = {}
        self._handles: Dict[str, Hashable] = {}

    def register_one(self, path: str) -> Optional[Hashable]:
        """
        Register a single directory with the watch service.

        Args:
            path: Directory to watch.

        Returns:
            The watch handle, or None if the directory could not be watched.
        """
        path = os.path.abspath(path)
        try:
            handle = self.service.register(path)
        except RegistrationError as e:
            self.logger.warning(f"Not watching {path}: {e.cause or e}")
            return None

        previous = self._handles.get(path)
        if previous is not None and previous != handle:
            self.logger.debug(f"Replacing handle {previous!r} for {path} with {handle!r}")
            self._paths.pop(previous, None)

        stale_path = self._paths.get(handle)
        if stale_path is not None and stale_path != path:
            self._handles.pop(stale_path, None)

        self._paths[handle] = path
        self._handles[path] = handle
        return handle

    def register_tree(self, root: str) -> int:
        """
        Register *root* and every directory beneath it.

        Returns:
            int: Number of directories successfully registered.
        """
        registered = 0
        for directory in walk_directories(os.path.abspath(root), self.logger):
            if self.register_one(directory) is not None:
                registered += 1
        self.logger.debug(f"Registered {registered} directories under {root}")
        return registered

    def lookup(self, handle: Hashable) -> Optional[str]:
        return self._paths.get(handle)

    def handle_for(self, path: str) -> Optional[Hashable]:
        return self._handles.get(os.path.abspath(path))

    def retire(self, handle: Hashable) -> Optional[str]:
        """Remove the entry for *handle*; returns its path, or None if it was absent."""
        path = self._paths.pop(handle, None)
        if path is not None and self._handles.get(path) == handle:
            del self._handles[path]
        return path

    def is_empty(self) -> bool:
        return not self._paths

    def paths(self) -> List[str]:
        return sorted(self._paths.values())

    def __len__(self):
        return len(self._paths)

    def __contains__(self, handle):
        return handle in self._paths
