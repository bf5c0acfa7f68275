"""Removal of materialized assets at server shutdown."""

import logging
import threading
from pathlib import Path

from .errors import CleanupError

logger = logging.getLogger(__name__)


class PendingCleanup:
    """Paths to delete when the server stops.

    Every local render registers the assets it wrote. Requests run on
    separate threads, so registration is guarded by a lock. A path is kept
    once no matter how many renders wrote it.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._paths: dict[Path, None] = {}

    def register(self, paths: list[Path]) -> None:
        """Record paths for removal at shutdown."""
        with self._lock:
            for path in paths:
                self._paths.setdefault(Path(path), None)

    @property
    def pending(self) -> list[Path]:
        """Paths currently awaiting removal, in registration order."""
        with self._lock:
            return list(self._paths)

    def __len__(self) -> int:
        with self._lock:
            return len(self._paths)

    def __bool__(self) -> bool:
        # An empty collection is still a live collection
        return True

    def drain(self) -> list[Path]:
        """Delete every registered path and forget them.

        Paths that are already gone are skipped. All removals are attempted
        before any failure is reported.

        Returns:
            Paths that were removed.

        Raises:
            CleanupError: If one or more paths could not be removed.
        """
        with self._lock:
            paths = list(self._paths)
            self._paths.clear()

        removed = []
        failures: list[tuple[Path, OSError]] = []
        for path in paths:
            try:
                path.unlink()
            except FileNotFoundError:
                logger.debug("Asset already removed: %s", path)
                continue
            except OSError as e:
                failures.append((path, e))
                continue
            logger.info("Removed asset %s", path)
            removed.append(path)

        if failures:
            raise CleanupError(failures)
        return removed
