"""
Change feed: a process-lifetime version counter with long-poll waiters.

Every successful mutation bumps the version by one and wakes all waiters.
Clients call wait(since, timeout) with the last version they saw and get back
{version, changed}. The counter restarts at 0 with the process; a client
holding a higher version from before a restart gets changed=True at once so
it resynchronizes.
"""
import logging
import threading
import time
from dataclasses import dataclass, asdict
from typing import Any, Dict

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChangeResult:
    version: int
    changed: bool

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class ChangeFeed:
    """Monotonic version counter plus a broadcast condition."""

    def __init__(self):
        self._version = 0
        self._closed = False
        self._cond = threading.Condition()

    @property
    def version(self) -> int:
        with self._cond:
            return self._version

    @property
    def closed(self) -> bool:
        return self._closed

    def bump(self) -> int:
        """Advance the version by exactly one and wake every waiter."""
        with self._cond:
            self._version += 1
            version = self._version
            self._cond.notify_all()
        logger.debug(f"Change feed at version {version}")
        return version

    def wait(self, since: int, timeout: float) -> ChangeResult:
        """
        Block until the version differs from `since` or `timeout` seconds pass.

        Returns immediately with changed=True when `since` is already stale
        (lower, or higher after a restart). After close(), returns at once
        with changed=False unless the version already differs.
        """
        deadline = time.monotonic() + max(0.0, float(timeout))
        with self._cond:
            while self._version == since and not self._closed:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    break
                self._cond.wait(remaining)
            return ChangeResult(version=self._version, changed=self._version != since)

    def close(self) -> None:
        """Release every waiter. Used on server shutdown."""
        with self._cond:
            self._closed = True
            self._cond.notify_all()
        logger.info("Change feed closed; waiters released")
