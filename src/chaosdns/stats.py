from __future__ import annotations

import logging
import threading
from typing import Dict, Optional

logger = logging.getLogger(__name__)

COUNTERS = (
    "queries",
    "answered",
    "nxdomain",
    "unsupported",
    "refused",
    "dropped",
    "delayed",
    "reloads",
    "reload_failures",
)


class StatsCollector:
    """Brief: Thread-safe in-memory counters for queries and reloads.

    Inputs:
      - None.

    Outputs:
      - StatsCollector instance; counters start at zero.

    Example:
      >>> s = StatsCollector()
      >>> s.inc("queries")
      >>> s.snapshot()["queries"]
      1
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._counts: Dict[str, int] = {name: 0 for name in COUNTERS}

    def inc(self, name: str, amount: int = 1) -> None:
        with self._lock:
            self._counts[name] = self._counts.get(name, 0) + int(amount)

    def snapshot(self, reset: bool = False) -> Dict[str, int]:
        """Brief: Copy the counters, optionally zeroing them afterwards.

        Inputs:
          - reset: When True, all counters are set back to zero atomically
            with the copy.

        Outputs:
          - dict: counter name -> value.
        """
        with self._lock:
            out = dict(self._counts)
            if reset:
                self._counts = {name: 0 for name in COUNTERS}
        return out

    def log_summary(self, label: str, reset: bool = False) -> Dict[str, int]:
        """Log the current counters on one line and return them."""
        counts = self.snapshot(reset=reset)
        summary = " ".join(f"{k}={v}" for k, v in counts.items())
        logger.info("%s: %s", label, summary)
        return counts


def maybe_inc(stats: Optional[StatsCollector], name: str) -> None:
    if stats is not None:
        stats.inc(name)
