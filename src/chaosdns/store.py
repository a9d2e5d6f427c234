from __future__ import annotations

import logging
import threading

from .snapshot import ConfigSnapshot

logger = logging.getLogger(__name__)


class ConfigStore:
    """Brief: Holds the one live ConfigSnapshot and swaps it atomically.

    Inputs:
      - initial: The first fully loaded snapshot (required; there is no
        "empty" store).

    Outputs:
      - ConfigStore instance.

    Notes:
      - current() is a single attribute read. Rebinding an attribute is atomic
        in CPython, so readers never wait on replace() and never see a half
        built snapshot: the snapshot is complete before it is published.
      - replace() takes a writer-only lock so that concurrent reloads are
        applied one at a time and the generation counter stays exact.
      - Callers keep the reference they got from current() for the whole
        resolution; a later replace() does not affect it.
    """

    def __init__(self, initial: ConfigSnapshot) -> None:
        if not isinstance(initial, ConfigSnapshot):
            raise TypeError("ConfigStore requires a ConfigSnapshot")
        self._current = initial
        self._generation = 1
        self._write_lock = threading.Lock()

    def current(self) -> ConfigSnapshot:
        """Return the snapshot that is live right now."""
        return self._current

    @property
    def generation(self) -> int:
        """Number of snapshots published so far (1 after construction)."""
        return self._generation

    def replace(self, new_snapshot: ConfigSnapshot) -> ConfigSnapshot:
        """Brief: Publish new_snapshot for all later current() calls.

        Inputs:
          - new_snapshot: Fully built, already validated snapshot.

        Outputs:
          - ConfigSnapshot: The snapshot that was replaced. In-flight
            resolutions that still hold it keep working; it is released once
            they drop their reference.
        """
        if not isinstance(new_snapshot, ConfigSnapshot):
            raise TypeError("ConfigStore.replace requires a ConfigSnapshot")
        with self._write_lock:
            old = self._current
            self._current = new_snapshot
            self._generation += 1
            generation = self._generation
        logger.debug("Published configuration generation %d", generation)
        return old
