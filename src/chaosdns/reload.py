from __future__ import annotations

import logging
import os
import pathlib
import threading
import time
from typing import Callable, Optional

from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from .config.config_parser import ConfigLoadError, load_snapshot
from .snapshot import ConfigSnapshot
from .stats import StatsCollector, maybe_inc
from .store import ConfigStore

logger = logging.getLogger(__name__)


class ReloadController:
    """
    Brief: Rebuild the configuration snapshot when the config file changes.

    Inputs:
      - config_path: YAML file to watch and reload.
      - store: ConfigStore receiving new snapshots.
      - loader: Callable path -> ConfigSnapshot (defaults to load_snapshot);
        raises ConfigLoadError on bad input.
      - min_interval: Seconds; change events closer together than this are
        coalesced into one deferred reload (0 disables coalescing).
      - poll_interval: Seconds; when > 0 a stat-polling thread runs next to
        the watchdog observer for filesystems that do not deliver events.
      - stats: Optional StatsCollector counting reloads and failures.
      - on_reload: Optional callback invoked with (old, new) after a swap.

    Outputs:
      - ReloadController instance; call start() to begin watching.

    Notes:
      - The new snapshot is fully built before ConfigStore.replace() is called;
        a failed load never touches the store.
      - Reloads are serialized, so notifications are applied in the order they
        are handled and the last successful load wins.
    """

    def __init__(
        self,
        config_path: str,
        store: ConfigStore,
        *,
        loader: Callable[[str], ConfigSnapshot] = load_snapshot,
        min_interval: float = 0.0,
        poll_interval: float = 0.0,
        stats: Optional[StatsCollector] = None,
        on_reload: Optional[Callable[[ConfigSnapshot, ConfigSnapshot], None]] = None,
    ) -> None:
        self.config_path = os.path.expanduser(str(config_path))
        self.store = store
        self._loader = loader
        self._min_interval = max(0.0, float(min_interval))
        self._poll_interval = max(0.0, float(poll_interval))
        self._stats = stats
        self._on_reload = on_reload

        self._reload_lock = threading.Lock()
        self._timer_lock = threading.Lock()
        self._debounce_timer: Optional[threading.Timer] = None
        self._reload_pending = False
        self._last_reload_ts = 0.0

        self._observer = None
        self._poll_stop = threading.Event()
        self._poll_thread: Optional[threading.Thread] = None
        self._last_stat = None

    def reload_now(self) -> bool:
        """Brief: Load the file and publish it if it is valid.

        Inputs:
          - None.

        Outputs:
          - bool: True when a new snapshot was published, False when the load
            failed and the previous snapshot stays active.
        """
        with self._reload_lock:
            self._last_reload_ts = time.monotonic()
            try:
                new = self._loader(self.config_path)
            except ConfigLoadError as exc:
                maybe_inc(self._stats, "reload_failures")
                logger.warning(
                    "Reload of %s rejected; keeping previous configuration: %s",
                    self.config_path,
                    exc,
                )
                return False

            old = self.store.replace(new)
            maybe_inc(self._stats, "reloads")
            logger.info("Reloaded %s (generation %d)", self.config_path, self.store.generation)
            if new.debug:
                logger.debug("Configuration: %r", new.describe())
            if self._on_reload is not None:
                self._on_reload(old, new)
            return True

    def notify_changed(self) -> None:
        """Brief: Entry point for "configuration source modified" events.

        Inputs:
          - None.

        Outputs:
          - None; reloads immediately or schedules a deferred reload when the
            previous reload happened less than min_interval seconds ago.
        """
        if self._min_interval > 0.0:
            elapsed = time.monotonic() - self._last_reload_ts
            if elapsed < self._min_interval:
                self._schedule_deferred_reload(self._min_interval - elapsed)
                return
        self.reload_now()

    def _schedule_deferred_reload(self, delay: float) -> None:
        with self._timer_lock:
            self._reload_pending = True
            if self._debounce_timer is not None:
                # The timer thread re-checks _reload_pending after each load.
                return

            logger.debug("Deferring reload of %s for %.3fs", self.config_path, delay)
            timer = threading.Timer(delay, self._run_deferred_reload)
            timer.daemon = True
            self._debounce_timer = timer
            timer.start()

    def _run_deferred_reload(self) -> None:
        """Reload until no notification arrived during the previous load."""
        while True:
            with self._timer_lock:
                if not self._reload_pending or self._debounce_timer is None:
                    self._debounce_timer = None
                    return
                self._reload_pending = False
            self.reload_now()

    class _WatchdogHandler(FileSystemEventHandler):
        """Forwards write-like events on the config file to the controller."""

        def __init__(self, controller: "ReloadController", watched: pathlib.Path) -> None:
            super().__init__()
            self._controller = controller
            self._watched = watched

        def _matches(self, raw: Optional[str]) -> bool:
            if not raw:
                return False
            return pathlib.Path(os.fsdecode(raw)).resolve() == self._watched

        def on_any_event(self, event) -> None:  # type: ignore[override]
            if getattr(event, "is_directory", False):
                return
            # Editors often save via create+rename, so those count as writes.
            if getattr(event, "event_type", None) not in {"modified", "created", "moved"}:
                return
            if self._matches(getattr(event, "src_path", None)) or self._matches(
                getattr(event, "dest_path", None)
            ):
                self._controller.notify_changed()

    def start(self) -> None:
        """Start the watchdog observer and, when configured, the stat poller."""
        watched = pathlib.Path(self.config_path).resolve()
        handler = self._WatchdogHandler(self, watched)
        observer = Observer()
        observer.schedule(handler, str(watched.parent), recursive=False)
        observer.daemon = True
        observer.start()
        self._observer = observer
        logger.info("Watching %s for changes", watched)

        if self._poll_interval > 0.0:
            self._last_stat = self._stat()
            self._poll_stop.clear()
            thread = threading.Thread(
                target=self._poll_loop, name="chaosdns-config-poller", daemon=True
            )
            thread.start()
            self._poll_thread = thread

    def _stat(self):
        try:
            st = os.stat(self.config_path)
        except OSError:
            return None
        return (st.st_ino, st.st_size, st.st_mtime_ns)

    def _poll_loop(self) -> None:
        while not self._poll_stop.wait(self._poll_interval):
            current = self._stat()
            if current != self._last_stat:
                self._last_stat = current
                self.notify_changed()

    def close(self) -> None:
        """Stop the observer, the poller and any pending deferred reload."""
        observer = self._observer
        if observer is not None:
            observer.stop()
            observer.join(timeout=2.0)
            self._observer = None

        self._poll_stop.set()
        if self._poll_thread is not None:
            self._poll_thread.join(timeout=2.0)
            self._poll_thread = None

        with self._timer_lock:
            if self._debounce_timer is not None:
                self._debounce_timer.cancel()
                self._debounce_timer = None
            self._reload_pending = False
