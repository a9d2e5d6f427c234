from __future__ import annotations

import argparse
import logging
import signal
import threading
from typing import List, Optional

from .chaos import ChaosPolicy, make_random
from .config.config_parser import (
    DEFAULT_CONFIG_PATH,
    ConfigLoadError,
    build_snapshot,
    parse_config_file,
)
from .config.config_models import ReloadConfig
from .config.logging_config import init_logging
from .reload import ReloadController
from .resolver import QueryResolver
from .servers.server import DNSResponder, install_responder, resolve_query_bytes
from .servers.tcp_server import TCPServer
from .servers.udp_server import UDPServer
from .snapshot import ConfigSnapshot
from .srv import SrvSelector
from .stats import StatsCollector
from .store import ConfigStore


def _warn_on_static_changes(old: ConfigSnapshot, new: ConfigSnapshot) -> None:
    """Listeners are bound once; point out reloads that would need a restart."""
    changed = [
        key
        for key in ("listen_host", "listen_port", "udp", "tcp", "seed")
        if getattr(old, key) != getattr(new, key)
    ]
    if changed:
        logging.getLogger("chaosdns.main").warning(
            "Reloaded configuration changes %s; restart to apply", ", ".join(changed)
        )


def main(argv: List[str] | None = None) -> int:
    """
    Main entry point for the mock DNS responder.

    Parses arguments, loads the configuration, starts the enabled listeners
    and the config watcher, then waits for a termination signal.

    Args:
        argv: Command-line arguments.

    Returns:
        An exit code: 0 on clean shutdown, 1 when the initial configuration
        is invalid or a listener cannot be bound, 2 on SIGTERM/SIGINT.

    Example use:
        CLI:
            chaosdns --config conf/conf.yaml
    """
    parser = argparse.ArgumentParser(description="Mock DNS responder with chaos injection")
    parser.add_argument(
        "--config", default=DEFAULT_CONFIG_PATH, help="Path to YAML config"
    )
    parser.add_argument(
        "--no-watch",
        action="store_true",
        help="Do not reload the configuration when the file changes",
    )
    args = parser.parse_args(argv)

    try:
        cfg = parse_config_file(args.config)
        snapshot = build_snapshot(cfg, config_path=args.config)
    except ConfigLoadError as exc:
        init_logging(None)
        logging.getLogger("chaosdns.main").error("Fatal: %s", exc)
        return 1

    init_logging(cfg.get("logging"), debug=snapshot.debug)
    logger = logging.getLogger("chaosdns.main")
    logger.info("Loaded config from %s", args.config)
    if snapshot.debug:
        logger.debug("Configuration: %r", snapshot.describe())

    rng = make_random(snapshot.seed)
    resolver = QueryResolver(ChaosPolicy(rng), SrvSelector(rng))
    store = ConfigStore(snapshot)
    stats = StatsCollector()
    responder = DNSResponder(store, resolver, stats)
    install_responder(responder)

    udp_server: Optional[UDPServer] = None
    udp_thread: Optional[threading.Thread] = None
    tcp_server: Optional[TCPServer] = None
    reloader: Optional[ReloadController] = None
    shutdown_event = threading.Event()
    exit_code = 0

    def _request_shutdown(reason: str, code: int) -> None:
        nonlocal exit_code
        if shutdown_event.is_set():
            return
        exit_code = code
        logger.info("Received %s, initiating shutdown (exit code=%d)", reason, code)
        shutdown_event.set()

    try:
        if snapshot.udp:
            udp_server = UDPServer(
                snapshot.listen_host, snapshot.listen_port, resolve_query_bytes
            )
            udp_thread = threading.Thread(
                target=udp_server.serve_forever, name="chaosdns-udp", daemon=True
            )
            udp_thread.start()
            logger.info("Starting UDP listener on %s:%d", *udp_server.address)
        if snapshot.tcp:
            tcp_server = TCPServer(
                snapshot.listen_host, snapshot.listen_port, resolve_query_bytes
            )
            tcp_server.start()
            logger.info("Starting TCP listener on %s:%d", *tcp_server.address)
    except OSError as exc:
        logger.error(
            "Fatal: cannot bind %s:%d: %s",
            snapshot.listen_host,
            snapshot.listen_port,
            exc,
        )
        if udp_server is not None:
            udp_server.stop()
        install_responder(None)
        return 1

    reload_cfg = ReloadConfig(**(cfg.get("reload") or {}))
    reloader = ReloadController(
        args.config,
        store,
        min_interval=reload_cfg.min_interval_seconds,
        poll_interval=reload_cfg.poll_interval_seconds,
        stats=stats,
        on_reload=_warn_on_static_changes,
    )
    if reload_cfg.enabled and not args.no_watch:
        reloader.start()

    def _sigusr1_handler(_signum, _frame):
        logger.info("SIGUSR1: reloading %s", args.config)
        threading.Thread(target=reloader.reload_now, daemon=True).start()

    def _sigusr2_handler(_signum, _frame):
        stats.log_summary("SIGUSR2 statistics", reset=True)

    handlers = {
        "SIGUSR1": _sigusr1_handler,
        "SIGUSR2": _sigusr2_handler,
        "SIGHUP": lambda _s, _f: _request_shutdown("SIGHUP", 0),
        "SIGTERM": lambda _s, _f: _request_shutdown("SIGTERM", 2),
        "SIGINT": lambda _s, _f: _request_shutdown("SIGINT", 2),
    }
    for name, handler in handlers.items():
        signum = getattr(signal, name, None)
        if signum is None:
            continue
        try:
            signal.signal(signum, handler)
        except ValueError:
            # Not on the main thread (e.g. embedded in tests).
            logger.warning("Could not install %s handler", name)

    logger.info("Startup Completed")

    try:
        while not shutdown_event.wait(1.0):
            if udp_thread is not None and not udp_thread.is_alive():
                logger.error("UDP listener exited unexpectedly")
                exit_code = 1
                break
    except KeyboardInterrupt:
        logger.info("Received interrupt, shutting down")
    finally:
        reloader.close()
        if udp_server is not None:
            udp_server.stop()
        if udp_thread is not None:
            udp_thread.join(timeout=5.0)
        if tcp_server is not None:
            tcp_server.stop()
        install_responder(None)
        stats.log_summary("Final statistics")

    return exit_code


if __name__ == "__main__":
    raise SystemExit(main())
