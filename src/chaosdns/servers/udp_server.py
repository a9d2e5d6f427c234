import logging
import socketserver
import threading
from typing import Callable

logger = logging.getLogger("chaosdns.server")

Resolver = Callable[[bytes, str], bytes]


class DNSUDPHandler(socketserver.BaseRequestHandler):
    """
    Handles one UDP DNS datagram.

    socketserver runs each datagram on its own thread, so a query held back by
    a chaos delay does not stall other queries.
    """

    resolver: Resolver = staticmethod(lambda data, ip: b"")  # type: ignore[assignment]

    def handle(self) -> None:
        data, sock = self.request
        client_ip = self.client_address[0]
        wire = self.resolver(data, client_ip)
        # An empty response means "send nothing" (dropped or malformed query).
        if not wire:
            return
        try:
            sock.sendto(wire, self.client_address)
        except OSError as exc:
            logger.debug("UDP send to %s failed: %s", client_ip, exc)


class UDPServer:
    """A threaded UDP DNS listener.

    Example use:
        >>> server = UDPServer("127.0.0.1", 5353, resolver)  # doctest: +SKIP
        >>> threading.Thread(target=server.serve_forever, daemon=True).start()  # doctest: +SKIP
        >>> server.stop()  # doctest: +SKIP
    """

    def __init__(self, host: str, port: int, resolver: Resolver) -> None:
        """Bind the listener.

        Inputs:
            host: Address to listen on.
            port: Port to listen on (0 picks a free port).
            resolver: Callable (query_bytes, client_ip) -> response_bytes.

        Raises:
            OSError: when the socket cannot be bound.
        """
        handler_cls = type(
            "BoundDNSUDPHandler", (DNSUDPHandler,), {"resolver": staticmethod(resolver)}
        )
        try:
            self.server = socketserver.ThreadingUDPServer((host, port), handler_cls)
        except PermissionError as e:
            logger.error(
                "Permission denied when binding to %s:%d. Try a port >1024 or run with elevated privileges. Original error: %s",
                host,
                port,
                e,
            )
            raise
        self.server.daemon_threads = True
        self._serving = threading.Event()
        logger.debug("DNS UDP server bound to %s:%d", *self.address)

    @property
    def address(self):
        """(host, port) actually bound."""
        return self.server.server_address[:2]

    def serve_forever(self) -> None:
        """Run the request loop until stop() is called."""
        self._serving.set()
        self.server.serve_forever()

    def stop(self) -> None:
        """Request graceful shutdown and close the underlying UDP socket."""
        try:
            if self._serving.is_set():
                self.server.shutdown()
        finally:
            self.server.server_close()
