import asyncio
import logging
import socketserver
import threading
from typing import Callable, Optional, Tuple

logger = logging.getLogger("chaosdns.server")

Resolver = Callable[[bytes, str], bytes]


async def _read_exact(reader: asyncio.StreamReader, n: int) -> bytes:
    """
    Read exactly n bytes from an asyncio StreamReader.

    Inputs:
      - reader: asyncio.StreamReader
      - n: Number of bytes to read
    Outputs:
      - bytes: Exactly n bytes unless EOF occurs early.
    """
    data = b""
    while len(data) < n:
        chunk = await reader.read(n - len(data))
        if not chunk:
            break
        data += chunk
    return data


async def _handle_conn(
    reader: asyncio.StreamReader,
    writer: asyncio.StreamWriter,
    resolver: Resolver,
    idle_timeout: float = 15.0,
) -> None:
    """
    Serve length-prefixed DNS queries on one TCP connection (RFC 1035 4.2.2).

    Inputs:
      - reader / writer: Connection streams.
      - resolver: Callable (query_bytes, client_ip) -> response_bytes; run in
        the default executor so a chaos delay blocks only this connection.
      - idle_timeout: Seconds to wait for the next query before closing.
    Outputs:
      - None
    """
    peer = writer.get_extra_info("peername")
    client_ip = peer[0] if isinstance(peer, tuple) else "0.0.0.0"
    loop = asyncio.get_running_loop()
    try:
        while True:
            hdr = await asyncio.wait_for(_read_exact(reader, 2), timeout=idle_timeout)
            if len(hdr) != 2:
                break
            ln = int.from_bytes(hdr, byteorder="big")
            if ln <= 0:
                break
            query = await asyncio.wait_for(_read_exact(reader, ln), timeout=idle_timeout)
            if len(query) != ln:
                break
            response = await loop.run_in_executor(None, resolver, query, client_ip)
            # Empty response: the query was dropped, close without replying.
            if not response:
                break
            writer.write(len(response).to_bytes(2, "big") + response)
            await writer.drain()
    except asyncio.TimeoutError:
        logger.debug("TCP connection from %s idle; closing", client_ip)
    except (ConnectionError, OSError) as exc:
        logger.debug("TCP connection from %s failed: %s", client_ip, exc)
    finally:
        writer.close()
        try:
            await writer.wait_closed()
        except (ConnectionError, OSError):
            pass


async def serve_tcp(
    host: str,
    port: int,
    resolver: Resolver,
    *,
    ready: Optional[Callable[[Tuple[str, int]], None]] = None,
) -> None:
    """
    Serve DNS over TCP on host:port until cancelled.

    Inputs:
      - host / port: Listen address (port 0 picks a free port).
      - resolver: Callable (query_bytes, client_ip) -> response_bytes.
      - ready: Optional callback receiving the bound (host, port).
    Outputs:
      - None (runs until the task is cancelled)

    Example:
      >>> asyncio.run(serve_tcp('0.0.0.0', 5353, resolver))  # doctest: +SKIP
    """
    server = await asyncio.start_server(
        lambda r, w: _handle_conn(r, w, resolver), host, port
    )
    if ready is not None:
        ready(server.sockets[0].getsockname()[:2])
    async with server:
        await server.serve_forever()


class _ThreadedTCPHandler(socketserver.BaseRequestHandler):
    """Blocking fallback handler used when no asyncio loop can be created."""

    resolver: Resolver = staticmethod(lambda data, ip: b"")  # type: ignore[assignment]

    def _recv_exact(self, n: int) -> bytes:
        buf = b""
        while len(buf) < n:
            chunk = self.request.recv(n - len(buf))
            if not chunk:
                break
            buf += chunk
        return buf

    def handle(self) -> None:
        client_ip = self.client_address[0]
        self.request.settimeout(15.0)
        try:
            while True:
                hdr = self._recv_exact(2)
                if len(hdr) != 2:
                    return
                ln = int.from_bytes(hdr, "big")
                query = self._recv_exact(ln)
                if ln <= 0 or len(query) != ln:
                    return
                response = self.resolver(query, client_ip)
                if not response:
                    return
                self.request.sendall(len(response).to_bytes(2, "big") + response)
        except OSError as exc:
            logger.debug("TCP connection from %s failed: %s", client_ip, exc)


class _ThreadingTCPServer(socketserver.ThreadingTCPServer):
    allow_reuse_address = True
    daemon_threads = True


class TCPServer:
    """
    Runs serve_tcp() on a private event loop in a background thread.

    When the environment forbids creating an asyncio loop (PermissionError on
    the self-pipe), it falls back to a ThreadingTCPServer.

    Example use:
        >>> srv = TCPServer("127.0.0.1", 0, resolver)  # doctest: +SKIP
        >>> srv.start(); host, port = srv.address  # doctest: +SKIP
        >>> srv.stop()  # doctest: +SKIP
    """

    def __init__(self, host: str, port: int, resolver: Resolver) -> None:
        self.host = host
        self.port = int(port)
        self.resolver = resolver
        self.address: Optional[Tuple[str, int]] = None
        self.error: Optional[BaseException] = None
        self._ready = threading.Event()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._task: Optional[asyncio.Task] = None
        self._thread: Optional[threading.Thread] = None
        self._fallback: Optional[_ThreadingTCPServer] = None

    def start(self, timeout: float = 5.0) -> None:
        """Start listening; raises OSError when the port cannot be bound."""
        self._thread = threading.Thread(target=self._run, name="chaosdns-tcp", daemon=True)
        self._thread.start()
        self._ready.wait(timeout)
        if self.error is not None:
            raise self.error
        if self.address is None:
            raise OSError(f"TCP listener on {self.host}:{self.port} did not start")
        logger.debug("DNS TCP server bound to %s:%d", *self.address)

    def _on_ready(self, address: Tuple[str, int]) -> None:
        self.address = (address[0], address[1])
        self._ready.set()

    def _run(self) -> None:
        try:
            loop = asyncio.new_event_loop()
        except PermissionError:
            logger.warning("Asyncio loop creation failed; using threaded TCP listener")
            self._run_threaded()
            return

        self._loop = loop
        asyncio.set_event_loop(loop)
        try:
            self._task = loop.create_task(
                serve_tcp(self.host, self.port, self.resolver, ready=self._on_ready)
            )
            loop.run_until_complete(self._task)
        except asyncio.CancelledError:
            pass
        except OSError as exc:
            self.error = exc
            self._ready.set()
        finally:
            loop.close()

    def _run_threaded(self) -> None:
        handler_cls = type(
            "BoundTCPHandler", (_ThreadedTCPHandler,), {"resolver": staticmethod(self.resolver)}
        )
        try:
            server = _ThreadingTCPServer((self.host, self.port), handler_cls)
        except OSError as exc:
            self.error = exc
            self._ready.set()
            return
        self._fallback = server
        self._on_ready(server.server_address[:2])
        server.serve_forever()

    def stop(self) -> None:
        """Cancel the listener and wait for its thread to exit."""
        if self._fallback is not None:
            self._fallback.shutdown()
            self._fallback.server_close()
        elif (
            self._loop is not None
            and self._task is not None
            and not self._loop.is_closed()
        ):
            try:
                self._loop.call_soon_threadsafe(self._task.cancel)
            except RuntimeError:
                # Loop closed between the check and the call.
                pass
        if self._thread is not None:
            self._thread.join(timeout=5.0)
