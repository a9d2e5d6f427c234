from __future__ import annotations

import logging
from typing import Optional

from dnslib import OPCODE, QTYPE, RCODE, DNSRecord
from dnslib.dns import DNSError

from ..resolver import Query, QueryResolver, ResolveStatus
from ..stats import StatsCollector, maybe_inc
from ..store import ConfigStore

logger = logging.getLogger("chaosdns.server")

_RCODES = {
    ResolveStatus.ANSWERED: RCODE.NOERROR,
    ResolveStatus.NAME_ERROR: RCODE.NXDOMAIN,
    # Unmodelled types get an empty NOERROR answer rather than an error code.
    ResolveStatus.UNSUPPORTED: RCODE.NOERROR,
}

_STAT_NAMES = {
    ResolveStatus.ANSWERED: "answered",
    ResolveStatus.NAME_ERROR: "nxdomain",
    ResolveStatus.UNSUPPORTED: "unsupported",
    ResolveStatus.DROPPED: "dropped",
}


class DNSResponder:
    """Brief: Decode a DNS query, resolve it, and encode the reply.

    Inputs:
      - store: ConfigStore providing the live snapshot.
      - resolver: QueryResolver shared by all listeners.
      - stats: Optional StatsCollector.

    Outputs:
      - DNSResponder instance. handle_wire() is safe to call from many
        listener threads at once.

    Example:
      >>> responder = DNSResponder(store, QueryResolver())  # doctest: +SKIP
      >>> wire = responder.handle_wire(DNSRecord.question("www.example.test").pack(), "127.0.0.1")  # doctest: +SKIP
    """

    def __init__(
        self,
        store: ConfigStore,
        resolver: QueryResolver,
        stats: Optional[StatsCollector] = None,
    ) -> None:
        self.store = store
        self.resolver = resolver
        self.stats = stats

    def handle_wire(self, data: bytes, client_ip: str) -> bytes:
        """Resolve a single DNS wire query and return the wire response.

        Inputs:
          - data: Wire-format DNS query bytes.
          - client_ip: Client address, used for logging.
        Outputs:
          - bytes: Wire-format DNS response, or b"" when nothing must be
            sent (chaos drop or unparseable packet).
        """
        try:
            request = DNSRecord.parse(data)
        except (DNSError, ValueError, IndexError) as exc:
            logger.debug("Ignoring malformed packet from %s: %s", client_ip, exc)
            return b""

        try:
            return self._handle_request(request, client_ip)
        except Exception:
            logger.exception(
                "Unhandled error resolving query %d from %s", request.header.id, client_ip
            )
            reply = request.reply()
            reply.header.rcode = RCODE.SERVFAIL
            return reply.pack()

    def _handle_request(self, request: DNSRecord, client_ip: str) -> bytes:
        reply = request.reply()
        reply.header.aa = 1
        reply.header.ra = 0

        if request.header.opcode != OPCODE.QUERY or not request.questions:
            reply.header.rcode = RCODE.NOTIMP
            return reply.pack()

        maybe_inc(self.stats, "queries")
        question = request.questions[0]
        qname = str(question.qname)

        # One read of the store: the whole resolution sees this snapshot only.
        snapshot = self.store.current()
        if not snapshot.in_domain(qname):
            logger.debug("Refusing %s from %s: outside %s", qname, client_ip, snapshot.domain)
            maybe_inc(self.stats, "refused")
            reply.header.rcode = RCODE.REFUSED
            return reply.pack()

        query = Query(request.header.id, qname, int(question.qtype))
        result = self.resolver.resolve(query, snapshot)
        maybe_inc(self.stats, _STAT_NAMES[result.status])
        if result.delayed:
            maybe_inc(self.stats, "delayed")

        if result.status is ResolveStatus.DROPPED:
            return b""

        for rr in result.answers:
            reply.add_answer(rr)
        for rr in result.additional:
            reply.add_ar(rr)
        reply.header.rcode = _RCODES[result.status]
        logger.debug(
            "Answered %s %s for %s: %s (%d answers, %d additional)",
            qname,
            QTYPE.get(query.qtype, str(query.qtype)),
            client_ip,
            RCODE.get(reply.header.rcode),
            len(result.answers),
            len(result.additional),
        )
        return reply.pack()


_RESPONDER: Optional[DNSResponder] = None


def install_responder(responder: Optional[DNSResponder]) -> None:
    """Set the process-wide responder used by resolve_query_bytes()."""
    global _RESPONDER
    _RESPONDER = responder


def resolve_query_bytes(data: bytes, client_ip: str) -> bytes:
    """Resolve one wire query with the installed responder.

    Inputs:
      - data: Wire-format DNS query bytes.
      - client_ip: Client address string.
    Outputs:
      - bytes: Wire-format response, b"" for "send nothing".

    Raises:
      - RuntimeError: when no responder has been installed.
    """
    responder = _RESPONDER
    if responder is None:
        raise RuntimeError("resolve_query_bytes called before install_responder")
    return responder.handle_wire(data, client_ip)
