"""
Brief: Tests for DNSResponder wire handling (rcodes, drops, malformed input).

Inputs:
  - None

Outputs:
  - None
"""

import random

import pytest
from dnslib import OPCODE, QTYPE, RCODE, DNSRecord

from chaosdns.chaos import ChaosPolicy
from chaosdns.resolver import QueryResolver, ResolveResult, ResolveStatus
from chaosdns.servers import server as server_mod
from chaosdns.servers.server import DNSResponder, install_responder, resolve_query_bytes
from chaosdns.snapshot import SrvEntry
from chaosdns.srv import SrvSelector
from chaosdns.stats import StatsCollector
from chaosdns.store import ConfigStore


@pytest.fixture
def responder(make_snapshot):
    snap = make_snapshot(
        address_table={"web.example.test.": ["10.0.0.1", "10.0.0.2"]},
        alias_table={"www.example.test.": "web.example.test."},
        service_table={
            "_http._tcp.example.test.": [SrvEntry(10, 5, 80, "web.example.test.")]
        },
    )
    resolver = QueryResolver(ChaosPolicy(random.Random(1)), SrvSelector(random.Random(1)))
    return DNSResponder(ConfigStore(snap), resolver, StatsCollector())


def _ask(responder, name, qtype="A", qid=4242):
    q = DNSRecord.question(name, qtype)
    q.header.id = qid
    wire = responder.handle_wire(q.pack(), "127.0.0.1")
    return DNSRecord.parse(wire) if wire else None


def test_address_answer(responder):
    """
    Brief: An A query for a configured name yields an authoritative answer.

    Inputs:
      - responder fixture

    Outputs:
      - None: Asserts rcode, flags, id and answer data
    """
    resp = _ask(responder, "www.example.test", qid=777)
    assert resp.header.id == 777
    assert resp.header.rcode == RCODE.NOERROR
    assert resp.header.aa == 1
    assert [QTYPE[rr.rtype] for rr in resp.rr] == ["CNAME", "A", "A"]
    assert [str(rr.rdata) for rr in resp.rr[1:]] == ["10.0.0.1", "10.0.0.2"]
    assert resp.rr[0].ttl == 300
    assert responder.stats.snapshot()["answered"] == 1


def test_srv_answer_with_glue(responder):
    resp = _ask(responder, "_http._tcp.example.test", "SRV")
    assert resp.header.rcode == RCODE.NOERROR
    assert str(resp.rr[0].rdata) == "10 5 80 web.example.test."
    assert [str(rr.rdata) for rr in resp.ar] == ["10.0.0.1"]


def test_unknown_name_is_nxdomain(responder):
    resp = _ask(responder, "missing.example.test")
    assert resp.header.rcode == RCODE.NXDOMAIN
    assert resp.rr == []
    assert responder.stats.snapshot()["nxdomain"] == 1


def test_unsupported_type_is_empty_noerror(responder):
    resp = _ask(responder, "web.example.test", "MX")
    assert resp.header.rcode == RCODE.NOERROR
    assert resp.rr == []
    assert responder.stats.snapshot()["unsupported"] == 1


def test_outside_domain_refused(responder):
    resp = _ask(responder, "www.example.org")
    assert resp.header.rcode == RCODE.REFUSED
    assert responder.stats.snapshot()["refused"] == 1


def test_non_query_opcode_notimp(responder):
    q = DNSRecord.question("web.example.test")
    q.header.opcode = OPCODE.NOTIFY
    resp = DNSRecord.parse(responder.handle_wire(q.pack(), "127.0.0.1"))
    assert resp.header.rcode == RCODE.NOTIMP


def test_malformed_packet_gets_no_reply(responder):
    assert responder.handle_wire(b"\x00\x01garbage", "127.0.0.1") == b""


def test_dropped_query_gets_no_reply(make_snapshot):
    class _AlwaysDrop(ChaosPolicy):
        def should_drop(self, chaos_rate):
            return True

    snap = make_snapshot(chaos_rate=100, address_table={"a.example.test.": ["10.0.0.1"]})
    stats = StatsCollector()
    r = DNSResponder(ConfigStore(snap), QueryResolver(_AlwaysDrop()), stats)
    q = DNSRecord.question("a.example.test")
    assert r.handle_wire(q.pack(), "127.0.0.1") == b""
    assert stats.snapshot()["dropped"] == 1


def test_unexpected_error_is_servfail(responder, monkeypatch):
    def boom(query, snapshot):
        raise RuntimeError("kaboom")

    monkeypatch.setattr(responder.resolver, "resolve", boom)
    resp = _ask(responder, "web.example.test")
    assert resp.header.rcode == RCODE.SERVFAIL


def test_reply_uses_snapshot_read_at_query_time(responder, make_snapshot):
    responder.store.replace(make_snapshot(address_table={"web.example.test.": ["192.0.2.9"]}))
    resp = _ask(responder, "web.example.test")
    assert [str(rr.rdata) for rr in resp.rr] == ["192.0.2.9"]


def test_delayed_results_are_counted(responder, monkeypatch):
    monkeypatch.setattr(
        responder.resolver,
        "resolve",
        lambda query, snapshot: ResolveResult([], [], ResolveStatus.NAME_ERROR, True),
    )
    _ask(responder, "web.example.test")
    assert responder.stats.snapshot()["delayed"] == 1


def test_resolve_query_bytes_requires_install(responder, monkeypatch):
    monkeypatch.setattr(server_mod, "_RESPONDER", None)
    with pytest.raises(RuntimeError):
        resolve_query_bytes(b"", "127.0.0.1")

    install_responder(responder)
    wire = resolve_query_bytes(DNSRecord.question("web.example.test").pack(), "127.0.0.1")
    assert DNSRecord.parse(wire).header.rcode == RCODE.NOERROR
