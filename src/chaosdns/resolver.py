"""Query resolution against one configuration snapshot.

Brief:
  QueryResolver turns a (name, type) question into answer and additional
  resource records using the tables of a ConfigSnapshot. Address queries
  follow alias chains up to a fixed hop bound; service queries return the
  whole group in a fresh random order. ChaosPolicy is consulted once per query
  before any lookup and may drop or delay it.

Inputs:
  - Query values built by the wire layer and a snapshot read from ConfigStore.

Outputs:
  - ResolveResult(answers, additional, status, delayed).
"""

from __future__ import annotations

import enum
import logging
from typing import List, NamedTuple, Optional

from dnslib import CNAME, QTYPE, RR, SRV, A

from .chaos import ChaosPolicy
from .snapshot import ConfigSnapshot, normalize_name
from .srv import SrvSelector

logger = logging.getLogger(__name__)

# Maximum number of loop iterations while chasing aliases for an address query.
MAX_ALIAS_HOPS = 8


class ResolveStatus(str, enum.Enum):
    ANSWERED = "answered"
    NAME_ERROR = "name_error"
    DROPPED = "dropped"
    UNSUPPORTED = "unsupported"


class Query(NamedTuple):
    """A single inbound question: transaction id, queried name, numeric qtype."""

    transaction_id: int
    name: str
    qtype: int


class ResolveResult(NamedTuple):
    """Outcome of one resolution.

    ``delayed`` records whether chaos latency was injected; it never changes
    the answer content.
    """

    answers: List[RR]
    additional: List[RR]
    status: ResolveStatus
    delayed: bool = False


class QueryResolver:
    """Brief: Resolve A and SRV questions from a ConfigSnapshot.

    Inputs:
      - chaos: ChaosPolicy used for drop/delay decisions.
      - selector: SrvSelector used to order service groups.
      - max_hops: Bound on alias-chain traversal (default MAX_ALIAS_HOPS).

    Outputs:
      - QueryResolver instance. It keeps no per-query state, so one instance is
        shared by every listener thread.

    Example:
      >>> resolver = QueryResolver(ChaosPolicy(), SrvSelector())
      >>> result = resolver.resolve(Query(1, "www.example.test.", QTYPE.A), snap)  # doctest: +SKIP
    """

    def __init__(
        self,
        chaos: Optional[ChaosPolicy] = None,
        selector: Optional[SrvSelector] = None,
        *,
        max_hops: int = MAX_ALIAS_HOPS,
    ) -> None:
        self.chaos = chaos if chaos is not None else ChaosPolicy()
        self.selector = selector if selector is not None else SrvSelector()
        self.max_hops = max(1, int(max_hops))

    def resolve(self, query: Query, snapshot: ConfigSnapshot) -> ResolveResult:
        """Brief: Produce the answer for query using only snapshot.

        Inputs:
          - query: Query tuple.
          - snapshot: The snapshot the caller read once from ConfigStore.

        Outputs:
          - ResolveResult. Status DROPPED means the caller must not reply.
        """
        qtype = int(query.qtype)
        type_name = QTYPE.get(qtype, str(qtype))
        logger.debug("Query %d for %s %s", query.transaction_id, query.name, type_name)

        rate = snapshot.chaos_rate
        if self.chaos.should_drop(rate):
            logger.info(
                "[CHAOS]: query %d for %s ignored", query.transaction_id, query.name
            )
            return ResolveResult([], [], ResolveStatus.DROPPED)

        if qtype == QTYPE.A:
            delayed = False
            if self.chaos.should_delay(rate):
                self.chaos.delay()
                delayed = True
            answers, status = self._resolve_address(query.name, snapshot)
            return ResolveResult(answers, [], status, delayed)

        if qtype == QTYPE.SRV:
            answers, additional, status = self._resolve_service(query.name, snapshot)
            return ResolveResult(answers, additional, status)

        logger.info("Qtype not supported yet: %s", type_name)
        return ResolveResult([], [], ResolveStatus.UNSUPPORTED)

    def _resolve_address(self, name: str, snapshot: ConfigSnapshot):
        answers: List[RR] = []
        host = normalize_name(name)
        ttl = snapshot.ttl

        for _ in range(self.max_hops):
            addresses = snapshot.address_table.get(host)
            if addresses:
                for ip in addresses:
                    answers.append(RR(host, QTYPE.A, ttl=ttl, rdata=A(ip)))
                logger.debug("IP: %s", list(addresses))
                return answers, ResolveStatus.ANSWERED

            target = snapshot.alias_table.get(host)
            if not target:
                break
            answers.append(RR(host, QTYPE.CNAME, ttl=ttl, rdata=CNAME(target)))
            host = target
        else:
            logger.warning(
                "Alias chain for %s exceeded %d hops; answering NXDOMAIN",
                name,
                self.max_hops,
            )

        return answers, ResolveStatus.NAME_ERROR

    def _resolve_service(self, name: str, snapshot: ConfigSnapshot):
        qname = normalize_name(name)
        entries = snapshot.service_table.get(qname)
        if not entries:
            return [], [], ResolveStatus.NAME_ERROR

        answers: List[RR] = []
        additional: List[RR] = []
        ttl = snapshot.ttl
        for entry in self.selector.randomize(entries):
            if not entry.target:
                continue
            answers.append(
                RR(
                    qname,
                    QTYPE.SRV,
                    ttl=ttl,
                    rdata=SRV(
                        priority=entry.priority,
                        weight=entry.weight,
                        port=entry.port,
                        target=entry.target,
                    ),
                )
            )
            if snapshot.send_additional_records:
                glue = snapshot.address_table.get(entry.target)
                if glue:
                    additional.append(
                        RR(entry.target, QTYPE.A, ttl=ttl, rdata=A(glue[0]))
                    )

        status = ResolveStatus.ANSWERED if answers else ResolveStatus.NAME_ERROR
        return answers, additional, status
