from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple

# Used when the document sets ttl to 0 or omits it.
DEFAULT_TTL = 3600


def normalize_name(name: str) -> str:
    """Brief: Lowercase a DNS name and make it fully qualified.

    Inputs:
      - name: Domain name with or without a trailing dot.

    Outputs:
      - str: Lowercased name ending in exactly one dot ("." for the root).

    Example:
      >>> normalize_name("WWW.Example.TEST")
      'www.example.test.'
    """
    s = str(name).strip().lower().rstrip(".")
    return s + "."


@dataclass(frozen=True)
class SrvEntry:
    """One service record of a service group."""

    priority: int
    weight: int
    port: int
    target: str


@dataclass(frozen=True)
class ConfigSnapshot:
    """Brief: One fully loaded, validated, immutable configuration.

    Inputs:
      - domain: Zone suffix the responder is authoritative for.
      - ttl: TTL (seconds) stamped on synthesized records.
      - chaos_rate: Fault-injection percentage in [0, 100].
      - udp / tcp: Transport flags.
      - send_additional_records: Whether SRV answers carry glue A records.
      - address_table: name -> ordered addresses.
      - alias_table: name -> alias target.
      - service_table: name -> service entries.
      - listen_host / listen_port / debug / seed: Process-level settings read
        at startup.

    Outputs:
      - ConfigSnapshot whose tables are exposed as read-only mappings of
        tuples; nothing reachable from a published snapshot can be mutated.
    """

    domain: str
    ttl: int = DEFAULT_TTL
    chaos_rate: int = 0
    udp: bool = True
    tcp: bool = False
    send_additional_records: bool = True
    address_table: Mapping[str, Tuple[str, ...]] = field(default_factory=dict)
    alias_table: Mapping[str, str] = field(default_factory=dict)
    service_table: Mapping[str, Tuple[SrvEntry, ...]] = field(default_factory=dict)
    listen_host: str = "0.0.0.0"
    listen_port: int = 53
    debug: bool = False
    seed: Optional[int] = None

    def __post_init__(self) -> None:
        if not 0 <= int(self.chaos_rate) <= 100:
            raise ValueError(f"chaos rate out of range: {self.chaos_rate}")
        if not (self.udp or self.tcp):
            raise ValueError("at least one transport (udp or tcp) must be enabled")

        # Freeze the tables so the snapshot cannot be changed after publication.
        object.__setattr__(self, "domain", normalize_name(self.domain))
        object.__setattr__(
            self,
            "address_table",
            MappingProxyType(
                {normalize_name(k): tuple(v) for k, v in self.address_table.items()}
            ),
        )
        object.__setattr__(
            self,
            "alias_table",
            MappingProxyType(
                {
                    normalize_name(k): normalize_name(v)
                    for k, v in self.alias_table.items()
                    if v
                }
            ),
        )
        object.__setattr__(
            self,
            "service_table",
            MappingProxyType(
                {
                    normalize_name(k): tuple(_freeze_entries(v))
                    for k, v in self.service_table.items()
                }
            ),
        )

    def in_domain(self, name: str) -> bool:
        """Return True when name is the zone apex or falls under it."""
        qname = normalize_name(name)
        if self.domain == ".":
            return True
        return qname == self.domain or qname.endswith("." + self.domain)

    def describe(self) -> Dict[str, Any]:
        """Brief: Plain-dict view of the snapshot for debug dumps.

        Outputs:
          - dict with the scalar settings and table sizes plus contents.
        """
        return {
            "domain": self.domain,
            "ttl": self.ttl,
            "chaos_rate": self.chaos_rate,
            "udp": self.udp,
            "tcp": self.tcp,
            "send_additional_records": self.send_additional_records,
            "listen": f"{self.listen_host}:{self.listen_port}",
            "A": {k: list(v) for k, v in self.address_table.items()},
            "CNAME": dict(self.alias_table),
            "srv": {
                k: [
                    f"{e.priority} {e.weight} {e.port} {e.target}" for e in entries
                ]
                for k, entries in self.service_table.items()
            },
        }


def _freeze_entries(entries: Iterable[SrvEntry]) -> Iterable[SrvEntry]:
    for e in entries or ():
        target = normalize_name(e.target) if e.target else ""
        yield SrvEntry(int(e.priority), int(e.weight), int(e.port), target)
