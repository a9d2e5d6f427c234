from __future__ import annotations

import ipaddress
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, validator


class SrvRecordConfig(BaseModel):
    """Brief: One service entry as written in the ``srv`` table.

    Inputs:
      - priority / weight / port: 16-bit integers; numeric strings are
        accepted for documents written in the original string form.
      - target: Target host name. An empty target is kept but never answered.

    Outputs:
      - SrvRecordConfig instance with int fields.
    """

    priority: int = Field(default=0, ge=0, le=65535)
    weight: int = Field(default=0, ge=0, le=65535)
    port: int = Field(ge=0, le=65535)
    target: str = ""

    @validator("target", pre=True)
    def _target_to_str(cls, v):  # type: ignore[no-untyped-def]
        return "" if v is None else str(v).strip()


class ReloadConfig(BaseModel):
    """Brief: Settings for watching the configuration file.

    Inputs:
      - enabled: Start the watchdog observer (default True).
      - min_interval_seconds: Coalesce events closer together than this.
      - poll_interval_seconds: When > 0, also poll the file's stat data.
    """

    enabled: bool = True
    min_interval_seconds: float = Field(default=0.0, ge=0)
    poll_interval_seconds: float = Field(default=0.0, ge=0)


class ChaosDNSConfig(BaseModel):
    """Brief: Typed model of the whole YAML configuration document.

    Inputs:
      - Keys of the YAML document (see conf/conf.yaml). The record tables
        keep their historical upper-case names ``A`` and ``CNAME``.

    Outputs:
      - ChaosDNSConfig with normalized address lists.
    """

    debug: bool = False
    domain: str
    host: str = "0.0.0.0"
    port: int = Field(default=53, ge=1, le=65535)
    ttl: int = Field(default=0, ge=0)
    chaos: int = Field(default=0, ge=0, le=100)
    seed: Optional[int] = None
    udp: bool = True
    tcp: bool = False
    additional: bool = True
    addresses: Dict[str, List[str]] = Field(default_factory=dict, alias="A")
    aliases: Dict[str, str] = Field(default_factory=dict, alias="CNAME")
    services: Dict[str, List[SrvRecordConfig]] = Field(
        default_factory=dict, alias="srv"
    )
    logging_cfg: Optional[Dict[str, Any]] = Field(default=None, alias="logging")
    reload: ReloadConfig = Field(default_factory=ReloadConfig)

    class Config:
        extra = "allow"

    @validator("domain", pre=True)
    def _domain_not_empty(cls, v):  # type: ignore[no-untyped-def]
        s = str(v or "").strip()
        if not s:
            raise ValueError("domain must be a non-empty string")
        return s

    @validator("addresses", pre=True)
    def _split_addresses(cls, v):  # type: ignore[no-untyped-def]
        """Brief: Accept "ip ip ..." strings or lists and validate IPv4 syntax.

        Inputs:
          - v: Mapping of name -> str | list[str] | None.

        Outputs:
          - dict[str, list[str]]: Addresses in written order.
        """
        if v is None:
            return {}
        if not isinstance(v, dict):
            raise ValueError("A must be a mapping of name -> addresses")
        out: Dict[str, List[str]] = {}
        for name, raw in v.items():
            if raw is None:
                ips: List[str] = []
            elif isinstance(raw, str):
                ips = raw.split()
            elif isinstance(raw, (list, tuple)):
                ips = [str(x).strip() for x in raw if str(x).strip()]
            else:
                raise ValueError(f"A[{name}] must be a string or a list")
            for ip in ips:
                try:
                    ipaddress.IPv4Address(ip)
                except ValueError as exc:
                    raise ValueError(f"A[{name}]: invalid IPv4 address {ip!r}") from exc
            out[str(name)] = ips
        return out

    @validator("aliases", pre=True)
    def _drop_empty_aliases(cls, v):  # type: ignore[no-untyped-def]
        if v is None:
            return {}
        if not isinstance(v, dict):
            raise ValueError("CNAME must be a mapping of name -> target")
        return {str(k): str(t).strip() for k, t in v.items() if t}

    @validator("services", pre=True)
    def _none_services(cls, v):  # type: ignore[no-untyped-def]
        if v is None:
            return {}
        if isinstance(v, dict):
            return {k: (entries or []) for k, entries in v.items()}
        return v
