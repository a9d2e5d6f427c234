"""Configuration loading for chaosdns.

Brief:
  Turns the YAML document on disk into a ConfigSnapshot. It centralizes:
    - reading and parsing the YAML file
    - JSON Schema validation (config_schema)
    - typed normalization (config_models, pydantic)
    - building the immutable snapshot

  Every failure along the way surfaces as ConfigLoadError so callers can keep
  serving the previous snapshot on reload.

Inputs:
  - Path to the YAML configuration file, or an already parsed mapping.

Outputs:
  - Parsed config dicts and ConfigSnapshot instances.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

import yaml
from pydantic import ValidationError

from ..snapshot import DEFAULT_TTL, ConfigSnapshot, SrvEntry
from .config_models import ChaosDNSConfig
from .config_schema import validate_config

DEFAULT_CONFIG_PATH = "conf/conf.yaml"


class ConfigLoadError(ValueError):
    """Raised when a configuration document cannot be read or is invalid."""


def parse_config_file(
    config_path: str, *, unknown_keys: str = "warn"
) -> Dict[str, Any]:
    """Brief: Read and schema-validate a YAML config file.

    Inputs:
      - config_path: Path to the YAML configuration file.
      - unknown_keys: Policy for keys the schema does not know (see
        validate_config).

    Outputs:
      - dict: Parsed configuration mapping.

    Raises:
      - ConfigLoadError: unreadable file, YAML syntax error, non-mapping root,
        or schema violation.
    """

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            cfg = yaml.safe_load(f) or {}
    except OSError as exc:
        raise ConfigLoadError(f"Cannot read config {config_path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigLoadError(f"Cannot parse config {config_path}: {exc}") from exc

    if not isinstance(cfg, dict):
        raise ConfigLoadError(f"Configuration root must be a mapping in {config_path}")

    try:
        validate_config(cfg, config_path=config_path, unknown_keys=unknown_keys)
    except ValueError as exc:
        raise ConfigLoadError(str(exc)) from exc
    return cfg


def build_snapshot(
    cfg: Dict[str, Any], *, config_path: Optional[str] = None
) -> ConfigSnapshot:
    """Brief: Normalize a parsed config mapping into a ConfigSnapshot.

    Inputs:
      - cfg: Mapping as returned by parse_config_file().
      - config_path: Optional path, used only in error messages.

    Outputs:
      - ConfigSnapshot with a TTL of DEFAULT_TTL when the document gives 0.

    Raises:
      - ConfigLoadError: when typed validation fails or no transport is on.

    Example:
      >>> snap = build_snapshot({"domain": "example.test", "A": {"www.example.test": "10.0.0.1"}})
      >>> snap.address_table["www.example.test."]
      ('10.0.0.1',)
    """

    where = config_path or "<config dict>"
    try:
        model = ChaosDNSConfig(**cfg)
    except (ValidationError, TypeError) as exc:
        raise ConfigLoadError(f"Invalid configuration in {where}: {exc}") from exc

    services = {
        name: [SrvEntry(e.priority, e.weight, e.port, e.target) for e in entries]
        for name, entries in model.services.items()
    }
    try:
        return ConfigSnapshot(
            domain=model.domain,
            ttl=model.ttl or DEFAULT_TTL,
            chaos_rate=model.chaos,
            udp=model.udp,
            tcp=model.tcp,
            send_additional_records=model.additional,
            address_table=model.addresses,
            alias_table=model.aliases,
            service_table=services,
            listen_host=model.host,
            listen_port=model.port,
            debug=model.debug,
            seed=model.seed,
        )
    except ValueError as exc:
        raise ConfigLoadError(f"Invalid configuration in {where}: {exc}") from exc


def load_snapshot(config_path: str) -> ConfigSnapshot:
    """Read, validate and build a snapshot from config_path in one step."""
    return build_snapshot(parse_config_file(config_path), config_path=config_path)
