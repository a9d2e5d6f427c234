"""
Brief: Tests for chaosdns.config.config_schema JSON Schema validation.

Inputs:
  - None

Outputs:
  - None
"""

import json

import pytest

from chaosdns.config.config_schema import get_default_schema_path, validate_config


def test_default_schema_path_exists():
    path = get_default_schema_path()
    assert path.is_file()
    assert path.name == "config-schema.json"


def test_valid_config_passes():
    """
    Brief: A representative document validates without errors.

    Inputs:
      - cfg: mapping with every table populated

    Outputs:
      - None: Asserts no exception
    """
    validate_config(
        {
            "domain": "example.test.",
            "ttl": 60,
            "chaos": 40,
            "A": {"a.example.test.": "10.0.0.1", "b.example.test.": ["10.0.0.2"]},
            "CNAME": {"c.example.test.": "a.example.test."},
            "srv": {
                "_x._tcp.example.test.": [
                    {"priority": "1", "weight": 2, "port": "80", "target": "a.example.test."}
                ]
            },
            "logging": {"level": "debug", "stderr": True},
            "reload": {"enabled": False, "min_interval_seconds": 0.5},
        }
    )


def test_missing_domain_fails():
    with pytest.raises(ValueError, match="domain"):
        validate_config({"chaos": 1})


def test_bad_srv_port_fails():
    with pytest.raises(ValueError):
        validate_config(
            {"domain": "x.", "srv": {"_x._tcp.x.": [{"port": "eighty", "target": "a.x."}]}}
        )


def test_unknown_key_policies(caplog):
    cfg = {"domain": "x.", "extra_thing": 1}
    validate_config(cfg, unknown_keys="ignore")
    with caplog.at_level("WARNING"):
        validate_config(cfg, unknown_keys="warn")
    assert "extra_thing" in caplog.text
    with pytest.raises(ValueError):
        validate_config(cfg, unknown_keys="error")


def test_invalid_policy_rejected():
    with pytest.raises(ValueError):
        validate_config({"domain": "x."}, unknown_keys="maybe")


def test_unloadable_schema(tmp_path):
    bad = tmp_path / "schema.json"
    bad.write_text("{not json", encoding="utf-8")
    with pytest.raises(ValueError, match="schema"):
        validate_config({"domain": "x."}, schema_path=bad)


def test_error_message_names_path(tmp_path):
    schema = tmp_path / "schema.json"
    schema.write_text(
        json.dumps({"type": "object", "properties": {"ttl": {"type": "integer"}}}),
        encoding="utf-8",
    )
    with pytest.raises(ValueError) as excinfo:
        validate_config({"ttl": "soon"}, schema_path=schema, config_path="c.yaml")
    assert "c.yaml" in str(excinfo.value)
    assert "ttl" in str(excinfo.value)
