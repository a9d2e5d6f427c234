"""
Brief: Global pytest configuration: src on sys.path, per-test 10s timeout,
and shared snapshot/config fixtures.

Inputs:
  - None

Outputs:
  - None
"""

import os
import signal
import sys
import textwrap

import pytest

# Ensure 'src' is on sys.path so 'chaosdns' package is importable in tests
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
SRC_DIR = os.path.join(ROOT, "src")
if SRC_DIR not in sys.path:
    sys.path.insert(0, SRC_DIR)

from chaosdns.snapshot import ConfigSnapshot, SrvEntry  # noqa: E402


def _alarm_handler(signum, frame):
    """
    Brief: Signal handler that raises TimeoutError when alarm triggers.

    Inputs:
      - signum: signal number (int)
      - frame: current frame (ignored)

    Outputs:
      - None: Raises TimeoutError to fail the test
    """
    raise TimeoutError("Test exceeded 10 seconds")


if hasattr(signal, "SIGALRM"):
    signal.signal(signal.SIGALRM, _alarm_handler)


@pytest.fixture(autouse=True)
def enforce_test_timeout():
    """
    Brief: Enforce a hard 10-second timeout for each test.

    Inputs:
      - None

    Outputs:
      - None: Cancels alarm after test
    """
    if hasattr(signal, "SIGALRM"):
        signal.alarm(10)
        try:
            yield
        finally:
            signal.alarm(0)
    else:
        yield


@pytest.fixture
def make_snapshot():
    """
    Brief: Factory building ConfigSnapshot objects with test defaults.

    Inputs:
      - **overrides: Any ConfigSnapshot field.

    Outputs:
      - Callable returning a ConfigSnapshot for domain "example.test.".
    """

    def _make(**overrides):
        params = {
            "domain": "example.test.",
            "ttl": 300,
            "chaos_rate": 0,
            "address_table": {},
            "alias_table": {},
            "service_table": {},
        }
        params.update(overrides)
        return ConfigSnapshot(**params)

    return _make


@pytest.fixture
def srv_group():
    """Three service entries for _http._tcp.example.test."""
    return [
        SrvEntry(10, 60, 8080, "a.example.test."),
        SrvEntry(10, 20, 8081, "b.example.test."),
        SrvEntry(20, 20, 8082, "c.example.test."),
    ]


SAMPLE_CONFIG = textwrap.dedent(
    """\
    debug: false
    domain: example.test.
    host: 127.0.0.1
    port: 5353
    ttl: 120
    chaos: 0
    udp: true
    tcp: false
    additional: true
    A:
      web.example.test.: "10.0.0.1 10.0.0.2"
      db.example.test.: ["10.0.1.1"]
    CNAME:
      www.example.test.: web.example.test.
    srv:
      _http._tcp.example.test.:
        - priority: "10"
          weight: "5"
          port: "80"
          target: web.example.test.
    """
)


@pytest.fixture
def config_file(tmp_path):
    """Write SAMPLE_CONFIG to a temporary conf.yaml and return its path."""
    path = tmp_path / "conf.yaml"
    path.write_text(SAMPLE_CONFIG, encoding="utf-8")
    return path
