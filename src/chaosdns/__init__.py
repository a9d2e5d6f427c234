"""chaosdns: a mock DNS responder for exercising client resilience."""

__version__ = "0.3.0"
