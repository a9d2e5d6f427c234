from __future__ import annotations

import logging
import random
import secrets
import time
from typing import Callable, Optional, Union

logger = logging.getLogger(__name__)

# Each fault is drawn from a range of CHAOS_SLOTS * 100 values, so a rate of
# 100 fires half of the time.
CHAOS_SLOTS = 2

# Artificial latency applied to delayed address queries.
CHAOS_DELAY_SECONDS = 10.0

RandomSource = Union[random.Random, secrets.SystemRandom]


def make_random(seed: Optional[int] = None) -> RandomSource:
    """Brief: Build the shared random source for chaos and SRV ordering.

    Inputs:
      - seed: Optional integer seed for reproducible runs.

    Outputs:
      - random.Random(seed) when seeded, otherwise secrets.SystemRandom().
    """
    if seed is None:
        return secrets.SystemRandom()
    return random.Random(int(seed))


class ChaosPolicy:
    """Brief: Decides per query whether to drop it or delay it.

    Inputs:
      - rng: Random source (random.Random or SystemRandom). Defaults to
        SystemRandom.
      - delay_seconds: Latency injected when should_delay() fires.
      - sleep: Callable used to wait; tests pass a recorder instead of
        time.sleep.

    Outputs:
      - ChaosPolicy instance.

    Notes:
      - should_drop and should_delay are independent Bernoulli draws with
        probability rate / 200. A rate of 0 never touches the random source.
      - delay() only blocks the calling thread; it holds no lock.

    Example:
      >>> policy = ChaosPolicy(random.Random(1))
      >>> policy.should_drop(0)
      False
    """

    def __init__(
        self,
        rng: Optional[RandomSource] = None,
        *,
        delay_seconds: float = CHAOS_DELAY_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._rng = rng if rng is not None else secrets.SystemRandom()
        self.delay_seconds = float(delay_seconds)
        self._sleep = sleep

    def _draw(self, chaos_rate: int) -> bool:
        rate = int(chaos_rate)
        if rate <= 0:
            return False
        return self._rng.randrange(100 * CHAOS_SLOTS) < rate

    def should_drop(self, chaos_rate: int) -> bool:
        """Return True when the query should be silently discarded."""
        return self._draw(chaos_rate)

    def should_delay(self, chaos_rate: int) -> bool:
        """Return True when the query should be answered late."""
        return self._draw(chaos_rate)

    def delay(self) -> None:
        """Sleep for the configured artificial latency."""
        logger.info(
            "[CHAOS]: delay added before processing the query (%.1fs)",
            self.delay_seconds,
        )
        self._sleep(self.delay_seconds)
