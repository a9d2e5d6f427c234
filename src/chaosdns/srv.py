from __future__ import annotations

import secrets
from typing import List, Optional, Sequence, TypeVar

from .chaos import RandomSource

T = TypeVar("T")


class SrvSelector:
    """Brief: Produces a fresh uniformly random ordering of a service group.

    Inputs:
      - rng: Random source shared with ChaosPolicy (SystemRandom by default).

    Outputs:
      - SrvSelector instance.

    Notes:
      - randomize() shuffles a copy with Fisher-Yates (random.shuffle), so all
        n! orderings are equally likely and the input is left untouched.
      - Nothing is cached between calls; every query gets its own draw.
    """

    def __init__(self, rng: Optional[RandomSource] = None) -> None:
        self._rng = rng if rng is not None else secrets.SystemRandom()

    def randomize(self, entries: Sequence[T]) -> List[T]:
        """Brief: Return a random permutation of entries.

        Inputs:
          - entries: Service entries (any sequence; may be empty).

        Outputs:
          - list: Same multiset as entries in random order; [] for empty input.
        """
        out = list(entries or ())
        if len(out) > 1:
            self._rng.shuffle(out)
        return out
