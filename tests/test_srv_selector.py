"""
Brief: Tests for SrvSelector random permutations.

Inputs:
  - None

Outputs:
  - None
"""

import itertools
import random
from collections import Counter

from chaosdns.srv import SrvSelector


def test_empty_input_gives_empty_list():
    sel = SrvSelector(random.Random(1))
    assert sel.randomize([]) == []
    assert sel.randomize(()) == []


def test_preserves_multiset_and_input(srv_group):
    sel = SrvSelector(random.Random(2))
    original = list(srv_group)
    for _ in range(50):
        out = sel.randomize(srv_group)
        assert Counter(out) == Counter(original)
    assert srv_group == original


def test_duplicates_are_kept():
    sel = SrvSelector(random.Random(3))
    out = sel.randomize(["x", "x", "y"])
    assert sorted(out) == ["x", "x", "y"]


def test_all_orderings_roughly_uniform():
    sel = SrvSelector(random.Random(2024))
    items = ["a", "b", "c"]
    trials = 12000
    counts = Counter(tuple(sel.randomize(items)) for _ in range(trials))
    assert set(counts) == set(itertools.permutations(items))
    expected = trials / 6
    for perm, n in counts.items():
        assert abs(n - expected) < expected * 0.1, (perm, n)


def test_each_call_draws_fresh_order():
    sel = SrvSelector(random.Random(5))
    items = list(range(8))
    orders = {tuple(sel.randomize(items)) for _ in range(20)}
    assert len(orders) > 1
