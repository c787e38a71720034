"""
Elimination orderings.

The ordering decides how much fill-in elimination creates, which affects
speed but never the marginals themselves. Two heuristics are available,
selected by :attr:`EliminationConfig.ordering`:

    "natural"     keys in first-seen order over the factors
    "min_degree"  greedy minimum degree on the variable adjacency graph,
                  ties broken by first-seen order

Both accept a ``constrain_last`` group: those keys are excluded from the
heuristic and appended at the end in exactly the order given. This is how
a joint marginal keeps its requested variables un-eliminated.
"""

from __future__ import annotations

from typing import Dict, List, Optional, Sequence, Set

from jaxmarg.core.types import Key
from .errors import KeyNotFoundError


def _adjacency(factor_keys: Sequence[Sequence[Key]]) -> Dict[Key, Set[Key]]:
    adjacency: Dict[Key, Set[Key]] = {}
    for keys in factor_keys:
        for key in keys:
            adjacency.setdefault(key, set()).update(k for k in keys if k != key)
    return adjacency


def _split_constrained(adjacency, constrain_last: Optional[Sequence[Key]]) -> List[Key]:
    last = list(constrain_last or [])
    if len(set(last)) != len(last):
        raise ValueError(f"Constrained keys must be distinct, got {last}")
    for key in last:
        if key not in adjacency:
            raise KeyNotFoundError(key, "factor graph")
    return last


def natural_ordering(
    factor_keys: Sequence[Sequence[Key]],
    constrain_last: Optional[Sequence[Key]] = None,
) -> List[Key]:
    adjacency = _adjacency(factor_keys)
    last = _split_constrained(adjacency, constrain_last)
    last_set = set(last)
    return [k for k in adjacency if k not in last_set] + last


def min_degree_ordering(
    factor_keys: Sequence[Sequence[Key]],
    constrain_last: Optional[Sequence[Key]] = None,
) -> List[Key]:
    adjacency = _adjacency(factor_keys)
    last = _split_constrained(adjacency, constrain_last)
    last_set = set(last)

    first_seen = {key: i for i, key in enumerate(adjacency)}
    remaining = {k for k in adjacency if k not in last_set}
    order: List[Key] = []

    while remaining:
        key = min(remaining, key=lambda k: (len(adjacency[k]), first_seen[k]))
        neighbors = adjacency.pop(key)
        for a in neighbors:
            adjacency[a].discard(key)
            adjacency[a].update(n for n in neighbors if n != a)
        remaining.discard(key)
        order.append(key)

    return order + last


def compute_ordering(
    factor_keys: Sequence[Sequence[Key]],
    method: str = "min_degree",
    constrain_last: Optional[Sequence[Key]] = None,
) -> List[Key]:
    if method == "min_degree":
        return min_degree_ordering(factor_keys, constrain_last)
    if method == "natural":
        return natural_ordering(factor_keys, constrain_last)
    raise ValueError(f"Unknown ordering method '{method}'")
