"""
Symbolic multifrontal elimination.

Given only which keys each factor touches and an elimination ordering, this
module works out the clique structure of the Bayes tree before any numbers
are crunched:

1. Play the elimination game: eliminating ``k`` connects all of its
   not-yet-eliminated neighbours; those neighbours are ``k``'s separator.
2. Walk the ordering backwards. A variable whose separator is empty starts a
   new root. Otherwise its parent is the clique holding the earliest
   separator variable; if the separator *equals* that clique's variables the
   variable joins it as an extra frontal, else it starts a child clique.
3. Each factor is assigned to the clique owning its earliest-eliminated key.

Numeric elimination then visits cliques children-first and eliminates each
clique's frontals from its assigned factors plus its children's separator
factors.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Sequence, Set, Tuple

from jaxmarg.core.types import Key
from .errors import KeyNotFoundError


@dataclass(eq=False)
class SymbolicClique:
    frontals: List[Key]
    separator: List[Key]
    parent: Optional["SymbolicClique"] = None
    children: List["SymbolicClique"] = field(default_factory=list)
    factor_indices: List[int] = field(default_factory=list)

    def variables(self) -> Set[Key]:
        return set(self.frontals) | set(self.separator)


def _validate(factor_keys: Sequence[Sequence[Key]], ordering: Sequence[Key]) -> Dict[Key, int]:
    position = {key: i for i, key in enumerate(ordering)}
    if len(position) != len(ordering):
        raise ValueError("Elimination ordering contains duplicate keys")
    involved = set()
    for keys in factor_keys:
        for key in keys:
            if key not in position:
                raise ValueError(f"Variable {key!r} is missing from the elimination ordering")
            involved.add(key)
    for key in ordering:
        if key not in involved:
            raise KeyNotFoundError(key, "factor graph")
    return position


def eliminate_symbolic(
    factor_keys: Sequence[Sequence[Key]],
    ordering: Sequence[Key],
) -> Tuple[List[SymbolicClique], Dict[Key, SymbolicClique]]:
    """Return ``(roots, clique_of)`` for the given ordering."""
    position = _validate(factor_keys, ordering)

    adjacency: Dict[Key, Set[Key]] = {key: set() for key in ordering}
    for keys in factor_keys:
        for key in keys:
            adjacency[key].update(k for k in keys if k != key)

    separators: Dict[Key, List[Key]] = {}
    eliminated: Set[Key] = set()
    for key in ordering:
        neighbors = adjacency[key] - eliminated
        separators[key] = sorted(neighbors, key=position.__getitem__)
        for a in neighbors:
            adjacency[a].update(n for n in neighbors if n != a)
        eliminated.add(key)

    roots: List[SymbolicClique] = []
    clique_of: Dict[Key, SymbolicClique] = {}
    for key in reversed(ordering):
        sep = separators[key]
        if not sep:
            clique = SymbolicClique(frontals=[key], separator=[])
            roots.append(clique)
        else:
            parent = clique_of[sep[0]]
            if set(sep) == parent.variables():
                parent.frontals.insert(0, key)
                clique_of[key] = parent
                continue
            clique = SymbolicClique(frontals=[key], separator=list(sep), parent=parent)
            parent.children.append(clique)
        clique_of[key] = clique

    for i, keys in enumerate(factor_keys):
        if keys:
            first = min(keys, key=position.__getitem__)
            clique_of[first].factor_indices.append(i)

    return roots, clique_of


def post_order(roots: Sequence[SymbolicClique]) -> Iterator[SymbolicClique]:
    """Children before parents, without recursion."""
    stack = [(root, False) for root in reversed(roots)]
    while stack:
        clique, expanded = stack.pop()
        if expanded:
            yield clique
            continue
        stack.append((clique, True))
        for child in reversed(clique.children):
            stack.append((child, False))
