"""
Gaussian Bayes tree: the factored form of a linear system.

Each :class:`BayesTreeClique` owns one :class:`GaussianConditional`
``p(F | S)`` over its frontal variables ``F`` given its separator ``S``,
where ``S`` is contained in the parent clique. The product of all clique
conditionals is the joint density of the eliminated graph.

Built by :func:`eliminate_multifrontal` (usually through
``GaussianFactorGraph.eliminate_multifrontal``), the tree is never modified
afterwards. Queries only *read* it: marginals are computed by building small
temporary factor graphs from the relevant conditionals and eliminating those.
Nothing is cached between queries.

Queries
-------
separator_marginal(clique)
    p(S) for a clique, by walking down from the root: at every step the
    parent's marginal (its conditional times the parent's own separator
    marginal) is re-eliminated onto the child's separator.
clique_marginal(clique)
    p(F, S) = p(F | S) p(S).
marginal_factor(key)
    Single-variable marginal, eliminated out of the key's clique marginal.
joint(key1, key2)
    Pairwise joint: the clique marginal of the lowest common ancestor times
    the conditionals on both paths down to the two keys' cliques, then
    eliminated onto the pair. Keys in different trees are independent.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Dict, Iterator, List, Optional, Sequence

from jaxmarg.core.jax_init import jnp
from jaxmarg.core.types import Key, KeyFormatter, default_key_formatter
from .conditional import GaussianConditional
from .elimination import EliminationConfig, Factorization, eliminate
from .errors import KeyNotFoundError
from .gaussian_factor import GaussianFactor
from .symbolic import eliminate_symbolic, post_order

if TYPE_CHECKING:
    from .gaussian_factor_graph import GaussianFactorGraph

logger = logging.getLogger(__name__)


class BayesTreeClique:
    """One clique: its conditional and its links to parent and children."""

    def __init__(self, conditional: GaussianConditional) -> None:
        self.conditional = conditional
        self.parent: Optional[BayesTreeClique] = None
        self.children: List[BayesTreeClique] = []

    @property
    def frontals(self) -> tuple:
        return self.conditional.frontal_keys

    @property
    def separator(self) -> tuple:
        return self.conditional.parent_keys

    def is_root(self) -> bool:
        return self.parent is None

    def path_to_root(self) -> List["BayesTreeClique"]:
        path = [self]
        while path[-1].parent is not None:
            path.append(path[-1].parent)
        return path

    def __repr__(self) -> str:
        return f"BayesTreeClique(frontals={list(self.frontals)}, separator={list(self.separator)})"


class BayesTree:
    """
    Forest of :class:`BayesTreeClique` objects with a key -> clique index.

    - roots: cliques without a parent, one per connected component
    - nodes: mapping from every eliminated key to the clique holding it
      as a frontal variable
    """

    def __init__(self, roots: Sequence[BayesTreeClique], nodes: Dict[Key, BayesTreeClique]) -> None:
        self._roots = list(roots)
        self._nodes = dict(nodes)

    # --- structure ---

    @property
    def roots(self) -> List[BayesTreeClique]:
        return list(self._roots)

    def keys(self) -> List[Key]:
        return list(self._nodes.keys())

    def __contains__(self, key: Key) -> bool:
        return key in self._nodes

    def clique(self, key: Key) -> BayesTreeClique:
        try:
            return self._nodes[key]
        except KeyError:
            raise KeyNotFoundError(key, "Bayes tree") from None

    def __getitem__(self, key: Key) -> BayesTreeClique:
        return self.clique(key)

    def cliques(self) -> Iterator[BayesTreeClique]:
        """Pre-order: every clique before its children."""
        stack = list(reversed(self._roots))
        while stack:
            clique = stack.pop()
            yield clique
            stack.extend(reversed(clique.children))

    def __len__(self) -> int:
        return sum(1 for _ in self.cliques())

    def conditionals(self) -> List[GaussianConditional]:
        return [clique.conditional for clique in self.cliques()]

    def optimize(self) -> Dict[Key, jnp.ndarray]:
        """Back-substitute from the roots down."""
        solution: Dict[Key, jnp.ndarray] = {}
        for clique in self.cliques():
            solution.update(clique.conditional.solve(solution))
        return solution

    # --- marginals ---

    def separator_marginal(
        self,
        clique: BayesTreeClique,
        factorization: Factorization,
        cfg: Optional[EliminationConfig] = None,
    ) -> "GaussianFactorGraph":
        from .gaussian_factor_graph import GaussianFactorGraph

        marginal = GaussianFactorGraph()
        # Walk root -> clique; `marginal` is always p(separator of `child`).
        for child in reversed(clique.path_to_root()[:-1]):
            parent_joint = GaussianFactorGraph([child.parent.conditional])
            parent_joint.push_back(marginal)
            marginal = parent_joint.marginal(child.separator, factorization, cfg)
        return marginal

    def clique_marginal(
        self,
        clique: BayesTreeClique,
        factorization: Factorization,
        cfg: Optional[EliminationConfig] = None,
    ) -> "GaussianFactorGraph":
        from .gaussian_factor_graph import GaussianFactorGraph

        graph = GaussianFactorGraph([clique.conditional])
        graph.push_back(self.separator_marginal(clique, factorization, cfg))
        return graph

    def marginal_factor(
        self,
        key: Key,
        factorization: Factorization,
        cfg: Optional[EliminationConfig] = None,
    ) -> GaussianFactor:
        clique = self.clique(key)
        marginal = self.clique_marginal(clique, factorization, cfg).marginal([key], factorization, cfg)
        # A single variable eliminates into a single parentless conditional.
        return marginal[0]

    def joint(
        self,
        key1: Key,
        key2: Key,
        factorization: Factorization,
        cfg: Optional[EliminationConfig] = None,
    ) -> "GaussianFactorGraph":
        from .gaussian_factor_graph import GaussianFactorGraph

        if key1 == key2:
            raise ValueError(f"joint() needs two distinct keys, got {key1!r} twice")
        path1 = self.clique(key1).path_to_root()
        path2 = self.clique(key2).path_to_root()

        on_path2 = {id(c) for c in path2}
        common = next((c for c in path1 if id(c) in on_path2), None)
        if common is None:
            # Different trees of the forest: the pair is independent.
            return GaussianFactorGraph([
                self.marginal_factor(key1, factorization, cfg),
                self.marginal_factor(key2, factorization, cfg),
            ])

        graph = self.clique_marginal(common, factorization, cfg)
        for path in (path1, path2):
            for clique in path:
                if clique is common:
                    break
                graph.push_back(clique.conditional)
        logger.debug("joint(%r, %r): %d factors below common ancestor", key1, key2, len(graph))
        return graph.marginal([key1, key2], factorization, cfg)

    # --- printing ---

    def format(self, prefix: str = "", key_formatter: KeyFormatter = default_key_formatter) -> str:
        lines = [f"{prefix}BayesTree with {len(self)} cliques"]
        stack = [(root, 1) for root in reversed(self._roots)]
        while stack:
            clique, depth = stack.pop()
            frontals = ", ".join(key_formatter(k) for k in clique.frontals)
            separator = ", ".join(key_formatter(k) for k in clique.separator)
            lines.append("  " * depth + (f"P( {frontals} | {separator} )" if separator else f"P( {frontals} )"))
            stack.extend((child, depth + 1) for child in reversed(clique.children))
        return "\n".join(lines)

    def __str__(self) -> str:
        return self.format()


def eliminate_multifrontal(
    factors: Sequence[GaussianFactor],
    ordering: Sequence[Key],
    factorization: Factorization,
    cfg: Optional[EliminationConfig] = None,
) -> BayesTree:
    """Eliminate ``factors`` into a Bayes tree following ``ordering``."""
    roots_sym, clique_of = eliminate_symbolic([f.keys for f in factors], ordering)
    position = {key: i for i, key in enumerate(ordering)}

    built: Dict[int, BayesTreeClique] = {}
    passed_up: Dict[int, GaussianFactor] = {}
    for sym in post_order(roots_sym):
        gathered = [factors[i] for i in sym.factor_indices]
        gathered.extend(passed_up.pop(id(child)) for child in sym.children)

        conditional, remainder = eliminate(gathered, sym.frontals, factorization, position, cfg)
        clique = BayesTreeClique(conditional)
        for child in sym.children:
            child_clique = built[id(child)]
            child_clique.parent = clique
            clique.children.append(child_clique)

        built[id(sym)] = clique
        if sym.parent is not None:
            passed_up[id(sym)] = remainder

    roots = [built[id(r)] for r in roots_sym]
    nodes = {key: built[id(clique_of[key])] for key in ordering}
    return BayesTree(roots, nodes)
