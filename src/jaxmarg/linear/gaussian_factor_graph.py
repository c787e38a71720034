"""
Linear Gaussian factor graph.

A ``GaussianFactorGraph`` is an ordered collection of
:class:`GaussianFactor` objects (Jacobian, Hessian or conditional). It is
what :meth:`jaxmarg.core.factor_graph.FactorGraph.linearize` produces and
what the marginals engine eliminates.

Dense views
-----------
augmented_hessian(ordering)   Σ_f [A_f | b_f]ᵀ[A_f | b_f], blocks in ``ordering``
hessian(ordering)             (Λ, η) split of the above
augmented_jacobian(ordering)  stacked whitened rows (Jacobian factors only)

Elimination
-----------
eliminate_sequential   -> GaussianBayesNet, one conditional per variable
eliminate_partial      -> (GaussianBayesNet, remaining GaussianFactorGraph)
eliminate_multifrontal -> BayesTree
marginal               -> GaussianFactorGraph over the requested variables
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Set, Tuple, Union

from jaxmarg.core.jax_init import jnp
from jaxmarg.core.types import Key, KeyFormatter, default_key_formatter
from .bayes_net import GaussianBayesNet
from .bayes_tree import BayesTree, eliminate_multifrontal
from .elimination import (
    EliminationConfig,
    Factorization,
    assemble_augmented_hessian,
    assemble_augmented_jacobian,
    collect_dims,
    eliminate,
)
from .errors import KeyNotFoundError
from .gaussian_factor import GaussianFactor
from .ordering import compute_ordering

logger = logging.getLogger(__name__)


class GaussianFactorGraph:
    """
    Ordered list of linear factors.

    Variable dimensions are read off the factors; a key that appears with
    two different dimensions is an error.
    """

    def __init__(self, factors: Iterable[GaussianFactor] = ()) -> None:
        self._factors: List[GaussianFactor] = list(factors)

    @classmethod
    def from_bayes_tree(cls, tree: BayesTree) -> "GaussianFactorGraph":
        return cls(tree.conditionals())

    @classmethod
    def from_bayes_net(cls, net: GaussianBayesNet) -> "GaussianFactorGraph":
        return cls(net)

    def push_back(self, item: Union[GaussianFactor, Iterable[GaussianFactor]]) -> None:
        """Append a factor, or every factor of another graph / iterable."""
        if isinstance(item, GaussianFactor):
            self._factors.append(item)
        else:
            self._factors.extend(item)

    def __len__(self) -> int:
        return len(self._factors)

    def __iter__(self) -> Iterator[GaussianFactor]:
        return iter(self._factors)

    def __getitem__(self, i: int) -> GaussianFactor:
        return self._factors[i]

    def keys(self) -> List[Key]:
        """Keys in first-seen order."""
        return list(self.dims())

    def dims(self) -> Dict[Key, int]:
        return collect_dims(self._factors)

    def factor_keys(self) -> List[Tuple[Key, ...]]:
        return [f.keys for f in self._factors]

    def ordering(
        self,
        cfg: Optional[EliminationConfig] = None,
        constrain_last: Optional[Sequence[Key]] = None,
    ) -> List[Key]:
        cfg = cfg or EliminationConfig()
        return compute_ordering(self.factor_keys(), cfg.ordering, constrain_last)

    # --- dense views ---

    def _layout(self, ordering: Optional[Sequence[Key]]) -> Tuple[List[Key], Dict[Key, int]]:
        dims = self.dims()
        if ordering is None:
            return list(dims), dims
        ordering = list(ordering)
        if len(set(ordering)) != len(ordering):
            raise ValueError(f"Ordering contains duplicate keys: {ordering}")
        for key in ordering:
            if key not in dims:
                raise KeyNotFoundError(key, "factor graph")
        if len(ordering) != len(dims):
            missing = [k for k in dims if k not in set(ordering)]
            raise ValueError(f"Ordering does not cover graph variables {missing}")
        return ordering, dims

    def augmented_hessian(self, ordering: Optional[Sequence[Key]] = None) -> jnp.ndarray:
        keys, dims = self._layout(ordering)
        return assemble_augmented_hessian(self._factors, keys, dims)

    def hessian(self, ordering: Optional[Sequence[Key]] = None) -> Tuple[jnp.ndarray, jnp.ndarray]:
        H = self.augmented_hessian(ordering)
        return H[:-1, :-1], H[:-1, -1]

    def augmented_jacobian(self, ordering: Optional[Sequence[Key]] = None) -> jnp.ndarray:
        keys, dims = self._layout(ordering)
        return assemble_augmented_jacobian(self._factors, keys, dims)

    def error(self, x: Mapping[Key, jnp.ndarray]) -> float:
        return sum(f.error(x) for f in self._factors)

    # --- elimination ---

    def eliminate_partial(
        self,
        keys: Sequence[Key],
        factorization: Factorization,
        cfg: Optional[EliminationConfig] = None,
    ) -> Tuple[GaussianBayesNet, "GaussianFactorGraph"]:
        """Eliminate ``keys`` one at a time, in order; return the rest of the graph too."""
        factors: List[Optional[GaussianFactor]] = list(self._factors)
        index: Dict[Key, Set[int]] = {}
        for i, factor in enumerate(factors):
            for key in factor.keys:
                index.setdefault(key, set()).add(i)

        net = GaussianBayesNet()
        for key in keys:
            involved = sorted(index.pop(key, ()))
            if not involved:
                raise KeyNotFoundError(key, "factor graph")
            gathered = [factors[i] for i in involved]
            conditional, remainder = eliminate(gathered, [key], factorization, cfg=cfg)
            net.push_back(conditional)

            for i in involved:
                for k in factors[i].keys:
                    if k in index:
                        index[k].discard(i)
                factors[i] = None
            if remainder.size() > 0:
                factors.append(remainder)
                for k in remainder.keys:
                    index[k].add(len(factors) - 1)

        remaining = GaussianFactorGraph(f for f in factors if f is not None and f.size() > 0)
        return net, remaining

    def eliminate_sequential(
        self,
        factorization: Factorization,
        ordering: Optional[Sequence[Key]] = None,
        cfg: Optional[EliminationConfig] = None,
    ) -> GaussianBayesNet:
        if ordering is None:
            ordering = self.ordering(cfg)
        net, _ = self.eliminate_partial(ordering, factorization, cfg)
        return net

    def eliminate_multifrontal(
        self,
        factorization: Factorization,
        ordering: Optional[Sequence[Key]] = None,
        cfg: Optional[EliminationConfig] = None,
    ) -> BayesTree:
        if ordering is None:
            ordering = self.ordering(cfg)
        return eliminate_multifrontal(self._factors, list(ordering), factorization, cfg)

    def marginal_multifrontal_bayes_tree(
        self,
        variables: Sequence[Key],
        factorization: Factorization,
        cfg: Optional[EliminationConfig] = None,
    ) -> BayesTree:
        """Bayes tree on ``variables`` alone, everything else eliminated first."""
        variables = list(variables)
        if not variables:
            raise ValueError("At least one variable is required for a marginal")
        ordering = self.ordering(cfg, constrain_last=variables)
        others = ordering[:len(ordering) - len(variables)]

        _, remaining = self.eliminate_partial(others, factorization, cfg)
        return remaining.eliminate_multifrontal(factorization, variables, cfg)

    def marginal(
        self,
        variables: Sequence[Key],
        factorization: Factorization,
        cfg: Optional[EliminationConfig] = None,
    ) -> "GaussianFactorGraph":
        tree = self.marginal_multifrontal_bayes_tree(variables, factorization, cfg)
        return GaussianFactorGraph.from_bayes_tree(tree)

    def optimize(
        self,
        factorization: Factorization = Factorization.QR,
        cfg: Optional[EliminationConfig] = None,
    ) -> Dict[Key, jnp.ndarray]:
        """Least-squares solution of the linear system."""
        return self.eliminate_multifrontal(factorization, cfg=cfg).optimize()

    # --- printing ---

    def format(self, prefix: str = "", key_formatter: KeyFormatter = default_key_formatter) -> str:
        lines = [f"{prefix}GaussianFactorGraph with {len(self)} factors"]
        for i, factor in enumerate(self._factors):
            lines.append(factor.format(f"  factor {i}: ", key_formatter))
        return "\n".join(lines)

    def __str__(self) -> str:
        return self.format()
