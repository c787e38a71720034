"""
Marginal covariances and information matrices of a solved factor graph.

Usage
-----
    fg = FactorGraph()
    ... add variables / factors, register residuals, optimize ...
    values = Values.from_factor_graph(fg)

    marginals = Marginals(fg, values)
    P0 = marginals.marginal_covariance(NodeId(0))
    jm = marginals.joint_marginal_covariance([NodeId(0), NodeId(2)])
    P02 = jm[NodeId(0), NodeId(2)]

Construction linearizes the nonlinear graph around ``solution`` once and
eliminates it into a :class:`BayesTree` with the chosen
:class:`Factorization`. Queries never modify that tree.

Joint queries pick one of three paths by the number of keys:

    1 key   the single-variable marginal, wrapped in a JointMarginal
    2 keys  the Bayes tree's pairwise joint (shortcut through the tree)
    3+ keys re-eliminate the whole linear graph with the requested keys
            constrained last
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Dict, List, Optional, Sequence

from jax.scipy.linalg import cho_factor, cho_solve

from jaxmarg.core.jax_init import jnp
from jaxmarg.core.types import Key, KeyFormatter, default_key_formatter
from jaxmarg.core.values import Values
from jaxmarg.linear.elimination import EliminationConfig, Factorization
from jaxmarg.linear.errors import KeyNotFoundError, SingularMatrixError
from jaxmarg.linear.gaussian_factor_graph import GaussianFactorGraph

logger = logging.getLogger(__name__)


def _invert_spd(matrix: jnp.ndarray) -> jnp.ndarray:
    """Inverse of a symmetric positive-definite matrix, or SingularMatrixError."""
    n = matrix.shape[0]
    if n == 0:
        return matrix
    # Eigenvalues within round-off of zero count as singular.
    eigenvalues = jnp.linalg.eigvalsh(matrix)
    threshold = n * jnp.finfo(matrix.dtype).eps * jnp.max(jnp.abs(eigenvalues))
    factor = cho_factor(matrix, lower=True)
    inverse = cho_solve(factor, jnp.eye(n, dtype=matrix.dtype))
    if not bool(jnp.all(jnp.isfinite(inverse)) & (jnp.min(eigenvalues) > threshold)):
        raise SingularMatrixError(
            f"Information matrix of size {n}x{n} is singular or not positive "
            f"definite; the variables are under-constrained"
        )
    return 0.5 * (inverse + inverse.T)


class JointMarginal:
    """
    Dense joint marginal over an ordered list of keys.

    The matrix is partitioned into blocks by ``dims``; ``at(k_i, k_j)`` (or
    ``jm[k_i, k_j]``) returns the block at the rows of ``k_i`` and the
    columns of ``k_j``. Whether it holds information or covariance depends
    on the query that produced it.
    """

    def __init__(self, matrix, dims: Sequence[int], keys: Sequence[Key]) -> None:
        keys = list(keys)
        dims = [int(d) for d in dims]
        if len(keys) != len(dims):
            raise ValueError(f"JointMarginal got {len(keys)} keys but {len(dims)} dimensions")
        matrix = jnp.asarray(matrix, dtype=jnp.float64)
        n = sum(dims)
        if matrix.shape != (n, n):
            raise ValueError(f"JointMarginal matrix has shape {matrix.shape}, expected ({n}, {n})")

        self._matrix = matrix
        self._keys = keys
        self._dims = dims
        self._offsets: Dict[Key, int] = {}
        offset = 0
        for key, d in zip(keys, dims):
            self._offsets[key] = offset
            offset += d
        self._dim_of = dict(zip(keys, dims))

    @property
    def keys(self) -> List[Key]:
        return list(self._keys)

    @property
    def dims(self) -> List[int]:
        return list(self._dims)

    def full_matrix(self) -> jnp.ndarray:
        return self._matrix

    def _slice(self, key: Key) -> slice:
        if key not in self._offsets:
            raise KeyNotFoundError(key, "joint marginal")
        start = self._offsets[key]
        return slice(start, start + self._dim_of[key])

    def at(self, key_i: Key, key_j: Key) -> jnp.ndarray:
        return self._matrix[self._slice(key_i), self._slice(key_j)]

    def __getitem__(self, pair) -> jnp.ndarray:
        key_i, key_j = pair
        return self.at(key_i, key_j)

    def inverse(self) -> "JointMarginal":
        """New JointMarginal holding the full-matrix inverse."""
        return JointMarginal(_invert_spd(self._matrix), self._dims, self._keys)

    def format(self, prefix: str = "", key_formatter: KeyFormatter = default_key_formatter) -> str:
        names = ", ".join(key_formatter(k) for k in self._keys)
        return f"{prefix}Joint marginal on keys {names}. Use 'at' or indexing to query matrix blocks."

    def print(self, prefix: str = "", key_formatter: KeyFormatter = default_key_formatter) -> None:
        print(self.format(prefix, key_formatter))

    def __str__(self) -> str:
        return self.format()

    def __repr__(self) -> str:
        return f"JointMarginal(keys={self._keys}, dims={self._dims})"


class Marginals:
    """
    Marginal queries on a linearized, fully eliminated factor graph.

    Parameters
    ----------
    graph:
        Nonlinear :class:`~jaxmarg.core.factor_graph.FactorGraph`; anything
        with a ``linearize(values)`` method returning a
        :class:`GaussianFactorGraph` works.
    solution:
        :class:`Values` to linearize around; also supplies variable dims.
    factorization:
        Elimination strategy used for construction and every query.
    cfg:
        Ordering and pivot settings.
    """

    def __init__(
        self,
        graph,
        solution: Values,
        factorization: Factorization = Factorization.CHOLESKY,
        cfg: Optional[EliminationConfig] = None,
    ) -> None:
        t0 = time.perf_counter()
        linear = graph.linearize(solution)
        logger.debug("linearized %d factors in %.3fs", len(linear), time.perf_counter() - t0)
        self._setup(linear, solution, factorization, cfg)

    @classmethod
    def from_linear(
        cls,
        graph: GaussianFactorGraph,
        solution: Values,
        factorization: Factorization = Factorization.CHOLESKY,
        cfg: Optional[EliminationConfig] = None,
    ) -> "Marginals":
        """Build from a graph that is already linear."""
        marginals = cls.__new__(cls)
        marginals._setup(graph, solution, factorization, cfg)
        return marginals

    def _setup(self, graph, solution, factorization, cfg) -> None:
        if not isinstance(factorization, Factorization):
            raise ValueError(f"Unknown factorization {factorization!r}")
        self._graph = graph
        self._values = solution
        self._factorization = factorization
        self._cfg = cfg or EliminationConfig()
        # Serializes queries on this instance.
        self._lock = threading.Lock()

        t0 = time.perf_counter()
        self._bayes_tree = graph.eliminate_multifrontal(factorization, cfg=self._cfg)
        logger.debug(
            "%s elimination of %d variables into %d cliques took %.3fs",
            factorization.name, len(self._bayes_tree.keys()), len(self._bayes_tree),
            time.perf_counter() - t0,
        )

    # --- accessors ---

    @property
    def factorization(self) -> Factorization:
        return self._factorization

    @property
    def graph(self) -> GaussianFactorGraph:
        return self._graph

    @property
    def values(self) -> Values:
        return self._values

    @property
    def bayes_tree(self):
        return self._bayes_tree

    # --- single variable ---

    def marginal_information(self, key: Key) -> jnp.ndarray:
        with self._lock:
            t0 = time.perf_counter()
            factor = self._bayes_tree.marginal_factor(key, self._factorization, self._cfg)
            info = factor.information()
            logger.debug("marginal_information(%r) took %.3fs", key, time.perf_counter() - t0)
        return info

    def marginal_covariance(self, key: Key) -> jnp.ndarray:
        return _invert_spd(self.marginal_information(key))

    # --- joint ---

    def joint_marginal_information(self, keys: Sequence[Key]) -> JointMarginal:
        keys = list(keys)
        if not keys:
            raise ValueError("joint_marginal_information needs at least one key")
        if len(set(keys)) != len(keys):
            raise ValueError(f"joint_marginal_information keys must be distinct, got {keys}")

        if len(keys) == 1:
            info = self.marginal_information(keys[0])
            return JointMarginal(info, [info.shape[0]], keys)

        with self._lock:
            t0 = time.perf_counter()
            if len(keys) == 2:
                joint_graph = self._bayes_tree.joint(keys[0], keys[1], self._factorization, self._cfg)
            else:
                tree = self._graph.marginal_multifrontal_bayes_tree(keys, self._factorization, self._cfg)
                joint_graph = GaussianFactorGraph.from_bayes_tree(tree)
            logger.debug(
                "joint marginal on %d keys: %d factors in %.3fs",
                len(keys), len(joint_graph), time.perf_counter() - t0,
            )

        dims = [self._values.dim(key) for key in keys]
        augmented = joint_graph.augmented_hessian(ordering=keys)
        info = augmented[:-1, :-1]
        return JointMarginal(info, dims, keys)

    def joint_marginal_covariance(self, keys: Sequence[Key]) -> JointMarginal:
        return self.joint_marginal_information(keys).inverse()

    # --- printing ---

    def format(self, prefix: str = "", key_formatter: KeyFormatter = default_key_formatter) -> str:
        return "\n".join([
            self._graph.format(prefix + "Graph: ", key_formatter),
            self._values.format(prefix + "Solution: ", key_formatter),
            self._bayes_tree.format(prefix + "Bayes Tree: ", key_formatter),
        ])

    def print(self, prefix: str = "", key_formatter: KeyFormatter = default_key_formatter) -> None:
        print(self.format(prefix, key_formatter))

    def __str__(self) -> str:
        return self.format()
