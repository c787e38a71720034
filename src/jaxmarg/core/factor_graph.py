"""
Nonlinear factor graph for jaxmarg.

The FactorGraph stores:
    - Variables (nodes, each with a type and a current value)
    - Factors (constraints between variables)
    - Registered residual functions (by factor type)

It is the nonlinear input of the marginals engine: :meth:`linearize` turns it
into a :class:`GaussianFactorGraph` around a :class:`Values` solution.

Linearization
-------------
For a factor with residual ``r`` over variables ``k_1 .. k_n`` the linear
factor is

    Σ_i  J_i δ_i  =  −r(x)        J_i = ∂ r(retract(x, δ)) / ∂ δ_i  at δ = 0

so every block is expressed in the tangent coordinates of its variable
(6 for an SE(3) pose). Jacobians come from ``jax.jacfwd``; no hand-written
derivatives are needed. A ``"sigmas"`` entry in the factor params becomes a
``Diagonal`` noise model on the linear factor.

Primary Methods
---------------
add_variable / add_factor / register_residual
    Graph construction.

residual(values) / error(values)
    Stacked residual and ½‖r‖² (whitened by ``sigmas``) at a solution.

linearize(values)
    One JacobianFactor per factor, in insertion order.
"""

from __future__ import annotations
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

from .jax_init import jax, jnp
from .types import NodeId, FactorId, Variable, Factor
from .values import Values
from jaxmarg.linear.errors import KeyNotFoundError
from jaxmarg.linear.gaussian_factor_graph import GaussianFactorGraph
from jaxmarg.linear.jacobian_factor import JacobianFactor
from jaxmarg.linear.noise_model import Diagonal

logger = logging.getLogger(__name__)

ResidualFn = Callable[[jnp.ndarray, Dict[str, jnp.ndarray]], jnp.ndarray]


def _noise_model(params: dict, rows: int) -> Optional[Diagonal]:
    """Diagonal model from ``params["sigmas"]``; a single sigma applies to every row."""
    if "sigmas" not in params:
        return None
    sigmas = jnp.asarray(params["sigmas"], dtype=jnp.float64).reshape(-1)
    if sigmas.shape[0] == 1 and rows > 1:
        sigmas = jnp.full((rows,), sigmas[0])
    return Diagonal.from_sigmas(sigmas)


@dataclass
class FactorGraph:
    """
    Nonlinear factor graph.

    - variables: mapping from NodeId -> Variable
    - factors: mapping from FactorId -> Factor
    - residual_fns: mapping factor.type -> callable that computes residuals
    """
    variables: Dict[NodeId, Variable] = field(default_factory=dict)
    factors: Dict[FactorId, Factor] = field(default_factory=dict)
    residual_fns: Dict[str, ResidualFn] = field(default_factory=dict)

    def add_variable(self, var: Variable) -> None:
        if var.id in self.variables:
            raise ValueError(f"Variable {var.id} already exists")
        self.variables[var.id] = var

    def add_factor(self, factor: Factor) -> None:
        if factor.id in self.factors:
            raise ValueError(f"Factor {factor.id} already exists")
        self.factors[factor.id] = factor

    def register_residual(self, factor_type: str, fn: ResidualFn) -> None:
        self.residual_fns[factor_type] = fn

    def keys(self) -> List[NodeId]:
        """Variable ids touched by at least one factor, in first-seen order."""
        seen: Dict[NodeId, None] = {}
        for factor in self.factors.values():
            for nid in factor.var_ids:
                seen.setdefault(nid, None)
        return list(seen)

    # --- evaluation ---

    def _residual_fn(self, factor: Factor) -> ResidualFn:
        fn = self.residual_fns.get(factor.type, None)
        if fn is None:
            raise ValueError(f"No residual fn registered for factor type '{factor.type}'")
        return fn

    def _factor_residual(self, factor: Factor, values: Values) -> jnp.ndarray:
        stacked = jnp.concatenate([values.at(nid) for nid in factor.var_ids])
        r = jnp.reshape(self._residual_fn(factor)(stacked, factor.params), (-1,))
        model = _noise_model(factor.params, r.shape[0])
        return r if model is None else model.whiten(r)

    def residual(self, values: Values) -> jnp.ndarray:
        """Stacked whitened residual of every factor at ``values``."""
        res_list = [self._factor_residual(f, values) for f in self.factors.values()]
        if not res_list:
            return jnp.zeros((0,))
        return jnp.concatenate(res_list)

    def error(self, values: Values) -> float:
        r = self.residual(values)
        return 0.5 * float(r @ r)

    # --- linearization ---

    def _linearize_factor(self, factor: Factor, values: Values) -> JacobianFactor:
        fn = self._residual_fn(factor)
        keys: Tuple[NodeId, ...] = tuple(factor.var_ids)
        for nid in keys:
            if nid not in values:
                raise KeyNotFoundError(nid, "Values")
        dims = [values.dim(nid) for nid in keys]
        params = factor.params

        def residual_of_delta(delta: jnp.ndarray) -> jnp.ndarray:
            chunks = []
            offset = 0
            for nid, d in zip(keys, dims):
                chunks.append(values.retract(nid, delta[offset:offset + d]))
                offset += d
            return jnp.reshape(fn(jnp.concatenate(chunks), params), (-1,))

        zero = jnp.zeros(sum(dims))
        r0 = residual_of_delta(zero)
        J = jnp.reshape(jax.jacfwd(residual_of_delta)(zero), (r0.shape[0], sum(dims)))

        terms = []
        offset = 0
        for nid, d in zip(keys, dims):
            terms.append((nid, J[:, offset:offset + d]))
            offset += d

        return JacobianFactor(terms, -r0, _noise_model(params, r0.shape[0]))

    def linearize(self, values: Values) -> GaussianFactorGraph:
        """Linearize every factor around ``values``."""
        t0 = time.perf_counter()
        linear = GaussianFactorGraph(
            self._linearize_factor(factor, values) for factor in self.factors.values()
        )
        logger.debug(
            "linearize: %d factors over %d variables in %.3fs",
            len(linear), len(self.keys()), time.perf_counter() - t0,
        )
        return linear
