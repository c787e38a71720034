"""
Information-form linear factor.

Stores the symmetric augmented information matrix

    [[G, g],
     [gᵀ, f]]

over ``keys`` (column blocks in key order, then one RHS row/column). It is
what Cholesky elimination leaves behind on the separator after the frontal
variables have been eliminated: a Schur complement has no natural
square-root form, so it is kept as a Hessian.
"""

from __future__ import annotations

from typing import Dict, Sequence

from jaxmarg.core.jax_init import jnp
from jaxmarg.core.types import Key, KeyFormatter, default_key_formatter
from .gaussian_factor import GaussianFactor
from .jacobian_factor import JacobianFactor


class HessianFactor(GaussianFactor):
    """
    Factor stored as its augmented information matrix ``[[Λ, η], [ηᵀ, c]]``.

    Cholesky elimination returns the separator remainder in this form.
    """

    def __init__(self, keys: Sequence[Key], dims: Sequence[int], augmented_information) -> None:
        keys = tuple(keys)
        dims = [int(d) for d in dims]
        if len(keys) != len(dims):
            raise ValueError(f"HessianFactor got {len(keys)} keys but {len(dims)} dimensions")
        if len(set(keys)) != len(keys):
            raise ValueError(f"HessianFactor keys must be distinct, got {list(keys)}")
        n = sum(dims) + 1
        H = jnp.asarray(augmented_information, dtype=jnp.float64)
        if H.shape != (n, n):
            raise ValueError(
                f"Augmented information of shape {H.shape} does not match "
                f"dimensions {dims} plus one RHS column"
            )
        self._keys = keys
        self._dims = dims
        # Keep exactly symmetric; Schur complements drift by round-off.
        self._H = 0.5 * (H + H.T)

    @classmethod
    def from_jacobian(cls, factor: JacobianFactor) -> "HessianFactor":
        return cls(factor.keys, [factor.dims[k] for k in factor.keys], factor.augmented_information())

    @property
    def dims(self) -> Dict[Key, int]:
        return dict(zip(self._keys, self._dims))

    def augmented_information(self) -> jnp.ndarray:
        return self._H

    def linear_term(self) -> jnp.ndarray:
        return self._H[:-1, -1]

    def constant_term(self) -> float:
        return float(self._H[-1, -1])

    def format(self, prefix: str = "", key_formatter: KeyFormatter = default_key_formatter) -> str:
        return (
            f"{prefix}HessianFactor on [{', '.join(key_formatter(k) for k in self._keys)}]\n"
            f"  augmented information =\n{self._H}"
        )
