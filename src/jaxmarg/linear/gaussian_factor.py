"""
Common interface of the linear (Gaussian) factors.

Two concrete representations exist, mirroring the two elimination
strategies:

    JacobianFactor   ||A x - b||²_Σ   (square-root form, QR-friendly)
    HessianFactor    ½ xᵀ G x - xᵀ g + ½ f   (information form, Cholesky)

Both expose the same *augmented information* matrix

    [[AᵀA, Aᵀb],
     [bᵀA, bᵀb]]

with variable blocks in ``keys`` order, which is all that summing factors
into a graph-level Hessian needs.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Dict, Mapping, Tuple

from jaxmarg.core.jax_init import jnp
from jaxmarg.core.types import Key, KeyFormatter, default_key_formatter
from .errors import KeyNotFoundError


class GaussianFactor(ABC):
    """Linear Gaussian factor over a tuple of keys, in any concrete form."""

    _keys: Tuple[Key, ...]

    @property
    def keys(self) -> Tuple[Key, ...]:
        return self._keys

    def size(self) -> int:
        return len(self._keys)

    def __contains__(self, key: Key) -> bool:
        return key in self._keys

    @property
    @abstractmethod
    def dims(self) -> Dict[Key, int]:
        """Tangent dimension of each key's column block."""

    def get_dim(self, key: Key) -> int:
        try:
            return self.dims[key]
        except KeyError:
            raise KeyNotFoundError(key, "factor") from None

    @abstractmethod
    def augmented_information(self) -> jnp.ndarray:
        ...

    def information(self) -> jnp.ndarray:
        H = self.augmented_information()
        return H[:-1, :-1]

    def error(self, x: Mapping[Key, jnp.ndarray]) -> float:
        """½‖A x − b‖²_Σ evaluated from the augmented information."""
        # v = [x; -1] gives vᵀ H v = xᵀAᵀAx - 2 xᵀAᵀb + bᵀb
        v = jnp.concatenate([self._stack(x), -jnp.ones(1)])
        return 0.5 * float(v @ self.augmented_information() @ v)

    def _stack(self, x: Mapping[Key, jnp.ndarray]) -> jnp.ndarray:
        chunks = []
        for key in self._keys:
            if key not in x:
                raise KeyNotFoundError(key, "assignment")
            chunks.append(jnp.asarray(x[key], dtype=jnp.float64).reshape(-1))
        if not chunks:
            return jnp.zeros(0)
        return jnp.concatenate(chunks)

    @abstractmethod
    def format(self, prefix: str = "", key_formatter: KeyFormatter = default_key_formatter) -> str:
        ...

    def __str__(self) -> str:
        return self.format()
