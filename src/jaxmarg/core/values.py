"""
Solution store: a converged assignment of values to variable keys.

``Values`` is what the marginals engine linearizes around and where it looks
up per-variable dimensions. Each entry remembers its manifold tag, so that

    • ``dim(key)`` is the *tangent* dimension (6 for an SE(3) pose stored as
      a 6-vector, n for an n-vector), i.e. the size of that variable's block
      in every information / covariance matrix;
    • ``retract(key, delta)`` applies a tangent perturbation the way the
      linearization differentiates it.

Values can be filled by hand or lifted from a :class:`FactorGraph` whose
``Variable`` nodes already hold values.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Dict, Iterator, List, Optional

from .jax_init import jnp
from .types import Key, KeyFormatter, default_key_formatter
from jaxmarg.linear.errors import KeyNotFoundError
from jaxmarg.slam.manifold import get_manifold_for_var_type, retract, tangent_dim

if TYPE_CHECKING:
    from .factor_graph import FactorGraph


class Values:
    """Ordered mapping key -> value, with manifold metadata per key."""

    def __init__(self) -> None:
        self._values: Dict[Key, jnp.ndarray] = {}
        self._manifolds: Dict[Key, str] = {}

    @classmethod
    def from_factor_graph(cls, fg: "FactorGraph") -> "Values":
        """Collect the current value of every variable node in ``fg``."""
        values = cls()
        for nid, var in fg.variables.items():
            values.insert(nid, var.value, var_type=var.type)
        return values

    def insert(self, key: Key, value, var_type: Optional[str] = None, manifold: Optional[str] = None) -> None:
        if key in self._values:
            raise ValueError(f"Values already contains key {key!r}; use update()")
        self._values[key] = jnp.asarray(value, dtype=jnp.float64).reshape(-1)
        if manifold is None:
            manifold = get_manifold_for_var_type(var_type) if var_type else "euclidean"
        self._manifolds[key] = manifold

    def update(self, key: Key, value) -> None:
        if key not in self._values:
            raise KeyNotFoundError(key, "Values")
        self._values[key] = jnp.asarray(value, dtype=jnp.float64).reshape(-1)

    def at(self, key: Key) -> jnp.ndarray:
        try:
            return self._values[key]
        except KeyError:
            raise KeyNotFoundError(key, "Values") from None

    def manifold(self, key: Key) -> str:
        if key not in self._manifolds:
            raise KeyNotFoundError(key, "Values")
        return self._manifolds[key]

    def dim(self, key: Key) -> int:
        return tangent_dim(self.manifold(key), self.at(key))

    def retract(self, key: Key, delta: jnp.ndarray) -> jnp.ndarray:
        return retract(self.manifold(key), self.at(key), delta)

    def keys(self) -> List[Key]:
        return list(self._values.keys())

    def __contains__(self, key: Key) -> bool:
        return key in self._values

    def __len__(self) -> int:
        return len(self._values)

    def __iter__(self) -> Iterator[Key]:
        return iter(self._values)

    def format(self, prefix: str = "", key_formatter: KeyFormatter = default_key_formatter) -> str:
        lines = [f"{prefix}Values with {len(self)} values:"]
        for key, value in self._values.items():
            lines.append(
                f"  {key_formatter(key)} ({self._manifolds[key]}): "
                f"{[float(v) for v in value]}"
            )
        return "\n".join(lines)

    def __str__(self) -> str:
        return self.format()
