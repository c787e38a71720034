"""
Gaussian conditional density ``p(x_F | x_S)``.

A conditional is a :class:`JacobianFactor` whose first ``nr_frontals`` keys
are the frontal variables and whose remaining keys are the parents:

    R x_F + S x_S = d

``R`` is square and upper triangular (it is the frontal part of an
eliminated factor), so the conditional mean is obtained by back-substitution.
Rows are already whitened, so conditionals never carry a noise model.
"""

from __future__ import annotations

from typing import Dict, Mapping, Sequence, Tuple

from jax.scipy.linalg import solve_triangular

from jaxmarg.core.jax_init import jnp
from jaxmarg.core.types import Key, KeyFormatter, default_key_formatter
from .block_matrix import VerticalBlockMatrix
from .jacobian_factor import JacobianFactor


class GaussianConditional(JacobianFactor):
    """``R x_F + S x_S = d`` over frontal keys F and parent keys S."""

    @classmethod
    def from_augmented_conditional(
        cls,
        keys: Sequence[Key],
        nr_frontals: int,
        ab: VerticalBlockMatrix,
    ) -> "GaussianConditional":
        conditional = cls.from_augmented(keys, ab)
        if not 0 < nr_frontals <= len(keys):
            raise ValueError(f"nr_frontals must be in [1, {len(keys)}], got {nr_frontals}")
        frontal_dim = sum(ab.block_dims[:nr_frontals])
        if ab.rows != frontal_dim:
            raise ValueError(
                f"Conditional on {frontal_dim} frontal dimensions needs exactly "
                f"{frontal_dim} rows, got {ab.rows}"
            )
        conditional._nr_frontals = int(nr_frontals)
        return conditional

    @property
    def nr_frontals(self) -> int:
        return self._nr_frontals

    @property
    def frontal_keys(self) -> Tuple[Key, ...]:
        return self._keys[:self._nr_frontals]

    @property
    def parent_keys(self) -> Tuple[Key, ...]:
        return self._keys[self._nr_frontals:]

    def get_r(self) -> jnp.ndarray:
        return self._ab.range(0, self._nr_frontals)

    def get_s(self, key: Key) -> jnp.ndarray:
        return self.get_a(key)

    def get_d(self) -> jnp.ndarray:
        return self.get_b()

    def as_jacobian(self) -> JacobianFactor:
        """The same rows as a plain factor, for re-elimination."""
        return JacobianFactor.from_augmented(self._keys, self._ab)

    def solve(self, parents: Mapping[Key, jnp.ndarray]) -> Dict[Key, jnp.ndarray]:
        """Back-substitute ``x_F = R⁻¹ (d − S x_S)`` given parent values."""
        rhs = self.get_d()
        n_f = self._nr_frontals
        for i, key in enumerate(self.parent_keys, start=n_f):
            rhs = rhs - self._ab.block(i) @ jnp.asarray(parents[key]).reshape(-1)
        x_f = solve_triangular(self.get_r(), rhs, lower=False)

        out: Dict[Key, jnp.ndarray] = {}
        for i, key in enumerate(self.frontal_keys):
            sl = slice(self._ab.offset(i), self._ab.offset(i + 1))
            out[key] = x_f[sl]
        return out

    def format(self, prefix: str = "", key_formatter: KeyFormatter = default_key_formatter) -> str:
        frontals = ", ".join(key_formatter(k) for k in self.frontal_keys)
        parents = ", ".join(key_formatter(k) for k in self.parent_keys)
        lines = [f"{prefix}p({frontals}" + (f" | {parents})" if parents else ")")]
        lines.append(f"  R =\n{self.get_r()}")
        for i, key in enumerate(self.parent_keys, start=self._nr_frontals):
            lines.append(f"  S[{key_formatter(key)}] =\n{self._ab.block(i)}")
        lines.append(f"  d = {self.get_d()}")
        return "\n".join(lines)
