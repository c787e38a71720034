"""
Diagonal Gaussian noise models.

A :class:`Diagonal` model carries one standard deviation per residual row.
Whitening divides each row by its sigma, turning ``||r||²_Σ`` into the
plain squared norm consumed by elimination. This plays the same role as the
``"weight"`` / :func:`sigma_to_weight` convention of the residual functions
in :mod:`jaxmarg.slam.measurements`, but is attached to a linear factor
instead of being baked into its rows.
"""

from __future__ import annotations

from dataclasses import dataclass

from jaxmarg.core.jax_init import jnp


@dataclass(frozen=True)
class Diagonal:
    """
    Independent Gaussian noise per row, given by its standard deviations.
    Whitening divides row i by sigmas[i].
    """
    sigmas: jnp.ndarray

    def __post_init__(self) -> None:
        sigmas = jnp.asarray(self.sigmas, dtype=jnp.float64).reshape(-1)
        if not bool(jnp.all(sigmas > 0)):
            raise ValueError("Diagonal noise model requires strictly positive sigmas")
        object.__setattr__(self, "sigmas", sigmas)

    @classmethod
    def from_sigmas(cls, sigmas) -> "Diagonal":
        return cls(jnp.asarray(sigmas))

    @classmethod
    def from_variances(cls, variances) -> "Diagonal":
        return cls(jnp.sqrt(jnp.asarray(variances, dtype=jnp.float64)))

    @classmethod
    def from_precisions(cls, precisions) -> "Diagonal":
        return cls(1.0 / jnp.sqrt(jnp.asarray(precisions, dtype=jnp.float64)))

    @classmethod
    def unit(cls, dim: int) -> "Diagonal":
        return cls(jnp.ones(dim))

    @property
    def dim(self) -> int:
        return int(self.sigmas.shape[0])

    @property
    def precisions(self) -> jnp.ndarray:
        return 1.0 / (self.sigmas * self.sigmas)

    def whiten(self, v: jnp.ndarray) -> jnp.ndarray:
        """Whiten a vector (one entry per row) or a matrix (row-wise)."""
        v = jnp.asarray(v)
        if v.ndim == 1:
            return v / self.sigmas
        return v / self.sigmas[:, None]

    def __repr__(self) -> str:
        return f"Diagonal(sigmas={[float(s) for s in self.sigmas]})"
