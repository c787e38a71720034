"""
Block linear factor: ``A_1 x_1 + A_2 x_2 + ... = b`` with optional diagonal
noise.

Storage is a single :class:`VerticalBlockMatrix`

    [ A_1 | A_2 | ... | A_k | b ]

one column block per key, in key order, followed by the 1-column RHS. The
noise model is kept separate and applied on demand (``augmented_jacobian``,
``information``), so the stored blocks are exactly what the caller passed.

Construction
------------
JacobianFactor(terms, b, model=None)
    ``terms`` is an ordered iterable of ``(key, matrix)`` pairs. Every
    matrix must have ``len(b)`` rows.

JacobianFactor.from_augmented(keys, ab, model=None)
    ``ab`` is a pre-assembled block matrix whose last block is the RHS.

Any violated shape invariant raises immediately; a factor never exists in a
half-built state.
"""

from __future__ import annotations

from typing import Dict, Iterable, Mapping, Optional, Sequence, Tuple

from jaxmarg.core.jax_init import jnp
from jaxmarg.core.types import Key, KeyFormatter, default_key_formatter
from .block_matrix import VerticalBlockMatrix
from .errors import InvalidMatrixBlock, InvalidNoiseModel, KeyNotFoundError
from .gaussian_factor import GaussianFactor
from .noise_model import Diagonal


class JacobianFactor(GaussianFactor):
    """
    Block linear factor ``||Σ^{-1/2} (A x - b)||²``.

    - keys: ordered, distinct variable keys
    - ab: one column block per key plus a trailing 1-column RHS block
    - model: optional :class:`Diagonal` noise model, one sigma per row

    Build it from ``(key, block)`` terms with an RHS, or from an existing
    :class:`VerticalBlockMatrix` with :meth:`from_augmented`.
    """

    def __init__(
        self,
        terms: Iterable[Tuple[Key, jnp.ndarray]] = (),
        b=None,
        model: Optional[Diagonal] = None,
    ) -> None:
        terms = list(terms)
        if b is None:
            if terms:
                raise ValueError("JacobianFactor terms were given without an RHS vector")
            b = jnp.zeros(0)
        b = jnp.asarray(b, dtype=jnp.float64).reshape(-1)
        rows = int(b.shape[0])

        if model is not None and model.dim != rows:
            raise InvalidNoiseModel(rows, model.dim)

        keys = []
        blocks = []
        for key, A in terms:
            A = jnp.atleast_2d(jnp.asarray(A, dtype=jnp.float64))
            if A.shape[0] != rows:
                raise InvalidMatrixBlock(rows, A.shape[0])
            keys.append(key)
            blocks.append(A)
        _check_distinct(keys)

        ab = VerticalBlockMatrix([A.shape[1] for A in blocks] + [1], rows)
        for i, A in enumerate(blocks):
            ab.set_block(i, A)
        ab.set_block(len(blocks), b)

        self._keys = tuple(keys)
        self._ab = ab
        self._model = model

    @classmethod
    def from_augmented(
        cls,
        keys: Sequence[Key],
        ab: VerticalBlockMatrix,
        model: Optional[Diagonal] = None,
    ) -> "JacobianFactor":
        if model is not None and model.dim != ab.rows:
            raise InvalidNoiseModel(ab.rows, model.dim)

        if len(keys) != ab.n_blocks - 1:
            raise ValueError(
                "Error in JacobianFactor constructor input. Number of provided keys "
                "plus one for the RHS vector must equal the number of provided "
                f"matrix blocks (got {len(keys)} keys and {ab.n_blocks} blocks)."
            )

        if ab.block_dims[-1] != 1:
            raise ValueError(
                "Error in JacobianFactor constructor input. The last provided matrix "
                "block must be the RHS vector, but the last provided block had "
                f"{ab.block_dims[-1]} columns."
            )
        _check_distinct(keys)

        factor = cls.__new__(cls)
        factor._keys = tuple(keys)
        factor._ab = ab
        factor._model = model
        return factor

    # --- accessors ---

    @property
    def rows(self) -> int:
        return self._ab.rows

    @property
    def model(self) -> Optional[Diagonal]:
        return self._model

    @property
    def augmented_matrix(self) -> VerticalBlockMatrix:
        return self._ab

    @property
    def dims(self) -> Dict[Key, int]:
        return {key: self._ab.block_dims[i] for i, key in enumerate(self._keys)}

    def _position(self, key: Key) -> int:
        try:
            return self._keys.index(key)
        except ValueError:
            raise KeyNotFoundError(key, "JacobianFactor") from None

    def get_a(self, key: Key) -> jnp.ndarray:
        return self._ab.block(self._position(key))

    def get_b(self) -> jnp.ndarray:
        return self._ab.block(-1)[:, 0]

    def is_empty(self) -> bool:
        return self.rows == 0

    # --- whitened views ---

    def augmented_jacobian(self) -> jnp.ndarray:
        Ab = self._ab.full()
        if self._model is None:
            return Ab
        return self._model.whiten(Ab)

    def jacobian(self) -> Tuple[jnp.ndarray, jnp.ndarray]:
        Ab = self.augmented_jacobian()
        return Ab[:, :-1], Ab[:, -1]

    def augmented_information(self) -> jnp.ndarray:
        Ab = self.augmented_jacobian()
        return Ab.T @ Ab

    def information(self) -> jnp.ndarray:
        A, _ = self.jacobian()
        return A.T @ A

    # --- evaluation ---

    def unweighted_error(self, x: Mapping[Key, jnp.ndarray]) -> jnp.ndarray:
        """``A x - b`` without whitening."""
        Ab = self._ab.full()
        return Ab[:, :-1] @ self._stack(x) - Ab[:, -1]

    def error_vector(self, x: Mapping[Key, jnp.ndarray]) -> jnp.ndarray:
        e = self.unweighted_error(x)
        return e if self._model is None else self._model.whiten(e)

    def error(self, x: Mapping[Key, jnp.ndarray]) -> float:
        e = self.error_vector(x)
        return 0.5 * float(e @ e)

    def whiten(self) -> "JacobianFactor":
        """Copy with the noise model folded into the rows."""
        if self._model is None:
            return self
        ab = VerticalBlockMatrix.from_matrix(self.augmented_jacobian(), self._ab.block_dims)
        return JacobianFactor.from_augmented(self._keys, ab)

    def equals(self, other: "JacobianFactor", tol: float = 1e-9) -> bool:
        if not isinstance(other, JacobianFactor) or self._keys != other._keys:
            return False
        if self._ab.block_dims != other._ab.block_dims or self.rows != other.rows:
            return False
        return bool(jnp.allclose(self.augmented_jacobian(), other.augmented_jacobian(), atol=tol))

    def format(self, prefix: str = "", key_formatter: KeyFormatter = default_key_formatter) -> str:
        lines = [f"{prefix}JacobianFactor on [{', '.join(key_formatter(k) for k in self._keys)}]"
                 f" ({self.rows} rows)"]
        for i, key in enumerate(self._keys):
            lines.append(f"  A[{key_formatter(key)}] =\n{self._ab.block(i)}")
        lines.append(f"  b = {self.get_b()}")
        if self._model is not None:
            lines.append(f"  noise model: {self._model!r}")
        return "\n".join(lines)


def _check_distinct(keys: Sequence[Key]) -> None:
    if len(set(keys)) != len(keys):
        raise ValueError(f"JacobianFactor keys must be distinct, got {list(keys)}")
