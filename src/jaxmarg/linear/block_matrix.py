"""
Column-block-partitioned dense matrices.

A :class:`VerticalBlockMatrix` is one dense ``(rows, sum(block_dims))``
JAX array with its columns split into contiguous blocks, one per variable
plus (by convention in the factors) a trailing 1-column RHS block:

    [ A_1 | A_2 | ... | A_k | b ]

Block offsets are cumulative sums of ``block_dims`` in block order. JAX
arrays are immutable, so ``set_block`` replaces the backing array with an
updated copy.
"""

from __future__ import annotations

from typing import List, Sequence

from jaxmarg.core.jax_init import jnp


class VerticalBlockMatrix:
    """Dense matrix split into column blocks of the given widths."""

    def __init__(self, block_dims: Sequence[int], rows: int, matrix=None) -> None:
        self._dims: List[int] = [int(d) for d in block_dims]
        if any(d < 0 for d in self._dims):
            raise ValueError(f"Block dimensions must be non-negative, got {self._dims}")
        self._offsets: List[int] = [0]
        for d in self._dims:
            self._offsets.append(self._offsets[-1] + d)

        if matrix is None:
            matrix = jnp.zeros((int(rows), self._offsets[-1]))
        matrix = jnp.asarray(matrix, dtype=jnp.float64)
        if matrix.ndim != 2 or matrix.shape != (int(rows), self._offsets[-1]):
            raise ValueError(
                f"Matrix of shape {matrix.shape} does not match {int(rows)} rows "
                f"and block dimensions {self._dims}"
            )
        self._matrix = matrix

    @classmethod
    def from_matrix(cls, matrix, block_dims: Sequence[int]) -> "VerticalBlockMatrix":
        matrix = jnp.asarray(matrix, dtype=jnp.float64)
        if matrix.ndim == 1:
            matrix = matrix.reshape(-1, 1)
        return cls(block_dims, matrix.shape[0], matrix)

    @property
    def rows(self) -> int:
        return int(self._matrix.shape[0])

    @property
    def cols(self) -> int:
        return self._offsets[-1]

    @property
    def n_blocks(self) -> int:
        return len(self._dims)

    @property
    def block_dims(self) -> List[int]:
        return list(self._dims)

    def offset(self, block: int) -> int:
        return self._offsets[block]

    def block_slice(self, block: int) -> slice:
        if block < 0:
            block += self.n_blocks
        return slice(self._offsets[block], self._offsets[block + 1])

    def block(self, block: int) -> jnp.ndarray:
        return self._matrix[:, self.block_slice(block)]

    def range(self, start: int, end: int) -> jnp.ndarray:
        """Columns of blocks ``start`` (inclusive) to ``end`` (exclusive)."""
        return self._matrix[:, self._offsets[start]:self._offsets[end]]

    def set_block(self, block: int, value) -> None:
        sl = self.block_slice(block)
        value = jnp.asarray(value, dtype=jnp.float64)
        if value.ndim == 1:
            value = value.reshape(-1, 1)
        self._matrix = self._matrix.at[:, sl].set(value)

    def full(self) -> jnp.ndarray:
        return self._matrix

    def __getitem__(self, block: int) -> jnp.ndarray:
        return self.block(block)
