"""
Exceptions raised by the linear-algebra layer and the marginals engine.

    InvalidNoiseModel               noise model dim != factor rows
    InvalidMatrixBlock              Jacobian block rows != RHS length
    KeyNotFoundError                query references an unknown variable
    IndeterminantLinearSystemError  Cholesky pivot <= 0 during elimination
    SingularMatrixError             information matrix cannot be inverted

All of them are raised synchronously to the immediate caller; nothing in
jaxmarg retries or masks them.
"""

from __future__ import annotations

from typing import Any

import numpy as np


class InvalidNoiseModel(ValueError):
    def __init__(self, factor_dims: int, noise_model_dims: int) -> None:
        self.factor_dims = int(factor_dims)
        self.noise_model_dims = int(noise_model_dims)
        super().__init__(
            f"A noise model was provided with dimension {self.noise_model_dims}, "
            f"but the factor has {self.factor_dims} rows "
            f"(sizes: factor={self.factor_dims}, noise model={self.noise_model_dims})."
        )


class InvalidMatrixBlock(ValueError):
    def __init__(self, factor_rows: int, block_rows: int) -> None:
        self.factor_rows = int(factor_rows)
        self.block_rows = int(block_rows)
        super().__init__(
            f"A matrix block with {self.block_rows} rows was provided, but the "
            f"factor (RHS) has {self.factor_rows} rows; all blocks must have "
            f"the same row count as the RHS vector."
        )


class KeyNotFoundError(KeyError):
    def __init__(self, key: Any, where: str = "") -> None:
        self.key = key
        location = f" in {where}" if where else ""
        super().__init__(f"Variable {key!r} was not found{location}.")

    def __str__(self) -> str:
        # KeyError quotes its argument; keep the message readable.
        return self.args[0]


class IndeterminantLinearSystemError(RuntimeError):
    def __init__(self, key: Any) -> None:
        self.key = key
        super().__init__(
            f"The linear system is indeterminant near variable {key!r}: a "
            f"non-positive pivot was hit while eliminating it. The variable is "
            f"probably under-constrained (missing prior, gauge freedom, or too "
            f"few measurements). QR elimination tolerates rank deficiency."
        )


class SingularMatrixError(np.linalg.LinAlgError):
    """Raised when an information matrix cannot be inverted into a covariance."""
