"""
Dense frontal elimination kernels.

Every elimination in jaxmarg, sequential or multifrontal, full or partial,
reduces to one step: take the factors touching a set of frontal variables,
and split their product into

    p(x_F | x_S)  ·  f(x_S)

i.e. a :class:`GaussianConditional` on the frontals and a new factor on the
separator. Two kernels implement that step:

Factorization.QR
    Stack the whitened ``[A | b]`` of all factors and take a Householder QR.
    The first ``dim(F)`` rows of R are the conditional, the rest is a
    Jacobian factor on the separator. Numerically robust; rank-deficient
    frontals simply produce zero rows.

Factorization.CHOLESKY
    Sum the augmented information matrices and Cholesky-factor the frontal
    block. The Schur complement on the separator is returned as a
    :class:`HessianFactor`. Faster, but a non-positive pivot (an
    under-constrained variable) raises
    :class:`IndeterminantLinearSystemError`.

The strategy is a closed enumeration chosen once by the caller and passed to
every elimination call explicitly.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from jax.scipy.linalg import solve_triangular

from jaxmarg.core.jax_init import jnp
from jaxmarg.core.types import Key
from .block_matrix import VerticalBlockMatrix
from .conditional import GaussianConditional
from .errors import IndeterminantLinearSystemError
from .gaussian_factor import GaussianFactor
from .hessian_factor import HessianFactor
from .jacobian_factor import JacobianFactor


class Factorization(enum.Enum):
    CHOLESKY = "cholesky"
    QR = "qr"


@dataclass(frozen=True)
class EliminationConfig:
    """
    ordering:
        "min_degree" (greedy minimum degree fill-reducing heuristic) or
        "natural" (keys in first-seen order).
    pivot_tolerance:
        A Cholesky pivot with ``pivot_i² <= tol * H_FF[i, i]`` is treated as
        zero: the variable lost almost all of its own information to the
        variables eliminated before it.
    """
    ordering: str = "min_degree"
    pivot_tolerance: float = 1e-9


EliminationResult = Tuple[GaussianConditional, GaussianFactor]


# --- layout helpers ---

def collect_dims(factors: Sequence[GaussianFactor]) -> Dict[Key, int]:
    """Key -> dimension over ``factors``, in first-seen order."""
    dims: Dict[Key, int] = {}
    for factor in factors:
        for key, d in factor.dims.items():
            if key in dims and dims[key] != d:
                raise ValueError(
                    f"Variable {key!r} appears with inconsistent dimensions "
                    f"{dims[key]} and {d}"
                )
            dims.setdefault(key, d)
    return dims


def _offsets(keys: Sequence[Key], dims: Mapping[Key, int]) -> Tuple[Dict[Key, int], int]:
    offsets: Dict[Key, int] = {}
    n = 0
    for key in keys:
        offsets[key] = n
        n += dims[key]
    return offsets, n


def _column_index(factor: GaussianFactor, offsets: Mapping[Key, int], n: int) -> jnp.ndarray:
    cols = []
    for key in factor.keys:
        if key not in offsets:
            raise ValueError(f"Factor key {key!r} is missing from the requested layout")
        start = offsets[key]
        cols.extend(range(start, start + factor.get_dim(key)))
    cols.append(n)
    return jnp.asarray(cols, dtype=jnp.int32)


def assemble_augmented_jacobian(
    factors: Sequence[GaussianFactor],
    keys: Sequence[Key],
    dims: Mapping[Key, int],
) -> jnp.ndarray:
    """Stack whitened ``[A | b]`` of Jacobian factors with columns in ``keys`` order."""
    offsets, n = _offsets(keys, dims)
    jacobians = []
    for factor in factors:
        if not isinstance(factor, JacobianFactor):
            raise ValueError(
                f"QR elimination and augmented Jacobians need JacobianFactors, "
                f"got {type(factor).__name__}"
            )
        jacobians.append(factor)

    m = sum(f.rows for f in jacobians)
    Ab = jnp.zeros((m, n + 1))
    row = 0
    for factor in jacobians:
        if factor.rows == 0:
            continue
        cols = _column_index(factor, offsets, n)
        Ab = Ab.at[row:row + factor.rows, cols].set(factor.augmented_jacobian())
        row += factor.rows
    return Ab


def assemble_augmented_hessian(
    factors: Sequence[GaussianFactor],
    keys: Sequence[Key],
    dims: Mapping[Key, int],
) -> jnp.ndarray:
    """Sum of augmented information matrices with blocks in ``keys`` order."""
    offsets, n = _offsets(keys, dims)
    H = jnp.zeros((n + 1, n + 1))
    for factor in factors:
        idx = _column_index(factor, offsets, n)
        H = H.at[jnp.ix_(idx, idx)].add(factor.augmented_information())
    return H


def _layout(
    factors: Sequence[GaussianFactor],
    frontal_keys: Sequence[Key],
    position: Optional[Mapping[Key, int]],
) -> Tuple[List[Key], List[Key], Dict[Key, int]]:
    dims = collect_dims(factors)
    frontals = list(frontal_keys)
    for key in frontals:
        if key not in dims:
            raise ValueError(f"Frontal variable {key!r} is not involved in any factor")
    frontal_set = set(frontals)
    separator = [k for k in dims if k not in frontal_set]
    if position is not None:
        separator.sort(key=lambda k: position[k])
    return frontals, separator, dims


def _conditional(keys, n_frontals, block_dims, rows) -> GaussianConditional:
    ab = VerticalBlockMatrix.from_matrix(rows, block_dims)
    return GaussianConditional.from_augmented_conditional(keys, n_frontals, ab)


# --- kernels ---

def eliminate_qr(
    factors: Sequence[GaussianFactor],
    frontal_keys: Sequence[Key],
    position: Optional[Mapping[Key, int]] = None,
) -> EliminationResult:
    frontals, separator, dims = _layout(factors, frontal_keys, position)
    keys = frontals + separator
    Ab = assemble_augmented_jacobian(factors, keys, dims)

    n_f = sum(dims[k] for k in frontals)
    width = Ab.shape[1]
    if Ab.shape[0] == 0:
        R = jnp.zeros((0, width))
    else:
        R = jnp.linalg.qr(Ab, mode="r")
    if R.shape[0] < n_f:
        # Fewer rows than frontal dimensions: rank-deficient conditional.
        R = jnp.vstack([R, jnp.zeros((n_f - R.shape[0], width))])

    block_dims = [dims[k] for k in keys] + [1]
    conditional = _conditional(keys, len(frontals), block_dims, R[:n_f])

    sep_dims = [dims[k] for k in separator] + [1]
    remainder = JacobianFactor.from_augmented(
        separator, VerticalBlockMatrix.from_matrix(R[n_f:, n_f:], sep_dims)
    )
    return conditional, remainder


def eliminate_cholesky(
    factors: Sequence[GaussianFactor],
    frontal_keys: Sequence[Key],
    position: Optional[Mapping[Key, int]] = None,
    cfg: Optional[EliminationConfig] = None,
) -> EliminationResult:
    cfg = cfg or EliminationConfig()
    frontals, separator, dims = _layout(factors, frontal_keys, position)
    keys = frontals + separator
    H = assemble_augmented_hessian(factors, keys, dims)

    n_f = sum(dims[k] for k in frontals)
    H_ff = H[:n_f, :n_f]
    L = jnp.linalg.cholesky(H_ff)

    # Each pivot is the Schur complement left of its own diagonal entry.
    pivots = jnp.diag(L)
    bad = ~jnp.isfinite(pivots) | (pivots * pivots <= cfg.pivot_tolerance * jnp.diag(H_ff))
    if bool(jnp.any(bad)):
        raise IndeterminantLinearSystemError(_key_at(int(jnp.argmax(bad)), frontals, dims))

    # R = Lᵀ; [S | d] = L⁻¹ H_F,rest
    rest = solve_triangular(L, H[:n_f, n_f:], lower=True)
    block_dims = [dims[k] for k in keys] + [1]
    conditional = _conditional(keys, len(frontals), block_dims, jnp.hstack([L.T, rest]))

    schur = H[n_f:, n_f:] - rest.T @ rest
    remainder = HessianFactor(separator, [dims[k] for k in separator], schur)
    return conditional, remainder


def eliminate(
    factors: Sequence[GaussianFactor],
    frontal_keys: Sequence[Key],
    factorization: Factorization,
    position: Optional[Mapping[Key, int]] = None,
    cfg: Optional[EliminationConfig] = None,
) -> EliminationResult:
    """Eliminate ``frontal_keys`` from ``factors`` with the given strategy."""
    if factorization is Factorization.QR:
        return eliminate_qr(factors, frontal_keys, position)
    if factorization is Factorization.CHOLESKY:
        return eliminate_cholesky(factors, frontal_keys, position, cfg)
    raise ValueError(f"Unknown factorization {factorization!r}")


def _key_at(index: int, keys: Sequence[Key], dims: Mapping[Key, int]) -> Key:
    offset = 0
    for key in keys:
        offset += dims[key]
        if index < offset:
            return key
    return keys[-1]
