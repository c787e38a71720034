"""
Residual models (measurement factors) for jaxmarg.

Each function implements a residual

    r(x; params) ∈ ℝᵏ

where ``x`` is the concatenation of the factor's variable values in
``var_ids`` order. They are plain JAX functions, so
:meth:`FactorGraph.linearize` can differentiate them with ``jax.jacfwd``.

Noise
-----
There are two ways to weight a residual, and a factor should use one:

    • ``params["sigmas"]``: a per-row standard deviation vector. The residual
      is left unweighted here and linearization attaches a ``Diagonal`` noise
      model built from the sigmas. This is the usual choice for marginals,
      since the resulting covariances are then in measurement units.
    • ``params["weight"]``: applied inside the residual by
      :func:`_apply_weight` (scalar information weight or per-component
      square-root information vector).

Families
--------
prior_residual                     r = x − target
odom_residual                      r = (x_j − x_i) − measurement
odom_se3_geodesic_residual         r = log(T_i⁻¹ T_j) − measurement
pose_landmark_relative_residual    r = R_iᵀ (l − t_i) − measurement

Registering the whole set on a graph::

    register_standard_residuals(fg)
"""

from __future__ import annotations
from typing import Callable, Dict

from jaxmarg.core.jax_init import jnp
from jaxmarg.core.math3d import pose_vec_to_rt, relative_pose_se3, so3_exp


def _apply_weight(residual: jnp.ndarray, params: dict, key: str = "weight") -> jnp.ndarray:
    """
    Optional weighting of residuals.

    If params[key] is:
      - missing: no change
      - scalar:  r' = sqrt(w) * r
      - vector:  r' = w * r   (per-component sqrt-info)
    """
    w = params.get(key, None)
    if w is None:
        return residual
    w = jnp.asarray(w)
    if w.ndim == 0:
        return jnp.sqrt(w) * residual
    return w * residual


def sigma_to_weight(sigma):
    """Scalar or per-component ``1 / sigma²``, the information weight of a std dev."""
    s = jnp.asarray(sigma)
    return 1.0 / (s * s)


def prior_residual(x: jnp.ndarray, params: Dict[str, jnp.ndarray]) -> jnp.ndarray:
    """
    Prior on a single variable of any dimension:
        residual = x - target
    """
    r = x - jnp.asarray(params["target"])
    return _apply_weight(r, params)


def odom_residual(x: jnp.ndarray, params: Dict[str, jnp.ndarray]) -> jnp.ndarray:
    """
    Euclidean between-factor on two stacked equal-size variables:
        residual = (x_j - x_i) - measurement
    """
    dim = x.shape[0] // 2
    r = (x[dim:] - x[:dim]) - jnp.asarray(params["measurement"])
    return _apply_weight(r, params)


def odom_se3_geodesic_residual(x: jnp.ndarray, params: Dict[str, jnp.ndarray]) -> jnp.ndarray:
    """
    SE(3) odometry through the group logarithm.

    x = [pose_i, pose_j], each [tx, ty, tz, wx, wy, wz]; measurement is the
    se(3) vector of the expected relative motion i -> j.
    """
    if x.shape[0] != 12:
        raise ValueError(f"odom_se3_geodesic_residual expects two stacked 6D poses, got {x.shape[0]} values")
    xi_est = relative_pose_se3(x[:6], x[6:])
    r = xi_est - jnp.asarray(params["measurement"])
    return _apply_weight(r, params)


def pose_landmark_relative_residual(x: jnp.ndarray, params: dict) -> jnp.ndarray:
    """
    Landmark position observed in the pose frame.

    x = [pose (6), landmark (3)];
        residual = R^T (landmark - t) - measurement
    with t the stored translation and R = so3_exp(w).
    """
    t, w = pose_vec_to_rt(x[:6])
    landmark = x[6:9]
    R = so3_exp(w)
    residual = R.T @ (landmark - t) - jnp.asarray(params["measurement"])
    return _apply_weight(residual, params)


STANDARD_RESIDUALS: Dict[str, Callable] = {
    "prior": prior_residual,
    "odom": odom_residual,
    "odom_se3_geodesic": odom_se3_geodesic_residual,
    "pose_landmark_relative": pose_landmark_relative_residual,
}


def register_standard_residuals(fg) -> None:
    """Register every residual above on ``fg`` under its factor-type name."""
    for factor_type, fn in STANDARD_RESIDUALS.items():
        fg.register_residual(factor_type, fn)
