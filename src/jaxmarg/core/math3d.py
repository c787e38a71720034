"""
SO(3) / SE(3) maps used by jaxmarg's pose residuals and pose retraction.

Poses are stored as 6-vectors ``[tx, ty, tz, wx, wy, wz]`` (translation
followed by an axis-angle rotation vector). Linearization differentiates
residuals through :func:`se3_retract_left`, so everything here has to be
``jax.jacfwd``-friendly, including at the zero-rotation limit where the
small-angle branches take over.

Functions
---------
hat / vee
    3-vector <-> skew-symmetric matrix.
so3_exp / so3_log
    Rodrigues' formula and its inverse.
relative_pose_se3
    6-vector of ``T_a^{-1} T_b``.
se3_retract_left
    ``Exp(delta) * T``, the update rule used when perturbing a pose.
"""

from __future__ import annotations

from .jax_init import jax, jnp

_SMALL_ANGLE = 1e-5


def pose_vec_to_rt(v: jnp.ndarray) -> tuple[jnp.ndarray, jnp.ndarray]:
    """Split ``[t, w]`` into translation and rotation vector."""
    v = jnp.asarray(v)
    return v[0:3], v[3:6]


def hat(v: jnp.ndarray) -> jnp.ndarray:
    x, y, z = v[0], v[1], v[2]
    return jnp.array(
        [
            [0.0, -z, y],
            [z, 0.0, -x],
            [-y, x, 0.0],
        ]
    )


def vee(W: jnp.ndarray) -> jnp.ndarray:
    """Inverse of :func:`hat`, averaging the antisymmetric entries."""
    return jnp.array([
        W[2, 1] - W[1, 2],
        W[0, 2] - W[2, 0],
        W[1, 0] - W[0, 1],
    ]) / 2.0


def so3_exp(w: jnp.ndarray) -> jnp.ndarray:
    w = jnp.asarray(w)
    theta = jnp.linalg.norm(w)
    I = jnp.eye(3)

    def small_angle() -> jnp.ndarray:
        return I + hat(w)

    def normal_angle() -> jnp.ndarray:
        K = hat(w / theta)
        return I + jnp.sin(theta) * K + (1.0 - jnp.cos(theta)) * (K @ K)

    return jax.lax.cond(theta < _SMALL_ANGLE, small_angle, normal_angle)


def so3_log(R: jnp.ndarray) -> jnp.ndarray:
    """
    Rotation matrix -> rotation vector.

    The trace is clamped into the domain of arccos, and near the identity
    ``vee(R - I)`` is used instead of the ``theta / (2 sin theta)`` formula.
    """
    R = jnp.asarray(R)
    cos_theta = jnp.clip((jnp.trace(R) - 1.0) / 2.0, -1.0, 1.0)
    theta = jnp.arccos(cos_theta)

    def small_angle(_) -> jnp.ndarray:
        return vee(R - jnp.eye(3, dtype=R.dtype))

    def general(_) -> jnp.ndarray:
        factor = theta / (2.0 * jnp.sin(theta) + 1e-12)
        return factor * vee(R - R.T)

    return jax.lax.cond(theta < _SMALL_ANGLE, small_angle, general, operand=None)


def relative_pose_se3(a: jnp.ndarray, b: jnp.ndarray) -> jnp.ndarray:
    """
    6-vector of ``T_a^{-1} T_b``:

      t_rel = R_a^T (t_b - t_a)
      w_rel = log(R_a^T R_b)
    """
    ta, wa = pose_vec_to_rt(a)
    tb, wb = pose_vec_to_rt(b)

    Ra = so3_exp(wa)
    Rb = so3_exp(wb)

    w_rel = so3_log(Ra.T @ Rb)
    t_rel = Ra.T @ (tb - ta)
    return jnp.concatenate([t_rel, w_rel])


def se3_retract_left(pose: jnp.ndarray, delta: jnp.ndarray) -> jnp.ndarray:
    """
    Left-multiplicative retraction ``T_new = Exp(delta) * T``:

        R_new = R_d R
        t_new = R_d t + t_d
    """
    t, w = pose_vec_to_rt(pose)
    dt, dw = pose_vec_to_rt(jnp.asarray(delta))

    R_d = so3_exp(dw)
    R_new = R_d @ so3_exp(w)
    t_new = R_d @ t + dt

    return jnp.concatenate([t_new, so3_log(R_new)])
