from __future__ import annotations

import jax
import jax.numpy as jnp
import pytest

from jaxmarg.core.math3d import relative_pose_se3, se3_retract_left, so3_exp, so3_log
from jaxmarg.core.values import Values
from jaxmarg.linear.errors import KeyNotFoundError
from jaxmarg.slam.manifold import get_manifold_for_var_type, tangent_dim


def test_so3_log_exp_roundtrip_small_angle():
    w = jnp.array([0.1, -0.05, 0.02])
    w_est = so3_log(so3_exp(w))
    assert jnp.all(jnp.isfinite(w_est))
    assert jnp.allclose(w_est, w, atol=1e-6)


def test_so3_log_no_nan_for_identity():
    w = so3_log(jnp.eye(3))
    assert jnp.all(jnp.isfinite(w))
    assert jnp.linalg.norm(w) < 1e-9


def test_se3_retract_zero_delta_is_identity():
    pose = jnp.array([0.3, -0.2, 1.0, 0.05, 0.1, -0.2])
    assert jnp.allclose(se3_retract_left(pose, jnp.zeros(6)), pose, atol=1e-9)


def test_se3_retract_matches_relative_pose_for_small_delta():
    """
    Applied to the identity, a small delta comes back out of
    relative_pose_se3 (up to the left-Jacobian on translation).
    """
    delta = jnp.array([0.1, -0.05, 0.02, 0.01, 0.0, -0.02])
    pose1 = se3_retract_left(jnp.zeros(6), delta)
    assert jnp.allclose(relative_pose_se3(jnp.zeros(6), pose1), delta, atol=1e-3)


def test_retract_jacobian_at_origin_is_finite():
    J = jax.jacfwd(lambda d: se3_retract_left(jnp.zeros(6), d))(jnp.zeros(6))
    assert jnp.all(jnp.isfinite(J))
    assert jnp.allclose(J, jnp.eye(6), atol=1e-6)


def test_manifold_tags_and_tangent_dims():
    assert get_manifold_for_var_type("pose_se3") == "se3"
    assert get_manifold_for_var_type("landmark3d") == "euclidean"
    assert get_manifold_for_var_type("something_new") == "euclidean"
    assert tangent_dim("se3", jnp.zeros(6)) == 6
    assert tangent_dim("euclidean", jnp.zeros(4)) == 4


def test_values_dims_and_lookup():
    values = Values()
    values.insert("x0", jnp.zeros(6), var_type="pose_se3")
    values.insert("l0", jnp.array([1.0, 2.0, 3.0]), var_type="landmark3d")

    assert values.keys() == ["x0", "l0"]
    assert values.dim("x0") == 6 and values.dim("l0") == 3
    assert "x0" in values and "x1" not in values

    values.update("l0", jnp.array([0.0, 0.0, 1.0]))
    assert jnp.allclose(values.retract("l0", jnp.array([1.0, 0.0, 0.0])), jnp.array([1.0, 0.0, 1.0]))

    with pytest.raises(ValueError):
        values.insert("x0", jnp.zeros(6))
    with pytest.raises(KeyNotFoundError):
        values.at("x1")
    with pytest.raises(KeyNotFoundError):
        values.dim("x1")
    assert "x0 (se3)" in values.format()
