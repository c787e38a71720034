from __future__ import annotations

import jax.numpy as jnp
import numpy as np
import pytest

from jaxmarg.core.factor_graph import FactorGraph
from jaxmarg.core.types import Factor, FactorId, NodeId, Variable
from jaxmarg.core.values import Values
from jaxmarg.linear.errors import KeyNotFoundError
from jaxmarg.marginals import Marginals
from jaxmarg.slam.measurements import pose_landmark_relative_residual, register_standard_residuals

from conftest import block, dense_covariance


def _euclidean_chain():
    fg = FactorGraph()
    fg.add_variable(Variable(NodeId(0), "place1d", jnp.array([1.0, 2.0])))
    fg.add_variable(Variable(NodeId(1), "place1d", jnp.array([2.5, 2.0])))
    fg.add_factor(Factor(FactorId(0), "prior", (NodeId(0),), {"target": jnp.zeros(2), "sigmas": 0.5}))
    fg.add_factor(Factor(
        FactorId(1), "odom", (NodeId(0), NodeId(1)),
        {"measurement": jnp.array([1.0, 0.0]), "sigmas": jnp.array([0.1, 0.2])},
    ))
    register_standard_residuals(fg)
    return fg


def _se3_pose_landmark():
    """
    pose0 (prior at identity) -> odom -> pose1 -> landmark observation.

    pose1 and the landmark are only tied to the rest of the graph by one
    square, invertible factor each, so the marginal on pose0 is exactly its
    prior: 0.1² I.
    """
    fg = FactorGraph()
    fg.add_variable(Variable(NodeId(0), "pose_se3", jnp.zeros(6)))
    fg.add_variable(Variable(NodeId(1), "pose_se3", jnp.array([1.0, 0.0, 0.0, 0.0, 0.0, 0.1])))
    fg.add_variable(Variable(NodeId(2), "landmark3d", jnp.array([2.0, 2.1, 3.0])))

    fg.add_factor(Factor(FactorId(0), "prior", (NodeId(0),), {"target": jnp.zeros(6), "sigmas": 0.1}))
    fg.add_factor(Factor(
        FactorId(1), "odom_se3_geodesic", (NodeId(0), NodeId(1)),
        {"measurement": jnp.array([1.0, 0.0, 0.0, 0.0, 0.0, 0.1]), "sigmas": 0.2},
    ))
    fg.add_factor(Factor(
        FactorId(2), "pose_landmark_relative", (NodeId(1), NodeId(2)),
        {"measurement": jnp.array([1.0, 2.0, 3.0]), "sigmas": 0.05},
    ))
    register_standard_residuals(fg)
    return fg


def test_linearize_euclidean_blocks_and_rhs():
    """
    Linear residuals: the Jacobian blocks are the residual coefficients and
    the RHS is −r(x).
    """
    fg = _euclidean_chain()
    values = Values.from_factor_graph(fg)
    linear = fg.linearize(values)

    assert len(linear) == 2
    prior, odom = linear[0], linear[1]

    np.testing.assert_allclose(prior.get_a(NodeId(0)), np.eye(2), atol=1e-12)
    np.testing.assert_allclose(prior.get_b(), [-1.0, -2.0], atol=1e-12)
    np.testing.assert_allclose(prior.model.sigmas, [0.5, 0.5])

    np.testing.assert_allclose(odom.get_a(NodeId(0)), -np.eye(2), atol=1e-12)
    np.testing.assert_allclose(odom.get_a(NodeId(1)), np.eye(2), atol=1e-12)
    # r = (x1 - x0) - z = [1.5, 0] - [1, 0]
    np.testing.assert_allclose(odom.get_b(), [-0.5, 0.0], atol=1e-12)
    np.testing.assert_allclose(odom.model.sigmas, [0.1, 0.2])


def test_error_matches_linear_graph_at_zero_delta():
    fg = _euclidean_chain()
    values = Values.from_factor_graph(fg)
    linear = fg.linearize(values)

    zero = {NodeId(0): np.zeros(2), NodeId(1): np.zeros(2)}
    assert fg.error(values) == pytest.approx(linear.error(zero))


def test_se3_prior_jacobian_is_identity_at_origin():
    fg = _se3_pose_landmark()
    values = Values.from_factor_graph(fg)
    assert values.dim(NodeId(0)) == 6
    assert values.dim(NodeId(2)) == 3

    prior = fg.linearize(values)[0]
    np.testing.assert_allclose(prior.get_a(NodeId(0)), np.eye(6), atol=1e-6)
    assert bool(jnp.all(jnp.isfinite(prior.augmented_jacobian())))


def test_se3_marginals_match_dense_inverse():
    fg = _se3_pose_landmark()
    values = Values.from_factor_graph(fg)
    m = Marginals(fg, values)

    cov0 = np.asarray(m.marginal_covariance(NodeId(0)))
    assert cov0.shape == (6, 6)
    np.testing.assert_allclose(cov0, 0.01 * np.eye(6), atol=1e-8)

    keys = [NodeId(0), NodeId(1), NodeId(2)]
    dims = {k: values.dim(k) for k in keys}
    sigma, offsets = dense_covariance(m.graph, keys, dims)

    cov_l = np.asarray(m.marginal_covariance(NodeId(2)))
    assert cov_l.shape == (3, 3)
    np.testing.assert_allclose(cov_l, cov_l.T, atol=1e-10)
    assert np.all(np.linalg.eigvalsh(cov_l) > 0)
    np.testing.assert_allclose(cov_l, block(sigma, offsets, dims, NodeId(2), NodeId(2)), atol=1e-8)

    jm = m.joint_marginal_covariance([NodeId(1), NodeId(2)])
    np.testing.assert_allclose(
        jm.at(NodeId(1), NodeId(2)), block(sigma, offsets, dims, NodeId(1), NodeId(2)), atol=1e-8
    )


def test_missing_residual_and_missing_value():
    fg = _euclidean_chain()
    fg.add_factor(Factor(FactorId(2), "range", (NodeId(1),), {}))
    with pytest.raises(ValueError, match="No residual fn registered"):
        fg.linearize(Values.from_factor_graph(fg))

    fg = _euclidean_chain()
    values = Values()
    values.insert(NodeId(0), jnp.zeros(2))
    with pytest.raises(KeyNotFoundError):
        fg.linearize(values)
    with pytest.raises(KeyNotFoundError):
        Marginals(fg, values)


def test_duplicate_ids_rejected():
    fg = _euclidean_chain()
    with pytest.raises(ValueError):
        fg.add_variable(Variable(NodeId(0), "place1d", jnp.zeros(2)))
    with pytest.raises(ValueError):
        fg.add_factor(Factor(FactorId(0), "prior", (NodeId(0),), {"target": jnp.zeros(2)}))


def test_pose_landmark_residual_uses_stored_translation():
    """
    Pose at t = (1, 2, 0) rotated 90° about z. A landmark one metre ahead
    in the pose frame sits at (1, 3, 0) in the world, so the matching
    measurement gives a zero residual.
    """
    pose = jnp.array([1.0, 2.0, 0.0, 0.0, 0.0, jnp.pi / 2])
    landmark = jnp.array([1.0, 3.0, 0.0])
    x = jnp.concatenate([pose, landmark])

    r = pose_landmark_relative_residual(x, {"measurement": jnp.array([1.0, 0.0, 0.0])})
    assert jnp.allclose(r, jnp.zeros(3), atol=1e-9)

    r_off = pose_landmark_relative_residual(x, {"measurement": jnp.array([0.0, 1.0, 0.0])})
    assert jnp.linalg.norm(r_off) > 1.0
