from __future__ import annotations

import numpy as np
import pytest

from jaxmarg.core.values import Values
from jaxmarg.linear.gaussian_factor_graph import GaussianFactorGraph
from jaxmarg.linear.jacobian_factor import JacobianFactor
from jaxmarg.linear.noise_model import Diagonal


def _between(i, j, b, sigma):
    return JacobianFactor(
        [(i, -np.eye(2)), (j, np.eye(2))],
        np.asarray(b, dtype=float),
        Diagonal.from_sigmas([sigma, sigma]),
    )


@pytest.fixture
def loop_problem():
    """
    Small loopy linear system.

    Variables 0..4 are 2D "poses", 5 is a 3D "landmark":

        prior(0), between(0-1, 1-2, 2-3, 3-4), loop(4-0),
        skew coupling(1-3), landmark observation(2, 4, 5)

    Every variable is fully constrained, so the information matrix is
    positive definite and every marginal is well defined.
    """
    graph = GaussianFactorGraph()
    graph.push_back(JacobianFactor([(0, np.eye(2))], np.zeros(2), Diagonal.from_sigmas([0.1, 0.2])))
    for i in range(4):
        graph.push_back(_between(i, i + 1, [1.0, 0.1 * i], 0.5))
    graph.push_back(_between(4, 0, [-4.0, -0.5], 1.0))
    graph.push_back(JacobianFactor(
        [(1, np.array([[1.0, 0.5], [0.0, 1.0]])), (3, -np.eye(2))],
        np.array([-2.0, 0.3]),
        Diagonal.from_sigmas([0.8, 0.8]),
    ))
    graph.push_back(JacobianFactor(
        [
            (2, np.array([[1.0, 0.0], [0.0, 1.0], [1.0, 1.0]])),
            (4, np.array([[0.5, 0.0], [0.0, 0.5], [0.0, 0.0]])),
            (5, -np.eye(3)),
        ],
        np.array([0.2, -0.4, 1.0]),
        Diagonal.from_sigmas([0.3, 0.3, 0.6]),
    ))

    dims = {0: 2, 1: 2, 2: 2, 3: 2, 4: 2, 5: 3}
    values = Values()
    for key, d in dims.items():
        values.insert(key, np.zeros(d))
    return graph, values, dims


def dense_covariance(graph, keys, dims):
    """Inverse of the full information matrix, blocks in ``keys`` order."""
    info, _ = graph.hessian(ordering=keys)
    sigma = np.linalg.inv(np.asarray(info))
    offsets = {}
    n = 0
    for key in keys:
        offsets[key] = n
        n += dims[key]
    return sigma, offsets


def block(matrix, offsets, dims, ki, kj):
    i, j = offsets[ki], offsets[kj]
    return np.asarray(matrix)[i:i + dims[ki], j:j + dims[kj]]
