"""
Manifold metadata for the variables of a nonlinear factor graph.

Linearization perturbs each variable in its local tangent space and pushes
the perturbation through a retraction, so the Jacobian blocks (and hence
every marginal covariance) are expressed in tangent coordinates:

    • "se3"        : 6-DoF pose, updated as Exp(δ) · T  (left retraction)
    • "euclidean"  : plain vector, updated as x + δ

Variable types map to manifolds through ``TYPE_TO_MANIFOLD``; anything
unknown is treated as Euclidean. To support a new manifold, add a tag here
and a branch in :func:`retract` / :func:`tangent_dim`.
"""

from __future__ import annotations

from typing import Dict

from jaxmarg.core.jax_init import jnp
from jaxmarg.core.math3d import se3_retract_left

TYPE_TO_MANIFOLD: Dict[str, str] = {
    "pose_se3": "se3",
    "pose": "se3",
    "place1d": "euclidean",
    "landmark3d": "euclidean",
    "scalar": "euclidean",
}


def get_manifold_for_var_type(var_type: str) -> str:
    return TYPE_TO_MANIFOLD.get(var_type, "euclidean")


def tangent_dim(manifold: str, value: jnp.ndarray) -> int:
    """Number of tangent-space coordinates of ``value`` on ``manifold``."""
    if manifold == "se3":
        return 6
    return int(jnp.asarray(value).reshape(-1).shape[0])


def retract(manifold: str, value: jnp.ndarray, delta: jnp.ndarray) -> jnp.ndarray:
    """Apply a tangent perturbation ``delta`` to ``value``."""
    if manifold == "se3":
        return se3_retract_left(value, delta)
    return value + delta
