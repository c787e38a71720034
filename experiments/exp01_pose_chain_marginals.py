from __future__ import annotations
import logging

import jax.numpy as jnp

from jaxmarg import Factor, FactorGraph, FactorId, Marginals, NodeId, Values, Variable
from jaxmarg import symbol_key_formatter
from jaxmarg.slam.measurements import register_standard_residuals


def build_graph(num_poses: int = 5):
    """
    SE(3) pose chain along +x with a loop closure and one landmark:

        pose0 --odom--> pose1 --odom--> ... --odom--> pose_{N-1}
          ^                                              |
          +------------------- loop ---------------------+

    The landmark is observed from the first and last pose.
    """
    fg = FactorGraph()
    names = {}

    for i in range(num_poses):
        nid = NodeId(i)
        fg.add_variable(Variable(nid, "pose_se3", jnp.array([float(i), 0.0, 0.0, 0.0, 0.0, 0.0])))
        names[nid] = f"x{i}"

    landmark = NodeId(num_poses)
    fg.add_variable(Variable(landmark, "landmark3d", jnp.array([2.0, 1.0, 0.5])))
    names[landmark] = "l0"

    fid = 0

    def add(f_type, var_ids, params):
        nonlocal fid
        fg.add_factor(Factor(FactorId(fid), f_type, var_ids, params))
        fid += 1

    add("prior", (NodeId(0),), {"target": jnp.zeros(6), "sigmas": 0.01})

    step = jnp.array([1.0, 0.0, 0.0, 0.0, 0.0, 0.0])
    for i in range(num_poses - 1):
        add("odom_se3_geodesic", (NodeId(i), NodeId(i + 1)),
            {"measurement": step, "sigmas": jnp.array([0.1, 0.1, 0.1, 0.02, 0.02, 0.02])})

    loop = jnp.array([-(num_poses - 1.0), 0.0, 0.0, 0.0, 0.0, 0.0])
    add("odom_se3_geodesic", (NodeId(num_poses - 1), NodeId(0)), {"measurement": loop, "sigmas": 0.2})

    for i in (0, num_poses - 1):
        add("pose_landmark_relative", (NodeId(i), landmark),
            {"measurement": jnp.array([2.0 - i, 1.0, 0.5]), "sigmas": 0.05})

    register_standard_residuals(fg)
    return fg, names


def run_experiment():
    logging.basicConfig(level=logging.INFO)
    fg, names = build_graph(num_poses=5)
    values = Values.from_factor_graph(fg)
    fmt = symbol_key_formatter(names)

    marginals = Marginals(fg, values)
    print(marginals.bayes_tree.format("", fmt))

    print("\n=== MARGINAL STD DEVS (translation) ===")
    for nid in fg.variables:
        cov = marginals.marginal_covariance(nid)
        print(f"{fmt(nid)}: {jnp.sqrt(jnp.diag(cov))[:3]}")

    first, last = NodeId(0), NodeId(4)
    jm = marginals.joint_marginal_covariance([first, last, NodeId(5)])
    print()
    print(jm.format("", fmt))
    print(f"cross-covariance x0/x4 (translation):\n{jm.at(first, last)[:3, :3]}")

    return marginals


if __name__ == "__main__":
    run_experiment()
