import time
import jax.numpy as jnp

from jaxmarg import Factor, FactorGraph, FactorId, Factorization, Marginals, NodeId, Values, Variable
from jaxmarg.slam.measurements import register_standard_residuals


def build_se3_chain(num_poses: int = 30):
    """
    SE3 pose chain:
        pose0 --odom--> pose1 --odom--> ... --odom--> pose_{N-1}
    Prior on pose0, odom edges of +1m in x, a loop closure every 10 poses.
    """
    fg = FactorGraph()
    for i in range(num_poses):
        init_val = jnp.array([i + 0.1 * jnp.sin(0.3 * i), 0.05 * jnp.cos(0.2 * i), 0.0, 0.0, 0.0, 0.01 * i])
        fg.add_variable(Variable(NodeId(i), "pose_se3", init_val))

    factors = [("prior", (NodeId(0),), {"target": jnp.zeros(6), "sigmas": 0.01})]
    meas = jnp.array([1.0, 0.0, 0.0, 0.0, 0.0, 0.0])
    for i in range(num_poses - 1):
        factors.append(("odom_se3_geodesic", (NodeId(i), NodeId(i + 1)), {"measurement": meas, "sigmas": 0.1}))
    for i in range(10, num_poses, 10):
        loop = jnp.array([10.0, 0.0, 0.0, 0.0, 0.0, 0.0])
        factors.append(("odom_se3_geodesic", (NodeId(i - 10), NodeId(i)), {"measurement": loop, "sigmas": 0.3}))

    for fid, (f_type, var_ids, params) in enumerate(factors):
        fg.add_factor(Factor(FactorId(fid), f_type, var_ids, params))
    register_standard_residuals(fg)
    return fg


def run_benchmark(num_poses: int = 30, repeats: int = 3):
    print("=== Marginals Benchmark: CHOLESKY vs QR ===")
    print(f"num_poses = {num_poses}, repeats = {repeats}")

    fg = build_se3_chain(num_poses)
    values = Values.from_factor_graph(fg)
    linear = fg.linearize(values)
    query = [NodeId(0), NodeId(num_poses // 2), NodeId(num_poses - 1)]

    for factorization in (Factorization.CHOLESKY, Factorization.QR):
        # Warmup: first calls pay for XLA compilation of each kernel shape
        Marginals.from_linear(linear, values, factorization).joint_marginal_covariance(query)

        t0 = time.time()
        for _ in range(repeats):
            marginals = Marginals.from_linear(linear, values, factorization)
        t1 = time.time()
        for _ in range(repeats):
            cov = marginals.marginal_covariance(NodeId(num_poses - 1))
        t2 = time.time()
        for _ in range(repeats):
            jm = marginals.joint_marginal_covariance(query)
        t3 = time.time()

        print(f"\n[{factorization.name}]")
        print(f"  eliminate:         {(t1 - t0) / repeats * 1000:.3f} ms")
        print(f"  single marginal:   {(t2 - t1) / repeats * 1000:.3f} ms")
        print(f"  joint (3 keys):    {(t3 - t2) / repeats * 1000:.3f} ms")
        print(f"  last pose std:     {jnp.sqrt(jnp.diag(cov))}")
        print(f"  joint matrix size: {jm.full_matrix().shape}")


if __name__ == "__main__":
    run_benchmark(num_poses=30, repeats=3)
