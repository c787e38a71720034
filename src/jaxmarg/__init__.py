"""
jaxmarg: marginal covariances for JAX factor graphs.

    from jaxmarg import FactorGraph, Values, Marginals

    marginals = Marginals(fg, Values.from_factor_graph(fg))
    cov = marginals.marginal_covariance(NodeId(0))
"""

from jaxmarg.core.types import (
    Factor,
    FactorId,
    Key,
    KeyFormatter,
    NodeId,
    Variable,
    default_key_formatter,
    symbol_key_formatter,
)
from jaxmarg.core.values import Values
from jaxmarg.core.factor_graph import FactorGraph
from jaxmarg.linear.errors import (
    IndeterminantLinearSystemError,
    InvalidMatrixBlock,
    InvalidNoiseModel,
    KeyNotFoundError,
    SingularMatrixError,
)
from jaxmarg.linear.noise_model import Diagonal
from jaxmarg.linear.block_matrix import VerticalBlockMatrix
from jaxmarg.linear.jacobian_factor import JacobianFactor
from jaxmarg.linear.hessian_factor import HessianFactor
from jaxmarg.linear.conditional import GaussianConditional
from jaxmarg.linear.elimination import EliminationConfig, Factorization
from jaxmarg.linear.bayes_net import GaussianBayesNet
from jaxmarg.linear.bayes_tree import BayesTree, BayesTreeClique
from jaxmarg.linear.gaussian_factor_graph import GaussianFactorGraph
from jaxmarg.marginals import JointMarginal, Marginals

__all__ = [
    "BayesTree",
    "BayesTreeClique",
    "Diagonal",
    "EliminationConfig",
    "Factor",
    "FactorGraph",
    "FactorId",
    "Factorization",
    "GaussianBayesNet",
    "GaussianConditional",
    "GaussianFactorGraph",
    "HessianFactor",
    "IndeterminantLinearSystemError",
    "InvalidMatrixBlock",
    "InvalidNoiseModel",
    "JacobianFactor",
    "JointMarginal",
    "Key",
    "KeyFormatter",
    "KeyNotFoundError",
    "Marginals",
    "NodeId",
    "SingularMatrixError",
    "Values",
    "Variable",
    "VerticalBlockMatrix",
    "default_key_formatter",
    "symbol_key_formatter",
]
