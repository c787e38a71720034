from __future__ import annotations

import numpy as np
import pytest

from jaxmarg.linear.block_matrix import VerticalBlockMatrix
from jaxmarg.linear.errors import InvalidMatrixBlock, InvalidNoiseModel, KeyNotFoundError
from jaxmarg.linear.hessian_factor import HessianFactor
from jaxmarg.linear.jacobian_factor import JacobianFactor
from jaxmarg.linear.noise_model import Diagonal


def test_noise_model_dimension_mismatch_reports_sizes():
    """
    RHS of length 5 with a 4-dimensional noise model must be rejected and
    the error must carry (factor=5, noise model=4).
    """
    A = np.ones((5, 2))
    b = np.zeros(5)
    with pytest.raises(InvalidNoiseModel) as excinfo:
        JacobianFactor([(0, A)], b, Diagonal.from_sigmas(np.ones(4)))

    err = excinfo.value
    assert (err.factor_dims, err.noise_model_dims) == (5, 4)
    assert "5" in str(err) and "4" in str(err)
    assert isinstance(err, ValueError)


def test_block_row_mismatch_reports_expected_and_actual_rows():
    with pytest.raises(InvalidMatrixBlock) as excinfo:
        JacobianFactor([(0, np.ones((3, 2))), (1, np.ones((2, 2)))], np.zeros(3))
    assert excinfo.value.factor_rows == 3
    assert excinfo.value.block_rows == 2


def test_terms_are_stored_in_order_with_trailing_rhs():
    A0 = np.array([[1.0, 2.0], [3.0, 4.0]])
    A1 = np.array([[5.0], [6.0]])
    b = np.array([7.0, 8.0])
    f = JacobianFactor([("x", A0), ("l", A1)], b)

    assert f.keys == ("x", "l")
    assert f.rows == 2
    assert f.dims == {"x": 2, "l": 1}
    assert f.augmented_matrix.block_dims == [2, 1, 1]
    np.testing.assert_allclose(f.get_a("x"), A0)
    np.testing.assert_allclose(f.get_a("l"), A1)
    np.testing.assert_allclose(f.get_b(), b)
    np.testing.assert_allclose(f.augmented_matrix.full(), np.hstack([A0, A1, b[:, None]]))


def test_duplicate_keys_rejected():
    with pytest.raises(ValueError):
        JacobianFactor([(0, np.eye(2)), (0, np.eye(2))], np.zeros(2))


def test_unknown_key_lookup():
    f = JacobianFactor([(0, np.eye(2))], np.zeros(2))
    with pytest.raises(KeyNotFoundError):
        f.get_a(1)


def test_from_augmented_key_count_mismatch():
    ab = VerticalBlockMatrix([2, 1], 2)
    with pytest.raises(ValueError, match="Number of provided keys"):
        JacobianFactor.from_augmented([0, 1], ab)


def test_from_augmented_last_block_must_be_rhs():
    ab = VerticalBlockMatrix([2, 2], 2)
    with pytest.raises(ValueError, match="last provided matrix block must be the RHS vector"):
        JacobianFactor.from_augmented([0], ab)


def test_from_augmented_noise_model_mismatch():
    ab = VerticalBlockMatrix([2, 1], 5)
    with pytest.raises(InvalidNoiseModel) as excinfo:
        JacobianFactor.from_augmented([0], ab, Diagonal.from_sigmas(np.ones(4)))
    assert (excinfo.value.factor_dims, excinfo.value.noise_model_dims) == (5, 4)


def test_whitening_and_error():
    """
    A = I, b = [1, 2], sigmas = [2, 0.5]:
      whitened rows are divided by the sigmas,
      error at x = 0 is ½ (0.25 + 16) = 8.125.
    """
    f = JacobianFactor([(0, np.eye(2))], np.array([1.0, 2.0]), Diagonal.from_sigmas([2.0, 0.5]))

    A, b = f.jacobian()
    np.testing.assert_allclose(A, np.diag([0.5, 2.0]))
    np.testing.assert_allclose(b, [0.5, 4.0])
    np.testing.assert_allclose(f.information(), np.diag([0.25, 4.0]))

    assert f.error({0: np.zeros(2)}) == pytest.approx(8.125)
    np.testing.assert_allclose(f.unweighted_error({0: np.zeros(2)}), [-1.0, -2.0])


def test_hessian_form_matches_jacobian_form():
    f = JacobianFactor(
        [(0, np.array([[1.0, 0.2], [0.0, 1.5], [0.3, 0.3]])), (1, np.array([[2.0], [0.0], [1.0]]))],
        np.array([0.5, -1.0, 2.0]),
        Diagonal.from_sigmas([1.0, 0.5, 2.0]),
    )
    h = HessianFactor.from_jacobian(f)

    np.testing.assert_allclose(h.augmented_information(), f.augmented_information(), atol=1e-12)
    x = {0: np.array([0.3, -0.7]), 1: np.array([1.1])}
    assert h.error(x) == pytest.approx(f.error(x))


def test_whiten_folds_noise_model_into_rows():
    f = JacobianFactor([(0, np.eye(2))], np.array([1.0, 1.0]), Diagonal.from_sigmas([2.0, 4.0]))
    g = f.whiten()
    assert g.model is None
    assert g.equals(f)
    np.testing.assert_allclose(g.get_b(), [0.5, 0.25])


def test_block_matrix_offsets_and_updates():
    ab = VerticalBlockMatrix([2, 3, 1], 2)
    assert ab.cols == 6
    assert [ab.offset(i) for i in range(4)] == [0, 2, 5, 6]

    ab.set_block(1, np.ones((2, 3)))
    ab.set_block(-1, np.array([4.0, 5.0]))
    np.testing.assert_allclose(ab.block(0), np.zeros((2, 2)))
    np.testing.assert_allclose(ab[1], np.ones((2, 3)))
    np.testing.assert_allclose(ab.block(2)[:, 0], [4.0, 5.0])
    np.testing.assert_allclose(ab.range(0, 2), np.hstack([np.zeros((2, 2)), np.ones((2, 3))]))
