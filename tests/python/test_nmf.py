"""
Tests for MatrixFactorization, nmf and mse.
"""

import logging

import pytest
import numpy as np
import scipy.sparse as sp

from spfact import SparseColumnMatrix, MatrixFactorization, nmf, mse
from spfact import DimensionMismatchError, InvalidArgumentError
from spfact.decomposition import FitState


@pytest.fixture
def abs_sparse_matrix():
    """Non-negative 100 x 100 sparse matrix at 10% density."""
    mat = sp.random(100, 100, density=0.1, format="csc", random_state=123, dtype=np.float64)
    return SparseColumnMatrix.from_scipy(mat)


@pytest.fixture
def crossprod_matrix(abs_sparse_matrix):
    """Symmetric ``A^T A`` of ``abs_sparse_matrix``."""
    A = abs_sparse_matrix.to_scipy()
    return SparseColumnMatrix.from_scipy((A.T @ A).tocsc())


def _dense_mse(A, w, d, h):
    return float(np.mean((A.to_dense() - w @ np.diag(d) @ h) ** 2))


class TestMatrixFactorizationInit:
    """Test model construction."""

    def test_random_init(self):
        model = MatrixFactorization(4, 30, 20, seed=1)
        assert model.w.shape == (4, 30)
        assert model.h.shape == (4, 20)
        np.testing.assert_array_equal(model.d, np.ones(4))
        np.testing.assert_array_equal(model.h, 0.0)
        assert np.all((model.w >= 0) & (model.w < 1))
        assert model.state == FitState.INITIALIZED

    def test_seeded_init_reproducible(self):
        np.testing.assert_array_equal(
            MatrixFactorization(3, 10, 5, seed=7).w, MatrixFactorization(3, 10, 5, seed=7).w
        )

    def test_invalid_rank(self):
        with pytest.raises(InvalidArgumentError):
            MatrixFactorization(0, 10, 10)

    def test_from_factors(self, rng):
        model = MatrixFactorization.from_factors(rng.uniform(size=(2, 6)), [1.0, 2.0], rng.uniform(size=(2, 4)))
        assert (model.k, model.rows, model.cols) == (2, 6, 4)

    def test_from_factors_rank_mismatch(self, rng):
        with pytest.raises(DimensionMismatchError):
            MatrixFactorization.from_factors(rng.uniform(size=(2, 6)), [1.0, 1.0], rng.uniform(size=(3, 4)))

    def test_from_factors_diag_mismatch(self, rng):
        with pytest.raises(DimensionMismatchError):
            MatrixFactorization.from_factors(rng.uniform(size=(2, 6)), [1.0], rng.uniform(size=(2, 4)))


class TestMatrixFactorizationFit:
    """Test alternating least squares fitting."""

    @pytest.mark.parametrize("k", [2, 5])
    def test_converges_over_time(self, abs_sparse_matrix, k):
        bad = nmf(abs_sparse_matrix, k, maxit=1, tol=1e-10, seed=123)
        good = nmf(abs_sparse_matrix, k, maxit=20, tol=1e-10, seed=123)
        assert mse(abs_sparse_matrix, good.w, good.d, good.h) < mse(abs_sparse_matrix, bad.w, bad.d, bad.h)

    def test_recovers_low_rank_unconstrained(self, low_rank_matrix):
        model = MatrixFactorization(3, low_rank_matrix.rows, low_rank_matrix.cols, seed=42, nonneg=False, maxit=10)
        before = float(np.mean(low_rank_matrix.to_dense() ** 2))
        model.fit(low_rank_matrix)
        assert model.mse(low_rank_matrix) < 1e-10 * before

    def test_reduces_error_on_low_rank(self, low_rank_matrix):
        model = MatrixFactorization(3, low_rank_matrix.rows, low_rank_matrix.cols, seed=42, tol=1e-8, maxit=200)
        before = float(np.mean(low_rank_matrix.to_dense() ** 2))
        model.fit(low_rank_matrix)
        assert model.mse(low_rank_matrix) < 0.05 * before

    @pytest.mark.parametrize("k", [2, 5])
    def test_nonneg(self, abs_sparse_matrix, k):
        model = nmf(abs_sparse_matrix, k, maxit=2, seed=123)
        assert model.w.min() >= 0
        assert model.h.min() >= 0

    @pytest.mark.parametrize("k", [2, 5])
    def test_nonneg_false(self, abs_sparse_matrix, k):
        model = nmf(abs_sparse_matrix, k, nonneg=False, seed=123)
        assert model.w.min() < 0
        assert model.h.min() < 0

    def test_result_orientation(self, abs_sparse_matrix):
        model = nmf(abs_sparse_matrix, 4, maxit=2, seed=1)
        assert model.w.shape == (100, 4)
        assert model.d.shape == (4,)
        assert model.h.shape == (4, 100)
        assert 1 <= model.iter <= 2

    def test_diag_scales_to_unit_sums(self, abs_sparse_matrix):
        model = nmf(abs_sparse_matrix, 4, maxit=5, seed=1)
        np.testing.assert_allclose(model.w.sum(axis=0), 1.0, rtol=1e-10)
        np.testing.assert_allclose(model.h.sum(axis=1), 1.0, rtol=1e-10)
        assert np.all(model.d > 0)

    def test_diag_false_keeps_unit_diagonal(self, abs_sparse_matrix):
        model = nmf(abs_sparse_matrix, 4, maxit=5, seed=1, diag=False)
        np.testing.assert_array_equal(model.d, np.ones(4))

    @pytest.mark.parametrize("k", [2, 5])
    def test_diag_enforces_symmetry(self, crossprod_matrix, k):
        plain = nmf(crossprod_matrix, k, diag=False, seed=123, tol=1e-6)
        scaled = nmf(crossprod_matrix, k, diag=True, seed=123, tol=1e-6)
        cor_plain = np.corrcoef(plain.w.ravel(), plain.h.T.ravel())[0, 1]
        cor_scaled = np.corrcoef(scaled.w.ravel(), scaled.h.T.ravel())[0, 1]
        assert cor_plain < cor_scaled
        assert np.mean(plain.d) == 1.0

    def test_seed_reproducible(self, abs_sparse_matrix):
        model1 = nmf(abs_sparse_matrix, 5, maxit=5, seed=123)
        model1_repeat = nmf(abs_sparse_matrix, 5, maxit=5, seed=123)
        model2 = nmf(abs_sparse_matrix, 5, maxit=5, seed=234)
        np.testing.assert_array_equal(model1.w, model1_repeat.w)
        assert not np.array_equal(model1.w, model2.w)

    def test_l1_promotes_sparsity(self, abs_sparse_matrix):
        no_l1 = nmf(abs_sparse_matrix, 5, maxit=5, L1=(0, 0), seed=123)
        with_l1 = nmf(abs_sparse_matrix, 5, maxit=5, L1=(0.1, 0.1), seed=123)
        assert np.sum(no_l1.w == 0) < np.sum(with_l1.w == 0)

    def test_update_in_place_matches_transpose(self, abs_sparse_matrix):
        default = nmf(abs_sparse_matrix, 4, maxit=3, tol=1e-10, seed=5)
        in_place = nmf(abs_sparse_matrix, 4, maxit=3, tol=1e-10, seed=5, update_in_place=True)
        np.testing.assert_allclose(in_place.w, default.w, rtol=1e-5, atol=1e-8)
        np.testing.assert_allclose(in_place.h, default.h, rtol=1e-5, atol=1e-8)

    def test_state_after_fit(self, abs_sparse_matrix):
        model = MatrixFactorization(3, 100, 100, seed=1, maxit=2, tol=0.0)
        model.fit(abs_sparse_matrix)
        assert model.state == FitState.MAXIT_REACHED
        assert model.fit_iter == 2

        model = MatrixFactorization(3, 100, 100, seed=1, maxit=1000, tol=1e-2)
        model.fit(abs_sparse_matrix)
        assert model.state == FitState.CONVERGED
        assert model.fit_tol < 1e-2

    def test_dense_input(self, low_rank_matrix):
        model = nmf(low_rank_matrix.to_dense(), 2, maxit=3, seed=1)
        assert model.w.shape == (30, 2)

    @pytest.mark.parametrize("k", [3, 4])
    def test_mask_zeros_on_very_sparse_data(self, k):
        """Most columns hold fewer non-zeros than the rank."""
        A = sp.random(100, 50, density=0.05, format="csc", random_state=5)
        model = nmf(A, k, mask_zeros=True, seed=1, maxit=5)
        assert model.w.shape == (100, k)
        assert model.h.shape == (k, 50)
        for factor in (model.w, model.d, model.h):
            assert np.all(np.isfinite(factor))
        assert np.all(model.w >= 0) and np.all(model.h >= 0)
        assert mse(A, model.w, model.d, model.h, mask_zeros=True) < mse(
            A, np.zeros_like(model.w), model.d, model.h, mask_zeros=True
        )


class TestSymmetricFactorization:
    """Symmetric inputs reuse ``A`` for the ``w`` update."""

    def test_symmetric_flag_matches_transpose(self, symmetric_matrix):
        explicit = MatrixFactorization(3, 30, 30, seed=9, maxit=5, tol=1e-10)
        explicit.fit(symmetric_matrix, symmetric=False)
        implicit = MatrixFactorization(3, 30, 30, seed=9, maxit=5, tol=1e-10)
        implicit.fit(symmetric_matrix, symmetric=True)
        np.testing.assert_allclose(implicit.w, explicit.w, rtol=1e-10, atol=1e-14)
        np.testing.assert_allclose(implicit.h, explicit.h, rtol=1e-10, atol=1e-14)

    def test_masked_symmetric_matches_transpose(self, symmetric_matrix):
        """Zero-masking gives the same fit with or without the symmetric shortcut."""
        explicit = MatrixFactorization(3, 30, 30, seed=9, maxit=5, tol=1e-10, mask_zeros=True)
        explicit.fit(symmetric_matrix, symmetric=False)
        implicit = MatrixFactorization(3, 30, 30, seed=9, maxit=5, tol=1e-10, mask_zeros=True)
        implicit.fit(symmetric_matrix, symmetric=True)
        np.testing.assert_allclose(implicit.w, explicit.w, rtol=1e-10, atol=1e-14)
        np.testing.assert_allclose(implicit.h, explicit.h, rtol=1e-10, atol=1e-14)

    def test_symmetric_requires_square(self, random_sparse_matrix):
        model = MatrixFactorization(2, 60, 40, seed=1)
        with pytest.raises(DimensionMismatchError):
            model.fit(random_sparse_matrix, symmetric=True)


class TestMSE:
    """Test the loss."""

    def test_matches_dense(self, random_sparse_matrix, rng):
        w = rng.uniform(size=(60, 3))
        d = rng.uniform(size=3)
        h = rng.uniform(size=(3, 40))
        assert mse(random_sparse_matrix, w, d, h) == pytest.approx(_dense_mse(random_sparse_matrix, w, d, h))

    def test_either_orientation(self, random_sparse_matrix, rng):
        w = rng.uniform(size=(60, 3))
        d = np.ones(3)
        h = rng.uniform(size=(3, 40))
        assert mse(random_sparse_matrix, w.T, d, h.T) == pytest.approx(mse(random_sparse_matrix, w, d, h))

    def test_square_matrix_features_by_rank(self, symmetric_matrix):
        model = nmf(symmetric_matrix, 3, maxit=3, seed=1)
        expected = _dense_mse(symmetric_matrix, model.w, model.d, model.h)
        assert mse(symmetric_matrix, model.w, model.d, model.h) == pytest.approx(expected)

    def test_masked_averages_nonzeros(self, random_sparse_matrix, rng):
        w = rng.uniform(size=(60, 2))
        d = np.ones(2)
        h = rng.uniform(size=(2, 40))
        dense = random_sparse_matrix.to_dense()
        resid = (dense - w @ h)[dense != 0]
        assert mse(random_sparse_matrix, w, d, h, mask_zeros=True) == pytest.approx(np.mean(resid ** 2))

    def test_threads(self, random_sparse_matrix, rng):
        w = rng.uniform(size=(60, 3))
        d = np.ones(3)
        h = rng.uniform(size=(3, 40))
        assert mse(random_sparse_matrix, w, d, h, threads=4) == pytest.approx(mse(random_sparse_matrix, w, d, h, threads=1))

    def test_rank_mismatch(self, random_sparse_matrix):
        with pytest.raises(DimensionMismatchError):
            mse(random_sparse_matrix, np.ones((60, 3)), np.ones(3), np.ones((2, 40)))

    def test_diag_length_mismatch(self, random_sparse_matrix):
        with pytest.raises(DimensionMismatchError):
            mse(random_sparse_matrix, np.ones((60, 3)), np.ones(2), np.ones((3, 40)))

    def test_incompatible_w(self, random_sparse_matrix):
        with pytest.raises(DimensionMismatchError):
            mse(random_sparse_matrix, np.ones((50, 3)), np.ones(3), np.ones((3, 40)))


class TestNMFValidation:
    """Argument checks."""

    @pytest.mark.parametrize("L1", [1.0, -0.1, (0.0, 1.5)])
    def test_l1_out_of_range(self, small_matrix, L1):
        with pytest.raises(InvalidArgumentError):
            nmf(small_matrix, 2, L1=L1)

    def test_l1_wrong_length(self, small_matrix):
        with pytest.raises(InvalidArgumentError):
            nmf(small_matrix, 2, L1=(0.1, 0.1, 0.1))

    def test_l1_scalar_expands(self, abs_sparse_matrix):
        scalar = nmf(abs_sparse_matrix, 3, maxit=2, L1=0.05, seed=1)
        pair = nmf(abs_sparse_matrix, 3, maxit=2, L1=(0.05, 0.05), seed=1)
        np.testing.assert_array_equal(scalar.w, pair.w)

    def test_invalid_rank(self, small_matrix):
        with pytest.raises(InvalidArgumentError):
            nmf(small_matrix, 0)

    def test_mask_zeros_with_update_in_place(self, small_matrix):
        with pytest.raises(InvalidArgumentError):
            nmf(small_matrix, 2, mask_zeros=True, update_in_place=True)

    def test_fit_dimension_mismatch(self, small_matrix):
        model = MatrixFactorization(2, 5, 4, seed=1)
        with pytest.raises(DimensionMismatchError):
            model.fit(small_matrix)


class TestNMFLogging:
    """Iteration reporting goes through logging."""

    def test_verbose_logs_iterations(self, abs_sparse_matrix, caplog):
        with caplog.at_level(logging.INFO, logger="spfact.decomposition"):
            nmf(abs_sparse_matrix, 2, maxit=3, tol=1e-10, seed=1, verbose=True)
        iteration_lines = [r for r in caplog.records if "|" in r.getMessage()]
        assert len(iteration_lines) == 3

    def test_quiet_by_default(self, abs_sparse_matrix, caplog):
        with caplog.at_level(logging.INFO, logger="spfact.decomposition"):
            nmf(abs_sparse_matrix, 2, maxit=3, seed=1)
        assert not [r for r in caplog.records if r.levelno >= logging.INFO]

    def test_non_convergence_warning(self, abs_sparse_matrix, caplog):
        with caplog.at_level(logging.INFO, logger="spfact.decomposition"):
            nmf(abs_sparse_matrix, 2, maxit=2, tol=0.0, seed=1, verbose=True)
        assert any(r.levelno == logging.WARNING for r in caplog.records)
