"""
Pytest configuration and shared fixtures for spfact tests.
"""

import sys
from pathlib import Path

import numpy as np
import pytest
import scipy.sparse as sp

# Add src to path for imports
project_root = Path(__file__).parent.parent.parent
sys.path.insert(0, str(project_root / "src"))

import spfact
from spfact import SparseColumnMatrix


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture(autouse=True)
def reset_config():
    """Restore the global configuration after every test."""
    yield
    spfact.config.reset()


@pytest.fixture
def rng():
    """Seeded generator for test data."""
    return np.random.default_rng(42)


@pytest.fixture
def dense_matrix_small():
    """Small dense matrix (3x4).

    Matrix:
    [[1, 0, 2, 0],
     [0, 3, 0, 4],
     [5, 0, 0, 6]]
    """
    return np.array([
        [1, 0, 2, 0],
        [0, 3, 0, 4],
        [5, 0, 0, 6]
    ], dtype=np.float64)


@pytest.fixture
def small_matrix(dense_matrix_small):
    """SparseColumnMatrix of ``dense_matrix_small``."""
    return SparseColumnMatrix.from_dense(dense_matrix_small)


@pytest.fixture
def scipy_csc_matrix(dense_matrix_small):
    """scipy CSC matrix of ``dense_matrix_small``."""
    return sp.csc_matrix(dense_matrix_small)


@pytest.fixture
def random_sparse_matrix():
    """Random non-negative sparse matrix (60 features x 40 samples, 30% dense)."""
    mat = sp.random(60, 40, density=0.3, format="csc", random_state=7, dtype=np.float64)
    return SparseColumnMatrix.from_scipy(mat)


@pytest.fixture
def low_rank_factors(rng):
    """Positive ground-truth factors ``w`` (3 x 30) and ``h`` (3 x 20)."""
    w = rng.uniform(0.1, 1.0, size=(3, 30))
    h = rng.uniform(0.1, 1.0, size=(3, 20))
    return w, h


@pytest.fixture
def low_rank_matrix(low_rank_factors):
    """Exact ``A = w^T h`` from ``low_rank_factors`` (30 x 20, fully dense)."""
    w, h = low_rank_factors
    return SparseColumnMatrix.from_dense(w.T @ h)


@pytest.fixture
def symmetric_matrix():
    """Random symmetric non-negative sparse matrix (30 x 30)."""
    b = sp.random(30, 30, density=0.2, format="csc", random_state=11, dtype=np.float64)
    return SparseColumnMatrix.from_scipy(b + b.T + sp.identity(30, format="csc"))


@pytest.fixture
def separated_pairs():
    """Four samples in two pairs with disjoint feature support (6 x 4)."""
    return SparseColumnMatrix.from_dense([
        [5.0, 4.0, 0.0, 0.0],
        [4.0, 5.0, 0.0, 0.0],
        [3.0, 3.0, 0.0, 0.0],
        [0.0, 0.0, 5.0, 4.0],
        [0.0, 0.0, 4.0, 5.0],
        [0.0, 0.0, 3.0, 3.0],
    ])


@pytest.fixture
def two_groups():
    """Two groups of 20 samples each over disjoint halves of 40 features."""
    gen = np.random.default_rng(3)
    dense = np.zeros((40, 40))
    dense[:20, :20] = gen.uniform(0.5, 1.0, size=(20, 20))
    dense[20:, 20:] = gen.uniform(0.5, 1.0, size=(20, 20))
    return SparseColumnMatrix.from_dense(dense)
