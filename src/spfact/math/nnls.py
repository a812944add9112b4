"""
Non-Negative Least Squares.

Solves ``a x = b`` subject to ``x >= 0`` for every column of ``b``, where
``a`` is a small dense symmetric positive definite matrix (typically the
``k x k`` Gram matrix ``w w^T`` of a factor) and ``b`` holds one right-hand
side per column.

Two strategies are provided and can be combined:

    Coordinate descent (default)
        Sequential coordinate-wise descent from ``x = 0``. Exact at
        convergence: the fixed point satisfies the KKT conditions.

    FAST (Forward Active Set Tuning)
        Unconstrained Cholesky solve, then repeated solves restricted to the
        feasible set ``{i : x_i > 0}`` until no entry is negative. The result
        is refined by coordinate descent unless ``cd_maxit == 0``.

References:
    Franc, Hlavac, Navara (2005). "Sequential Coordinate-Wise Algorithm for
    the Non-negative Least Squares Problem."
    DeBruine, Melcher, Triche (2021). "High-performance non-negative matrix
    factorization for large single-cell data."
"""

from __future__ import annotations

from typing import Optional, Tuple

import numpy as np
from scipy.linalg import LinAlgError, cho_factor, cho_solve

from spfact._errors import DimensionMismatchError, InvalidArgumentError

__all__ = ["TINY_NUM", "nnls", "cholesky", "coordinate_descent", "fast_initialize"]

# Guards the relative step |diff / x_i| against x_i == 0
TINY_NUM = 1e-15


# =============================================================================
# Kernels (single column, no validation)
# =============================================================================

def cholesky(a: np.ndarray) -> Tuple[np.ndarray, bool]:
    """Cholesky factor of ``a`` for :func:`scipy.linalg.cho_solve`.

    A non positive definite ``a`` is not an error: its factor is all NaN, so
    every solve against it yields NaN.
    """
    try:
        return cho_factor(a, check_finite=False)
    except LinAlgError:
        return np.full(a.shape, np.nan), False


def coordinate_descent(
    a: np.ndarray,
    b: np.ndarray,
    x: np.ndarray,
    cd_maxit: int = 100,
    cd_tol: float = 1e-8,
) -> np.ndarray:
    """Coordinate descent NNLS on one column, in place.

    Args:
        a: ``k x k`` symmetric positive definite matrix.
        b: Residual gradient ``b - a x`` for the current ``x``; updated in place.
        x: Current solution (``0`` for a cold start); updated in place.
        cd_maxit: Maximum number of sweeps.
        cd_tol: Stop once the mean relative change of a sweep is <= cd_tol.

    Returns:
        ``x``.
    """
    k = b.shape[0]
    tol = 1.0
    it = 0
    while it < cd_maxit and tol / k > cd_tol:
        tol = 0.0
        for i in range(k):
            diff = b[i] / a[i, i]
            if -diff > x[i]:
                if x[i] != 0:
                    # clamp to zero and roll its contribution back into b
                    b -= a[:, i] * -x[i]
                    tol = 1.0
                    x[i] = 0.0
            elif diff != 0:
                x[i] += diff
                b -= a[:, i] * diff
                tol += abs(diff / (x[i] + TINY_NUM))
        it += 1
    return x


def fast_initialize(
    a: np.ndarray,
    b: np.ndarray,
    a_chol: Optional[Tuple[np.ndarray, bool]] = None,
) -> np.ndarray:
    """FAST active-set NNLS initialization on one column.

    Args:
        a: ``k x k`` symmetric positive definite matrix.
        b: Right-hand side (not modified).
        a_chol: Precomputed ``cholesky(a)``, reused across columns.

    Returns:
        Non-negative ``x``. Exact whenever the unconstrained solution restricted
        to the final feasible set is the NNLS solution; otherwise a warm start
        for :func:`coordinate_descent`.
    """
    if a_chol is None:
        a_chol = cholesky(a)
    x = cho_solve(a_chol, b, check_finite=False)
    while np.any(x < 0):
        feasible = np.flatnonzero(x > 0)
        x = np.zeros_like(x)
        if feasible.size == 0:
            break
        sub = a[np.ix_(feasible, feasible)]
        x[feasible] = cho_solve(cholesky(sub), b[feasible], check_finite=False)
    return x


# =============================================================================
# Public API
# =============================================================================

def nnls(
    a: np.ndarray,
    b: np.ndarray,
    cd_maxit: int = 100,
    cd_tol: float = 1e-8,
    fast_nnls: bool = False,
    L1: float = 0.0,
) -> np.ndarray:
    """Solve ``a x = b`` with ``x >= 0`` for each column of ``b``.

    Args:
        a: Symmetric positive definite ``k x k`` matrix. Positive definiteness
            is not checked; a non-PD ``a`` yields undefined results, and NaN
            when FAST is used.
        b: ``k`` vector or ``k x n`` matrix of right-hand sides.
        cd_maxit: Maximum coordinate descent sweeps per column. With
            ``fast_nnls=True``, ``0`` skips refinement.
        cd_tol: Coordinate descent stopping tolerance.
        fast_nnls: Initialize each column with FAST before coordinate descent.
        L1: Penalty subtracted from every entry of ``b``. No scaling is
            applied; scale it to ``max(b)`` for meaningful sparsity.

    Returns:
        ``x`` with the shape of ``b``.

    Raises:
        InvalidArgumentError: ``a`` is not square or an argument is out of range.
        DimensionMismatchError: ``a`` and ``b`` have incompatible shapes.

    Example:
        >>> nnls(np.array([[2.0, 0.0], [0.0, 2.0]]), np.array([4.0, 6.0]))
        array([2., 3.])
    """
    a = np.asarray(a, dtype=np.float64)
    b = np.array(b, dtype=np.float64, copy=True)

    if a.ndim != 2 or a.shape[0] != a.shape[1]:
        raise InvalidArgumentError(f"'a' must be a square matrix, got shape {a.shape}")
    vector = b.ndim == 1
    if vector:
        b = b.reshape(-1, 1)
    if b.ndim != 2 or b.shape[0] != a.shape[0]:
        raise DimensionMismatchError(
            f"dimensions of 'b' {b.shape} and 'a' {a.shape} are not compatible"
        )
    if cd_maxit < 0:
        raise InvalidArgumentError("'cd_maxit' must be >= 0")

    if L1 != 0:
        b -= L1

    x = np.zeros_like(b)
    a_chol = cholesky(a) if fast_nnls else None
    for col in range(b.shape[1]):
        bcol = b[:, col].copy()
        xcol = np.zeros(b.shape[0])
        if fast_nnls:
            xcol = fast_initialize(a, bcol, a_chol)
            # gradient of the FAST solution
            bcol -= a @ xcol
        if cd_maxit > 0:
            coordinate_descent(a, bcol, xcol, cd_maxit, cd_tol)
        x[:, col] = xcol

    return x.ravel() if vector else x

