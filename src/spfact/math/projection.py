"""
Projection of a Linear Factor Model.

Solves ``A = w^T h`` for one factor given the other:

    - Given ``w`` (``k x features``), ``h`` is found column by column from
      ``w w^T h_j = w A_j``.
    - Given ``h`` (``k x samples``), ``w`` is found without transposing
      ``A``: the right-hand sides ``h A^T`` are accumulated in place by
      scattering each stored entry across the ``k`` rank rows, then the
      ``features`` systems ``h h^T w_i = (h A^T)_i`` are solved.

Both directions share one algorithm written against
:class:`spfact.sparse.ColumnProvider`; they differ only in the provider.

Specializations:
    Rank 1: ``x = b / a``, clamped at zero under non-negativity.
    Rank 2: closed-form two-variable solution with the determinant computed
        once; non-negativity by direct substitution.
    Rank >= 3: Cholesky solve per column, falling back to FAST + coordinate
        descent NNLS for columns with negative entries.
    Zero-masked: coordinate descent from zero per column (least squares
        when unconstrained); masked systems are often singular.

Ranks 1 and 2 ignore L1 and always run serially. Rank >= 3 systems are
fanned out across threads in column chunks.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import numpy as np
from scipy.linalg import cho_solve

from spfact._config import SolverConfig, config
from spfact._errors import DimensionMismatchError, InvalidArgumentError
from spfact._parallel import map_chunks
from spfact._typing import MatrixInput, ensure_factor, ensure_sparse_column, orient_factor
from spfact.math.nnls import cholesky, coordinate_descent, fast_initialize
from spfact.sparse import ColumnProvider, ForwardColumns, TransposedColumns

logger = logging.getLogger("spfact.projection")

__all__ = ["project", "project_provider", "solve_rank1", "solve_rank2", "solve_normal_equations"]


# =============================================================================
# Rank Specializations
# =============================================================================

def solve_rank1(a: float, B: np.ndarray, nonneg: bool = True) -> np.ndarray:
    """Rank-1 systems: ``x = b / a`` for a ``1 x n`` right-hand side."""
    x = B / a
    if nonneg:
        np.maximum(x, 0.0, out=x)
    return x


def solve_rank2(a: np.ndarray, B: np.ndarray, nonneg: bool = True) -> np.ndarray:
    """Rank-2 systems by direct substitution for a ``2 x n`` right-hand side.

    ``x1 = (a22 b1 - a12 b2) / det`` and ``x2 = (a11 b2 - a12 b1) / det``.
    Under non-negativity, ``x1 < 0`` gives ``x1 = 0, x2 = b2 / a22`` and
    ``x2 < 0`` gives ``x2 = 0, x1 = b1 / a11`` (each clamped at zero).
    """
    a11, a12, a22 = a[0, 0], a[0, 1], a[1, 1]
    denom = a11 * a22 - a12 * a12
    b1, b2 = B[0], B[1]
    x1 = (a22 * b1 - a12 * b2) / denom
    x2 = (a11 * b2 - a12 * b1) / denom
    if nonneg:
        neg1 = x1 < 0
        neg2 = ~neg1 & (x2 < 0)
        x1, x2 = (
            np.where(neg1, 0.0, np.where(neg2, np.maximum(b1 / a11, 0.0), x1)),
            np.where(neg2, 0.0, np.where(neg1, np.maximum(b2 / a22, 0.0), x2)),
        )
    return np.vstack([x1, x2])


def _solve_general(
    a: np.ndarray,
    B: np.ndarray,
    nonneg: bool,
    solver: SolverConfig,
    threads: Optional[int],
) -> np.ndarray:
    """Rank >= 3 systems, fanned out over column chunks.

    A non positive definite ``a`` gives NaN columns rather than an error.
    """
    a_chol = cholesky(a)
    X = np.empty_like(B)

    def worker(start: int, stop: int) -> None:
        block = cho_solve(a_chol, B[:, start:stop], check_finite=False)
        if nonneg:
            for jj in np.flatnonzero(np.any(block < 0, axis=0)):
                b = B[:, start + jj]
                x = fast_initialize(a, b, a_chol)
                grad = b - a @ x
                if solver.cd_maxit > 0:
                    coordinate_descent(a, grad, x, solver.cd_maxit, solver.cd_tol)
                block[:, jj] = x
        X[:, start:stop] = block

    map_chunks(worker, B.shape[1], threads)
    return X


def solve_normal_equations(
    a: np.ndarray,
    B: np.ndarray,
    nonneg: bool = True,
    L1: float = 0.0,
    threads: Optional[int] = None,
    solver: Optional[SolverConfig] = None,
) -> np.ndarray:
    """Solve ``a X = B`` column-wise with the rank-appropriate path.

    Components whose Gram diagonal is exactly zero belong to an all-zero
    factor row; they are fixed at zero and the remaining system is solved.
    ``solver`` defaults to ``config.solver`` read on the calling thread.
    """
    if solver is None:
        solver = config.solver
    k = a.shape[0]
    active = np.flatnonzero(np.diag(a) > 0)
    if active.size < k:
        X = np.zeros_like(B)
        if active.size:
            X[active] = solve_normal_equations(
                a[np.ix_(active, active)], B[active], nonneg, L1, threads, solver
            )
        return X
    if k == 1:
        return solve_rank1(a[0, 0], B, nonneg)
    if k == 2:
        return solve_rank2(a, B, nonneg)
    if L1 != 0:
        B = B - L1
    return _solve_general(a, B, nonneg, solver, threads)


def _solve_masked(
    provider: ForwardColumns,
    factor: np.ndarray,
    nonneg: bool,
    L1: float,
    solver: SolverConfig,
    threads: Optional[int],
) -> np.ndarray:
    """Per-column normal equations restricted to each column's non-zero rows.

    A column with fewer non-zeros than the rank has a singular system, so
    nothing here is factorized: coordinate descent from zero solves the
    non-negative case and a minimum-norm least squares solve the rest.
    """
    k = factor.shape[0]
    penalty = L1 if k >= 3 else 0.0
    X = np.zeros((k, provider.n_systems))

    def worker(start: int, stop: int) -> None:
        for jj in range(start, stop):
            a, b = provider.masked_system(factor, jj)
            active = np.flatnonzero(np.diag(a) > 0)
            if active.size == 0:
                continue
            a = a[np.ix_(active, active)]
            b = b[active] - penalty
            if nonneg:
                x = coordinate_descent(a, b, np.zeros(active.size), solver.cd_maxit, solver.cd_tol)
            else:
                x = np.linalg.lstsq(a, b, rcond=None)[0]
            X[active, jj] = x

    map_chunks(worker, provider.n_systems, threads, serial=k < 3)
    return X


# =============================================================================
# Provider-level Projection
# =============================================================================

def project_provider(
    provider: ColumnProvider,
    factor: np.ndarray,
    nonneg: bool = True,
    L1: float = 0.0,
    mask_zeros: bool = False,
    threads: Optional[int] = None,
) -> np.ndarray:
    """Solve for the unknown factor given ``factor`` and a column provider.

    Args:
        provider: Forward (solve ``h`` from ``w``) or transposed (solve ``w``
            from ``h`` in place) provider.
        factor: Known factor, ``k x provider.factor_length``.
        nonneg: Enforce non-negativity.
        L1: Penalty subtracted from each right-hand side (rank >= 3 only).
        mask_zeros: Treat zeros in ``A`` as missing (forward provider only).
        threads: Worker count (``None`` = configured default).

    Returns:
        ``k x provider.n_systems`` solution.
    """
    provider.check_factor(factor)
    k = factor.shape[0]
    solver = config.solver

    if mask_zeros:
        if provider.transposed:
            raise InvalidArgumentError(
                "'mask_zeros' is not supported for in-place projection of 'w'; "
                "project the transposed matrix instead"
            )
        return _solve_masked(provider, factor, nonneg, L1, solver, threads)

    parts = map_chunks(
        lambda start, stop: provider.accumulate(factor, start, stop),
        provider.n_traversed,
        threads,
        serial=k < 3,
    )
    B = provider.combine(parts, k)
    a = factor @ factor.T
    return solve_normal_equations(a, B, nonneg, L1, threads, solver)


# =============================================================================
# Public API
# =============================================================================

def project(
    A: MatrixInput,
    w: Optional[Any] = None,
    h: Optional[Any] = None,
    nonneg: bool = True,
    L1: float = 0.0,
    mask_zeros: bool = False,
    threads: Optional[int] = None,
) -> np.ndarray:
    """Project a linear factor model: solve ``A = w^T h`` for ``h`` or ``w``.

    Given ``A`` and ``w``, solves ``w w^T h_j = w A_j`` for every column
    ``j``. Given ``A`` and ``h``, solves for ``w`` without transposing ``A``
    by accumulating the right-hand sides in place.

    Args:
        A: Matrix of features x samples (sparse preferred).
        w: ``k x features`` factor (``features x k`` is transposed).
            Leave ``None`` when giving ``h``.
        h: ``k x samples`` factor (``samples x k`` is transposed).
            Leave ``None`` when giving ``w``.
        nonneg: Enforce non-negativity.
        L1: L1 penalty subtracted from every right-hand side. No scaling is
            applied; scale it to ``max(b)`` for a meaningful penalty.
        mask_zeros: Treat zeros in ``A`` as missing values. Only supported
            when solving for ``h`` given ``w``.
        threads: Worker count; ``None`` uses :func:`spfact.get_threads`,
            ``0`` all available cores.

    Returns:
        ``h`` (``k x samples``) when ``w`` is given, otherwise ``w``
        (``k x features``).

    Raises:
        InvalidArgumentError: Both or neither of ``w`` and ``h`` given, or
            ``mask_zeros`` requested for a projection of ``w``.
        DimensionMismatchError: Factor incompatible with ``A``.

    Example:
        >>> h = project(A, w=w)
        >>> w2 = project(A, h=h)
        >>> # equivalently, by transposing A
        >>> w3 = project(A.T, w=h)
    """
    if (w is None) == (h is None):
        raise InvalidArgumentError("specify one of 'w' or 'h', leaving the other None")
    if w is None and mask_zeros:
        raise InvalidArgumentError(
            "'mask_zeros = True' is not supported for projections of 'w'. "
            "Use project(A.T, w=h, mask_zeros=True) instead."
        )

    mat = ensure_sparse_column(A)
    if w is not None:
        factor = orient_factor(ensure_factor(w, "w"), mat.rows, "w")
        provider = ForwardColumns(mat)
    else:
        factor = orient_factor(ensure_factor(h, "h"), mat.cols, "h")
        provider = TransposedColumns(mat)

    if factor.shape[0] < 1:
        raise DimensionMismatchError("factor must have at least one row")

    logger.debug(
        "projecting %s of rank %d over %s", "h" if w is not None else "w", factor.shape[0], mat
    )
    return project_provider(provider, factor, nonneg, L1, mask_zeros, threads)
