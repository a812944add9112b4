"""
Alternating Least Squares Matrix Factorization.

``A ~ w^T diag(d) h`` with ``w`` (``k x features``), ``d`` (``k``) and ``h``
(``k x samples``). Each iteration projects ``h`` from ``w`` over the columns
of ``A``, then ``w`` from ``h`` over the columns of ``A^T``:

    - symmetric ``A``: ``A`` itself stands in for ``A^T`` (no copy)
    - ``update_in_place``: ``w`` is accumulated directly from ``A``
    - otherwise: ``A^T`` is materialized once before the first iteration

With ``diag`` enabled, the rows of ``h`` and then of ``w`` are scaled to sum
to one after each update; the scalings are kept in ``d``. Iteration stops
when ``1 - cor(w, w_prev) < tol`` or after ``maxit`` iterations.
"""

from __future__ import annotations

import logging
from enum import IntEnum
from typing import Any, Optional

import numpy as np

from spfact._config import resolve_threads
from spfact._errors import DimensionMismatchError, InvalidArgumentError
from spfact._parallel import map_chunks
from spfact._random import SeedLike, make_rng, random_matrix
from spfact._typing import MatrixInput, ensure_factor, ensure_sparse_column
from spfact.math.nnls import TINY_NUM
from spfact.math.projection import project_provider
from spfact.sparse import ColumnProvider, ForwardColumns, SparseColumnMatrix, TransposedColumns

logger = logging.getLogger("spfact.decomposition")

__all__ = ["FitState", "MatrixFactorization"]


class FitState(IntEnum):
    """Lifecycle of a :class:`MatrixFactorization` fit."""
    INITIALIZED = 0
    UPDATING = 1
    CONVERGED = 2
    MAXIT_REACHED = 3


def _cor(x: np.ndarray, y: np.ndarray) -> float:
    """Pearson correlation of two equally shaped matrices, flattened."""
    x = x.ravel()
    y = y.ravel()
    xc = x - x.mean()
    yc = y - y.mean()
    return float(xc @ yc / np.sqrt((xc @ xc) * (yc @ yc)))


class MatrixFactorization:
    """Low-rank factor model fitted by alternating least squares.

    Args:
        k: Rank.
        rows: Number of features (rows of ``A``).
        cols: Number of samples (columns of ``A``).
        seed: ``None`` or ``0`` for a random initialization, any other integer
            (or a ``numpy.random.Generator``) for a reproducible one.
        **params: Fit parameters, see :attr:`tol`, :attr:`maxit`, etc.

    Attributes:
        w: ``k x rows`` feature factor; random uniform initialization.
        d: ``k`` scaling diagonal; ones until fitted with ``diag``.
        h: ``k x cols`` sample factor; zeros until fitted.
        tol: Stopping tolerance on ``1 - cor(w, w_prev)``.
        maxit: Maximum number of alternating updates.
        nonneg: Enforce non-negativity on both factors.
        L1_w, L1_h: L1 penalties for the ``w`` and ``h`` updates.
        mask_zeros: Treat zeros in ``A`` as missing values.
        diag: Scale factors to unit row sums through ``d``.
        update_in_place: Update ``w`` from ``A`` without a transpose.
        threads: Worker count (``None`` = configured default, 0 = all cores).
        verbose: Log per-iteration tolerances at INFO level.
        fit_tol: Tolerance reached by the last fit.
        fit_iter: Number of iterations run by the last fit.
        state: :class:`FitState`.

    Example:
        >>> model = MatrixFactorization(10, A.shape[0], A.shape[1], seed=123)
        >>> model.fit(A)
        >>> model.mse(A)
    """

    def __init__(self, k: int, rows: int, cols: int, seed: SeedLike = 0, **params: Any):
        if int(k) < 1:
            raise InvalidArgumentError(f"rank 'k' must be >= 1, got {k}")
        rng = make_rng(seed)
        self._init_factors(
            random_matrix(int(k), int(rows), rng),
            np.ones(int(k)),
            np.zeros((int(k), int(cols))),
        )
        self._init_params(**params)

    @classmethod
    def from_factors(cls, w: Any, d: Any, h: Any, **params: Any) -> "MatrixFactorization":
        """Build a model from caller-supplied ``w`` (``k x rows``), ``d``, ``h`` (``k x cols``)."""
        w = ensure_factor(w, "w")
        h = ensure_factor(h, "h")
        d = np.array(d, dtype=np.float64, copy=True).ravel()
        if w.shape[0] != h.shape[0]:
            raise DimensionMismatchError("'w' and 'h' are not of equal rank")
        if d.size != w.shape[0]:
            raise DimensionMismatchError("length of 'd' is not equal to rank of 'w' and 'h'")
        model = cls.__new__(cls)
        model._init_factors(w, d, h)
        model._init_params(**params)
        return model

    def _init_factors(self, w: np.ndarray, d: np.ndarray, h: np.ndarray) -> None:
        self.w = w
        self.d = d
        self.h = h
        self.fit_tol = -1.0
        self.fit_iter = 0
        self.state = FitState.INITIALIZED

    def _init_params(
        self,
        tol: float = 1e-4,
        maxit: int = 100,
        nonneg: bool = True,
        L1_w: float = 0.0,
        L1_h: float = 0.0,
        mask_zeros: bool = False,
        diag: bool = True,
        update_in_place: bool = False,
        threads: Optional[int] = None,
        verbose: bool = False,
    ) -> None:
        self.tol = tol
        self.maxit = maxit
        self.nonneg = nonneg
        self.L1_w = L1_w
        self.L1_h = L1_h
        self.mask_zeros = mask_zeros
        self.diag = diag
        self.update_in_place = update_in_place
        self.threads = threads
        self.verbose = verbose

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def k(self) -> int:
        return self.w.shape[0]

    @property
    def rows(self) -> int:
        return self.w.shape[1]

    @property
    def cols(self) -> int:
        return self.h.shape[1]

    # -------------------------------------------------------------------------
    # Fitting
    # -------------------------------------------------------------------------

    def _check_matrix(self, mat: SparseColumnMatrix) -> None:
        if mat.rows != self.rows:
            raise DimensionMismatchError(
                f"dimensions of 'w' {self.w.shape} and 'A' {mat.shape} are incompatible"
            )
        if mat.cols != self.cols:
            raise DimensionMismatchError(
                f"dimensions of 'h' {self.h.shape} and 'A' {mat.shape} are incompatible"
            )

    def _scale(self, factor: np.ndarray) -> None:
        self.d = factor.sum(axis=1) + TINY_NUM
        factor /= self.d[:, None]

    def fit(self, A: MatrixInput, symmetric: Optional[bool] = None) -> "MatrixFactorization":
        """Fit the model to ``A`` by alternating least squares.

        Args:
            A: Matrix of features x samples.
            symmetric: Skip the transpose of ``A``. ``None`` detects symmetry
                with :meth:`SparseColumnMatrix.is_appx_symmetric`.

        Returns:
            ``self``.

        Raises:
            InvalidArgumentError: ``mask_zeros`` combined with ``update_in_place``,
                or ``maxit`` / ``tol`` out of range.
            DimensionMismatchError: ``A`` does not match the factor shapes.
        """
        mat = ensure_sparse_column(A)
        self._check_matrix(mat)
        if self.mask_zeros and self.update_in_place:
            raise InvalidArgumentError(
                "'mask_zeros = True' is not supported with 'update_in_place = True'"
            )
        if self.maxit < 1:
            raise InvalidArgumentError("'maxit' must be >= 1")
        if self.tol < 0:
            raise InvalidArgumentError("'tol' must be >= 0")

        if symmetric is None:
            symmetric = mat.is_appx_symmetric()
        threads = resolve_threads(self.threads)

        forward = ForwardColumns(mat)
        if symmetric:
            backward = ForwardColumns(mat.transpose(symmetric=True))
        elif self.update_in_place:
            backward = TransposedColumns(mat)
        else:
            backward = ForwardColumns(mat.transpose())

        level = logging.INFO if self.verbose else logging.DEBUG
        logger.log(level, "fitting rank-%d model to %s (symmetric=%s)", self.k, mat, symmetric)
        return self.fit_providers(forward, backward, threads)

    def fit_providers(
        self,
        forward: ColumnProvider,
        backward: ColumnProvider,
        threads: Optional[int] = None,
    ) -> "MatrixFactorization":
        """Run the alternating updates over prepared column providers.

        ``forward`` yields ``h`` from ``w`` and ``backward`` yields ``w`` from
        ``h``. Used directly when only a subset of columns is factorized.
        """
        level = logging.INFO if self.verbose else logging.DEBUG
        self.state = FitState.UPDATING
        for it in range(1, self.maxit + 1):
            w_prev = self.w.copy()

            self.h = project_provider(forward, self.w, self.nonneg, self.L1_h, self.mask_zeros, threads)
            if self.diag:
                self._scale(self.h)

            self.w = project_provider(backward, self.h, self.nonneg, self.L1_w, self.mask_zeros, threads)
            if self.diag:
                self._scale(self.w)

            self.fit_tol = 1.0 - _cor(self.w, w_prev)
            self.fit_iter = it
            logger.log(level, "%4d | %8.2e", it, self.fit_tol)

            if self.fit_tol < self.tol:
                self.state = FitState.CONVERGED
                break
        else:
            self.state = FitState.MAXIT_REACHED
            if self.verbose:
                logger.warning(
                    "fit did not converge in %d iterations (tol %.2e > %.2e)",
                    self.maxit, self.fit_tol, self.tol,
                )

        return self

    # -------------------------------------------------------------------------
    # Loss
    # -------------------------------------------------------------------------

    def mse(self, A: MatrixInput) -> float:
        """Mean squared error of ``w^T diag(d) h`` against ``A``.

        Each column is densified on its own. With ``mask_zeros`` the mean is
        taken over the non-zero entries of ``A`` only.
        """
        mat = ensure_sparse_column(A)
        self._check_matrix(mat)
        wd = self.w.T * self.d
        h = self.h

        if self.mask_zeros:
            def worker(start: int, stop: int):
                total = 0.0
                count = 0
                for j in range(start, stop):
                    rows, vals = mat.col(j)
                    keep = vals != 0
                    rows = rows[keep]
                    resid = vals[keep] - wd[rows] @ h[:, j]
                    total += float(resid @ resid)
                    count += rows.size
                return total, count
        else:
            def worker(start: int, stop: int):
                total = 0.0
                for j in range(start, stop):
                    resid = wd @ h[:, j]
                    rows, vals = mat.col(j)
                    resid[rows] -= vals
                    total += float(resid @ resid)
                return total, (stop - start) * mat.rows

        parts = map_chunks(worker, mat.cols, self.threads)
        total = sum(part[0] for part in parts)
        count = sum(part[1] for part in parts)
        return total / count if count else 0.0

    def __repr__(self) -> str:
        return (
            f"MatrixFactorization(k={self.k}, rows={self.rows}, cols={self.cols}, "
            f"state={self.state.name}, fit_iter={self.fit_iter})"
        )
