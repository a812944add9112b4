"""
Functional entry points for matrix factorization.

    nmf     Fit a rank-k model by alternating least squares
    mse     Mean squared error of a factor model against a matrix
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Sequence, Tuple, Union

import numpy as np

from spfact._errors import DimensionMismatchError, InvalidArgumentError
from spfact._random import SeedLike
from spfact._typing import MatrixInput, ensure_factor, ensure_sparse_column, orient_factor
from spfact.decomposition._model import MatrixFactorization

__all__ = ["NMFResult", "nmf", "mse"]


@dataclass
class NMFResult:
    """Fitted factor model ``A ~ w diag(d) h``.

    Attributes:
        w: ``features x k`` feature factor.
        d: ``k`` scaling diagonal.
        h: ``k x samples`` sample factor.
        tol: ``1 - cor(w, w_prev)`` at the last iteration.
        iter: Number of iterations run.
    """
    w: np.ndarray
    d: np.ndarray
    h: np.ndarray
    tol: float
    iter: int


def _split_l1(L1: Union[float, Sequence[float]]) -> Tuple[float, float]:
    values = np.atleast_1d(np.asarray(L1, dtype=np.float64)).ravel()
    if values.size == 1:
        values = np.repeat(values, 2)
    if values.size != 2:
        raise InvalidArgumentError("'L1' must be a scalar or a pair (L1_w, L1_h)")
    if values.max() >= 1 or values.min() < 0:
        raise InvalidArgumentError("L1 penalties must be strictly in the range [0,1)")
    return float(values[0]), float(values[1])


def nmf(
    A: MatrixInput,
    k: int,
    tol: float = 1e-4,
    maxit: int = 100,
    verbose: bool = False,
    L1: Union[float, Sequence[float]] = (0.0, 0.0),
    seed: SeedLike = None,
    mask_zeros: bool = False,
    diag: bool = True,
    nonneg: bool = True,
    update_in_place: bool = False,
    threads: Optional[int] = None,
) -> NMFResult:
    """Non-negative matrix factorization by alternating least squares.

    Fits ``A ~ w diag(d) h`` where ``w`` is ``features x k`` and ``h`` is
    ``k x samples``. Symmetric matrices are detected and factorized without
    transposing ``A``.

    Args:
        A: Matrix of features x samples (sparse preferred).
        k: Rank.
        tol: Stop once ``1 - cor(w_i, w_{i-1}) < tol``.
        maxit: Maximum number of alternating updates.
        verbose: Log per-iteration tolerances at INFO level.
        L1: L1 penalty in ``[0, 1)``, scalar or ``(L1_w, L1_h)``.
        seed: ``None`` or ``0`` for a random initialization, any other
            integer for a reproducible one.
        mask_zeros: Treat zeros in ``A`` as missing values.
        diag: Scale factors to unit row sums through ``d``.
        nonneg: Enforce non-negativity.
        update_in_place: Update ``w`` from ``A`` without a transpose. Slower,
            but never holds ``A^T`` in memory.
        threads: Worker count (``None`` = configured default, 0 = all cores).

    Returns:
        :class:`NMFResult`.

    Raises:
        InvalidArgumentError: ``k < 1``, ``L1`` out of range, or ``mask_zeros``
            combined with ``update_in_place``.

    Example:
        >>> import scipy.sparse as sp
        >>> A = sp.random(1000, 100, density=0.1, random_state=1)
        >>> model = nmf(A, 10, seed=123)
        >>> model.w.shape, model.h.shape
        ((1000, 10), (10, 100))
    """
    L1_w, L1_h = _split_l1(L1)
    mat = ensure_sparse_column(A)

    model = MatrixFactorization(
        k, mat.rows, mat.cols, seed=seed,
        tol=tol, maxit=maxit, nonneg=nonneg, L1_w=L1_w, L1_h=L1_h,
        mask_zeros=mask_zeros, diag=diag, update_in_place=update_in_place,
        threads=threads, verbose=verbose,
    )
    model.fit(mat)

    return NMFResult(
        w=np.ascontiguousarray(model.w.T),
        d=model.d.copy(),
        h=model.h.copy(),
        tol=model.fit_tol,
        iter=model.fit_iter,
    )


def mse(
    A: MatrixInput,
    w: Any,
    d: Any,
    h: Any,
    mask_zeros: bool = False,
    threads: Optional[int] = None,
) -> float:
    """Mean squared error of ``w diag(d) h`` against ``A``.

    Args:
        A: Matrix of features x samples.
        w: Feature factor, ``features x k`` or ``k x features``.
        d: Scaling diagonal of length ``k`` (pass ones for none).
        h: Sample factor, ``k x samples`` or ``samples x k``.
        mask_zeros: Average over the non-zero entries of ``A`` only.
        threads: Worker count.

    Returns:
        Mean squared error.

    Raises:
        DimensionMismatchError: Factors incompatible with ``A`` or each other.

    Example:
        >>> model = nmf(A, 5, seed=1)
        >>> mse(A, model.w, model.d, model.h)
    """
    mat = ensure_sparse_column(A)
    w = orient_factor(ensure_factor(w, "w"), mat.rows, "w")
    h = orient_factor(ensure_factor(h, "h"), mat.cols, "h")
    if w.shape[0] != h.shape[0]:
        raise DimensionMismatchError("'w' and 'h' are not of equal rank")

    model = MatrixFactorization.from_factors(w, d, h, mask_zeros=mask_zeros, threads=threads)
    return model.mse(mat)
