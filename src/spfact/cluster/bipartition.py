"""
Spectral Bipartitioning by Rank-2 Factorization.

The sign of the difference between the two sample-loading rows of a rank-2
factorization gives a binary split of the samples that is nearly identical
to the sign of the second singular vector, at a fraction of the cost.

Only the requested subset of samples is factorized; neither ``A`` nor its
transpose is copied: ``h`` is gathered over the selected columns and ``w``
is accumulated in place from the same columns.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np

from spfact._errors import InvalidArgumentError
from spfact._random import SeedLike, make_rng, random_matrix
from spfact._typing import MatrixInput, ensure_index_vector, ensure_sparse_column
from spfact.decomposition import MatrixFactorization
from spfact.sparse import ForwardColumns, SparseColumnMatrix, TransposedColumns

logger = logging.getLogger("spfact.cluster")

__all__ = ["BipartitionResult", "bipartition", "centroid", "relative_cosine_distance"]


@dataclass
class BipartitionResult:
    """Binary split of a sample set.

    Attributes:
        v: Difference between the two sample loadings, one entry per sample
            in the order the samples were given.
        dist: Mean relative cosine distance, ``0.0`` unless requested.
        size1: Number of samples with ``v >= 0``.
        size2: Number of samples with ``v < 0``.
        samples1: Sample indices (into ``A``) of the first cluster.
        samples2: Sample indices (into ``A``) of the second cluster.
        center1: Mean feature vector of the first cluster.
        center2: Mean feature vector of the second cluster.
    """
    v: np.ndarray
    dist: float
    size1: int
    size2: int
    samples1: np.ndarray
    samples2: np.ndarray
    center1: np.ndarray
    center2: np.ndarray


# =============================================================================
# Centroids and Distances
# =============================================================================

def centroid(A: SparseColumnMatrix, samples: Sequence[int]) -> np.ndarray:
    """Mean feature vector of the given columns (zeros for an empty set)."""
    samples = np.asarray(samples, dtype=np.int64)
    if samples.size == 0:
        return np.zeros(A.rows)
    return A.column_sums(samples) / samples.size


def _cosine_distances(A: SparseColumnMatrix, samples: np.ndarray, center: np.ndarray) -> np.ndarray:
    """``1 - cos(A_j, center)`` for every sample ``j``."""
    block = A.to_scipy()[:, samples]
    dots = np.asarray(block.T @ center).ravel()
    norms = np.sqrt(np.asarray(block.multiply(block).sum(axis=0)).ravel())
    denom = norms * np.linalg.norm(center)
    cos = np.divide(dots, denom, out=np.zeros_like(dots), where=denom > 0)
    return 1.0 - cos


def relative_cosine_distance(
    A: SparseColumnMatrix,
    samples1: np.ndarray,
    samples2: np.ndarray,
    center1: np.ndarray,
    center2: np.ndarray,
) -> float:
    """Mean over all samples of (distance to the other centroid - distance to own).

    Positive values mean samples sit closer to their own cluster's centroid
    than to the sibling's; larger is a more modular split.
    """
    n = samples1.size + samples2.size
    if n == 0:
        return 0.0
    total = 0.0
    if samples1.size:
        total += float(np.sum(
            _cosine_distances(A, samples1, center2) - _cosine_distances(A, samples1, center1)
        ))
    if samples2.size:
        total += float(np.sum(
            _cosine_distances(A, samples2, center1) - _cosine_distances(A, samples2, center2)
        ))
    return total / n


# =============================================================================
# Public API
# =============================================================================

def bipartition(
    A: MatrixInput,
    tol: float = 1e-4,
    maxit: int = 100,
    nonneg: bool = True,
    samples: Optional[Sequence[int]] = None,
    seed: SeedLike = None,
    verbose: bool = False,
    calc_dist: bool = False,
    diag: bool = True,
    threads: Optional[int] = None,
) -> BipartitionResult:
    """Bipartition a sample set by rank-2 matrix factorization.

    Args:
        A: Matrix of features x samples.
        tol: Stopping tolerance of the rank-2 fit.
        maxit: Maximum number of alternating updates.
        nonneg: Enforce non-negativity.
        samples: Column indices of ``A`` to bipartition (0-based). ``None``
            means all samples.
        seed: ``None`` or ``0`` for a random initialization, any other
            integer for a reproducible one.
        verbose: Log per-iteration tolerances at INFO level.
        calc_dist: Compute the mean relative cosine distance of samples to
            the two cluster centroids.
        diag: Scale factors through a diagonal during the fit.
        threads: Worker count.

    Returns:
        :class:`BipartitionResult`.

    Raises:
        InvalidArgumentError: ``samples`` out of range, duplicated, or with
            fewer than two entries.

    Example:
        >>> result = bipartition(A, calc_dist=True, seed=1)
        >>> result.size1 + result.size2 == A.shape[1]
        True
    """
    mat = ensure_sparse_column(A)
    idx = ensure_index_vector(samples, mat.cols)
    if idx.size < 2:
        raise InvalidArgumentError("bipartition requires at least two samples")

    rng = make_rng(seed)
    model = MatrixFactorization.from_factors(
        random_matrix(2, mat.rows, rng),
        np.ones(2),
        np.zeros((2, idx.size)),
        tol=tol, maxit=maxit, nonneg=nonneg, diag=diag, threads=threads, verbose=verbose,
    )
    columns = None if samples is None else idx
    model.fit_providers(ForwardColumns(mat, columns), TransposedColumns(mat, columns), threads)

    h = model.h
    if model.d[0] >= model.d[1]:
        v = h[0] - h[1]
    else:
        v = h[1] - h[0]

    first = v >= 0
    samples1 = idx[first]
    samples2 = idx[~first]
    center1 = centroid(mat, samples1)
    center2 = centroid(mat, samples2)

    dist = 0.0
    if calc_dist:
        dist = relative_cosine_distance(mat, samples1, samples2, center1, center2)

    logger.debug(
        "bipartition of %d samples: %d / %d (dist %.4f, %d iterations)",
        idx.size, samples1.size, samples2.size, dist, model.fit_iter,
    )

    return BipartitionResult(
        v=v,
        dist=dist,
        size1=int(samples1.size),
        size2=int(samples2.size),
        samples1=samples1,
        samples2=samples2,
        center1=center1,
        center2=center2,
    )
