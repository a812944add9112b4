"""
spfact Type Definitions and Input Coercion.

Top-level functions accept several matrix formats and normalize them here:

    - Native spfact types (SparseColumnMatrix)
    - SciPy sparse matrices and arrays (any format)
    - NumPy arrays and nested sequences (dense)

Example:
    >>> from spfact._typing import MatrixInput, ensure_sparse_column
    >>>
    >>> def my_func(mat: MatrixInput):
    ...     A = ensure_sparse_column(mat)
    ...     return A.shape
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Optional, Sequence, Union

import numpy as np

from spfact._errors import DimensionMismatchError, InvalidArgumentError, TypeMismatchError

if TYPE_CHECKING:
    from scipy import sparse as sp
    from spfact.sparse import SparseColumnMatrix


MatrixInput = Union["SparseColumnMatrix", "sp.spmatrix", np.ndarray, Sequence[Sequence[float]]]


# =============================================================================
# Format Detection
# =============================================================================

def is_sparse_column(obj: Any) -> bool:
    """Check if object is a native SparseColumnMatrix."""
    from spfact.sparse import SparseColumnMatrix
    return isinstance(obj, SparseColumnMatrix)


def is_scipy_sparse(obj: Any) -> bool:
    """Check if object is any scipy sparse matrix or array."""
    from scipy import sparse as sp
    return sp.issparse(obj)


def get_format(obj: Any) -> str:
    """Detect the format of a sparse/dense matrix.

    Returns:
        Format string: 'spfact', 'scipy', 'numpy', 'sequence', or 'unknown'.
    """
    if is_sparse_column(obj):
        return "spfact"
    elif is_scipy_sparse(obj):
        return "scipy"
    elif isinstance(obj, np.ndarray):
        return "numpy"
    elif isinstance(obj, (list, tuple)):
        return "sequence"
    else:
        return "unknown"


# =============================================================================
# Conversion Functions
# =============================================================================

def ensure_sparse_column(mat: MatrixInput) -> "SparseColumnMatrix":
    """Convert any supported matrix input to SparseColumnMatrix.

    Args:
        mat: Input matrix in any supported format.

    Returns:
        SparseColumnMatrix with the same values (the input itself when it
        already is one).

    Raises:
        TypeMismatchError: If input format is not supported.
    """
    from spfact.sparse import SparseColumnMatrix

    fmt = get_format(mat)

    if fmt == "spfact":
        return mat
    elif fmt == "scipy":
        return SparseColumnMatrix.from_scipy(mat)
    elif fmt in ("numpy", "sequence"):
        return SparseColumnMatrix.from_dense(mat)
    else:
        raise TypeMismatchError(
            f"Cannot convert {type(mat).__name__} to SparseColumnMatrix. "
            f"Supported types: SparseColumnMatrix, scipy.sparse, numpy.ndarray, "
            f"List[List[float]]"
        )


def ensure_factor(mat: Any, name: str) -> np.ndarray:
    """Coerce a dense factor to a C-contiguous float64 2D array (copied)."""
    arr = np.array(mat, dtype=np.float64, copy=True)
    if arr.ndim == 1:
        arr = arr.reshape(1, -1)
    if arr.ndim != 2:
        raise InvalidArgumentError(f"'{name}' must be a 2D matrix, got {arr.ndim}D")
    return np.ascontiguousarray(arr)


def ensure_index_vector(samples: Optional[Sequence[int]], n: int, name: str = "samples") -> np.ndarray:
    """Validate a vector of indices into ``range(n)``; ``None`` means all."""
    if samples is None:
        return np.arange(n, dtype=np.int64)
    idx = np.asarray(samples, dtype=np.int64).ravel()
    if idx.size and (idx.min() < 0 or idx.max() >= n):
        raise InvalidArgumentError(f"'{name}' must contain indices in [0, {n})")
    if np.unique(idx).size != idx.size:
        raise InvalidArgumentError(f"'{name}' must not contain duplicates")
    return idx


def orient_factor(factor: np.ndarray, length: int, name: str) -> np.ndarray:
    """Return ``factor`` as ``rank x length``.

    A factor given as ``length x rank`` is transposed. When both dimensions
    equal ``length`` the factor is taken as ``rank x length``.
    """
    if factor.shape[1] != length and factor.shape[0] == length:
        factor = np.ascontiguousarray(factor.T)
    if factor.shape[1] != length:
        raise DimensionMismatchError(
            f"dimensions of '{name}' {factor.shape} are incompatible with length {length}"
        )
    return factor
