"""Immutable CSC (Compressed Sparse Column) Matrix.

This module provides SparseColumnMatrix, the read-only column-oriented
sparse matrix every other spfact component consumes. It is built once from
validated (indices, indptr, data) arrays and never mutated afterwards: the
arrays are owned copies flagged read-only, so a single instance can be
shared freely across worker threads.

Layout:
    For column j, entries live at positions indptr[j]:indptr[j + 1] of
    ``indices`` (row indices, strictly increasing) and ``data`` (values).

Example:
    >>> mat = SparseColumnMatrix.from_dense([[1, 0], [0, 2], [3, 0]])
    >>> rows, vals = mat.col(0)
    >>> rows.tolist(), vals.tolist()
    ([0, 2], [1.0, 3.0])
"""

from typing import Any, Iterator, Optional, Sequence, Tuple

import numpy as np
from scipy import sparse as sp

from spfact._errors import (
    DimensionMismatchError,
    IndexOutOfBoundsError,
    InvalidArgumentError,
    TypeMismatchError,
)

__all__ = ['SparseColumnMatrix', 'CSC']


def _readonly(arr: np.ndarray) -> np.ndarray:
    arr.flags.writeable = False
    return arr


class SparseColumnMatrix:
    """Read-only CSC sparse matrix.

    Attributes:
        shape: Matrix dimensions (rows, cols).
        nnz: Number of stored entries.
        data: Stored values (float64, read-only).
        indices: Row index of each stored value (int64, read-only).
        indptr: Column boundaries into ``data``/``indices`` (int64, read-only).

    Example:
        >>> mat = SparseColumnMatrix.from_scipy(scipy_mat)
        >>> for j, (rows, vals) in enumerate(mat.iter_cols()):
        ...     pass
    """

    __slots__ = ('_shape', '_data', '_indices', '_indptr', '_scipy')

    # =========================================================================
    # Initialization
    # =========================================================================

    def __init__(
        self,
        data: Any,
        indices: Any,
        indptr: Any,
        shape: Tuple[int, int],
        *,
        check: bool = True,
    ):
        """Initialize from CSC arrays.

        Args:
            data: Values, one per stored entry.
            indices: Row index of each stored entry.
            indptr: Column boundary offsets, length ``cols + 1``.
            shape: (rows, cols).
            check: Validate the arrays. Internal callers that already hold
                valid CSC arrays pass False.

        Raises:
            InvalidArgumentError: Malformed shape, boundaries or row order.
            DimensionMismatchError: Arrays of inconsistent lengths.
            IndexOutOfBoundsError: A row index is >= rows.
        """
        data = np.array(data, dtype=np.float64, copy=True).ravel()
        indices = np.array(indices, dtype=np.int64, copy=True).ravel()
        indptr = np.array(indptr, dtype=np.int64, copy=True).ravel()

        if len(shape) != 2:
            raise InvalidArgumentError(f"shape must have two entries, got {shape}")
        rows, cols = int(shape[0]), int(shape[1])

        if check:
            self._validate_arrays(data, indices, indptr, (rows, cols))

        self._shape = (rows, cols)
        self._data = _readonly(data)
        self._indices = _readonly(indices)
        self._indptr = _readonly(indptr)
        self._scipy = None

    @staticmethod
    def _validate_arrays(
        data: np.ndarray,
        indices: np.ndarray,
        indptr: np.ndarray,
        shape: Tuple[int, int],
    ) -> None:
        """Validate array dimensions and CSC invariants."""
        rows, cols = shape
        if rows < 0 or cols < 0:
            raise InvalidArgumentError(f"Invalid shape: {shape}")
        if len(indptr) != cols + 1:
            raise DimensionMismatchError(
                f"indptr size mismatch: expected {cols + 1}, got {len(indptr)}"
            )
        if len(indices) != len(data):
            raise DimensionMismatchError(
                f"indices and data lengths differ: {len(indices)} != {len(data)}"
            )
        if indptr[0] != 0:
            raise InvalidArgumentError(f"indptr must start at 0, got {indptr[0]}")
        if np.any(np.diff(indptr) < 0):
            raise InvalidArgumentError("indptr must be non-decreasing")
        if indptr[-1] != len(indices):
            raise DimensionMismatchError(
                f"indptr ends at {indptr[-1]} but {len(indices)} entries are stored"
            )
        if len(indices) == 0:
            return
        if indices.min() < 0 or indices.max() >= rows:
            raise IndexOutOfBoundsError(
                f"Row indices must lie in [0, {rows}), got [{indices.min()}, {indices.max()}]"
            )
        # Strictly increasing rows within each column: every step inside a
        # column must be positive. Steps that cross a column boundary are exempt.
        steps = np.diff(indices)
        if steps.size and np.any(steps <= 0):
            crossing = np.zeros(steps.size, dtype=bool)
            starts = indptr[1:-1]
            starts = starts[(starts > 0) & (starts < len(indices))]
            crossing[starts - 1] = True
            if np.any((steps <= 0) & ~crossing):
                raise InvalidArgumentError(
                    "Row indices must be strictly increasing within each column"
                )

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def shape(self) -> Tuple[int, int]:
        """Matrix dimensions (rows, cols)."""
        return self._shape

    @property
    def rows(self) -> int:
        """Number of rows."""
        return self._shape[0]

    @property
    def cols(self) -> int:
        """Number of columns."""
        return self._shape[1]

    @property
    def nnz(self) -> int:
        """Number of stored entries."""
        return len(self._data)

    @property
    def dtype(self) -> np.dtype:
        """Value dtype (always float64)."""
        return self._data.dtype

    @property
    def density(self) -> float:
        """Fraction of stored entries."""
        total = self.rows * self.cols
        return self.nnz / total if total > 0 else 0.0

    @property
    def data(self) -> np.ndarray:
        """Stored values array."""
        return self._data

    @property
    def indices(self) -> np.ndarray:
        """Row indices array."""
        return self._indices

    @property
    def indptr(self) -> np.ndarray:
        """Column pointer array."""
        return self._indptr

    # =========================================================================
    # Factory Methods
    # =========================================================================

    @classmethod
    def from_arrays(
        cls,
        data: Sequence[float],
        indices: Sequence[int],
        indptr: Sequence[int],
        shape: Tuple[int, int],
    ) -> 'SparseColumnMatrix':
        """Create from plain CSC arrays (validated)."""
        return cls(data, indices, indptr, shape)

    @classmethod
    def from_scipy(cls, mat: Any) -> 'SparseColumnMatrix':
        """Create from any scipy sparse matrix or array.

        The input is converted to CSC, duplicate entries are summed and row
        indices sorted on a private copy; the caller's object is untouched.
        Explicitly stored zeros are kept.
        """
        if not sp.issparse(mat):
            raise TypeMismatchError(f"Expected a scipy sparse matrix, got {type(mat).__name__}")
        csc = sp.csc_matrix(mat, dtype=np.float64, copy=True)
        csc.sum_duplicates()
        csc.sort_indices()
        return cls(csc.data, csc.indices, csc.indptr, csc.shape, check=False)

    @classmethod
    def from_dense(cls, dense: Any) -> 'SparseColumnMatrix':
        """Create from a dense 2D array-like; zeros are not stored."""
        arr = np.asarray(dense, dtype=np.float64)
        if arr.ndim != 2:
            raise InvalidArgumentError(f"Expected a 2D array, got {arr.ndim}D")
        return cls.from_scipy(sp.csc_matrix(arr))

    # =========================================================================
    # Column Access
    # =========================================================================

    def col(self, j: int) -> Tuple[np.ndarray, np.ndarray]:
        """Column ``j`` as read-only ``(row_indices, values)`` views."""
        if j < 0 or j >= self.cols:
            raise IndexOutOfBoundsError(f"Column {j} out of bounds [0, {self.cols})")
        start, end = self._indptr[j], self._indptr[j + 1]
        return self._indices[start:end], self._data[start:end]

    def col_nnz(self, j: int) -> int:
        """Number of stored entries in column ``j``."""
        return int(self._indptr[j + 1] - self._indptr[j])

    def col_dense(self, j: int) -> np.ndarray:
        """Column ``j`` as a dense vector of length ``rows``."""
        rows, vals = self.col(j)
        out = np.zeros(self.rows)
        out[rows] = vals
        return out

    def iter_cols(self) -> Iterator[Tuple[np.ndarray, np.ndarray]]:
        """Iterate ``(row_indices, values)`` over all columns in order."""
        for j in range(self.cols):
            start, end = self._indptr[j], self._indptr[j + 1]
            yield self._indices[start:end], self._data[start:end]

    def __getitem__(self, key) -> float:
        """Element access ``mat[i, j]``."""
        if not (isinstance(key, tuple) and len(key) == 2):
            raise InvalidArgumentError("Use mat[i, j] for element access or mat.col(j)")
        i, j = int(key[0]), int(key[1])
        if i < 0 or i >= self.rows:
            raise IndexOutOfBoundsError(f"Row {i} out of bounds [0, {self.rows})")
        rows, vals = self.col(j)
        pos = np.searchsorted(rows, i)
        if pos < len(rows) and rows[pos] == i:
            return float(vals[pos])
        return 0.0

    # =========================================================================
    # Derived Matrices
    # =========================================================================

    def transpose(self, symmetric: bool = False) -> 'SparseColumnMatrix':
        """Transposed matrix.

        Args:
            symmetric: Caller asserts ``A == A.T``; the matrix itself is
                returned and no data is copied.

        Returns:
            ``self`` when symmetric, otherwise a materialized transpose.
        """
        if symmetric:
            if self.rows != self.cols:
                raise DimensionMismatchError(
                    f"A {self.rows}x{self.cols} matrix cannot be symmetric"
                )
            return self
        t = self.to_scipy().T.tocsc()
        t.sort_indices()
        return SparseColumnMatrix(t.data, t.indices, t.indptr, t.shape, check=False)

    @property
    def T(self) -> 'SparseColumnMatrix':
        """Materialized transpose."""
        return self.transpose()

    def is_appx_symmetric(self) -> bool:
        """Cheap symmetry test: square and first row equals first column."""
        if self.rows != self.cols or self.rows == 0:
            return False
        first_col = self.col_dense(0)
        first_row = np.asarray(self.to_scipy()[0, :].todense()).ravel()
        return bool(np.array_equal(first_col, first_row))

    def select_columns(self, columns: Sequence[int]) -> 'SparseColumnMatrix':
        """New matrix holding ``columns`` of this one, in the given order."""
        columns = np.asarray(columns, dtype=np.int64)
        sub = self.to_scipy()[:, columns].tocsc()
        sub.sort_indices()
        return SparseColumnMatrix(sub.data, sub.indices, sub.indptr, sub.shape, check=False)

    def column_sums(self, columns: Optional[Sequence[int]] = None) -> np.ndarray:
        """Sum over columns (optionally a subset): a dense vector of length ``rows``."""
        mat = self.to_scipy()
        if columns is not None:
            mat = mat[:, np.asarray(columns, dtype=np.int64)]
        return np.asarray(mat.sum(axis=1)).ravel()

    # =========================================================================
    # Conversion
    # =========================================================================

    def to_scipy(self) -> sp.csc_matrix:
        """scipy CSC matrix sharing this matrix's read-only arrays."""
        if self._scipy is None:
            self._scipy = sp.csc_matrix(
                (self._data, self._indices, self._indptr), shape=self._shape, copy=False
            )
        return self._scipy

    def to_dense(self) -> np.ndarray:
        """Dense ``rows x cols`` array."""
        return self.to_scipy().toarray()

    def copy(self) -> 'SparseColumnMatrix':
        """Instances are immutable; returns ``self``."""
        return self

    # =========================================================================
    # Representation
    # =========================================================================

    def __repr__(self) -> str:
        return f"SparseColumnMatrix(shape={self.shape}, nnz={self.nnz})"


# Short alias
CSC = SparseColumnMatrix
