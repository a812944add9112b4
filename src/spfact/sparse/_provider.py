"""Column providers.

A column provider turns a sparse matrix plus one known factor into the
right-hand sides of the normal equations ``a x = b`` solved by projection.
Projection is written once against this capability; two variants exist:

    ForwardColumns
        Systems are the (selected) columns of ``A``. ``b_j = f[:, rows_j] @
        vals_j`` is gathered per column. Used to solve for ``h`` given ``w``.

    TransposedColumns
        Systems are the rows of ``A``, i.e. the columns of ``A.T``, but
        ``A.T`` is never built: each column's entries are scattered into a
        ``k x rows`` accumulator, ``B[:, rows_j] += f[:, j] * vals_j``. Used
        to solve for ``w`` given ``h`` in place.

Both variants work over chunks of the stored columns so that the caller can
fan them out across threads. ``accumulate`` returns a private partial for
its chunk; ``combine`` merges partials after all chunks have joined.
"""

from abc import ABC, abstractmethod
from typing import List, Optional, Sequence, Tuple

import numpy as np

from spfact._errors import DimensionMismatchError, InvalidArgumentError
from spfact.sparse._csc import SparseColumnMatrix

__all__ = ['ColumnProvider', 'ForwardColumns', 'TransposedColumns', 'column_provider']


class ColumnProvider(ABC):
    """Right-hand-side capability over a sparse matrix.

    Args:
        A: The sparse matrix.
        columns: Optional subset of column indices of ``A`` to traverse, in
            order. Defaults to all columns.
    """

    transposed = False

    def __init__(self, A: SparseColumnMatrix, columns: Optional[Sequence[int]] = None):
        self.A = A
        if columns is None:
            self.columns = None
            self.n_traversed = A.cols
        else:
            columns = np.asarray(columns, dtype=np.int64)
            if columns.size and (columns.min() < 0 or columns.max() >= A.cols):
                raise InvalidArgumentError(
                    f"Column subset must lie in [0, {A.cols})"
                )
            self.columns = columns
            self.n_traversed = len(columns)

    def _chunk(self, start: int, stop: int):
        """scipy CSC block holding traversed columns ``start:stop``."""
        mat = self.A.to_scipy()
        if self.columns is None:
            return mat[:, start:stop]
        return mat[:, self.columns[start:stop]]

    def column_entries(self, jj: int) -> Tuple[np.ndarray, np.ndarray]:
        """Entries of the ``jj``-th traversed column."""
        j = jj if self.columns is None else int(self.columns[jj])
        return self.A.col(j)

    # -------------------------------------------------------------------------
    # Capability
    # -------------------------------------------------------------------------

    @property
    @abstractmethod
    def n_systems(self) -> int:
        """Number of right-hand sides (columns of the solution)."""

    @property
    @abstractmethod
    def factor_length(self) -> int:
        """Required number of columns of the known factor."""

    @abstractmethod
    def accumulate(self, factor: np.ndarray, start: int, stop: int) -> np.ndarray:
        """Partial right-hand sides contributed by traversed columns ``start:stop``."""

    @abstractmethod
    def combine(self, parts: List[np.ndarray], k: int) -> np.ndarray:
        """Merge chunk partials into the ``k x n_systems`` right-hand side."""

    def check_factor(self, factor: np.ndarray) -> None:
        if factor.ndim != 2 or factor.shape[1] != self.factor_length:
            raise DimensionMismatchError(
                f"Factor of shape {factor.shape} is incompatible with a provider "
                f"expecting {self.factor_length} columns"
            )


class ForwardColumns(ColumnProvider):
    """Systems are the traversed columns of ``A``; factor is ``k x A.rows``."""

    @property
    def n_systems(self) -> int:
        return self.n_traversed

    @property
    def factor_length(self) -> int:
        return self.A.rows

    def accumulate(self, factor: np.ndarray, start: int, stop: int) -> np.ndarray:
        block = self._chunk(start, stop)
        # (chunk x rows) @ (rows x k) -> chunk x k
        return np.asarray(block.T @ factor.T).T

    def combine(self, parts: List[np.ndarray], k: int) -> np.ndarray:
        if not parts:
            return np.zeros((k, 0))
        return np.concatenate(parts, axis=1)

    def masked_system(self, factor: np.ndarray, jj: int) -> Tuple[np.ndarray, np.ndarray]:
        """Normal equations for column ``jj`` using only its non-zero rows.

        Returns:
            ``(a, b)`` with ``a = f_nz f_nz^T`` and ``b = f_nz vals_nz``.
        """
        rows, vals = self.column_entries(jj)
        keep = vals != 0
        sub = factor[:, rows[keep]]
        return sub @ sub.T, sub @ vals[keep]


class TransposedColumns(ColumnProvider):
    """Systems are the rows of ``A``; factor is ``k x n_traversed``."""

    transposed = True

    @property
    def n_systems(self) -> int:
        return self.A.rows

    @property
    def factor_length(self) -> int:
        return self.n_traversed

    def accumulate(self, factor: np.ndarray, start: int, stop: int) -> np.ndarray:
        block = self._chunk(start, stop)
        # (rows x chunk) @ (chunk x k) -> rows x k, scattered per stored entry
        return np.asarray(block @ factor[:, start:stop].T).T

    def combine(self, parts: List[np.ndarray], k: int) -> np.ndarray:
        out = np.zeros((k, self.A.rows))
        for part in parts:
            out += part
        return out

    def masked_system(self, factor: np.ndarray, jj: int):
        raise InvalidArgumentError(
            "Zero-masking is not supported for in-place projection; "
            "project the transposed matrix instead"
        )


def column_provider(
    A: SparseColumnMatrix,
    transposed: bool = False,
    columns: Optional[Sequence[int]] = None,
) -> ColumnProvider:
    """Select the provider variant by flag."""
    if transposed:
        return TransposedColumns(A, columns)
    return ForwardColumns(A, columns)
