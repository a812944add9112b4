"""spfact Sparse Matrix Module.

Read-only column-oriented sparse storage and the column-provider capability
that projection is written against.

Type Hierarchy:

    SparseColumnMatrix            # Immutable CSC (indices, indptr, data)
    ColumnProvider (ABC)          # Right-hand sides of a ^ x = b
    ├── ForwardColumns            # Systems are columns of A (gather)
    └── TransposedColumns         # Systems are rows of A (scatter, no A.T copy)

Quick Start:
    >>> from spfact.sparse import SparseColumnMatrix
    >>> mat = SparseColumnMatrix.from_scipy(scipy_mat)
    >>> rows, vals = mat.col(0)
    >>> at = mat.transpose(symmetric=mat.is_appx_symmetric())
"""

from ._csc import SparseColumnMatrix, CSC
from ._provider import (
    ColumnProvider,
    ForwardColumns,
    TransposedColumns,
    column_provider,
)

__all__ = [
    'SparseColumnMatrix',
    'CSC',
    'ColumnProvider',
    'ForwardColumns',
    'TransposedColumns',
    'column_provider',
]
