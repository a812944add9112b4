"""
spfact - Sparse Matrix Factorization

Fast factorization and clustering of large sparse non-negative matrices:
- Alternating least squares NMF with rank-1, rank-2 and symmetric fast paths
- Non-negative least squares by coordinate descent and FAST
- Projection of linear factor models without transposing the data
- Spectral bipartitioning and divisive clustering

Modules:
- sparse: Column-oriented sparse matrix and column providers
- math: NNLS and projection solvers
- decomposition: MatrixFactorization, nmf, mse
- cluster: bipartition, dclust

Architecture:
    ┌──────────────────────────────────────────────┐
    │   nmf / MatrixFactorization    dclust        │
    │              │              bipartition      │
    ├──────────────┴─────────────────┴─────────────┤
    │   project (rank 1 | rank 2 | rank >= 3)      │
    │   nnls (coordinate descent, FAST)            │
    ├──────────────────────────────────────────────┤
    │   ForwardColumns | TransposedColumns         │
    │   SparseColumnMatrix (read-only CSC)         │
    └──────────────────────────────────────────────┘

Example:
    >>> import scipy.sparse as sp
    >>> import spfact
    >>>
    >>> A = sp.random(1000, 200, density=0.1, random_state=1)
    >>> model = spfact.nmf(A, 10, seed=123)
    >>> spfact.mse(A, model.w, model.d, model.h)
    >>>
    >>> # Run every call on 4 threads
    >>> spfact.set_threads(4)
    >>>
    >>> # Or only inside a block
    >>> with spfact.config.local(parallel=spfact.ParallelConfig(num_threads=1)):
    ...     tree = spfact.dclust(A, min_samples=20, min_dist=0.05, seed=1)
"""

__version__ = '0.1.0'

from . import sparse
from . import math
from . import decomposition
from . import cluster

from ._config import ParallelConfig, SolverConfig, config, get_config, get_threads, set_threads
from ._errors import (
    SpfactError,
    InvalidArgumentError,
    DimensionMismatchError,
    IndexOutOfBoundsError,
    TypeMismatchError,
)
from .sparse import SparseColumnMatrix, CSC
from .math import nnls, project
from .decomposition import MatrixFactorization, NMFResult, nmf, mse
from .cluster import BipartitionResult, ClusterNode, ClusterTree, bipartition, dclust

__all__ = [
    # Version
    '__version__',

    # Submodules
    'sparse',
    'math',
    'decomposition',
    'cluster',

    # Configuration
    'ParallelConfig',
    'SolverConfig',
    'config',
    'get_config',
    'get_threads',
    'set_threads',

    # Errors
    'SpfactError',
    'InvalidArgumentError',
    'DimensionMismatchError',
    'IndexOutOfBoundsError',
    'TypeMismatchError',

    # Sparse
    'SparseColumnMatrix',
    'CSC',

    # Solvers
    'nnls',
    'project',

    # Factorization
    'MatrixFactorization',
    'NMFResult',
    'nmf',
    'mse',

    # Clustering
    'BipartitionResult',
    'ClusterNode',
    'ClusterTree',
    'bipartition',
    'dclust',
]
