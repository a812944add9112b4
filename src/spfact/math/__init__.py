"""spfact Math Module.

Dense normal-equation solvers used by the factorization and clustering code:

    nnls        Non-negative least squares (coordinate descent, FAST)
    project     Solve ``A = w^T h`` for one factor given the other
"""

from .nnls import TINY_NUM, nnls, cholesky, coordinate_descent, fast_initialize
from .projection import (
    project,
    project_provider,
    solve_normal_equations,
    solve_rank1,
    solve_rank2,
)

__all__ = [
    'TINY_NUM',
    'nnls',
    'coordinate_descent',
    'cholesky',
    'fast_initialize',
    'project',
    'project_provider',
    'solve_normal_equations',
    'solve_rank1',
    'solve_rank2',
]
