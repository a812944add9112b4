"""spfact Decomposition Module.

Low-rank factorization ``A ~ w diag(d) h`` of sparse matrices by
alternating least squares:

    MatrixFactorization     # Stateful model (fit, mse)
    nmf                     # Functional fit, returns NMFResult
    mse                     # Loss of any (w, d, h) against A
"""

from ._model import FitState, MatrixFactorization
from .nmf import NMFResult, nmf, mse

__all__ = [
    'FitState',
    'MatrixFactorization',
    'NMFResult',
    'nmf',
    'mse',
]
