"""
Random initialization.

Factor initialization never touches numpy's global random state: callers
build a :class:`numpy.random.Generator` for each call with
:func:`make_rng` and pass it down explicitly.
"""

from __future__ import annotations

from typing import Union

import numpy as np

SeedLike = Union[None, int, np.random.Generator]

__all__ = ["SeedLike", "make_rng", "random_matrix"]


def make_rng(seed: SeedLike = None) -> np.random.Generator:
    """Build a generator for one call.

    ``None`` or ``0`` draw fresh OS entropy; any other integer gives a
    reproducible stream. An existing generator is passed through untouched.
    """
    if isinstance(seed, np.random.Generator):
        return seed
    if seed is None or int(seed) == 0:
        return np.random.default_rng()
    return np.random.default_rng(int(seed))


def random_matrix(rows: int, cols: int, rng: np.random.Generator) -> np.ndarray:
    """Uniform(0, 1) ``rows x cols`` matrix drawn from ``rng``."""
    return rng.uniform(0.0, 1.0, size=(rows, cols))

