"""
Divisive Clustering.

Recursive bipartitioning by rank-2 factorization. Nodes live in a flat
arena (:attr:`ClusterTree.nodes`) and link to each other by index; the tree
is built generation by generation from a worklist, so no recursion depth
limit applies.

A node with sample set ``S`` is only bipartitioned when ``|S| > 2 *
min_samples``. A split is rejected, and the node becomes a leaf, when either
child would hold fewer than ``min_samples`` samples, or when ``min_dist > 0``
and the mean relative cosine distance of the split is below ``min_dist``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import numpy as np

from spfact._config import resolve_threads
from spfact._errors import InvalidArgumentError
from spfact._random import SeedLike
from spfact._typing import MatrixInput, ensure_sparse_column
from spfact.cluster.bipartition import bipartition, centroid

logger = logging.getLogger("spfact.cluster")

__all__ = ["ClusterNode", "ClusterTree", "dclust"]


@dataclass
class ClusterNode:
    """One node of a divisive clustering tree.

    Attributes:
        id: Binary path from the root; the root is ``"0"`` and children append
            ``"0"`` and ``"1"``.
        samples: Sample indices (columns of ``A``) in this node.
        center: Mean feature vector of the samples.
        dist: Relative cosine distance of the split attempted at this node,
            ``0.0`` when not computed.
        leaf: ``True`` when the node was not split.
        parent: Arena index of the parent, ``None`` for the root.
        children: Arena indices of the two children, empty for a leaf.
    """
    id: str
    samples: np.ndarray
    center: np.ndarray
    dist: float = 0.0
    leaf: bool = False
    parent: Optional[int] = None
    children: Tuple[int, ...] = field(default_factory=tuple)

    @property
    def size(self) -> int:
        return int(self.samples.size)

    def to_dict(self) -> Dict[str, Any]:
        """Plain record with ``id``, ``samples``, ``center``, ``dist`` and ``leaf``."""
        return {
            "id": self.id,
            "samples": self.samples,
            "center": self.center,
            "dist": self.dist,
            "leaf": self.leaf,
        }


class ClusterTree:
    """Arena of :class:`ClusterNode` built by :func:`dclust`.

    Attributes:
        nodes: All nodes in creation order; ``nodes[0]`` is the root.
    """

    def __init__(self, nodes: Optional[List[ClusterNode]] = None):
        self.nodes: List[ClusterNode] = nodes if nodes is not None else []

    def add(self, node: ClusterNode) -> int:
        self.nodes.append(node)
        return len(self.nodes) - 1

    @property
    def root(self) -> ClusterNode:
        return self.nodes[0]

    def leaves(self) -> List[ClusterNode]:
        return [node for node in self.nodes if node.leaf]

    def clusters(self) -> List[Dict[str, Any]]:
        """Leaf nodes flattened to plain records."""
        return [node.to_dict() for node in self.leaves()]

    def labels(self, n: Optional[int] = None) -> np.ndarray:
        """Leaf index of every sample (``-1`` for samples in no leaf)."""
        if n is None:
            n = int(self.root.samples.max()) + 1 if self.root.size else 0
        out = np.full(n, -1, dtype=np.int64)
        for label, node in enumerate(self.leaves()):
            out[node.samples] = label
        return out

    def __len__(self) -> int:
        return len(self.nodes)

    def __iter__(self):
        return iter(self.nodes)

    def __repr__(self) -> str:
        return f"ClusterTree(nodes={len(self.nodes)}, leaves={len(self.leaves())})"


def dclust(
    A: MatrixInput,
    min_samples: int,
    min_dist: float = 0.0,
    verbose: bool = False,
    tol: float = 1e-4,
    maxit: int = 100,
    nonneg: bool = True,
    seed: SeedLike = None,
    threads: Optional[int] = None,
) -> ClusterTree:
    """Divisive clustering by recursive bipartitioning.

    Args:
        A: Matrix of features x samples.
        min_samples: Minimum number of samples permitted in a cluster.
        min_dist: Minimum mean relative cosine distance for a split to be
            accepted. ``0`` disables the check and skips the distance
            computation.
        verbose: Log the number of divisions per generation at INFO level.
        tol: Stopping tolerance of each rank-2 fit.
        maxit: Maximum number of alternating updates per fit.
        nonneg: Enforce non-negativity.
        seed: Seed used for every bipartition. ``None`` or ``0`` for random
            initializations.
        threads: Worker count.

    Returns:
        :class:`ClusterTree`; :meth:`ClusterTree.clusters` gives the leaves.

    Raises:
        InvalidArgumentError: ``min_samples < 1`` or ``min_dist < 0``.

    Example:
        >>> tree = dclust(A, min_samples=10, min_dist=0.05, seed=1)
        >>> [c["id"] for c in tree.clusters()]
    """
    if int(min_samples) < 1:
        raise InvalidArgumentError("'min_samples' must be >= 1")
    if min_dist < 0:
        raise InvalidArgumentError("'min_dist' must be >= 0")

    mat = ensure_sparse_column(A)
    threads = resolve_threads(threads)
    calc_dist = min_dist > 0
    level = logging.INFO if verbose else logging.DEBUG

    all_samples = np.arange(mat.cols, dtype=np.int64)
    tree = ClusterTree()
    tree.add(ClusterNode(id="0", samples=all_samples, center=centroid(mat, all_samples)))

    frontier = [0]
    generation = 0
    while frontier:
        next_frontier: List[int] = []
        for index in frontier:
            node = tree.nodes[index]
            if node.size <= 2 * min_samples:
                node.leaf = True
                continue

            split = bipartition(
                mat, tol=tol, maxit=maxit, nonneg=nonneg, samples=node.samples,
                seed=seed, calc_dist=calc_dist, threads=threads,
            )
            node.dist = split.dist
            if (
                split.size1 < min_samples
                or split.size2 < min_samples
                or (calc_dist and split.dist < min_dist)
            ):
                node.leaf = True
                continue

            children = []
            for suffix, samples, center in (
                ("0", split.samples1, split.center1),
                ("1", split.samples2, split.center2),
            ):
                children.append(tree.add(ClusterNode(
                    id=node.id + suffix, samples=samples, center=center, parent=index,
                )))
            node.children = tuple(children)
            next_frontier.extend(children)

        logger.log(level, "generation %d: %d divisions", generation, len(next_frontier) // 2)
        frontier = next_frontier
        generation += 1

    return tree
