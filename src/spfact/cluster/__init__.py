"""spfact Cluster Module.

Clustering of samples by rank-2 factorization:

    bipartition     # One binary split of a sample set
    dclust          # Recursive divisive clustering, returns a ClusterTree
"""

from .bipartition import BipartitionResult, bipartition, centroid, relative_cosine_distance
from .dclust import ClusterNode, ClusterTree, dclust

__all__ = [
    'BipartitionResult',
    'bipartition',
    'centroid',
    'relative_cosine_distance',
    'ClusterNode',
    'ClusterTree',
    'dclust',
]
