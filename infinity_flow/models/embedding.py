"""
Two-dimensional embedding of backbone features with UMAP.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import numpy as np
import umap

logger = logging.getLogger(__name__)


class UmapEmbedder:
    """Embedding collaborator: ``embed(matrix) -> (n, 2)`` coordinates.

    Args:
        n_jobs: Threads used for the neighbour graph and optimisation
        random_state: Seed; umap-learn runs single-threaded when one is set
        **umap_args: Extra keyword arguments for ``umap.UMAP``
    """

    def __init__(self, n_jobs: int = 1, random_state: Optional[int] = None, **umap_args: Any):
        self.n_jobs = n_jobs
        self.random_state = random_state
        self.umap_args: Dict[str, Any] = dict(umap_args)

    def embed(self, matrix: np.ndarray) -> np.ndarray:
        matrix = np.asarray(matrix, dtype=np.float64)
        args = dict(self.umap_args)
        # neighbours cannot exceed the number of points
        if "n_neighbors" in args:
            args["n_neighbors"] = int(max(2, min(args["n_neighbors"], len(matrix) - 1)))
        reducer = umap.UMAP(
            n_components=2,
            n_jobs=self.n_jobs,
            random_state=self.random_state,
            **args,
        )
        logger.debug(f"UMAP on {matrix.shape[0]} events x {matrix.shape[1]} features")
        return np.asarray(reducer.fit_transform(matrix), dtype=np.float64)
