"""
Similarity Engine
=================
Exact pairwise cosine similarity between users (rows) or items (columns)
of a rating matrix.

The pair space i < j is split into contiguous row blocks that are computed
independently, so blocks can run on joblib worker threads without changing
any value. Each pair value is written to both [i, j] and [j, i] and the
diagonal is never written.
"""

import numpy as np
from joblib import Parallel, delayed, effective_n_jobs
from scipy.sparse import csr_matrix, issparse
from sklearn.metrics.pairwise import cosine_similarity

from .config import SIMILARITY_N_JOBS

AXIS_ALIASES = {
    'rows': 'rows', 'users': 'rows', 0: 'rows',
    'columns': 'columns', 'items': 'columns', 1: 'columns',
}


def _resolve_axis(axis):
    try:
        return AXIS_ALIASES[axis]
    except (KeyError, TypeError):
        raise ValueError(f"axis must be 'rows' or 'columns', got {axis!r}") from None


def _similarity_block(vectors, start, stop):
    """Cosine of every pair (i, j) with start <= i < stop and j > i."""
    # Zero-norm rows come back as 0 from cosine_similarity
    rows = cosine_similarity(vectors[start:stop], vectors)
    block = []
    for offset, i in enumerate(range(start, stop)):
        block.append((i, np.clip(rows[offset, i + 1:], -1.0, 1.0)))
    return block


def _block_bounds(n, n_blocks):
    # Rows near the top own more pairs, so split on cumulative pair count
    pairs_per_row = np.arange(n - 1, -1, -1)
    cumulative = np.cumsum(pairs_per_row)
    total = cumulative[-1] if n else 0
    if total == 0:
        return [(0, n)]

    bounds = []
    start = 0
    for b in range(1, n_blocks + 1):
        target = total * b / n_blocks
        stop = int(np.searchsorted(cumulative, target) + 1) if b < n_blocks else n
        stop = min(max(stop, start), n)
        if stop > start:
            bounds.append((start, stop))
            start = stop
    if start < n:
        bounds.append((start, n))
    return bounds


def compute_similarity(matrix, axis='rows', n_jobs=SIMILARITY_N_JOBS):
    """
    Compute pairwise cosine similarity between rows or columns.

    Args:
        matrix: Dense array or scipy sparse matrix (users x items)
        axis: 'rows' (users) or 'columns' (items)
        n_jobs: Worker threads for the block loop (values do not depend on it)

    Returns:
        np.ndarray: Square, symmetric similarity matrix with zero diagonal.
    """
    axis = _resolve_axis(axis)
    if issparse(matrix):
        values = csr_matrix(matrix, dtype=np.float64)
        vectors = values if axis == 'rows' else values.T.tocsr()
    else:
        values = np.asarray(matrix, dtype=np.float64)
        if values.ndim != 2:
            raise ValueError(f"matrix must be 2-dimensional, got shape {values.shape}")
        vectors = values if axis == 'rows' else values.T
    n = vectors.shape[0]

    similarity = np.zeros((n, n), dtype=np.float64)
    if n < 2:
        return similarity

    n_blocks = max(1, min(effective_n_jobs(n_jobs or 1), n - 1))
    bounds = _block_bounds(n, n_blocks)

    if n_blocks == 1:
        blocks = [_similarity_block(vectors, start, stop) for start, stop in bounds]
    else:
        blocks = Parallel(n_jobs=n_blocks, prefer="threads")(
            delayed(_similarity_block)(vectors, start, stop) for start, stop in bounds
        )

    for block in blocks:
        for i, row_values in block:
            similarity[i, i + 1:] = row_values
            similarity[i + 1:, i] = row_values

    return similarity


def compute_user_similarity(matrix_data, n_jobs=SIMILARITY_N_JOBS, show_progress=False):
    """User x user cosine similarity over observed ratings."""
    if show_progress:
        print("\n" + "=" * 60)
        print("COMPUTING USER SIMILARITY")
        print("=" * 60)
        print(f"[INFO] Dataset size: {matrix_data['n_users']:,} users")

    similarity_matrix = compute_similarity(matrix_data['sparse'], axis='rows', n_jobs=n_jobs)

    if show_progress:
        print(f"[DONE] Similarity matrix: {similarity_matrix.shape}")
    return similarity_matrix


def compute_item_similarity(matrix_data, n_jobs=SIMILARITY_N_JOBS, show_progress=False):
    """Item x item cosine similarity over observed ratings."""
    if show_progress:
        print("\n" + "=" * 60)
        print("COMPUTING ITEM SIMILARITY")
        print("=" * 60)
        print(f"[INFO] Dataset size: {matrix_data['n_items']:,} items")

    similarity_matrix = compute_similarity(matrix_data['sparse'], axis='columns', n_jobs=n_jobs)

    if show_progress:
        print(f"[DONE] Similarity matrix: {similarity_matrix.shape}")
    return similarity_matrix


class SimilarityCache:
    """
    Computes each similarity matrix once per rating matrix and hands out
    read-only views. Call invalidate() (or update()) when the ratings change.
    """

    def __init__(self, matrix_data, n_jobs=SIMILARITY_N_JOBS, show_progress=False):
        self.matrix_data = matrix_data
        self.n_jobs = n_jobs
        self.show_progress = show_progress
        self._user_similarity = None
        self._item_similarity = None

    @staticmethod
    def _freeze(array):
        array.setflags(write=False)
        return array

    @property
    def user_similarity(self):
        if self._user_similarity is None:
            self._user_similarity = self._freeze(compute_user_similarity(
                self.matrix_data, n_jobs=self.n_jobs, show_progress=self.show_progress))
        return self._user_similarity

    @property
    def item_similarity(self):
        if self._item_similarity is None:
            self._item_similarity = self._freeze(compute_item_similarity(
                self.matrix_data, n_jobs=self.n_jobs, show_progress=self.show_progress))
        return self._item_similarity

    @property
    def is_empty(self):
        """True when neither similarity matrix has been computed yet."""
        return self._user_similarity is None and self._item_similarity is None

    def invalidate(self):
        """Drop both cached matrices."""
        self._user_similarity = None
        self._item_similarity = None

    def update(self, matrix_data):
        """Point the cache at a rebuilt rating matrix and drop stale results."""
        self.matrix_data = matrix_data
        self.invalidate()
