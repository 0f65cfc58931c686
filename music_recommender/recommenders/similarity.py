# music_recommender/recommenders/similarity.py
"""
Cosine similarity between rows of sparse interaction matrices.

Full similarity tables grow with the square of the number of users or songs,
so only the top-k neighbours of every row are kept. Neighbour lists live in
flat (n_rows, k) arrays addressed by row index: `indices[i, j]` is the j-th
most similar reference row to row i and `scores[i, j]` its similarity. Unused
slots hold index -1 and score 0.

Rows are processed in blocks; each block writes to its own slice of the output
arrays, so blocks can be computed in parallel without locking.
"""
from typing import NamedTuple

import numpy as np
from joblib import Parallel, delayed
from scipy.sparse import csr_matrix
from sklearn.metrics.pairwise import cosine_similarity
from sklearn.preprocessing import normalize

from ..config import SIMILARITY_BLOCK_SIZE


class NeighbourTable(NamedTuple):
    indices: np.ndarray  # int64 [n_rows, k]
    scores: np.ndarray   # float64 [n_rows, k]

    def neighbours(self, row: int):
        """(index, score) pairs of one row, most similar first."""
        valid = self.indices[row] >= 0
        return list(zip(self.indices[row][valid].tolist(), self.scores[row][valid].tolist()))

    @property
    def k(self) -> int:
        return self.indices.shape[1]


def l2_normalize(matrix) -> csr_matrix:
    """Row-normalise; empty rows stay all-zero, so zero-overlap pairs get similarity 0."""
    return normalize(csr_matrix(matrix, dtype=np.float64), norm="l2", axis=1)


def _block_topk(queries: csr_matrix, reference: csr_matrix, start: int, stop: int,
                k: int, min_similarity: float, self_offset):
    """Top-k neighbours above min_similarity for query rows [start, stop)."""
    block = cosine_similarity(queries[start:stop], reference, dense_output=True)
    if self_offset is not None:
        rows = np.arange(stop - start)
        block[rows, rows + start + self_offset] = 0.0

    indices = np.full((block.shape[0], k), -1, dtype=np.int64)
    scores = np.zeros((block.shape[0], k), dtype=np.float64)
    for i, row in enumerate(block):
        candidates = np.flatnonzero(row > min_similarity)
        if candidates.size == 0:
            continue
        # score descending, then reference index ascending
        order = np.lexsort((candidates, -row[candidates]))[:k]
        chosen = candidates[order]
        indices[i, :chosen.size] = chosen
        scores[i, :chosen.size] = row[chosen]
    return start, indices, scores


def _empty_table(n_rows: int, k: int) -> NeighbourTable:
    return NeighbourTable(np.full((n_rows, k), -1, dtype=np.int64), np.zeros((n_rows, k), dtype=np.float64))


def _run_blocks(queries, reference, k, min_similarity, self_offset, n_jobs, block_size) -> NeighbourTable:
    n_rows = queries.shape[0]
    indices, scores = _empty_table(n_rows, k)
    blocks = Parallel(n_jobs=n_jobs)(
        delayed(_block_topk)(queries, reference, start, min(start + block_size, n_rows),
                             k, min_similarity, self_offset)
        for start in range(0, n_rows, block_size)
    )
    for start, block_indices, block_scores in blocks:
        stop = start + block_indices.shape[0]
        indices[start:stop] = block_indices
        scores[start:stop] = block_scores
    return NeighbourTable(indices, scores)


def cosine_similarity_topk(matrix, k: int, min_similarity: float = 0.0, n_jobs: int = 1,
                           block_size: int = SIMILARITY_BLOCK_SIZE) -> NeighbourTable:
    """
    Top-k cosine neighbour table between the rows of one matrix (self excluded).

    Args:
        matrix: Sparse interaction matrix, one entity per row.
        k (int): Neighbours kept per row.
        min_similarity (float): Only neighbours strictly above this are kept.
        n_jobs (int): joblib workers for the row blocks.
        block_size (int): Rows per block; bounds the dense memory per worker.
    """
    if k < 1:
        raise ValueError(f"k must be >= 1, got {k}")
    if matrix.shape[0] == 0:
        return _empty_table(0, 1)
    normalized = l2_normalize(matrix)
    k = max(min(k, normalized.shape[0] - 1), 1)
    return _run_blocks(normalized, normalized, k, min_similarity, 0, n_jobs, block_size)


def cosine_query_topk(queries, reference, k: int, min_similarity: float = 0.0, n_jobs: int = 1,
                      block_size: int = SIMILARITY_BLOCK_SIZE) -> NeighbourTable:
    """Top-k most similar reference rows for every query row (both share the column space)."""
    if k < 1:
        raise ValueError(f"k must be >= 1, got {k}")
    k = max(min(k, reference.shape[0]), 1)
    if queries.shape[0] == 0 or reference.shape[0] == 0:
        return _empty_table(queries.shape[0], k)
    reference = l2_normalize(reference)
    return _run_blocks(l2_normalize(queries), reference, k, min_similarity, None, n_jobs, block_size)

