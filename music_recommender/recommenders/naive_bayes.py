# music_recommender/recommenders/naive_bayes.py
"""
Naive Bayes song recommender.

Every train song is a class and every other song a binary feature ("the user
listened to it"). For a candidate song s and the user's known songs F:

    score(s) = log P(s) + sum_{f in F} log P(f | s)

    P(s)     = (n_s + alpha) / (n_users + 2 * alpha)
    P(f | s) = (co(f, s) + alpha) / (n_s + 2 * alpha)

where n_s is the number of train listeners of s and co(f, s) the number of
train users who listened to both. Laplace smoothing (alpha) keeps unseen
co-occurrences from zeroing the posterior.

Most (f, s) pairs never co-occur, so the likelihood is stored as a sparse
correction log((co + alpha) / alpha) on top of the dense per-song terms.
Each feature row keeps only its `top_k_cooccurrence` strongest songs; a
dropped pair is scored as if it never co-occurred.
"""
from typing import Dict, List

import numpy as np
from scipy.sparse import csr_matrix, vstack

from .base import MusicRecommender
from .collaborative import TrainIndex
from ..config import DEFAULT_NB_ALPHA, DEFAULT_TOP_K_NEIGHBORS, SIMILARITY_BLOCK_SIZE
from ..dataset import DataSet


def _keep_top_k(co: csr_matrix, k: int, offset: int) -> csr_matrix:
    """Keep the k largest entries of every row (ties by column), dropping the diagonal."""
    rows, cols, values = [], [], []
    for i in range(co.shape[0]):
        lo, hi = co.indptr[i], co.indptr[i + 1]
        idx, data = co.indices[lo:hi], co.data[lo:hi]
        keep = idx != i + offset
        idx, data = idx[keep], data[keep]
        order = np.lexsort((idx, -data))[:k]
        rows.append(np.full(order.size, i, dtype=np.int64))
        cols.append(idx[order])
        values.append(data[order])
    return csr_matrix((np.concatenate(values), (np.concatenate(rows), np.concatenate(cols))), shape=co.shape)


def pruned_cooccurrence(binary: csr_matrix, k: int, block_size: int = SIMILARITY_BLOCK_SIZE) -> csr_matrix:
    """
    songs x songs co-listening counts, top-k per row.

    Rows are computed block by block so the unpruned product never exists
    for more than `block_size` songs at a time.
    """
    features = binary.T.tocsr()
    n_songs = features.shape[0]
    blocks = []
    for start in range(0, n_songs, block_size):
        stop = min(start + block_size, n_songs)
        blocks.append(_keep_top_k((features[start:stop] @ binary).tocsr(), k, start))
    if not blocks:
        return csr_matrix((0, binary.shape[1]), dtype=np.float64)
    return vstack(blocks, format="csr")


class NaiveBayesRecommender(MusicRecommender):

    def __init__(self, recommendation_count: int, alpha: float = DEFAULT_NB_ALPHA,
                 top_k_cooccurrence: int = DEFAULT_TOP_K_NEIGHBORS):
        super().__init__(recommendation_count)
        if alpha <= 0:
            raise ValueError(f"alpha must be > 0, got {alpha}")
        if top_k_cooccurrence < 1:
            raise ValueError(f"top_k_cooccurrence must be >= 1, got {top_k_cooccurrence}")
        self.alpha = alpha
        self.top_k_cooccurrence = top_k_cooccurrence
        self.model_ = None
        self.log_prior_ = None        # [n_songs] log P(s)
        self.log_denominator_ = None  # [n_songs] log(n_s + 2 * alpha)
        self.log_boost_ = None        # sparse [n_features, n_songs] log((co + alpha) / alpha)

    @property
    def is_fitted(self) -> bool:
        return self.log_prior_ is not None

    def fit(self, train: DataSet) -> "NaiveBayesRecommender":
        model = TrainIndex(train, self.recommendation_count)
        binary = (model.user_item_sparse > 0).astype(np.float64).tocsr()
        n_users = binary.shape[0]

        listeners = np.asarray(binary.sum(axis=0)).ravel()
        co_occurrence = pruned_cooccurrence(binary, self.top_k_cooccurrence)
        co_occurrence.data = np.log1p(co_occurrence.data / self.alpha)

        self.log_prior_ = np.log(listeners + self.alpha) - np.log(n_users + 2 * self.alpha)
        self.log_denominator_ = np.log(listeners + 2 * self.alpha)
        self.log_boost_ = co_occurrence
        self.model_ = model
        return self

    def posterior(self, known_songs) -> np.ndarray:
        """Unnormalised log posterior of every train song given the user's known songs."""
        self._check_is_fitted()
        features = [self.model_.song_map[song] for song in known_songs if song in self.model_.song_map]
        scores = self.log_prior_.copy()
        if features:
            n = len(features)
            scores += n * (np.log(self.alpha) - self.log_denominator_)
            scores += np.asarray(self.log_boost_[features].sum(axis=0)).ravel()
        return scores

    def recommend(self, test_visible: DataSet) -> Dict[object, List]:
        self._check_is_fitted()
        song_ids = self.model_.song_ids
        recommendations = {}
        for user_id in test_visible.users:
            known = test_visible.songs_for(user_id)
            scores = self.posterior(known)
            recommendations[user_id] = self._top_n(
                {song_ids[i]: float(score) for i, score in enumerate(scores)},
                exclude=known,
            )
        return recommendations
