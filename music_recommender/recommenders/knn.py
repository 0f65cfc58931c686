from typing import Dict, List

import faiss
import numpy as np
from sklearn.decomposition import TruncatedSVD
from sklearn.preprocessing import normalize

from .base import MusicRecommender
from .collaborative import TrainIndex
from .similarity import l2_normalize
from ..config import DEFAULT_KNN_COMPONENTS, DEFAULT_KNN_NEIGHBORS
from ..dataset import DataSet


class KNNRecommender(MusicRecommender):
    """
    K-nearest-neighbour voting over train users, using FAISS for inner-product search.

    Play-count rows are L2-normalised so the inner product is the cosine
    similarity. When the train set has more songs than `n_components`, rows
    are first projected with TruncatedSVD, so the index holds
    n_users x n_components floats whatever the catalogue size; smaller
    catalogues are searched exactly. Exactly `k_neighbors` nearest train users
    are retrieved (fewer only when some of them share nothing with the user);
    every neighbour casts one vote for each song it listened to. Songs are
    ranked by votes, then by summed neighbour similarity, then by song id.
    """

    def __init__(self, recommendation_count: int, k_neighbors: int = DEFAULT_KNN_NEIGHBORS,
                 n_components: int = DEFAULT_KNN_COMPONENTS, random_state=0):
        super().__init__(recommendation_count)
        if k_neighbors < 1:
            raise ValueError(f"k_neighbors must be >= 1, got {k_neighbors}")
        if n_components < 1:
            raise ValueError(f"n_components must be >= 1, got {n_components}")
        self.k_neighbors = k_neighbors
        self.n_components = n_components
        self.random_state = random_state
        self.model_ = None
        self.svd_ = None  # None when rows are indexed in the song space
        self.index_ = None
        self.binary_ = None  # train users x songs, 1 where listened
        self.fallback_users_ = []

    @property
    def is_fitted(self) -> bool:
        return self.index_ is not None

    def fit(self, train: DataSet) -> "KNNRecommender":
        model = TrainIndex(train, self.recommendation_count)
        normalized = l2_normalize(model.user_item_sparse)
        n_users, n_songs = normalized.shape

        svd = None
        if n_songs > self.n_components:
            # Compute latent user vectors via SVD
            svd = TruncatedSVD(n_components=min(self.n_components, n_users), random_state=self.random_state)
            user_latent = svd.fit_transform(normalized)
        else:
            user_latent = normalized.toarray()
        user_latent = self._as_vectors(user_latent)

        index = faiss.IndexFlatIP(user_latent.shape[1])
        index.add(user_latent)

        self.model_ = model
        self.svd_ = svd
        self.index_ = index
        self.binary_ = (model.user_item_sparse > 0).astype(np.float32).tocsr()
        return self

    @staticmethod
    def _as_vectors(latent) -> np.ndarray:
        # Normalize for cosine similarity (dot product = cosine)
        return np.ascontiguousarray(normalize(np.asarray(latent, dtype=np.float32)), dtype=np.float32)

    def _project(self, matrix) -> np.ndarray:
        normalized = l2_normalize(matrix)
        latent = self.svd_.transform(normalized) if self.svd_ is not None else normalized.toarray()
        return self._as_vectors(latent)

    def search(self, test_visible: DataSet):
        """(similarities, train user indices) for each test-visible user, -1 where no neighbour."""
        self._check_is_fitted()
        queries = self.model_.query_matrix(test_visible)
        k = min(self.k_neighbors, self.index_.ntotal)
        if queries.shape[0] == 0:
            return np.zeros((0, k), dtype=np.float32), np.zeros((0, k), dtype=np.int64)
        D, I = self.index_.search(self._project(queries), k)
        I = np.where(D > 0, I, -1)
        return D, I

    def recommend(self, test_visible: DataSet) -> Dict[object, List]:
        self._check_is_fitted()
        model = self.model_
        D, I = self.search(test_visible)

        recommendations, fallback_users = {}, []
        for row, user_id in enumerate(test_visible.users):
            known = test_visible.songs_for(user_id)
            valid = I[row] >= 0
            recs = []
            if valid.any():
                neighbour_rows = self.binary_[I[row][valid]]
                votes = np.asarray(neighbour_rows.sum(axis=0)).ravel()
                similarity_sum = np.asarray(neighbour_rows.T.dot(D[row][valid].astype(np.float64))).ravel()
                ranked = sorted(
                    (model.song_ids[i] for i in np.flatnonzero(votes > 0)
                     if model.song_ids[i] not in known),
                    key=lambda song: (-votes[model.song_map[song]],
                                      -similarity_sum[model.song_map[song]], song),
                )
                recs = ranked[:self.recommendation_count]
            if not recs:
                fallback_users.append(user_id)
                recs = model.popular.recommend_for_user(known)
            recommendations[user_id] = recs

        self.fallback_users_ = fallback_users
        return recommendations
