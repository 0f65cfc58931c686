import logging
from typing import Dict, List

import numpy as np

from .base import MusicRecommender
from .non_personalized import TopNPopularSongs
from .similarity import cosine_query_topk, cosine_similarity_topk
from ..config import DEFAULT_TOP_K_NEIGHBORS
from ..dataset import DataSet

logger = logging.getLogger(__name__)


class TrainIndex:
    """Index maps, sparse play-count matrix and popularity fallback built from one train set."""

    def __init__(self, train: DataSet, recommendation_count: int):
        # Map user_id and song_id to indices
        self.user_ids = train.users
        self.song_ids = train.songs
        self.user_map = {user: idx for idx, user in enumerate(self.user_ids)}
        self.song_map = {song: idx for idx, song in enumerate(self.song_ids)}
        self.user_item_sparse = train.user_item_matrix(self.user_map, self.song_map)
        self.popular = TopNPopularSongs(recommendation_count).fit(train)

    def query_matrix(self, test_visible: DataSet):
        """Test-visible play counts in the train song space; rows follow test_visible.users."""
        query_map = {user: idx for idx, user in enumerate(test_visible.users)}
        return test_visible.user_item_matrix(query_map, self.song_map)


class Collaborative(MusicRecommender):
    """Base class for collaborative recommenders; the learned model lives in `model_`."""

    def __init__(self, recommendation_count: int, top_k_neighbors: int = DEFAULT_TOP_K_NEIGHBORS,
                 min_similarity: float = 0.0, n_jobs: int = 1):
        super().__init__(recommendation_count)
        if top_k_neighbors < 1:
            raise ValueError(f"top_k_neighbors must be >= 1, got {top_k_neighbors}")
        self.top_k_neighbors = top_k_neighbors
        self.min_similarity = min_similarity
        self.n_jobs = n_jobs
        self.model_ = None
        self.fallback_users_ = []

    @property
    def is_fitted(self) -> bool:
        return self.model_ is not None

    def _finish(self, recommendations: Dict, fallback_users: List) -> Dict[object, List]:
        self.fallback_users_ = fallback_users
        if fallback_users:
            logger.debug("%s: %d/%d users fell back to popular songs",
                         type(self).__name__, len(fallback_users), len(recommendations))
        return recommendations


class UserBasedCF(Collaborative):
    """
    User-based collaborative filtering.

    Each test user is compared (cosine over play counts) with every train user;
    train users above `min_similarity` are neighbours, at most
    `top_k_neighbors` of them. A candidate song scores
    sum(similarity * neighbour play count) over the neighbours that played it.
    Users without neighbours, or whose neighbours only know songs the user
    already has, get the popular-songs ranking.
    """

    def fit(self, train: DataSet) -> "UserBasedCF":
        self.model_ = TrainIndex(train, self.recommendation_count)
        return self

    def neighbours(self, test_visible: DataSet):
        """Neighbour table of test-visible users (rows follow test_visible.users) over train users."""
        self._check_is_fitted()
        return cosine_query_topk(self.model_.query_matrix(test_visible), self.model_.user_item_sparse,
                                 self.top_k_neighbors, min_similarity=self.min_similarity,
                                 n_jobs=self.n_jobs)

    def recommend(self, test_visible: DataSet) -> Dict[object, List]:
        self._check_is_fitted()
        model = self.model_
        table = self.neighbours(test_visible)

        recommendations, fallback_users = {}, []
        for row, user_id in enumerate(test_visible.users):
            known = test_visible.songs_for(user_id)
            valid = table.indices[row] >= 0
            recs = []
            if valid.any():
                neighbour_matrix = model.user_item_sparse[table.indices[row][valid]]
                weighted = np.asarray(neighbour_matrix.T.dot(table.scores[row][valid])).ravel()
                scores = {model.song_ids[i]: float(weighted[i]) for i in np.flatnonzero(weighted > 0)}
                recs = self._top_n(scores, exclude=known)
            if not recs:
                fallback_users.append(user_id)
                recs = model.popular.recommend_for_user(known)
            recommendations[user_id] = recs

        return self._finish(recommendations, fallback_users)


class ItemBasedCF(Collaborative):
    """
    Item-based collaborative filtering using cosine similarity between songs.

    The song-song table is pruned to the `top_k_neighbors` most similar songs
    per song. A candidate song scores
    sum(similarity(history song, candidate) * log1p(history play count)).
    """

    def __init__(self, recommendation_count: int, top_k_neighbors: int = DEFAULT_TOP_K_NEIGHBORS,
                 min_similarity: float = 0.0, n_jobs: int = 1):
        super().__init__(recommendation_count, top_k_neighbors, min_similarity, n_jobs)
        self.item_sim = None  # stores top-K similar songs

    def fit(self, train: DataSet) -> "ItemBasedCF":
        model = TrainIndex(train, self.recommendation_count)
        # Compute song-song similarities
        self.item_sim = cosine_similarity_topk(model.user_item_sparse.T.tocsr(), self.top_k_neighbors,
                                               min_similarity=self.min_similarity, n_jobs=self.n_jobs)
        self.model_ = model
        return self

    def similar_songs(self, song_id) -> List:
        """(song_id, similarity) pairs for a train song, most similar first."""
        self._check_is_fitted()
        if song_id not in self.model_.song_map:
            return []
        return [(self.model_.song_ids[j], score)
                for j, score in self.item_sim.neighbours(self.model_.song_map[song_id])]

    def recommend(self, test_visible: DataSet) -> Dict[object, List]:
        self._check_is_fitted()
        model = self.model_

        recommendations, fallback_users = {}, []
        for user_id in test_visible.users:
            known = test_visible.songs_for(user_id)
            scores = {}
            for song_id, play_count in known.items():
                if song_id not in model.song_map:
                    continue
                weight = float(np.log1p(play_count))
                for neighbour, similarity in self.item_sim.neighbours(model.song_map[song_id]):
                    candidate = model.song_ids[neighbour]
                    scores[candidate] = scores.get(candidate, 0.0) + similarity * weight

            recs = self._top_n(scores, exclude=known)
            if not recs:
                fallback_users.append(user_id)
                recs = model.popular.recommend_for_user(known)
            recommendations[user_id] = recs

        return self._finish(recommendations, fallback_users)
