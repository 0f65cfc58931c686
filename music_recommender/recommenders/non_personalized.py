from typing import Dict, Iterable, List

import pandas as pd

from .base import MusicRecommender
from ..dataset import DataSet

POPULARITY_MEASURES = ("play_count", "listeners")


class TopNPopularSongs(MusicRecommender):
    """Recommend the most popular train songs the user has not listened to yet."""

    def __init__(self, recommendation_count: int, popularity: str = "play_count"):
        super().__init__(recommendation_count)
        if popularity not in POPULARITY_MEASURES:
            raise ValueError(f"popularity must be one of {POPULARITY_MEASURES}")
        self.popularity = popularity
        self.ranking_ = None  # DataFrame [song_id, score], most popular first

    @property
    def is_fitted(self) -> bool:
        return self.ranking_ is not None

    def fit(self, train: DataSet) -> "TopNPopularSongs":
        """Rank songs by aggregate play count (or listener count), ties by song id."""
        interactions = train.interactions
        if self.popularity == "play_count":
            scores = interactions.groupby("song_id")["play_count"].sum()
        else:
            scores = interactions.groupby("song_id")["user_id"].nunique()
        self.ranking_ = (
            scores.rename("score").reset_index()
            .sort_values(["score", "song_id"], ascending=[False, True], kind="mergesort")
            .reset_index(drop=True)
        )
        return self

    def top_k_global(self, k: int) -> pd.DataFrame:
        """Return Top k songs overall, indexed by rank."""
        self._check_is_fitted()
        top_k = self.ranking_.head(k).copy()
        top_k.index = top_k.index + 1
        top_k.index.name = "rank"
        return top_k

    def recommend_for_user(self, known_songs: Iterable, n: int = None) -> List:
        """Top n ranked songs not in known_songs."""
        self._check_is_fitted()
        n = self.recommendation_count if n is None else n
        known = set(known_songs)
        recs = []
        for song_id in self.ranking_["song_id"]:
            if song_id in known:
                continue
            recs.append(song_id)
            if len(recs) >= n:
                break
        return recs

    def recommend(self, test_visible: DataSet) -> Dict[object, List]:
        self._check_is_fitted()
        return {
            user_id: self.recommend_for_user(test_visible.songs_for(user_id))
            for user_id in test_visible.users
        }
