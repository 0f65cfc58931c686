# music_recommender/recommenders/base.py
from abc import ABC, abstractmethod
from typing import Dict, Iterable, List, Mapping

from ..dataset import DataSet
from ..exceptions import ConfigurationError, NotFittedError


class MusicRecommender(ABC):
    """
    Base abstract class for all recommenders.

    A recommender is built with the number of songs to recommend per user,
    learns its model from a train DataSet in `fit`, and recommends for every
    user of a test-visible DataSet in `recommend`. Model state is owned by each
    subclass and is replaced on every `fit`.
    """

    def __init__(self, recommendation_count: int):
        if isinstance(recommendation_count, bool) or not isinstance(recommendation_count, int) \
                or recommendation_count < 1:
            raise ConfigurationError(
                f"recommendation_count must be a positive integer, got {recommendation_count!r}"
            )
        self.recommendation_count = recommendation_count

    @abstractmethod
    def fit(self, train: DataSet) -> "MusicRecommender":
        raise NotImplementedError

    @abstractmethod
    def recommend(self, test_visible: DataSet) -> Dict[object, List]:
        raise NotImplementedError

    @property
    @abstractmethod
    def is_fitted(self) -> bool:
        raise NotImplementedError

    def _check_is_fitted(self):
        if not self.is_fitted:
            raise NotFittedError(
                f"This {type(self).__name__} instance is not fitted yet. "
                "Call 'fit' with a train DataSet before 'recommend'."
            )

    def _top_n(self, scores: Mapping, exclude: Iterable = ()) -> List:
        """Highest scores first, ties broken by song id, known songs removed, capped at N."""
        excluded = set(exclude)
        ranked = sorted(
            ((song, score) for song, score in scores.items() if song not in excluded),
            key=lambda item: (-item[1], item[0]),
        )
        return [song for song, _ in ranked[:self.recommendation_count]]

    def __repr__(self) -> str:
        return f"{type(self).__name__}(recommendation_count={self.recommendation_count})"
