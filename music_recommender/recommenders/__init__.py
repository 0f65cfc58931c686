from .base import MusicRecommender
from .collaborative import ItemBasedCF, UserBasedCF
from .knn import KNNRecommender
from .naive_bayes import NaiveBayesRecommender
from .non_personalized import TopNPopularSongs

__all__ = [
    "ItemBasedCF",
    "KNNRecommender",
    "MusicRecommender",
    "NaiveBayesRecommender",
    "TopNPopularSongs",
    "UserBasedCF",
]
