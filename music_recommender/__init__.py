from .config import EvaluationConfig
from .cross_validation import CrossValidationFactory, FoldDatasets
from .data_loader import load_interactions
from .dataset import DataSet
from .evaluation.metrics import get_accuracy
from .exceptions import ConfigurationError, NotFittedError
from .system import MusicRecommenderSystem, build_algorithms

__all__ = [
    "ConfigurationError",
    "CrossValidationFactory",
    "DataSet",
    "EvaluationConfig",
    "FoldDatasets",
    "MusicRecommenderSystem",
    "NotFittedError",
    "build_algorithms",
    "get_accuracy",
    "load_interactions",
]
