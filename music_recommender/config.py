# config.py
"""
Configuration settings for the cross-validation evaluation.
"""
from dataclasses import dataclass

from .exceptions import ConfigurationError

# --- Model Settings ---
DEFAULT_TOP_K_NEIGHBORS = 50  # neighbour rows kept per user/song in similarity tables
DEFAULT_KNN_NEIGHBORS = 10    # hard neighbour cutoff for KNN
DEFAULT_KNN_COMPONENTS = 128  # latent dimension of the KNN user vectors
DEFAULT_NB_ALPHA = 1.0        # Laplace smoothing for Naive Bayes
SIMILARITY_BLOCK_SIZE = 1024  # rows per similarity block

# --- Evaluation ---
HIDDEN_FRACTION = 0.5  # share of a test user's history held out for scoring


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


@dataclass(frozen=True)
class EvaluationConfig:
    """The four required evaluation settings. None of them has a default."""

    recommendation_count: int
    fold_count: int
    randomize_folds: bool
    runs: int

    def validate(self) -> "EvaluationConfig":
        if not _is_int(self.recommendation_count) or self.recommendation_count < 1:
            raise ConfigurationError(
                f"recommendation_count must be a positive integer, got {self.recommendation_count!r}"
            )
        if not _is_int(self.fold_count) or self.fold_count < 1:
            raise ConfigurationError(f"fold_count must be a positive integer, got {self.fold_count!r}")
        if self.fold_count < 2:
            raise ConfigurationError("fold_count must be at least 2, otherwise the train set is empty")
        if not isinstance(self.randomize_folds, bool):
            raise ConfigurationError(f"randomize_folds must be a boolean, got {self.randomize_folds!r}")
        if not _is_int(self.runs) or self.runs < 1:
            raise ConfigurationError(f"runs must be a positive integer, got {self.runs!r}")
        if not self.randomize_folds and self.runs > self.fold_count:
            raise ConfigurationError(
                f"{self.runs} runs over {self.fold_count} fixed folds would repeat folds; "
                "enable randomize_folds to run more rounds than folds"
            )
        return self

    def validate_against(self, dataset) -> "EvaluationConfig":
        """Check the settings against the population of the dataset to split."""
        self.validate()
        n_users = len(dataset.users)
        if self.fold_count > n_users:
            raise ConfigurationError(
                f"fold_count={self.fold_count} exceeds the number of users ({n_users})"
            )
        return self

    @classmethod
    def from_mapping(cls, values: dict) -> "EvaluationConfig":
        missing = [name for name in ("recommendation_count", "fold_count", "randomize_folds", "runs")
                   if values.get(name) is None]
        if missing:
            raise ConfigurationError(f"Missing required settings: {', '.join(missing)}")
        return cls(
            recommendation_count=values["recommendation_count"],
            fold_count=values["fold_count"],
            randomize_folds=values["randomize_folds"],
            runs=values["runs"],
        ).validate()
