import logging
import time
from typing import Dict, List, Mapping, Optional, Tuple

import numpy as np
import pandas as pd

from .config import DEFAULT_KNN_NEIGHBORS, DEFAULT_NB_ALPHA, DEFAULT_TOP_K_NEIGHBORS, EvaluationConfig
from .cross_validation import CrossValidationFactory
from .dataset import DataSet
from .evaluation.metrics import accuracy_from_user_scores, evaluate_users
from .recommenders.base import MusicRecommender
from .recommenders.collaborative import ItemBasedCF, UserBasedCF
from .recommenders.knn import KNNRecommender
from .recommenders.naive_bayes import NaiveBayesRecommender
from .recommenders.non_personalized import TopNPopularSongs

logger = logging.getLogger(__name__)

TOP_N_POPULAR = "Top-N Popular Songs"
USER_BASED_COLLABORATIVE_FILTERING = "User-Based Collaborative Filtering"
ITEM_BASED_COLLABORATIVE_FILTERING = "Item-Based Collaborative Filtering"
K_NEAREST_NEIGHBOUR = "K-Nearest Neighbour"
NAIVE_BAYES = "Naive Bayes"


def build_algorithms(recommendation_count: int,
                     top_k_neighbors: int = DEFAULT_TOP_K_NEIGHBORS,
                     knn_neighbors: int = DEFAULT_KNN_NEIGHBORS,
                     nb_alpha: float = DEFAULT_NB_ALPHA,
                     n_jobs: int = 1) -> Dict[str, MusicRecommender]:
    """Fresh, named recommender instances in reporting order."""
    return {
        TOP_N_POPULAR: TopNPopularSongs(recommendation_count),
        USER_BASED_COLLABORATIVE_FILTERING: UserBasedCF(recommendation_count, top_k_neighbors, n_jobs=n_jobs),
        ITEM_BASED_COLLABORATIVE_FILTERING: ItemBasedCF(recommendation_count, top_k_neighbors, n_jobs=n_jobs),
        K_NEAREST_NEIGHBOUR: KNNRecommender(recommendation_count, knn_neighbors),
        NAIVE_BAYES: NaiveBayesRecommender(recommendation_count, nb_alpha),
    }


def run_algorithm(algo: MusicRecommender, train: DataSet, test_visible: DataSet,
                  test_hidden: DataSet) -> Tuple[float, pd.DataFrame]:
    """
    Fit algo on train, recommend for the test-visible users and score against test_hidden.

    Returns the accuracy percentage (NaN when no user could be scored) and
    the per-user scores.
    """
    algo.fit(train)
    recommendations = algo.recommend(test_visible)
    per_user = evaluate_users(recommendations, test_hidden)
    return accuracy_from_user_scores(per_user, test_hidden), per_user


class EvaluationReport:
    """Per-run results of every algorithm and their aggregate."""

    COLUMNS = ["run", "algorithm", "accuracy", "precision", "scored_users", "seconds"]

    def __init__(self, runs: List[dict], config: EvaluationConfig):
        self.runs = pd.DataFrame(runs, columns=self.COLUMNS)
        self.config = config

    def summary(self) -> pd.DataFrame:
        """
        Mean accuracy per algorithm over runs that produced a score.

        Runs where no user could be scored are counted in `no_data_runs` and
        left out of the mean; an algorithm with no scored run has NaN accuracy.
        """
        grouped = self.runs.groupby("algorithm", sort=False)
        summary = pd.DataFrame({
            "accuracy": grouped["accuracy"].mean(),
            "precision": grouped["precision"].mean(),
            "scored_runs": grouped["accuracy"].count(),
            "no_data_runs": grouped["accuracy"].apply(lambda s: int(s.isna().sum())),
            "seconds": grouped["seconds"].sum(),
        })
        summary.index.name = "algorithm"
        return summary

    def accuracy(self, algorithm: str) -> float:
        return float(self.summary().loc[algorithm, "accuracy"])


class MusicRecommenderSystem:
    """Runs every registered recommender through repeated cross-validation on one dataset."""

    def __init__(self, dataset: DataSet, config: EvaluationConfig,
                 algorithms: Optional[Mapping[str, MusicRecommender]] = None,
                 random_state=None):
        self.config = config.validate_against(dataset)
        self.dataset = dataset
        self.algorithms = dict(algorithms) if algorithms is not None \
            else build_algorithms(config.recommendation_count)
        if not self.algorithms:
            raise ValueError("At least one algorithm is required")
        self.factory = CrossValidationFactory(dataset, config.fold_count, config.randomize_folds,
                                              random_state=random_state)

    def run(self) -> EvaluationReport:
        logger.info("Dataset summary: %s", self.dataset.get_dataset_stats())
        results = []
        for run_id in range(self.config.runs):
            folds = self.factory.get_datasets(run_id)
            logger.info("Train dataset summary for run %d is %s", run_id, folds.train.get_dataset_stats())
            logger.info("Test visible dataset summary for run %d is %s", run_id,
                        folds.test_visible.get_dataset_stats())
            logger.info("Test hidden dataset summary for run %d is %s", run_id,
                        folds.test_hidden.get_dataset_stats())

            for name, algo in self.algorithms.items():
                logger.info("Running '%s' recommendation algorithm for run %d", name, run_id)
                results.append(self._run_one(run_id, name, algo, folds))

        report = EvaluationReport(results, self.config)
        self.log_summary(report)
        return report

    def _run_one(self, run_id: int, name: str, algo: MusicRecommender, folds) -> dict:
        # Generating Model + Recommending + Testing Recommendation
        start = time.perf_counter()
        accuracy, per_user = run_algorithm(algo, folds.train, folds.test_visible, folds.test_hidden)
        elapsed = time.perf_counter() - start

        if np.isnan(accuracy):
            logger.warning("No scorable users for '%s' in run %d; accuracy undefined", name, run_id)
        else:
            logger.info("Accuracy of algo '%s' for run %d is %.2f %%", name, run_id, accuracy)

        return {
            "run": run_id,
            "algorithm": name,
            "accuracy": accuracy,
            "precision": float(per_user["precision"].mean()) if not per_user.empty else float("nan"),
            "scored_users": len(per_user),
            "seconds": elapsed,
        }

    @staticmethod
    def log_summary(report: EvaluationReport):
        config = report.config
        logger.info("----------------------------------------------")
        logger.info("Overall Avg. Accuracy (NumOfRecommendations=%d, NumOfCVFolds=%d, Runs=%d)",
                    config.recommendation_count, config.fold_count, config.runs)
        for name, row in report.summary().iterrows():
            accuracy = "no data" if np.isnan(row["accuracy"]) else f"{row['accuracy']:.2f} %"
            logger.info("'%s' : Accuracy = %s , Time : %.2f seconds.", name, accuracy, row["seconds"])
        logger.info("----------------------------------------------")
