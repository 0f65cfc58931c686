import logging
from typing import Mapping, Sequence

import numpy as np
import pandas as pd

from ..dataset import DataSet

logger = logging.getLogger(__name__)


def precision_at_k(actual, predicted, k):
    actual, predicted = set(actual), predicted[:k]
    return len(set(predicted) & actual) / k if k else 0.0


def recall_at_k(actual, predicted, k):
    actual, predicted = set(actual), predicted[:k]
    return len(set(predicted) & actual) / len(actual) if actual else 0.0


def evaluate_users(recommendations: Mapping[object, Sequence], test_hidden: DataSet) -> pd.DataFrame:
    """
    Per-user recall and precision (in percent) of the recommended songs against the hidden songs.

    Only users present in both recommendations and test_hidden are scored.
    A scored user with an empty recommendation list gets 0 for both.
    """
    rows = {}
    for user_id in test_hidden.users:
        if user_id not in recommendations:
            continue
        hidden = test_hidden.songs_for(user_id)
        predicted = list(recommendations[user_id])
        k = len(predicted)
        rows[user_id] = {
            "recall": 100.0 * recall_at_k(hidden, predicted, k),
            "precision": 100.0 * precision_at_k(hidden, predicted, k),
        }
    return pd.DataFrame.from_dict(rows, orient="index", columns=["recall", "precision"], dtype=np.float64)


def accuracy_from_user_scores(per_user: pd.DataFrame, test_hidden: DataSet) -> float:
    """Mean recall of the frame returned by `evaluate_users`; NaN when it is empty."""
    skipped = len(test_hidden.users) - len(per_user)
    if skipped:
        logger.info("%d hidden-set user(s) without recommendations were not scored", skipped)
    if per_user.empty:
        return float("nan")
    return float(per_user["recall"].mean())


def get_accuracy(recommendations: Mapping[object, Sequence], test_hidden: DataSet) -> float:
    """
    Average percentage of each user's hidden songs that were recommended.

    Users in test_hidden without an entry in recommendations (for instance
    users whose history was too small to split) are left out of the average
    instead of counting as 0. Returns NaN when no user can be scored.
    """
    return accuracy_from_user_scores(evaluate_users(recommendations, test_hidden), test_hidden)
