# music_recommender/cross_validation.py
"""
Cross-validation factory producing train / test-visible / test-hidden datasets.

Users, not interactions, are assigned to folds: a test user's full history
stays out of train. Each test user's history is then split into a visible
part (given to the recommender) and a hidden part (used for scoring).
"""
import logging
from typing import List, NamedTuple, Optional, Tuple

import numpy as np
import pandas as pd
from sklearn.model_selection import KFold

from .config import HIDDEN_FRACTION
from .dataset import DataSet
from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)


class FoldDatasets(NamedTuple):
    train: DataSet
    test_visible: DataSet
    test_hidden: DataSet
    excluded_users: Tuple


def split_user_history(songs: dict, hidden_fraction: float = HIDDEN_FRACTION):
    """
    Split one user's {song_id: play_count} history into (visible, hidden) song lists.

    Songs are ordered by play count descending, then song id; the most played
    songs stay visible. Returns None when the history has fewer than 2 songs.
    """
    n = len(songs)
    if n < 2:
        return None
    ordered = sorted(songs, key=lambda song: (-songs[song], song))
    n_hidden = min(max(int(round(n * hidden_fraction)), 1), n - 1)
    return ordered[:n - n_hidden], ordered[n - n_hidden:]


class CrossValidationFactory:
    """
    Args:
        dataset (DataSet): Full dataset; never mutated.
        fold_count (int): Number of user folds k.
        randomize (bool): Re-shuffle the fold assignment on every call instead of
            rotating through k fixed folds.
        hidden_fraction (float): Share of each test user's history held out.
        random_state: Seed or numpy Generator used when randomize is True.
    """

    def __init__(self, dataset: DataSet, fold_count: int, randomize: bool,
                 hidden_fraction: float = HIDDEN_FRACTION, random_state=None):
        if not isinstance(fold_count, (int, np.integer)) or isinstance(fold_count, bool) or fold_count <= 0:
            raise ConfigurationError(f"fold_count must be a positive integer, got {fold_count!r}")
        if fold_count < 2:
            raise ConfigurationError("fold_count must be at least 2 for a non-degenerate train/test split")
        n_users = len(dataset.users)
        if fold_count > n_users:
            raise ConfigurationError(f"fold_count={fold_count} exceeds the number of users ({n_users})")
        if not 0.0 < hidden_fraction < 1.0:
            raise ConfigurationError(f"hidden_fraction must be in (0, 1), got {hidden_fraction!r}")

        self.dataset = dataset
        self.fold_count = int(fold_count)
        self.randomize = randomize
        self.hidden_fraction = hidden_fraction
        self._users = np.array(dataset.users, dtype=object)
        self._rng = np.random.default_rng(random_state)
        self._fixed_folds = None if randomize else self._partition(shuffle=False)

    def _partition(self, shuffle: bool) -> List[np.ndarray]:
        seed = int(self._rng.integers(0, 2 ** 31 - 1)) if shuffle else None
        kfold = KFold(n_splits=self.fold_count, shuffle=shuffle, random_state=seed)
        return [self._users[test_idx] for _, test_idx in kfold.split(self._users)]

    def get_test_users(self, run_id: int) -> List:
        """Users assigned to the test role for this run."""
        if run_id < 0:
            raise ValueError(f"run_id must be >= 0, got {run_id}")
        folds = self._partition(shuffle=True) if self.randomize else self._fixed_folds
        return list(folds[run_id % self.fold_count])

    def get_datasets(self, run_id: int) -> FoldDatasets:
        test_users = set(self.get_test_users(run_id))
        train_users = [user for user in self._users if user not in test_users]

        visible_rows, hidden_rows, excluded = [], [], []
        interactions = self.dataset.interactions
        for user_id in sorted(test_users):
            split = split_user_history(self.dataset.songs_for(user_id), self.hidden_fraction)
            if split is None:
                excluded.append(user_id)
                continue
            visible, hidden = split
            visible_rows.extend((user_id, song) for song in visible)
            hidden_rows.extend((user_id, song) for song in hidden)

        if excluded:
            logger.info("Run %d: %d test user(s) excluded from scoring (history too small to split): %s",
                        run_id, len(excluded), excluded)

        return FoldDatasets(
            train=self.dataset.subset(train_users),
            test_visible=self._select(interactions, visible_rows),
            test_hidden=self._select(interactions, hidden_rows),
            excluded_users=tuple(excluded),
        )

    @staticmethod
    def _select(interactions: pd.DataFrame, keys) -> DataSet:
        if not keys:
            return DataSet.empty()
        wanted = pd.DataFrame(keys, columns=["user_id", "song_id"])
        return DataSet(wanted.merge(interactions, on=["user_id", "song_id"], how="left"))
