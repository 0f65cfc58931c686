# music_recommender/dataset.py
"""In-memory listening data: (user, song, play_count) triplets plus lookup indices."""
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Optional

import numpy as np
import pandas as pd
from scipy.sparse import csr_matrix

INTERACTION_COLUMNS = ["user_id", "song_id", "play_count"]
METADATA_COLUMNS = ["title", "artist"]


class DataSet:
    """
    Read-only collection of listening interactions.

    interactions: DataFrame [user_id, song_id, play_count] with optional
    decorative [title, artist] columns. Every (user_id, song_id) pair is unique
    and play_count >= 1; a missing pair means "unknown", not zero.
    """

    def __init__(self, interactions: pd.DataFrame):
        missing = [col for col in INTERACTION_COLUMNS if col not in interactions.columns]
        if missing:
            raise ValueError(f"Interactions missing required columns: {missing}")

        keep = INTERACTION_COLUMNS + [col for col in METADATA_COLUMNS if col in interactions.columns]
        df = interactions[keep].copy().reset_index(drop=True)

        if df[["user_id", "song_id"]].isna().any().any():
            raise ValueError("Interactions contain missing user_id or song_id values")
        if df.duplicated(subset=["user_id", "song_id"]).any():
            raise ValueError("Each (user_id, song_id) pair must appear at most once")
        play_count = pd.to_numeric(df["play_count"])
        if (play_count < 1).any():
            raise ValueError("play_count must be >= 1; absent interactions are represented by omission")
        if (play_count % 1 != 0).any():
            raise ValueError("play_count must be a whole number of plays")
        df["play_count"] = play_count.astype(np.int64)

        self._df = df
        self._user_songs = self._build_user_songs(df)
        self._song_users = self._build_song_users(df)

    # ---------------- Construction helpers ----------------
    @classmethod
    def from_records(cls, records: Iterable, columns: Optional[List[str]] = None) -> "DataSet":
        """Build a DataSet from (user_id, song_id, play_count) tuples."""
        return cls(pd.DataFrame(list(records), columns=columns or INTERACTION_COLUMNS))

    @classmethod
    def empty(cls) -> "DataSet":
        return cls(pd.DataFrame({
            "user_id": pd.Series(dtype=object),
            "song_id": pd.Series(dtype=object),
            "play_count": pd.Series(dtype=np.int64),
        }))

    @staticmethod
    def _build_user_songs(df):
        grouped = {}
        for user_id, song_id, play_count in df[INTERACTION_COLUMNS].itertuples(index=False):
            grouped.setdefault(user_id, {})[song_id] = int(play_count)
        return MappingProxyType({user: MappingProxyType(songs) for user, songs in grouped.items()})

    @staticmethod
    def _build_song_users(df):
        grouped = df.groupby("song_id", sort=True)["user_id"].apply(frozenset).to_dict()
        return MappingProxyType(grouped)

    # ---------------- Accessors ----------------
    @property
    def interactions(self) -> pd.DataFrame:
        """A copy of the underlying triplets."""
        return self._df.copy()

    @property
    def user_songs(self) -> Mapping:
        """user_id -> {song_id: play_count}"""
        return self._user_songs

    @property
    def song_users(self) -> Mapping:
        """song_id -> frozenset of user_ids"""
        return self._song_users

    @property
    def users(self) -> List:
        return sorted(self._user_songs)

    @property
    def songs(self) -> List:
        return sorted(self._song_users)

    def songs_for(self, user_id) -> Mapping:
        return self._user_songs.get(user_id, MappingProxyType({}))

    def __len__(self) -> int:
        return len(self._df)

    def __contains__(self, user_id) -> bool:
        return user_id in self._user_songs

    def subset(self, user_ids: Iterable) -> "DataSet":
        """New DataSet holding the full history of the given users."""
        wanted = set(user_ids)
        return DataSet(self._df[self._df["user_id"].isin(wanted)])

    def get_dataset_stats(self) -> Dict[str, float]:
        n_users = len(self._user_songs)
        n_songs = len(self._song_users)
        n_interactions = len(self._df)
        cells = n_users * n_songs
        sparsity = 1.0 - n_interactions / cells if cells else 0.0
        return {
            "users": n_users,
            "songs": n_songs,
            "interactions": n_interactions,
            "sparsity": sparsity,
        }

    def user_item_matrix(self, user_index: Mapping, song_index: Mapping, binary: bool = False) -> csr_matrix:
        """
        Sparse [users x songs] play-count matrix.

        Rows/columns follow the given index maps; interactions whose user or
        song is not in the maps are dropped.
        """
        rows = self._df["user_id"].map(user_index)
        cols = self._df["song_id"].map(song_index)
        mask = rows.notna() & cols.notna()
        data = np.ones(int(mask.sum()), dtype=np.float32) if binary \
            else self._df.loc[mask, "play_count"].to_numpy(dtype=np.float32)
        return csr_matrix(
            (data, (rows[mask].to_numpy(dtype=np.int64), cols[mask].to_numpy(dtype=np.int64))),
            shape=(len(user_index), len(song_index)),
        )

    def __repr__(self) -> str:
        stats = self.get_dataset_stats()
        return (f"DataSet(users={stats['users']}, songs={stats['songs']}, "
                f"interactions={stats['interactions']}, sparsity={stats['sparsity']:.4f})")
