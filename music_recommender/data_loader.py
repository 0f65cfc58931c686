# music_recommender/data_loader.py
import logging
import os

import pandas as pd

from .dataset import DataSet, INTERACTION_COLUMNS

logger = logging.getLogger(__name__)


def load_interactions(file_path, sep=None, min_user_interactions: int = 1) -> DataSet:
    """
    Load listening triplets into a DataSet.

    Two layouts are understood:
      - CSV with a header containing user_id, song_id, play_count
        (optional title, artist columns are kept as metadata)
      - headerless tab-separated "train_triplets.txt" (user, song, count)

    Args:
        file_path (str): Path to the interactions file.
        sep (str): Column separator. Inferred from the extension when None.
        min_user_interactions (int): Drop users with fewer distinct songs.
    """
    if not os.path.exists(file_path):
        raise FileNotFoundError(f"Interactions file not found at {file_path}")

    if sep is None:
        sep = "\t" if file_path.endswith((".txt", ".tsv")) else ","

    if sep == "\t":
        df = pd.read_csv(file_path, sep=sep, header=None, names=INTERACTION_COLUMNS)
    else:
        df = pd.read_csv(file_path, sep=sep)
    logger.info("Loaded %d rows from %s", len(df), file_path)

    missing = [col for col in INTERACTION_COLUMNS if col not in df.columns]
    if missing:
        raise ValueError(f"Data missing expected columns {missing}. Found: {df.columns.tolist()}")

    return DataSet(clean_interactions(df, min_user_interactions=min_user_interactions))


def clean_interactions(df: pd.DataFrame, min_user_interactions: int = 1) -> pd.DataFrame:
    """Drop unusable rows and merge repeated (user, song) rows by summing play counts."""
    original_rows = len(df)
    df = df.dropna(subset=INTERACTION_COLUMNS)
    df = df.assign(
        user_id=df["user_id"].astype(str),
        song_id=df["song_id"].astype(str),
        play_count=pd.to_numeric(df["play_count"], errors="coerce"),
    )
    df = df[df["play_count"] >= 1]
    if len(df) < original_rows:
        logger.info("Dropped %d rows with missing ids or non-positive play counts.", original_rows - len(df))
    fractional = df["play_count"] % 1 != 0
    if fractional.any():
        raise ValueError(f"play_count must be a whole number of plays; {int(fractional.sum())} row(s) are not")

    metadata = [col for col in ("title", "artist") if col in df.columns]
    aggregations = {"play_count": "sum", **{col: "first" for col in metadata}}
    df = df.groupby(["user_id", "song_id"], as_index=False, sort=False).agg(aggregations)
    df["play_count"] = df["play_count"].astype("int64")

    if min_user_interactions > 1:
        user_counts = df.groupby("user_id").size()
        valid_users = user_counts[user_counts >= min_user_interactions].index
        before = df["user_id"].nunique()
        df = df[df["user_id"].isin(valid_users)]
        logger.info("Filtered users with < %d songs: %d -> %d users",
                    min_user_interactions, before, df["user_id"].nunique())

    return df.reset_index(drop=True)
