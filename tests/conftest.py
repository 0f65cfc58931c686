import pandas as pd
import pytest

from music_recommender.dataset import DataSet


def clustered_records(n_users=10, n_songs=20):
    """
    Two taste clusters: the first half of the users only listen to the first
    half of the songs, the second half of the users to the second half.
    Every user listens to every song of their cluster with varying play counts.
    """
    half_users, half_songs = n_users // 2, n_songs // 2
    records = []
    for u in range(n_users):
        offset = 0 if u < half_users else half_songs
        for s in range(half_songs):
            play_count = 1 + (3 * s + u) % 10
            records.append((f"u{u:02d}", f"s{offset + s:02d}", play_count))
    return records


@pytest.fixture
def clustered_dataset():
    return DataSet.from_records(clustered_records())


@pytest.fixture
def clustered_with_single_listen():
    """Clustered fixture plus a user with exactly one interaction."""
    return DataSet.from_records(clustered_records() + [("u10", "s00", 3)])


@pytest.fixture
def small_dataset():
    return DataSet(pd.DataFrame({
        "user_id": ["alice", "alice", "alice", "bob", "bob", "carol", "carol", "carol", "dave"],
        "song_id": ["a", "b", "c", "a", "b", "b", "c", "d", "d"],
        "play_count": [5, 3, 1, 2, 7, 1, 4, 6, 2],
    }))


@pytest.fixture
def clustered_csv(tmp_path):
    path = tmp_path / "interactions.csv"
    lines = ["user_id,song_id,play_count"] + [f"{u},{s},{c}" for u, s, c in clustered_records()]
    path.write_text("\n".join(lines) + "\n")
    return path
