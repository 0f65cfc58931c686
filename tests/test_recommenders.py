import numpy as np
import pytest

from music_recommender.cross_validation import CrossValidationFactory
from music_recommender.dataset import DataSet
from music_recommender.exceptions import ConfigurationError, NotFittedError
from music_recommender.recommenders import (
    ItemBasedCF,
    KNNRecommender,
    NaiveBayesRecommender,
    TopNPopularSongs,
    UserBasedCF,
)
from music_recommender.recommenders.similarity import cosine_similarity_topk

ALL_RECOMMENDERS = [TopNPopularSongs, UserBasedCF, ItemBasedCF, KNNRecommender, NaiveBayesRecommender]


@pytest.fixture
def fold(clustered_dataset):
    return CrossValidationFactory(clustered_dataset, 5, randomize=False).get_datasets(0)


@pytest.mark.parametrize("recommender_cls", ALL_RECOMMENDERS)
def test_recommend_before_fit_fails(recommender_cls, fold):
    with pytest.raises(NotFittedError):
        recommender_cls(3).recommend(fold.test_visible)


@pytest.mark.parametrize("recommender_cls", ALL_RECOMMENDERS)
@pytest.mark.parametrize("count", [0, -1])
def test_invalid_recommendation_count(recommender_cls, count):
    with pytest.raises(ConfigurationError):
        recommender_cls(count)


@pytest.mark.parametrize("recommender_cls", ALL_RECOMMENDERS)
@pytest.mark.parametrize("run_id", range(5))
def test_recommendation_contract(recommender_cls, clustered_dataset, run_id):
    folds = CrossValidationFactory(clustered_dataset, 5, randomize=False).get_datasets(run_id)
    recommendations = recommender_cls(3).fit(folds.train).recommend(folds.test_visible)

    assert set(recommendations) == set(folds.test_visible.users)
    for user, songs in recommendations.items():
        assert len(songs) <= 3
        assert len(set(songs)) == len(songs)
        assert not set(songs) & set(folds.test_visible.songs_for(user))
        assert set(songs) <= set(folds.train.songs)


@pytest.mark.parametrize("recommender_cls", ALL_RECOMMENDERS)
def test_refit_replaces_model(recommender_cls, clustered_dataset):
    factory = CrossValidationFactory(clustered_dataset, 5, randomize=False)
    algo = recommender_cls(3)
    first = factory.get_datasets(0)
    algo.fit(first.train).recommend(first.test_visible)
    second = factory.get_datasets(4)
    recommendations = algo.fit(second.train).recommend(second.test_visible)
    assert set(recommendations) == {"u08", "u09"}


# ---------------- Top-N popular ----------------
def test_popular_ranking_and_tie_break():
    train = DataSet.from_records([
        ("u1", "b", 4), ("u1", "a", 1),
        ("u2", "a", 3), ("u2", "c", 2),
        ("u3", "d", 1),
    ])
    algo = TopNPopularSongs(3).fit(train)
    # a=4, b=4, c=2, d=1
    assert algo.ranking_["song_id"].tolist() == ["a", "b", "c", "d"]
    assert algo.top_k_global(2)["song_id"].tolist() == ["a", "b"]
    assert algo.top_k_global(2).index.tolist() == [1, 2]

    visible = DataSet.from_records([("t1", "a", 1), ("t2", "z", 1)])
    assert algo.recommend(visible) == {"t1": ["b", "c", "d"], "t2": ["a", "b", "c"]}


def test_popular_by_listeners():
    train = DataSet.from_records([("u1", "a", 10), ("u1", "b", 1), ("u2", "b", 1)])
    algo = TopNPopularSongs(2, popularity="listeners").fit(train)
    assert algo.ranking_["song_id"].tolist() == ["b", "a"]


def test_popular_respects_global_order(fold):
    algo = TopNPopularSongs(3).fit(fold.train)
    ranking = algo.ranking_["song_id"].tolist()
    for user, songs in algo.recommend(fold.test_visible).items():
        allowed = [song for song in ranking if song not in fold.test_visible.songs_for(user)]
        assert songs == allowed[:3]


# ---------------- Similarity ----------------
def _index_maps(dataset):
    return ({u: i for i, u in enumerate(dataset.users)}, {s: i for i, s in enumerate(dataset.songs)})


def _dense(table, n_rows, n_cols):
    dense = np.zeros((n_rows, n_cols))
    for row in range(n_rows):
        for col, score in table.neighbours(row):
            dense[row, col] = score
    return dense


@pytest.mark.parametrize("dataset_name", ["clustered_dataset", "small_dataset"])
def test_user_based_similarity_symmetric(dataset_name, request):
    dataset = request.getfixturevalue(dataset_name)
    n = len(dataset.users)

    matrix = dataset.user_item_matrix(*_index_maps(dataset))
    table = _dense(cosine_similarity_topk(matrix, k=n - 1), n, n)
    np.testing.assert_allclose(table, table.T)

    # the same users queried against themselves at recommend time
    algo = UserBasedCF(3, top_k_neighbors=n).fit(dataset)
    queried = _dense(algo.neighbours(dataset), n, n)
    np.testing.assert_allclose(queried, queried.T)
    np.testing.assert_allclose(queried - np.diag(np.diag(queried)), table)


@pytest.mark.parametrize("dataset_name", ["clustered_dataset", "small_dataset"])
def test_item_based_similarity_symmetric(dataset_name, request):
    dataset = request.getfixturevalue(dataset_name)
    n = len(dataset.songs)
    algo = ItemBasedCF(3, top_k_neighbors=n).fit(dataset)
    table = _dense(algo.item_sim, n, n)
    np.testing.assert_allclose(table, table.T)
    assert np.diag(table).sum() == 0.0


def test_zero_overlap_similarity_is_zero(clustered_dataset):
    algo = UserBasedCF(3, top_k_neighbors=10).fit(clustered_dataset)
    neighbours = dict(algo.neighbours(clustered_dataset).neighbours(0))
    user_map = algo.model_.user_map
    assert user_map["u09"] not in neighbours
    assert neighbours[user_map["u01"]] > 0


def test_empty_rows_do_not_divide_by_zero():
    matrix = np.array([[1.0, 0.0], [0.0, 0.0], [2.0, 0.0]])
    table = cosine_similarity_topk(matrix, k=2)
    assert not np.isnan(table.scores).any()
    assert table.neighbours(1) == []
    assert [index for index, _ in table.neighbours(0)] == [2]
    assert table.neighbours(0)[0][1] == pytest.approx(1.0)


def test_topk_table_pruned_and_ordered():
    matrix = np.array([
        [1.0, 1.0, 0.0],
        [1.0, 0.9, 0.0],
        [1.0, 0.0, 0.0],
        [0.0, 0.0, 1.0],
    ])
    table = cosine_similarity_topk(matrix, k=2, block_size=2)
    assert table.indices.shape == (4, 2)
    assert table.indices[0].tolist() == [1, 2]
    assert table.scores[0, 0] >= table.scores[0, 1] > 0
    assert table.neighbours(3) == []
    assert 0 not in table.indices[0]


def test_topk_table_parallel_matches_serial(clustered_dataset):
    users, songs = clustered_dataset.users, clustered_dataset.songs
    matrix = clustered_dataset.user_item_matrix({u: i for i, u in enumerate(users)},
                                                {s: i for i, s in enumerate(songs)})
    serial = cosine_similarity_topk(matrix, k=3, n_jobs=1, block_size=3)
    parallel = cosine_similarity_topk(matrix, k=3, n_jobs=2, block_size=3)
    np.testing.assert_array_equal(serial.indices, parallel.indices)
    np.testing.assert_allclose(serial.scores, parallel.scores)


# ---------------- User-based CF ----------------
def test_user_based_uses_same_cluster(fold):
    algo = UserBasedCF(3).fit(fold.train)
    recommendations = algo.recommend(fold.test_visible)
    for user, songs in recommendations.items():
        assert set(songs) <= set(fold.test_hidden.songs_for(user))
        assert len(songs) == 3
    assert algo.fallback_users_ == []


def test_user_based_cold_user_falls_back_to_popular():
    train = DataSet.from_records([("u1", "a", 5), ("u1", "b", 1), ("u2", "a", 2), ("u2", "c", 1)])
    visible = DataSet.from_records([("cold", "zzz", 3), ("warm", "b", 1)])
    algo = UserBasedCF(2).fit(train)
    recommendations = algo.recommend(visible)

    popular = TopNPopularSongs(2).fit(train)
    assert recommendations["cold"] == popular.recommend_for_user(["zzz"])
    assert algo.fallback_users_ == ["cold"]
    assert recommendations["warm"][0] == "a"


def test_user_based_similarity_threshold():
    train = DataSet.from_records([
        ("close", "a", 1), ("close", "b", 1), ("close", "x", 1),
        ("far", "a", 1), ("far", "q", 1), ("far", "r", 1), ("far", "s", 1),
    ])
    visible = DataSet.from_records([("t", "a", 1), ("t", "b", 1)])
    algo = UserBasedCF(5, min_similarity=0.5).fit(train)
    table = algo.neighbours(visible)
    assert [algo.model_.user_ids[i] for i, _ in table.neighbours(0)] == ["close"]
    assert algo.recommend(visible)["t"] == ["x"]


# ---------------- Item-based CF ----------------
def test_item_based_uses_co_listened_songs(fold):
    algo = ItemBasedCF(3).fit(fold.train)
    for user, songs in algo.recommend(fold.test_visible).items():
        assert set(songs) <= set(fold.test_hidden.songs_for(user))


def test_item_based_similar_songs_pruned(fold):
    algo = ItemBasedCF(3, top_k_neighbors=4).fit(fold.train)
    similar = algo.similar_songs("s00")
    assert len(similar) == 4
    assert all(song < "s10" for song, _ in similar)
    assert similar == sorted(similar, key=lambda item: (-item[1], item[0]))
    assert algo.similar_songs("unknown") == []


def test_item_based_cold_user_falls_back_to_popular():
    train = DataSet.from_records([("u1", "a", 5), ("u1", "b", 1), ("u2", "c", 2)])
    visible = DataSet.from_records([("cold", "zzz", 3)])
    algo = ItemBasedCF(2).fit(train)
    assert algo.recommend(visible) == {"cold": ["a", "c"]}
    assert algo.fallback_users_ == ["cold"]


# ---------------- KNN ----------------
def test_knn_votes_among_exactly_k_neighbours():
    train = DataSet.from_records([
        ("n1", "a", 1), ("n1", "x", 1),
        ("n2", "a", 1), ("n2", "x", 1),
        ("n3", "a", 1), ("n3", "b", 1), ("n3", "y", 1),
        ("n4", "b", 1), ("n4", "y", 1), ("n4", "z", 1),
    ])
    visible = DataSet.from_records([("t", "a", 1)])

    algo = KNNRecommender(2, k_neighbors=2).fit(train)
    D, I = algo.search(visible)
    assert sorted(algo.model_.user_ids[i] for i in I[0] if i >= 0) == ["n1", "n2"]
    assert algo.recommend(visible) == {"t": ["x"]}

    wider = KNNRecommender(2, k_neighbors=3).fit(train)
    assert wider.recommend(visible) == {"t": ["x", "b"]}


def test_knn_cold_user_falls_back_to_popular():
    train = DataSet.from_records([("u1", "a", 5), ("u2", "b", 1)])
    visible = DataSet.from_records([("cold", "zzz", 3)])
    algo = KNNRecommender(1, k_neighbors=2).fit(train)
    assert algo.recommend(visible) == {"cold": ["a"]}
    assert algo.fallback_users_ == ["cold"]


def _ring_listens(n_users, n_songs):
    return DataSet.from_records([
        (f"u{u:02d}", f"s{(3 * u + j) % n_songs:03d}", 1 + j) for u in range(n_users) for j in range(6)
    ])


def test_knn_index_dimension_bounded_by_components():
    dims = []
    for n_songs in (40, 80):
        train = _ring_listens(30, n_songs)
        algo = KNNRecommender(3, k_neighbors=5, n_components=8).fit(train)
        assert algo.svd_ is not None
        assert algo.index_.ntotal == 30
        dims.append(algo.index_.d)
    assert dims == [8, 8]

    visible = DataSet.from_records([("t", "s000", 2), ("t", "s001", 1)])
    recommendations = algo.recommend(visible)
    assert len(recommendations["t"]) == 3
    assert not {"s000", "s001"} & set(recommendations["t"])


def test_knn_small_catalogue_searched_exactly():
    algo = KNNRecommender(3, k_neighbors=5, n_components=8).fit(_ring_listens(10, 8))
    assert algo.svd_ is None
    assert algo.index_.d == 8


# ---------------- Naive Bayes ----------------
def test_naive_bayes_posterior():
    train = DataSet.from_records([
        ("u1", "a", 1), ("u1", "b", 1),
        ("u2", "a", 1), ("u2", "b", 1),
        ("u3", "c", 1),
    ])
    algo = NaiveBayesRecommender(1, alpha=1.0).fit(train)
    scores = dict(zip(algo.model_.song_ids, algo.posterior(["a"])))

    # P(b) = 3/5, P(a|b) = 3/4 ; P(c) = 2/5, P(a|c) = 1/3
    assert scores["b"] == pytest.approx(np.log(3 / 5) + np.log(3 / 4))
    assert scores["c"] == pytest.approx(np.log(2 / 5) + np.log(1 / 3))
    assert np.isfinite(list(scores.values())).all()

    visible = DataSet.from_records([("t", "a", 1)])
    assert algo.recommend(visible) == {"t": ["b"]}


def test_naive_bayes_unknown_features_use_prior():
    train = DataSet.from_records([("u1", "a", 1), ("u2", "a", 1), ("u3", "b", 1)])
    algo = NaiveBayesRecommender(2).fit(train)
    np.testing.assert_allclose(algo.posterior(["zzz"]), algo.log_prior_)
    visible = DataSet.from_records([("t", "zzz", 1)])
    assert algo.recommend(visible) == {"t": ["a", "b"]}


def test_naive_bayes_rejects_bad_alpha():
    with pytest.raises(ValueError):
        NaiveBayesRecommender(3, alpha=0)


def test_naive_bayes_cooccurrence_pruned_per_song():
    train = DataSet.from_records([
        ("u1", "a", 1), ("u1", "b", 1), ("u1", "c", 1), ("u1", "d", 1),
        ("u2", "a", 1), ("u2", "b", 1), ("u2", "c", 1),
        ("u3", "a", 1), ("u3", "b", 1),
    ])
    algo = NaiveBayesRecommender(1, top_k_cooccurrence=2).fit(train)
    song_map = algo.model_.song_map
    kept = algo.log_boost_[song_map["a"]].indices
    assert sorted(kept.tolist()) == [song_map["b"], song_map["c"]]

    # co(a, d) = 1 was dropped, so d is scored as never co-listened with a
    scores = dict(zip(algo.model_.song_ids, algo.posterior(["a"])))
    assert scores["d"] == pytest.approx(np.log(2 / 5) + np.log(1 / 3))
    assert scores["b"] == pytest.approx(np.log(4 / 5) + np.log(4 / 5))


def test_naive_bayes_rejects_bad_cooccurrence_k():
    with pytest.raises(ValueError):
        NaiveBayesRecommender(3, top_k_cooccurrence=0)
