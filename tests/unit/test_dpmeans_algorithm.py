"""
Unit tests for DP-Means clustering algorithm.

Tests the DPMeansAlgorithm class including:
- Cluster discovery on well-separated data
- min_clusters / max_clusters bounds
- Effect of lambda on the cluster count
- Parameter validation
"""

import pytest
import numpy as np
from sklearn.metrics import adjusted_rand_score

from colclust.core.dpmeans_algorithm import DPMeansAlgorithm
from colclust.core.base_clustering import ClusteringConfig
from colclust.utils.error_handling import ConfigurationError, InsufficientDataError


def make_dpmeans(random_state=0, rng=None, **params):
    config = ClusteringConfig(
        algorithm_name="dpmeans",
        params=params,
        random_state=random_state,
    )
    return DPMeansAlgorithm(config, rng=rng)


@pytest.mark.unit
class TestDPMeansAlgorithm:
    """Test suite for DP-Means clustering algorithm."""

    def test_init(self):
        """Parameters are read from the config, alias included."""
        clusterer = make_dpmeans(**{"lambda": 2.5, "min_clusters": 2, "max_clusters": 7})

        assert clusterer.lambda_ == 2.5
        assert clusterer.min_clusters == 2
        assert clusterer.max_clusters == 7
        assert clusterer.get_params() == {"lambda": 2.5, "min_clusters": 2, "max_clusters": 7}

    def test_init_by_field_name(self):
        clusterer = make_dpmeans(lambda_=3.0)
        assert clusterer.lambda_ == 3.0
        assert clusterer.max_clusters is None

    @pytest.mark.parametrize(
        "params",
        [
            {"lambda": 0.0},
            {"lambda": -1.0},
            {"lambda": 1.0, "min_clusters": 0},
            {"lambda": 1.0, "min_clusters": 3, "max_clusters": 2},
            {},
        ],
    )
    def test_invalid_params(self, params):
        with pytest.raises(ConfigurationError):
            make_dpmeans(**params)

    def test_discovers_separated_clusters(self, clustered_vectors):
        """Blobs farther apart than sqrt(lambda) each get their own cluster."""
        vectors, true_labels = clustered_vectors

        clusterer = make_dpmeans(**{"lambda": 25.0})
        result = clusterer.fit(vectors)

        assert result.n_clusters == 3
        assert clusterer.centroids.shape == (5, 3)
        assert adjusted_rand_score(true_labels, result.labels) == pytest.approx(1.0)
        assert result.converged

    def test_labels_cover_all_clusters(self, sample_vectors):
        """Every reported cluster holds at least one point."""
        clusterer = make_dpmeans(**{"lambda": 4.0})
        result = clusterer.fit(sample_vectors)

        assert result.labels.min() >= 0
        assert result.labels.max() < result.n_clusters
        assert np.all(np.bincount(result.labels, minlength=result.n_clusters) > 0)

    def test_large_lambda_single_cluster(self, clustered_vectors):
        """A threshold wider than the data leaves one cluster at the mean."""
        vectors, _ = clustered_vectors

        clusterer = make_dpmeans(**{"lambda": 1000.0})
        result = clusterer.fit(vectors)

        assert result.n_clusters == 1
        np.testing.assert_allclose(clusterer.centroids[:, 0], vectors.mean(axis=1))

    def test_smaller_lambda_more_clusters(self, clustered_vectors):
        vectors, _ = clustered_vectors

        coarse = make_dpmeans(**{"lambda": 1000.0}).fit(vectors)
        medium = make_dpmeans(**{"lambda": 25.0}).fit(vectors)
        fine = make_dpmeans(**{"lambda": 0.01}).fit(vectors)

        assert coarse.n_clusters <= medium.n_clusters <= fine.n_clusters

    def test_max_clusters_caps_count(self, clustered_vectors):
        vectors, _ = clustered_vectors

        clusterer = make_dpmeans(**{"lambda": 0.01, "max_clusters": 2})
        result = clusterer.fit(vectors)

        assert result.n_clusters == 2

    def test_min_clusters_forces_splits(self, clustered_vectors):
        vectors, _ = clustered_vectors

        clusterer = make_dpmeans(**{"lambda": 25.0, "min_clusters": 4})
        result = clusterer.fit(vectors)

        assert result.n_clusters >= 4
        assert np.all(np.bincount(result.labels, minlength=result.n_clusters) > 0)

    def test_duplicate_points_split_to_min_clusters(self):
        """An emptied cluster is replaced by splitting a populated one."""
        vectors = np.array([[1.0, 1.0]])

        clusterer = make_dpmeans(**{"lambda": 1.0, "min_clusters": 2})
        result = clusterer.fit(vectors)

        assert result.n_clusters == 2
        assert sorted(result.labels.tolist()) == [0, 1]

    def test_forced_split_takes_farthest_point_of_multi_member_cluster(self):
        """The split point is the outermost member of a cluster with more than one point."""
        X = np.array([[0.0, 1.0, 10.0, 11.0, 18.0, 100.0]])
        labels = np.array([0, 0, 1, 1, 1, 2])
        # Slot 2 is a singleton whose stale centroid puts its point farthest of all
        centroids = np.array([[0.5, 13.0, 90.0, 0.0]])

        clusterer = make_dpmeans(**{"lambda": 1000.0, "min_clusters": 4})
        k = clusterer._force_splits(X, centroids, labels, 3, None)

        assert k == 4
        np.testing.assert_array_equal(labels, [0, 0, 1, 1, 3, 2])
        np.testing.assert_allclose(centroids, [[0.5, 10.5, 100.0, 18.0]])

    def test_forced_split_during_fit(self, fixed_choice_rng):
        """Duplicate seeds collapse to one cluster; the outermost point is split off."""
        X = np.array([[0.0, 0.0, 1.0, 4.0]])

        clusterer = make_dpmeans(
            rng=fixed_choice_rng([0, 1]), **{"lambda": 1000.0, "min_clusters": 2}
        )
        result = clusterer.fit(X)

        np.testing.assert_array_equal(result.labels, [0, 0, 0, 1])
        np.testing.assert_allclose(clusterer.centroids, [[1.0 / 3.0, 4.0]])
        assert result.converged

    def test_min_clusters_equals_n(self, four_points):
        clusterer = make_dpmeans(**{"lambda": 1000.0, "min_clusters": 4})
        result = clusterer.fit(four_points)

        assert sorted(result.labels.tolist()) == [0, 1, 2, 3]

    def test_insufficient_data(self, four_points):
        clusterer = make_dpmeans(**{"lambda": 1.0, "min_clusters": 5})
        with pytest.raises(InsufficientDataError):
            clusterer.fit(four_points)

    def test_at_least_one_pass(self, clustered_vectors):
        """max_iter=0 still runs a full assignment pass."""
        vectors, _ = clustered_vectors

        clusterer = make_dpmeans(**{"lambda": 25.0})
        result = clusterer.fit(vectors, max_iter=0)

        assert result.n_iter == 1
        assert result.n_clusters == 3

    def test_same_seed_same_result(self, sample_vectors):
        first = make_dpmeans(random_state=9, **{"lambda": 4.0}).fit(sample_vectors)
        second = make_dpmeans(random_state=9, **{"lambda": 4.0}).fit(sample_vectors)

        np.testing.assert_array_equal(first.labels, second.labels)
        np.testing.assert_allclose(first.centroids, second.centroids)
