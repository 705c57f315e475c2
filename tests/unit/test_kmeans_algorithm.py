"""
Unit tests for K-Means clustering algorithm.

Tests the KMeansAlgorithm class including:
- Basic clustering functionality
- Convergence and the iteration cap
- Centroid calculation
- Sparse input
- Quality metrics
- Queries on a fitted model
"""

import pytest
import numpy as np
import scipy.sparse as sp
from sklearn.metrics import adjusted_rand_score

from colclust.core.kmeans_algorithm import KMeansAlgorithm
from colclust.core.base_clustering import ClusteringConfig
from colclust.utils.error_handling import (
    ConfigurationError,
    InsufficientDataError,
    InvalidInputError,
    NotFittedError,
)


def make_kmeans(k, rng=None, random_state=0, **config_kwargs):
    config = ClusteringConfig(
        algorithm_name="kmeans",
        params={"n_clusters": k},
        random_state=random_state,
        **config_kwargs,
    )
    return KMeansAlgorithm(config, rng=rng)


@pytest.mark.unit
class TestKMeansAlgorithm:
    """Test suite for K-Means clustering algorithm."""

    def test_init(self):
        """Test K-Means algorithm initialization."""
        config = ClusteringConfig(
            algorithm_name="kmeans",
            params={"n_clusters": 10}
        )

        clusterer = KMeansAlgorithm(config)
        assert clusterer.config == config
        assert clusterer.k == 10
        assert clusterer.distance.name == "euclidean"
        assert clusterer.centroids is None
        assert clusterer.n_clusters == 0

    def test_invalid_params(self):
        """Unknown or out-of-range parameters are rejected at construction."""
        with pytest.raises(ConfigurationError):
            make_kmeans(0)

        with pytest.raises(ConfigurationError):
            KMeansAlgorithm(ClusteringConfig(algorithm_name="kmeans", params={"k": 3}))

    def test_four_point_scenario(self, four_points, fixed_choice_rng):
        """Seeds at points 0 and 2 split the left and right pairs."""
        clusterer = make_kmeans(2, rng=fixed_choice_rng([0, 2]))
        result = clusterer.fit(four_points)

        np.testing.assert_array_equal(result.labels, [0, 0, 1, 1])
        np.testing.assert_allclose(clusterer.centroids, [[0.0, 10.0], [0.5, 0.5]])
        assert result.converged
        assert result.n_iter == 1
        assert result.inertia == pytest.approx(1.0)
        assert result.inertia_history == pytest.approx([2.0, 1.0])

    def test_cluster_basic(self, clustered_vectors, fixed_choice_rng):
        """Test basic clustering on vectors with clear structure."""
        vectors, true_labels = clustered_vectors

        clusterer = make_kmeans(3, rng=fixed_choice_rng([0, 30, 60]))
        result = clusterer.fit(vectors)

        assert result.n_clusters == 3
        assert len(result.labels) == vectors.shape[1]
        assert set(result.labels) <= {0, 1, 2}
        assert adjusted_rand_score(true_labels, result.labels) == pytest.approx(1.0)
        assert result.converged

    def test_centroids_are_cluster_means(self, clustered_vectors):
        """Every centroid is the mean of the points assigned to it."""
        vectors, _ = clustered_vectors

        clusterer = make_kmeans(3, random_state=7)
        result = clusterer.fit(vectors)

        assert clusterer.centroids.shape == (5, 3)
        for cluster in range(3):
            members = vectors[:, result.labels == cluster]
            if members.shape[1]:
                np.testing.assert_allclose(clusterer.get_centroid(cluster), members.mean(axis=1))

    def test_inertia_non_increasing(self, sample_vectors):
        """Lloyd iterations never increase the objective."""
        clusterer = make_kmeans(6, random_state=3)
        result = clusterer.fit(sample_vectors)

        history = np.asarray(result.inertia_history)
        assert len(history) == result.n_iter + 1
        assert np.all(np.diff(history) <= 1e-9)

    def test_max_iter_zero(self, sample_vectors):
        """With no iterations allowed, the initial centroids are returned."""
        clusterer = make_kmeans(4, random_state=1)
        result = clusterer.fit(sample_vectors, max_iter=0)

        assert result.n_iter == 0
        assert not result.converged
        # Initial centroids are input columns
        for cluster in range(4):
            centroid = clusterer.centroids[:, [cluster]]
            assert np.any(np.all(np.isclose(sample_vectors, centroid), axis=0))

    def test_empty_cluster_keeps_centroid(self, fixed_choice_rng):
        """A cluster that receives no points keeps its previous centroid."""
        X = np.array([[0.0, 0.0, 5.0]])

        # Duplicate seeds: every tie goes to cluster 0, leaving cluster 1 empty
        one_step = make_kmeans(2, rng=fixed_choice_rng([0, 1])).fit(X, max_iter=1)
        np.testing.assert_allclose(one_step.centroids, [[5.0 / 3.0, 0.0]])

        clusterer = make_kmeans(2, rng=fixed_choice_rng([0, 1]))
        result = clusterer.fit(X)

        np.testing.assert_array_equal(result.labels, [1, 1, 0])
        np.testing.assert_allclose(clusterer.centroids, [[5.0, 0.0]])
        assert result.converged
        assert result.n_iter == 2

    def test_failed_refit_keeps_previous_model(self, four_points, fixed_choice_rng):
        """A fit that raises part-way leaves the earlier centroids untouched."""
        from colclust.utils.notify import CallbackNotifier

        clusterer = make_kmeans(2, rng=fixed_choice_rng([0, 2]))
        clusterer.fit(four_points)
        before = clusterer.centroids.copy()

        def interrupt(message):
            raise RuntimeError("interrupted")

        # The first progress message comes after one centroid update on 3-D data
        clusterer.rng = fixed_choice_rng([0, 1])
        with pytest.raises(RuntimeError, match="interrupted"):
            clusterer.fit(np.arange(12.0).reshape(3, 4), notifier=CallbackNotifier(interrupt))

        np.testing.assert_array_equal(clusterer.centroids, before)
        assert clusterer.dim == 2

    def test_same_seed_same_result(self, sample_vectors):
        """Fits with the same seed are reproducible."""
        first = make_kmeans(5, random_state=11).fit(sample_vectors)
        second = make_kmeans(5, random_state=11).fit(sample_vectors)

        np.testing.assert_array_equal(first.labels, second.labels)
        np.testing.assert_allclose(first.centroids, second.centroids)

    def test_k_greater_than_n(self, four_points):
        """Asking for more clusters than points fails before fitting."""
        clusterer = make_kmeans(5)
        with pytest.raises(InsufficientDataError):
            clusterer.fit(four_points)

    def test_k_equals_n(self, four_points):
        """Every point becomes its own cluster."""
        clusterer = make_kmeans(4)
        result = clusterer.fit(four_points)

        assert sorted(result.labels.tolist()) == [0, 1, 2, 3]
        assert result.inertia == pytest.approx(0.0)

    def test_empty_input(self):
        """Matrices without features or instances are rejected."""
        clusterer = make_kmeans(2)

        with pytest.raises(InvalidInputError, match="instances"):
            clusterer.fit(np.empty((3, 0)))

        with pytest.raises(InvalidInputError, match="features"):
            clusterer.fit(np.empty((0, 3)))

    def test_sparse_matches_dense(self, clustered_vectors):
        """Sparse input follows the same trajectory as dense input."""
        vectors, _ = clustered_vectors

        dense = make_kmeans(3, random_state=5).fit(vectors)
        sparse = make_kmeans(3, random_state=5).fit(sp.csc_matrix(vectors))

        np.testing.assert_array_equal(dense.labels, sparse.labels)
        np.testing.assert_allclose(dense.centroids, sparse.centroids, atol=1e-10)

    def test_quality_metrics(self, clustered_vectors, fixed_choice_rng):
        """Test quality metrics calculation."""
        vectors, _ = clustered_vectors

        clusterer = make_kmeans(3, rng=fixed_choice_rng([0, 30, 60]))
        result = clusterer.fit(vectors)

        assert result.quality_metrics["silhouette_score"] > 0.5
        assert result.quality_metrics["davies_bouldin_index"] > 0.0
        assert result.quality_metrics["iterations"] == result.n_iter

    def test_quality_metrics_disabled(self, four_points, fixed_choice_rng):
        """Only inertia and iterations are reported when metrics are off."""
        clusterer = make_kmeans(
            2, rng=fixed_choice_rng([0, 2]), compute_quality_metrics=False
        )
        result = clusterer.fit(four_points)

        assert set(result.quality_metrics) == {"inertia", "iterations"}

    def test_result_to_dict(self, four_points, fixed_choice_rng):
        """Result summary carries sizes and totals."""
        result = make_kmeans(2, rng=fixed_choice_rng([0, 2])).fit(four_points)
        summary = result.to_dict()

        assert summary["n_clusters"] == 2
        assert summary["cluster_sizes"] == [2, 2]
        assert summary["total_items"] == 4
        assert set(result.cluster_centroids) == {0, 1}

    def test_notifier_receives_progress(self, four_points, fixed_choice_rng):
        """Fit reports its iterations and the final state."""
        from colclust.utils.notify import CallbackNotifier

        messages = []
        clusterer = make_kmeans(2, rng=fixed_choice_rng([0, 2]))
        clusterer.fit(four_points, notifier=CallbackNotifier(messages.append))

        assert any("iteration 1" in message for message in messages)
        assert "converged=True" in messages[-1]


@pytest.mark.unit
class TestFittedModelQueries:
    """Queries shared by all partitional models."""

    @pytest.fixture
    def fitted(self, four_points, fixed_choice_rng):
        clusterer = make_kmeans(2, rng=fixed_choice_rng([0, 2]))
        clusterer.fit(four_points)
        return clusterer

    def test_assign(self, fitted):
        labels = fitted.assign(np.array([[1.0, 9.0], [0.0, 0.0]]))
        np.testing.assert_array_equal(labels, [0, 1])

    def test_assign_tie_goes_to_lowest_index(self, fitted):
        labels = fitted.assign(np.array([[5.0], [0.5]]))
        assert labels[0] == 0

    def test_distance_to_cluster(self, fitted):
        assert fitted.distance_to_cluster(1, [10.0, 0.5]) == pytest.approx(0.0)
        assert fitted.distance_to_cluster(0, [3.0, 4.5]) == pytest.approx(5.0)

    def test_distance_to_all_clusters(self, fitted):
        distances = fitted.distance_to_all_clusters([0.0, 0.5])
        np.testing.assert_allclose(distances, [0.0, 10.0])

    def test_pairwise_distance_to_centroids(self, fitted, four_points):
        distances = fitted.pairwise_distance_to_centroids(four_points)

        assert distances.shape == (2, 4)
        np.testing.assert_allclose(distances[0, :2], [0.5, 0.5])
        np.testing.assert_allclose(distances[1, 2:], [0.5, 0.5])

    def test_dimension_mismatch(self, fitted):
        with pytest.raises(InvalidInputError):
            fitted.assign(np.zeros((3, 2)))

    def test_cluster_index_out_of_range(self, fitted):
        with pytest.raises(InvalidInputError):
            fitted.get_centroid(2)

    def test_unfitted_queries(self):
        clusterer = make_kmeans(2)

        with pytest.raises(NotFittedError):
            clusterer.assign(np.zeros((2, 2)))

        with pytest.raises(NotFittedError):
            clusterer.distance_to_all_clusters([0.0, 0.0])

    def test_get_params_and_repr(self, fitted):
        assert fitted.get_params() == {"n_clusters": 2}
        assert "KMeansAlgorithm" in repr(fitted)
