"""
Pytest configuration and shared fixtures for colclust tests.

This module provides:
- Column-major test matrices (one instance per column)
- Deterministic random generators
- Settings fixtures and config singleton isolation
"""

import numpy as np
import pytest

from colclust.config.settings_loader import ConfigManager, Settings


# =============================================================================
# Test Data Generators
# =============================================================================

@pytest.fixture
def sample_vectors():
    """Random 5-dimensional matrix with 60 instances (5 x 60)."""
    rng = np.random.default_rng(42)
    return rng.standard_normal((5, 60))


@pytest.fixture
def clustered_vectors():
    """
    Generate vectors with clear cluster structure.

    Creates 3 distinct clusters of 30 points each in 5 dimensions:
    - Cluster 0: centered at the origin
    - Cluster 1: centered at 10 * e0
    - Cluster 2: centered at 10 * e1

    Returns:
        (vectors (5 x 90), true labels)
    """
    rng = np.random.default_rng(42)
    n_per_cluster = 30
    dim = 5

    centers = np.zeros((dim, 3))
    centers[0, 1] = 10.0
    centers[1, 2] = 10.0

    blocks = []
    labels = []
    for cluster in range(3):
        noise = rng.standard_normal((dim, n_per_cluster)) * 0.3
        blocks.append(centers[:, [cluster]] + noise)
        labels.extend([cluster] * n_per_cluster)

    return np.hstack(blocks), np.array(labels)


@pytest.fixture
def four_points():
    """(0,0), (0,1), (10,0), (10,1) as columns."""
    return np.array([
        [0.0, 0.0, 10.0, 10.0],
        [0.0, 1.0, 0.0, 1.0],
    ])


@pytest.fixture
def line_points():
    """One-dimensional points 0, 1, 9, 10."""
    return np.array([[0.0, 1.0, 9.0, 10.0]])


class FixedChoiceRng:
    """Generator stand-in whose choice() returns preset indices."""

    def __init__(self, indices):
        self.indices = np.asarray(indices)

    def choice(self, n, size=None, replace=True):
        return self.indices[:size].copy()


@pytest.fixture
def fixed_choice_rng():
    """Factory for generators with preset initial centroid indices."""
    return FixedChoiceRng


# =============================================================================
# Settings
# =============================================================================

@pytest.fixture
def default_settings():
    """Settings with every value at its default."""
    return Settings()


@pytest.fixture(autouse=True)
def reset_config_manager():
    """Keep cached settings from leaking between tests."""
    ConfigManager._settings = None
    yield
    ConfigManager._settings = None


# =============================================================================
# Pytest Configuration
# =============================================================================

def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "unit: Unit tests for individual components"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests for component interactions"
    )
    config.addinivalue_line(
        "markers", "slow: Tests that take >1 second"
    )
