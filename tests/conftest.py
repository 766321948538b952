"""
Pytest configuration and shared fixtures.
"""

import matplotlib
matplotlib.use("Agg")

import pytest
import numpy as np


@pytest.fixture
def small_optics_config():
    """Optical model with a coarse 16x16 lenslet array and 4 modes per segment."""
    from aoloop.plant import OpticalModelConfig
    return OpticalModelConfig(
        n_modes=4,
        n_lenslet=16,
        n_px_lenslet=4,
        lenslet_size=25.5 / 16,
    )


@pytest.fixture
def small_experiment_config(tmp_path):
    """Closed-loop experiment small enough to run in a unit test."""
    from aoloop.experiments import ExperimentConfig
    return ExperimentConfig(
        mirror_mode_count=4,
        n_lenslet=16,
        n_px_lenslet=4,
        lenslet_size=25.5 / 16,
        n_ticks=100,
        cache_dir=str(tmp_path / "calibrations"),
    )


@pytest.fixture
def rng():
    """Reproducible random number generator."""
    return np.random.default_rng(seed=42)
