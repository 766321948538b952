"""Unit tests for calibration and the operator cache."""

import logging

import numpy as np
import pytest

from aoloop.control import Reconstructor
from aoloop.plant import (
    Calibration,
    OpticalModel,
    OpticalModelConfig,
    calibrate,
    condition_number,
    load_or_calibrate,
)
from aoloop.plant.calibration import cache_path


@pytest.fixture
def optics(small_optics_config):
    return OpticalModel(small_optics_config)


class TestConditionNumber:
    """Tests for condition_number."""

    def test_identity(self):
        assert condition_number(np.eye(4)) == pytest.approx(1.0)

    def test_scaled_axes(self):
        assert condition_number(np.diag([10.0, 2.0])) == pytest.approx(5.0)

    def test_singular(self):
        assert condition_number(np.array([[1.0, 0.0], [0.0, 0.0]])) == float("inf")


class TestCalibrate:
    """Tests for calibrate()."""

    def test_shapes(self, optics):
        calibration = calibrate(optics)
        (poke,) = calibration.poke_matrices
        (operator,) = calibration.operators
        assert poke.shape == (optics.n_measurements, 21)
        assert operator.shape == (21, optics.n_measurements)
        assert calibration.signature == optics.signature
        assert 1.0 <= calibration.condition_numbers[0] < np.inf

    def test_operator_inverts_poke_matrix(self, optics):
        calibration = calibrate(optics)
        product = calibration.operators[0] @ calibration.poke_matrices[0]
        np.testing.assert_allclose(product, -np.eye(21), atol=1e-9)

    def test_reconstructs_negative_command(self, optics, rng):
        calibration = calibrate(optics)
        recon = Reconstructor(calibration.operators, n_segments=7)

        command = 1e-6 * rng.standard_normal(optics.n_command)
        command[::4] = 0.0  # Piston is not calibrated
        estimate = recon.reconstruct(optics.sense(command))
        np.testing.assert_allclose(estimate, -command, atol=1e-13)

    def test_several_guide_stars(self, rng):
        config = OpticalModelConfig(
            n_modes=4, n_lenslet=16, n_px_lenslet=4,
            lenslet_size=25.5 / 16, guide_star_count=2,
        )
        optics = OpticalModel(config)
        calibration = calibrate(optics)
        assert len(calibration.operators) == 2

        recon = Reconstructor(calibration.operators, n_segments=7)
        assert recon.n_measurements == optics.n_measurements

        command = 1e-6 * rng.standard_normal(optics.n_command)
        command[::4] = 0.0
        np.testing.assert_allclose(
            recon.reconstruct(optics.sense(command)), -command, atol=1e-13
        )

    def test_stroke_must_be_positive(self, optics):
        with pytest.raises(ValueError):
            calibrate(optics, stroke=0.0)

    def test_condition_number_logged(self, optics, caplog):
        with caplog.at_level(logging.INFO, logger="aoloop"):
            calibrate(optics)
        assert "condition number" in caplog.text


class TestCache:
    """Tests for Calibration.save/load and load_or_calibrate()."""

    def test_save_and_load(self, optics, tmp_path):
        calibration = calibrate(optics)
        path = tmp_path / "calibration.npz"
        calibration.save(path)

        loaded = Calibration.load(path)
        assert loaded.signature == calibration.signature
        assert loaded.stroke == calibration.stroke
        assert loaded.condition_numbers == pytest.approx(calibration.condition_numbers)
        np.testing.assert_array_equal(loaded.operators[0], calibration.operators[0])
        np.testing.assert_array_equal(loaded.poke_matrices[0], calibration.poke_matrices[0])

    def test_no_cache_dir(self, optics, tmp_path):
        load_or_calibrate(optics)
        assert list(tmp_path.iterdir()) == []

    def test_read_through(self, optics, tmp_path, caplog):
        cache_dir = tmp_path / "cache"
        first = load_or_calibrate(optics, cache_dir=cache_dir)
        assert cache_path(optics, cache_dir).exists()

        with caplog.at_level(logging.INFO, logger="aoloop"):
            second = load_or_calibrate(optics, cache_dir=cache_dir)
        assert "loaded calibration from" in caplog.text
        np.testing.assert_array_equal(second.operators[0], first.operators[0])

    def test_stale_entry_is_recomputed(self, optics, tmp_path, caplog):
        stale = calibrate(optics)
        stale.signature = "something-else"
        stale.save(cache_path(optics, tmp_path))

        with caplog.at_level(logging.WARNING, logger="aoloop"):
            calibration = load_or_calibrate(optics, cache_dir=tmp_path)
        assert "stale calibration" in caplog.text
        assert calibration.signature == optics.signature
        assert Calibration.load(cache_path(optics, tmp_path)).signature == optics.signature
