"""Unit tests for the optical model and the atmosphere."""

import numpy as np
import pytest

from aoloop.core import Payload
from aoloop.plant import (
    Atmosphere,
    AtmosphereConfig,
    OpticalModel,
    OpticalModelConfig,
    mode_exponents,
    segment_centers,
)
from aoloop.plant.optical_model import SEGMENT_SPACING
from aoloop.signals import (
    DETECTOR_FRAME,
    M2_MODES,
    SEGMENT_PISTON,
    SENSOR_DATA,
    TICK,
    WFE_RMS,
)


class TestGeometry:
    """Tests for segment and mode helpers."""

    def test_mode_exponents_by_degree(self):
        expected = [(0, 0), (1, 0), (0, 1), (2, 0), (1, 1), (0, 2)]
        assert [tuple(e) for e in mode_exponents(6)] == expected

    def test_segment_centers(self):
        centers = segment_centers(7)
        assert centers.shape == (7, 2)
        np.testing.assert_array_equal(centers[0], [0.0, 0.0])
        radii = np.hypot(centers[1:, 0], centers[1:, 1])
        np.testing.assert_allclose(radii, SEGMENT_SPACING)


class TestOpticalModelConfig:
    """Tests for OpticalModelConfig validation."""

    def test_defaults(self):
        config = OpticalModelConfig()
        assert config.n_segments == 7
        assert config.sensor_mode == "geometric"
        assert config.flux_threshold == 0.8

    def test_unknown_sensor_mode(self):
        with pytest.raises(ValueError):
            OpticalModelConfig(sensor_mode="pyramid")

    def test_guide_star_count(self):
        with pytest.raises(ValueError):
            OpticalModelConfig(guide_star_count=0)

    def test_too_few_modes(self):
        with pytest.raises(ValueError):
            OpticalModelConfig(n_modes=1)


class TestOpticalModel:
    """Tests for OpticalModel."""

    def test_sizes(self, small_optics_config):
        optics = OpticalModel(small_optics_config)
        assert optics.n_command == 7 * 4
        assert optics.n_measurements == 2 * optics.n_valid
        assert optics.interaction[0].shape == (2 * optics.n_valid, 28)
        assert len(optics.calibrated_modes) == 7 * 3

    def test_every_segment_is_sensed(self, small_optics_config):
        optics = OpticalModel(small_optics_config)
        seen = set(optics.segment_of[optics.valid].tolist())
        assert seen == set(range(7))

    def test_no_valid_lenslet(self):
        config = OpticalModelConfig(n_lenslet=1, lenslet_size=100.0)
        with pytest.raises(ValueError):
            OpticalModel(config)

    def test_ports(self, small_optics_config):
        optics = OpticalModel(small_optics_config)
        assert not optics.inputs[TICK].optional
        assert optics.inputs[M2_MODES].optional
        assert set(optics.outputs) == {WFE_RMS, SEGMENT_PISTON, SENSOR_DATA}

        diffractive = OpticalModelConfig(
            n_modes=4, n_lenslet=16, n_px_lenslet=4,
            lenslet_size=25.5 / 16, sensor_mode="diffractive",
        )
        optics = OpticalModel(diffractive)
        assert optics.outputs[DETECTOR_FRAME].size == 64 * 64

    def test_piston_is_invisible(self, small_optics_config):
        optics = OpticalModel(small_optics_config)
        command = np.zeros(optics.n_command)
        command[::4] = 1e-6  # Piston of every segment
        np.testing.assert_array_equal(optics.sense(command), 0.0)

    def test_sense_is_linear(self, small_optics_config, rng):
        optics = OpticalModel(small_optics_config)
        a = rng.standard_normal(optics.n_command)
        b = rng.standard_normal(optics.n_command)
        np.testing.assert_allclose(
            optics.sense(a + 2 * b), optics.sense(a) + 2 * optics.sense(b), atol=1e-12
        )

    def test_sense_wrong_size(self, small_optics_config):
        optics = OpticalModel(small_optics_config)
        with pytest.raises(ValueError):
            optics.sense(np.zeros(5))

    def test_guide_stars_stack_layout(self):
        config = OpticalModelConfig(
            n_modes=4, n_lenslet=16, n_px_lenslet=4,
            lenslet_size=25.5 / 16, guide_star_count=3,
        )
        optics = OpticalModel(config)
        assert len(optics.interaction) == 3
        assert optics.n_measurements == 6 * optics.n_valid

        command = np.zeros(optics.n_command)
        command[1] = 1e-6  # Tip of the central segment
        s = optics.sense(command)
        n = optics.n_valid
        # x slopes of star 0 come first, its y slopes start after all x slopes
        np.testing.assert_allclose(s[:n], optics.interaction[0][:n] @ command)
        np.testing.assert_allclose(s[3 * n:4 * n], optics.interaction[0][n:] @ command)

    def test_signature_tracks_geometry(self, small_optics_config):
        a = OpticalModel(small_optics_config).signature
        b = OpticalModel(OpticalModelConfig(
            n_modes=4, n_lenslet=16, n_px_lenslet=4,
            lenslet_size=25.5 / 16, guide_star_count=2,
        )).signature
        assert a != b

    def test_step_with_command(self, small_optics_config, rng):
        optics = OpticalModel(small_optics_config)
        command = 1e-7 * rng.standard_normal(optics.n_command)

        optics.tick = 0
        optics.read(TICK, Payload(TICK, 0, 0))
        optics.read(M2_MODES, Payload(M2_MODES, 0, command))
        optics.update()

        expected_wfe = np.sqrt(np.sum(command ** 2) / 7)
        np.testing.assert_allclose(optics.write(WFE_RMS), [expected_wfe])
        np.testing.assert_allclose(optics.write(SEGMENT_PISTON), command[::4])
        np.testing.assert_allclose(optics.write(SENSOR_DATA), optics.sense(command))

    def test_command_is_held(self, small_optics_config):
        optics = OpticalModel(small_optics_config)
        command = np.full(optics.n_command, 1e-7)
        optics.read(TICK, Payload(TICK, 0, 0))
        optics.read(M2_MODES, Payload(M2_MODES, 0, command))
        optics.update()
        optics.end_cycle()

        optics.read(TICK, Payload(TICK, 1, 1))
        optics.update()
        np.testing.assert_allclose(optics.residual, command)

    def test_detector_frame(self):
        config = OpticalModelConfig(
            n_modes=4, n_lenslet=16, n_px_lenslet=4,
            lenslet_size=25.5 / 16, sensor_mode="diffractive",
        )
        optics = OpticalModel(config)
        optics.read(TICK, Payload(TICK, 0, 0))
        optics.update()

        frame = optics.write(DETECTOR_FRAME)
        assert frame.shape == (64, 64)
        assert np.all(frame >= 0)
        np.testing.assert_allclose(frame.sum(), optics.flux[optics.valid].sum())

    def test_noise_only_in_diffractive_mode(self):
        kwargs = dict(n_modes=4, n_lenslet=16, n_px_lenslet=4, lenslet_size=25.5 / 16, noise_rms=1e-3)
        for mode, noisy in [("geometric", False), ("diffractive", True)]:
            optics = OpticalModel(OpticalModelConfig(sensor_mode=mode, **kwargs))
            optics.read(TICK, Payload(TICK, 0, 0))
            optics.update()
            assert np.any(optics.sensor != 0.0) == noisy


class TestAtmosphere:
    """Tests for the AR(1) modal atmosphere."""

    def test_invalid_config(self):
        with pytest.raises(ValueError):
            AtmosphereConfig(tau=0.0)
        with pytest.raises(ValueError):
            AtmosphereConfig(amplitude=-1.0)

    def test_reproducible(self):
        degrees = mode_exponents(4).sum(axis=1)
        a = Atmosphere(AtmosphereConfig(seed=3), degrees, 7)
        b = Atmosphere(AtmosphereConfig(seed=3), degrees, 7)
        for _ in range(5):
            np.testing.assert_array_equal(a.step(), b.step())
        assert a.time == pytest.approx(5 * 5e-3)

    def test_sigma_by_degree(self):
        degrees = mode_exponents(4).sum(axis=1)
        atmosphere = Atmosphere(AtmosphereConfig(amplitude=1.0, piston_fraction=0.1), degrees, 2)
        np.testing.assert_allclose(atmosphere.sigma, [0.1, 1.0, 1.0, 0.5] * 2)
        assert atmosphere.rho == pytest.approx(np.exp(-5e-3 / 0.2))

    def test_turbulence_enters_residual(self, small_optics_config):
        small_optics_config.atmosphere = AtmosphereConfig()
        optics = OpticalModel(small_optics_config)
        optics.read(TICK, Payload(TICK, 0, 0))
        optics.update()
        np.testing.assert_array_equal(optics.residual, optics.atmosphere.state)
        assert optics.wfe_rms() > 0
