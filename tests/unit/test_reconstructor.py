"""Unit tests for the Reconstructor."""

import numpy as np
import pytest

from aoloop.control import Integrator, Reconstructor, split_layout
from aoloop.core import Actor, Identity, Model, Payload, Rate, Timer, TypeMismatchError
from aoloop.signals import MODAL_INCREMENT, SENSOR_DATA, TICK


class Constant(Actor):
    """Sensor publishing a unit measurement every tick."""

    def __init__(self):
        super().__init__("sensor")
        self.add_input(TICK)
        self.add_output(SENSOR_DATA, size=1)

    def update(self):
        pass

    def write(self, tag):
        return np.ones(1)


class TestSplitLayout:
    """Tests for split_layout."""

    def test_single_unit(self):
        (idx,) = split_layout([6])
        np.testing.assert_array_equal(idx, np.arange(6))

    def test_two_units(self):
        first, second = split_layout([4, 6])
        # x halves: [0, 1] and [2, 3, 4]; y halves start at 5
        np.testing.assert_array_equal(first, [0, 1, 5, 6])
        np.testing.assert_array_equal(second, [2, 3, 4, 7, 8, 9])


class TestReconstructor:
    """Tests for Reconstructor."""

    def test_single_operator_is_matrix_product(self):
        M = np.array([[1.0, 2.0], [3.0, 4.0]])
        recon = Reconstructor(M, n_segments=1, pad_segments=False)

        out = recon.reconstruct(np.array([5.0, 6.0]))
        np.testing.assert_allclose(out, [17.0, 39.0], rtol=1e-12)

    def test_matches_matrix_product_for_random_operator(self, rng):
        M = rng.standard_normal((21, 40))
        s = rng.standard_normal(40)
        recon = Reconstructor(M, pad_segments=False)
        np.testing.assert_allclose(recon.reconstruct(s), M @ s, rtol=1e-12)

    def test_segment_padding(self):
        M = np.arange(8.0).reshape(4, 2)
        recon = Reconstructor(M, n_segments=2)
        assert recon.n_modes == 2

        out = recon.reconstruct(np.array([1.0, 1.0]))
        # Per segment: [0, c_1, c_2]
        np.testing.assert_allclose(out, [0.0, 1.0, 5.0, 0.0, 9.0, 13.0])
        assert recon.outputs[MODAL_INCREMENT].size == 6

    def test_sub_units_use_interleaved_slices(self, rng):
        M1 = rng.standard_normal((3, 4))
        M2 = rng.standard_normal((3, 4))
        s = rng.standard_normal(8)
        recon = Reconstructor([M1, M2], n_segments=1, pad_segments=False)

        expected = M1 @ s[[0, 1, 4, 5]] + M2 @ s[[2, 3, 6, 7]]
        np.testing.assert_allclose(recon.estimate(s), expected, rtol=1e-12)
        assert recon.n_subunits == 2
        assert recon.inputs[SENSOR_DATA].size == 8

    def test_publishes_each_increment_once(self):
        recon = Reconstructor(np.eye(2), n_segments=1, pad_segments=False)
        assert recon.write(MODAL_INCREMENT) is None

        recon.read(SENSOR_DATA, Payload(SENSOR_DATA, 0, [1.0, 2.0]))
        recon.update()
        recon.end_cycle()
        np.testing.assert_array_equal(recon.write(MODAL_INCREMENT), [1.0, 2.0])
        assert recon.write(MODAL_INCREMENT) is None

        # No fresh measurement: no new increment
        recon.update()
        assert recon.write(MODAL_INCREMENT) is None

    def test_sums_increments_between_writes(self):
        recon = Reconstructor(np.eye(2), n_segments=1, pad_segments=False)
        for tick, s in enumerate([[1.0, 0.0], [0.0, 2.0], [3.0, 1.0]]):
            recon.read(SENSOR_DATA, Payload(SENSOR_DATA, tick, s))
            recon.update()
            recon.end_cycle()

        np.testing.assert_array_equal(recon.write(MODAL_INCREMENT), [4.0, 3.0])
        assert recon.write(MODAL_INCREMENT) is None

    def test_slow_output_loses_no_measurement(self):
        model = Model()
        sensor = Constant()
        recon = Reconstructor(np.eye(1), n_segments=1, pad_segments=False, rate=Rate(1, 2))
        integrator = Integrator(1, gain=1.0)
        model.connect(Timer(5), TICK, sensor)
        model.connect(sensor, SENSOR_DATA, recon)
        model.connect(recon, MODAL_INCREMENT, integrator)
        model.check().run().wait(timeout=10)

        # Writes on ticks 0, 2 and 4 carry 1 + 2 + 2 measurements
        np.testing.assert_allclose(integrator.y, [5.0])

    def test_no_operator(self):
        with pytest.raises(ValueError):
            Reconstructor([])

    def test_operator_not_2d(self):
        with pytest.raises(ValueError):
            Reconstructor([np.zeros(4)])

    def test_operators_disagree(self):
        with pytest.raises(ValueError):
            Reconstructor([np.zeros((7, 4)), np.zeros((14, 4))], n_segments=7)

    def test_odd_sub_unit(self):
        with pytest.raises(ValueError):
            Reconstructor([np.zeros((7, 3)), np.zeros((7, 4))], n_segments=7)

    def test_modes_not_divisible_by_segments(self):
        with pytest.raises(ValueError):
            Reconstructor(np.zeros((10, 4)), n_segments=7)

    def test_wrong_measurement_length(self):
        recon = Reconstructor(np.zeros((7, 4)), n_segments=7)
        with pytest.raises(ValueError):
            recon.estimate(np.zeros(5))

    def test_connect_rejects_mismatched_sensor(self):
        recon = Reconstructor(np.zeros((7, 4)), n_segments=7)
        sensor = Identity("sensor", "Raw", out_tag=SENSOR_DATA, size=6)
        with pytest.raises(TypeMismatchError):
            Model().connect(sensor, SENSOR_DATA, recon)
