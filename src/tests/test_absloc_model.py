"""
===============================================================================
ABSLOC - Absolute Localization Sensor Model Test Suite
===============================================================================
Tests for the absolute position sensor model: first-reading bootstrap in
absolute and relative mode, the frozen frame origin, steady-state
corrections, seeded first readings, and the failures that must leave the
robot, the origin and the source untouched.

Readings are pushed in the raw hardware layout (north, east, up), so a
measurement of (x, y, z) on the robot axes is pushed as (y, x, z).
===============================================================================
"""

import sys
import os
import logging

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

import numpy as np
import pytest
from numpy.testing import assert_allclose

from absloc.core.exceptions import (
    AbslocError,
    DegenerateSeedEstimate,
    MissingVarianceModel,
    OriginAlreadySet,
    SensorNotConfigured,
    UnknownReading,
    UnsupportedMeasurementShape,
)
from absloc.core.quaternion import Quaternion, rotate, rotation_jacobian
from absloc.navigation.absloc import AbsoluteLocalizationModel
from absloc.navigation.hardware import BufferedHardwareSensor
from absloc.navigation.map import Map
from absloc.navigation.robot import Robot
from absloc.navigation.sensor_model import FrameOrigin, MeasurementShape

POS_STD = 2.0
ORI_STD = 0.01


# =============================================================================
# Fixtures
# =============================================================================

def make_robot(orientation=None, landmarks=0):
    map_ = Map(32)
    robot = Robot(map_)
    q = Quaternion.identity().components if orientation is None else orientation
    robot.set_pose(np.zeros(3), q, np.array([POS_STD] * 3 + [ORI_STD] * 4))
    for k in range(landmarks):
        map_.add_landmark(np.array([10.0 * (k + 1), 0.0, 0.0]), np.eye(3))
    return robot


def make_sensor(robot, lever_arm=(1.0, 0.0, 0.0), absolute=True,
                use_for_init=False, data_size=3, report_variance=True):
    source = BufferedHardwareSensor(data_size, report_variance=report_variance)
    sensor = AbsoluteLocalizationModel(
        robot, lever_arm=np.array(lever_arm), absolute=absolute,
        use_for_init=use_for_init,
    )
    sensor.set_hardware_sensor(source)
    return sensor, source


def push_enu(source, t, position, sigma=(0.5, 0.5, 0.5)):
    """Push a robot-axes position (and per-axis sigma) in raw NEU order."""
    position = np.asarray(position, dtype=float)
    sigma = np.asarray(sigma, dtype=float)
    order = [1, 0, 2]
    return source.push(t, position[order], sigma[order])


def expected_position_cov(robot, lever_arm, sigma):
    q = robot.orientation.copy()
    EXP_q = rotation_jacobian(q, np.asarray(lever_arm, dtype=float))
    P_qq = robot.pose.P()[3:7, 3:7]
    return np.diag(np.square(sigma)) + EXP_q @ P_qq @ EXP_q.T


@pytest.fixture
def robot():
    return make_robot()


# =============================================================================
# Test: configuration
# =============================================================================

class TestConfiguration:

    def test_buffers_sized_from_source(self, robot):
        sensor, _ = make_sensor(robot)
        assert sensor.inns == 3
        assert sensor.hasVar
        assert sensor.innovation.size() == 3
        assert sensor.EXP_rs.shape == (3, 7)

    def test_without_variance(self, robot):
        sensor, _ = make_sensor(robot, report_variance=False)
        assert not sensor.hasVar

    def test_reattach_same_size(self, robot):
        sensor, _ = make_sensor(robot)
        innovation = sensor.innovation
        other = BufferedHardwareSensor(3)
        sensor.set_hardware_sensor(other)
        assert sensor.hardwareSensorPtr is other
        assert sensor.innovation is innovation

    def test_reattach_other_size_raises(self, robot):
        sensor, _ = make_sensor(robot)
        with pytest.raises(AbslocError):
            sensor.set_hardware_sensor(BufferedHardwareSensor(7))

    def test_process_before_configuration(self, robot):
        sensor = AbsoluteLocalizationModel(robot, lever_arm=np.zeros(3))
        with pytest.raises(SensorNotConfigured):
            sensor.process(0)

    def test_default_lever_arm_is_zero(self, robot):
        sensor = AbsoluteLocalizationModel(robot)
        assert_allclose(sensor.lever_arm, np.zeros(3))
        assert_allclose(sensor.pose[3:7], [1.0, 0.0, 0.0, 0.0])


# =============================================================================
# Test: bootstrap on the first reading
# =============================================================================

class TestBootstrap:

    def test_origin_unset_before_first_reading(self, robot):
        sensor, _ = make_sensor(robot)
        assert not sensor.origin.is_set
        assert sensor.origin.size == 0

    def test_absolute_mode(self, robot):
        """Reading (10,0,0), lever arm (1,0,0): origin 0, robot at (9,0,0)."""
        sensor, source = make_sensor(robot, absolute=True)
        rid = push_enu(source, 0.0, [10.0, 0.0, 0.0])
        expected_cov = expected_position_cov(robot, [1.0, 0.0, 0.0], [0.5] * 3)

        sensor.process(rid)

        assert_allclose(sensor.origin.value, [0.0, 0.0, 0.0])
        assert_allclose(robot.position, [9.0, 0.0, 0.0])
        assert_allclose(robot.pose.P()[0:3, 0:3], expected_cov)

    def test_relative_mode(self, robot):
        """Same reading: origin (9,0,0), robot stays at the global origin."""
        sensor, source = make_sensor(robot, absolute=False)
        rid = push_enu(source, 0.0, [10.0, 0.0, 0.0])
        expected_cov = expected_position_cov(robot, [1.0, 0.0, 0.0], [0.5] * 3)

        sensor.process(rid)

        assert_allclose(sensor.origin.value, [9.0, 0.0, 0.0])
        assert_allclose(robot.position, [0.0, 0.0, 0.0])
        assert_allclose(robot.pose.P()[0:3, 0:3], expected_cov)

    def test_raw_axes_reordered(self, robot):
        """Raw (north, east, up) = (2, 1, 3) is the robot-axes point (1, 2, 3)."""
        sensor, source = make_sensor(robot, lever_arm=(0.0, 0.0, 0.0))
        rid = source.push(0.0, [2.0, 1.0, 3.0], [0.2, 0.1, 0.3])
        sensor.process(rid)
        assert_allclose(robot.position, [1.0, 2.0, 3.0])
        assert_allclose(np.diag(sensor.measurement.P), [0.01, 0.04, 0.09])

    def test_reported_uncertainty_is_squared(self, robot):
        sensor, source = make_sensor(robot, lever_arm=(0.0, 0.0, 0.0))
        rid = push_enu(source, 0.0, [0.0, 0.0, 0.0], sigma=(3.0, 3.0, 3.0))
        sensor.process(rid)
        assert_allclose(np.diag(robot.pose.P()[0:3, 0:3]), [9.0, 9.0, 9.0])

    def test_lever_arm_rotated_by_orientation(self):
        """Yawed 90 degrees, lever arm (1,0,0) points along +y."""
        robot = make_robot(Quaternion.from_yaw(np.pi / 2).components)
        sensor, source = make_sensor(robot, absolute=True)
        rid = push_enu(source, 0.0, [10.0, 0.0, 0.0])
        sensor.process(rid)
        assert_allclose(robot.position, [10.0, -1.0, 0.0], atol=1e-12)

    def test_no_filter_correction(self, robot):
        sensor, source = make_sensor(robot)
        sensor.process(push_enu(source, 0.0, [10.0, 0.0, 0.0]))
        assert robot.mapPtr().filterPtr.corrections == 0
        assert sensor.last_nis is None

    def test_orientation_untouched(self):
        q = Quaternion.from_yaw(0.3).components
        robot = make_robot(q)
        sensor, source = make_sensor(robot)
        sensor.process(push_enu(source, 0.0, [4.0, 5.0, 6.0]))
        assert_allclose(robot.orientation, q)

    def test_origin_frozen_after_first_reading(self, robot):
        sensor, source = make_sensor(robot, absolute=False)
        sensor.process(push_enu(source, 0.0, [10.0, 0.0, 0.0]))
        sensor.process(push_enu(source, 1.0, [50.0, 50.0, 50.0]))
        assert_allclose(sensor.origin.value, [9.0, 0.0, 0.0])

    def test_logs_initial_state(self, robot, caplog):
        sensor, source = make_sensor(robot)
        with caplog.at_level(logging.INFO, logger="absloc.navigation.absloc"):
            sensor.process(push_enu(source, 0.0, [10.0, 0.0, 0.0]))
        assert "robot origin" in caplog.text
        assert "initial position" in caplog.text

    def test_reading_released(self, robot):
        sensor, source = make_sensor(robot)
        push_enu(source, 0.0, [1.0, 1.0, 1.0])
        rid = push_enu(source, 1.0, [1.0, 1.0, 1.0])
        push_enu(source, 2.0, [1.0, 1.0, 1.0])
        sensor.process(rid)
        assert [info.id for info in source.query_available_raws()] == [rid + 1]


# =============================================================================
# Test: corrections after the bootstrap
# =============================================================================

class TestCorrection:

    @pytest.fixture
    def bootstrapped(self):
        robot = make_robot(Quaternion.from_yaw(0.4).components, landmarks=1)
        sensor, source = make_sensor(robot, lever_arm=(0.5, -0.2, 1.0))
        sensor.process(push_enu(source, 0.0, [10.0, 5.0, 1.0]))
        return robot, sensor, source

    def test_innovation_identities(self, bootstrapped):
        robot, sensor, source = bootstrapped
        p = robot.position.copy()
        q = robot.orientation.copy()
        P_rs = robot.pose.P().copy()
        T = sensor.lever_arm

        sensor.process(push_enu(source, 1.0, [10.5, 4.5, 1.2]))

        assert_allclose(sensor.expectation.x, p + rotate(q, T))
        assert_allclose(sensor.expectation.P, sensor.EXP_rs @ P_rs @ sensor.EXP_rs.T,
                        atol=1e-12)
        assert_allclose(sensor.innovation.x,
                        sensor.measurement.x - sensor.expectation.x)
        assert_allclose(sensor.innovation.P,
                        sensor.measurement.P + sensor.expectation.P)
        assert_allclose(sensor.INN_rs, -sensor.EXP_rs)
        assert_allclose(sensor.EXP_rs[:, 0:3], np.eye(3))
        assert_allclose(sensor.EXP_q, rotation_jacobian(q, T))

    def test_filter_corrected(self, bootstrapped):
        robot, sensor, source = bootstrapped
        var_before = np.diag(robot.pose.P()[0:3, 0:3]).copy()
        sensor.process(push_enu(source, 1.0, [10.5, 4.5, 1.2]))
        assert robot.mapPtr().filterPtr.corrections == 1
        assert np.all(np.diag(robot.pose.P()[0:3, 0:3]) < var_before)
        assert sensor.last_nis is not None and sensor.last_nis >= 0.0

    def test_consistent_reading_is_zero_innovation(self):
        """Relative mode: repeating the first reading changes nothing."""
        robot = make_robot()
        sensor, source = make_sensor(robot, absolute=False)
        sensor.process(push_enu(source, 0.0, [10.0, 0.0, 0.0]))
        sensor.process(push_enu(source, 1.0, [10.0, 0.0, 0.0]))
        assert_allclose(sensor.measurement.x, [1.0, 0.0, 0.0])
        assert_allclose(sensor.innovation.x, np.zeros(3), atol=1e-12)
        assert_allclose(robot.position, np.zeros(3), atol=1e-12)

    def test_position_pulled_toward_reading(self, bootstrapped):
        robot, sensor, source = bootstrapped
        x_before = robot.position[0]
        sensor.process(push_enu(source, 1.0, [20.0, 5.0, 1.0]))
        assert robot.position[0] > x_before

    def test_uncorrelated_landmark_unchanged(self, bootstrapped):
        robot, sensor, source = bootstrapped
        ia = robot.mapPtr().landmarks[0]
        filt = robot.mapPtr().filterPtr
        before = filt.x[ia].copy()
        sensor.process(push_enu(source, 1.0, [11.0, 6.0, 2.0]))
        assert_allclose(filt.x[ia], before)

    def test_variance_converges(self, bootstrapped):
        robot, sensor, source = bootstrapped
        variances = []
        for k in range(10):
            sensor.process(push_enu(source, 1.0 + k, [10.0, 5.0, 1.0]))
            variances.append(robot.pose.P()[0, 0])
        assert all(b < a for a, b in zip(variances, variances[1:]))

    def test_covariance_stays_symmetric(self, bootstrapped):
        robot, sensor, source = bootstrapped
        for k in range(5):
            sensor.process(push_enu(source, 1.0 + k, [10.0 + k, 5.0, 1.0]))
        P = robot.mapPtr().P()
        assert_allclose(P, P.T, atol=1e-12)


# =============================================================================
# Test: failures leave everything untouched
# =============================================================================

class TestFailures:

    def test_position_orientation_unsupported(self, robot):
        sensor, source = make_sensor(robot, data_size=7)
        rid = source.push(0.0, np.arange(7.0), np.ones(7))
        x_before = robot.pose.x().copy()

        with pytest.raises(UnsupportedMeasurementShape) as excinfo:
            sensor.process(rid)

        assert excinfo.value.size == 7
        assert "not supported" in str(excinfo.value)
        assert not sensor.origin.is_set
        assert_allclose(robot.pose.x(), x_before)
        assert len(source) == 1

    def test_shape_rechecked_each_reading(self, robot):
        """No shape is cached between readings; every one is refused."""
        sensor, source = make_sensor(robot, data_size=7)
        for t in range(2):
            rid = source.push(float(t), np.arange(7.0), np.ones(7))
            with pytest.raises(UnsupportedMeasurementShape):
                sensor.process(rid)
        assert not hasattr(sensor, "shape")
        assert len(source) == 2

    def test_missing_variance(self, robot):
        sensor, source = make_sensor(robot, report_variance=False)
        rid = source.push(0.0, [1.0, 2.0, 3.0])
        with pytest.raises(MissingVarianceModel) as excinfo:
            sensor.process(rid)
        assert "constant uncertainty not implemented" in str(excinfo.value)
        assert not sensor.origin.is_set
        assert len(source) == 1

    def test_unknown_reading(self, robot):
        sensor, _ = make_sensor(robot)
        with pytest.raises(UnknownReading):
            sensor.process(5)
        assert not sensor.origin.is_set

    def test_degenerate_seed(self, robot):
        sensor, source = make_sensor(robot, use_for_init=True)
        rid = push_enu(source, 0.0, [1.0, 2.0, 3.0], sigma=(0.0, 0.0, 0.0))
        with pytest.raises(DegenerateSeedEstimate):
            sensor.process(rid)
        assert sensor.use_for_init
        assert not sensor.origin.is_set
        assert_allclose(robot.position, np.zeros(3))
        assert len(source) == 1


# =============================================================================
# Test: seeded first reading
# =============================================================================

class TestUseForInit:

    def test_seed_replaces_first_reading(self, robot):
        sensor, source = make_sensor(robot, lever_arm=(0.0, 0.0, 0.0),
                                     use_for_init=True)
        # raw (north, east, up): the outlier on east is rejected by the window
        source.push(0.0, [1.0, 10.0, 0.0], [1.0, 1.0, 1.0])
        source.push(1.0, [3.0, 90.0, 0.0], [4.0, 4.0, 1.0])
        rid = source.push(2.0, [5.0, 12.0, 3.0], [1.5, 1.0, 1.0])

        sensor.process(rid)

        # east -> x, north -> y
        assert_allclose(robot.position, [11.0, 3.4, 1.0])
        assert_allclose(np.diag(robot.pose.P()[0:3, 0:3]), [1.0, 1.0, 1.0])

    def test_flag_cleared_and_reading_released(self, robot):
        sensor, source = make_sensor(robot, use_for_init=True)
        for t in range(3):
            rid = push_enu(source, float(t), [1.0, 2.0, 3.0])
        sensor.process(rid)
        assert not sensor.use_for_init
        assert len(source) == 0

    def test_later_readings_not_seeded(self, robot):
        sensor, source = make_sensor(robot, lever_arm=(0.0, 0.0, 0.0),
                                     use_for_init=True)
        sensor.process(push_enu(source, 0.0, [1.0, 2.0, 3.0]))
        sensor.process(push_enu(source, 1.0, [7.0, 2.0, 3.0]))
        assert_allclose(sensor.measurement.x, [7.0, 2.0, 3.0])


# =============================================================================
# Test: frame origin and measurement shape
# =============================================================================

class TestFrameOrigin:

    def test_unset(self):
        origin = FrameOrigin()
        assert not origin.is_set
        assert origin.size == 0
        assert_allclose(origin.offset(), np.zeros(3))
        with pytest.raises(ValueError):
            origin.value

    def test_freeze_once(self):
        origin = FrameOrigin()
        origin.freeze([1.0, 2.0, 3.0])
        assert origin.is_set
        assert origin.size == 3
        with pytest.raises(OriginAlreadySet):
            origin.freeze([0.0, 0.0, 0.0])
        assert_allclose(origin.value, [1.0, 2.0, 3.0])

    def test_value_read_only(self):
        origin = FrameOrigin()
        origin.freeze([1.0, 2.0, 3.0])
        with pytest.raises(ValueError):
            origin.value[0] = 5.0

    def test_freeze_copies_input(self):
        src = np.array([1.0, 2.0, 3.0])
        origin = FrameOrigin()
        origin.freeze(src)
        src[0] = 100.0
        assert_allclose(origin.value, [1.0, 2.0, 3.0])


class TestMeasurementShape:

    @pytest.mark.parametrize("size,shape", [
        (3, MeasurementShape.POSITION),
        (7, MeasurementShape.POSITION_ORIENTATION),
    ])
    def test_known_sizes(self, size, shape):
        assert MeasurementShape.from_size(size) is shape

    @pytest.mark.parametrize("size", [1, 4, 6])
    def test_unknown_size_raises(self, size):
        with pytest.raises(UnsupportedMeasurementShape):
            MeasurementShape.from_size(size, reading_size=1 + 2 * size)
