"""
===============================================================================
ABSLOC - Absolute Localization Sensor Model
===============================================================================

Measurement update for absolute position sensors (GPS, motion capture,
barometer-like aiding). Turns each raw reading into an innovation and its
Jacobian with respect to the robot pose block, and bootstraps the sensor's
frame origin from its very first reading.

Measurement Model
-----------------
With robot pose (p, q) and sensor lever arm T in the body frame:

    expectation  e = p + R(q) T
    measurement  m = reading - origin
    innovation   z = m - e,          Z = M + E
    E = EXP_rs * P_rs * EXP_rs^T

Raw axes are consumed in the order (2nd, 1st, 3rd): the hardware reports
(north, east, up) and the robot frame is (east, north, up). The reported
per-axis uncertainties are standard deviations; M = diag(sigma^2).

Lifecycle
---------
Uninitialized  -- origin unset. The first successful ``process`` call
                  does not correct the filter; it writes the robot
                  position and its covariance directly and freezes the
                  origin:
                    absolute sensor: origin = 0, p = m - R(q) T
                    relative sensor: origin = m - R(q) T, p = 0
                  with P_pp = M + EXP_q * P_qq * EXP_q^T in both cases.
Bootstrapped   -- origin frozen. Every call delegates the Kalman update to
                  the map's filter.

Every computation of a call completes before anything shared (origin,
robot pose, filter) is written, so a failing call leaves them untouched.
Gating of individual readings after initialization is not implemented.
===============================================================================
"""

import logging

import numpy as np

from absloc.core.constants import (
    ORIENTATION_SLICE,
    POSITION_SIZE,
    POSITION_SLICE,
    READING_HEADER_SIZE,
)
from absloc.core.exceptions import (
    AbslocError,
    MissingVarianceModel,
    UnsupportedMeasurementShape,
)
from absloc.core.quaternion import rotate
from absloc.navigation.gaussian import (
    Expectation,
    Innovation,
    Measurement,
    prod_jpjt,
)
from absloc.navigation.hardware import HardwareSensorProprio, Reading
from absloc.navigation.jacobians import JacobianBuilder
from absloc.navigation.reference_frame import ReferenceFrameEstimator
from absloc.navigation.robot import Robot
from absloc.navigation.sensor_model import MeasurementShape, SensorModel

logger = logging.getLogger(__name__)

# Raw value slot (after the timestamp) feeding each measurement axis
RAW_AXIS_ORDER = np.array([1, 0, 2])


class AbsoluteLocalizationModel(SensorModel):
    """
    Absolute position sensor correcting a robot pose.

    Parameters
    ----------
    robot : Robot
        Robot carrying the sensor.
    lever_arm : np.ndarray
        Sensor position in the robot body frame (m).
    absolute : bool
        True if this sensor defines the global frame for the whole system
        (origin fixed at zero, robot placed at its first reading). False to
        keep the robot at the global origin and absorb the first reading
        into the sensor's frame origin.
    use_for_init : bool
        Seed the first reading from a robust average of every held reading
        instead of the single raw sample.

    Attributes
    ----------
    origin : FrameOrigin
        Frame offset of this sensor; frozen on the first reading.
    ia_rs : np.ndarray
        Global indices of the robot pose block.
    """

    def __init__(self, robot: Robot, lever_arm: np.ndarray = None,
                 absolute: bool = False, use_for_init: bool = False) -> None:
        super().__init__(robot, lever_arm)
        self.absolute = absolute
        self.use_for_init = use_for_init
        self.ia_rs = robot.ia_global_pose

        self.inns = 0
        self.hasVar = False
        self.innovation = None
        self.measurement = None
        self.expectation = None
        self.jacobians = None
        self.last_nis = None

    # =========================================================================
    # CONFIGURATION
    # =========================================================================

    def set_hardware_sensor(self, source: HardwareSensorProprio) -> None:
        """
        Attach the hardware source and allocate every per-update buffer
        at its data size.

        Raises
        ------
        AbslocError
            If a source with another data size is already attached; the
            buffers are sized once.
        """
        inns = source.data_size()
        if self.hardwareSensorPtr is not None and inns != self.inns:
            raise AbslocError(
                f"Sensor already configured with data size {self.inns}, "
                f"cannot attach a source of size {inns}"
            )

        self.hardwareSensorPtr = source
        if self.innovation is None:
            self.inns = inns
            self.innovation = Innovation(inns)
            self.measurement = Measurement(inns)
            self.expectation = Expectation(inns)
            self.jacobians = JacobianBuilder(inns)
        self.hasVar = source.variance_size() == source.data_size()

        logger.info(
            "Absolute localization sensor configured: data size %d, "
            "variance %s, %s frame",
            inns, "reported" if self.hasVar else "not reported",
            "absolute" if self.absolute else "relative",
        )

    @property
    def EXP_rs(self) -> np.ndarray:
        return self.jacobians.EXP_rs

    @property
    def INN_rs(self) -> np.ndarray:
        return self.jacobians.INN_rs

    @property
    def EXP_q(self) -> np.ndarray:
        return self.jacobians.EXP_q

    # =========================================================================
    # READINGS
    # =========================================================================

    def init(self, reading_id: int) -> Reading:
        """
        Target reading with its position and uncertainty replaced by the
        robust seed estimate over every held reading up to ``reading_id``.
        """
        source = self._require_hardware()
        reading = source.observe_raw(reading_id)
        seed = ReferenceFrameEstimator(source).estimate(reading_id)

        values = slice(READING_HEADER_SIZE, READING_HEADER_SIZE + POSITION_SIZE)
        sigmas = slice(READING_HEADER_SIZE + self.inns,
                       READING_HEADER_SIZE + self.inns + POSITION_SIZE)
        reading.data[values] = seed.average
        reading.data[sigmas] = seed.variance
        return reading

    def _check_shape(self, source: HardwareSensorProprio) -> None:
        shape = MeasurementShape.from_size(self.inns, source.reading_size())
        if shape is not MeasurementShape.POSITION:
            # TODO: position + orientation readings (mocap) need the
            # quaternion innovation and its Jacobian.
            raise UnsupportedMeasurementShape(self.inns, source.reading_size())

    # =========================================================================
    # UPDATE
    # =========================================================================

    def process(self, reading_id: int) -> None:
        """
        Consume reading ``reading_id``: bootstrap the robot position and
        the frame origin on the first call, correct the filter afterwards.

        Raises
        ------
        SensorNotConfigured
            If no hardware source is attached.
        UnsupportedMeasurementShape
            If the source's data size is not position-only.
        MissingVarianceModel
            If the source does not report per-axis uncertainty.
        DegenerateSeedEstimate
            If seeding finds no usable reading on some axis.
        """
        source = self._require_hardware()
        self._check_shape(source)
        if not self.hasVar:
            raise MissingVarianceModel(source.data_size(), source.variance_size())

        if self.use_for_init:
            reading = self.init(reading_id)
        else:
            reading = source.get_raw(reading_id)
        data = reading.data

        robot = self.robotPtr()
        first = not self.origin.is_set

        T = self.lever_arm
        p = robot.pose.x()[POSITION_SLICE]
        q = robot.pose.x()[ORIENTATION_SLICE]
        Tr = rotate(q, T)

        # expectation
        self.jacobians.build_position(q, T)
        P_rs = robot.mapPtr().P()[np.ix_(self.ia_rs, self.ia_rs)]
        self.expectation.x = p + Tr
        self.expectation.P = prod_jpjt(P_rs, self.EXP_rs)

        # measurement
        value_idx = READING_HEADER_SIZE + RAW_AXIS_ORDER
        sigma_idx = value_idx + self.inns
        self.measurement.x = data[value_idx] - self.origin.offset()
        self.measurement.P = np.diag(np.square(data[sigma_idx]))

        # innovation
        self.innovation.x = self.measurement.x - self.expectation.x
        self.innovation.P = self.measurement.P + self.expectation.P

        if first:
            self._bootstrap(robot, Tr)
        else:
            self._correct(robot)

        if self.use_for_init:
            self.use_for_init = False
            source.get_raw(reading_id)  # release the seed reading

    def _bootstrap(self, robot: Robot, Tr: np.ndarray) -> None:
        """One-shot overwrite of the robot position from the first reading."""
        P_pose = robot.pose.P()
        position_cov = self.measurement.P + prod_jpjt(
            P_pose[ORIENTATION_SLICE, ORIENTATION_SLICE], self.EXP_q
        )
        anchored = self.measurement.x - Tr

        if self.absolute:
            origin = np.zeros(POSITION_SIZE)
            position = anchored
        else:
            origin = anchored
            position = np.zeros(POSITION_SIZE)

        self.origin.freeze(origin)
        robot.pose.x()[POSITION_SLICE] = position
        P_pose[POSITION_SLICE, POSITION_SLICE] = position_cov

        with np.printoptions(precision=16):
            logger.info(
                "robot origin: %s ; initial position: %s ; initial pose var: %s",
                self.origin.value, robot.pose.x()[POSITION_SLICE],
                P_pose[POSITION_SLICE, POSITION_SLICE].tolist(),
            )

    def _correct(self, robot: Robot) -> None:
        map_ = robot.mapPtr()
        ia_x = map_.ia_used_states()
        map_.filterPtr.correct(ia_x, self.innovation, self.INN_rs, self.ia_rs)
        self.last_nis = map_.filterPtr.normalized_innovation_squared(self.innovation)
        logger.debug("Absloc correction: innovation=%s NIS=%.3f",
                     self.innovation.x, self.last_nis)

    def __repr__(self) -> str:
        return (f"AbsoluteLocalizationModel(inns={self.inns}, "
                f"absolute={self.absolute}, origin={self.origin})")
