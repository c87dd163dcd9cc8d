"""
===============================================================================
ABSLOC - Sensor Model Base
===============================================================================
Capability interface shared by the sensor models that correct the robot
pose (configure with a hardware source, then process readings by id), the
measurement shapes they may handle, and the frame origin a sensor freezes
on its first reading.
===============================================================================
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Optional

import numpy as np

from absloc.core.constants import (
    ORIENTATION_SLICE,
    POSE_SIZE,
    POSITION_SIZE,
    POSITION_SLICE,
)
from absloc.core.exceptions import (
    OriginAlreadySet,
    SensorNotConfigured,
    UnsupportedMeasurementShape,
)
from absloc.navigation.hardware import HardwareSensorProprio
from absloc.navigation.robot import Robot


class MeasurementShape(Enum):
    """Innovation layouts, tagged by their dimension."""
    POSITION = 3
    POSITION_ORIENTATION = 7     # position + quaternion, not implemented

    @classmethod
    def from_size(cls, size: int,
                  reading_size: Optional[int] = None) -> 'MeasurementShape':
        """
        Shape for an innovation dimension.

        Raises
        ------
        UnsupportedMeasurementShape
            For any size without a known layout.
        """
        try:
            return cls(size)
        except ValueError:
            raise UnsupportedMeasurementShape(size, reading_size) from None


class FrameOrigin:
    """
    Offset between a sensor's absolute frame and the filter's global frame.

    Starts unset (size 0) and is frozen exactly once, on the sensor's first
    reading.
    """

    def __init__(self) -> None:
        self._value: Optional[np.ndarray] = None

    @property
    def is_set(self) -> bool:
        return self._value is not None

    @property
    def size(self) -> int:
        return 0 if self._value is None else self._value.shape[0]

    @property
    def value(self) -> np.ndarray:
        """The frozen origin (read-only array)."""
        if self._value is None:
            raise ValueError("Frame origin is not set yet")
        return self._value

    def offset(self, size: int = POSITION_SIZE) -> np.ndarray:
        """Origin to subtract from readings: zeros until frozen."""
        if self._value is None:
            return np.zeros(size, dtype=np.float64)
        return self._value

    def freeze(self, value: np.ndarray) -> None:
        """
        Set the origin once.

        Raises
        ------
        OriginAlreadySet
            On any second call.
        """
        if self._value is not None:
            raise OriginAlreadySet(f"Frame origin already set to {self._value}")
        frozen = np.array(value, dtype=np.float64)
        frozen.setflags(write=False)
        self._value = frozen

    def __repr__(self) -> str:
        return f"FrameOrigin({'unset' if self._value is None else self._value})"


class SensorModel(ABC):
    """
    Sensor attached to a robot that corrects its pose.

    Parameters
    ----------
    robot : Robot
        Robot carrying the sensor.
    lever_arm : np.ndarray
        Sensor position in the robot body frame (m).
    orientation : np.ndarray, optional
        Sensor mounting quaternion in the robot body frame.

    Attributes
    ----------
    origin : FrameOrigin
        Offset of this sensor's own frame; each sensor owns one.
    """

    def __init__(self, robot: Robot, lever_arm: np.ndarray = None,
                 orientation: np.ndarray = None) -> None:
        self._robot = robot
        self.pose = np.zeros(POSE_SIZE, dtype=np.float64)
        self.pose[POSITION_SLICE] = (np.zeros(POSITION_SIZE) if lever_arm is None
                                     else lever_arm)
        self.pose[ORIENTATION_SLICE] = ([1.0, 0.0, 0.0, 0.0] if orientation is None
                                        else orientation)
        self.hardwareSensorPtr: Optional[HardwareSensorProprio] = None
        self.use_for_init = False
        self.origin = FrameOrigin()

    def robotPtr(self) -> Robot:
        return self._robot

    @property
    def lever_arm(self) -> np.ndarray:
        return self.pose[POSITION_SLICE]

    def _require_hardware(self) -> HardwareSensorProprio:
        if self.hardwareSensorPtr is None:
            raise SensorNotConfigured(
                f"{type(self).__name__} has no hardware source attached"
            )
        return self.hardwareSensorPtr

    @abstractmethod
    def set_hardware_sensor(self, source: HardwareSensorProprio) -> None:
        """Attach the source and size every per-update buffer from it."""

    @abstractmethod
    def process(self, reading_id: int) -> None:
        """Consume one reading and update the estimator."""
