"""
Robot entity: the 7-scalar pose block of the global state.

    pose.x = [px, py, pz, qw, qx, qy, qz]

``pose.x`` and ``pose.P`` read from and write to the filter's arrays
directly; a sensor model that assigns to them mutates the estimator.
"""

import numpy as np

from absloc.core.constants import (
    ORIENTATION_SLICE,
    POSE_SIZE,
    POSITION_SLICE,
)
from absloc.navigation.map import Map


class PoseBlock:
    """Write-through view of a block of the global state."""

    def __init__(self, map_: Map, ia: np.ndarray) -> None:
        self._map = map_
        self.ia = ia
        # Reserved blocks are contiguous, so basic slices give true views
        self._slice = slice(int(ia[0]), int(ia[-1]) + 1)

    def x(self) -> np.ndarray:
        """Mean of the block (view)."""
        return self._map.filterPtr.x[self._slice]

    def P(self) -> np.ndarray:
        """Covariance sub-block (view)."""
        return self._map.filterPtr.P[self._slice, self._slice]

    def size(self) -> int:
        return self.ia.size


class Robot:
    """
    Parameters
    ----------
    map_ : Map
        Map whose filter stores the pose. The robot reserves its block at
        construction.
    """

    def __init__(self, map_: Map) -> None:
        self._map = map_
        self.ia_global_pose = map_.reserve(POSE_SIZE)
        self.pose = PoseBlock(map_, self.ia_global_pose)
        self.pose.x()[ORIENTATION_SLICE] = [1.0, 0.0, 0.0, 0.0]

    def mapPtr(self) -> Map:
        return self._map

    def set_pose(self, position: np.ndarray, orientation: np.ndarray,
                 std: np.ndarray) -> None:
        """
        Initialize the pose mean and a diagonal covariance.

        Parameters
        ----------
        position : np.ndarray
            3-element position (m).
        orientation : np.ndarray
            4-element quaternion [w, x, y, z].
        std : np.ndarray
            7-element standard deviations of the pose components.
        """
        std = np.asarray(std, dtype=np.float64)
        if std.shape != (POSE_SIZE,):
            raise ValueError(f"Pose std must have {POSE_SIZE} elements, got {std.shape}")
        x = self.pose.x()
        x[POSITION_SLICE] = position
        x[ORIENTATION_SLICE] = orientation
        P = self.pose.P()
        P[:, :] = np.diag(std ** 2)

    @property
    def position(self) -> np.ndarray:
        return self.pose.x()[POSITION_SLICE]

    @property
    def orientation(self) -> np.ndarray:
        return self.pose.x()[ORIENTATION_SLICE]

    def normalize_orientation(self) -> None:
        """Rescale the quaternion to unit norm after a correction."""
        q = self.orientation
        q /= np.linalg.norm(q)

    def __repr__(self) -> str:
        return f"Robot(position={self.position}, orientation={self.orientation})"
