"""
State allocation for the robot and mapped landmarks.

The map owns the global filter and hands out contiguous index blocks of
its fixed-capacity state. Blocks are never moved once reserved, so an
index set held by a sensor model stays valid however many landmarks are
added later.
"""

import logging
from typing import List

import numpy as np

from absloc.core.constants import LANDMARK_SIZE
from absloc.core.exceptions import AbslocError
from absloc.navigation.ekf import ExtendedKalmanFilter

logger = logging.getLogger(__name__)


class Map:
    """
    Parameters
    ----------
    capacity : int
        Maximum number of scalar states in the filter.
    """

    def __init__(self, capacity: int) -> None:
        self.filterPtr = ExtendedKalmanFilter(capacity)
        self._used = np.zeros(capacity, dtype=bool)
        self._next_free = 0
        self.landmarks: List[np.ndarray] = []

    @property
    def capacity(self) -> int:
        return self.filterPtr.capacity

    def reserve(self, size: int) -> np.ndarray:
        """
        Reserve the next ``size`` free states.

        Returns
        -------
        np.ndarray
            Global indices of the new block.

        Raises
        ------
        AbslocError
            If the filter has no room left.
        """
        if size <= 0:
            raise ValueError(f"Block size must be positive, got {size}")
        if self._next_free + size > self.capacity:
            raise AbslocError(
                f"Map full: cannot reserve {size} states "
                f"({self._next_free}/{self.capacity} used)"
            )
        ia = np.arange(self._next_free, self._next_free + size)
        self._used[ia] = True
        self._next_free += size
        return ia

    def ia_used_states(self) -> np.ndarray:
        """Indices of every reserved state, in increasing order."""
        return np.flatnonzero(self._used)

    def P(self) -> np.ndarray:
        """The full filter covariance (not a copy)."""
        return self.filterPtr.P

    def add_landmark(self, mean: np.ndarray, cov: np.ndarray) -> np.ndarray:
        """
        Reserve a point landmark and initialize it uncorrelated with the
        rest of the state.

        Returns
        -------
        np.ndarray
            Global indices of the landmark block.
        """
        mean = np.asarray(mean, dtype=np.float64)
        cov = np.asarray(cov, dtype=np.float64)
        if mean.shape != (LANDMARK_SIZE,) or cov.shape != (LANDMARK_SIZE, LANDMARK_SIZE):
            raise ValueError(
                f"Landmark needs a {LANDMARK_SIZE}-vector and "
                f"{LANDMARK_SIZE}x{LANDMARK_SIZE} covariance"
            )

        ia = self.reserve(LANDMARK_SIZE)
        self.filterPtr.x[ia] = mean
        self.filterPtr.P[np.ix_(ia, ia)] = cov
        self.landmarks.append(ia)
        logger.debug("Landmark %d reserved at states %s", len(self.landmarks), ia)
        return ia

    def __repr__(self) -> str:
        return (f"Map(capacity={self.capacity}, used={self._next_free}, "
                f"landmarks={len(self.landmarks)})")
