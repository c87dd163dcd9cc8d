"""
Jacobians of the absolute position measurement.

For a sensor mounted with lever arm T on a robot at pose (p, q):

    e = p + R(q) T

so, with respect to the 7-scalar pose block [p, q],

    EXP_rs = [ I(3) | dR(q)T/dq ]        (3x7)
    INN_rs = -EXP_rs

since the expectation is the only pose-dependent term of the innovation.
"""

import numpy as np

from absloc.core.constants import (
    ORIENTATION_SLICE,
    POSE_SIZE,
    POSITION_SIZE,
    QUATERNION_SIZE,
)
from absloc.core.quaternion import rotation_jacobian


class JacobianBuilder:
    """
    Owns the Jacobian buffers of one sensor, allocated once and filled in
    place on every update.

    Parameters
    ----------
    inns : int
        Measurement dimension reported by the hardware source.
    """

    def __init__(self, inns: int) -> None:
        self.EXP_rs = np.zeros((inns, POSE_SIZE), dtype=np.float64)
        self.INN_rs = np.zeros((inns, POSE_SIZE), dtype=np.float64)
        self.EXP_q = np.zeros((inns, QUATERNION_SIZE), dtype=np.float64)

    def build_position(self, q: np.ndarray, T: np.ndarray) -> None:
        """
        Fill the position-only (3-row) Jacobians at orientation q and lever
        arm T.
        """
        rotation_jacobian(q, T, out=self.EXP_q)
        self.EXP_rs[:, :POSITION_SIZE] = np.eye(POSITION_SIZE)
        self.EXP_rs[:, ORIENTATION_SLICE] = self.EXP_q
        np.negative(self.EXP_rs, out=self.INN_rs)
