"""
===============================================================================
ABSLOC - Quaternion Rotation and Rotation Jacobian
===============================================================================

Quaternion tools needed by the absolute localization model: rotating the
sensor lever arm from the robot body frame into the global frame, and the
exact derivative of that rotation with respect to the four quaternion
components.

Convention
----------
Scalar-first, as stored in the robot pose block:

    q = [q_w, q_x, q_y, q_z] = q_w + q_x*i + q_y*j + q_z*k

The quaternion rotates body-frame vectors into the global frame:

    v_global = q * v_body * q_conjugate = R(q) * v_body

R(q) is written in its homogeneous (quadratic) form

    R(q) = (w^2 - u.u) I + 2 u u^T + 2 w [u x]       with u = [x, y, z]

which equals the usual rotation matrix for unit quaternions. The filter
stores the quaternion as four free scalars, so the rotation and its
Jacobian are both taken from this form; the Jacobian is then the exact
derivative of exactly the function used for the expectation.

References
----------
    [1] Sola, "Quaternion kinematics for the error-state Kalman filter",
        2017, Sec. 2.4 and 4.3.
    [2] Markley & Crassidis, "Fundamentals of Spacecraft Attitude
        Determination and Control", Springer, 2014.

===============================================================================
"""

import numpy as np


def skew_symmetric(v: np.ndarray) -> np.ndarray:
    """
    Construct the 3x3 skew-symmetric (cross-product) matrix from a 3-vector.

        [v x] = |  0   -vz   vy |
                |  vz   0   -vx |
                | -vy   vx   0  |

    such that [v x] * u = v x u for any vector u.
    """
    return np.array([
        [0.0,   -v[2],  v[1]],
        [v[2],   0.0,  -v[0]],
        [-v[1],  v[0],  0.0]
    ], dtype=np.float64)


def rotation_matrix(q: np.ndarray) -> np.ndarray:
    """
    Homogeneous rotation matrix R(q) of a scalar-first quaternion.

    Parameters
    ----------
    q : np.ndarray
        4-element quaternion [w, x, y, z]. Not renormalized.

    Returns
    -------
    np.ndarray
        3x3 matrix with R(q) v = q * v * q_conjugate for unit q.
    """
    w, x, y, z = np.asarray(q, dtype=np.float64)

    ww = w * w
    xx = x * x
    yy = y * y
    zz = z * z
    xy = x * y
    xz = x * z
    yz = y * z
    wx = w * x
    wy = w * y
    wz = w * z

    return np.array([
        [ww + xx - yy - zz,  2.0 * (xy - wz),    2.0 * (xz + wy)],
        [2.0 * (xy + wz),    ww - xx + yy - zz,  2.0 * (yz - wx)],
        [2.0 * (xz - wy),    2.0 * (yz + wx),    ww - xx - yy + zz]
    ], dtype=np.float64)


def rotate(q: np.ndarray, v: np.ndarray) -> np.ndarray:
    """
    Rotate a 3-vector from the body frame into the global frame.

    Parameters
    ----------
    q : np.ndarray
        4-element quaternion [w, x, y, z] (body to global).
    v : np.ndarray
        3-element vector in the body frame, e.g. a sensor lever arm.

    Returns
    -------
    np.ndarray
        3-element rotated vector R(q) v.
    """
    return rotation_matrix(q) @ np.asarray(v, dtype=np.float64)


def rotation_jacobian(q: np.ndarray, v: np.ndarray,
                      out: np.ndarray = None) -> np.ndarray:
    """
    Analytic Jacobian of ``rotate(q, v)`` with respect to q.

    Differentiating R(q) v = (w^2 - u.u) v + 2 (u.v) u + 2 w (u x v):

        d/dw = 2 (w v + u x v)
        d/du = 2 (u v^T - v u^T + (u.v) I - w [v x])

    Parameters
    ----------
    q : np.ndarray
        4-element quaternion [w, x, y, z] at which to evaluate.
    v : np.ndarray
        3-element body-frame vector.
    out : np.ndarray, optional
        Pre-allocated 3x4 buffer written in place. A new array is
        returned when omitted.

    Returns
    -------
    np.ndarray
        3x4 matrix d(R(q) v) / dq, columns ordered [w, x, y, z].
    """
    q = np.asarray(q, dtype=np.float64)
    v = np.asarray(v, dtype=np.float64)
    if out is None:
        out = np.empty((3, 4), dtype=np.float64)

    w = q[0]
    u = q[1:4]

    out[:, 0] = 2.0 * (w * v + np.cross(u, v))
    out[:, 1:4] = 2.0 * (np.outer(u, v) - np.outer(v, u)
                         + np.dot(u, v) * np.eye(3) - w * skew_symmetric(v))
    return out


class Quaternion:
    """
    Orientation handle used where a quaternion is written by hand (heading
    of the simulated track, mounting rotations in tests). The filter keeps
    orientations as plain slices of the state vector and never builds one.

    Stored scalar-first and normalized on construction, with the sign chosen
    so that the scalar part is non-negative.
    """

    _MIN_NORM = 1e-10

    def __init__(self, w: float, x: float, y: float, z: float,
                 normalize: bool = True) -> None:
        self._q = np.array([w, x, y, z], dtype=np.float64)
        if normalize:
            self._normalize_in_place()

    @property
    def components(self) -> np.ndarray:
        """Copy of [w, x, y, z], ready to drop into a pose block."""
        return self._q.copy()

    def _normalize_in_place(self) -> None:
        magnitude = np.linalg.norm(self._q)
        if magnitude < self._MIN_NORM:
            raise ValueError(
                f"Quaternion norm {magnitude:.2e} is too small to normalize"
            )
        self._q /= magnitude
        if self._q[0] < 0.0:
            self._q = -self._q

    @staticmethod
    def identity() -> 'Quaternion':
        return Quaternion(1.0, 0.0, 0.0, 0.0, normalize=False)

    @staticmethod
    def from_axis_angle(axis: np.ndarray, angle: float) -> 'Quaternion':
        """
        Rotation of ``angle`` radians about ``axis`` (any non-zero length).

        Raises
        ------
        ValueError
            If the axis is a zero vector.
        """
        axis = np.asarray(axis, dtype=np.float64)
        length = np.linalg.norm(axis)
        if length < 1e-12:
            raise ValueError("Cannot rotate about a zero-length axis")
        s = np.sin(0.5 * angle) / length
        return Quaternion(np.cos(0.5 * angle), s * axis[0], s * axis[1], s * axis[2])

    @staticmethod
    def from_yaw(psi: float) -> 'Quaternion':
        """Heading psi (rad) about the global up axis."""
        return Quaternion.from_axis_angle(np.array([0.0, 0.0, 1.0]), psi)

    def rotate_vector(self, v: np.ndarray) -> np.ndarray:
        """Body to global rotation of a 3-vector."""
        return rotate(self._q, v)

    def __repr__(self) -> str:
        w, x, y, z = self._q
        return f"Quaternion({w:+.6f}, {x:+.6f}, {y:+.6f}, {z:+.6f})"
