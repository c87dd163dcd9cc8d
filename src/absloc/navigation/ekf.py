"""
===============================================================================
ABSLOC - Global Extended Kalman Filter
===============================================================================

Holds the full estimator state shared by the robot and every mapped
landmark, and performs the generic correction step that sensor models
delegate to.

State Vector
------------
The state has a fixed capacity. The map hands out contiguous blocks of it:

    x[0:7]   = robot pose [px, py, pz, qw, qx, qy, qz]
    x[7:10]  = first landmark [lx, ly, lz]
    ...

Only the reserved ("used") indices take part in a correction, so the
unused tail of a large pre-allocated state costs nothing.

Indirect Correction
-------------------
Sensor models hand over the innovation z (with covariance Z already
including the propagated state uncertainty) and the Jacobian of z with
respect to a small block of states, INN_rs = dz/dx_rs. The expectation is
the only state-dependent term of z, so INN_rs = -H_rs and the gain reads

    PJt = P[x, rs] * INN_rs^T
    K   = -PJt * Z^{-1}
    x  += K * z
    P  += K * PJt^T

which is the textbook update P -= K H P written without ever forming the
full H. Z is symmetric positive-definite; it is factored once with a
Cholesky decomposition and never inverted explicitly.

References
----------
    [1] Sola, Vidal-Calleja, Civera, Montiel, "Impact of landmark
        parametrization on monocular EKF-SLAM with points and lines",
        IJCV, 2012 (indirect EKF formulation).
    [2] Brown & Hwang, "Introduction to Random Signals and Applied
        Kalman Filtering", 4th ed., Wiley, 2012.

===============================================================================
"""

import logging

import numpy as np
from scipy.linalg import LinAlgError, cho_factor, cho_solve

from absloc.core.exceptions import AbslocError
from absloc.navigation.gaussian import Gaussian

logger = logging.getLogger(__name__)


class ExtendedKalmanFilter:
    """
    Extended Kalman Filter over a fixed-capacity global state.

    Attributes
    ----------
    x : np.ndarray
        State mean, shape (capacity,).
    P : np.ndarray
        State covariance, shape (capacity, capacity).
    """

    def __init__(self, capacity: int) -> None:
        """
        Parameters
        ----------
        capacity : int
            Maximum number of scalar states (robot plus landmarks).

        Raises
        ------
        ValueError
            If capacity is not positive.
        """
        if capacity <= 0:
            raise ValueError(f"Filter capacity must be positive, got {capacity}")

        self.x = np.zeros(capacity, dtype=np.float64)
        self.P = np.zeros((capacity, capacity), dtype=np.float64)
        self.corrections = 0

    @property
    def capacity(self) -> int:
        return self.x.shape[0]

    # =========================================================================
    # PREDICTION
    # =========================================================================

    def predict_random_walk(self, ia: np.ndarray, Q: np.ndarray) -> None:
        """
        Constant-state prediction of one block: the mean is unchanged and
        the block covariance grows by Q.

        Parameters
        ----------
        ia : np.ndarray
            Global indices of the block.
        Q : np.ndarray
            Process noise covariance of the block, shape (len(ia), len(ia)).
        """
        ia = np.asarray(ia)
        Q = np.asarray(Q, dtype=np.float64)
        if Q.shape != (ia.size, ia.size):
            raise ValueError(
                f"Process noise must be {ia.size}x{ia.size}, got {Q.shape}"
            )
        self.P[np.ix_(ia, ia)] += Q

    # =========================================================================
    # CORRECTION
    # =========================================================================

    def correct(self, ia_x: np.ndarray, innovation: Gaussian,
                INN_rs: np.ndarray, ia_rs: np.ndarray) -> np.ndarray:
        """
        Kalman update of the used states from one innovation.

        Parameters
        ----------
        ia_x : np.ndarray
            Indices of all used states (robot and landmarks).
        innovation : Gaussian
            Innovation mean z and covariance Z.
        INN_rs : np.ndarray
            Jacobian dz/dx_rs, shape (len(z), len(ia_rs)).
        ia_rs : np.ndarray
            Indices of the states the innovation depends on.

        Returns
        -------
        np.ndarray
            The Kalman gain, shape (len(ia_x), len(z)).

        Raises
        ------
        AbslocError
            If the innovation covariance is not positive-definite.
        """
        ia_x = np.asarray(ia_x)
        ia_rs = np.asarray(ia_rs)
        z = innovation.x
        Z = innovation.P

        if INN_rs.shape != (z.shape[0], ia_rs.size):
            raise ValueError(
                f"Innovation Jacobian must be {z.shape[0]}x{ia_rs.size}, "
                f"got {INN_rs.shape}"
            )

        try:
            Z_chol = cho_factor(Z)
        except LinAlgError as exc:
            raise AbslocError(
                f"Innovation covariance is not positive-definite: {np.diag(Z)}"
            ) from exc

        PJt = self.P[np.ix_(ia_x, ia_rs)] @ INN_rs.T
        # K = -PJt Z^-1, computed as a solve on the transposed system
        K = -cho_solve(Z_chol, PJt.T).T

        self.x[ia_x] += K @ z

        block = np.ix_(ia_x, ia_x)
        P_new = self.P[block] + K @ PJt.T
        self.P[block] = 0.5 * (P_new + P_new.T)

        self.corrections += 1
        return K

    # =========================================================================
    # DIAGNOSTICS
    # =========================================================================

    @staticmethod
    def normalized_innovation_squared(innovation: Gaussian) -> float:
        """
        NIS = z^T Z^{-1} z.

        For a consistent filter the NIS follows a chi-squared distribution
        with len(z) degrees of freedom (95% interval for 3 dof: [0.22, 9.35]).
        """
        z = innovation.x
        return float(z @ cho_solve(cho_factor(innovation.P), z))

    def __repr__(self) -> str:
        return (f"ExtendedKalmanFilter(capacity={self.capacity}, "
                f"corrections={self.corrections})")
