"""
Gaussian buffers exchanged between a sensor model and the filter.

Each object owns a mean ``x`` and covariance ``P`` allocated once, at the
size the sensor reports when it is configured, and overwritten in place on
every update. Nothing here reallocates after construction.
"""

import numpy as np


def prod_jpjt(P: np.ndarray, J: np.ndarray) -> np.ndarray:
    """
    Congruence transform J * P * J^T.

    Used to push a covariance through a Jacobian. The result is symmetrized
    to remove the round-off asymmetry of the two products.
    """
    JPJt = J @ P @ J.T
    return 0.5 * (JPJt + JPJt.T)


class Gaussian:
    """
    Mean and covariance of fixed dimension.

    Parameters
    ----------
    size : int
        Dimension of the mean vector.
    """

    def __init__(self, size: int) -> None:
        if size <= 0:
            raise ValueError(f"Gaussian size must be positive, got {size}")
        self._x = np.zeros(size, dtype=np.float64)
        self._P = np.zeros((size, size), dtype=np.float64)

    @property
    def x(self) -> np.ndarray:
        return self._x

    @x.setter
    def x(self, value: np.ndarray) -> None:
        self._x[:] = value

    @property
    def P(self) -> np.ndarray:
        return self._P

    @P.setter
    def P(self, value: np.ndarray) -> None:
        self._P[:, :] = value

    def size(self) -> int:
        return self._x.shape[0]

    def std(self) -> np.ndarray:
        """Per-component standard deviation."""
        return np.sqrt(np.diag(self._P))

    def __repr__(self) -> str:
        return f"{type(self).__name__}(x={self._x}, std={self.std()})"


class Measurement(Gaussian):
    """Sensor-frame quantity derived from a raw reading."""


class Expectation(Gaussian):
    """Predicted value of the measured quantity from the current state."""


class Innovation(Gaussian):
    """Measurement minus expectation, with the summed covariance."""
