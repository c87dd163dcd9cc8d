"""
===============================================================================
ABSLOC - Simulated Absolute Position Source
===============================================================================
GPS / motion-capture style source that turns a true robot position into raw
readings in the hardware layout, with noise and a reported uncertainty.

Axis Convention
---------------
The robot/global frame is East-North-Up (x = east, y = north, z = up).
The raw hardware layout is North-East-Up: data[1] = north, data[2] = east,
data[3] = up. The absolute localization model consumes the raw axes in the
order (2nd, 1st, 3rd) to map them back to (x, y, z).

Every reading is expressed in the sensor's own absolute frame, which is
shifted from the robot's global frame by a fixed ``frame_offset`` (given in
the raw NEU layout, e.g. a local UTM offset). The filter never sees this
offset; the sensor model recovers it as the frame origin.

All noise is injected via numpy.random. The constructor accepts a
configuration dictionary so parameters can be loaded from YAML.
===============================================================================
"""

import numpy as np

from absloc.core.constants import POSE_SIZE, POSITION_SIZE, QUATERNION_SIZE
from absloc.navigation.hardware import BufferedHardwareSensor

# Raw (north, east, up) index for each robot (east, north, up) axis
ENU_TO_RAW = np.array([1, 0, 2])


class AbsolutePositionSource(BufferedHardwareSensor):
    """
    Absolute position aiding source.

    Parameters (config dict):
        pos_noise_sigma : float or list -- 1-sigma noise per raw axis (m)
        quality_spread  : float -- reported sigma is scaled per reading by a
                                   factor drawn uniformly in [1, 1 + spread],
                                   and the noise follows the reported sigma
        frame_offset    : list  -- sensor frame offset, raw NEU layout (m)
        data_size       : int   -- 3 (position) or 7 (position + quaternion,
                                   motion-capture style)
        ori_noise_sigma : float -- 1-sigma noise per quaternion component
        report_variance : bool  -- whether readings carry the uncertainty block
        capacity        : int   -- readings retained by the driver buffer
        seed            : int   -- (optional) RNG seed
    """

    def __init__(self, config: dict):
        data_size = int(config.get("data_size", POSITION_SIZE))
        if data_size not in (POSITION_SIZE, POSE_SIZE):
            raise ValueError(
                f"data_size must be {POSITION_SIZE} or {POSE_SIZE}, got {data_size}"
            )
        super().__init__(
            data_size=data_size,
            report_variance=config.get("report_variance", True),
            capacity=config.get("capacity", 256),
        )
        self.rng = np.random.default_rng(config.get("seed", None))

        sigma = np.broadcast_to(
            np.asarray(config.get("pos_noise_sigma", 0.5), dtype=np.float64),
            (POSITION_SIZE,),
        )
        self.pos_noise_sigma = sigma.copy()
        self.ori_noise_sigma = float(config.get("ori_noise_sigma", 0.01))
        self.quality_spread = float(config.get("quality_spread", 0.0))
        self.frame_offset = np.asarray(
            config.get("frame_offset", [0.0, 0.0, 0.0]), dtype=np.float64
        )
        if self.frame_offset.shape != (POSITION_SIZE,):
            raise ValueError(
                f"frame_offset must have {POSITION_SIZE} elements, "
                f"got {self.frame_offset.shape}"
            )

    # --------------------------------------------------------------------- #
    def measure(self, timestamp: float, true_position: np.ndarray,
                true_orientation: np.ndarray = None) -> int:
        """
        Sample a noisy reading of the sensor's true global pose and push it
        into the driver buffer.

        Parameters
        ----------
        timestamp : float
            Sample time (s).
        true_position : (3,) ndarray
            True sensor position in the robot global frame (ENU, m).
        true_orientation : (4,) ndarray, optional
            True sensor quaternion [w, x, y, z]; only read by 7-value
            sources, identity when omitted.

        Returns
        -------
        int
            Id of the pushed reading.
        """
        true_position = np.asarray(true_position, dtype=np.float64)
        raw_truth = true_position[ENU_TO_RAW] + self.frame_offset

        quality = 1.0 + self.rng.uniform(0.0, self.quality_spread)
        sigma = self.pos_noise_sigma * quality
        values = raw_truth + self.rng.normal(0.0, 1.0, size=POSITION_SIZE) * sigma

        if self.data_size() == POSE_SIZE:
            q = (np.array([1.0, 0.0, 0.0, 0.0]) if true_orientation is None
                 else np.asarray(true_orientation, dtype=np.float64))
            q_sigma = np.full(QUATERNION_SIZE, self.ori_noise_sigma * quality)
            q_noisy = q + self.rng.normal(0.0, 1.0, size=QUATERNION_SIZE) * q_sigma
            values = np.concatenate([values, q_noisy / np.linalg.norm(q_noisy)])
            sigma = np.concatenate([sigma, q_sigma])

        if self.variance_size():
            return self.push(timestamp, values, sigma)
        return self.push(timestamp, values)
