"""
===============================================================================
ABSLOC - Reference Frame Seed Estimator
===============================================================================

Robust estimate of a sensor's first position, used once per sensor to seed
the frame origin before any correction can be trusted.

Algorithm
---------
Over every held reading up to and including the target id, each of the three
position axes is handled independently:

    1. min_var[i]  = smallest reported uncertainty on axis i
    2. keep the readings whose uncertainty is below 2 * min_var[i]
    3. average[i]  = sum(value * var) / sum(var)  over the kept readings
    4. reported uncertainty on axis i = min_var[i]

The weights are the reported uncertainties themselves, not their inverses:
within the [min, 2*min) window they differ by less than a factor of two, so
the window does the rejecting and the weighting only nudges the mean. The
reported uncertainty is the minimum seen, not an average over the window;
callers must not read it as one.

The axes are raw hardware axes (no reordering happens here).
===============================================================================
"""

import logging
from dataclasses import dataclass
from typing import List

import numpy as np

from absloc.core.constants import (
    POSITION_SIZE,
    READING_HEADER_SIZE,
    SEED_INITIAL_MIN_VARIANCE,
    SEED_VARIANCE_WINDOW,
)
from absloc.core.exceptions import DegenerateSeedEstimate
from absloc.navigation.hardware import HardwareSensorProprio, RawInfo

logger = logging.getLogger(__name__)


@dataclass
class SeedEstimate:
    """Per-axis seed: robust average and its reported uncertainty."""
    average: np.ndarray
    variance: np.ndarray
    samples: np.ndarray          # readings kept per axis


class ReferenceFrameEstimator:
    """
    Parameters
    ----------
    source : HardwareSensorProprio
        Source whose held readings are scanned with ``observe_raw``.
    """

    def __init__(self, source: HardwareSensorProprio) -> None:
        self.source = source
        self._inns = source.data_size()

    def _candidates(self, infos: List[RawInfo], target_id: int) -> List[np.ndarray]:
        """Data vectors of the held readings up to and including target_id."""
        candidates = []
        for info in infos:
            candidates.append(self.source.observe_raw(info.id).data)
            if info.id == target_id:
                break
        return candidates

    def estimate(self, target_id: int) -> SeedEstimate:
        """
        Seed estimate from every reading held up to ``target_id``.

        Raises
        ------
        DegenerateSeedEstimate
            If no reading qualifies on some axis (zero total weight).
        """
        candidates = self._candidates(self.source.query_available_raws(), target_id)
        values = np.array(
            [d[READING_HEADER_SIZE:READING_HEADER_SIZE + POSITION_SIZE] for d in candidates]
        ).reshape(-1, POSITION_SIZE)
        variances = np.array(
            [d[READING_HEADER_SIZE + self._inns:
               READING_HEADER_SIZE + self._inns + POSITION_SIZE] for d in candidates]
        ).reshape(-1, POSITION_SIZE)
        return estimate_seed(values, variances, target_id)


def estimate_seed(values: np.ndarray, variances: np.ndarray,
                  target_id: int = -1) -> SeedEstimate:
    """
    Windowed, variance-weighted average of candidate readings.

    Parameters
    ----------
    values : np.ndarray
        Candidate values, shape (n, axes).
    variances : np.ndarray
        Reported uncertainties, same shape.
    target_id : int
        Id of the last candidate, for error reporting.

    Returns
    -------
    SeedEstimate

    Raises
    ------
    DegenerateSeedEstimate
        If the kept weights of some axis sum to zero.
    """
    values = np.asarray(values, dtype=np.float64)
    variances = np.asarray(variances, dtype=np.float64)
    if values.shape != variances.shape:
        raise ValueError(
            f"values {values.shape} and variances {variances.shape} differ in shape"
        )
    n_axes = values.shape[1]

    # first pass: minimum uncertainty per axis
    min_var = np.full(n_axes, SEED_INITIAL_MIN_VARIANCE)
    if values.shape[0]:
        min_var = np.minimum(min_var, variances.min(axis=0))

    # second pass: weighted average inside the window
    keep = variances < SEED_VARIANCE_WINDOW * min_var
    weights = np.where(keep, variances, 0.0)
    sum_coeffs = weights.sum(axis=0)

    for axis in range(n_axes):
        if not sum_coeffs[axis] > 0.0:
            raise DegenerateSeedEstimate(axis, target_id)

    average = (values * weights).sum(axis=0) / sum_coeffs
    samples = keep.sum(axis=0)

    logger.info(
        "Seed estimate from %d readings: average=%s min_var=%s kept=%s",
        values.shape[0], average, min_var, samples,
    )
    return SeedEstimate(average=average, variance=min_var, samples=samples)
