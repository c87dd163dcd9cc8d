"""
Error hierarchy for the absolute localization engine.

Every failure of a sensor update is reported as an :class:`AbslocError`
subclass carrying a descriptive message. None of them is retried inside
the engine; they propagate to whoever scheduled the update.
"""

from typing import Optional


class AbslocError(RuntimeError):
    """Generic engine error."""


class UnsupportedMeasurementShape(AbslocError):
    """Innovation dimensionality other than position-only (3)."""

    def __init__(self, size: int, reading_size: Optional[int] = None) -> None:
        self.size = size
        self.reading_size = reading_size
        msg = f"SensorAbsloc innovation size {size} not supported"
        if reading_size is not None:
            msg += f" (reading size {reading_size})"
        msg += "; only position-only (3) measurements are implemented."
        super().__init__(msg)


class MissingVarianceModel(AbslocError):
    """The hardware source does not report per-component variances."""

    def __init__(self, data_size: int, variance_size: int) -> None:
        self.data_size = data_size
        self.variance_size = variance_size
        super().__init__(
            "SensorAbsloc with constant uncertainty not implemented yet "
            f"(data size {data_size}, variance size {variance_size})"
        )


class DegenerateSeedEstimate(AbslocError):
    """No reading qualified for the robust average on one axis."""

    def __init__(self, axis: int, target_id: int) -> None:
        self.axis = axis
        self.target_id = target_id
        super().__init__(
            f"Reference frame seed estimate has zero weight on axis {axis} "
            f"(readings up to id {target_id})"
        )


class OriginAlreadySet(AbslocError):
    """The frame origin is frozen after the first reading."""


class SensorNotConfigured(AbslocError):
    """``process`` was called before a hardware source was attached."""


class UnknownReading(AbslocError):
    """The hardware source holds no reading with the requested id."""

    def __init__(self, reading_id: int) -> None:
        self.reading_id = reading_id
        super().__init__(f"No raw reading with id {reading_id} is available")
