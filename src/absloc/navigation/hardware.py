"""
===============================================================================
ABSLOC - Hardware Source Interface
===============================================================================
Contract between sensor models and the drivers that stream raw readings.

Raw Reading Layout
------------------
Every reading is one flat vector:

    data[0]                      timestamp (s)
    data[1 : 1+n]                n measured values
    data[1+n : 1+2n]             per-value uncertainty, when reported

where n = data_size(). A source reports uncertainty only when
variance_size() == data_size(); otherwise the trailing block is absent.

Peek vs Fetch
-------------
``observe_raw`` copies a reading and leaves the buffer untouched, so the
reference-frame seed can scan everything that is held. ``get_raw`` is the
consuming fetch: it returns the reading and releases it together with
every older one.
===============================================================================
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List

import numpy as np

from absloc.core.constants import READING_HEADER_SIZE
from absloc.core.data_structures import RawBuffer
from absloc.core.exceptions import UnknownReading

logger = logging.getLogger(__name__)


@dataclass
class Reading:
    """One raw sample: its id and the flat data vector."""
    id: int
    data: np.ndarray

    @property
    def timestamp(self) -> float:
        return float(self.data[0])


@dataclass(frozen=True)
class RawInfo:
    """Id and timestamp of a reading held by a source."""
    id: int
    timestamp: float


class HardwareSensorProprio(ABC):
    """Abstract source of raw proprioceptive / aiding readings."""

    @abstractmethod
    def data_size(self) -> int:
        """Number of measured values per reading."""

    @abstractmethod
    def variance_size(self) -> int:
        """Number of uncertainty values per reading (0 if none)."""

    @abstractmethod
    def query_available_raws(self) -> List[RawInfo]:
        """Readings currently held, oldest first."""

    @abstractmethod
    def observe_raw(self, reading_id: int) -> Reading:
        """Non-consuming copy of a held reading."""

    @abstractmethod
    def get_raw(self, reading_id: int) -> Reading:
        """Consuming fetch: returns the reading and releases it."""

    def reading_size(self) -> int:
        return READING_HEADER_SIZE + self.data_size() + self.variance_size()


class BufferedHardwareSensor(HardwareSensorProprio):
    """
    Source backed by a fixed-capacity ring buffer.

    A driver thread or a simulation pushes readings with :meth:`push`; the
    sensor model peeks and fetches them by id.

    Parameters
    ----------
    data_size : int
        Measured values per reading.
    report_variance : bool
        Whether readings carry a per-value uncertainty block.
    capacity : int
        Number of readings retained before the oldest is overwritten.
    """

    def __init__(self, data_size: int, report_variance: bool = True,
                 capacity: int = 256) -> None:
        if data_size <= 0:
            raise ValueError(f"data_size must be positive, got {data_size}")
        self._data_size = data_size
        self._variance_size = data_size if report_variance else 0
        self._buffer = RawBuffer(capacity, self.reading_size())
        self._next_id = 0

    def data_size(self) -> int:
        return self._data_size

    def variance_size(self) -> int:
        return self._variance_size

    # -- driver side -------------------------------------------------------

    def push(self, timestamp: float, values: np.ndarray,
             variances: np.ndarray = None) -> int:
        """
        Store a new reading and return its id.

        Raises
        ------
        ValueError
            If the value or variance vectors have the wrong length, or
            variances are given (or missing) against the source layout.
        """
        values = np.asarray(values, dtype=np.float64).flatten()
        if values.shape[0] != self._data_size:
            raise ValueError(
                f"Expected {self._data_size} values, got {values.shape[0]}"
            )

        data = np.empty(self.reading_size(), dtype=np.float64)
        data[0] = timestamp
        data[READING_HEADER_SIZE:READING_HEADER_SIZE + self._data_size] = values

        if self._variance_size:
            if variances is None:
                raise ValueError("This source reports variances; none given")
            variances = np.asarray(variances, dtype=np.float64).flatten()
            if variances.shape[0] != self._variance_size:
                raise ValueError(
                    f"Expected {self._variance_size} variances, "
                    f"got {variances.shape[0]}"
                )
            data[READING_HEADER_SIZE + self._data_size:] = variances
        elif variances is not None:
            raise ValueError("This source does not report variances")

        reading_id = self._next_id
        self._next_id += 1
        self._buffer.append(reading_id, data)
        return reading_id

    # -- sensor model side -------------------------------------------------

    def query_available_raws(self) -> List[RawInfo]:
        return [RawInfo(i, t) for i, t in self._buffer.infos()]

    def observe_raw(self, reading_id: int) -> Reading:
        data = self._buffer.get(reading_id)
        if data is None:
            raise UnknownReading(reading_id)
        return Reading(reading_id, data)

    def get_raw(self, reading_id: int) -> Reading:
        reading = self.observe_raw(reading_id)
        released = self._buffer.release_through(reading_id)
        logger.debug("Fetched reading %d, released %d", reading_id, released)
        return reading

    def latest_id(self) -> int:
        latest = self._buffer.latest_id()
        if latest is None:
            raise UnknownReading(-1)
        return latest

    def __len__(self) -> int:
        return len(self._buffer)

    def __repr__(self) -> str:
        return (f"BufferedHardwareSensor(data_size={self._data_size}, "
                f"variance_size={self._variance_size}, held={len(self)})")
