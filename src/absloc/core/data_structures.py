"""
Fixed-capacity storage for raw sensor readings.

RawBuffer  -- Ring buffer of timestamped raw readings backed by contiguous
              NumPy arrays, with FIFO release of consumed readings.
"""

from __future__ import annotations

from typing import Iterator, List, Optional, Tuple

import numpy as np


class RawBuffer:
    """Fixed-size ring buffer of raw hardware readings.

    Why a ring buffer here?
    -----------------------
    A hardware driver keeps producing readings whether or not the filter
    consumes them.  The sensor model needs random access to every reading
    still held (the reference-frame seed scans all of them), while the
    driver must never grow without bound.  A ring buffer gives O(1) append
    and a hard memory ceiling: when full, the oldest reading is overwritten.

    Memory layout
    -------------
    Three arrays are pre-allocated at construction time:

    * ``_ids``   -- ``int64[capacity]``
    * ``_times`` -- ``float64[capacity]``
    * ``_data``  -- ``float64[capacity, width]``

    ``_tail`` is the slot of the oldest held reading and ``_count`` the
    number held.  Iteration walks ``_tail`` forward, so readings always come
    out in arrival order.

    Time complexity
    ---------------
    +---------------------+------+
    | Operation           | Cost |
    +=====================+======+
    | append              | O(1) |
    | get / find          | O(n) |
    | release_through     | O(n) |
    | infos               | O(n) |
    +---------------------+------+

    Parameters
    ----------
    capacity : int
        Maximum number of readings held at once.
    width : int
        Length of each raw data vector (timestamp + values + variances).
    """

    def __init__(self, capacity: int, width: int) -> None:
        if capacity <= 0:
            raise ValueError(f"capacity must be positive, got {capacity}")
        if width <= 0:
            raise ValueError(f"width must be positive, got {width}")

        self._capacity: int = capacity
        self._width: int = width

        self._ids: np.ndarray = np.zeros(capacity, dtype=np.int64)
        self._times: np.ndarray = np.zeros(capacity, dtype=np.float64)
        self._data: np.ndarray = np.zeros((capacity, width), dtype=np.float64)

        self._tail: int = 0      # Oldest held reading.
        self._count: int = 0

    # -- write -------------------------------------------------------------

    def append(self, reading_id: int, data: np.ndarray) -> None:
        """Store a reading, overwriting the oldest one if the buffer is full.

        The timestamp is taken from ``data[0]``.

        Raises
        ------
        ValueError
            If ``data`` does not have shape ``(width,)``.
        """
        data = np.asarray(data, dtype=np.float64)
        if data.shape != (self._width,):
            raise ValueError(
                f"Expected raw data of shape ({self._width},), got {data.shape}"
            )

        head = (self._tail + self._count) % self._capacity
        self._ids[head] = reading_id
        self._times[head] = data[0]
        self._data[head] = data

        if self._count == self._capacity:
            self._tail = (self._tail + 1) % self._capacity
        else:
            self._count += 1

    def release_through(self, reading_id: int) -> int:
        """Drop every reading up to and including ``reading_id``.

        Returns the number of readings released (0 if the id is not held).
        """
        position = self._position_of(reading_id)
        if position is None:
            return 0
        released = position + 1
        self._tail = (self._tail + released) % self._capacity
        self._count -= released
        return released

    # -- read --------------------------------------------------------------

    def get(self, reading_id: int) -> Optional[np.ndarray]:
        """Copy of the data vector for ``reading_id``, or None."""
        position = self._position_of(reading_id)
        if position is None:
            return None
        return self._data[self._slot(position)].copy()

    def infos(self) -> List[Tuple[int, float]]:
        """``(id, timestamp)`` of every held reading, oldest first."""
        return [(int(self._ids[s]), float(self._times[s])) for s in self._slots()]

    def latest_id(self) -> Optional[int]:
        if self._count == 0:
            return None
        return int(self._ids[self._slot(self._count - 1)])

    # -- helpers -----------------------------------------------------------

    def _slot(self, position: int) -> int:
        return (self._tail + position) % self._capacity

    def _slots(self) -> Iterator[int]:
        for position in range(self._count):
            yield self._slot(position)

    def _position_of(self, reading_id: int) -> Optional[int]:
        for position, slot in enumerate(self._slots()):
            if self._ids[slot] == reading_id:
                return position
        return None

    # -- dunder ------------------------------------------------------------

    def __len__(self) -> int:
        return self._count

    def __repr__(self) -> str:
        return (
            f"RawBuffer(capacity={self._capacity}, width={self._width}, "
            f"count={self._count})"
        )
