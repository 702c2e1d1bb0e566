"""
now() provides the canonical notion of wall-clock time for the adapter. It is used by
 - the polling strategy, to compute the trailing fetch window on every tick
 - tests, which drive a ManualClock instead of the real time
"""

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

Millis = int  # Milliseconds since epoch

# -------- Exceptions -----------------------------------------------------------


class ClockError(RuntimeError):
    """Raised when a clock operation would violate its invariants (e.g., going backward)."""


# -------- Interface -----------------------------------------------------------


class Clock(ABC):
    """
    Wall-clock time source interface.

    All timestamps are UTC epoch milliseconds (int).
    """

    @abstractmethod
    def now(self) -> Millis:
        """Current time in UTC epoch milliseconds."""
        raise NotImplementedError

    def now_s(self) -> float:
        """Current time in UTC epoch seconds (derived)."""
        return self.now() / 1000

    @property
    @abstractmethod
    def is_realtime(self) -> bool:
        """True for RealtimeClock; False for ManualClock."""
        raise NotImplementedError


# -------- RealtimeClock -------------------------------------------------------


@dataclass
class RealtimeClock(Clock):
    """
    Realtime clock that is robust to system time changes.

    It anchors to the wall-clock at construction and then advances using
    time.monotonic(), so `now()` never goes backwards even if the OS clock
    is adjusted by NTP.
    """

    _t0_wall_ms: Optional[Millis] = None
    _t0_mono: Optional[float] = None

    def __post_init__(self) -> None:
        self._t0_wall_ms = int(time.time() * 1000)
        self._t0_mono = time.monotonic()

    @property
    def is_realtime(self) -> bool:
        return True

    def now(self) -> Millis:
        if self._t0_wall_ms is None or self._t0_mono is None:
            raise ClockError("Clock not properly initialized")
        elapsed_ms = int((time.monotonic() - self._t0_mono) * 1000)
        return self._t0_wall_ms + elapsed_ms


# -------- ManualClock ---------------------------------------------------------


class ManualClock(Clock):
    """
    Deterministic, manually-advanced clock.

    All advances must be forward (monotonic).
    """

    def __init__(self, start_ms: Millis):
        if start_ms < 0:
            raise ClockError("ManualClock: start_ms must be >= 0")
        self._current_ms: Millis = int(start_ms)

    @property
    def is_realtime(self) -> bool:
        return False

    def now(self) -> Millis:
        return self._current_ms

    def advance_to(self, ts_ms: Millis) -> Millis:
        """Move time forward to exactly ts_ms. Raises ClockError on backward moves."""
        if ts_ms < self._current_ms:
            raise ClockError(f"ManualClock: cannot go backwards: {ts_ms} < {self._current_ms}")
        self._current_ms = int(ts_ms)
        return self._current_ms

    def advance_by(self, delta_ms: Millis) -> Millis:
        """Move time forward by delta_ms (>= 0)."""
        if delta_ms < 0:
            raise ClockError(f"ManualClock: cannot go backwards, delta_ms < 0: {delta_ms}")
        return self.advance_to(self._current_ms + int(delta_ms))
