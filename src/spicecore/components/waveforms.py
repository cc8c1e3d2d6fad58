# src/spicecore/components/waveforms.py
"""
Time-dependent waveforms for independent sources in transient analysis.

A waveform only describes the large-signal value of a source over time. The DC
value used by operating-point and sweep analyses is the waveform's value at
t = 0, and AC analysis never looks at the waveform at all.

Every waveform also reports its breakpoints: the times where its slope is
discontinuous. The transient driver shortens steps to land exactly on them and
restarts integration with a low-order method there.
"""

import logging
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Sequence, Tuple

from ..units import to_si, UnitConversionError

logger = logging.getLogger(__name__)


class Waveform(ABC):
    """Abstract base class for source waveforms."""

    @abstractmethod
    def value(self, t: float) -> float:
        """Source value at time `t` (seconds)."""
        pass

    @abstractmethod
    def breakpoints(self, stop: float) -> List[float]:
        """Sorted slope discontinuities in (0, stop]."""
        pass


def _si(value, unit: str, name: str) -> float:
    try:
        return to_si(value, unit)
    except UnitConversionError as e:
        raise ValueError(f"Waveform parameter '{name}': {e}") from e


@dataclass(frozen=True)
class Pulse(Waveform):
    """
    Trapezoidal pulse train, equivalent to SPICE PULSE(V1 V2 TD TR TF PW PER).

    A zero `period` means a single pulse. Zero rise and fall times are allowed
    and produce an ideal step.
    """
    v1: float
    v2: float
    delay: float = 0.0
    rise: float = 0.0
    fall: float = 0.0
    width: float = math.inf
    period: float = 0.0

    def __post_init__(self):
        for name in ("delay", "rise", "fall", "width", "period"):
            val = getattr(self, name)
            if val < 0:
                raise ValueError(f"Pulse parameter '{name}' must be non-negative, got {val}.")
        if self.period and self.period < self.rise + self.width + self.fall:
            raise ValueError("Pulse period is shorter than rise + width + fall.")

    def value(self, t: float) -> float:
        if t <= self.delay:
            return self.v1
        local = t - self.delay
        if self.period > 0:
            local = math.fmod(local, self.period)
        if local < self.rise:
            return self.v1 + (self.v2 - self.v1) * local / self.rise
        local -= self.rise
        if local <= self.width:
            return self.v2
        local -= self.width
        if local < self.fall:
            return self.v2 + (self.v1 - self.v2) * local / self.fall
        return self.v1

    def breakpoints(self, stop: float) -> List[float]:
        edges = [0.0, self.rise]
        if math.isfinite(self.width):
            edges += [self.rise + self.width, self.rise + self.width + self.fall]
        points = []
        start = self.delay
        while start < stop:
            points.extend(start + e for e in edges)
            if self.period <= 0:
                break
            start += self.period
        return sorted({p for p in points if 0.0 < p <= stop})


@dataclass(frozen=True)
class Sine(Waveform):
    """
    Damped sinusoid, equivalent to SPICE SIN(VO VA FREQ TD THETA PHASE).
    `phase` is in degrees.
    """
    offset: float
    amplitude: float
    frequency: float
    delay: float = 0.0
    damping: float = 0.0
    phase: float = 0.0

    def __post_init__(self):
        if self.frequency < 0:
            raise ValueError(f"Sine frequency must be non-negative, got {self.frequency}.")

    def value(self, t: float) -> float:
        phi = math.radians(self.phase)
        if t <= self.delay:
            return self.offset + self.amplitude * math.sin(phi)
        local = t - self.delay
        return self.offset + self.amplitude * math.exp(-self.damping * local) * math.sin(
            2.0 * math.pi * self.frequency * local + phi
        )

    def breakpoints(self, stop: float) -> List[float]:
        return [self.delay] if 0.0 < self.delay <= stop else []


@dataclass(frozen=True)
class Pwl(Waveform):
    """
    Piecewise-linear waveform through (time, value) points, equivalent to SPICE PWL.
    The value is held constant before the first and after the last point.
    """
    points: Tuple[Tuple[float, float], ...]

    def __post_init__(self):
        if not self.points:
            raise ValueError("Pwl requires at least one (time, value) point.")
        times = [p[0] for p in self.points]
        if any(t1 <= t0 for t0, t1 in zip(times, times[1:])):
            raise ValueError(f"Pwl times must be strictly increasing, got {times}.")

    @classmethod
    def from_pairs(cls, pairs: Sequence[Tuple[object, object]], unit: str = "volt") -> "Pwl":
        """Builds a Pwl from (time, value) pairs that may carry units, e.g. ('1 ms', '5 V')."""
        return cls(tuple((_si(t, "second", "time"), _si(v, unit, "value")) for t, v in pairs))

    def value(self, t: float) -> float:
        pts = self.points
        if t <= pts[0][0]:
            return pts[0][1]
        for (t0, v0), (t1, v1) in zip(pts, pts[1:]):
            if t <= t1:
                return v0 + (v1 - v0) * (t - t0) / (t1 - t0)
        return pts[-1][1]

    def breakpoints(self, stop: float) -> List[float]:
        return [t for t, _ in self.points if 0.0 < t <= stop]
