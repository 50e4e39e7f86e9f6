import math
from typing import Iterable, Optional
import numpy as np


class MathTools:
    """Provides essential mathematical utilities for workout calculations."""

    EPLEY_DIVISOR: float = 30.0
    EPLEY_REP_CAP: int = 12
    PRECISION: int = 2

    @classmethod
    def round_to(cls, value: float, decimals: int | None = None) -> float:
        """Round half away from zero so ``20.125`` becomes ``20.13``."""
        places = cls.PRECISION if decimals is None else decimals
        factor = 10**places
        scaled = abs(value) * factor
        rounded = math.floor(scaled + 0.5) / factor
        return math.copysign(rounded, value)

    @classmethod
    def epley_1rm(cls, weight: float, reps: int) -> float:
        """Return the estimated one-rep max using the Epley formula."""
        if reps < 0:
            raise ValueError("reps must be non-negative")
        rep_term = min(reps, cls.EPLEY_REP_CAP)
        return weight * (1 + rep_term / cls.EPLEY_DIVISOR)

    @staticmethod
    def volume(sets: Iterable[tuple[int, float]]) -> float:
        """Compute training volume as the sum of reps times weight."""
        vol = 0.0
        for reps, weight in sets:
            if reps > 0 and weight > 0:
                vol += reps * weight
        return vol

    @classmethod
    def normalize_weight(
        cls, weight: Optional[float], body_weight: float
    ) -> Optional[float]:
        """Return a usable load for ``weight`` or ``None``.

        Negative values are assistance offsets from ``body_weight``.
        """
        if weight is None or math.isnan(weight):
            return None
        if weight < 0:
            adjusted = body_weight + weight
            if adjusted <= 0:
                return None
            return cls.round_to(adjusted)
        return cls.round_to(weight)

    @staticmethod
    def rolling_mean(values: list[float], window: int) -> list[Optional[float]]:
        """Return the trailing mean for each index, ``None`` until ``window`` values exist."""
        if window <= 0:
            raise ValueError("window must be positive")
        result: list[Optional[float]] = []
        for idx in range(len(values)):
            if idx + 1 < window:
                result.append(None)
                continue
            chunk = np.array(values[idx + 1 - window : idx + 1], dtype=float)
            result.append(float(np.mean(chunk)))
        return result

    @staticmethod
    def moving_average(values: list[float], window: int) -> list[float]:
        """Return the mean of up to ``window`` trailing values for each index."""
        if window <= 0:
            raise ValueError("window must be positive")
        result: list[float] = []
        for idx in range(len(values)):
            start = max(0, idx - window + 1)
            result.append(float(np.mean(values[start : idx + 1])))
        return result

    @staticmethod
    def percent_change(previous: float, current: float) -> Optional[float]:
        """Return the relative change in percent or ``None`` for a zero baseline."""
        if previous == 0:
            return None
        return (current - previous) / previous * 100.0

    @staticmethod
    def mean_gap(values: list[float]) -> Optional[float]:
        """Return the mean difference between consecutive sorted values."""
        if len(values) < 2:
            return None
        gaps = np.diff(np.sort(np.array(values, dtype=float)))
        return float(np.mean(gaps))
