"""Rolling history of daily weather samples and its trend analysis.

Keeps at most a year of samples (oldest evicted first) and derives a
least-squares temperature trend, a variance-based stability index, an
adaptive polling interval and a linear temperature forecast from the most
recent window of samples.
"""

import logging
import math
import threading
from dataclasses import dataclass
from typing import Callable, Optional

logger = logging.getLogger(__name__)

# Maximum number of samples retained (one year of daily samples).
MAX_SAMPLES = 365

# Default analysis window and polling base interval.
DEFAULT_DAYS_TO_USE = 30
DEFAULT_BASE_INTERVAL_SEC = 600.0
DEFAULT_DAYS_AHEAD = 3

# Below this the OLS denominator is treated as zero.
NEARLY_ZERO = 1e-8

# Standard deviation calibration ranges mapped onto 0..1.
TEMP_STDDEV_RANGE = (0.5, 5.0)  # degrees C
PRECIP_STDDEV_RANGE = (0.1, 10.0)  # mm
TEMP_WEIGHT = 0.6
PRECIP_WEIGHT = 0.4

# Interval multiplier at stability 0 and 1, and absolute bounds (seconds).
MIN_MULTIPLIER = 0.2
MAX_MULTIPLIER = 2.0
MIN_INTERVAL_SEC = 30.0
MAX_INTERVAL_SEC = 6 * 3600.0


@dataclass(frozen=True)
class WeatherSample:
    """A single dated observation."""
    date: str  # opaque label, e.g. "2024-05-01"
    temperature_c: float = 0.0
    pressure: float = 0.0  # hPa
    humidity: float = 0.0  # %
    precipitation: float = 0.0  # mm


@dataclass(frozen=True)
class TrendResult:
    """Least-squares temperature trend over sample index."""
    slope: float = 0.0  # degrees C per sample
    intercept: float = 0.0
    mean: float = 0.0


def _clamp(value: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, value))


def _lerp(a: float, b: float, t: float) -> float:
    return a + (b - a) * t


def _sample_stddev(values: list[float]) -> float:
    """Standard deviation with the unbiased (N-1) variance estimator."""
    n = len(values)
    mean = sum(values) / n
    variance = sum((v - mean) ** 2 for v in values) / (n - 1)
    return math.sqrt(variance)


def fit_temperature_trend(samples: list[WeatherSample]) -> TrendResult:
    """Closed-form least-squares line through (index, temperature_c).

    An empty list gives an all-zero result; a degenerate fit (single
    sample) falls back to a flat line through the mean.
    """
    n = len(samples)
    if n == 0:
        return TrendResult()

    sum_x = sum_y = sum_xy = sum_xx = 0.0
    for i, s in enumerate(samples):
        x = float(i)
        y = s.temperature_c
        sum_x += x
        sum_y += y
        sum_xy += x * y
        sum_xx += x * x

    denom = n * sum_xx - sum_x * sum_x
    if math.isclose(denom, 0.0, abs_tol=NEARLY_ZERO):
        slope = 0.0
        intercept = sum_y / n
    else:
        slope = (n * sum_xy - sum_x * sum_y) / denom
        intercept = (sum_y - slope * sum_x) / n

    return TrendResult(slope=slope, intercept=intercept, mean=sum_y / n)


ChangeCallback = Callable[[list[WeatherSample]], None]


class SampleHistory:
    """Capacity-bounded, insertion-ordered store of weather samples.

    Samples are expected in chronological order; the store never sorts.
    Every mutation hands a snapshot of the new sequence to ``on_change``
    (if set), which is how the owner persists it.
    """

    def __init__(
        self,
        samples: Optional[list[WeatherSample]] = None,
        on_change: Optional[ChangeCallback] = None,
    ):
        self._lock = threading.RLock()
        self._samples: list[WeatherSample] = []
        self._on_change = on_change
        if samples:
            self.seed(samples)

    def __len__(self) -> int:
        with self._lock:
            return len(self._samples)

    def set_change_callback(self, callback: Optional[ChangeCallback]) -> None:
        self._on_change = callback

    # ---- mutation ----

    def seed(self, samples: list[WeatherSample]) -> None:
        """Replace the contents with previously stored samples.

        Only the newest MAX_SAMPLES are kept. Does not notify ``on_change``;
        the samples came from storage in the first place.
        """
        with self._lock:
            self._samples = list(samples[-MAX_SAMPLES:])

    def restore_older(self, samples: list[WeatherSample]) -> None:
        """Put stored samples in front of the current contents.

        Used when storage becomes readable after samples were already
        appended in memory. Keeps the newest MAX_SAMPLES and does not notify.
        """
        with self._lock:
            self._samples = (list(samples) + self._samples)[-MAX_SAMPLES:]

    # The callback runs while the lock is held so that snapshots reach it in
    # the same order the mutations happened.

    def append(self, sample: WeatherSample) -> None:
        with self._lock:
            self._samples.append(sample)
            excess = len(self._samples) - MAX_SAMPLES
            if excess > 0:
                del self._samples[:excess]
                logger.debug("Evicted %d oldest sample(s)", excess)
            self._notify(list(self._samples))

    def clear(self) -> None:
        with self._lock:
            self._samples.clear()
            self._notify([])

    def _notify(self, snapshot: list[WeatherSample]) -> None:
        if self._on_change is not None:
            self._on_change(snapshot)

    # ---- reads ----

    def history(self) -> list[WeatherSample]:
        """Copy of the full sequence, oldest first."""
        with self._lock:
            return list(self._samples)

    def latest(self) -> Optional[WeatherSample]:
        with self._lock:
            return self._samples[-1] if self._samples else None

    def windowed(self, days_to_use: int) -> list[WeatherSample]:
        """Copy of the last ``days_to_use`` samples.

        A non-positive window, or one at least as long as the history,
        yields the whole history.
        """
        with self._lock:
            if days_to_use <= 0 or days_to_use >= len(self._samples):
                return list(self._samples)
            return self._samples[-days_to_use:]

    # ---- analysis ----

    def compute_temperature_trend(self, days_to_use: int = DEFAULT_DAYS_TO_USE) -> TrendResult:
        """Ordinary least squares of temperature against sample index 0..N-1."""
        return fit_temperature_trend(self.windowed(days_to_use))

    def compute_stability_index(self, days_to_use: int = DEFAULT_DAYS_TO_USE) -> float:
        """Weighted, normalized volatility of temperature and precipitation.

        Returns a value in [0, 1]; 0 means both signals vary less than the
        lower calibration bound. Fewer than two samples give 0.
        """
        samples = self.windowed(days_to_use)
        if len(samples) <= 1:
            return 0.0

        temp_std = _sample_stddev([s.temperature_c for s in samples])
        prec_std = _sample_stddev([s.precipitation for s in samples])

        t_lo, t_hi = TEMP_STDDEV_RANGE
        p_lo, p_hi = PRECIP_STDDEV_RANGE
        norm_temp = _clamp((temp_std - t_lo) / (t_hi - t_lo), 0.0, 1.0)
        norm_prec = _clamp((prec_std - p_lo) / (p_hi - p_lo), 0.0, 1.0)

        return _clamp(TEMP_WEIGHT * norm_temp + PRECIP_WEIGHT * norm_prec, 0.0, 1.0)

    def get_adaptive_update_interval_seconds(
        self,
        days_to_use: int = DEFAULT_DAYS_TO_USE,
        base_interval_seconds: float = DEFAULT_BASE_INTERVAL_SEC,
    ) -> float:
        """Scale the base interval by 0.2x..2x with the stability index.

        Result is bounded to [30 s, 6 h].
        """
        stability = self.compute_stability_index(days_to_use)
        multiplier = _lerp(MIN_MULTIPLIER, MAX_MULTIPLIER, stability)
        return _clamp(base_interval_seconds * multiplier, MIN_INTERVAL_SEC, MAX_INTERVAL_SEC)

    def forecast_temperature_days(
        self,
        days_ahead: int = DEFAULT_DAYS_AHEAD,
        days_to_use: int = DEFAULT_DAYS_TO_USE,
    ) -> list[float]:
        """Extrapolate the trend line past the last sample of the window."""
        if days_ahead <= 0:
            return []

        samples = self.windowed(days_to_use)
        trend = fit_temperature_trend(samples)
        n = len(samples)
        if n == 0:
            return [trend.intercept] * days_ahead

        return [trend.slope * (n + i) + trend.intercept for i in range(days_ahead)]
