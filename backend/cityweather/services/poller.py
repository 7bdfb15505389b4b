"""Async polling loop feeding weather samples into a prediction session.

Pulls a sample from a pluggable source, appends it to the session history,
broadcasts the updated analysis through a configurable callback, then
waits for the history's adaptive update interval before polling again.
"""

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Coroutine, Optional

from ..config import settings
from .prediction import WeatherPredictionSession
from .sample_history import WeatherSample

logger = logging.getLogger(__name__)

SampleSource = Callable[[], Awaitable[Optional[WeatherSample]]]


class Poller:
    """Manages the sample polling lifecycle."""

    def __init__(
        self,
        session: WeatherPredictionSession,
        source: SampleSource,
        base_interval: float = settings.base_interval_sec,
        days_to_use: int = settings.days_to_use,
        one_sample_per_date: bool = settings.one_sample_per_date,
    ):
        self.session = session
        self.source = source
        self.base_interval = base_interval
        self.days_to_use = days_to_use
        self.one_sample_per_date = one_sample_per_date
        self._running = False
        self._last_poll: Optional[datetime] = None
        self._appended = 0
        self._skipped = 0
        self._failures = 0
        self._broadcast_errors = 0
        self._start_time = time.time()
        self._broadcast_callback: (
            Callable[[dict[str, Any]], Coroutine[Any, Any, Any]] | None
        ) = None

    @property
    def stats(self) -> dict:
        return {
            "last_poll": self._last_poll.isoformat() if self._last_poll else None,
            "appended": self._appended,
            "skipped": self._skipped,
            "failures": self._failures,
            "broadcast_errors": self._broadcast_errors,
            "uptime_seconds": int(time.time() - self._start_time),
        }

    def current_interval(self) -> float:
        """Seconds to wait before the next poll."""
        return self.session.history.get_adaptive_update_interval_seconds(
            self.days_to_use, self.base_interval,
        )

    async def run(self) -> None:
        """Main polling loop. Runs until stopped or cancelled."""
        self._running = True
        self._start_time = time.time()
        logger.info("Poller starting with %.0fs base interval", self.base_interval)

        while self._running:
            try:
                await self.poll_once()
            except asyncio.CancelledError:
                break
            except StopAsyncIteration:
                logger.info("Sample source exhausted, poller stopping")
                self._running = False
                break
            except Exception as e:
                if not self._running:
                    break
                logger.error("Polling error: %s", e, exc_info=True)
                self._failures += 1

            interval = self.current_interval()
            logger.debug("Next poll in %.0fs", interval)
            try:
                await asyncio.sleep(interval)
            except asyncio.CancelledError:
                break

    async def poll_once(self) -> bool:
        """Fetch one sample and record it. Returns True if it was appended.

        A source signals that it has no more samples by raising
        StopAsyncIteration, which ends ``run``.
        """
        sample = await self.source()
        self._last_poll = datetime.now(timezone.utc)
        if sample is None:
            self._failures += 1
            logger.warning("Sample source returned no data (failure #%d)", self._failures)
            return False

        latest = self.session.history.latest()
        if self.one_sample_per_date and latest is not None and latest.date == sample.date:
            self._skipped += 1
            logger.debug("Sample for %s already recorded, skipping", sample.date)
            return False

        self.session.append(sample)
        self._appended += 1
        logger.info(
            "Sample recorded: date=%s temp=%.1fC precip=%.1fmm",
            sample.date, sample.temperature_c, sample.precipitation,
        )

        if self._broadcast_callback:
            try:
                await self._broadcast_callback({
                    "type": "weather_update",
                    "data": self._analysis_to_dict(sample),
                })
            except Exception as e:
                self._broadcast_errors += 1
                logger.warning("Broadcast failed: %s", e, exc_info=True)
        return True

    def set_broadcast_callback(
        self,
        callback: Callable[[dict[str, Any]], Coroutine[Any, Any, Any]],
    ) -> None:
        """Set the async callback invoked after each recorded sample."""
        self._broadcast_callback = callback

    def stop(self) -> None:
        self._running = False

    def _analysis_to_dict(self, sample: WeatherSample) -> dict:
        """JSON-serializable summary of the latest sample and analysis."""
        history = self.session.history
        trend = history.compute_temperature_trend(self.days_to_use)
        return {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "sample": {
                "date": sample.date,
                "temperature": {"value": sample.temperature_c, "unit": "C"},
                "pressure": {"value": sample.pressure, "unit": "hPa"},
                "humidity": {"value": sample.humidity, "unit": "%"},
                "precipitation": {"value": sample.precipitation, "unit": "mm"},
            },
            "trend": {
                "slope": trend.slope,
                "intercept": trend.intercept,
                "mean": trend.mean,
            },
            "stability_index": history.compute_stability_index(self.days_to_use),
            "next_interval_seconds": self.current_interval(),
            "sample_count": len(history),
        }
