"""Database-backed storage for the weather sample history.

The whole history is written as one ordered set of rows on every change
and read back in the same order on startup.
"""

import logging
from typing import Callable

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from ..models.database import SessionLocal
from ..models.weather_sample import WeatherSampleModel
from .sample_history import MAX_SAMPLES, WeatherSample

logger = logging.getLogger(__name__)


def _to_sample(row: WeatherSampleModel) -> WeatherSample:
    return WeatherSample(
        date=row.date,
        temperature_c=row.temperature_c,
        pressure=row.pressure,
        humidity=row.humidity,
        precipitation=row.precipitation,
    )


class HistoryRepository:
    """Loads and saves the sample history through SQLAlchemy sessions."""

    def __init__(self, session_factory: Callable[[], Session] = SessionLocal):
        self._session_factory = session_factory

    def load(self) -> list[WeatherSample]:
        """Stored samples oldest first, limited to the newest MAX_SAMPLES."""
        db = self._session_factory()
        try:
            rows = db.scalars(
                select(WeatherSampleModel).order_by(WeatherSampleModel.position)
            ).all()
            samples = [_to_sample(r) for r in rows]
        finally:
            db.close()

        if len(samples) > MAX_SAMPLES:
            logger.warning(
                "Stored history has %d samples, keeping newest %d",
                len(samples), MAX_SAMPLES,
            )
            samples = samples[-MAX_SAMPLES:]
        return samples

    def save(self, samples: list[WeatherSample]) -> None:
        """Replace the stored history with ``samples`` in one transaction."""
        db = self._session_factory()
        try:
            db.execute(delete(WeatherSampleModel))
            db.add_all([
                WeatherSampleModel(
                    position=i,
                    date=s.date,
                    temperature_c=s.temperature_c,
                    pressure=s.pressure,
                    humidity=s.humidity,
                    precipitation=s.precipitation,
                )
                for i, s in enumerate(samples)
            ])
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()
        logger.debug("Saved %d samples", len(samples))

    def count(self) -> int:
        db = self._session_factory()
        try:
            return db.scalar(select(func.count()).select_from(WeatherSampleModel)) or 0
        finally:
            db.close()
