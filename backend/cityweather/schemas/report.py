"""Pydantic schemas for sample input and analysis reports."""

import math

from pydantic import BaseModel, field_validator

from ..services.sample_history import (
    DEFAULT_BASE_INTERVAL_SEC,
    DEFAULT_DAYS_AHEAD,
    DEFAULT_DAYS_TO_USE,
    SampleHistory,
    WeatherSample,
)


class SampleIn(BaseModel):
    date: str
    temperature_c: float
    pressure: float = 0.0
    humidity: float = 0.0
    precipitation: float = 0.0

    @field_validator("date")
    @classmethod
    def _date_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("date label must not be empty")
        return v

    @field_validator("temperature_c", "pressure", "humidity", "precipitation")
    @classmethod
    def _finite(cls, v: float) -> float:
        if not math.isfinite(v):
            raise ValueError("value must be a finite number")
        return v

    def to_sample(self) -> WeatherSample:
        return WeatherSample(**self.model_dump())


class SampleOut(BaseModel):
    date: str
    temperature_c: float
    pressure: float
    humidity: float
    precipitation: float


class SampleListOut(BaseModel):
    samples: list[SampleOut]


class TrendOut(BaseModel):
    slope: float
    intercept: float
    mean: float


class WeatherReport(BaseModel):
    city: str
    sample_count: int
    days_to_use: int
    trend: TrendOut
    stability_index: float
    update_interval_seconds: float
    forecast: list[float]


def build_report(
    history: SampleHistory,
    city: str,
    days_to_use: int = DEFAULT_DAYS_TO_USE,
    base_interval_seconds: float = DEFAULT_BASE_INTERVAL_SEC,
    days_ahead: int = DEFAULT_DAYS_AHEAD,
) -> WeatherReport:
    """Run every analysis over the current history."""
    trend = history.compute_temperature_trend(days_to_use)
    return WeatherReport(
        city=city,
        sample_count=len(history),
        days_to_use=days_to_use,
        trend=TrendOut(slope=trend.slope, intercept=trend.intercept, mean=trend.mean),
        stability_index=history.compute_stability_index(days_to_use),
        update_interval_seconds=history.get_adaptive_update_interval_seconds(
            days_to_use, base_interval_seconds,
        ),
        forecast=history.forecast_temperature_days(days_ahead, days_to_use),
    )
