"""WeatherSample ORM model for the persisted sample history."""

from datetime import datetime, timezone

from sqlalchemy import Integer, Float, DateTime, Text, Index
from sqlalchemy.orm import Mapped, mapped_column

from .database import Base


class WeatherSampleModel(Base):
    __tablename__ = "weather_samples"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    # Insertion order of the in-memory history; 0 is the oldest sample
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    date: Mapped[str] = mapped_column(Text, nullable=False, default="")
    temperature_c: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    pressure: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    humidity: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    precipitation: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    saved_at: Mapped[datetime] = mapped_column(
        DateTime, default=lambda: datetime.now(timezone.utc)
    )

    __table_args__ = (
        Index("idx_weather_sample_position", "position"),
    )
