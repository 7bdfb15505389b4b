"""Weather prediction session: owns the sample history for its lifetime.

A session is created once by the entry point, seeded from storage (or an
explicit seed), mutated while running, and shut down with a final save.
Every change is written to the repository and then passed to registered
listeners. Storage failures are logged and never undo the in-memory change.
After a failed load nothing is saved until the stored rows can be read back
and placed in front of the samples added since.
"""

import logging
from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError

from .history_repository import HistoryRepository
from .sample_history import SampleHistory, WeatherSample

logger = logging.getLogger(__name__)

Listener = Callable[[list[WeatherSample]], None]


class WeatherPredictionSession:
    """Lifecycle wrapper around a SampleHistory and its persistence."""

    def __init__(self, repository: Optional[HistoryRepository] = None):
        self.repository = repository
        self._history = SampleHistory(on_change=self._on_history_changed)
        self._listeners: list[Listener] = []
        self._closed = False
        self._load_failed = False
        self._final: list[WeatherSample] = []

    @classmethod
    def create(cls, repository: Optional[HistoryRepository] = None) -> "WeatherPredictionSession":
        """New session with an empty history that persists through ``repository``."""
        return cls(repository)

    @property
    def history(self) -> SampleHistory:
        return self._history

    @property
    def closed(self) -> bool:
        return self._closed

    # ---- lifecycle ----

    def load(self, seed: Optional[list[WeatherSample]] = None) -> int:
        """Seed the history from ``seed``, or from the repository when None.

        Returns the number of samples loaded.
        """
        self._load_failed = False
        if seed is None:
            seed = []
            if self.repository is not None:
                try:
                    seed = self.repository.load()
                except SQLAlchemyError as exc:
                    self._load_failed = True
                    logger.warning("Failed to load weather history: %s", exc)

        self._history.seed(seed)
        count = len(self._history)
        logger.info("Weather history loaded: %d samples", count)
        return count

    def shutdown(self) -> list[WeatherSample]:
        """Persist the final state and return it. Safe to call twice."""
        if self._closed:
            return list(self._final)

        self._recover_stored()
        self._final = self._history.history()
        if self._load_failed:
            logger.warning("Stored history still unreadable, skipping final save")
        else:
            self._persist(self._final)
        self._history.set_change_callback(None)
        self._closed = True
        logger.info("Weather session shut down with %d samples", len(self._final))
        return list(self._final)

    def _recover_stored(self) -> None:
        """Retry a failed load and put the stored samples before the new ones."""
        if not self._load_failed or self.repository is None:
            return
        try:
            stored = self.repository.load()
        except SQLAlchemyError as exc:
            logger.warning("Weather history still unreadable: %s", exc)
            return
        self._history.restore_older(stored)
        self._load_failed = False
        logger.info("Weather history recovered: %d stored samples", len(stored))

    # ---- mutation ----

    def append(self, sample: WeatherSample) -> None:
        if self._closed:
            logger.warning("Session is shut down, ignoring sample for %s", sample.date)
            return
        self._recover_stored()
        self._history.append(sample)

    def clear(self) -> None:
        if self._closed:
            logger.warning("Session is shut down, ignoring clear")
            return
        self._recover_stored()
        self._history.clear()

    # ---- listeners ----

    def add_listener(self, listener: Listener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _on_history_changed(self, snapshot: list[WeatherSample]) -> None:
        if self._load_failed:
            # Saving now would replace stored rows that were never read
            logger.warning("Stored history unreadable, change kept in memory only")
        else:
            self._persist(snapshot)
        for listener in list(self._listeners):
            listener(snapshot)

    def _persist(self, snapshot: list[WeatherSample]) -> None:
        if self.repository is None:
            return
        try:
            self.repository.save(snapshot)
        except SQLAlchemyError as exc:
            logger.warning("Failed to save weather history: %s", exc)
