"""City weather polling daemon.

Owns the prediction session for the lifetime of the process: loads the
stored history, runs the poller against a pluggable sample source and saves
the final history on the way out.

Start:  cityweather run --source package.module:function
Stop:   Ctrl-C or SIGTERM, or when the source is exhausted
"""

import asyncio
import importlib
import logging
import signal
import sys
from typing import Optional

from .config import settings
from .models.database import init_database
from .services.history_repository import HistoryRepository
from .services.poller import Poller, SampleSource
from .services.prediction import WeatherPredictionSession
from .services.sample_history import WeatherSample

logger = logging.getLogger(__name__)


def load_source(path: str) -> SampleSource:
    """Resolve ``package.module:function`` to an async sample source."""
    module_name, sep, attr = path.partition(":")
    if not sep or not module_name or not attr:
        raise ValueError(f"expected 'package.module:function', got {path!r}")

    module = importlib.import_module(module_name)
    source = getattr(module, attr, None)
    if source is None:
        raise ValueError(f"{module_name} has no attribute {attr!r}")
    if not callable(source):
        raise ValueError(f"{path} is not callable")
    return source


class WeatherDaemon:
    """Session owner and poller host."""

    def __init__(
        self,
        source: SampleSource,
        repository: Optional[HistoryRepository] = None,
        base_interval: float = settings.base_interval_sec,
        days_to_use: int = settings.days_to_use,
        handle_signals: bool = True,
    ) -> None:
        self.source = source
        self.repository = repository
        self.base_interval = base_interval
        self.days_to_use = days_to_use
        self.handle_signals = handle_signals
        self.session: Optional[WeatherPredictionSession] = None
        self.poller: Optional[Poller] = None
        self.poller_task: Optional[asyncio.Task] = None
        self._stop_event: Optional[asyncio.Event] = None

    # ---- public entry point ----

    async def run(self) -> list[WeatherSample]:
        """Poll until a stop is requested or the source runs dry.

        Returns the history as saved at shutdown.
        """
        if self.repository is None:
            init_database()
            self.repository = HistoryRepository()

        self.session = WeatherPredictionSession.create(self.repository)
        self.session.load()
        self.poller = Poller(
            self.session,
            self.source,
            base_interval=self.base_interval,
            days_to_use=self.days_to_use,
        )

        self._stop_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        if self.handle_signals:
            self._install_signal_handlers(loop)

        self.poller_task = asyncio.create_task(self.poller.run())
        stop_waiter = asyncio.create_task(self._stop_event.wait())
        logger.info("Weather daemon ready (%d samples loaded)", len(self.session.history))
        try:
            await asyncio.wait(
                {self.poller_task, stop_waiter},
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            stop_waiter.cancel()
            if self.handle_signals:
                self._remove_signal_handlers(loop)
            final = await self.shutdown()
        return final

    def request_stop(self) -> None:
        if self._stop_event is not None:
            self._stop_event.set()

    async def shutdown(self) -> list[WeatherSample]:
        logger.info("Shutting down weather daemon...")
        if self.poller:
            self.poller.stop()
        if self.poller_task and not self.poller_task.done():
            self.poller_task.cancel()
            try:
                await asyncio.wait_for(asyncio.shield(self.poller_task), timeout=6.0)
            except (asyncio.CancelledError, asyncio.TimeoutError):
                logger.warning("Poller did not stop cleanly")

        final = self.session.shutdown() if self.session else []
        logger.info("Weather daemon stopped with %d samples", len(final))
        return final

    # ---- signals ----

    def _install_signal_handlers(self, loop: asyncio.AbstractEventLoop) -> None:
        if sys.platform != "win32":
            for sig in (signal.SIGTERM, signal.SIGINT):
                loop.add_signal_handler(sig, self.request_stop)
        else:
            # Windows: signal handlers work differently
            signal.signal(signal.SIGINT, lambda *_: loop.call_soon_threadsafe(self.request_stop))
            signal.signal(signal.SIGTERM, lambda *_: loop.call_soon_threadsafe(self.request_stop))

    def _remove_signal_handlers(self, loop: asyncio.AbstractEventLoop) -> None:
        if sys.platform != "win32":
            for sig in (signal.SIGTERM, signal.SIGINT):
                loop.remove_signal_handler(sig)
        else:
            signal.signal(signal.SIGINT, signal.default_int_handler)
            signal.signal(signal.SIGTERM, signal.SIG_DFL)
