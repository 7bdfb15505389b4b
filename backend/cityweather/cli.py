"""Command line access to the stored weather history and its analysis.

Usage:
    cityweather report        Trend, stability, update interval and forecast
    cityweather history       List stored samples
    cityweather add DATE TEMP Append a sample
    cityweather clear         Delete all stored samples
    cityweather run           Poll a sample source until interrupted
"""

import argparse
import asyncio
import logging
import sys
from dataclasses import asdict
from typing import Optional

from pydantic import ValidationError

from .config import settings
from .daemon import WeatherDaemon, load_source
from .models.database import init_database
from .schemas.report import SampleIn, SampleListOut, SampleOut, build_report
from .services.history_repository import HistoryRepository
from .services.prediction import WeatherPredictionSession

# ---------------------------------------------------------------------------
# Output helpers
# ---------------------------------------------------------------------------


def heading(msg: str) -> None:
    print(f"\n{'=' * 60}")
    print(f"  {msg}")
    print(f"{'=' * 60}\n")


def ok(msg: str) -> None:
    print(f"  [OK] {msg}")


def warn(msg: str) -> None:
    print(f"  [!!] {msg}")


def fail(msg: str) -> None:
    print(f"  [FAIL] {msg}", file=sys.stderr)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def cmd_report(session: WeatherPredictionSession, args: argparse.Namespace) -> int:
    """Print every analysis over the configured window."""
    report = build_report(
        session.history,
        city=settings.city,
        days_to_use=args.days,
        base_interval_seconds=args.base_interval,
        days_ahead=args.ahead,
    )

    if args.json:
        print(report.model_dump_json(indent=2))
        return 0

    heading(f"Weather report for {report.city}")
    if report.sample_count == 0:
        warn("No samples stored, values below are defaults")
    print(f"  Samples stored:    {report.sample_count}")
    print(f"  Window (samples):  {report.days_to_use if report.days_to_use > 0 else 'all'}")
    print(f"  Mean temperature:  {report.trend.mean:.1f} C")
    print(f"  Trend:             {report.trend.slope:+.2f} C/sample")
    print(f"  Stability index:   {report.stability_index:.2f}")
    print(f"  Update interval:   {report.update_interval_seconds:.0f} s")
    for day, temp in enumerate(report.forecast, start=1):
        print(f"  Forecast day +{day}:  {temp:.1f} C")
    return 0


def cmd_history(session: WeatherPredictionSession, args: argparse.Namespace) -> int:
    """List stored samples, oldest first."""
    samples = session.history.windowed(args.days)
    if args.json:
        rows = [SampleOut(**asdict(s)) for s in samples]
        print(SampleListOut(samples=rows).model_dump_json(indent=2))
        return 0

    heading(f"Stored samples ({len(samples)} of {len(session.history)})")
    for s in samples:
        print(
            f"  {s.date:<12} {s.temperature_c:6.1f} C  {s.pressure:7.1f} hPa"
            f"  {s.humidity:5.1f} %  {s.precipitation:5.1f} mm"
        )
    return 0


def cmd_add(session: WeatherPredictionSession, args: argparse.Namespace) -> int:
    """Validate and append one sample."""
    try:
        sample = SampleIn(
            date=args.date,
            temperature_c=args.temperature,
            pressure=args.pressure,
            humidity=args.humidity,
            precipitation=args.precipitation,
        ).to_sample()
    except ValidationError as exc:
        fail(f"Invalid sample: {exc.error_count()} error(s)")
        for err in exc.errors():
            fail(f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}")
        return 1

    session.append(sample)
    ok(f"Added sample for {sample.date} ({len(session.history)} stored)")
    return 0


def cmd_clear(session: WeatherPredictionSession, _args: argparse.Namespace) -> int:
    """Delete every stored sample."""
    session.clear()
    ok("History cleared")
    return 0


def cmd_run(args: argparse.Namespace, repository: HistoryRepository) -> int:
    """Run the polling daemon; it owns its own session."""
    if not args.source:
        fail("No sample source given (use --source or CITYWEATHER_SOURCE)")
        return 1
    try:
        source = load_source(args.source)
    except (ImportError, ValueError) as exc:
        fail(f"Cannot load sample source {args.source}: {exc}")
        return 1

    daemon = WeatherDaemon(
        source,
        repository,
        base_interval=args.base_interval,
        days_to_use=args.days,
    )
    try:
        final = asyncio.run(daemon.run())
    except KeyboardInterrupt:
        warn("Interrupted")
        return 0
    ok(f"Stopped with {len(final)} samples stored")
    return 0


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cityweather",
        description="City weather history: trend, stability and forecast",
    )
    sub = parser.add_subparsers(dest="command")

    p = sub.add_parser("report", help="Show trend, stability, interval and forecast")
    p.add_argument("--days", type=int, default=settings.days_to_use,
                   help="Number of most recent samples to analyse (0 = all)")
    p.add_argument("--base-interval", type=float, default=settings.base_interval_sec,
                   help="Base update interval in seconds")
    p.add_argument("--ahead", type=int, default=settings.forecast_days,
                   help="Number of days to forecast")
    p.add_argument("--json", action="store_true", help="Print JSON instead of text")

    p = sub.add_parser("history", help="List stored samples")
    p.add_argument("--days", type=int, default=0,
                   help="Number of most recent samples to list (0 = all)")
    p.add_argument("--json", action="store_true", help="Print JSON instead of text")

    p = sub.add_parser("add", help="Append a sample")
    p.add_argument("date", help="Date label, e.g. 2024-05-01")
    p.add_argument("temperature", type=float, help="Temperature in C")
    p.add_argument("--pressure", type=float, default=0.0, help="Pressure in hPa")
    p.add_argument("--humidity", type=float, default=0.0, help="Relative humidity in %%")
    p.add_argument("--precipitation", type=float, default=0.0, help="Precipitation in mm")

    sub.add_parser("clear", help="Delete all stored samples")

    p = sub.add_parser("run", help="Poll a sample source until interrupted")
    p.add_argument("--source", default=settings.source,
                   help="Async sample source as package.module:function")
    p.add_argument("--days", type=int, default=settings.days_to_use,
                   help="Number of most recent samples used for the interval")
    p.add_argument("--base-interval", type=float, default=settings.base_interval_sec,
                   help="Base polling interval in seconds")
    return parser


def main(argv: Optional[list[str]] = None, repository: Optional[HistoryRepository] = None) -> int:
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(levelname)s:     %(name)s - %(message)s",
    )

    parser = build_parser()
    args = parser.parse_args(argv)

    commands = {
        "report": cmd_report,
        "history": cmd_history,
        "add": cmd_add,
        "clear": cmd_clear,
    }

    if args.command is None:
        parser.print_help()
        return 0

    if repository is None:
        init_database()
        repository = HistoryRepository()

    if args.command == "run":
        return cmd_run(args, repository)

    session = WeatherPredictionSession.create(repository)
    session.load()
    try:
        return commands[args.command](session, args)
    finally:
        session.shutdown()


if __name__ == "__main__":
    sys.exit(main())
