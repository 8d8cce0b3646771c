#!/usr/bin/env python3
"""Replay recorded position fixes through a tracking session.

Reads fixes from a JSON array or JSON-lines file, runs them through a full
``BusTracker`` (remote store and local storage configured from the
``BUSTRACK_*`` environment) and prints one line per processed fix followed
by the session summary.

Example::

    BUSTRACK_DATABASE_URL=https://example-default-rtdb.firebaseio.com \\
        python scripts/replay_session.py fixes.jsonl --bus bus_001 --interval 0
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

# Allow running from repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from pybustrack import BusTrackError, BusTracker, FixOutcome, TrackerConfig  # noqa: E402
from pybustrack._local import LoggingAlertProvider, ReplayLocationProvider  # noqa: E402

_LOG = logging.getLogger("replay_session")


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Replay recorded fixes through a bus tracking session.",
    )
    parser.add_argument("fixes", type=Path, help="JSON array or JSON-lines file of raw fixes.")
    parser.add_argument("--bus", help="Vehicle id to track (default: last selected).")
    parser.add_argument("--route", help="Route id to attach to published state.")
    parser.add_argument(
        "--interval",
        type=float,
        default=None,
        help="Seconds between fixes (default: BUSTRACK_FIX_INTERVAL).",
    )
    parser.add_argument(
        "--backend",
        choices=("firebase", "mqtt"),
        default=None,
        help="Override BUSTRACK_REMOTE_BACKEND.",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logs.",
    )
    return parser.parse_args()


def _print_outcome(outcome: FixOutcome) -> None:
    fix = outcome.fix
    stats = outcome.stats
    accuracy = "?" if fix.accuracy is None else f"{fix.accuracy:.0f}m"
    flags = []
    if outcome.signal.degraded:
        flags.append("poor-signal")
    if outcome.publish.skipped:
        flags.append("not-published")
    elif not outcome.publish.ok:
        flags.append("publish-failed")
    print(
        f"[replay] fix#{stats.fix_count} lat={fix.latitude:.6f} lng={fix.longitude:.6f} "
        f"speed={fix.speed:.1f} acc={accuracy} dist={stats.cumulative_distance_meters:.1f}m"
        + (f" [{', '.join(flags)}]" if flags else ""),
    )


async def _run(args: argparse.Namespace) -> int:
    overrides = {}
    if args.backend:
        overrides["remote_backend"] = args.backend
    config = TrackerConfig.from_env(**overrides)

    provider = ReplayLocationProvider.from_file(args.fixes, interval=args.interval)
    alerts = LoggingAlertProvider()

    async with BusTracker(config, location=provider, alerts=alerts, on_fix_processed=_print_outcome) as tracker:
        session = tracker.session
        if args.bus:
            await session.select_vehicle(args.bus)
        if args.route:
            await session.select_route(args.route)

        await session.start()
        await provider.wait_finished()
        # Let the worker drain the last queued fix.
        await asyncio.sleep(0.1)

        stats = session.stats
        print("[replay] Summary")
        print(f"[replay]   vehicle        : {session.identity.vehicle_id}")
        print(f"[replay]   route          : {session.identity.route_id}")
        print(f"[replay]   fixes          : {stats.fix_count}")
        print(f"[replay]   distance_m     : {stats.cumulative_distance_meters:.1f}")
        print(f"[replay]   poor_signal    : {len(alerts.notifications)}")
        await session.stop()
    return 0


def _main() -> int:
    args = _parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )
    try:
        return asyncio.run(_run(args))
    except BusTrackError as exc:
        print(f"[replay] {exc}", file=sys.stderr)
        return 2
    except (OSError, ValueError) as exc:
        print(f"[replay] Could not read fixes: {exc}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    raise SystemExit(_main())
