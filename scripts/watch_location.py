#!/usr/bin/env python3
"""Print the reconciled delivery location as viewers would see it.

Subscribes to the public slot (and to ``locations/<order-id>`` with
``--order-id``) on the store selected by ``LIVETRACK_*`` environment
variables, and prints one line per change plus a staleness line every
``--interval`` seconds.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
import time
from pathlib import Path

# Allow running from repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from pylivetrack import (  # noqa: E402
    FirebaseLocationStore,
    LocationSubscriber,
    MapView,
    MqttLocationStore,
    StaticViewport,
    TrackingConfig,
    create_store,
    init_store,
)

_LOG = logging.getLogger("watch_location")


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Watch the live delivery location.")
    parser.add_argument("--order-id", default=None, help="Also follow locations/<order-id>.")
    parser.add_argument(
        "--destination",
        default="51.505,-0.09",
        help="Destination lat,lng for the map frame.",
    )
    parser.add_argument("--interval", type=float, default=5.0, help="Seconds between staleness lines.")
    parser.add_argument("--duration", type=float, default=0, help="Seconds to watch (0 = until Ctrl+C).")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logs.")
    return parser.parse_args()


def _print_frame(feed: LocationSubscriber, view: MapView) -> None:
    frame = view.last_frame
    record = feed.current_location
    if record is None or frame is None:
        print("[watch] no active delivery")
        return
    state = "live" if feed.is_active else "stopped"
    print(
        f"[watch] {state} source={feed.source} {record.display_name} "
        f"at {record.latitude:.6f},{record.longitude:.6f} "
        f"updated {frame.staleness or 'unknown'} center={frame.center}"
    )


async def _run(args: argparse.Namespace) -> int:
    lat, _, lng = args.destination.partition(",")
    destination = (float(lat), float(lng))

    config = TrackingConfig.from_env()
    store = init_store(create_store(config))
    if isinstance(store, MqttLocationStore):
        await store.connect()

    view = MapView(StaticViewport(destination), destination, order_id=args.order_id or "public")
    feed = LocationSubscriber(store=store, order_id=args.order_id, logger=_LOG)

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    deadline = time.monotonic() + args.duration if args.duration else None
    try:
        with feed:
            view.bind(feed)
            feed.add_listener(lambda f: _print_frame(f, view))
            while not stop.is_set():
                if deadline is not None and time.monotonic() >= deadline:
                    break
                try:
                    await asyncio.wait_for(stop.wait(), args.interval)
                except TimeoutError:
                    record = feed.current_location
                    if record is not None:
                        view.render(record.as_tuple(), record.timestamp, record.display_name)
                    _print_frame(feed, view)
    finally:
        if isinstance(store, (MqttLocationStore, FirebaseLocationStore)):
            await store.close()
    return 0


def _main() -> int:
    args = _parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )
    return asyncio.run(_run(args))


if __name__ == "__main__":
    raise SystemExit(_main())
