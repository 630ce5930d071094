#!/usr/bin/env python3
"""Simulated driver: publishes a replayed route to the configured store.

Store selection comes from ``LIVETRACK_*`` environment variables (see
``TrackingConfig.from_env``). The route is a list of ``lat,lng`` pairs,
one per fix.

Examples::

    LIVETRACK_STORE_BACKEND=firebase LIVETRACK_DATABASE_URL=https://x.firebaseio.com \\
        python scripts/simulate_driver.py --route 51.505,-0.09 51.506,-0.091 --duration 30
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path

# Allow running from repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from pylivetrack import (  # noqa: E402
    FirebaseLocationStore,
    LocationPublisher,
    MqttLocationStore,
    ReplayGeolocationProvider,
    TrackingConfig,
    TrackingControlPanel,
    create_store,
    init_store,
)

_LOG = logging.getLogger("simulate_driver")


def _parse_point(text: str) -> tuple[float, float]:
    lat, _, lng = text.partition(",")
    try:
        return float(lat), float(lng)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"expected lat,lng got {text!r}") from exc


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Publish a replayed route as a live delivery location.")
    parser.add_argument("--route", type=_parse_point, nargs="+", required=True, help="lat,lng points to replay.")
    parser.add_argument("--driver", default=None, help="Driver label written with every update.")
    parser.add_argument("--order-id", default=None, help="Publish to locations/<order-id> instead of the public slot.")
    parser.add_argument("--duration", type=float, default=0, help="Seconds to publish (0 = until Ctrl+C).")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logs.")
    return parser.parse_args()


async def _run(args: argparse.Namespace) -> int:
    config = TrackingConfig.from_env()
    store = init_store(create_store(config))
    if isinstance(store, MqttLocationStore):
        await store.connect()

    geolocation = ReplayGeolocationProvider(args.route, interval=config.update_interval)
    publisher = LocationPublisher(geolocation, store=store, order_id=args.order_id, config=config, logger=_LOG)
    panel = TrackingControlPanel(publisher)

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    try:
        if not await panel.handle_start(args.driver or config.default_driver_name):
            print(f"[driver] {panel.error}", file=sys.stderr)
            return 2
        print(f"[driver] publishing to {publisher.path} every {config.update_interval}s")
        try:
            await asyncio.wait_for(stop.wait(), args.duration or None)
        except TimeoutError:
            pass
        await panel.handle_stop()
        print(f"[driver] {panel.success_message or panel.error}")
        return 0 if panel.error is None else 1
    finally:
        if isinstance(store, (MqttLocationStore, FirebaseLocationStore)):
            await store.close()


def _main() -> int:
    args = _parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )
    return asyncio.run(_run(args))


if __name__ == "__main__":
    raise SystemExit(_main())
