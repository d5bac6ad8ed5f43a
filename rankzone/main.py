"""Runtime entrypoint: build trackers from settings and drive their scans."""

from __future__ import annotations

import argparse
import asyncio
import sys
from dataclasses import dataclass

import orjson
import structlog
import uvicorn

from rankzone.api import create_app
from rankzone.config.settings import Settings, create_default_config, load_settings
from rankzone.connectors import BinanceMarketClient, BinanceMetricSource, SupplyDataLoader
from rankzone.lifecycle import LifecycleManager, TrackingStateStore
from rankzone.monitoring import Metrics, configure_logging
from rankzone.scheduler import ScanScheduler
from rankzone.tracker import Tracker

log = structlog.get_logger(__name__)


@dataclass
class Runtime:
    """Everything built from one Settings object."""

    client: BinanceMarketClient
    trackers: dict[str, Tracker]
    schedulers: dict[str, ScanScheduler]
    metrics: Metrics


def build_runtime(settings: Settings, metrics: Metrics | None = None) -> Runtime:
    metrics = metrics or Metrics()
    client = BinanceMarketClient(settings.binance, settings.monitoring)
    supply = SupplyDataLoader(settings.storage.supply_path)
    supply.load()
    store = TrackingStateStore(settings.storage.state_path)
    manager = LifecycleManager()

    trackers: dict[str, Tracker] = {}
    schedulers: dict[str, ScanScheduler] = {}
    for name, config in settings.enabled_trackers().items():
        source = BinanceMetricSource(
            client,
            supply,
            n_days=config.n_days,
            quote_asset=settings.binance.quote_asset,
            max_concurrency=settings.binance.max_concurrent_requests,
        )
        tracker = Tracker(
            state=store.load(name, config),
            source=source,
            store=store,
            kline_source=source,
            manager=manager,
            metrics=metrics,
        )
        trackers[name] = tracker
        schedulers[name] = ScanScheduler(tracker, config.scan_interval_sec, metrics=metrics)
    return Runtime(client=client, trackers=trackers, schedulers=schedulers, metrics=metrics)


async def run_async(settings: Settings) -> None:
    runtime = build_runtime(settings)
    if not runtime.trackers:
        log.error("no_trackers_enabled")
        return
    if settings.monitoring.metrics_enabled:
        try:
            runtime.metrics.start(settings.monitoring.metrics_port)
        except Exception as exc:
            log.warning("metrics_start_failed", error=str(exc))

    log.info(
        "runtime_config",
        trackers={
            name: {"kind": t.state.kind.value, "top_k": t.state.config.top_k}
            for name, t in runtime.trackers.items()
        },
    )

    async def api_server() -> None:
        try:
            config = uvicorn.Config(
                create_app(runtime.trackers, runtime.schedulers),
                host="127.0.0.1",
                port=settings.monitoring.api_port,
                log_level="warning",
            )
            await uvicorn.Server(config).serve()
        except Exception as exc:
            log.warning("api_server_failed", error=str(exc))

    tasks = [scheduler.start() for scheduler in runtime.schedulers.values()]
    if settings.monitoring.api_enabled:
        tasks.append(asyncio.create_task(api_server()))
    try:
        results = await asyncio.gather(*tasks, return_exceptions=True)
        for result in results:
            if isinstance(result, BaseException) and not isinstance(
                result, asyncio.CancelledError
            ):
                log.error("task_terminated", error=repr(result))
    finally:
        for scheduler in runtime.schedulers.values():
            await scheduler.stop()
        await runtime.client.close()


async def scan_once_async(settings: Settings, tracker_names: list[str] | None = None) -> dict:
    """Run a single tick for the selected trackers and return their views."""
    runtime = build_runtime(settings)
    try:
        selected = tracker_names or list(runtime.trackers)
        views = {}
        for name in selected:
            tracker = runtime.trackers.get(name)
            if tracker is None:
                log.warning("unknown_tracker", tracker=name)
                continue
            await tracker.run_tick()
            views[name] = tracker.view()
        return views
    finally:
        await runtime.client.close()


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Ranked watchlists with cache/recycle zones.")
    parser.add_argument("--config", default=None, help="Path to config.yaml")
    subparsers = parser.add_subparsers(dest="command")
    subparsers.add_parser("run", help="Run all enabled trackers (default)")
    scan = subparsers.add_parser("scan-once", help="Run one tick and print the views as JSON")
    scan.add_argument("trackers", nargs="*", help="Tracker names (default: all enabled)")
    init = subparsers.add_parser("init-config", help="Write a default config file")
    init.add_argument("--path", default="config.yaml")
    args = parser.parse_args(argv)

    if args.command == "init-config":
        create_default_config(args.path)
        print(f"wrote {args.path}")
        return

    settings = load_settings(args.config)
    configure_logging(settings.monitoring.log_level, settings.storage.logs_path, settings.monitoring)

    if args.command == "scan-once":
        views = asyncio.run(scan_once_async(settings, args.trackers))
        sys.stdout.buffer.write(orjson.dumps(views, option=orjson.OPT_INDENT_2) + b"\n")
        return
    asyncio.run(run_async(settings))


if __name__ == "__main__":
    main()
