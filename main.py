"""
ORACLE RELAY — Main Entry Point
CLI: serve the API, run a single publish pass, publish continuously, or
exercise the end-to-end alert flow.
"""
import argparse
import asyncio
import signal
import sys
from typing import List, Optional

import uvicorn

from oracle_relay.config.settings import get_settings
from oracle_relay.data.errors import OracleRelayError
from oracle_relay.data.models import AlertCondition, AlertStatus
from oracle_relay.services import OracleRelayServices
from oracle_relay.utils.helpers import format_price
from oracle_relay.utils.logger import setup_logging, get_logger

logger = get_logger("main")


def run_api() -> int:
    """Run the FastAPI application."""
    settings = get_settings()
    logger.info("starting_oracle_relay", version=settings.version, port=settings.port)
    uvicorn.run(
        "oracle_relay.api.app:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
    return 0


def _symbols(raw: Optional[str]) -> Optional[List[str]]:
    if not raw:
        return None
    return [s.strip().upper() for s in raw.split(",") if s.strip()]


async def publish_once(symbols: Optional[List[str]], include_sentiment: bool) -> int:
    services = OracleRelayServices()
    await services.initialize()
    try:
        report = await services.publisher.publish_all(symbols or services.default_symbols)
        for result in report.results:
            print(f"  ✓ {result.symbol}: ${result.reading.display_price} ({result.reading.source.value}) {result.tx_handle[:18]}")
        for symbol, error in report.failures.items():
            print(f"  ✗ {symbol}: {error}")
        if include_sentiment:
            summary = await services.sentiment_publisher.publish_all(services.settings.publisher.sentiment_symbol_list)
            print(f"  sentiment: {len(summary['sentiment'])} published, fear/greed tx: {summary['fear_greed_tx']}")
        return 0 if report.results else 1
    finally:
        await services.shutdown()


async def publish_continuously(symbols: Optional[List[str]], interval_ms: Optional[int]) -> int:
    services = OracleRelayServices()
    await services.initialize()
    scheduler = services.scheduler

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, scheduler.stop)
        except NotImplementedError:
            # Windows event loops do not support signal handlers
            pass

    try:
        scheduler.start(symbols or services.default_symbols, interval_ms)
        await scheduler.wait()
    finally:
        await services.shutdown()
    status = scheduler.status()
    logger.info("continuous_publishing_finished", cycles=status["cycles_run"], published=status["total_publishes"])
    return 0


async def run_alert_flow(symbol: str) -> int:
    """Create an alert that must trigger, publish, and verify it fired once."""
    services = OracleRelayServices()
    await services.initialize()
    try:
        reading = await services.aggregator.fetch_best(symbol)
        print(f"Current {reading.symbol}: ${reading.display_price} ({reading.source.value})")

        # 5% above current with BELOW: already crossed
        threshold = reading.price * 105 // 100
        alert_id, tx_handle = await services.alert_store.create_alert(
            user_address="0x0000000000000000000000000000000000000001",
            asset=reading.symbol,
            condition=AlertCondition.BELOW,
            threshold_price=threshold,
            decimals=reading.decimals,
        )
        print(f"Alert {alert_id[:10]}... BELOW ${format_price(threshold, reading.decimals)} (tx {tx_handle[:18]})")

        result = await services.publisher.publish_one(reading.symbol)
        print(f"Published ${result.reading.display_price} (tx {result.tx_handle[:18]})")

        # Redundant manual check must not re-trigger
        again = await services.evaluator.check_alerts(reading.symbol, result.reading.price, result.reading.decimals)
        alert = await services.alert_store.get_alert(alert_id)
        ok = alert is not None and alert.status == AlertStatus.TRIGGERED and alert_id not in again
        print(f"Alert status: {alert.status.value if alert else 'MISSING'} -> {'PASS' if ok else 'FAIL'}")
        return 0 if ok else 1
    except OracleRelayError as e:
        logger.error("alert_flow_failed", error=str(e))
        return 1
    finally:
        await services.shutdown()


def main(argv: Optional[List[str]] = None) -> int:
    if argv is None:
        argv = sys.argv[1:]
    parser = argparse.ArgumentParser(prog="oracle-relay", description="Multi-source price relay")
    subparsers = parser.add_subparsers(dest="command", help="command")

    subparsers.add_parser("serve", help="Run the HTTP API")

    p_publish = subparsers.add_parser("publish", help="Run a single publish pass")
    p_publish.add_argument("--symbols", help="Comma-separated symbols (default: configured list)")
    p_publish.add_argument("--sentiment", action="store_true", help="Also publish sentiment and fear/greed")

    p_run = subparsers.add_parser("run", help="Publish continuously until interrupted")
    p_run.add_argument("--symbols", help="Comma-separated symbols (default: configured list)")
    p_run.add_argument("--interval", type=int, help="Interval in milliseconds")

    p_alerts = subparsers.add_parser("test-alerts", help="End-to-end alert creation and trigger check")
    p_alerts.add_argument("--symbol", default="ETH")

    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return 0

    setup_logging()
    if args.command == "serve":
        return run_api()
    if args.command == "publish":
        return asyncio.run(publish_once(_symbols(args.symbols), args.sentiment))
    if args.command == "run":
        return asyncio.run(publish_continuously(_symbols(args.symbols), args.interval))
    if args.command == "test-alerts":
        return asyncio.run(run_alert_flow(args.symbol))
    return 2


if __name__ == "__main__":
    sys.exit(main())
