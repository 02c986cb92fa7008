import asyncio
import signal

import structlog
from prometheus_client import start_http_server
from rich.console import Console
from rich.live import Live

from costtop.cli import parse_args
from costtop.config import Config
from costtop.dashboard import Dashboard
from costtop.fetch import FetchAggregator
from costtop.logging import setup_logging
from costtop.metrics import FetchMetrics
from costtop.tui.keys import KeyReader
from costtop.tui.render import render

logger = structlog.get_logger()


def _parse_listen_address(addr: "str") -> "tuple[str, int]":
    """
    parses listen address in format ':9186' or '0.0.0.0:9186'.
    """
    if addr.startswith(":"):
        return ("0.0.0.0", int(addr[1:]))

    host, port = addr.rsplit(":", 1)
    return (host, int(port))


async def run_dashboard(config: "Config", metrics: "FetchMetrics | None") -> "None":
    dashboard = Dashboard(
        config.api_keys,
        aggregator=FetchAggregator(config.lookback_days),
        metrics=metrics,
        settings=config.layout,
        refresh_interval=config.refresh_interval,
    )
    console = Console()

    loop = asyncio.get_running_loop()
    # ctrl-c and SIGTERM stop the draw loop
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, dashboard.request_quit)

    with KeyReader() as keys, Live(
        console=console,
        screen=True,
        auto_refresh=False,
        transient=True,
    ) as live:

        def draw() -> "None":
            width, height = console.size
            frame = dashboard.frame(width, height)
            live.update(render(frame, width, height), refresh=True)

        try:
            await dashboard.run(keys.get_key, draw)
        finally:
            logger.info("shutting_down")
            await dashboard.close()
            logger.info("shutdown_complete")


def main() -> "None":
    config = parse_args()
    setup_logging(config.log_level, config.log_file)

    metrics: "FetchMetrics | None" = None
    if config.metrics_listen_address:
        metrics = FetchMetrics()
        host, port = _parse_listen_address(config.metrics_listen_address)
        start_http_server(port, addr=host)
        logger.info("metrics_server_started", host=host, port=port)

    asyncio.run(run_dashboard(config, metrics))


if __name__ == "__main__":
    main()
