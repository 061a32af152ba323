"""
Prometheus metrics server for the procurement core

Exposes every metric in ``kernel.metrics`` at /metrics in Prometheus text
format. Defaults come from the PETAGRI_* settings.

Usage:
    python -m petagri_procurement.metrics_server --port 9090
"""

import argparse
import time

from petagri_procurement.kernel.logging import configure_logging, get_logger
from petagri_procurement.kernel.metrics import start_metrics_server
from petagri_procurement.kernel.settings import SettingsHolder

logger = get_logger(__name__)


def main() -> None:
    settings = SettingsHolder.get()

    parser = argparse.ArgumentParser(description="Petagri Procurement metrics server")
    parser.add_argument(
        "--port",
        type=int,
        default=settings.metrics_port,
        help=f"Port to listen on (default: {settings.metrics_port})",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default=settings.log_level,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
    )
    parser.add_argument(
        "--json-logs",
        action="store_true",
        default=settings.json_logs,
        help="Output logs in JSON format",
    )
    args = parser.parse_args()

    configure_logging(json_output=args.json_logs, log_level=args.log_level)

    logger.info(
        "Starting Prometheus metrics server",
        port=args.port,
        endpoint=f"http://0.0.0.0:{args.port}/metrics",
    )
    start_metrics_server(port=args.port)

    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        logger.info("Shutting down metrics server")


if __name__ == "__main__":
    main()
