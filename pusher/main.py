#!/usr/bin/env python3
"""Price Pusher.

Keeps Pyth price feeds on an EVM chain in sync with the Hermes price service,
pushing batched updates only when staleness, deviation or confidence
thresholds are crossed.

Start with CLI arguments or env vars. CLI arguments take precedence.
"""

import argparse
import asyncio
import logging
import os
import signal
import sys

from .src.Controller import Controller
from .src.ContractUtility import ContractUtility
from .src.EvmPriceListener import EvmPriceListener
from .src.EvmPricePusher import EvmPricePusher
from .src.HermesClient import DEFAULT_ENDPOINT, HermesClient
from .src.HermesPriceListener import HermesPriceListener
from .src.PriceConfig import PriceConfig, PriceConfigError, read_price_config_file
from .src.PusherMetrics import PricePusherMetrics, PusherMetrics

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)

# Extra time the controller allows on top of the receipt timeout, covering the
# Hermes fetch and transaction submission.
PUSH_TIMEOUT_MARGIN = 30.0


def read_private_key(private_key_file: str | None) -> str | None:
    """Read the signing key from a file, falling back to PRIVATE_KEY.

    :param private_key_file: Path to a file holding a hex private key.
    :returns: Private key string, or None if none is configured.
    """
    if private_key_file:
        with open(private_key_file, "r") as file:
            return file.read().strip()
    return os.environ.get("PRIVATE_KEY") or None


async def run(
    args: argparse.Namespace,
    price_configs: list[PriceConfig],
    private_key: str,
) -> None:
    """Wire listeners, pusher and controller, then run until signalled.

    :param args: Parsed CLI arguments.
    :param price_configs: Feeds to keep in sync.
    :param private_key: Hex private key used to sign updates.
    """
    price_ids = [config.id for config in price_configs]

    contract_utility = ContractUtility(args.endpoint, private_key)
    pyth_contract = contract_utility.get_pyth_contract(args.pyth_contract_address)
    hermes_client = HermesClient(args.price_service_endpoint)

    source_listener = HermesPriceListener(
        hermes_client, price_ids, polling_frequency=args.polling_frequency
    )
    target_listener = EvmPriceListener(
        pyth_contract, price_ids, polling_frequency=args.polling_frequency
    )
    price_pusher = EvmPricePusher(
        contract_utility.w3,
        pyth_contract,
        hermes_client,
        gas_price_multiplier=args.gas_price_multiplier,
        gas_limit=args.gas_limit,
        receipt_timeout=args.push_timeout,
    )

    metrics: PusherMetrics | None = None
    if args.enable_metrics:
        pusher_metrics = PricePusherMetrics()
        pusher_metrics.start_server(args.metrics_port)
        metrics = pusher_metrics

    controller = Controller(
        price_configs,
        source_listener,
        target_listener,
        price_pusher,
        pushing_frequency=args.pushing_frequency,
        metrics=metrics,
        push_timeout=args.push_timeout + PUSH_TIMEOUT_MARGIN,
    )

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, controller.stop)
        except NotImplementedError:
            # Signal handlers are unavailable on some platforms
            pass

    try:
        await controller.start()
    finally:
        await hermes_client.aclose()


def main() -> None:
    """Main entry point for the Price Pusher CLI."""
    parser = argparse.ArgumentParser(
        description="Price Pusher: push Pyth price updates to an EVM chain",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m pusher.main --price-config-file price-config.yaml \\
      --endpoint https://rpc.example.org \\
      --pyth-contract-address 0x4305FB66699C3B2702D4d05CF36551390A4c69C6 \\
      --private-key-file key.txt

Environment variables (CLI args take precedence):
  PRICE_CONFIG_FILE, PRICE_SERVICE_ENDPOINT, RPC_URL, PYTH_CONTRACT_ADDRESS,
  PRIVATE_KEY, PUSHING_FREQUENCY, POLLING_FREQUENCY, GAS_PRICE_MULTIPLIER,
  GAS_LIMIT, PUSH_TIMEOUT, METRICS_PORT
""",
    )

    parser.add_argument(
        "--price-config-file",
        dest="price_config_file",
        type=str,
        help="YAML file listing the feeds and their update thresholds",
        default=os.environ.get("PRICE_CONFIG_FILE"),
    )

    parser.add_argument(
        "--price-service-endpoint",
        dest="price_service_endpoint",
        type=str,
        help=f"Hermes endpoint (default: {DEFAULT_ENDPOINT})",
        default=os.environ.get("PRICE_SERVICE_ENDPOINT") or DEFAULT_ENDPOINT,
    )

    parser.add_argument(
        "--endpoint",
        type=str,
        help="RPC endpoint of the target chain",
        default=os.environ.get("RPC_URL"),
    )

    parser.add_argument(
        "--pyth-contract-address",
        dest="pyth_contract_address",
        type=str,
        help="Address of the Pyth contract on the target chain",
        default=os.environ.get("PYTH_CONTRACT_ADDRESS"),
    )

    parser.add_argument(
        "--private-key-file",
        dest="private_key_file",
        type=str,
        help="File holding the hex private key (default: PRIVATE_KEY env var)",
        default=None,
    )

    parser.add_argument(
        "--pushing-frequency",
        dest="pushing_frequency",
        type=float,
        help="Seconds between update cycles (minimum: 1, default: 10)",
        default=float(os.environ.get("PUSHING_FREQUENCY") or "10"),
    )

    parser.add_argument(
        "--polling-frequency",
        dest="polling_frequency",
        type=float,
        help="Seconds between listener polls (minimum: 1, default: 5)",
        default=float(os.environ.get("POLLING_FREQUENCY") or "5"),
    )

    parser.add_argument(
        "--gas-price-multiplier",
        dest="gas_price_multiplier",
        type=float,
        help="Multiplier applied to the node's gas price (default: 1.0)",
        default=float(os.environ.get("GAS_PRICE_MULTIPLIER") or "1.0"),
    )

    parser.add_argument(
        "--gas-limit",
        dest="gas_limit",
        type=int,
        help="Fixed gas limit for update transactions (default: estimate)",
        default=int(os.environ["GAS_LIMIT"]) if os.environ.get("GAS_LIMIT") else None,
    )

    parser.add_argument(
        "--push-timeout",
        dest="push_timeout",
        type=float,
        help="Seconds to wait for an update transaction receipt (default: 120)",
        default=float(os.environ.get("PUSH_TIMEOUT") or "120"),
    )

    parser.add_argument(
        "--enable-metrics",
        dest="enable_metrics",
        action="store_true",
        help="Expose Prometheus metrics",
    )

    parser.add_argument(
        "--metrics-port",
        dest="metrics_port",
        type=int,
        help="Port for the Prometheus metrics endpoint (default: 9091)",
        default=int(os.environ.get("METRICS_PORT") or "9091"),
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose (DEBUG) logging",
    )

    args = parser.parse_args()

    # Configure logging level
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    # Validate arguments
    if not args.price_config_file:
        parser.error("--price-config-file is required")

    if not args.endpoint:
        parser.error("--endpoint is required")

    if not args.pyth_contract_address:
        parser.error("--pyth-contract-address is required")

    if args.pushing_frequency < 1:
        parser.error("--pushing-frequency must be at least 1 second")

    if args.polling_frequency < 1:
        parser.error("--polling-frequency must be at least 1 second")

    if args.gas_price_multiplier <= 0:
        parser.error("--gas-price-multiplier must be positive")

    if args.push_timeout <= 0:
        parser.error("--push-timeout must be positive")

    try:
        price_configs = read_price_config_file(args.price_config_file)
    except (OSError, PriceConfigError) as e:
        parser.error(f"Invalid price config file: {e}")

    if not price_configs:
        parser.error("At least one price feed must be configured")

    try:
        private_key = read_private_key(args.private_key_file)
    except OSError as e:
        parser.error(f"Cannot read private key file: {e}")

    if not private_key:
        parser.error("A private key is required (--private-key-file or PRIVATE_KEY)")

    # Log configuration
    logger.info("=" * 60)
    logger.info("Price Pusher")
    logger.info("=" * 60)
    logger.info(f"Price Service:     {args.price_service_endpoint}")
    logger.info(f"RPC Endpoint:      {args.endpoint}")
    logger.info(f"Pyth Contract:     {args.pyth_contract_address}")
    logger.info(f"Price Feeds:       {', '.join(c.alias for c in price_configs)}")
    logger.info(f"Pushing Frequency: {args.pushing_frequency}s")
    logger.info(f"Polling Frequency: {args.polling_frequency}s")
    logger.info(f"Gas Multiplier:    {args.gas_price_multiplier}")
    logger.info(
        f"Push Timeout:      {args.push_timeout}s receipt, "
        f"{args.push_timeout + PUSH_TIMEOUT_MARGIN}s total"
    )
    logger.info(
        f"Metrics:           port {args.metrics_port}"
        if args.enable_metrics
        else "Metrics:           disabled"
    )
    logger.info("=" * 60)

    try:
        asyncio.run(run(args, price_configs, private_key))
    except KeyboardInterrupt:
        logger.info("Shutting down...")
    except Exception as e:
        logger.error(f"Fatal error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
