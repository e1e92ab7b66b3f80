#!/usr/bin/env python3
"""Entry point for the Kakarot indexer service.

This module provides the main entry point for the indexer that replays
Starknet blocks from a JSON-lines file and writes the rebuilt Ethereum
records to the configured sink.
"""

import argparse
import asyncio
import logging
import os
import sys

# Configure logging before any other imports create loggers
def setup_logging(level: str = "INFO") -> None:
    """Configure logging for the application.

    Args:
        level: Logging level as string (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    log_level: int = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

# Get logger for this module
logger = logging.getLogger(__name__)

from kakarot_indexer.errors import ConfigurationError
from kakarot_indexer.indexer import Indexer


async def main() -> None:
    """Main entry point for the Kakarot indexer service.

    Parses startup arguments, loads configuration from environment,
    and runs the indexer until the input is exhausted.

    Raises:
        SystemExit: On configuration or runtime errors
    """
    # Parse startup arguments
    parser: argparse.ArgumentParser = argparse.ArgumentParser(
        description="Kakarot Indexer - Rebuild Ethereum blocks from Starknet activity",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""Environment Variables:
  STREAM_URL           - Starknet event stream (default: https://goerli.starknet.a5a.ch)
  APIBARA_AUTH_TOKEN   - Authentication token of the stream
  STARTING_BLOCK       - First block to index (default: 930793)
  EVENT_SELECTORS      - Comma separated event selectors (default: transaction_executed)
  STARKNET_NETWORK     - Starknet JSON-RPC endpoint (optional, static header fields without it)
  KAKAROT_ADDRESS      - Kakarot contract address (required with STARKNET_NETWORK)
  REQUEST_TIMEOUT      - RPC request timeout in seconds (default: 30)
  RETRY_COUNT          - Retries on transient RPC failures (default: 3)
  COINBASE_ADDRESS     - Static coinbase (default: the block sequencer address)
  BASE_FEE_PER_GAS     - Static base fee (default: 100 gwei)
  BLOCK_GAS_LIMIT      - Static gas limit (default: 30000000)
  SINK_TYPE            - Output sink (default: console)
  LOG_LEVEL            - Logging level (can be overridden with --log-level)
        """
    )
    parser.add_argument(
        "--input",
        required=True,
        help="JSON-lines file with one Starknet block per line"
    )
    parser.add_argument(
        "--log-level",
        default=os.environ.get("LOG_LEVEL", "INFO"),
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Set the logging level (default: INFO)"
    )
    args: argparse.Namespace = parser.parse_args()

    # Set up logging with specified level
    setup_logging(args.log_level)

    logger.info("=== Kakarot Indexer Starting ===")
    logger.info("Loading configuration from environment...")

    try:
        indexer: Indexer = Indexer.from_env(args.input)
        logger.info("Indexer instance created, starting main loop...")
        await indexer.run()

    except ConfigurationError as e:
        logger.error(f"Configuration Error: {e}")
        logger.error("Please check your environment variables:")
        logger.error("  - STARTING_BLOCK: First block to index")
        logger.error("  - EVENT_SELECTORS: Comma separated felts")
        logger.error("  - STARKNET_NETWORK: Starknet JSON-RPC endpoint")
        logger.error("  - KAKAROT_ADDRESS: Required with STARKNET_NETWORK")
        logger.error("  - REQUEST_TIMEOUT / RETRY_COUNT: Positive integers")
        sys.exit(1)

    except KeyboardInterrupt:
        logger.info("\nReceived interrupt signal, shutting down gracefully...")
        sys.exit(0)

    except Exception as e:
        logger.error(f"Fatal Error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    # Run the main async function
    asyncio.run(main())
