"""
Command line entry point for the prediction attestation agent.

Offers the codec and calldata builder as one-shot commands, and runs the
attestation cycle once or on a schedule:

1. Fetch markets and recorded attestations from Sapience
2. Select markets needing an attestation
3. Build calldata from file-supplied predictions
4. Hand calldata to the submitter
"""

import argparse
import json
import logging
import signal
import sys
import time
from typing import Optional

from attestor.calldata import build_attestation_calldata
from attestor.codec import decode_price, encode_price, parse_encoded_price
from attestor.config import Config
from attestor.errors import AttestationError, DecodeAmbiguousError
from attestor.models import ZERO_BYTES32, MarketReference
from attestor.policy import should_reattest
from attestor.predictions import FilePredictor
from attestor.sapience import SapienceClient
from attestor.scheduler import Scheduler
from attestor.service import AttestationService

EXIT_UNSUPPORTED_CHAIN = 2
EXIT_AMBIGUOUS_HISTORY = 3


# Configure logging
def setup_logging() -> None:
    """Configure logging for the application."""
    log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    log_level = getattr(logging, Config.LOG_LEVEL.upper(), logging.INFO)

    handlers = [logging.StreamHandler(sys.stderr)]

    if Config.LOG_FILE:
        Config.ensure_directories()
        handlers.append(logging.FileHandler(Config.LOG_FILE))

    logging.basicConfig(
        level=log_level,
        format=log_format,
        handlers=handlers
    )


logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="attestor",
        description="Prediction Market Attestation Agent",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Encode a probability as a Q96 sqrt-price
  attestor encode 68

  # Build attest() calldata for market 147 on Base
  attestor calldata --market-address 0xAAAA... --market-id 147 \\
      --probability 68 --reasoning "btc momentum strong" --chain-id 8453

  # Run one attestation cycle with predictions from a file
  attestor run --predictions predictions.json

  # Run every 5 minutes
  attestor run --predictions predictions.json --schedule --interval 300
        """
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    encode_parser = subparsers.add_parser("encode", help="Encode a probability (percent) as a sqrt-price")
    encode_parser.add_argument("probability", type=float)

    decode_parser = subparsers.add_parser("decode", help="Decode a sqrt-price into a probability (percent)")
    decode_parser.add_argument("encoded", help="Encoded price (decimal or 0x hex)")

    calldata_parser = subparsers.add_parser("calldata", help="Build attest() calldata")
    calldata_parser.add_argument("--market-address", required=True)
    calldata_parser.add_argument("--market-id", type=int, required=True)
    calldata_parser.add_argument("--question-id", default="0x" + ZERO_BYTES32.hex())
    calldata_parser.add_argument("--probability", type=float, required=True)
    calldata_parser.add_argument("--reasoning", default="")
    calldata_parser.add_argument(
        "--chain-id",
        type=int,
        default=None,
        help="Chain to attest on (overrides CHAIN_ID config)"
    )

    reattest_parser = subparsers.add_parser("reattest", help="Decide whether to re-attest a market")
    reattest_parser.add_argument("--previous", required=True, help="Recorded encoded price")
    reattest_parser.add_argument("--probability", type=float, required=True)
    reattest_parser.add_argument(
        "--threshold",
        type=float,
        default=None,
        help="Minimum change in percentage points (overrides PROBABILITY_CHANGE_THRESHOLD config)"
    )

    run_parser = subparsers.add_parser("run", help="Run attestation cycles")
    run_parser.add_argument("--predictions", required=True, help="JSON file with predictions by market id")
    run_parser.add_argument("--attester", default=None, help="Wallet address (overrides ATTESTER_ADDRESS config)")
    run_parser.add_argument(
        "--schedule",
        action="store_true",
        help="Run in scheduled mode (continuous execution at intervals)"
    )
    run_parser.add_argument(
        "--interval",
        type=int,
        default=None,
        help="Seconds between cycles (overrides ATTEST_INTERVAL_SECONDS config)"
    )

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    """
    Main entry point.

    Returns:
        Exit code (0 for success, non-zero for failure)
    """
    args = build_parser().parse_args(argv)

    setup_logging()

    if args.command == "encode":
        return _run_encode(args.probability)
    if args.command == "decode":
        return _run_decode(args.encoded)
    if args.command == "calldata":
        return _run_calldata(args)
    if args.command == "reattest":
        return _run_reattest(args)
    return _run_agent(args)


def _run_encode(probability: float) -> int:
    try:
        print(encode_price(probability))
    except AttestationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0


def _run_decode(encoded: str) -> int:
    try:
        print(decode_price(parse_encoded_price(encoded)))
    except AttestationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0


def _run_calldata(args: argparse.Namespace) -> int:
    chain_id = args.chain_id if args.chain_id is not None else Config.CHAIN_ID

    try:
        question_id = bytes.fromhex(args.question_id.removeprefix("0x"))
    except ValueError:
        print(f"Error: invalid question id {args.question_id!r}", file=sys.stderr)
        return 1

    market = MarketReference(
        contract_address=args.market_address,
        market_id=args.market_id,
        question_id=question_id,
    )

    try:
        calldata = build_attestation_calldata(market, args.probability, args.reasoning, chain_id)
    except AttestationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if calldata is None:
        print(f"Error: no EAS contract registered for chain {chain_id}", file=sys.stderr)
        return EXIT_UNSUPPORTED_CHAIN

    output = calldata.to_transaction()
    output["chainId"] = calldata.chain_id
    output["description"] = calldata.human_description
    print(json.dumps(output, indent=2))
    return 0


def _run_reattest(args: argparse.Namespace) -> int:
    threshold = args.threshold if args.threshold is not None else Config.PROBABILITY_CHANGE_THRESHOLD

    try:
        decision = should_reattest(args.previous, args.probability, threshold)
    except DecodeAmbiguousError as e:
        print(f"Ambiguous: {e}", file=sys.stderr)
        return EXIT_AMBIGUOUS_HISTORY
    except AttestationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print("yes" if decision else "no")
    return 0


def _run_agent(args: argparse.Namespace) -> int:
    if args.attester:
        Config.ATTESTER_ADDRESS = args.attester

    is_valid, errors = Config.validate()
    if not is_valid:
        logger.error("Configuration validation failed:")
        for error in errors:
            logger.error(f"  - {error}")
        return 1

    service = AttestationService(
        client=SapienceClient(),
        predictor=FilePredictor(args.predictions),
        attester_address=Config.ATTESTER_ADDRESS,
    )

    if args.schedule:
        return _run_scheduled_mode(service, args.interval)

    try:
        results = service.run_cycle()
    except KeyboardInterrupt:
        logger.info("Cycle interrupted by user")
        return 130

    for result in results:
        print(f"market #{result.market_id}: {result.status} - {result.message}")
    return 0


def _run_scheduled_mode(service: AttestationService, interval_seconds: Optional[int] = None) -> int:
    """
    Run attestation cycles until interrupted.

    Args:
        service: Service whose cycle is scheduled
        interval_seconds: Seconds between cycles. If None, uses Config.ATTEST_INTERVAL_SECONDS

    Returns:
        Exit code (0 for success, 1 for failure)
    """
    logger.info("Starting in scheduled mode")
    scheduler = Scheduler()

    def signal_handler(signum, frame):
        logger.info(f"Received signal {signum}, shutting down gracefully...")
        scheduler.stop(wait=True)
        sys.exit(0)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    if not scheduler.start(service.run_cycle, interval_seconds=interval_seconds):
        logger.error("Failed to start scheduler")
        return 1

    # Run initial cycle immediately
    scheduler.run_now()

    status = scheduler.get_status()
    logger.info(f"Next cycle: {status['next_run_time']}")
    logger.info("Scheduler is running. Press Ctrl+C to stop.")

    try:
        while scheduler.is_running:
            time.sleep(1)
    except KeyboardInterrupt:
        logger.info("Received keyboard interrupt")
        scheduler.stop(wait=True)

    return 0


if __name__ == "__main__":
    sys.exit(main())
