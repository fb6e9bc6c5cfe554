#!/usr/bin/env python
import argparse
import json
import logging
import sys
from loguru import logger

from bundler.config import (
    LOG_LEVEL,
    PAYER_PRIVATE_KEY,
    PAYER_KEYPAIR_PATH,
    SubmitterSettings,
)
from bundler.solana.integration import BundleClient
from bundler.utils.wallet_loader import load_payer_keypair

def setup_logging():
    """Configure structured logging with loguru."""
    logger.remove()
    logger.add(
        "logs/bundler_{time}.log",
        rotation="1 day",
        retention="14 days",
        level=LOG_LEVEL,
        format="{time:YYYY-MM-DD HH:mm:ss} | {level} | {message} | {extra}",
        serialize=True,
    )

    # Also send logs to stderr so stdout carries only the result
    logger.add(
        sys.stderr,
        level=LOG_LEVEL,
        format="{time:YYYY-MM-DD HH:mm:ss} | {level} | {message}"
    )

    # solana and httpx log through stdlib logging
    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)

class InterceptHandler(logging.Handler):
    """Forwards stdlib log records from the RPC libraries to loguru."""
    def emit(self, record):
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = logging.currentframe(), 2
        while frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(
            level, record.getMessage()
        )

def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Submit a transaction bundle to relay endpoints")
    parser.add_argument(
        "transactions_file",
        help="File with one transport-encoded signed transaction per line, in bundle order"
    )
    parser.add_argument(
        "--fee", type=int,
        help="Base priority fee in lamports for this bundle"
    )
    parser.add_argument(
        "--signature", "-s", action="append", default=[],
        help="Signature of a bundled transaction to track during confirmation (repeatable)"
    )
    parser.add_argument(
        "--endpoint", "-e", action="append", default=[],
        help="Relay endpoint URL, in priority order (repeatable, overrides RELAY_ENDPOINTS)"
    )
    parser.add_argument(
        "--timeout-ms", type=int,
        help="Confirmation timeout in milliseconds"
    )
    parser.add_argument(
        "--no-confirm", action="store_true",
        help="Return after submission without waiting for confirmation"
    )
    return parser.parse_args(argv)

def read_transactions(path: str):
    with open(path, 'r') as f:
        return [line.strip() for line in f if line.strip()]

async def main(argv=None) -> int:
    """Submit a bundle from the command line and print the result as JSON."""
    args = parse_args(argv)

    setup_logging()

    transactions = read_transactions(args.transactions_file)
    if not transactions:
        logger.error(f"No transactions found in {args.transactions_file}")
        return 1

    try:
        payer = load_payer_keypair(PAYER_PRIVATE_KEY, PAYER_KEYPAIR_PATH)
    except ValueError as e:
        logger.error(f"Cannot load payer wallet: {str(e)}")
        return 1

    client = BundleClient(payer=payer, endpoints=args.endpoint or None, settings=SubmitterSettings())

    try:
        result = await client.send(transactions, fee_override=args.fee, signatures=args.signature)
        output = {"bundle": result.model_dump()}

        if result.success and not args.no_confirm:
            outcome = await client.confirm(result, timeout_override=args.timeout_ms)
            output["confirmation"] = outcome.model_dump()
            succeeded = outcome.confirmed
        else:
            succeeded = result.success
    finally:
        await client.close()

    print(json.dumps(output, indent=2, default=str))
    return 0 if succeeded else 1
