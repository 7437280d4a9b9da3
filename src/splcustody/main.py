"""Command line entry point - runs the custody demo flow.

Provisions a wallet for a user, prepares token accounts, converts an amount
into the target asset through the stable asset and prints the results.
"""

import argparse
import asyncio
import logging
import sys
import uuid
from decimal import Decimal
from typing import Optional

from splcustody.config import get_settings
from splcustody.errors import ConfigurationError, CustodyError, PartialSwapError
from splcustody.service import CustodyService

logger = logging.getLogger(__name__)


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Custodial SPL token demo")
    parser.add_argument("--user-id", default=None, help="User id (random if omitted)")
    parser.add_argument(
        "--amount",
        type=int,
        default=1_000_000,
        help="Base units of the source asset to convert",
    )
    parser.add_argument(
        "--airdrop",
        type=Decimal,
        default=None,
        help="Target asset amount to send from the treasury after conversion",
    )
    return parser.parse_args(argv)


async def run(args: argparse.Namespace) -> int:
    settings = get_settings()

    log_level = logging.DEBUG if settings.debug else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    logger.info("Starting splcustody...")
    logger.info(f"Settings: {settings.get_safe_dict()}")

    service = CustodyService.from_settings(settings)
    user_id = args.user_id or uuid.uuid4().hex[:12]

    try:
        system_balance = await service.custody.system_balance()
        print(f"System wallet {service.custody.system_address}: {system_balance} lamports")

        wallet = await service.register_user(user_id)
        print(f"User {user_id} wallet: {wallet.address} (funded by {wallet.funding_signature})")

        stable_account = await service.ensure_token_account(user_id, settings.stablecoin_mint())
        print(f"Stable token account: {stable_account}")

        if settings.target_token_mint:
            target_account = await service.ensure_token_account(user_id)
            print(f"Target token account: {target_account}")

            try:
                first, second = await service.convert_to_target(user_id, args.amount)
            except PartialSwapError as e:
                print(f"Conversion stopped after first hop, {e.stranded_amount} stable units held")
                return 1

            for hop, result in enumerate((first, second), start=1):
                print(
                    f"Hop {hop}: {result.from_amount} {result.from_asset} -> "
                    f"{result.to_amount} {result.to_asset} "
                    f"(min {result.min_to_amount}, sig {result.signature})"
                )

            if args.airdrop is not None:
                signature = await service.airdrop(user_id, args.airdrop)
                print(f"Airdropped {args.airdrop} target tokens: {signature}")
        else:
            logger.warning("SOLANA_TARGET_TOKEN_MINT not set - skipping conversion")

        return 0

    except CustodyError as e:
        logger.error(f"Demo failed: {e}")
        return 1

    finally:
        await service.close()


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point."""
    args = parse_args(argv)
    try:
        return asyncio.run(run(args))
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2
    except KeyboardInterrupt:
        logger.info("Keyboard interrupt received")
        return 130


if __name__ == "__main__":
    sys.exit(main())
