#!/usr/bin/env python3
"""
Daily earnings accrual.

Meant to be run once a day by an external scheduler (cron, systemd timer):
accrues one day of yield on every pool allocation, one transaction per user.

    python -m stacksave.scripts.update_earnings [--user USER_ID]
"""
import argparse
import logging
import sys

from stacksave.database import LedgerDB
from stacksave.services.portfolio import PortfolioAllocator

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(message)s')
logger = logging.getLogger("stacksave.earnings")


def main(argv=None):
    parser = argparse.ArgumentParser(description="Accrue one day of pool earnings")
    parser.add_argument('--user', type=int, help="Only this user id")
    args = parser.parse_args(argv)

    allocator = PortfolioAllocator(LedgerDB(pool_size=2))

    if args.user is not None:
        result = allocator.update_earnings(args.user)
        logger.info(
            f"User {args.user}: +{result['total_new_earnings']} "
            f"over {result['updated_allocations']} allocation(s)"
        )
        return 0

    result = allocator.update_all_earnings()
    logger.info(
        f"Processed {result['users_processed']} user(s), +{result['total_new_earnings']} total"
    )
    if result['users_failed']:
        logger.error(f"Failed users: {result['users_failed']}")
        return 1
    return 0


if __name__ == '__main__':
    sys.exit(main())
