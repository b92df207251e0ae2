from __future__ import annotations

import argparse
import logging

from settings import settings
from services.reconcile import run_reconcile


def main() -> None:
    parser = argparse.ArgumentParser(description="Run subscription reconciliation once.")
    parser.add_argument(
        "--no-sync",
        action="store_true",
        help="only sweep expired grace periods, skip the Stripe re-sync",
    )
    args = parser.parse_args()

    logging.basicConfig(level=settings.LOG_LEVEL, format="%(levelname)s %(name)s: %(message)s")
    summary = run_reconcile(sync_provider=not args.no_sync)

    print(
        "counts:",
        f"expired_grace_periods={summary['expired_grace_periods']}",
        f"synced_subscriptions={summary['synced_subscriptions']}",
        f"errors={summary['errors']}",
    )


if __name__ == "__main__":
    main()
