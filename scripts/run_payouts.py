from __future__ import annotations

import argparse
import logging

from settings import settings
from app.workers.payout_worker import process_once


def main() -> None:
    parser = argparse.ArgumentParser(description="Run the referral payout scheduler once.")
    parser.add_argument("--log-level", default=settings.LOG_LEVEL)
    args = parser.parse_args()

    logging.basicConfig(level=args.log_level, format="%(levelname)s %(name)s: %(message)s")

    # a failure to list due referrals propagates and exits non-zero
    summary = process_once()

    print(
        "counts:",
        f"processed={summary['processed']}",
        f"failed={summary['failed']}",
        f"skipped={summary['skipped']}",
    )


if __name__ == "__main__":
    main()
