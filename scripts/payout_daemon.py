# scripts/payout_daemon.py
from __future__ import annotations

import logging
import time

from settings import settings
from app.workers.payout_worker import process_once
from services.metrics import increment_scheduler_run


logger = logging.getLogger("payout_daemon")


def _interval_seconds() -> int:
    return max(1, int(settings.PAYOUT_INTERVAL_SECONDS))


def main() -> None:
    logging.basicConfig(level=settings.LOG_LEVEL, format="%(levelname)s %(name)s: %(message)s")
    interval = _interval_seconds()
    logger.info("Payout daemon starting; interval=%ss mode=%s", interval, settings.PAYOUT_MODE)

    while True:
        try:
            summary = process_once()
        except KeyboardInterrupt:
            logger.info("Payout daemon exiting")
            raise
        except Exception:
            # listing due referrals failed; try again next tick
            increment_scheduler_run("error")
            logger.exception("Payout run failed")
        else:
            logger.info(
                "Payout run | processed=%s failed=%s skipped=%s",
                summary.get("processed"),
                summary.get("failed"),
                summary.get("skipped"),
            )
        time.sleep(interval)


if __name__ == "__main__":
    main()
