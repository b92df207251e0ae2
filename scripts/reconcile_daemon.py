# scripts/reconcile_daemon.py
from __future__ import annotations

import logging
import time

from settings import settings
from services.reconcile import run_reconcile


logger = logging.getLogger("reconcile_daemon")


def _interval_seconds() -> int:
    return max(1, int(settings.RECONCILE_INTERVAL_SECONDS))


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    interval = _interval_seconds()
    logger.info("Reconcile daemon starting; interval=%ss", interval)

    while True:
        try:
            summary = run_reconcile()
        except KeyboardInterrupt:
            logger.info("Reconcile daemon exiting")
            raise
        except Exception:
            logger.exception("Reconcile daemon failed")
            raise

        logger.info(
            "Reconcile run | expired_grace_periods=%s synced_subscriptions=%s errors=%s",
            summary.get("expired_grace_periods"),
            summary.get("synced_subscriptions"),
            summary.get("errors"),
        )
        time.sleep(interval)


if __name__ == "__main__":
    main()
