import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import structlog

from venue_booking.dependencies import get_notifier, get_scheduler
from venue_booking.logging_config import setup_logging

setup_logging()
logger = structlog.get_logger(__name__)


def main() -> None:
    """
    Run one expiry sweep (expire overdue bookings, send due payment
    reminders) and exit. Meant for cron when the in-process sweeper is off.
    """
    logger.info("expiry_sweep_script_started")

    try:
        report = get_scheduler().sweep()
        logger.info(
            "expiry_sweep_script_completed",
            expired=len(report.expired),
            skipped=len(report.skipped),
            reminders_sent=report.reminders_sent,
        )
    except Exception:
        logger.exception("expiry_sweep_script_failed")
        raise
    finally:
        get_notifier().close()


if __name__ == "__main__":
    main()
