"""
Daily reminder job.

Runs one scheduler tick: every user whose preferred local time has passed
today gets at most one reminder. Run it every few minutes; repeated runs are
no-ops for users already handled today.

Usage:
    Run via CRON:
        */5 * * * * cd /path/to/project && python -m app.jobs.send_reminders

    Or run directly:
        python -m app.jobs.send_reminders
"""
import logging
import sys

from app.core.logging import configure_logging
from app.services.notifications import run_due_reminders

logger = logging.getLogger(__name__)


def main() -> int:
    configure_logging()
    summary = run_due_reminders()
    logger.info(
        "Reminder job finished: dispatched=%s cancelled=%s dropped=%s errors=%s",
        summary.dispatched, summary.cancelled, summary.dropped, summary.errors,
    )
    return 1 if summary.errors else 0


if __name__ == "__main__":
    sys.exit(main())
