"""Weekly question assignment job.

Run from cron / a scheduler once a week:

    python -m roundtable.workers.weekly_assignments [--newsletter-id ID]
"""
import argparse
import logging
import sys

from roundtable.core.config import settings
from roundtable.core.database import Database
from roundtable.core.logging import configure_logging
from roundtable.features.assignments.weekly import assign_weekly_questions

logger = logging.getLogger("roundtable.workers.weekly")


def run(db: Database, newsletter_id: str | None = None) -> int:
    summaries = assign_weekly_questions(db, newsletter_id=newsletter_id)
    if summaries is None:
        return 1
    for summary in summaries:
        logger.info(
            f"[weekly] {summary.newsletter_id} {summary.week_id}: "
            f"{len(summary.assignments)} assigned, {summary.exhausted_users} exhausted"
        )
    return 0


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Assign this week's questions")
    parser.add_argument("--newsletter-id", default=None, help="Only this newsletter (default: all active)")
    args = parser.parse_args(argv)

    configure_logging(settings.ENV)
    db = Database.from_settings(settings)
    try:
        db.create_all()
        return run(db, args.newsletter_id)
    finally:
        db.dispose()


if __name__ == "__main__":
    sys.exit(main())
