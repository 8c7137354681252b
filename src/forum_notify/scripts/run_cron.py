# src/forum_notify/scripts/run_cron.py
"""
Scheduled job that mails forum notifications and daily digests.

Run it every few minutes from cron or a systemd timer:

    forum-notify-cron            # one notification pass
    forum-notify-cron --prune    # also drop read records that aged out
    forum-notify-cron --dry-run  # compose mails in memory and roll back every write
"""

from __future__ import annotations

import argparse
import asyncio
import logging

from sqlalchemy.orm import Session

from forum_notify.core.settings import settings
from forum_notify.db.session import SessionLocal, engine, rolled_back_session
from forum_notify.schemas.cron import CronReport
from forum_notify.services.cron import ForumCron
from forum_notify.services.host import DatabaseHost
from forum_notify.services.mailer import EmailTransport, RecordingTransport, SmtpTransport

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="forum-notify-cron",
        description="Send forum post notifications and daily digests.",
    )
    parser.add_argument(
        "--now",
        type=int,
        default=None,
        help="UNIX time to run as (defaults to the current time)",
    )
    parser.add_argument(
        "--prune",
        action="store_true",
        help="Also delete read records for posts older than the old post cutoff",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Compose mails without sending them and leave the database unchanged",
    )
    return parser


async def _run(db: Session, now: int | None, prune: bool, transport: EmailTransport) -> CronReport:
    cron = ForumCron(db, DatabaseHost(db), transport)
    return await cron.run(now=now, prune=prune)


async def run_once(
    now: int | None,
    prune: bool,
    transport: EmailTransport,
    dry_run: bool = False,
) -> CronReport:
    """Run one notification pass in a fresh session.

    A dry run goes through the same steps but rolls back everything it wrote,
    so pending posts and queued digests are still there for the next real run.
    """
    if dry_run:
        with engine.connect() as connection, rolled_back_session(connection) as db:
            return await _run(db, now, prune, transport)

    db = SessionLocal()
    try:
        return await _run(db, now, prune, transport)
    finally:
        db.close()


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    transport: EmailTransport = RecordingTransport() if args.dry_run else SmtpTransport()
    report = asyncio.run(run_once(args.now, args.prune, transport, args.dry_run))
    if args.dry_run:
        logger.info("Dry run composed %d messages", len(transport.sent))
    print(report.model_dump_json(indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
