"""Summary of one scheduled notification run."""

from pydantic import BaseModel, Field


class CronReport(BaseModel):
    """Counters reported by :class:`forum_notify.services.cron.ForumCron`."""

    posts_selected: int = Field(0, description="Pending posts picked up by the run")
    posts_marked_mailed: int = Field(0, description="Posts flipped to sent before delivery")
    mails_sent: int = 0
    mail_errors: int = 0
    queued: int = Field(0, description="Digest queue entries created")
    digests_sent: int = 0
    digest_errors: int = 0
    skipped: int = Field(0, description="Items skipped because a referenced row is missing")
    queue_purged: int = 0
    pruned_read_records: int = 0
    digest_ran: bool = False
