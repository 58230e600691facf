from sqlalchemy import (
    Column,
    Integer,
    String,
    DateTime,
    Text,
    JSON,
)

from hms_core.db.base import Base
from hms_core.utils.timezone import now_local

FOLLOW_UP_RESTORE_CLINICIAN = "restore_clinician"
FOLLOW_UP_NOTIFY = "notify"

FOLLOW_UP_PENDING = "pending"
FOLLOW_UP_DONE = "done"


class FollowUpTask(Base):
    """
    Best-effort cascade step that could not complete after commit.
    Kept until a retry succeeds so nothing is dropped silently.
    """
    __tablename__ = "follow_up_tasks"
    __table_args__ = {
        "mysql_engine": "InnoDB",
        "mysql_charset": "utf8mb4",
        "mysql_collate": "utf8mb4_unicode_ci",
    }

    id = Column(Integer, primary_key=True, index=True)

    # restore_clinician / notify
    kind = Column(String(40), nullable=False)
    payload = Column(JSON, nullable=True)

    # where it came from, e.g. "settle_and_discharge"
    source = Column(String(100), nullable=True)
    invoice_id = Column(Integer, nullable=True)
    admission_id = Column(Integer, nullable=True)

    status = Column(String(20), nullable=False, default=FOLLOW_UP_PENDING)
    attempts = Column(Integer, nullable=False, default=0)
    last_error = Column(Text, nullable=True)

    created_at = Column(DateTime, default=now_local, nullable=False)
    updated_at = Column(DateTime, default=now_local, onupdate=now_local)
