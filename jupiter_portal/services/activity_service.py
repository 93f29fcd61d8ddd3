"""Activity log writes and the recent-activity feed.

Activity entries are a side effect of mutations. Writing one is never
allowed to fail the mutation that triggered it: errors are logged and
reported back as a soft warning on the Outcome.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from sqlalchemy.exc import SQLAlchemyError

from jupiter_portal import db
from jupiter_portal.models import ActivityLogEntry, Project

logger = logging.getLogger(__name__)

ACTIVITY_WARNING = 'Change saved, but the activity log entry could not be written'


@dataclass
class Outcome:
    """Result of a mutation plus any soft warnings from its side effects."""
    value: Any = None
    warnings: list = field(default_factory=list)


def record_activity(project_id: Optional[int], action: str,
                    performed_by: Optional[str], details: dict = None) -> bool:
    """Append an entry to the activity log in its own transaction.

    Call after the primary change has been committed.

    Returns:
        True if the entry was written, False if the insert failed.
    """
    try:
        db.session.add(ActivityLogEntry(
            project_id=project_id,
            action=action,
            performed_by=performed_by,
            details=details or {},
        ))
        db.session.commit()
        return True
    except SQLAlchemyError:
        db.session.rollback()
        logger.warning(
            'Could not write activity log entry %s', action,
            exc_info=True, extra={'project_id': project_id, 'action': action},
        )
        return False


def record_activity_for(outcome: Outcome, project_id: Optional[int], action: str,
                        performed_by: Optional[str], details: dict = None) -> Outcome:
    """record_activity that adds the standard warning to ``outcome`` on failure."""
    if not record_activity(project_id, action, performed_by, details):
        outcome.warnings.append(ACTIVITY_WARNING)
    return outcome


def get_recent_activity(limit: int = 10, project_ids: list = None) -> list[dict]:
    """Latest activity entries, newest first, with project name and number.

    Args:
        limit: Maximum number of entries.
        project_ids: Restrict to these projects when given.

    Returns:
        List of entry dicts with ``project_name``/``project_number`` added
        (None for deleted projects).
    """
    query = (
        db.session.query(ActivityLogEntry, Project.project_name, Project.project_number)
        .outerjoin(Project, Project.id == ActivityLogEntry.project_id)
    )
    if project_ids is not None:
        query = query.filter(ActivityLogEntry.project_id.in_(project_ids))
    rows = (
        query.order_by(ActivityLogEntry.created_at.desc(), ActivityLogEntry.id.desc())
        .limit(limit)
        .all()
    )

    feed = []
    for entry, project_name, project_number in rows:
        item = entry.to_dict()
        item['project_name'] = project_name
        item['project_number'] = project_number
        feed.append(item)
    return feed
