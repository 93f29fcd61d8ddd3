"""Activity log model.

Append-only audit trail written as a side effect of mutations.
``project_id`` is not a foreign key; entries outlive a deleted project.
"""
from datetime import datetime
from typing import Optional

from jupiter_portal import db
from jupiter_portal.models._common import iso, utcnow


class ActivityAction:
    """Action names written to the activity log."""
    PROJECT_CREATED = 'project_created'
    PROJECT_UPDATED = 'project_updated'
    PROJECT_DELETED = 'project_deleted'
    PHASE_UPDATED = 'phase_updated'
    TIME_LOGGED = 'time_logged'
    FILES_UPLOADED = 'files_uploaded'
    FILE_ARCHIVED = 'file_archived'
    FILE_DELETED = 'file_deleted'
    ROLE_CHANGED = 'role_changed'


class ActivityLogEntry(db.Model):
    """One audit-trail entry."""
    __tablename__ = 'project_activity_log'

    id: int = db.Column(db.Integer, primary_key=True)
    project_id: Optional[int] = db.Column(db.Integer, nullable=True, index=True)
    action: str = db.Column(db.String(50), nullable=False)
    performed_by: Optional[str] = db.Column(
        db.String(36), db.ForeignKey('profiles.id'), nullable=True
    )
    details: dict = db.Column(db.JSON, nullable=False, default=dict)
    created_at: datetime = db.Column(
        db.DateTime, nullable=False, default=utcnow, index=True
    )

    performer = db.relationship('Profile')

    def __repr__(self) -> str:
        return f'<ActivityLogEntry {self.action} project={self.project_id}>'

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'project_id': self.project_id,
            'action': self.action,
            'performed_by': self.performed_by,
            'performer_name': self.performer.display_name if self.performer else None,
            'details': self.details or {},
            'created_at': iso(self.created_at),
        }
