"""Time entry and phase comment models.

Both are append-only: the portal has no edit or delete path for them.
"""
from datetime import date, datetime
from typing import Optional

from jupiter_portal import db
from jupiter_portal.models._common import iso, utcnow


class TimeEntry(db.Model):
    """Hours a staff member logged against one phase."""
    __tablename__ = 'time_entries'

    id: int = db.Column(db.Integer, primary_key=True)
    project_id: int = db.Column(
        db.Integer, db.ForeignKey('projects.id'), nullable=False, index=True
    )
    phase_index: int = db.Column(db.Integer, nullable=False)
    staff_id: str = db.Column(
        db.String(36), db.ForeignKey('profiles.id'), nullable=False, index=True
    )
    date: date = db.Column(db.Date, nullable=False)
    hours: float = db.Column(db.Float, nullable=False)
    description: Optional[str] = db.Column(db.Text, nullable=True)
    created_at: datetime = db.Column(db.DateTime, nullable=False, default=utcnow)

    project = db.relationship('Project', back_populates='time_entries')
    staff = db.relationship('Profile')

    def __repr__(self) -> str:
        return f'<TimeEntry {self.project_id}#{self.phase_index} {self.hours}h>'

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'project_id': self.project_id,
            'phase_index': self.phase_index,
            'staff_id': self.staff_id,
            'staff_name': self.staff.display_name if self.staff else None,
            'date': iso(self.date),
            'hours': self.hours,
            'description': self.description,
            'created_at': iso(self.created_at),
        }


class PhaseComment(db.Model):
    """Comment posted on one phase of a project."""
    __tablename__ = 'phase_comments'

    id: int = db.Column(db.Integer, primary_key=True)
    project_id: int = db.Column(
        db.Integer, db.ForeignKey('projects.id'), nullable=False, index=True
    )
    phase_index: int = db.Column(db.Integer, nullable=False)
    comment: str = db.Column(db.Text, nullable=False)
    is_internal: bool = db.Column(db.Boolean, nullable=False, default=True)
    created_by: str = db.Column(
        db.String(36), db.ForeignKey('profiles.id'), nullable=False
    )
    created_at: datetime = db.Column(db.DateTime, nullable=False, default=utcnow)

    project = db.relationship('Project', back_populates='phase_comments')
    creator = db.relationship('Profile')

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'project_id': self.project_id,
            'phase_index': self.phase_index,
            'comment': self.comment,
            'is_internal': self.is_internal,
            'created_by': self.created_by,
            'creator_name': self.creator.display_name if self.creator else None,
            'created_at': iso(self.created_at),
        }
