"""Project and phase models.

A project owns an ordered list of phases. Each phase is its own row
keyed by (project_id, position) and carries a version counter, so two
edits to the same phase cannot silently overwrite each other: the
second flush fails with StaleDataError instead.
"""
from datetime import date, datetime
from typing import Optional

from jupiter_portal import db
from jupiter_portal.models._common import iso, utcnow


class ProjectStatus:
    """Enumeration of valid project status values.

    Status values are stored as strings in the database to keep
    the schema simple and allow easy inspection via SQL.
    """
    DRAFT = "Draft"
    PENDING = "Pending"
    IN_PROGRESS = "In Progress"
    IN_REVIEW = "In Review"
    APPROVED = "Approved"
    COMPLETED = "Completed"
    ON_HOLD = "On Hold"
    CANCELLED = "Cancelled"

    ALL = [DRAFT, PENDING, IN_PROGRESS, IN_REVIEW, APPROVED, COMPLETED, ON_HOLD, CANCELLED]


class PhaseStatus:
    """Enumeration of phase status values, in workflow order."""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"

    ALL = [PENDING, IN_PROGRESS, COMPLETED]


class Project(db.Model):
    """SQLAlchemy model for drafting projects.

    Attributes:
        id: Primary key, auto-incrementing integer.
        project_number: Human-facing number, PRJ-<year>-<NNN>.
        project_name: Name/title of the project (required).
        type: Project type key (see services.templates.PROJECT_TYPES).
        address: Site address (required).
        description: Optional free-text description.
        client_id: Owning client profile (nullable until assigned).
        client_email: Email the client was registered under. A project
            created for a client who has not signed up yet has only
            this; the client claims it on first sign-in.
        client_name: Client name given at creation, shown until the
            client has a profile.
        assigned_staff_id: Staff member the project is assigned to.
        project_manager_id: Project manager profile.
        lead_drafter_id: Lead drafter profile.
        start_date: Planned start date.
        deadline: Delivery deadline.
        status: Current project status (defaults to Draft).
        current_phase_index: Position of the phase currently being worked.
        template_used: Phase template the project was created from.
        total_estimated_hours: Sum of the phases' estimated hours.
        external_item_id: Item id returned by the workflow sync endpoint.
        notes: Internal notes.
        created_by: Profile that created the project.
        created_at: Timestamp when project was created.
        updated_at: Timestamp when project was last modified.
    """
    __tablename__ = 'projects'

    id: int = db.Column(db.Integer, primary_key=True)

    # Project identification
    project_number: str = db.Column(db.String(40), nullable=False, unique=True)
    project_name: str = db.Column(db.String(500), nullable=False)
    type: str = db.Column(db.String(60), nullable=False)
    address: str = db.Column(db.String(500), nullable=False)
    description: Optional[str] = db.Column(db.Text, nullable=True)

    # Client
    client_id: Optional[str] = db.Column(
        db.String(36), db.ForeignKey('profiles.id'), nullable=True, index=True
    )
    client_email: Optional[str] = db.Column(db.String(320), nullable=True)
    client_name: Optional[str] = db.Column(db.String(200), nullable=True)

    # Staff assignments
    assigned_staff_id: Optional[str] = db.Column(
        db.String(36), db.ForeignKey('profiles.id'), nullable=True, index=True
    )
    project_manager_id: Optional[str] = db.Column(
        db.String(36), db.ForeignKey('profiles.id'), nullable=True
    )
    lead_drafter_id: Optional[str] = db.Column(
        db.String(36), db.ForeignKey('profiles.id'), nullable=True
    )

    # Schedule
    start_date: Optional[date] = db.Column(db.Date, nullable=True)
    deadline: Optional[date] = db.Column(db.Date, nullable=True)

    # Workflow
    status: str = db.Column(
        db.String(30),
        nullable=False,
        default=ProjectStatus.DRAFT
    )
    current_phase_index: int = db.Column(db.Integer, nullable=False, default=0)
    template_used: Optional[str] = db.Column(db.String(40), nullable=True)
    total_estimated_hours: float = db.Column(db.Float, nullable=False, default=0)
    external_item_id: Optional[str] = db.Column(db.String(100), nullable=True)
    notes: Optional[str] = db.Column(db.Text, nullable=True)

    created_by: Optional[str] = db.Column(
        db.String(36), db.ForeignKey('profiles.id'), nullable=True
    )
    created_at: datetime = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at: datetime = db.Column(
        db.DateTime,
        nullable=False,
        default=utcnow,
        onupdate=utcnow
    )

    phases = db.relationship(
        'Phase',
        back_populates='project',
        order_by='Phase.position',
        cascade='all, delete-orphan',
    )
    client = db.relationship('Profile', foreign_keys=[client_id])
    assigned_staff = db.relationship('Profile', foreign_keys=[assigned_staff_id])
    time_entries = db.relationship(
        'TimeEntry', back_populates='project', cascade='all, delete-orphan'
    )
    phase_comments = db.relationship(
        'PhaseComment', back_populates='project', cascade='all, delete-orphan'
    )
    files = db.relationship(
        'ProjectFile', back_populates='project', cascade='all, delete-orphan'
    )

    def __repr__(self) -> str:
        return f'<Project {self.id}: {self.project_number} {self.project_name}>'

    def to_dict(self, include_phases: bool = True) -> dict:
        """Convert project to dictionary representation.

        Args:
            include_phases: Embed the ordered phase list.

        Returns:
            Dictionary with all project fields.
        """
        data = {
            'id': self.id,
            'project_number': self.project_number,
            'project_name': self.project_name,
            'type': self.type,
            'address': self.address,
            'description': self.description,
            'client_id': self.client_id,
            'client_email': self.client_email,
            'client_name': self.client.display_name if self.client else self.client_name,
            'assigned_staff_id': self.assigned_staff_id,
            'project_manager_id': self.project_manager_id,
            'lead_drafter_id': self.lead_drafter_id,
            'start_date': iso(self.start_date),
            'deadline': iso(self.deadline),
            'status': self.status,
            'current_phase_index': self.current_phase_index,
            'template_used': self.template_used,
            'total_estimated_hours': self.total_estimated_hours,
            'external_item_id': self.external_item_id,
            'notes': self.notes,
            'created_by': self.created_by,
            'created_at': iso(self.created_at),
            'updated_at': iso(self.updated_at),
        }
        if include_phases:
            data['phases'] = [phase.to_dict() for phase in self.phases]
        return data


class Phase(db.Model):
    """One ordered stage of a project's drafting workflow.

    ``completion`` is only meaningful while the phase is in progress;
    services.progress.phase_contribution gives its share of project progress.
    """
    __tablename__ = 'phases'
    __table_args__ = (
        db.UniqueConstraint('project_id', 'position', name='uq_phase_project_position'),
    )

    id: int = db.Column(db.Integer, primary_key=True)
    project_id: int = db.Column(
        db.Integer, db.ForeignKey('projects.id'), nullable=False, index=True
    )
    position: int = db.Column(db.Integer, nullable=False)

    name: str = db.Column(db.String(200), nullable=False)
    code: Optional[str] = db.Column(db.String(10), nullable=True)
    description: Optional[str] = db.Column(db.Text, nullable=True)
    status: str = db.Column(db.String(20), nullable=False, default=PhaseStatus.PENDING)
    completion: int = db.Column(db.Integer, nullable=False, default=0)
    estimated_hours: float = db.Column(db.Float, nullable=False, default=0)
    actual_hours: float = db.Column(db.Float, nullable=False, default=0)
    assigned_staff_id: Optional[str] = db.Column(
        db.String(36), db.ForeignKey('profiles.id'), nullable=True
    )
    notes: Optional[str] = db.Column(db.Text, nullable=True)
    start_date: Optional[date] = db.Column(db.Date, nullable=True)
    end_date: Optional[date] = db.Column(db.Date, nullable=True)

    version_id: int = db.Column(db.Integer, nullable=False)
    updated_at: datetime = db.Column(
        db.DateTime,
        nullable=False,
        default=utcnow,
        onupdate=utcnow
    )

    project = db.relationship('Project', back_populates='phases')
    assigned_staff = db.relationship('Profile', foreign_keys=[assigned_staff_id])

    __mapper_args__ = {'version_id_col': version_id}

    def __repr__(self) -> str:
        return f'<Phase {self.project_id}#{self.position}: {self.name} ({self.status})>'

    @property
    def hours_variance(self) -> float:
        """Actual minus estimated hours; positive means over budget."""
        return (self.actual_hours or 0) - (self.estimated_hours or 0)

    def to_dict(self) -> dict:
        return {
            'index': self.position,
            'name': self.name,
            'code': self.code,
            'description': self.description,
            'status': self.status,
            'completion': self.completion,
            'estimated_hours': self.estimated_hours,
            'actual_hours': self.actual_hours,
            'hours_variance': round(self.hours_variance, 2),
            'assigned_staff_id': self.assigned_staff_id,
            'assigned_staff_name': (
                self.assigned_staff.display_name if self.assigned_staff else None
            ),
            'notes': self.notes,
            'start_date': iso(self.start_date),
            'end_date': iso(self.end_date),
            'version': self.version_id,
            'updated_at': iso(self.updated_at),
        }
