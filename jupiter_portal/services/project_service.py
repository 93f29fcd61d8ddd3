"""Project repository: lookups and filtered queries.

Read-side access to projects, phases, phase comments and time entries.
Mutations live in workflow_service, which calls the authorization
policy before touching anything here.
"""
from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import aliased

from jupiter_portal import db
from jupiter_portal.exceptions import NotFoundError, PermissionDeniedError
from jupiter_portal.models import (
    Phase,
    PhaseComment,
    Profile,
    Project,
    Role,
    TimeEntry,
)
from jupiter_portal.services import policy

# Columns a project listing may be sorted by
SORTABLE_FIELDS = [
    'created_at', 'updated_at', 'project_name', 'project_number',
    'status', 'deadline', 'start_date',
]


def generate_project_number(year: int = None) -> str:
    """Next project number for a year: PRJ-<year>-<NNN>.

    NNN is the count of that year's numbers plus one, zero padded.
    """
    year = year or datetime.now(timezone.utc).year
    prefix = f'PRJ-{year}-'
    count = (
        db.session.query(func.count(Project.id))
        .filter(Project.project_number.like(f'{prefix}%'))
        .scalar()
    ) or 0
    number = f'{prefix}{count + 1:03d}'
    # A deleted project can leave a gap that makes count+1 collide
    while db.session.query(Project.id).filter_by(project_number=number).first():
        count += 1
        number = f'{prefix}{count + 1:03d}'
    return number


def get_project(id: int) -> Optional[Project]:
    """Get a project by ID.

    Returns:
        The Project instance if found, None otherwise.
    """
    return db.session.get(Project, id)


def get_project_or_404(id: int) -> Project:
    project = get_project(id)
    if project is None:
        raise NotFoundError('Project', id)
    return project


def get_visible_project(identity, id: int) -> Project:
    """Load a project the caller may view.

    A client asking for another client's project gets NotFoundError,
    the same as for a missing project, so ids cannot be enumerated.

    Raises:
        NotFoundError: Project missing, or invisible to a client.
        PermissionDeniedError: Caller has no role.
    """
    project = get_project_or_404(id)
    if not policy.can_view_project(identity, project):
        if identity.role is None:
            raise PermissionDeniedError('view this project')
        raise NotFoundError('Project', id)
    return project


def get_phase(project: Project, phase_index: int) -> Phase:
    """Phase at a position in the project, or NotFoundError."""
    if phase_index is None or not 0 <= phase_index < len(project.phases):
        raise NotFoundError('Phase', phase_index)
    return project.phases[phase_index]


def _visibility_filter(query, identity):
    """Restrict a project query to what the caller may list."""
    if identity.role is None:
        return query.filter(db.false())
    if not identity.role.is_staff:
        return query.filter(Project.client_id == identity.user_id)
    if identity.role is Role.STAFF_DRAFTER:
        return query.filter(Project.assigned_staff_id == identity.user_id)
    return query


def list_projects(identity, filters: dict = None) -> list[Project]:
    """Get projects visible to the caller with optional filtering and sorting.

    Drafters list only projects assigned to them; clients only their own.

    Args:
        identity: The caller.
        filters: Optional dictionary with filter/sort parameters:
            - status: Single status string or list of statuses
            - search: Case-insensitive substring matched against project
              name, number, address, client email, client name and
              assigned staff name
            - client_id: Only this client's projects
            - assigned_staff_id: Only projects assigned to this staff member
            - deadline_from / deadline_to: Deadline range (date)
            - sort_by: Field name to sort by (default: created_at)
            - sort_dir: 'asc' or 'desc' (default: desc)

    Returns:
        List of Project instances matching the filters.
    """
    filters = filters or {}
    query = _visibility_filter(db.session.query(Project), identity)

    if filters.get('status'):
        status_values = filters['status']
        if isinstance(status_values, str):
            status_values = [status_values]
        query = query.filter(Project.status.in_(status_values))

    if filters.get('client_id'):
        query = query.filter(Project.client_id == filters['client_id'])
    if filters.get('assigned_staff_id'):
        query = query.filter(Project.assigned_staff_id == filters['assigned_staff_id'])

    if filters.get('deadline_from'):
        query = query.filter(Project.deadline >= filters['deadline_from'])
    if filters.get('deadline_to'):
        query = query.filter(Project.deadline <= filters['deadline_to'])

    if filters.get('search'):
        term = f"%{filters['search'].strip().lower()}%"
        client = aliased(Profile)
        staff = aliased(Profile)
        query = (
            query.outerjoin(client, client.id == Project.client_id)
            .outerjoin(staff, staff.id == Project.assigned_staff_id)
            .filter(or_(
                func.lower(Project.project_name).like(term),
                func.lower(Project.project_number).like(term),
                func.lower(Project.address).like(term),
                func.lower(Project.client_email).like(term),
                func.lower(Project.client_name).like(term),
                func.lower(client.full_name).like(term),
                func.lower(client.email).like(term),
                func.lower(staff.full_name).like(term),
            ))
        )

    sort_by = filters.get('sort_by') or 'created_at'
    if sort_by not in SORTABLE_FIELDS:
        sort_by = 'created_at'
    sort_column = getattr(Project, sort_by)
    if (filters.get('sort_dir') or 'desc').lower() == 'asc':
        query = query.order_by(sort_column.asc().nulls_last(), Project.id.asc())
    else:
        query = query.order_by(sort_column.desc().nulls_last(), Project.id.desc())

    return query.all()


def get_client_project(identity) -> Optional[Project]:
    """The single project a client is assigned to (latest if several)."""
    if identity.user_id is None:
        return None
    return (
        db.session.query(Project)
        .filter(Project.client_id == identity.user_id)
        .order_by(Project.created_at.desc(), Project.id.desc())
        .first()
    )


def list_phase_comments(project_id: int, phase_index: int) -> list[PhaseComment]:
    """Comments on a phase, newest first."""
    return (
        db.session.query(PhaseComment)
        .filter(PhaseComment.project_id == project_id)
        .filter(PhaseComment.phase_index == phase_index)
        .order_by(PhaseComment.created_at.desc(), PhaseComment.id.desc())
        .all()
    )


def list_time_entries(project_id: int = None, phase_index: int = None,
                      staff_id: str = None, since: date = None) -> list[TimeEntry]:
    """Time entries, newest date first, filtered by any of the arguments."""
    query = db.session.query(TimeEntry)
    if project_id is not None:
        query = query.filter(TimeEntry.project_id == project_id)
    if phase_index is not None:
        query = query.filter(TimeEntry.phase_index == phase_index)
    if staff_id is not None:
        query = query.filter(TimeEntry.staff_id == staff_id)
    if since is not None:
        query = query.filter(TimeEntry.date >= since)
    return query.order_by(TimeEntry.date.desc(), TimeEntry.id.desc()).all()


def logged_hours(project_id: int, phase_index: int) -> float:
    """Sum of the time entries logged against one phase."""
    total = (
        db.session.query(func.coalesce(func.sum(TimeEntry.hours), 0.0))
        .filter(TimeEntry.project_id == project_id)
        .filter(TimeEntry.phase_index == phase_index)
        .scalar()
    )
    return float(total or 0)
