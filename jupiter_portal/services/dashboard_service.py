"""Dashboard aggregates for staff and clients."""
from calendar import monthrange
from datetime import date, datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import func, or_

from jupiter_portal import db
from jupiter_portal.exceptions import NotFoundError
from jupiter_portal.models import PhaseStatus, Project, ProjectStatus, TimeEntry
from jupiter_portal.services import policy, progress, project_service

UPCOMING_DEADLINE_LIMIT = 5

# Statuses that no longer count toward open work
CLOSED_STATUSES = [ProjectStatus.COMPLETED, ProjectStatus.CANCELLED]


def _today() -> date:
    return datetime.now(timezone.utc).date()


def _naive(value: datetime) -> datetime:
    # updated_at may be timezone-aware or naive depending on the database
    return value.replace(tzinfo=None) if value.tzinfo is not None else value


def _scoped_projects(identity):
    """Project query for a staff dashboard.

    Admins and managers see every project; drafters only those where they
    are assigned staff, PM or lead drafter.
    """
    query = db.session.query(Project)
    if identity.role.is_privileged:
        return query
    return query.filter(or_(
        Project.assigned_staff_id == identity.user_id,
        Project.project_manager_id == identity.user_id,
        Project.lead_drafter_id == identity.user_id,
    ))


def _hours_between(user_id: str, start: date, end: date) -> float:
    total = (
        db.session.query(func.coalesce(func.sum(TimeEntry.hours), 0.0))
        .filter(TimeEntry.staff_id == user_id)
        .filter(TimeEntry.date >= start)
        .filter(TimeEntry.date <= end)
        .scalar()
    )
    return round(float(total or 0), 2)


def hours_summary(user_id: str, today: Optional[date] = None) -> dict:
    """Hours the user logged this week, last week and this month.

    Weeks start on Sunday.
    """
    today = today or _today()
    # date.weekday(): Monday=0 .. Sunday=6
    week_start = today - timedelta(days=(today.weekday() + 1) % 7)
    last_week_start = week_start - timedelta(days=7)
    month_start = today.replace(day=1)
    month_end = today.replace(day=monthrange(today.year, today.month)[1])
    return {
        'this_week': _hours_between(user_id, week_start, week_start + timedelta(days=6)),
        'last_week': _hours_between(user_id, last_week_start, week_start - timedelta(days=1)),
        'this_month': _hours_between(user_id, month_start, month_end),
    }


def staff_summary(identity, today: Optional[date] = None) -> dict:
    """Statistics for the staff dashboard.

    Returns:
        Dictionary with:
            - total_projects, active_projects (In Progress),
              overdue_projects (deadline passed, not closed),
              completed_this_month (Completed, updated this month)
            - active_phases: count of in_progress phases
            - upcoming_deadlines: next five open projects by deadline,
              each with days_remaining
            - hours: this_week / last_week / this_month for the caller
            - phase_distribution: phase count per status

    Raises:
        PermissionDeniedError: Caller is not staff.
    """
    policy.require(policy.can_view_staff_area(identity), 'view the staff dashboard')
    today = today or _today()
    projects = _scoped_projects(identity).all()

    month_start = datetime(today.year, today.month, 1)
    next_month = (month_start + timedelta(days=32)).replace(day=1)
    open_projects = [p for p in projects if p.status not in CLOSED_STATUSES]
    overdue = [p for p in open_projects if p.deadline and p.deadline < today]
    completed_this_month = [
        p for p in projects
        if p.status == ProjectStatus.COMPLETED and p.updated_at
        and month_start <= _naive(p.updated_at) < next_month
    ]

    phases = [phase for p in projects for phase in p.phases]
    upcoming = sorted(
        (p for p in open_projects if p.deadline and p.deadline >= today),
        key=lambda p: p.deadline,
    )[:UPCOMING_DEADLINE_LIMIT]

    return {
        'total_projects': len(projects),
        'active_projects': sum(1 for p in projects if p.status == ProjectStatus.IN_PROGRESS),
        'overdue_projects': len(overdue),
        'completed_this_month': len(completed_this_month),
        'active_phases': sum(1 for phase in phases if phase.status == PhaseStatus.IN_PROGRESS),
        'upcoming_deadlines': [
            {
                'id': p.id,
                'project_number': p.project_number,
                'project_name': p.project_name,
                'deadline': p.deadline.isoformat(),
                'days_remaining': progress.days_until_deadline(p.deadline, today),
            }
            for p in upcoming
        ],
        'hours': hours_summary(identity.user_id, today),
        'phase_distribution': progress.phase_status_counts(phases),
    }


def assigned_projects(identity, limit: int = 5, today: Optional[date] = None) -> list[dict]:
    """Open projects assigned to the caller, soonest deadline first.

    Each entry carries progress, the current phase and a deadline label.
    """
    policy.require(policy.can_view_staff_area(identity), 'view assigned projects')
    today = today or _today()
    projects = (
        db.session.query(Project)
        .filter(Project.assigned_staff_id == identity.user_id)
        .filter(Project.status != ProjectStatus.COMPLETED)
        .order_by(Project.deadline.asc().nulls_last(), Project.id.asc())
        .limit(limit)
        .all()
    )
    result = []
    for project in projects:
        phase = progress.current_phase(project)
        result.append({
            'id': project.id,
            'project_number': project.project_number,
            'project_name': project.project_name,
            'status': project.status,
            'deadline': project.deadline.isoformat() if project.deadline else None,
            'progress': progress.compute_project_progress(project.phases),
            'current_phase': phase.name if phase else None,
            'deadline_label': progress.deadline_label(project.deadline, today),
        })
    return result


def client_dashboard(identity) -> dict:
    """The client's project with phases, progress and current phase.

    Raises:
        PermissionDeniedError: Caller has no role.
        NotFoundError: No project has been assigned to the client yet.
    """
    policy.require(identity.role is not None, 'view the client dashboard')
    project = project_service.get_client_project(identity)
    if project is None:
        raise NotFoundError('Project for client', identity.user_id)

    data = project.to_dict(include_phases=True)
    data.update(progress.progress_summary(project))
    data['total_actual_hours'] = round(sum(p.actual_hours or 0 for p in project.phases), 2)
    return data
