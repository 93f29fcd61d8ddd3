"""Phase aggregation: overall progress, current phase, deadline arithmetic."""
from datetime import date, datetime, timezone
from typing import Iterable, Optional

from jupiter_portal.models import Phase, PhaseStatus, Project


def phase_contribution(phase) -> int:
    """Completion a single phase adds toward project progress.

    Completed phases count 100, in-progress phases their completion,
    anything else 0.
    """
    if isinstance(phase, dict):
        status = phase.get('status')
        completion = phase.get('completion') or 0
    else:
        status = phase.status
        completion = phase.completion or 0
    if status == PhaseStatus.COMPLETED:
        return 100
    if status == PhaseStatus.IN_PROGRESS:
        return completion
    return 0


def compute_project_progress(phases: Iterable) -> int:
    """Overall completion percentage of a project.

    Accepts Phase rows or plain dicts with ``status``/``completion``.

    Args:
        phases: The project's phases.

    Returns:
        round(sum of contributions / number of phases); 0 for no phases.
    """
    phases = list(phases)
    if not phases:
        return 0
    total = sum(phase_contribution(p) for p in phases)
    # Halves round up
    return int(total / len(phases) + 0.5)


def current_phase(project: Project) -> Optional[Phase]:
    """Phase at ``current_phase_index``, or None if the index is out of range."""
    index = project.current_phase_index or 0
    if 0 <= index < len(project.phases):
        return project.phases[index]
    return None


def _today() -> date:
    return datetime.now(timezone.utc).date()


def days_until_deadline(deadline: Optional[date], today: Optional[date] = None) -> Optional[int]:
    """Whole days from today to the deadline.

    Negative values mean the project is overdue by abs(value) days.
    Returns None when there is no deadline.
    """
    if deadline is None:
        return None
    if isinstance(deadline, datetime):
        deadline = deadline.date()
    return (deadline - (today or _today())).days


def deadline_label(deadline: Optional[date], today: Optional[date] = None) -> dict:
    """Short label and urgency bucket for a deadline.

    Buckets: none, overdue, due_today, due_soon (<= 3 days),
    this_week (<= 7 days), on_track.
    """
    days = days_until_deadline(deadline, today)
    if days is None:
        return {'label': 'No deadline', 'urgency': 'none', 'days_remaining': None}
    if days < 0:
        return {'label': f'{abs(days)} days overdue', 'urgency': 'overdue', 'days_remaining': days}
    if days == 0:
        return {'label': 'Due today', 'urgency': 'due_today', 'days_remaining': 0}
    if days <= 3:
        urgency = 'due_soon'
    elif days <= 7:
        urgency = 'this_week'
    else:
        urgency = 'on_track'
    return {'label': f'{days} days left', 'urgency': urgency, 'days_remaining': days}


def phase_status_counts(phases: Iterable) -> dict:
    """Count phases per status, e.g. {'pending': 3, 'in_progress': 1}."""
    counts = {status: 0 for status in PhaseStatus.ALL}
    for phase in phases:
        status = phase.status or PhaseStatus.PENDING
        counts[status] = counts.get(status, 0) + 1
    return counts


def progress_summary(project: Project) -> dict:
    """Progress block returned with project details and dashboards."""
    phase = current_phase(project)
    return {
        'progress': compute_project_progress(project.phases),
        'current_phase_index': project.current_phase_index,
        'current_phase': phase.name if phase else None,
        'phase_counts': phase_status_counts(project.phases),
        'deadline': deadline_label(project.deadline),
    }
