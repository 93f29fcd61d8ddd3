"""Authorization policy.

Pure predicates deciding what an Identity may do. None of them touch
the database or raise; callers check them before mutating and raise
PermissionDeniedError on False (see ``require``).

An identity without a role is denied everything.
"""
import logging

from jupiter_portal.exceptions import PermissionDeniedError
from jupiter_portal.models import Project, ProjectFile, Role

logger = logging.getLogger(__name__)


def _is_project_lead(identity, project: Project) -> bool:
    return identity.user_id is not None and identity.user_id in (
        project.project_manager_id,
        project.lead_drafter_id,
    )


def _phase_at(project: Project, phase_index: int):
    if 0 <= phase_index < len(project.phases):
        return project.phases[phase_index]
    return None


def can_view_project(identity, project: Project) -> bool:
    """Staff see every project; a client sees only its own."""
    if identity.role is None:
        return False
    if identity.role.is_staff:
        return True
    return project.client_id is not None and project.client_id == identity.user_id


def can_edit_phase(identity, project: Project, phase_index: int) -> bool:
    """Admins, managers, the project's PM or lead drafter, or the phase's assignee."""
    if identity.role is None or not identity.role.is_staff:
        return False
    if identity.role.is_privileged:
        return True
    if _is_project_lead(identity, project):
        return True
    phase = _phase_at(project, phase_index)
    return phase is not None and phase.assigned_staff_id == identity.user_id


def can_log_time(identity, project: Project, phase_index: int) -> bool:
    return can_edit_phase(identity, project, phase_index)


def can_comment(identity, project: Project) -> bool:
    return can_view_project(identity, project)


def can_create_project(identity) -> bool:
    return identity.role is not None and identity.role.is_privileged


def can_update_project(identity, project: Project) -> bool:
    """Header fields (name, dates, assignments, status) of a project."""
    if identity.role is None or not identity.role.is_staff:
        return False
    return identity.role.is_privileged or identity.user_id == project.project_manager_id


def can_delete_project(identity) -> bool:
    return identity.role is Role.STAFF_ADMIN


def can_upload_file(identity, project: Project) -> bool:
    if identity.role is None or not identity.role.is_staff:
        return False
    if identity.role.is_privileged:
        return True
    if identity.role is Role.STAFF_DRAFTER and project.assigned_staff_id == identity.user_id:
        return True
    return _is_project_lead(identity, project)


def can_delete_file(identity, file: ProjectFile) -> bool:
    if identity.role is None:
        return False
    if identity.role.is_privileged:
        return True
    return file.uploaded_by == identity.user_id


def can_view_staff_area(identity) -> bool:
    return identity.role is not None and identity.role.is_staff


def can_manage_users(identity) -> bool:
    return identity.role is Role.STAFF_ADMIN


def require(allowed: bool, action: str) -> None:
    """Raise PermissionDeniedError unless a policy check passed.

    Args:
        allowed: Result of a can_* predicate.
        action: Short description used in the error, e.g. 'edit this phase'.
    """
    if not allowed:
        logger.info('Permission denied: %s', action)
        raise PermissionDeniedError(action)
