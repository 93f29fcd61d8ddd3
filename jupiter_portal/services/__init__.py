"""Business logic services package.

Routes resolve the caller's Identity and call services; services check
the authorization policy and interact with models. This separation
keeps routes thin and the rules testable without HTTP.
"""
from jupiter_portal.services.activity_service import Outcome, get_recent_activity
from jupiter_portal.services.identity import Identity, resolve_identity
from jupiter_portal.services.progress import compute_project_progress, current_phase
from jupiter_portal.services.project_service import (
    get_visible_project,
    list_projects,
)
from jupiter_portal.services.workflow_service import (
    add_phase_comment,
    create_project,
    delete_project,
    edit_phase,
    log_time,
    update_project,
)

__all__ = [
    # Identity and aggregation
    'Identity',
    'resolve_identity',
    'compute_project_progress',
    'current_phase',
    # Repository
    'get_visible_project',
    'list_projects',
    # Workflow controller
    'Outcome',
    'add_phase_comment',
    'create_project',
    'delete_project',
    'edit_phase',
    'log_time',
    'update_project',
    # Activity
    'get_recent_activity',
]
