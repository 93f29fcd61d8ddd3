"""Dashboard routes for the project portal.

Summary statistics for staff, the assigned-projects widget, the client's
own project view and the recent activity feed.
"""
from flask import Blueprint, jsonify, request

from jupiter_portal.auth import current_identity, login_required
from jupiter_portal.services import dashboard_service, policy, project_service
from jupiter_portal.services.activity_service import get_recent_activity

dashboard_bp = Blueprint('dashboard', __name__)

DEFAULT_ACTIVITY_LIMIT = 10
MAX_ACTIVITY_LIMIT = 100


@dashboard_bp.route('/dashboard/staff', methods=['GET'])
@login_required
def staff_dashboard():
    """Project counts, upcoming deadlines, hours logged and phase distribution."""
    return jsonify({'data': dashboard_service.staff_summary(current_identity())})


@dashboard_bp.route('/dashboard/assigned', methods=['GET'])
@login_required
def assigned_projects():
    """Open projects assigned to the caller, soonest deadline first.

    Query Parameters:
        limit: Maximum number of projects (default: 5)
    """
    limit = request.args.get('limit', 5, type=int)
    data = dashboard_service.assigned_projects(current_identity(), limit=max(1, limit))
    return jsonify({'data': data, 'count': len(data)})


@dashboard_bp.route('/dashboard/client', methods=['GET'])
@login_required
def client_dashboard():
    """The client's project with phases, progress and current phase."""
    return jsonify({'data': dashboard_service.client_dashboard(current_identity())})


@dashboard_bp.route('/activity', methods=['GET'])
@login_required
def recent_activity():
    """Latest activity entries, newest first.

    Staff see all activity; a client only the activity on its projects.

    Query Parameters:
        limit: Maximum number of entries (default: 10, max: 100)
    """
    identity = current_identity()
    policy.require(identity.role is not None, 'view activity')
    limit = request.args.get('limit', DEFAULT_ACTIVITY_LIMIT, type=int)
    limit = min(max(1, limit), MAX_ACTIVITY_LIMIT)

    project_ids = None
    if not identity.is_staff:
        project_ids = [p.id for p in project_service.list_projects(identity)]
    entries = get_recent_activity(limit=limit, project_ids=project_ids)
    return jsonify({'data': entries, 'count': len(entries)})
