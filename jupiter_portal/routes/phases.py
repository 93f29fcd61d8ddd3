"""Phase routes: phase edits, phase comments and time entries.

Phases are addressed by their position in the project
(``/projects/<id>/phases/<index>``).
"""
from flask import Blueprint, jsonify, request

from jupiter_portal.auth import current_identity, login_required
from jupiter_portal.routes._helpers import json_body, outcome_response
from jupiter_portal.services import project_service, workflow_service
from jupiter_portal.services.validation import parse_date

phases_bp = Blueprint('phases', __name__)


@phases_bp.route('/projects/<int:id>/phases/<int:index>', methods=['PATCH'])
@login_required
def edit_phase(id: int, index: int):
    """Edit a phase.

    Request Body (JSON):
        Any of status, completion, actual_hours, estimated_hours, notes,
        description, assigned_staff_id, start_date, end_date.
        version: Phase version last seen by the client. A stale version
                 is rejected with 409 instead of overwriting.

    Returns:
        200 with the updated phase, 409 on a concurrent edit.
    """
    data = json_body()
    expected_version = data.pop('version', None)
    outcome = workflow_service.edit_phase(
        current_identity(), id, index, data, expected_version=expected_version
    )
    return outcome_response(outcome, outcome.value.to_dict())


@phases_bp.route('/projects/<int:id>/phases/<int:index>/comments', methods=['GET'])
@login_required
def list_comments(id: int, index: int):
    """Comments on a phase, newest first.

    Clients do not see internal staff comments.
    """
    identity = current_identity()
    project = project_service.get_visible_project(identity, id)
    project_service.get_phase(project, index)
    comments = project_service.list_phase_comments(project.id, index)
    if not identity.is_staff:
        comments = [c for c in comments if not c.is_internal]
    return jsonify({
        'data': [c.to_dict() for c in comments],
        'count': len(comments),
    })


@phases_bp.route('/projects/<int:id>/phases/<int:index>/comments', methods=['POST'])
@login_required
def add_comment(id: int, index: int):
    """Post a comment on a phase.

    Request Body (JSON):
        comment: Comment text.
        is_internal: Staff only; hide from the client (default: true)
    """
    data = json_body()
    comment = workflow_service.add_phase_comment(
        current_identity(), id, index, data.get('comment'),
        internal=data.get('is_internal', True),
    )
    return jsonify({'data': comment.to_dict()}), 201


@phases_bp.route('/projects/<int:id>/phases/<int:index>/time', methods=['GET'])
@login_required
def list_time(id: int, index: int):
    """Time entries logged on a phase, newest first, with the logged total.

    Query Parameters:
        since: Only entries on or after this date (YYYY-MM-DD)
    """
    project = project_service.get_visible_project(current_identity(), id)
    project_service.get_phase(project, index)
    entries = project_service.list_time_entries(
        project_id=project.id,
        phase_index=index,
        since=parse_date(request.args.get('since'), 'since'),
    )
    return jsonify({
        'data': [e.to_dict() for e in entries],
        'count': len(entries),
        'total_hours': project_service.logged_hours(project.id, index),
    })


@phases_bp.route('/projects/<int:id>/phases/<int:index>/time', methods=['POST'])
@login_required
def log_time(id: int, index: int):
    """Log hours on a phase.

    Request Body (JSON):
        hours: Hours worked (0 < hours <= 24)
        date: Day worked (YYYY-MM-DD)
        description: Optional note
    """
    data = json_body()
    outcome = workflow_service.log_time(
        current_identity(), id, index,
        hours=data.get('hours'),
        entry_date=data.get('date'),
        description=data.get('description'),
    )
    return outcome_response(outcome, outcome.value.to_dict(), 201)
