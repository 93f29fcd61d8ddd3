"""Project routes for the project portal API.

This module provides RESTful API endpoints for project CRUD operations,
project progress and the project template catalogue.
Routes call the service layer; they handle HTTP concerns only.
"""
from flask import Blueprint, jsonify, request

from jupiter_portal.auth import current_identity, login_required
from jupiter_portal.models import ProjectStatus
from jupiter_portal.routes._helpers import json_body, outcome_response, parse_bool
from jupiter_portal.services import progress, project_service, templates, workflow_service
from jupiter_portal.services.validation import parse_date

projects_bp = Blueprint('projects', __name__)


def _build_filters_from_request() -> dict:
    """Build a filters dict from request query parameters.

    Returns:
        Dictionary of filter parameters for the service layer.

    Raises:
        ValidationError: A date parameter is not YYYY-MM-DD.
    """
    filters = {}

    # Status filter - can be comma-separated
    status = request.args.get('status')
    if status:
        status_list = [s.strip() for s in status.split(',') if s.strip()]
        if status_list:
            filters['status'] = status_list

    # Completed projects are hidden unless asked for or filtered explicitly
    include_completed = parse_bool(request.args.get('include_completed'), True)
    if not include_completed and 'status' not in filters:
        filters['status'] = [s for s in ProjectStatus.ALL if s != ProjectStatus.COMPLETED]

    for key in ('search', 'client_id', 'assigned_staff_id', 'sort_by', 'sort_dir'):
        if request.args.get(key):
            filters[key] = request.args.get(key)

    for key in ('deadline_from', 'deadline_to'):
        value = parse_date(request.args.get(key), key)
        if value:
            filters[key] = value

    return filters


def _project_detail(project) -> dict:
    data = project.to_dict(include_phases=True)
    data.update(progress.progress_summary(project))
    return data


# ============================================================================
# Project CRUD Routes
# ============================================================================

@projects_bp.route('/projects', methods=['GET'])
@login_required
def get_projects():
    """Get projects visible to the caller with optional filtering and sorting.

    Query Parameters:
        status: Filter by status (comma-separated for multiple)
        search: Case-insensitive match on name, number, address,
                client name/email and assigned staff name
        client_id: Only this client's projects
        assigned_staff_id: Only projects assigned to this staff member
        include_completed: Include completed projects (default: true)
        deadline_from: Minimum deadline (YYYY-MM-DD)
        deadline_to: Maximum deadline (YYYY-MM-DD)
        sort_by: Field to sort by (default: created_at)
        sort_dir: Sort direction, 'asc' or 'desc' (default: desc)

    Returns:
        JSON array of projects with progress and count.
    """
    projects = project_service.list_projects(current_identity(), _build_filters_from_request())
    data = []
    for project in projects:
        item = project.to_dict(include_phases=False)
        item['progress'] = progress.compute_project_progress(project.phases)
        data.append(item)
    return jsonify({'data': data, 'count': len(data)})


@projects_bp.route('/projects/<int:id>', methods=['GET'])
@login_required
def get_project(id: int):
    """Get a single project with its phases and progress.

    Returns:
        JSON object with project data, or 404 if missing or not visible.
    """
    project = project_service.get_visible_project(current_identity(), id)
    return jsonify({'data': _project_detail(project)})


@projects_bp.route('/projects', methods=['POST'])
@login_required
def create_project():
    """Create a new project with its phases.

    Request Body (JSON):
        Required: project_name, type, address
        Optional: description, start_date, deadline, notes,
                  assigned_staff_id, project_manager_id, lead_drafter_id,
                  client_mode ('existing' or 'new'), client_id,
                  client_name, client_email, template, phases,
                  phase_assignments

    Returns:
        201 with created project data and any sync/log warnings.
    """
    outcome = workflow_service.create_project(current_identity(), json_body())
    return outcome_response(outcome, _project_detail(outcome.value), 201)


@projects_bp.route('/projects/<int:id>', methods=['PATCH'])
@login_required
def update_project(id: int):
    """Update project header fields.

    Request Body (JSON):
        Any of project_name, type, address, description, status, notes,
        start_date, deadline, assigned_staff_id, project_manager_id,
        lead_drafter_id.
    """
    outcome = workflow_service.update_project(current_identity(), id, json_body())
    return outcome_response(outcome, _project_detail(outcome.value))


@projects_bp.route('/projects/<int:id>', methods=['DELETE'])
@login_required
def delete_project(id: int):
    """Permanently delete a project. Admin only.

    Removes phases, time entries, comments, files and stored objects.
    There is no undo.
    """
    outcome = workflow_service.delete_project(current_identity(), id)
    return outcome_response(outcome, {'id': id, 'deleted': True})


@projects_bp.route('/projects/<int:id>/progress', methods=['GET'])
@login_required
def get_progress(id: int):
    """Overall progress, current phase, phase counts and deadline label."""
    project = project_service.get_visible_project(current_identity(), id)
    return jsonify({'data': progress.progress_summary(project)})


@projects_bp.route('/project-templates', methods=['GET'])
@login_required
def get_templates():
    """Project types and phase templates for the create-project form."""
    return jsonify({'data': templates.catalogue()})
