"""Current-user and user management routes."""
from flask import Blueprint, jsonify, request

from jupiter_portal.auth import current_identity, login_required
from jupiter_portal.routes._helpers import json_body, outcome_response, parse_bool
from jupiter_portal.services import user_service

users_bp = Blueprint('users', __name__)


@users_bp.route('/me', methods=['GET'])
@login_required
def get_me():
    """Get the caller's identity (user id, role, display name, email)."""
    return jsonify({'data': current_identity().to_dict()})


@users_bp.route('/me', methods=['PATCH'])
@login_required
def update_me():
    """Update the caller's display name.

    Request Body (JSON):
        full_name: New display name.

    Returns:
        200 with the updated profile.
    """
    data = json_body()
    profile = user_service.update_display_name(current_identity(), data.get('full_name'))
    return jsonify({'data': profile.to_dict()})


@users_bp.route('/users', methods=['GET'])
@login_required
def list_users():
    """List profiles for assignment pickers and user admin.

    Query Parameters:
        role: Only this role
        staff_only: Only staff roles (default: false)

    Returns:
        JSON array of profiles with count.
    """
    profiles = user_service.list_profiles(
        current_identity(),
        role=request.args.get('role'),
        staff_only=parse_bool(request.args.get('staff_only')),
    )
    return jsonify({
        'data': [p.to_dict() for p in profiles],
        'count': len(profiles),
    })


@users_bp.route('/users/<user_id>/role', methods=['PATCH'])
@login_required
def change_role(user_id: str):
    """Change a user's role. Admin only.

    Request Body (JSON):
        role: client, staff_drafter, staff_manager or staff_admin.
    """
    data = json_body()
    outcome = user_service.change_role(current_identity(), user_id, data.get('role'))
    return outcome_response(outcome, outcome.value.to_dict())
