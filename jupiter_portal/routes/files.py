"""Project file routes: upload, listing, archive, delete, comments, downloads."""
from flask import Blueprint, jsonify, request

from jupiter_portal.auth import current_identity, login_required
from jupiter_portal.routes._helpers import json_body, outcome_response, parse_bool
from jupiter_portal.services import file_service

files_bp = Blueprint('files', __name__)


@files_bp.route('/projects/<int:id>/files', methods=['GET'])
@login_required
def list_files(id: int):
    """Files of a project, newest first.

    Query Parameters:
        phase: Only files attached to this phase name
        search: Match on file name, description or phase
        include_archived: Include archived files (default: false)
    """
    files = file_service.list_files(
        current_identity(), id,
        phase=request.args.get('phase'),
        search=request.args.get('search'),
        include_archived=parse_bool(request.args.get('include_archived')),
    )
    return jsonify({
        'data': [f.to_dict() for f in files],
        'count': len(files),
    })


@files_bp.route('/projects/<int:id>/files', methods=['POST'])
@login_required
def upload_files(id: int):
    """Upload files to a project.

    Form Data (multipart):
        files: One or more files (pdf, jpg, png, mp4, dwg)
        phase: Optional phase name
        description: Optional description

    Returns:
        201 with the created file records.
    """
    outcome = file_service.upload_files(
        current_identity(), id,
        request.files.getlist('files'),
        phase=request.form.get('phase'),
        description=request.form.get('description'),
    )
    return outcome_response(outcome, [f.to_dict() for f in outcome.value], 201)


@files_bp.route('/files/<int:file_id>/archive', methods=['POST'])
@login_required
def archive_file(file_id: int):
    """Archive (soft delete) a file."""
    outcome = file_service.archive_file(current_identity(), file_id)
    return outcome_response(outcome, outcome.value.to_dict())


@files_bp.route('/files/<int:file_id>', methods=['DELETE'])
@login_required
def delete_file(file_id: int):
    """Permanently delete a file and its stored object."""
    outcome = file_service.delete_file(current_identity(), file_id)
    return outcome_response(outcome, {'id': file_id, 'deleted': True})


@files_bp.route('/files/<int:file_id>/comments', methods=['GET'])
@login_required
def list_file_comments(file_id: int):
    comments = file_service.list_file_comments(current_identity(), file_id)
    return jsonify({
        'data': [c.to_dict() for c in comments],
        'count': len(comments),
    })


@files_bp.route('/files/<int:file_id>/comments', methods=['POST'])
@login_required
def add_file_comment(file_id: int):
    """Post a comment on a file.

    Request Body (JSON):
        comment: Comment text.
    """
    data = json_body()
    comment = file_service.add_file_comment(current_identity(), file_id, data.get('comment'))
    return jsonify({'data': comment.to_dict()}), 201


@files_bp.route('/files/<int:file_id>/downloads', methods=['POST'])
@login_required
def record_download(file_id: int):
    """Record a download and return the file URL to fetch."""
    download = file_service.record_download(current_identity(), file_id)
    return jsonify({'data': {'file_id': file_id, 'file_url': download.file.file_url}}), 201
