"""Project file uploads, listing, archiving and file comments.

File bytes live in the configured StorageProvider; ProjectFile rows hold
the metadata. Storage and database are not transactional together, so
uploads store the object first and remove it again if the insert fails,
and hard deletes remove the object before the row.
"""
import logging
import os
import time
import uuid

from flask import current_app
from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.utils import secure_filename

from jupiter_portal import db
from jupiter_portal.exceptions import NotFoundError, RemoteCallError, ValidationError
from jupiter_portal.models import ActivityAction, FileComment, FileDownload, ProjectFile
from jupiter_portal.services import policy, project_service
from jupiter_portal.services.activity_service import Outcome, record_activity_for
from jupiter_portal.services.validation import require_fields
from jupiter_portal.storage import StorageError, get_storage

logger = logging.getLogger(__name__)

# Accepted uploads: MIME type -> extensions
ALLOWED_FILE_TYPES = {
    'application/pdf': ['.pdf'],
    'image/jpeg': ['.jpg', '.jpeg'],
    'image/png': ['.png'],
    'video/mp4': ['.mp4'],
    'application/acad': ['.dwg'],
    'application/x-dwg': ['.dwg'],
    'image/vnd.dwg': ['.dwg'],
}
ALLOWED_EXTENSIONS = sorted({ext for exts in ALLOWED_FILE_TYPES.values() for ext in exts})


def _stream_size(upload) -> int:
    stream = upload.stream
    stream.seek(0, os.SEEK_END)
    size = stream.tell()
    stream.seek(0)
    return size


def _check_upload(upload) -> int:
    """Validate one upload's type and size. Returns its size in bytes."""
    name = upload.filename or ''
    if not name:
        raise ValidationError('Uploaded file has no name')

    extension = os.path.splitext(name)[1].lower()
    if upload.mimetype not in ALLOWED_FILE_TYPES and extension not in ALLOWED_EXTENSIONS:
        raise ValidationError(
            f'File type not allowed: {name}. Allowed: {ALLOWED_EXTENSIONS}',
            details={'file_name': name, 'file_type': upload.mimetype},
        )

    size = _stream_size(upload)
    limit = current_app.config['MAX_UPLOAD_BYTES']
    if size > limit:
        raise ValidationError(
            f'{name} exceeds the maximum upload size of {limit // (1024 * 1024)} MB',
            details={'file_name': name, 'file_size': size},
        )
    return size


def get_file_or_404(file_id: int) -> ProjectFile:
    project_file = db.session.get(ProjectFile, file_id)
    if project_file is None:
        raise NotFoundError('File', file_id)
    return project_file


def get_visible_file(identity, file_id: int) -> ProjectFile:
    """Load a file whose project the caller may view."""
    project_file = get_file_or_404(file_id)
    if not policy.can_view_project(identity, project_file.project):
        raise NotFoundError('File', file_id)
    return project_file


def upload_files(identity, project_id: int, uploads: list, phase: str = None,
                 description: str = None) -> Outcome:
    """Store one or more files against a project.

    Args:
        identity: The caller.
        project_id: Project ID.
        uploads: werkzeug FileStorage objects.
        phase: Optional phase name the files belong to; must be one of
            the project's phases.
        description: Optional description applied to every file.

    Returns:
        Outcome with the list of created ProjectFile rows.

    Raises:
        NotFoundError, PermissionDeniedError, ValidationError, RemoteCallError.
    """
    project = project_service.get_visible_project(identity, project_id)
    policy.require(policy.can_upload_file(identity, project), 'upload files to this project')

    if not uploads:
        raise ValidationError('No files supplied', details={'files': 'required'})
    if phase and phase not in [p.name for p in project.phases]:
        raise ValidationError(f'Unknown phase: {phase}', details={'phase': phase})
    sizes = [_check_upload(upload) for upload in uploads]

    storage = get_storage()
    stored_keys = []
    records = []
    try:
        for upload, size in zip(uploads, sizes):
            safe_name = secure_filename(upload.filename) or 'upload'
            key = f'{project.id}/{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}-{safe_name}'
            storage.save(key, upload.stream, upload.mimetype)
            stored_keys.append(key)
            records.append(ProjectFile(
                project_id=project.id,
                file_name=upload.filename,
                file_url=storage.public_url(key),
                file_size=size,
                file_type=upload.mimetype,
                phase=phase or None,
                description=description or None,
                uploaded_by=identity.user_id,
                storage_path=key,
            ))
        db.session.add_all(records)
        db.session.commit()
    except (StorageError, SQLAlchemyError):
        db.session.rollback()
        logger.exception('File upload failed', extra={'project_id': project.id})
        for key in stored_keys:
            try:
                storage.delete(key)
            except StorageError:
                logger.warning('Could not clean up stored file %s', key, exc_info=True)
        raise RemoteCallError('Failed to upload files')

    logger.info('Uploaded %d file(s) to project %d', len(records), project.id,
                extra={'project_id': project.id})
    return record_activity_for(
        Outcome(records), project.id, ActivityAction.FILES_UPLOADED, identity.user_id,
        {'file_count': len(records), 'file_names': [r.file_name for r in records],
         'phase': phase or None},
    )


def list_files(identity, project_id: int, phase: str = None, search: str = None,
               include_archived: bool = False) -> list[ProjectFile]:
    """Files of a project, newest first.

    Args:
        phase: Only files attached to this phase name.
        search: Case-insensitive match on name, description or phase.
        include_archived: Also return archived files.
    """
    project = project_service.get_visible_project(identity, project_id)

    query = db.session.query(ProjectFile).filter(ProjectFile.project_id == project.id)
    if not include_archived:
        query = query.filter(ProjectFile.is_archived.is_(False))
    if phase:
        query = query.filter(ProjectFile.phase == phase)
    if search:
        pattern = f'%{search}%'
        query = query.filter(or_(
            ProjectFile.file_name.ilike(pattern),
            ProjectFile.description.ilike(pattern),
            ProjectFile.phase.ilike(pattern),
        ))
    return query.order_by(ProjectFile.created_at.desc(), ProjectFile.id.desc()).all()


def archive_file(identity, file_id: int) -> Outcome:
    """Soft-delete a file. The stored object is kept."""
    project_file = get_visible_file(identity, file_id)
    policy.require(policy.can_delete_file(identity, project_file), 'archive this file')

    project_file.is_archived = True
    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception('Archive failed', extra={'file_id': file_id})
        raise RemoteCallError('Failed to archive file')

    return record_activity_for(
        Outcome(project_file), project_file.project_id, ActivityAction.FILE_ARCHIVED,
        identity.user_id, {'file_id': file_id, 'file_name': project_file.file_name},
    )


def delete_file(identity, file_id: int) -> Outcome:
    """Permanently delete a file: stored object first, then the record."""
    project_file = get_visible_file(identity, file_id)
    policy.require(policy.can_delete_file(identity, project_file), 'delete this file')

    project_id = project_file.project_id
    details = {'file_id': file_id, 'file_name': project_file.file_name}
    try:
        get_storage().delete(project_file.storage_path)
    except StorageError:
        logger.exception('Storage delete failed', extra={'file_id': file_id})
        raise RemoteCallError('Failed to delete stored file')

    db.session.delete(project_file)
    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception('File record delete failed', extra={'file_id': file_id})
        raise RemoteCallError('Failed to delete file record')

    logger.info('Deleted file %d', file_id, extra={'project_id': project_id, 'file_id': file_id})
    return record_activity_for(
        Outcome(None), project_id, ActivityAction.FILE_DELETED, identity.user_id, details,
    )


def list_file_comments(identity, file_id: int) -> list[FileComment]:
    project_file = get_visible_file(identity, file_id)
    return (
        db.session.query(FileComment)
        .filter(FileComment.file_id == project_file.id)
        .order_by(FileComment.created_at.desc(), FileComment.id.desc())
        .all()
    )


def add_file_comment(identity, file_id: int, text: str) -> FileComment:
    """Post a comment on a file. Anyone who can view the project may comment."""
    require_fields({'comment': text}, ['comment'])
    project_file = get_visible_file(identity, file_id)
    policy.require(policy.can_comment(identity, project_file.project), 'comment on this file')

    comment = FileComment(
        file_id=project_file.id,
        project_id=project_file.project_id,
        comment=text.strip(),
        created_by=identity.user_id,
    )
    db.session.add(comment)
    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception('File comment failed', extra={'file_id': file_id})
        raise RemoteCallError('Failed to add comment')
    return comment


def record_download(identity, file_id: int) -> FileDownload:
    """Log that the caller downloaded a file and return the entry."""
    project_file = get_visible_file(identity, file_id)
    if project_file.is_archived:
        raise NotFoundError('File', file_id)

    download = FileDownload(
        file_id=project_file.id,
        project_id=project_file.project_id,
        downloaded_by=identity.user_id,
    )
    db.session.add(download)
    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception('Download log failed', extra={'file_id': file_id})
        raise RemoteCallError('Failed to record download')
    return download
