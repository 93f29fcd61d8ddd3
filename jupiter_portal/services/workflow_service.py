"""Phase workflow controller.

Every mutation of a project or its phases goes through here:

    validate input -> authorization policy -> write -> commit
    -> activity log (non-critical) -> external sync (non-critical)

Validation and permission failures raise before anything is written.
A failed commit is rolled back and reported as RemoteCallError, or as
ConflictError when another writer changed the same phase first. Failed
side effects only add warnings to the returned Outcome.
"""
import logging
from datetime import date

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from jupiter_portal import db
from jupiter_portal.exceptions import ConflictError, EmailConflictError, RemoteCallError, ValidationError
from jupiter_portal.integrations.workflow_sync import get_sync_client
from jupiter_portal.models import (
    ActivityAction,
    Phase,
    PhaseComment,
    PhaseStatus,
    Profile,
    Project,
    ProjectStatus,
    Role,
    TimeEntry,
)
from jupiter_portal.services import policy, project_service, templates, user_service
from jupiter_portal.services.activity_service import Outcome, record_activity_for
from jupiter_portal.services.validation import (
    check_date_order,
    parse_date,
    parse_hours,
    parse_number,
    require_fields,
    require_text,
)
from jupiter_portal.storage import StorageError, get_storage

logger = logging.getLogger(__name__)

MAX_HOURS_PER_ENTRY = 24

# Phase fields an edit may change
PHASE_EDITABLE_FIELDS = [
    'status', 'completion', 'actual_hours', 'estimated_hours', 'notes',
    'description', 'assigned_staff_id', 'start_date', 'end_date',
]

# Project header fields an update may change
PROJECT_EDITABLE_FIELDS = [
    'project_name', 'type', 'address', 'description', 'assigned_staff_id',
    'project_manager_id', 'lead_drafter_id', 'start_date', 'deadline',
    'status', 'notes',
]

REQUIRED_PROJECT_FIELDS = ['project_name', 'type', 'address']

# Fields that must be strings when supplied
PHASE_TEXT_FIELDS = ['status', 'notes', 'description', 'assigned_staff_id']
PROJECT_TEXT_FIELDS = [
    'project_name', 'type', 'address', 'description', 'notes', 'status',
    'assigned_staff_id', 'project_manager_id', 'lead_drafter_id',
    'client_mode', 'client_id', 'client_name', 'client_email', 'template',
]


def _commit(failure_message: str, **log_extra) -> None:
    """Commit the session, translating store failures.

    Raises:
        ConflictError: A versioned row was changed by someone else.
        RemoteCallError: Any other store failure.
    """
    try:
        db.session.commit()
    except StaleDataError:
        db.session.rollback()
        logger.info('Concurrent edit rejected: %s', failure_message, extra=log_extra)
        raise ConflictError(
            'This phase was changed by someone else. Reload and try again.'
        )
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception(failure_message, extra=log_extra)
        raise RemoteCallError(failure_message)


def _validate_staff_ids(ids: dict) -> None:
    """Every non-empty id must belong to a staff profile."""
    bad = {}
    for field, user_id in ids.items():
        if not user_id:
            continue
        profile = db.session.get(Profile, user_id)
        if profile is None or not (profile.role_enum and profile.role_enum.is_staff):
            bad[field] = user_id
    if bad:
        raise ValidationError('Assigned users must be staff members', details=bad)


def _validate_project_type(value: str) -> None:
    if not isinstance(value, str) or value not in templates.PROJECT_TYPES:
        raise ValidationError(
            f'Unknown project type: {value}. Must be one of: {list(templates.PROJECT_TYPES)}',
            details={'type': value},
        )


# ============================================================================
# Phase operations
# ============================================================================

def _validate_phase_changes(changes: dict) -> dict:
    """Coerce and check a phase edit. Returns only the recognised fields."""
    clean = {}
    for key in PHASE_EDITABLE_FIELDS:
        if key in changes:
            clean[key] = changes[key]

    if not clean:
        raise ValidationError(
            f'No editable fields supplied. Editable: {PHASE_EDITABLE_FIELDS}'
        )
    require_text(clean, PHASE_TEXT_FIELDS)

    if 'status' in clean and clean['status'] not in PhaseStatus.ALL:
        raise ValidationError(
            f"Invalid phase status: {clean['status']}. Must be one of: {PhaseStatus.ALL}",
            details={'status': clean['status']},
        )

    if 'completion' in clean:
        completion = parse_number(clean['completion'], 'completion')
        if not 0 <= completion <= 100 or completion != int(completion):
            raise ValidationError(
                'Completion must be a whole number between 0 and 100',
                details={'completion': clean['completion']},
            )
        clean['completion'] = int(completion)

    for key in ('actual_hours', 'estimated_hours'):
        if key in clean:
            clean[key] = parse_hours(clean[key], key)

    for key in ('start_date', 'end_date'):
        if key in clean:
            clean[key] = parse_date(clean[key], key)

    if 'assigned_staff_id' in clean:
        clean['assigned_staff_id'] = clean['assigned_staff_id'] or None
        _validate_staff_ids({'assigned_staff_id': clean['assigned_staff_id']})

    return clean


def edit_phase(identity, project_id: int, phase_index: int, changes: dict,
               expected_version: int = None) -> Outcome:
    """Edit one phase: status, completion, hours, notes, assignment, dates.

    Setting the status to in_progress also makes the phase the
    project's current phase.

    Args:
        identity: The caller.
        project_id: Project ID.
        phase_index: Position of the phase in the project.
        changes: Fields to change (see PHASE_EDITABLE_FIELDS).
        expected_version: Phase version the caller last saw. When given
            and stale, the edit is rejected instead of overwriting.

    Returns:
        Outcome with the updated Phase.

    Raises:
        NotFoundError, PermissionDeniedError, ValidationError,
        ConflictError, RemoteCallError.
    """
    project = project_service.get_visible_project(identity, project_id)
    phase = project_service.get_phase(project, phase_index)
    policy.require(
        policy.can_edit_phase(identity, project, phase_index), 'edit this phase'
    )

    clean = _validate_phase_changes(changes)
    start = clean.get('start_date', phase.start_date)
    end = clean.get('end_date', phase.end_date)
    check_date_order(start, end, 'start_date', 'end_date')

    if expected_version is not None:
        expected_version = int(parse_number(expected_version, 'expected_version'))
        if expected_version != phase.version_id:
            raise ConflictError(
                'This phase was changed by someone else. Reload and try again.',
                details={'expected_version': expected_version,
                         'current_version': phase.version_id},
            )

    previous = {key: getattr(phase, key) for key in clean}
    for key, value in clean.items():
        setattr(phase, key, value)
    if clean.get('status') == PhaseStatus.IN_PROGRESS:
        project.current_phase_index = phase_index

    _commit('Failed to update phase', project_id=project_id, phase_index=phase_index)

    logger.info('Phase %d of project %d updated', phase_index, project_id,
                extra={'project_id': project_id, 'phase_index': phase_index})
    changed = {
        key: {'from': _jsonable(previous[key]), 'to': _jsonable(value)}
        for key, value in clean.items() if previous[key] != value
    }
    return record_activity_for(
        Outcome(phase), project.id, ActivityAction.PHASE_UPDATED, identity.user_id,
        {'phase_index': phase_index, 'phase_name': phase.name, 'changes': changed},
    )


def _jsonable(value):
    return value.isoformat() if isinstance(value, date) else value


def log_time(identity, project_id: int, phase_index: int, hours,
             entry_date, description: str = None) -> Outcome:
    """Log hours worked on a phase.

    Inserts the TimeEntry and adds the hours to the phase's
    actual_hours in one transaction.

    Args:
        hours: Hours worked, 0 < hours <= 24.
        entry_date: Day the work was done (date or YYYY-MM-DD).

    Returns:
        Outcome with the created TimeEntry.
    """
    if hours in (None, '') or entry_date in (None, ''):
        raise ValidationError(
            'Date and hours are required',
            details={'hours': hours, 'date': entry_date},
        )
    require_text({'description': description}, ['description'])
    hours = parse_number(hours, 'hours')
    if not 0 < hours <= MAX_HOURS_PER_ENTRY:
        raise ValidationError(
            f'Hours must be greater than 0 and at most {MAX_HOURS_PER_ENTRY}',
            details={'hours': hours},
        )
    entry_date = parse_date(entry_date, 'date')

    project = project_service.get_visible_project(identity, project_id)
    phase = project_service.get_phase(project, phase_index)
    policy.require(
        policy.can_log_time(identity, project, phase_index), 'log time on this phase'
    )

    entry = TimeEntry(
        project_id=project.id,
        phase_index=phase_index,
        staff_id=identity.user_id,
        date=entry_date,
        hours=hours,
        description=(description or '').strip() or None,
    )
    db.session.add(entry)
    phase.actual_hours = Phase.actual_hours + hours

    _commit('Failed to log time', project_id=project_id, phase_index=phase_index)

    return record_activity_for(
        Outcome(entry), project.id, ActivityAction.TIME_LOGGED, identity.user_id,
        {'phase_index': phase_index, 'phase_name': phase.name, 'hours': hours,
         'date': entry_date.isoformat()},
    )


def add_phase_comment(identity, project_id: int, phase_index: int, text: str,
                      internal: bool = True) -> PhaseComment:
    """Post a comment on a phase. Anyone who can view the project may comment.

    Staff comments are internal (hidden from the client) unless
    ``internal`` is False; client comments are never internal.
    """
    require_fields({'comment': text}, ['comment'])

    project = project_service.get_visible_project(identity, project_id)
    project_service.get_phase(project, phase_index)
    policy.require(policy.can_comment(identity, project), 'comment on this project')

    comment = PhaseComment(
        project_id=project.id,
        phase_index=phase_index,
        comment=text.strip(),
        created_by=identity.user_id,
        is_internal=identity.is_staff and bool(internal),
    )
    db.session.add(comment)
    _commit('Failed to add comment', project_id=project_id, phase_index=phase_index)
    return comment


# ============================================================================
# Project operations
# ============================================================================

def resolve_client(data: dict):
    """Work out the client for a new project.

    ``client_mode`` 'existing' takes ``client_id``, which must be a client
    profile. 'new' takes ``client_name`` and ``client_email``: an existing
    client profile with that email is reused, a non-client one is an email
    conflict. Otherwise the client has no account yet: ``client_id``
    stays None and the client claims the project by signing up with
    that email (see user_service.claim_pending_client). Without client
    details the project starts unassigned.

    Returns:
        (client_id, client_email, client_name); all None when unassigned.

    Raises:
        ValidationError, EmailConflictError.
    """
    mode = data.get('client_mode')
    if mode is None:
        if data.get('client_id'):
            mode = 'existing'
        elif data.get('client_email') or data.get('client_name'):
            mode = 'new'
        else:
            return None, None, None

    if mode == 'existing':
        client_id = data.get('client_id')
        if not client_id:
            raise ValidationError('Please select an existing client',
                                  details={'client_id': 'required'})
        client = db.session.get(Profile, client_id)
        if client is None or client.role != Role.CLIENT.value:
            raise ValidationError('Selected client not found', details={'client_id': client_id})
        return client.id, client.email, client.display_name

    if mode != 'new':
        raise ValidationError(f'Unknown client_mode: {mode}', details={'client_mode': mode})

    name = (data.get('client_name') or '').strip()
    email = (data.get('client_email') or '').strip()
    if not name or not email:
        raise ValidationError(
            'New client name and email are required',
            details={'client_name': name or 'required', 'client_email': email or 'required'},
        )

    existing = user_service.find_profile_by_email(email)
    if existing is not None:
        if existing.role != Role.CLIENT.value:
            raise EmailConflictError(email)
        logger.info('Reusing existing client account for %s', existing.email)
        return existing.id, existing.email, existing.display_name

    logger.info('Project for %s will be claimed when the client signs up', email)
    return None, email, name


def _project_payload_for_sync(project: Project, client_name, client_email) -> dict:
    return {
        'project_name': project.project_name,
        'client_name': client_name,
        'client_email': client_email,
        'project_type': project.type,
        'status': project.status,
        'project_id': project.id,
        'project_number': project.project_number,
        'address': project.address,
    }


def sync_project(project: Project, client_name=None, client_email=None) -> list:
    """Push a committed project to the external workflow board.

    Runs inline in the create request; a dead endpoint delays the
    response by the client's max_blocking_seconds.

    Returns:
        List of warnings (empty on success or when sync is disabled).
    """
    client = get_sync_client()
    if client is None:
        return []

    result = client.push_project(_project_payload_for_sync(project, client_name, client_email))
    if not result.ok:
        logger.warning('Workflow sync failed for project %d: %s', project.id, result.error,
                       extra={'project_id': project.id})
        return [f'Project created, but workflow sync failed: {result.error}']

    project.external_item_id = result.item_id
    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.warning('Could not store external item id for project %d', project.id,
                       exc_info=True, extra={'project_id': project.id})
        return ['Project synced, but the external item id could not be saved']
    return []


def create_project(identity, data: dict) -> Outcome:
    """Create a project with its phases.

    Args:
        identity: The caller; must be admin or manager.
        data: Dictionary containing project field values.
              Required: project_name, type, address
              Optional: description, start_date, deadline, notes,
                       assigned_staff_id, project_manager_id,
                       lead_drafter_id, client_mode, client_id,
                       client_name, client_email, template
                       (standard/fast_track/renovation), phases
                       (custom phase list, overrides template),
                       phase_assignments (list of staff ids by position)

    Returns:
        Outcome with the created Project. Status is Pending when staff
        is pre-assigned (project or any phase), Draft otherwise.

    Raises:
        PermissionDeniedError, ValidationError, EmailConflictError,
        RemoteCallError.
    """
    policy.require(policy.can_create_project(identity), 'create projects')

    require_text(data, PROJECT_TEXT_FIELDS)
    require_fields(data, REQUIRED_PROJECT_FIELDS)
    _validate_project_type(data['type'])
    start_date = parse_date(data.get('start_date'), 'start_date')
    deadline = parse_date(data.get('deadline'), 'deadline')
    check_date_order(start_date, deadline)

    phase_specs = templates.build_phase_specs(data.get('template'), data.get('phases'))
    assignments = data.get('phase_assignments') or []
    if not isinstance(assignments, list) or not all(
        a is None or isinstance(a, str) for a in assignments
    ):
        raise ValidationError(
            'phase_assignments must be a list of staff ids',
            details={'phase_assignments': assignments},
        )
    for i, staff_id in enumerate(assignments[:len(phase_specs)]):
        if staff_id:
            phase_specs[i]['assigned_staff_id'] = staff_id

    staff_ids = {
        'assigned_staff_id': data.get('assigned_staff_id'),
        'project_manager_id': data.get('project_manager_id'),
        'lead_drafter_id': data.get('lead_drafter_id'),
    }
    for i, spec in enumerate(phase_specs):
        staff_ids[f'phases[{i}].assigned_staff_id'] = spec['assigned_staff_id']
    _validate_staff_ids(staff_ids)

    client_id, client_email, client_name = resolve_client(data)

    staff_assigned = any(staff_ids.values())
    project = Project(
        project_number=project_service.generate_project_number(),
        project_name=data['project_name'].strip(),
        type=data['type'],
        address=data['address'].strip(),
        description=data.get('description'),
        client_id=client_id,
        client_email=client_email,
        client_name=client_name,
        assigned_staff_id=staff_ids['assigned_staff_id'] or None,
        project_manager_id=staff_ids['project_manager_id'] or None,
        lead_drafter_id=staff_ids['lead_drafter_id'] or None,
        start_date=start_date,
        deadline=deadline,
        status=ProjectStatus.PENDING if staff_assigned else ProjectStatus.DRAFT,
        current_phase_index=0,
        template_used=templates.template_name(data.get('template'), data.get('phases')),
        total_estimated_hours=sum(spec['estimated_hours'] for spec in phase_specs),
        notes=data.get('notes'),
        created_by=identity.user_id,
    )
    project.phases = [
        Phase(position=i, status=PhaseStatus.PENDING, completion=0, actual_hours=0, **spec)
        for i, spec in enumerate(phase_specs)
    ]
    db.session.add(project)
    _commit('Failed to create project')

    logger.info('Created project %s (%s phases)', project.project_number, len(project.phases),
                extra={'project_id': project.id})
    outcome = Outcome(project)
    record_activity_for(
        outcome, project.id, ActivityAction.PROJECT_CREATED, identity.user_id,
        {'project_number': project.project_number,
         'template_used': project.template_used,
         'phase_count': len(project.phases)},
    )
    outcome.warnings.extend(sync_project(project, client_name, client_email))
    return outcome


def update_project(identity, project_id: int, data: dict) -> Outcome:
    """Update project header fields (not phases).

    Raises:
        NotFoundError, PermissionDeniedError, ValidationError, RemoteCallError.
    """
    project = project_service.get_visible_project(identity, project_id)
    policy.require(policy.can_update_project(identity, project), 'update this project')

    clean = {key: data[key] for key in PROJECT_EDITABLE_FIELDS if key in data}
    if not clean:
        raise ValidationError(
            f'No editable fields supplied. Editable: {PROJECT_EDITABLE_FIELDS}'
        )
    require_text(clean, PROJECT_TEXT_FIELDS)

    for key in REQUIRED_PROJECT_FIELDS:
        if key in clean and (not clean[key] or not clean[key].strip()):
            raise ValidationError(f'{key} cannot be blank', details={key: 'required'})
    if 'type' in clean:
        _validate_project_type(clean['type'])
    if 'status' in clean and clean['status'] not in ProjectStatus.ALL:
        raise ValidationError(
            f"Invalid status: {clean['status']}. Must be one of: {ProjectStatus.ALL}",
            details={'status': clean['status']},
        )
    for key in ('start_date', 'deadline'):
        if key in clean:
            clean[key] = parse_date(clean[key], key)
    check_date_order(clean.get('start_date', project.start_date),
                     clean.get('deadline', project.deadline))
    _validate_staff_ids({
        key: clean[key] for key in ('assigned_staff_id', 'project_manager_id', 'lead_drafter_id')
        if key in clean
    })

    changed = {}
    for key, value in clean.items():
        if isinstance(value, str) and key != 'notes':
            value = value.strip() or None
        if getattr(project, key) != value:
            changed[key] = {'from': _jsonable(getattr(project, key)), 'to': _jsonable(value)}
            setattr(project, key, value)

    if not changed:
        return Outcome(project)

    _commit('Failed to update project', project_id=project_id)
    return record_activity_for(
        Outcome(project), project.id, ActivityAction.PROJECT_UPDATED, identity.user_id,
        {'changes': changed},
    )


def delete_project(identity, project_id: int) -> Outcome:
    """Permanently delete a project, its phases, entries, comments and files.

    Admin only and irreversible. Stored file objects are removed after
    the rows are gone; a storage failure there is only a warning.
    """
    policy.require(policy.can_delete_project(identity), 'delete projects')
    project = project_service.get_project_or_404(project_id)

    storage_paths = [f.storage_path for f in project.files]
    details = {
        'project_number': project.project_number,
        'project_name': project.project_name,
        'file_count': len(storage_paths),
    }
    db.session.delete(project)
    _commit('Failed to delete project', project_id=project_id)
    logger.info('Deleted project %s', details['project_number'],
                extra={'project_id': project_id})

    outcome = Outcome(None)
    storage = get_storage()
    for path in storage_paths:
        try:
            storage.delete(path)
        except StorageError:
            logger.warning('Could not remove stored file %s', path, exc_info=True,
                           extra={'project_id': project_id})
            outcome.warnings.append(f'Stored file {path} could not be removed')

    return record_activity_for(
        outcome, project_id, ActivityAction.PROJECT_DELETED, identity.user_id, details,
    )
