"""Tests for the phase workflow controller.

Covers phase edits (validation, permissions, optimistic concurrency),
time logging, phase comments and the project create/update/delete
lifecycle including client resolution and soft warnings.
"""
from datetime import date
from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy.exc import OperationalError

from jupiter_portal import db
from jupiter_portal.exceptions import (
    ConflictError,
    EmailConflictError,
    NotFoundError,
    PermissionDeniedError,
    RemoteCallError,
    ValidationError,
)
from jupiter_portal.integrations.workflow_sync import SyncResult
from jupiter_portal.models import (
    ActivityAction,
    ActivityLogEntry,
    Phase,
    PhaseComment,
    PhaseStatus,
    Profile,
    Project,
    ProjectStatus,
    Role,
    TimeEntry,
)
from jupiter_portal.services import workflow_service
from jupiter_portal.services.activity_service import ACTIVITY_WARNING


def _actions():
    return [e.action for e in db.session.query(ActivityLogEntry).order_by(ActivityLogEntry.id)]


@pytest.fixture
def project_data():
    """Valid create_project input without client or staff."""
    return {
        'project_name': 'Lakeside Cabin',
        'type': 'residential_single',
        'address': '12 Shore Rd',
        'start_date': '2026-02-01',
        'deadline': '2026-05-01',
    }


class TestEditPhase:
    """Tests for edit_phase."""

    def test_update_status_and_completion(self, app, make_project, manager):
        project_id = make_project()

        outcome = workflow_service.edit_phase(
            manager, project_id, 1, {'status': 'in_progress', 'completion': 40}
        )

        phase = outcome.value
        assert phase.status == PhaseStatus.IN_PROGRESS
        assert phase.completion == 40
        assert phase.version_id == 2
        assert outcome.warnings == []
        assert db.session.get(Project, project_id).current_phase_index == 1
        assert _actions() == [ActivityAction.PHASE_UPDATED]

    def test_activity_records_changes(self, app, make_project, manager):
        project_id = make_project()
        workflow_service.edit_phase(manager, project_id, 0, {'notes': 'Survey received'})

        entry = db.session.query(ActivityLogEntry).one()
        assert entry.details['phase_index'] == 0
        assert entry.details['phase_name'] == 'Preliminary Design'
        assert entry.details['changes'] == {'notes': {'from': None, 'to': 'Survey received'}}

    @pytest.mark.parametrize('completion', [150, -1, 12.5, True, 'lots'])
    def test_rejects_bad_completion_before_write(self, app, make_project, manager, completion):
        """Out-of-range completion never reaches the database."""
        project_id = make_project()

        with pytest.raises(ValidationError):
            workflow_service.edit_phase(manager, project_id, 0, {'completion': completion})

        db.session.rollback()
        phase = db.session.get(Project, project_id).phases[0]
        assert phase.completion == 0
        assert phase.version_id == 1
        assert _actions() == []

    def test_rejects_unknown_status(self, app, make_project, manager):
        with pytest.raises(ValidationError):
            workflow_service.edit_phase(manager, make_project(), 0, {'status': 'done'})

    def test_rejects_no_editable_fields(self, app, make_project, manager):
        with pytest.raises(ValidationError):
            workflow_service.edit_phase(manager, make_project(), 0, {'name': 'Renamed'})

    def test_rejects_non_staff_assignee(self, app, make_project, manager, client_user):
        with pytest.raises(ValidationError):
            workflow_service.edit_phase(
                manager, make_project(), 0, {'assigned_staff_id': client_user.user_id}
            )

    def test_rejects_end_before_start(self, app, make_project, manager):
        with pytest.raises(ValidationError):
            workflow_service.edit_phase(manager, make_project(), 0, {
                'start_date': '2026-03-10', 'end_date': '2026-03-01',
            })

    @pytest.mark.parametrize('field', ['actual_hours', 'estimated_hours'])
    @pytest.mark.parametrize('value', ['nan', 'inf', float('-inf')])
    def test_rejects_non_finite_hours(self, app, make_project, manager, field, value):
        """NaN and infinite hours never reach the database."""
        project_id = make_project()

        with pytest.raises(ValidationError) as excinfo:
            workflow_service.edit_phase(manager, project_id, 0, {field: value})
        assert field in excinfo.value.details

        db.session.rollback()
        assert db.session.get(Project, project_id).phases[0].version_id == 1

    @pytest.mark.parametrize('changes', [
        {'status': ['Completed']},
        {'notes': 42},
        {'assigned_staff_id': {'id': 'x'}},
    ])
    def test_rejects_non_text_values(self, app, make_project, manager, changes):
        with pytest.raises(ValidationError) as excinfo:
            workflow_service.edit_phase(manager, make_project(), 0, changes)
        assert excinfo.value.details == {next(iter(changes)): 'must be text'}

    def test_unassigned_drafter_denied(self, app, make_project, drafter):
        with pytest.raises(PermissionDeniedError):
            workflow_service.edit_phase(drafter, make_project(), 0, {'completion': 10})

    def test_phase_assignee_allowed(self, app, make_project, drafter):
        project_id = make_project()
        db.session.get(Project, project_id).phases[2].assigned_staff_id = drafter.user_id
        db.session.commit()

        outcome = workflow_service.edit_phase(drafter, project_id, 2, {'completion': 10})
        assert outcome.value.completion == 10

    def test_client_gets_not_found_for_other_project(self, app, make_project, client_user):
        with pytest.raises(NotFoundError):
            workflow_service.edit_phase(client_user, make_project(), 0, {'completion': 10})

    def test_unknown_phase(self, app, make_project, manager):
        with pytest.raises(NotFoundError):
            workflow_service.edit_phase(manager, make_project(), 9, {'completion': 10})

    def test_stale_version_is_conflict(self, app, make_project, manager):
        """An edit based on an old version is rejected, not merged."""
        project_id = make_project()
        workflow_service.edit_phase(manager, project_id, 0, {'completion': 10},
                                    expected_version=1)

        with pytest.raises(ConflictError):
            workflow_service.edit_phase(manager, project_id, 0, {'completion': 20},
                                        expected_version=1)
        assert db.session.get(Project, project_id).phases[0].completion == 10

    def test_edits_to_different_phases_do_not_clobber(self, app, make_project, manager, admin):
        """Phases are independent rows; editing one leaves the other intact."""
        project_id = make_project()
        workflow_service.edit_phase(manager, project_id, 0, {'notes': 'A'}, expected_version=1)
        workflow_service.edit_phase(admin, project_id, 1, {'notes': 'B'}, expected_version=1)

        phases = db.session.get(Project, project_id).phases
        assert (phases[0].notes, phases[1].notes) == ('A', 'B')

    def test_concurrent_flush_is_conflict(self, app, make_project, manager):
        """A StaleDataError from the flush becomes ConflictError."""
        from sqlalchemy.orm.exc import StaleDataError

        project_id = make_project()
        with patch('sqlalchemy.orm.Session.commit', side_effect=StaleDataError('stale')):
            with pytest.raises(ConflictError):
                workflow_service.edit_phase(manager, project_id, 0, {'completion': 5})

    def test_store_failure_is_remote_error(self, app, make_project, manager):
        project_id = make_project()
        error = OperationalError('UPDATE', {}, Exception('disk I/O error'))
        with patch('sqlalchemy.orm.Session.commit', side_effect=error):
            with pytest.raises(RemoteCallError):
                workflow_service.edit_phase(manager, project_id, 0, {'completion': 5})

        assert db.session.get(Project, project_id).phases[0].completion == 0

    def test_activity_failure_is_soft_warning(self, app, make_project, manager):
        """A failed activity insert keeps the edit and adds a warning."""
        project_id = make_project()
        with patch('jupiter_portal.services.activity_service.record_activity',
                   return_value=False):
            outcome = workflow_service.edit_phase(manager, project_id, 0, {'completion': 5})

        assert outcome.warnings == [ACTIVITY_WARNING]
        assert db.session.get(Project, project_id).phases[0].completion == 5


class TestLogTime:
    """Tests for log_time."""

    def test_inserts_entry_and_bumps_actual_hours(self, app, make_project, manager):
        project_id = make_project()

        outcome = workflow_service.log_time(manager, project_id, 0, 3.5, '2026-02-02', 'Sketches')
        workflow_service.log_time(manager, project_id, 0, '1.5', date(2026, 2, 3))

        assert outcome.value.hours == 3.5
        assert outcome.value.description == 'Sketches'
        phase = db.session.get(Project, project_id).phases[0]
        assert phase.actual_hours == 5.0
        assert db.session.query(TimeEntry).count() == 2
        assert _actions() == [ActivityAction.TIME_LOGGED, ActivityAction.TIME_LOGGED]

    @pytest.mark.parametrize('hours', [0, 25, -1, 24.01])
    def test_rejects_hours_out_of_range(self, app, make_project, manager, hours):
        project_id = make_project()
        with pytest.raises(ValidationError):
            workflow_service.log_time(manager, project_id, 0, hours, '2026-02-02')
        assert db.session.query(TimeEntry).count() == 0

    @pytest.mark.parametrize('hours', ['nan', float('nan'), 'inf'])
    def test_rejects_non_finite_hours(self, app, make_project, manager, hours):
        project_id = make_project()
        with pytest.raises(ValidationError):
            workflow_service.log_time(manager, project_id, 0, hours, '2026-02-02')
        assert db.session.query(TimeEntry).count() == 0
        assert db.session.get(Project, project_id).phases[0].actual_hours == 0

    def test_rejects_non_text_description(self, app, make_project, manager):
        with pytest.raises(ValidationError):
            workflow_service.log_time(manager, make_project(), 0, 2, '2026-02-02', 12)
        assert db.session.query(TimeEntry).count() == 0

    def test_accepts_full_day(self, app, make_project, manager):
        outcome = workflow_service.log_time(manager, make_project(), 0, 24, '2026-02-02')
        assert outcome.value.hours == 24

    def test_requires_date(self, app, make_project, manager):
        with pytest.raises(ValidationError):
            workflow_service.log_time(manager, make_project(), 0, 2, None)

    def test_entry_and_hours_roll_back_together(self, app, make_project, manager):
        """A failed commit leaves neither the entry nor the hour bump."""
        project_id = make_project()
        error = OperationalError('INSERT', {}, Exception('disk I/O error'))
        with patch('sqlalchemy.orm.Session.commit', side_effect=error):
            with pytest.raises(RemoteCallError):
                workflow_service.log_time(manager, project_id, 0, 2, '2026-02-02')

        assert db.session.query(TimeEntry).count() == 0
        assert db.session.get(Project, project_id).phases[0].actual_hours == 0

    def test_client_cannot_log_time(self, app, make_project, client_user):
        project_id = make_project(client_id=client_user.user_id)
        with pytest.raises(PermissionDeniedError):
            workflow_service.log_time(client_user, project_id, 0, 2, '2026-02-02')


class TestAddPhaseComment:
    """Tests for add_phase_comment."""

    def test_client_comments_on_own_project(self, app, make_project, client_user):
        project_id = make_project(client_id=client_user.user_id)

        comment = workflow_service.add_phase_comment(client_user, project_id, 1, '  Looks good ')
        assert comment.comment == 'Looks good'
        assert comment.is_internal is False

    def test_staff_comments_internal_by_default(self, app, make_project, drafter):
        project_id = make_project()
        assert workflow_service.add_phase_comment(drafter, project_id, 0, 'note').is_internal
        shared = workflow_service.add_phase_comment(drafter, project_id, 0, 'hi', internal=False)
        assert shared.is_internal is False

    @pytest.mark.parametrize('text', ['', '   ', None])
    def test_rejects_empty_text(self, app, make_project, manager, text):
        with pytest.raises(ValidationError):
            workflow_service.add_phase_comment(manager, make_project(), 0, text)
        assert db.session.query(PhaseComment).count() == 0

    @pytest.mark.parametrize('text', [42, ['hi'], {'text': 'hi'}])
    def test_rejects_non_text_comment(self, app, make_project, manager, text):
        with pytest.raises(ValidationError) as excinfo:
            workflow_service.add_phase_comment(manager, make_project(), 0, text)
        assert excinfo.value.details == {'comment': 'must be text'}
        assert db.session.query(PhaseComment).count() == 0


class TestCreateProject:
    """Tests for create_project."""

    def test_creates_draft_with_standard_phases(self, app, manager, project_data):
        outcome = workflow_service.create_project(manager, project_data)

        project = outcome.value
        assert project.id is not None
        assert project.status == ProjectStatus.DRAFT
        assert project.project_number.startswith('PRJ-')
        assert project.template_used == 'standard'
        assert len(project.phases) == 7
        assert project.total_estimated_hours == sum(p.estimated_hours for p in project.phases)
        assert project.start_date == date(2026, 2, 1)
        assert project.created_by == manager.user_id
        assert _actions() == [ActivityAction.PROJECT_CREATED]
        assert outcome.warnings == []

    def test_pending_when_staff_assigned(self, app, manager, drafter, project_data):
        project_data['assigned_staff_id'] = drafter.user_id
        assert workflow_service.create_project(manager, project_data).value.status == 'Pending'

    def test_pending_when_phase_assigned(self, app, manager, drafter, project_data):
        project_data['template'] = 'fast_track'
        project_data['phase_assignments'] = [None, drafter.user_id]

        project = workflow_service.create_project(manager, project_data).value
        assert project.status == ProjectStatus.PENDING
        assert len(project.phases) == 4
        assert project.phases[1].assigned_staff_id == drafter.user_id

    def test_custom_phases(self, app, manager, project_data):
        project_data['phases'] = [
            {'name': 'Survey', 'estimated_hours': 5},
            {'name': 'Drawings', 'estimated_hours': '12.5'},
        ]
        project = workflow_service.create_project(manager, project_data).value

        assert project.template_used == 'custom'
        assert [p.name for p in project.phases] == ['Survey', 'Drawings']
        assert project.total_estimated_hours == 17.5

    def test_start_after_deadline_creates_nothing(self, app, manager, project_data):
        project_data['start_date'] = '2026-06-01'

        with pytest.raises(ValidationError):
            workflow_service.create_project(manager, project_data)
        assert db.session.query(Project).count() == 0

    @pytest.mark.parametrize('field', ['project_name', 'type', 'address'])
    def test_required_fields(self, app, manager, project_data, field):
        project_data[field] = ''
        with pytest.raises(ValidationError) as excinfo:
            workflow_service.create_project(manager, project_data)
        assert field in excinfo.value.details

    def test_unknown_type_or_template(self, app, manager, project_data):
        with pytest.raises(ValidationError):
            workflow_service.create_project(manager, dict(project_data, type='castle'))
        with pytest.raises(ValidationError):
            workflow_service.create_project(manager, dict(project_data, template='slow'))

    def test_drafter_cannot_create(self, app, drafter, project_data):
        with pytest.raises(PermissionDeniedError):
            workflow_service.create_project(drafter, project_data)

    def test_new_client_without_account_waits_for_signup(self, app, manager, project_data):
        """No profile is invented; the project keeps the email until the client signs up."""
        project_data.update(client_mode='new', client_name='Pat Owner',
                            client_email='pat@example.com')

        project = workflow_service.create_project(manager, project_data).value

        assert project.client_id is None
        assert project.client_email == 'pat@example.com'
        assert project.to_dict()['client_name'] == 'Pat Owner'
        assert db.session.query(Profile).filter_by(email='pat@example.com').count() == 0

    def test_new_client_email_reuses_existing_client(self, app, manager, make_user, project_data):
        """An email already owned by a client reuses that profile."""
        existing = make_user(Role.CLIENT, email='repeat@example.com')
        project_data.update(client_mode='new', client_name='Someone',
                            client_email='Repeat@Example.com')

        project = workflow_service.create_project(manager, project_data).value
        assert project.client_id == existing.user_id
        assert db.session.query(Profile).filter_by(role='client').count() == 1

    def test_new_client_email_owned_by_staff_is_conflict(self, app, manager, make_user,
                                                        project_data):
        make_user(Role.STAFF_DRAFTER, email='staffer@example.com')
        project_data.update(client_mode='new', client_name='Someone',
                            client_email='staffer@example.com')

        with pytest.raises(EmailConflictError) as excinfo:
            workflow_service.create_project(manager, project_data)
        assert excinfo.value.status_code == 409
        assert db.session.query(Project).count() == 0

    def test_existing_client_must_be_client(self, app, manager, drafter, project_data):
        project_data.update(client_mode='existing', client_id=drafter.user_id)
        with pytest.raises(ValidationError):
            workflow_service.create_project(manager, project_data)

    def test_new_client_requires_name_and_email(self, app, manager, project_data):
        project_data.update(client_mode='new', client_email='x@example.com')
        with pytest.raises(ValidationError):
            workflow_service.create_project(manager, project_data)

    def test_failed_insert_leaves_no_client(self, app, manager, project_data):
        """A failed insert leaves neither a project nor a client profile."""
        project_data.update(client_mode='new', client_name='Pat', client_email='pat@example.com')
        error = OperationalError('INSERT', {}, Exception('disk I/O error'))
        with patch('sqlalchemy.orm.Session.commit', side_effect=error):
            with pytest.raises(RemoteCallError):
                workflow_service.create_project(manager, project_data)

        assert db.session.query(Project).count() == 0
        assert db.session.query(Profile).filter_by(email='pat@example.com').count() == 0

    @pytest.mark.parametrize('changes', [
        {'project_name': 123},
        {'type': ['residential_single']},
        {'address': {'line1': '12 Shore Rd'}},
        {'template': ['standard']},
        {'client_email': 5},
    ])
    def test_rejects_non_text_fields(self, app, manager, project_data, changes):
        with pytest.raises(ValidationError) as excinfo:
            workflow_service.create_project(manager, dict(project_data, **changes))
        assert excinfo.value.details == {next(iter(changes)): 'must be text'}
        assert db.session.query(Project).count() == 0

    @pytest.mark.parametrize('phases', [
        ['Survey'],
        [{'name': 'Survey'}, 7],
        [{'name': 42}],
        [{'name': 'Survey', 'description': ['a']}],
        {'name': 'Survey'},
    ])
    def test_rejects_malformed_custom_phases(self, app, manager, project_data, phases):
        project_data['phases'] = phases
        with pytest.raises(ValidationError) as excinfo:
            workflow_service.create_project(manager, project_data)
        assert 'phases' in excinfo.value.details
        assert db.session.query(Project).count() == 0

    @pytest.mark.parametrize('assignments', ['drafter-1', [7], {'0': 'x'}])
    def test_rejects_malformed_phase_assignments(self, app, manager, project_data, assignments):
        project_data['phase_assignments'] = assignments
        with pytest.raises(ValidationError):
            workflow_service.create_project(manager, project_data)
        assert db.session.query(Project).count() == 0

    def test_custom_phase_end_before_start_creates_nothing(self, app, manager, project_data):
        project_data['phases'] = [
            {'name': 'Survey', 'start_date': '2026-03-10', 'end_date': '2026-03-01'},
        ]
        with pytest.raises(ValidationError) as excinfo:
            workflow_service.create_project(manager, project_data)
        assert excinfo.value.details == {'start_date': '2026-03-10', 'end_date': '2026-03-01'}
        assert db.session.query(Project).count() == 0

    def test_custom_phase_dates_stored(self, app, manager, project_data):
        project_data['phases'] = [
            {'name': 'Survey', 'start_date': '2026-03-01', 'end_date': '2026-03-01'},
        ]
        phase = workflow_service.create_project(manager, project_data).value.phases[0]
        assert phase.start_date == date(2026, 3, 1)
        assert phase.end_date == date(2026, 3, 1)

    def test_sync_success_stores_item_id(self, app, manager, project_data):
        sync = MagicMock()
        sync.push_project.return_value = SyncResult(True, item_id='9001', attempts=1)
        app.extensions['workflow_sync'] = sync

        outcome = workflow_service.create_project(manager, project_data)

        assert outcome.warnings == []
        assert db.session.get(Project, outcome.value.id).external_item_id == '9001'
        payload = sync.push_project.call_args.args[0]
        assert payload['project_name'] == 'Lakeside Cabin'
        assert payload['project_type'] == 'residential_single'
        assert payload['project_id'] == outcome.value.id

    def test_sync_failure_is_soft_warning(self, app, manager, project_data):
        """The project is kept when the sync endpoint fails."""
        sync = MagicMock()
        sync.push_project.return_value = SyncResult(False, error='HTTP 503', attempts=2)
        app.extensions['workflow_sync'] = sync

        outcome = workflow_service.create_project(manager, project_data)

        assert len(outcome.warnings) == 1
        assert 'HTTP 503' in outcome.warnings[0]
        assert db.session.query(Project).count() == 1


class TestUpdateProject:
    """Tests for update_project."""

    def test_update_header_fields(self, app, make_project, manager):
        project_id = make_project()

        outcome = workflow_service.update_project(manager, project_id, {
            'project_name': 'Renamed', 'status': 'On Hold', 'deadline': '2026-09-01',
        })

        project = outcome.value
        assert project.project_name == 'Renamed'
        assert project.status == ProjectStatus.ON_HOLD
        assert project.deadline == date(2026, 9, 1)
        entry = db.session.query(ActivityLogEntry).one()
        assert entry.action == ActivityAction.PROJECT_UPDATED
        assert entry.details['changes']['status'] == {'from': 'In Progress', 'to': 'On Hold'}

    def test_invalid_status(self, app, make_project, manager):
        with pytest.raises(ValidationError):
            workflow_service.update_project(manager, make_project(), {'status': 'Done'})

    @pytest.mark.parametrize('changes', [
        {'project_name': 123},
        {'type': ['x']},
        {'notes': {'text': 'x'}},
    ])
    def test_rejects_non_text_fields(self, app, make_project, manager, changes):
        project_id = make_project(project_name='Same')
        with pytest.raises(ValidationError) as excinfo:
            workflow_service.update_project(manager, project_id, changes)
        assert excinfo.value.details == {next(iter(changes)): 'must be text'}
        assert db.session.get(Project, project_id).project_name == 'Same'

    def test_project_manager_may_update(self, app, make_project, drafter):
        project_id = make_project(project_manager_id=drafter.user_id)
        outcome = workflow_service.update_project(drafter, project_id, {'notes': 'PM note'})
        assert outcome.value.notes == 'PM note'

    def test_other_drafter_denied(self, app, make_project, drafter):
        with pytest.raises(PermissionDeniedError):
            workflow_service.update_project(drafter, make_project(), {'notes': 'x'})

    def test_no_change_writes_no_activity(self, app, make_project, manager):
        project_id = make_project(project_name='Same')
        workflow_service.update_project(manager, project_id, {'project_name': 'Same'})
        assert _actions() == []


class TestDeleteProject:
    """Tests for delete_project."""

    def test_admin_deletes_everything(self, app, make_project, admin):
        project_id = make_project()
        workflow_service.log_time(admin, project_id, 0, 2, '2026-02-02')

        outcome = workflow_service.delete_project(admin, project_id)

        assert outcome.warnings == []
        assert db.session.get(Project, project_id) is None
        assert db.session.query(Phase).count() == 0
        assert db.session.query(TimeEntry).count() == 0
        assert _actions()[-1] == ActivityAction.PROJECT_DELETED

    @pytest.mark.parametrize('role', [Role.STAFF_MANAGER, Role.STAFF_DRAFTER, Role.CLIENT])
    def test_only_admin(self, app, make_project, make_user, role):
        project_id = make_project()
        with pytest.raises(PermissionDeniedError):
            workflow_service.delete_project(make_user(role), project_id)
        assert db.session.get(Project, project_id) is not None
