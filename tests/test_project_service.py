"""Tests for the project repository: lookups, visibility and listings."""
from datetime import date

import pytest

from jupiter_portal import db
from jupiter_portal.exceptions import NotFoundError, PermissionDeniedError
from jupiter_portal.models import PhaseComment, ProjectStatus, Role, TimeEntry
from jupiter_portal.services import project_service
from jupiter_portal.services.identity import Identity


class TestGenerateProjectNumber:
    """Tests for generate_project_number."""

    def test_first_number_of_year(self, app):
        assert project_service.generate_project_number(2026) == 'PRJ-2026-001'

    def test_counts_existing_numbers(self, app, make_project):
        make_project(project_number='PRJ-2026-001')
        make_project(project_number='PRJ-2026-002')
        make_project(project_number='PRJ-2025-001')

        assert project_service.generate_project_number(2026) == 'PRJ-2026-003'

    def test_skips_collisions(self, app, make_project):
        """A gap left by a deleted project does not produce a duplicate."""
        make_project(project_number='PRJ-2026-002')

        assert project_service.generate_project_number(2026) == 'PRJ-2026-003'


class TestGetVisibleProject:
    """Tests for get_visible_project."""

    def test_missing_project(self, app, admin):
        with pytest.raises(NotFoundError):
            project_service.get_visible_project(admin, 999)

    def test_client_own_project(self, app, make_project, client_user):
        project_id = make_project(client_id=client_user.user_id)
        assert project_service.get_visible_project(client_user, project_id).id == project_id

    def test_other_clients_project_is_not_found(self, app, make_project, make_user):
        """Clients cannot tell another client's project from a missing one."""
        owner = make_user(Role.CLIENT)
        other = make_user(Role.CLIENT)
        project_id = make_project(client_id=owner.user_id)

        with pytest.raises(NotFoundError):
            project_service.get_visible_project(other, project_id)

    def test_no_role_is_denied(self, app, make_project):
        project_id = make_project()
        with pytest.raises(PermissionDeniedError):
            project_service.get_visible_project(Identity('x', None, 'x'), project_id)


class TestGetPhase:
    """Tests for get_phase."""

    def test_valid_index(self, app, make_project):
        project = project_service.get_project(make_project())
        assert project_service.get_phase(project, 2).name == 'Construction Documents'

    @pytest.mark.parametrize('index', [-1, 7, None])
    def test_invalid_index(self, app, make_project, index):
        project = project_service.get_project(make_project())
        with pytest.raises(NotFoundError):
            project_service.get_phase(project, index)


class TestListProjects:
    """Tests for list_projects."""

    def test_visibility_by_role(self, app, make_project, make_user, admin, drafter):
        """Drafters list assigned projects only; clients only their own."""
        client_a = make_user(Role.CLIENT)
        mine = make_project(project_name='Mine', assigned_staff_id=drafter.user_id,
                            client_id=client_a.user_id)
        make_project(project_name='Other')

        assert len(project_service.list_projects(admin)) == 2
        assert [p.id for p in project_service.list_projects(drafter)] == [mine]
        assert [p.id for p in project_service.list_projects(client_a)] == [mine]
        assert project_service.list_projects(Identity.anonymous()) == []

    def test_status_filter(self, app, make_project, admin):
        make_project(status=ProjectStatus.DRAFT)
        make_project(status=ProjectStatus.COMPLETED)

        result = project_service.list_projects(admin, {'status': 'Draft'})
        assert [p.status for p in result] == ['Draft']

    def test_search_matches_client_and_staff_names(self, app, make_project, make_user, admin):
        client_a = make_user(Role.CLIENT, full_name='Wilhelmina Client')
        staff = make_user(Role.STAFF_DRAFTER, full_name='Bartholomew Drafter')
        by_client = make_project(project_name='One', client_id=client_a.user_id)
        by_staff = make_project(project_name='Two', assigned_staff_id=staff.user_id)
        by_address = make_project(project_name='Three', address='77 Juniper Way')

        assert [p.id for p in project_service.list_projects(admin, {'search': 'wilhelm'})] == [by_client]
        assert [p.id for p in project_service.list_projects(admin, {'search': 'BARTHOL'})] == [by_staff]
        assert [p.id for p in project_service.list_projects(admin, {'search': 'juniper'})] == [by_address]

    def test_search_matches_pending_client_name(self, app, make_project, admin):
        """Projects waiting for a client to sign up are found by the stored name."""
        pending = make_project(client_email='pat@example.com', client_name='Pat Owner')
        make_project(project_name='Other')

        assert [p.id for p in project_service.list_projects(admin, {'search': 'pat owner'})] == [pending]

    def test_deadline_range_and_sort(self, app, make_project, admin):
        early = make_project(deadline=date(2026, 1, 10))
        late = make_project(deadline=date(2026, 3, 10))
        make_project(deadline=date(2026, 6, 10))

        result = project_service.list_projects(admin, {
            'deadline_from': date(2026, 1, 1),
            'deadline_to': date(2026, 4, 1),
            'sort_by': 'deadline',
            'sort_dir': 'asc',
        })
        assert [p.id for p in result] == [early, late]

    def test_unknown_sort_field_falls_back(self, app, make_project, admin):
        first = make_project()
        second = make_project()
        result = project_service.list_projects(admin, {'sort_by': 'password'})
        assert [p.id for p in result] == [second, first]


class TestSubEntityListings:
    """Tests for comment and time entry listings."""

    def test_comments_newest_first(self, app, make_project, admin):
        project_id = make_project()
        for text in ('first', 'second'):
            db.session.add(PhaseComment(project_id=project_id, phase_index=0,
                                        comment=text, created_by=admin.user_id))
            db.session.commit()

        comments = project_service.list_phase_comments(project_id, 0)
        assert [c.comment for c in comments] == ['second', 'first']
        assert project_service.list_phase_comments(project_id, 1) == []

    def test_time_entries_and_total(self, app, make_project, drafter):
        project_id = make_project()
        db.session.add_all([
            TimeEntry(project_id=project_id, phase_index=0, staff_id=drafter.user_id,
                      date=date(2026, 2, 1), hours=2),
            TimeEntry(project_id=project_id, phase_index=0, staff_id=drafter.user_id,
                      date=date(2026, 2, 3), hours=3.5),
            TimeEntry(project_id=project_id, phase_index=1, staff_id=drafter.user_id,
                      date=date(2026, 2, 3), hours=1),
        ])
        db.session.commit()

        entries = project_service.list_time_entries(project_id=project_id, phase_index=0)
        assert [e.hours for e in entries] == [3.5, 2]
        assert project_service.logged_hours(project_id, 0) == 5.5
        assert len(project_service.list_time_entries(since=date(2026, 2, 2))) == 2
