#!/usr/bin/env python3
"""Seed data script for the Jupiter Automation project portal.

Creates one profile per role plus a few extra staff and clients, then
builds sample projects from the phase templates at different stages so
every dashboard section has something to show (overdue, upcoming
deadlines, in-progress phases, logged hours).

Usage:
    python scripts/seed_data.py

The script is idempotent - it checks for existing projects and skips
seeding if data already exists. Use reset_db.py to clear and reseed.
"""
import random
import sys
from datetime import date, timedelta
from pathlib import Path

# Add project root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from jupiter_portal import create_app, db
from jupiter_portal.models import (
    Phase,
    PhaseStatus,
    Profile,
    Project,
    ProjectStatus,
    Role,
    TimeEntry,
)
from jupiter_portal.services.project_service import generate_project_number
from jupiter_portal.services.templates import build_phase_specs

# Fixed ids so tokens minted for local testing keep working across reseeds
PROFILES = [
    ('00000000-0000-4000-8000-000000000001', 'admin@jupiter.test', 'Avery Admin', Role.STAFF_ADMIN),
    ('00000000-0000-4000-8000-000000000002', 'manager@jupiter.test', 'Morgan Manager', Role.STAFF_MANAGER),
    ('00000000-0000-4000-8000-000000000003', 'drafter@jupiter.test', 'Dana Drafter', Role.STAFF_DRAFTER),
    ('00000000-0000-4000-8000-000000000004', 'drafter2@jupiter.test', 'Riley Drafter', Role.STAFF_DRAFTER),
    ('00000000-0000-4000-8000-000000000005', 'client@jupiter.test', 'Casey Client', Role.CLIENT),
    ('00000000-0000-4000-8000-000000000006', 'client2@jupiter.test', 'Jordan Client', Role.CLIENT),
    ('00000000-0000-4000-8000-000000000007', 'client3@jupiter.test', 'Taylor Client', Role.CLIENT),
]

STREETS = ['Oak Ave', 'Harbor Blvd', 'Main St', 'Cedar Ln', 'Mission Rd', 'Ridge Dr']

# (name, type, template, status, phases done, completion of the active phase,
#  days from today to deadline)
PROJECT_PLANS = [
    ('Hillside Residence', 'residential_single', 'standard', ProjectStatus.IN_PROGRESS, 2, 60, 20),
    ('Harbor Retail Center', 'commercial_retail', 'fast_track', ProjectStatus.IN_PROGRESS, 1, 30, -4),
    ('Cedar Lane Addition', 'renovation', 'renovation', ProjectStatus.IN_REVIEW, 3, 90, 3),
    ('Mission Office Park', 'commercial_office', 'standard', ProjectStatus.PENDING, 0, 0, 45),
    ('Ridge Community Library', 'institutional', 'standard', ProjectStatus.COMPLETED, 7, 0, -10),
    ('Main Street Lofts', 'residential_multi', 'fast_track', ProjectStatus.DRAFT, 0, 0, None),
]


def seed_profiles() -> dict:
    """Create the seed profiles. Returns them keyed by email."""
    profiles = {}
    for user_id, email, name, role in PROFILES:
        profile = Profile(id=user_id, email=email, full_name=name, role=role.value)
        db.session.add(profile)
        profiles[email] = profile
    db.session.flush()
    return profiles


def build_project(plan: tuple, profiles: dict, client: Profile) -> Project:
    """Build one project with phases advanced according to the plan."""
    name, project_type, template, status, done, completion, deadline_days = plan
    today = date.today()
    drafter = random.choice([profiles['drafter@jupiter.test'], profiles['drafter2@jupiter.test']])
    manager = profiles['manager@jupiter.test']
    specs = build_phase_specs(template)

    phases = []
    for i, spec in enumerate(specs):
        if i < done:
            phase_status, phase_completion = PhaseStatus.COMPLETED, 100
        elif i == done and status in (ProjectStatus.IN_PROGRESS, ProjectStatus.IN_REVIEW):
            phase_status, phase_completion = PhaseStatus.IN_PROGRESS, completion
        else:
            phase_status, phase_completion = PhaseStatus.PENDING, 0
        spec['assigned_staff_id'] = drafter.id if status != ProjectStatus.DRAFT else None
        phases.append(Phase(
            position=i,
            status=phase_status,
            completion=phase_completion,
            actual_hours=round(spec['estimated_hours'] * phase_completion / 100, 1),
            **spec,
        ))

    staffed = status != ProjectStatus.DRAFT
    project = Project(
        project_number=generate_project_number(),
        project_name=name,
        type=project_type,
        address=f'{random.randint(100, 9999)} {random.choice(STREETS)}',
        client_id=client.id,
        client_email=client.email,
        assigned_staff_id=drafter.id if staffed else None,
        project_manager_id=manager.id if staffed else None,
        start_date=today - timedelta(days=60),
        deadline=today + timedelta(days=deadline_days) if deadline_days is not None else None,
        status=status,
        current_phase_index=min(done, len(phases) - 1),
        template_used=template,
        total_estimated_hours=sum(spec['estimated_hours'] for spec in specs),
        created_by=profiles['admin@jupiter.test'].id,
    )
    project.phases = phases
    return project


def seed_time_entries(project: Project) -> None:
    """Log a few recent entries against the project's active phase."""
    index = project.current_phase_index
    staff_id = project.phases[index].assigned_staff_id
    if not staff_id or project.phases[index].status != PhaseStatus.IN_PROGRESS:
        return
    for days_ago in (1, 3, 8):
        db.session.add(TimeEntry(
            project_id=project.id,
            phase_index=index,
            staff_id=staff_id,
            date=date.today() - timedelta(days=days_ago),
            hours=random.choice([1.5, 2, 3.5, 4, 6]),
            description='Drafting',
        ))


def seed_database() -> int:
    """Seed the database with profiles and sample projects.

    Returns:
        Number of projects created.
    """
    profiles = seed_profiles()
    clients = [p for p in profiles.values() if p.role == Role.CLIENT.value]

    created = []
    for i, plan in enumerate(PROJECT_PLANS):
        project = build_project(plan, profiles, clients[i % len(clients)])
        db.session.add(project)
        # Flush so the next project number sees this one
        db.session.flush()
        created.append(project)

    for project in created:
        seed_time_entries(project)

    db.session.commit()
    return len(created)


def main():
    """Main entry point for seed script."""
    app = create_app()

    with app.app_context():
        db.create_all()

        existing_count = db.session.query(Project).count()
        if existing_count > 0:
            print(f"Database already contains {existing_count} projects.")
            print("To reseed, run: python scripts/reset_db.py")
            return

        print("Seeding database with profiles and sample projects...")
        count = seed_database()
        print(f"Created {count} projects.")

        for status in ProjectStatus.ALL:
            status_count = db.session.query(Project).filter_by(status=status).count()
            if status_count:
                print(f"  - {status}: {status_count}")

        print("\nSeed profiles (use the id as the token subject):")
        for user_id, email, _, role in PROFILES:
            print(f"  - {role.value:<14} {email:<24} {user_id}")

        print("\nSeed complete!")


if __name__ == "__main__":
    main()
