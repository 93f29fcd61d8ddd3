"""SQLAlchemy models package.

This package contains all database models for the application.
Models are imported here and exposed for use throughout the app.
"""
from jupiter_portal.models.profile import Profile, Role
from jupiter_portal.models.project import Phase, PhaseStatus, Project, ProjectStatus
from jupiter_portal.models.tracking import PhaseComment, TimeEntry
from jupiter_portal.models.files import FileComment, FileDownload, ProjectFile
from jupiter_portal.models.activity import ActivityAction, ActivityLogEntry

__all__ = [
    'Profile', 'Role',
    'Project', 'ProjectStatus', 'Phase', 'PhaseStatus',
    'TimeEntry', 'PhaseComment',
    'ProjectFile', 'FileComment', 'FileDownload',
    'ActivityAction', 'ActivityLogEntry',
]
