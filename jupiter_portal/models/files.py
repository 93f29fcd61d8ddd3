"""Project file models: uploaded documents, their comments and downloads."""
from datetime import datetime
from typing import Optional

from jupiter_portal import db
from jupiter_portal.models._common import iso, utcnow


class ProjectFile(db.Model):
    """A document uploaded to a project.

    ``storage_path`` is the key in blob storage. Archiving is a soft
    delete (``is_archived``); a hard delete removes both the stored
    object and this row.
    """
    __tablename__ = 'project_files'

    id: int = db.Column(db.Integer, primary_key=True)
    project_id: int = db.Column(
        db.Integer, db.ForeignKey('projects.id'), nullable=False, index=True
    )
    file_name: str = db.Column(db.String(500), nullable=False)
    file_url: str = db.Column(db.String(1000), nullable=False)
    file_size: int = db.Column(db.Integer, nullable=False)
    file_type: Optional[str] = db.Column(db.String(100), nullable=True)
    phase: Optional[str] = db.Column(db.String(200), nullable=True)
    description: Optional[str] = db.Column(db.Text, nullable=True)
    uploaded_by: str = db.Column(
        db.String(36), db.ForeignKey('profiles.id'), nullable=False
    )
    storage_path: str = db.Column(db.String(1000), nullable=False)
    is_archived: bool = db.Column(db.Boolean, nullable=False, default=False)
    created_at: datetime = db.Column(db.DateTime, nullable=False, default=utcnow)

    project = db.relationship('Project', back_populates='files')
    uploader = db.relationship('Profile')
    comments = db.relationship(
        'FileComment',
        back_populates='file',
        order_by='FileComment.created_at',
        cascade='all, delete-orphan',
    )
    downloads = db.relationship(
        'FileDownload', back_populates='file', cascade='all, delete-orphan'
    )

    def __repr__(self) -> str:
        return f'<ProjectFile {self.id}: {self.file_name}>'

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'project_id': self.project_id,
            'file_name': self.file_name,
            'file_url': self.file_url,
            'file_size': self.file_size,
            'file_type': self.file_type,
            'phase': self.phase,
            'description': self.description,
            'uploaded_by': self.uploaded_by,
            'uploader_name': self.uploader.display_name if self.uploader else None,
            'storage_path': self.storage_path,
            'is_archived': self.is_archived,
            'comment_count': len(self.comments),
            'created_at': iso(self.created_at),
        }


class FileComment(db.Model):
    """Comment posted on an uploaded file."""
    __tablename__ = 'file_comments'

    id: int = db.Column(db.Integer, primary_key=True)
    file_id: int = db.Column(
        db.Integer, db.ForeignKey('project_files.id'), nullable=False, index=True
    )
    project_id: int = db.Column(db.Integer, nullable=False)
    comment: str = db.Column(db.Text, nullable=False)
    created_by: str = db.Column(
        db.String(36), db.ForeignKey('profiles.id'), nullable=False
    )
    created_at: datetime = db.Column(db.DateTime, nullable=False, default=utcnow)

    file = db.relationship('ProjectFile', back_populates='comments')
    creator = db.relationship('Profile')

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'file_id': self.file_id,
            'project_id': self.project_id,
            'comment': self.comment,
            'created_by': self.created_by,
            'creator_name': self.creator.display_name if self.creator else None,
            'created_at': iso(self.created_at),
        }


class FileDownload(db.Model):
    """One recorded download of a file."""
    __tablename__ = 'file_downloads'

    id: int = db.Column(db.Integer, primary_key=True)
    file_id: int = db.Column(
        db.Integer, db.ForeignKey('project_files.id'), nullable=False, index=True
    )
    project_id: int = db.Column(db.Integer, nullable=False)
    downloaded_by: str = db.Column(
        db.String(36), db.ForeignKey('profiles.id'), nullable=False
    )
    created_at: datetime = db.Column(db.DateTime, nullable=False, default=utcnow)

    file = db.relationship('ProjectFile', back_populates='downloads')
