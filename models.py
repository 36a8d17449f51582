"""
Database models for the Thought Percolator application.
"""

from datetime import datetime
from typing import Optional

from flask_sqlalchemy import SQLAlchemy
from werkzeug.security import generate_password_hash, check_password_hash

from utils import format_timestamp

db = SQLAlchemy()

RANK_MIN = 1
RANK_MAX = 10
TITLE_MAX_LENGTH = 200


class User(db.Model):
    """Model for user accounts."""

    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(80), nullable=False, unique=True, index=True)
    password_hash = db.Column(db.String(255), nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    # Relationships
    ideas = db.relationship(
        'Idea',
        backref='owner',
        lazy=True,
        cascade='all, delete-orphan',
    )

    def __repr__(self) -> str:
        """String representation of User."""
        return f'<User {self.username}>'

    def set_password(self, password: str) -> None:
        """Hash and set the user password."""
        self.password_hash = generate_password_hash(password)

    def check_password(self, password: str) -> bool:
        """Verify the user password."""
        return check_password_hash(self.password_hash, password)

    def to_dict(self) -> dict:
        """Convert user to dictionary."""
        return {
            'id': self.id,
            'username': self.username,
            'createdAt': format_timestamp(self.created_at),
        }


class Idea(db.Model):
    """Model for a ranked, versionable idea."""

    __tablename__ = 'ideas'

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(TITLE_MAX_LENGTH), nullable=False)
    description = db.Column(db.Text, nullable=False)
    rank = db.Column(db.Integer, nullable=False, default=RANK_MIN)
    published = db.Column(db.Boolean, nullable=False, default=False)
    date_created = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    date_modified = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    user_id = db.Column(
        db.Integer,
        db.ForeignKey('users.id', ondelete='CASCADE'),
        nullable=True,
        index=True,
    )

    versions = db.relationship(
        'IdeaVersion',
        backref='idea',
        lazy=True,
        cascade='all, delete-orphan',
        order_by='IdeaVersion.version_number.desc()',
    )

    __table_args__ = (
        db.CheckConstraint('rank >= 1 AND rank <= 10', name='ck_idea_rank_range'),
    )

    def __repr__(self) -> str:
        """String representation of Idea."""
        return f'<Idea {self.id}>'

    def is_owned_by(self, user: Optional[User]) -> bool:
        """Return True if ``user`` owns this idea."""
        return user is not None and self.user_id is not None and self.user_id == user.id

    def to_dict(self) -> dict:
        """Convert idea to dictionary."""
        return {
            'id': self.id,
            'title': self.title,
            'description': self.description,
            'rank': self.rank,
            'published': self.published,
            'userId': self.user_id,
            'dateCreated': format_timestamp(self.date_created),
            'dateModified': format_timestamp(self.date_modified),
        }


class IdeaVersion(db.Model):
    """Immutable snapshot of an idea's state before a mutation."""

    __tablename__ = 'idea_versions'

    id = db.Column(db.Integer, primary_key=True)
    idea_id = db.Column(
        db.Integer,
        db.ForeignKey('ideas.id', ondelete='CASCADE'),
        nullable=False,
        index=True,
    )
    version_number = db.Column(db.Integer, nullable=False)
    title = db.Column(db.String(TITLE_MAX_LENGTH), nullable=False)
    description = db.Column(db.Text, nullable=False)
    rank = db.Column(db.Integer, nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        db.UniqueConstraint('idea_id', 'version_number', name='uq_idea_version_number'),
    )

    def __repr__(self) -> str:
        return f'<IdeaVersion {self.idea_id}#{self.version_number}>'

    def to_dict(self) -> dict:
        """Convert version to dictionary."""
        return {
            'id': self.id,
            'ideaId': self.idea_id,
            'versionNumber': self.version_number,
            'title': self.title,
            'description': self.description,
            'rank': self.rank,
            'createdAt': format_timestamp(self.created_at),
        }
