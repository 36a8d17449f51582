"""
Persistence layer: identity store, idea record store and version archive.

Stores wrap a SQLAlchemy session handed to them at construction time. They
flush but never commit; committing is left to the caller that owns the unit
of work (see ``lifecycle.IdeaLifecycle``).
"""

import logging
from dataclasses import dataclass, fields
from datetime import datetime
from typing import Any, Iterator, List, Mapping, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from errors import StorageError, ValidationError
from models import Idea, IdeaVersion, User, RANK_MAX, RANK_MIN, TITLE_MAX_LENGTH
from utils import clamp, is_strict_int

logger = logging.getLogger(__name__)


class _Missing:
    """Marker for a patch field that was not supplied."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING = _Missing()


def validate_title(title: Any) -> str:
    if not isinstance(title, str) or not title.strip():
        raise ValidationError("Title must not be empty.")
    if len(title) > TITLE_MAX_LENGTH:
        raise ValidationError(f"Title must be {TITLE_MAX_LENGTH} characters or less.")
    return title


def validate_description(description: Any) -> str:
    if not isinstance(description, str) or not description.strip():
        raise ValidationError("Description must not be empty.")
    return description


def validate_rank(rank: Any) -> int:
    """Reject ranks that are not integers within [RANK_MIN, RANK_MAX]."""
    if not is_strict_int(rank) or not RANK_MIN <= rank <= RANK_MAX:
        raise ValidationError(f"Rank must be an integer between {RANK_MIN} and {RANK_MAX}.")
    return rank


@dataclass(frozen=True)
class IdeaPatch:
    """
    Partial update for an idea.

    Every field defaults to ``MISSING``; only fields holding a real value are
    applied. ``None`` is a supplied value (and fails validation), not absence.
    """

    title: Any = MISSING
    description: Any = MISSING
    rank: Any = MISSING

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "IdeaPatch":
        """Build a patch from a request body, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        return cls(**{key: value for key, value in data.items() if key in known})

    def present_fields(self) -> Iterator[Tuple[str, Any]]:
        for f in fields(self):
            value = getattr(self, f.name)
            if value is not MISSING:
                yield f.name, value

    def is_empty(self) -> bool:
        return next(self.present_fields(), None) is None

    def validate(self) -> "IdeaPatch":
        """Raise ValidationError for any supplied field that breaks a constraint."""
        if self.title is not MISSING:
            validate_title(self.title)
        if self.description is not MISSING:
            validate_description(self.description)
        if self.rank is not MISSING:
            validate_rank(self.rank)
        return self


class _SessionStore:
    """Shared plumbing for session-backed stores."""

    def __init__(self, session) -> None:
        self.session = session

    def _flush(self, action: str) -> None:
        try:
            self.session.flush()
        except SQLAlchemyError as exc:
            logger.error(f"Storage failure while {action}: {exc}")
            raise StorageError() from exc


class UserStore(_SessionStore):
    """Identity store keyed by unique, case-sensitive username."""

    def create_user(self, username: str, password: str) -> User:
        username = (username or "").strip()
        if not username:
            raise ValidationError("Username is required.")
        if not password:
            raise ValidationError("Password is required.")
        if self.get_by_username(username) is not None:
            raise ValidationError("Username already exists.")

        user = User(username=username)
        user.set_password(password)
        self.session.add(user)
        self._flush(f"creating user {username}")
        return user

    def get(self, user_id: int) -> Optional[User]:
        return self.session.get(User, user_id)

    def get_by_username(self, username: str) -> Optional[User]:
        return self.session.query(User).filter(User.username == username).first()

    def authenticate(self, username: str, password: str) -> Optional[User]:
        """Return the user when the credentials match, otherwise None."""
        user = self.get_by_username(username)
        if user is None or not user.check_password(password):
            return None
        return user


class IdeaStore(_SessionStore):
    """CRUD over idea records."""

    def create(self, title: str, description: str, initial_rank: int = RANK_MIN,
               owner_id: Optional[int] = None) -> Idea:
        """
        Create a new idea.

        Args:
            title: Non-empty title
            description: Non-empty description
            initial_rank: Starting rank, must already lie within [1, 10]
            owner_id: Owning user id, or None for an ownerless idea

        Returns:
            The persisted idea (flushed, not committed)

        Raises:
            ValidationError: on an empty field or out-of-range rank
        """
        validate_title(title)
        validate_description(description)
        validate_rank(initial_rank)

        now = datetime.utcnow()
        idea = Idea(
            title=title,
            description=description,
            rank=initial_rank,
            user_id=owner_id,
            published=False,
            date_created=now,
            date_modified=now,
        )
        self.session.add(idea)
        self._flush("creating idea")
        return idea

    def get(self, idea_id: int) -> Optional[Idea]:
        return self.session.get(Idea, idea_id)

    def list_all_ideas(self) -> List[Idea]:
        """Every idea in the store, regardless of owner or visibility."""
        return self.session.query(Idea).order_by(Idea.date_created.desc(), Idea.id.desc()).all()

    def list_ideas_by_owner(self, owner_id: int) -> List[Idea]:
        return (
            self.session.query(Idea)
            .filter(Idea.user_id == owner_id)
            .order_by(Idea.date_created.desc(), Idea.id.desc())
            .all()
        )

    def list_published_by_owner(self, owner_id: int) -> List[Idea]:
        return (
            self.session.query(Idea)
            .filter(Idea.user_id == owner_id, Idea.published.is_(True))
            .order_by(Idea.date_created.desc(), Idea.id.desc())
            .all()
        )

    def list_all_published(self) -> List[Tuple[Idea, str]]:
        """Published ideas paired with their author's username; ownerless ideas are skipped."""
        return (
            self.session.query(Idea, User.username)
            .join(User, Idea.user_id == User.id)
            .filter(Idea.published.is_(True))
            .order_by(Idea.date_modified, Idea.id)
            .all()
        )

    def update(self, idea_id: int, patch: IdeaPatch) -> Optional[Idea]:
        """Apply the supplied patch fields and bump ``date_modified``."""
        idea = self.get(idea_id)
        if idea is None:
            return None
        for name, value in patch.present_fields():
            setattr(idea, name, value)
        idea.date_modified = datetime.utcnow()
        self._flush(f"updating idea {idea_id}")
        return idea

    def update_rank(self, idea_id: int, new_rank: int) -> Optional[Idea]:
        """Store ``new_rank`` clamped into [1, 10]; out-of-range input is never an error."""
        idea = self.get(idea_id)
        if idea is None:
            return None
        idea.rank = clamp(new_rank, RANK_MIN, RANK_MAX)
        idea.date_modified = datetime.utcnow()
        self._flush(f"updating rank of idea {idea_id}")
        return idea

    def set_published(self, idea_id: int) -> Optional[Idea]:
        idea = self.get(idea_id)
        if idea is None:
            return None
        idea.published = True
        idea.date_modified = datetime.utcnow()
        self._flush(f"publishing idea {idea_id}")
        return idea

    def delete(self, idea_id: int) -> bool:
        """Delete an idea and, through the relationship cascade, its versions."""
        idea = self.get(idea_id)
        if idea is None:
            return False
        # Versions are appended by id, so a loaded collection may be stale
        self.session.expire(idea, ["versions"])
        self.session.delete(idea)
        self._flush(f"deleting idea {idea_id}")
        return True


class VersionArchive(_SessionStore):
    """Append-only snapshot log per idea. There is no update or delete."""

    def next_version_number(self, idea_id: int) -> int:
        current = (
            self.session.query(func.max(IdeaVersion.version_number))
            .filter(IdeaVersion.idea_id == idea_id)
            .scalar()
        )
        return (current or 0) + 1

    def snapshot(self, idea_id: int, current_state: Idea) -> IdeaVersion:
        """
        Archive ``current_state`` as the next version of ``idea_id``.

        The caller must pass the state as it was BEFORE the mutation it is
        about to apply.
        """
        version = IdeaVersion(
            idea_id=idea_id,
            version_number=self.next_version_number(idea_id),
            title=current_state.title,
            description=current_state.description,
            rank=current_state.rank,
            created_at=datetime.utcnow(),
        )
        self.session.add(version)
        self._flush(f"archiving version of idea {idea_id}")
        return version

    def list_by_idea(self, idea_id: int) -> List[IdeaVersion]:
        """Most recent first."""
        return (
            self.session.query(IdeaVersion)
            .filter(IdeaVersion.idea_id == idea_id)
            .order_by(IdeaVersion.version_number.desc())
            .all()
        )

    def count(self, idea_id: int) -> int:
        return self.session.query(IdeaVersion).filter(IdeaVersion.idea_id == idea_id).count()
