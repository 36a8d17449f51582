"""
Idea lifecycle and authorization core.

This is the only component that drives multi-step mutations. It enforces
ownership, archives the pre-mutation state before editing or re-ranking, and
gates public visibility on the published flag. Each mutating operation runs
as a single unit of work: everything it writes is committed together or
rolled back together.
"""

import logging
from contextlib import contextmanager
from typing import List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError

from errors import Forbidden, NotFound, StorageError, Unauthenticated, ValidationError
from models import Idea, IdeaVersion, User, RANK_MIN
from storage import IdeaPatch, IdeaStore, UserStore, VersionArchive
from utils import compose_share_text, is_strict_int

logger = logging.getLogger(__name__)


class IdeaLifecycle:
    """Operation contract exposed to request handlers."""

    def __init__(self, users: UserStore, ideas: IdeaStore, archive: VersionArchive,
                 allow_anonymous: bool = False) -> None:
        self.users = users
        self.ideas = ideas
        self.archive = archive
        self.allow_anonymous = allow_anonymous

    @property
    def session(self):
        return self.ideas.session

    @contextmanager
    def _unit_of_work(self, action: str):
        """Commit on success; roll back and re-raise on any failure."""
        try:
            yield
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.error(f"Error {action}: {exc}")
            raise StorageError() from exc
        except Exception:
            self.session.rollback()
            raise

    def _load(self, idea_id: int) -> Idea:
        idea = self.ideas.get(idea_id)
        if idea is None:
            raise NotFound()
        return idea

    def _require_owner(self, identity: Optional[User], idea_id: int, action: str) -> Idea:
        if identity is None:
            raise Unauthenticated(f"You must be logged in to {action}.")
        idea = self._load(idea_id)
        if not idea.is_owned_by(identity):
            logger.warning(f"User {identity.id} attempted to {action} idea {idea_id} owned by {idea.user_id}")
            raise Forbidden(f"You can only {action} your own ideas.")
        return idea

    # Accounts -----------------------------------------------------------------

    def register(self, username: str, password: str) -> User:
        with self._unit_of_work("registering user"):
            user = self.users.create_user(username, password)
        logger.info(f"New user registered: {user.username}")
        return user

    def authenticate(self, username: str, password: str) -> Optional[User]:
        return self.users.authenticate(username, password)

    # Reads --------------------------------------------------------------------

    def list_ideas(self, identity: Optional[User]) -> List[Idea]:
        """
        The caller's own ideas when logged in, every idea otherwise.

        The unfiltered listing for anonymous callers includes drafts.
        """
        if identity is not None:
            return self.ideas.list_ideas_by_owner(identity.id)
        return self.ideas.list_all_ideas()

    def get_idea(self, identity: Optional[User], idea_id: int) -> Idea:
        """The owner sees any state; anyone else only published ideas."""
        idea = self._load(idea_id)
        if idea.is_owned_by(identity) or idea.published:
            return idea
        raise NotFound()

    def view_owned(self, identity: Optional[User], idea_id: int) -> Idea:
        return self._require_owner(identity, idea_id, "view")

    def view_history(self, identity: Optional[User], idea_id: int) -> List[IdeaVersion]:
        self._require_owner(identity, idea_id, "view the history of")
        return self.archive.list_by_idea(idea_id)

    def view_public(self, idea_id: int, username: Optional[str] = None) -> Idea:
        """
        Read a published idea without any ownership check.

        When ``username`` is given the idea must also belong to that user.
        Unpublished and mismatched ideas are reported as NotFound.
        """
        idea = self.ideas.get(idea_id)
        if idea is None or not idea.published:
            raise NotFound()
        if username is not None:
            author = self.users.get_by_username(username)
            if author is None or idea.user_id != author.id:
                raise NotFound()
        return idea

    def view_public_history(self, idea_id: int, username: Optional[str] = None) -> List[IdeaVersion]:
        idea = self.view_public(idea_id, username)
        return self.archive.list_by_idea(idea.id)

    def list_public_by_user(self, username: str) -> List[Idea]:
        author = self.users.get_by_username(username)
        if author is None:
            raise NotFound("User not found.")
        return self.ideas.list_published_by_owner(author.id)

    def list_all_public(self) -> List[Tuple[Idea, str]]:
        return self.ideas.list_all_published()

    # Mutations ----------------------------------------------------------------

    def create_idea(self, identity: Optional[User], title: str, description: str) -> Idea:
        if identity is None and not self.allow_anonymous:
            raise Unauthenticated("You must be logged in to create ideas.")
        owner_id = identity.id if identity is not None else None
        with self._unit_of_work("creating idea"):
            idea = self.ideas.create(title, description, initial_rank=RANK_MIN, owner_id=owner_id)
        logger.info(f"New idea created: {idea.id} (owner {owner_id})")
        return idea

    def edit_idea(self, identity: Optional[User], idea_id: int, patch: IdeaPatch) -> Idea:
        """Archive the current state, then apply ``patch``."""
        idea = self._require_owner(identity, idea_id, "update")
        patch.validate()
        with self._unit_of_work(f"updating idea {idea_id}"):
            self.archive.snapshot(idea_id, idea)
            idea = self.ideas.update(idea_id, patch)
        logger.info(f"Idea {idea_id} updated by {identity.username}")
        return idea

    def change_rank(self, identity: Optional[User], idea_id: int, requested_rank: int) -> Idea:
        """Archive the current state, then store ``requested_rank`` clamped to [1, 10]."""
        idea = self._require_owner(identity, idea_id, "update")
        if not is_strict_int(requested_rank):
            raise ValidationError("Rank must be an integer.")
        with self._unit_of_work(f"updating rank of idea {idea_id}"):
            self.archive.snapshot(idea_id, idea)
            idea = self.ideas.update_rank(idea_id, requested_rank)
        logger.info(f"Idea {idea_id} rank set to {idea.rank} by {identity.username}")
        return idea

    def publish(self, identity: Optional[User], idea_id: int) -> Idea:
        """One-way Draft -> Public transition. Not archived as a version."""
        self._require_owner(identity, idea_id, "publish")
        with self._unit_of_work(f"publishing idea {idea_id}"):
            idea = self.ideas.set_published(idea_id)
        logger.info(f"Idea {idea_id} published by {identity.username}")
        return idea

    def delete_idea(self, identity: Optional[User], idea_id: int) -> bool:
        self._require_owner(identity, idea_id, "delete")
        with self._unit_of_work(f"deleting idea {idea_id}"):
            deleted = self.ideas.delete(idea_id)
        logger.info(f"Idea {idea_id} deleted by {identity.username}")
        return deleted

    def share_text(self, identity: Optional[User], idea_id: int) -> str:
        """Compose a social post for one of the caller's ideas."""
        idea = self._require_owner(identity, idea_id, "share")
        return compose_share_text(idea.title, idea.description, idea.rank)
