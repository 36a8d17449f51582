import unittest
from unittest import mock

from sqlalchemy.exc import OperationalError

from app import create_app
from errors import Forbidden, NotFound, StorageError, Unauthenticated, ValidationError
from models import db, Idea, IdeaVersion
from storage import IdeaPatch


class LifecycleTestCase(unittest.TestCase):
    config_overrides = {}

    def setUp(self):
        self.app = create_app('testing', **self.config_overrides)
        self.app_context = self.app.app_context()
        self.app_context.push()
        db.create_all()

        self.lifecycle = self.app.extensions['lifecycle']
        self.owner = self.lifecycle.register('alice', 'password')
        self.intruder = self.lifecycle.register('bob', 'password')

    def tearDown(self):
        db.session.remove()
        db.drop_all()
        self.app_context.pop()

    def create(self, title="Solar kettle", description="Boil water with mirrors"):
        return self.lifecycle.create_idea(self.owner, title, description)

    def version_numbers(self, idea_id):
        return sorted(v.version_number for v in IdeaVersion.query.filter_by(idea_id=idea_id))


class OwnershipTestCase(LifecycleTestCase):
    def test_create_starts_at_rank_one(self):
        idea = self.create()
        self.assertEqual(idea.rank, 1)
        self.assertEqual(idea.user_id, self.owner.id)
        self.assertFalse(idea.published)

    def test_create_requires_identity(self):
        with self.assertRaises(Unauthenticated):
            self.lifecycle.create_idea(None, "Title", "Description")
        self.assertEqual(Idea.query.count(), 0)

    def test_create_validates(self):
        with self.assertRaises(ValidationError):
            self.lifecycle.create_idea(self.owner, "", "Description")
        self.assertEqual(Idea.query.count(), 0)

    def test_non_owner_is_forbidden_and_changes_nothing(self):
        idea = self.create()
        idea_id = idea.id
        before = idea.to_dict()

        operations = [
            lambda: self.lifecycle.edit_idea(self.intruder, idea_id, IdeaPatch(title="Hijacked")),
            lambda: self.lifecycle.change_rank(self.intruder, idea_id, 9),
            lambda: self.lifecycle.publish(self.intruder, idea_id),
            lambda: self.lifecycle.delete_idea(self.intruder, idea_id),
            lambda: self.lifecycle.view_history(self.intruder, idea_id),
            lambda: self.lifecycle.view_owned(self.intruder, idea_id),
            lambda: self.lifecycle.share_text(self.intruder, idea_id),
        ]
        for operation in operations:
            with self.assertRaises(Forbidden):
                operation()

        db.session.expire_all()
        self.assertEqual(db.session.get(Idea, idea_id).to_dict(), before)
        self.assertEqual(IdeaVersion.query.count(), 0)

    def test_anonymous_mutation_is_unauthenticated(self):
        idea = self.create()
        with self.assertRaises(Unauthenticated):
            self.lifecycle.edit_idea(None, idea.id, IdeaPatch(title="x"))
        with self.assertRaises(Unauthenticated):
            self.lifecycle.change_rank(None, idea.id, 5)
        with self.assertRaises(Unauthenticated):
            self.lifecycle.publish(None, idea.id)
        with self.assertRaises(Unauthenticated):
            self.lifecycle.delete_idea(None, idea.id)

    def test_missing_idea_is_not_found(self):
        with self.assertRaises(NotFound):
            self.lifecycle.edit_idea(self.owner, 9999, IdeaPatch(title="x"))
        with self.assertRaises(NotFound):
            self.lifecycle.change_rank(self.owner, 9999, 5)
        with self.assertRaises(NotFound):
            self.lifecycle.publish(self.owner, 9999)
        with self.assertRaises(NotFound):
            self.lifecycle.delete_idea(self.owner, 9999)
        with self.assertRaises(NotFound):
            self.lifecycle.view_history(self.owner, 9999)

    def test_list_ideas_filters_to_caller(self):
        mine = self.create()
        self.lifecycle.create_idea(self.intruder, "Other", "d")

        self.assertEqual([i.id for i in self.lifecycle.list_ideas(self.owner)], [mine.id])

    def test_anonymous_list_returns_every_idea(self):
        draft = self.create("Draft", "d")
        public = self.create("Public", "d")
        theirs = self.lifecycle.create_idea(self.intruder, "Other", "d")
        self.lifecycle.publish(self.owner, public.id)

        ids = sorted(i.id for i in self.lifecycle.list_ideas(None))
        self.assertEqual(ids, sorted([draft.id, public.id, theirs.id]))


class VersioningTestCase(LifecycleTestCase):
    def test_edit_snapshots_previous_state(self):
        idea = self.create("Original", "First draft")

        updated = self.lifecycle.edit_idea(
            self.owner, idea.id, IdeaPatch(title="Revised", description="Second draft")
        )

        self.assertEqual(updated.title, "Revised")
        versions = self.lifecycle.view_history(self.owner, idea.id)
        self.assertEqual(len(versions), 1)
        self.assertEqual(versions[0].version_number, 1)
        self.assertEqual(versions[0].title, "Original")
        self.assertEqual(versions[0].description, "First draft")

    def test_change_rank_clamps_high_and_archives(self):
        idea = self.create()

        updated = self.lifecycle.change_rank(self.owner, idea.id, 15)

        self.assertEqual(updated.rank, 10)
        versions = self.lifecycle.view_history(self.owner, idea.id)
        self.assertEqual(len(versions), 1)
        self.assertEqual(versions[0].rank, 1)

    def test_change_rank_clamps_every_value(self):
        idea = self.create()
        for requested in range(-10, 25):
            updated = self.lifecycle.change_rank(self.owner, idea.id, requested)
            self.assertEqual(updated.rank, min(max(requested, 1), 10))

    def test_change_rank_rejects_non_integers(self):
        idea = self.create()
        for bad in ("7", 7.5, None, True):
            with self.assertRaises(ValidationError):
                self.lifecycle.change_rank(self.owner, idea.id, bad)
        self.assertEqual(IdeaVersion.query.count(), 0)

    def test_edit_rejects_out_of_range_rank(self):
        idea = self.create()
        with self.assertRaises(ValidationError):
            self.lifecycle.edit_idea(self.owner, idea.id, IdeaPatch(rank=11))
        with self.assertRaises(ValidationError):
            self.lifecycle.edit_idea(self.owner, idea.id, IdeaPatch(title=""))
        self.assertEqual(IdeaVersion.query.count(), 0)
        self.assertEqual(db.session.get(Idea, idea.id).rank, 1)

    def test_versions_are_contiguous(self):
        idea = self.create()
        mutations = 7
        for n in range(mutations):
            if n % 2:
                self.lifecycle.change_rank(self.owner, idea.id, n)
            else:
                self.lifecycle.edit_idea(self.owner, idea.id, IdeaPatch(title=f"Title {n}"))

        self.assertEqual(self.version_numbers(idea.id), list(range(1, mutations + 1)))
        history = self.lifecycle.view_history(self.owner, idea.id)
        self.assertEqual([v.version_number for v in history], list(range(mutations, 0, -1)))

    def test_retried_edit_archives_again(self):
        idea = self.create()
        patch = IdeaPatch(title="Same")
        self.lifecycle.edit_idea(self.owner, idea.id, patch)
        self.lifecycle.edit_idea(self.owner, idea.id, patch)
        self.assertEqual(self.version_numbers(idea.id), [1, 2])

    def test_last_concurrent_edit_wins(self):
        # No optimistic concurrency token: the later write overwrites the earlier one
        idea = self.create()
        self.lifecycle.edit_idea(self.owner, idea.id, IdeaPatch(title="From tab A"))
        self.lifecycle.edit_idea(self.owner, idea.id, IdeaPatch(title="From tab B"))

        self.assertEqual(db.session.get(Idea, idea.id).title, "From tab B")
        titles = [v.title for v in self.lifecycle.view_history(self.owner, idea.id)]
        self.assertEqual(titles, ["From tab A", "Solar kettle"])

    def test_mutations_log_the_acting_user(self):
        idea_id = self.create().id
        with self.assertLogs('lifecycle', level='INFO') as logs:
            self.lifecycle.edit_idea(self.owner, idea_id, IdeaPatch(title="Renamed"))
            self.lifecycle.change_rank(self.owner, idea_id, 4)
            self.lifecycle.publish(self.owner, idea_id)
            self.lifecycle.delete_idea(self.owner, idea_id)

        messages = [record.getMessage() for record in logs.records]
        self.assertEqual(len(messages), 4)
        for message in messages:
            self.assertIn('alice', message)
            self.assertIn(str(idea_id), message)

    def test_publish_does_not_snapshot(self):
        idea = self.create()

        published = self.lifecycle.publish(self.owner, idea.id)

        self.assertTrue(published.published)
        self.assertEqual(self.lifecycle.view_history(self.owner, idea.id), [])

    def test_published_idea_stays_owner_mutable(self):
        idea = self.create()
        self.lifecycle.publish(self.owner, idea.id)

        updated = self.lifecycle.edit_idea(self.owner, idea.id, IdeaPatch(description="Still mine"))
        self.assertEqual(updated.description, "Still mine")
        self.assertTrue(updated.published)
        with self.assertRaises(Forbidden):
            self.lifecycle.edit_idea(self.intruder, idea.id, IdeaPatch(description="Not yours"))

    def test_delete_cascades_and_history_is_gone(self):
        idea = self.create()
        idea_id = idea.id
        self.lifecycle.change_rank(self.owner, idea_id, 4)
        self.lifecycle.edit_idea(self.owner, idea_id, IdeaPatch(title="Again"))

        self.assertTrue(self.lifecycle.delete_idea(self.owner, idea_id))

        self.assertEqual(IdeaVersion.query.filter_by(idea_id=idea_id).count(), 0)
        with self.assertRaises(NotFound):
            self.lifecycle.view_history(self.owner, idea_id)

    def test_storage_failure_rolls_back_snapshot(self):
        idea = self.create()
        idea_id = idea.id

        with mock.patch.object(
            self.lifecycle.ideas, 'update_rank',
            side_effect=OperationalError("UPDATE ideas", {}, Exception("disk full")),
        ):
            with self.assertRaises(StorageError):
                self.lifecycle.change_rank(self.owner, idea_id, 5)

        self.assertEqual(IdeaVersion.query.count(), 0)
        self.assertEqual(db.session.get(Idea, idea_id).rank, 1)


class PublicViewTestCase(LifecycleTestCase):
    def test_view_public_requires_published(self):
        idea = self.create()
        with self.assertRaises(NotFound):
            self.lifecycle.view_public(idea.id)

        self.lifecycle.publish(self.owner, idea.id)
        self.assertEqual(self.lifecycle.view_public(idea.id).id, idea.id)
        self.assertEqual(self.lifecycle.view_public(idea.id, username='alice').id, idea.id)

    def test_view_public_checks_author(self):
        idea = self.create()
        self.lifecycle.publish(self.owner, idea.id)
        with self.assertRaises(NotFound):
            self.lifecycle.view_public(idea.id, username='bob')
        with self.assertRaises(NotFound):
            self.lifecycle.view_public(idea.id, username='nobody')

    def test_get_idea_hides_drafts_from_others(self):
        idea = self.create()
        self.assertEqual(self.lifecycle.get_idea(self.owner, idea.id).id, idea.id)
        with self.assertRaises(NotFound):
            self.lifecycle.get_idea(self.intruder, idea.id)
        with self.assertRaises(NotFound):
            self.lifecycle.get_idea(None, idea.id)

        self.lifecycle.publish(self.owner, idea.id)
        self.assertEqual(self.lifecycle.get_idea(None, idea.id).id, idea.id)

    def test_view_owned_ignores_published_flag(self):
        idea = self.create()
        self.lifecycle.publish(self.owner, idea.id)
        self.assertEqual(self.lifecycle.view_owned(self.owner, idea.id).id, idea.id)
        with self.assertRaises(Forbidden):
            self.lifecycle.view_owned(self.intruder, idea.id)

    def test_list_public_by_user(self):
        draft = self.create("Draft", "d")
        public = self.create("Public", "d")
        self.lifecycle.publish(self.owner, public.id)

        ideas = self.lifecycle.list_public_by_user('alice')
        self.assertEqual([i.id for i in ideas], [public.id])
        self.assertNotIn(draft.id, [i.id for i in ideas])
        self.assertEqual(self.lifecycle.list_public_by_user('bob'), [])
        with self.assertRaises(NotFound):
            self.lifecycle.list_public_by_user('nobody')

    def test_list_all_public_includes_author(self):
        public = self.create("Public", "d")
        self.lifecycle.publish(self.owner, public.id)
        self.lifecycle.create_idea(self.intruder, "Bob's draft", "d")

        rows = self.lifecycle.list_all_public()
        self.assertEqual([(idea.id, username) for idea, username in rows], [(public.id, 'alice')])

    def test_public_history_only_for_published(self):
        idea = self.create()
        self.lifecycle.change_rank(self.owner, idea.id, 3)
        with self.assertRaises(NotFound):
            self.lifecycle.view_public_history(idea.id, username='alice')

        self.lifecycle.publish(self.owner, idea.id)
        history = self.lifecycle.view_public_history(idea.id, username='alice')
        self.assertEqual([v.rank for v in history], [1])

    def test_share_text(self):
        idea = self.create("Solar kettle", "x" * 250)
        self.lifecycle.change_rank(self.owner, idea.id, 6)

        text = self.lifecycle.share_text(self.owner, idea.id)
        self.assertIn("New idea: Solar kettle", text)
        self.assertIn("x" * 200 + "...", text)
        self.assertNotIn("x" * 201, text)
        self.assertIn("Maturity: 6/10", text)


class AnonymousModeTestCase(LifecycleTestCase):
    config_overrides = {"ALLOW_ANONYMOUS_IDEAS": True}

    def test_anonymous_create_is_ownerless(self):
        idea = self.lifecycle.create_idea(None, "Shower thought", "Unowned")
        self.assertIsNone(idea.user_id)
        self.assertEqual(idea.rank, 1)

    def test_ownerless_idea_is_immutable(self):
        idea = self.lifecycle.create_idea(None, "Shower thought", "Unowned")
        with self.assertRaises(Forbidden):
            self.lifecycle.edit_idea(self.owner, idea.id, IdeaPatch(title="Claimed"))
        with self.assertRaises(Unauthenticated):
            self.lifecycle.change_rank(None, idea.id, 4)
        self.assertEqual(IdeaVersion.query.count(), 0)

    def test_anonymous_list_returns_everything(self):
        self.create("Draft", "d")
        self.lifecycle.create_idea(None, "Shower thought", "Unowned")
        self.assertEqual(len(self.lifecycle.list_ideas(None)), 2)


if __name__ == '__main__':
    unittest.main()
