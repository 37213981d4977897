import itertools
import unittest
from dataclasses import replace
from unittest.mock import Mock, patch

from fastapi import HTTPException

from feedhub.core.settings import S
from feedhub.core.store import DuplicateDocument
from feedhub.core.tables import init_tables
from feedhub.services import likes

MEMORY = replace(S, store_backend="memory")


class TestLikeLedger(unittest.TestCase):
    def setUp(self):
        self.t = init_tables(MEMORY)
        self.t.feeds.insert({"created_by": "alice", "title": "Pub", "public": True, "created_at": 1}, doc_id="pub")
        self.t.feeds.insert({"created_by": "alice", "title": "Priv", "public": False, "created_at": 2}, doc_id="priv")
        self.t.comments.insert(
            {"feed_id": "pub", "user_id": "alice", "content": "hi", "created_at": 3, "top_level_feed_id": "pub"},
            doc_id="c1",
        )
        clock = patch.object(likes, "now_ms", side_effect=itertools.count(1_000))
        clock.start()
        self.addCleanup(clock.stop)

    def test_like_is_idempotent(self):
        first = likes.add_like("feed", "pub", "bob")
        second = likes.add_like("feed", "pub", "bob")
        self.assertEqual(first, second)
        self.assertEqual(likes.like_count("feed", "pub"), 1)
        likes.add_like("feed", "pub", "carol")
        self.assertEqual(likes.like_count("feed", "pub"), 2)

    def test_concurrent_duplicate_returns_existing_id(self):
        ledger = Mock()
        ledger.get.return_value = None
        ledger.insert.side_effect = DuplicateDocument("pub#bob")
        with patch.object(likes, "_ledger", return_value=ledger):
            self.assertEqual(likes.add_like("feed", "pub", "bob"), "pub#bob")

    def test_remove_like(self):
        likes.add_like("feed", "pub", "bob")
        self.assertTrue(likes.remove_like("feed", "pub", "bob"))
        self.assertFalse(likes.remove_like("feed", "pub", "bob"))
        self.assertEqual(likes.like_count("feed", "pub"), 0)

    def test_like_data(self):
        likes.add_like("feed", "pub", "bob")
        self.assertEqual(likes.get_like_data("feed", "pub", "bob"), {"is_liked": True, "like_count": 1})
        self.assertEqual(likes.get_like_data("feed", "pub", None), {"is_liked": False, "like_count": 1})

    def test_auth_and_access(self):
        for kind, subject, user, status in (
            ("feed", "pub", None, 401),
            ("feed", "priv", "mallory", 403),
            ("feed", "nope", "bob", 404),
            ("comment", "nope", "bob", 404),
            ("post", "pub", "bob", 400),
        ):
            with self.assertRaises(HTTPException) as ctx:
                likes.add_like(kind, subject, user)
            self.assertEqual(ctx.exception.status_code, status)

    def test_comment_likes_are_separate(self):
        likes.add_like("comment", "c1", "bob")
        self.assertEqual(likes.like_count("comment", "c1"), 1)
        self.assertEqual(likes.like_count("feed", "c1"), 0)
        self.assertTrue(likes.is_liked("comment", "c1", "bob"))

    def test_list_user_likes_newest_first(self):
        self.t.feeds.insert({"created_by": "alice", "title": "Two", "public": True, "created_at": 4}, doc_id="pub2")
        likes.add_like("feed", "pub", "bob")
        likes.add_like("feed", "pub2", "bob")
        listed = likes.list_user_likes("feed", "bob")
        self.assertEqual([it["subject_id"] for it in listed], ["pub2", "pub"])
        self.assertEqual(likes.list_user_likes("feed", None), [])

    def test_purge_subject_likes(self):
        likes.add_like("comment", "c1", "bob")
        likes.add_like("comment", "c1", "carol")
        self.assertEqual(likes.purge_subject_likes("comment", "c1"), 2)
        self.assertEqual(likes.like_count("comment", "c1"), 0)


if __name__ == "__main__":
    unittest.main()
