import itertools
import unittest
from dataclasses import replace
from unittest.mock import patch

from fastapi import HTTPException

from feedhub.core.settings import S
from feedhub.core.tables import init_tables
from feedhub.services import collaborators, comments, likes

MEMORY = replace(S, store_backend="memory")


class CommentTestCase(unittest.TestCase):
    def setUp(self):
        self.t = init_tables(MEMORY)
        self.t.feeds.insert({"created_by": "alice", "title": "Pub", "public": True, "created_at": 1}, doc_id="pub")
        self.t.feeds.insert({"created_by": "alice", "title": "Priv", "public": False, "created_at": 2}, doc_id="priv")
        clock = patch.object(comments, "now_ms", side_effect=itertools.count(1_000))
        clock.start()
        self.addCleanup(clock.stop)

    def thread(self):
        """A -> B -> C on the public feed, written by bob."""
        a = comments.add_comment("bob", "pub", "top")
        b = comments.add_comment("bob", "pub", "reply", a)
        c = comments.add_comment("bob", "pub", "nested", b)
        return a, b, c


class TestAddComment(CommentTestCase):
    def test_top_level_and_reply(self):
        a, b, _ = self.thread()
        top = self.t.comments.get(a)
        reply = self.t.comments.get(b)
        self.assertEqual(top["top_level_feed_id"], "pub")
        self.assertNotIn("parent_comment_id", top)
        self.assertEqual(reply["parent_comment_id"], a)
        self.assertNotIn("top_level_feed_id", reply)

    def test_validation(self):
        a = comments.add_comment("bob", "pub", "top")
        priv = comments.add_comment("alice", "priv", "secret")
        for args, status in (
            ((None, "pub", "hi"), 401),
            (("bob", "nope", "hi"), 404),
            (("mallory", "priv", "hi"), 403),
            (("bob", "pub", "   "), 400),
            (("bob", "pub", "x" * 5001), 400),
            (("bob", "pub", "hi", "missing"), 404),
            (("alice", "priv", "hi", a), 400),
            (("alice", "pub", "hi", priv), 400),
        ):
            with self.assertRaises(HTTPException) as ctx:
                comments.add_comment(*args)
            self.assertEqual(ctx.exception.status_code, status, args)

    def test_update_is_author_only(self):
        a = comments.add_comment("bob", "pub", "top")
        with self.assertRaises(HTTPException) as ctx:
            comments.update_comment("alice", a, "edited")
        self.assertEqual(ctx.exception.status_code, 403)
        comments.update_comment("bob", a, " edited ")
        updated = self.t.comments.get(a)
        self.assertEqual(updated["content"], "edited")
        self.assertIsNotNone(updated["updated_at"])


class TestDeleteComment(CommentTestCase):
    def test_delete_removes_direct_replies_only(self):
        a, b, c = self.thread()
        self.assertEqual(comments.delete_comment("bob", a), 2)
        self.assertIsNone(self.t.comments.get(a))
        self.assertIsNone(self.t.comments.get(b))
        self.assertIsNotNone(self.t.comments.get(c))

    def test_recursive_delete_removes_subtree(self):
        a, b, c = self.thread()
        with patch.object(comments, "S", replace(MEMORY, comment_delete_recursive=True)):
            self.assertEqual(comments.delete_comment("bob", a), 3)
        for cid in (a, b, c):
            self.assertIsNone(self.t.comments.get(cid))

    def test_feed_admin_can_moderate(self):
        a = comments.add_comment("bob", "pub", "top")
        collaborators.add_collaborator("alice", "pub", "mod", "admin")
        collaborators.add_collaborator("alice", "pub", "eddie", "edit")
        with self.assertRaises(HTTPException) as ctx:
            comments.delete_comment("eddie", a)
        self.assertEqual(ctx.exception.status_code, 403)
        self.assertEqual(comments.delete_comment("mod", a), 1)

    def test_delete_purges_comment_likes(self):
        a, b, _ = self.thread()
        likes.add_like("comment", a, "carol")
        likes.add_like("comment", b, "carol")
        comments.delete_comment("bob", a)
        self.assertEqual(likes.like_count("comment", a), 0)
        self.assertEqual(likes.like_count("comment", b), 0)

    def test_delete_missing(self):
        with self.assertRaises(HTTPException) as ctx:
            comments.delete_comment("bob", "nope")
        self.assertEqual(ctx.exception.status_code, 404)


class TestReadComments(CommentTestCase):
    def test_get_comment(self):
        a = comments.add_comment("bob", "pub", "top")
        priv = comments.add_comment("alice", "priv", "secret")
        self.assertEqual(comments.get_comment(None, a)["content"], "top")
        self.assertIsNone(comments.get_comment(None, "nope"))
        with self.assertRaises(HTTPException) as ctx:
            comments.get_comment("mallory", priv)
        self.assertEqual(ctx.exception.status_code, 403)

    def test_get_comment_of_deleted_feed(self):
        a = comments.add_comment("bob", "pub", "top")
        self.t.feeds.delete("pub")
        self.assertIsNone(comments.get_comment("bob", a))

    def test_top_level_page_excludes_replies(self):
        a, b, _ = self.thread()
        d = comments.add_comment("carol", "pub", "second")
        result = comments.get_comments(None, "pub")
        self.assertEqual([c["id"] for c in result["page"]], [d, a])
        self.assertTrue(result["is_done"])
        self.assertIsNone(result["continue_cursor"])

        replies = comments.get_comments(None, "pub", parent_comment_id=a)
        self.assertEqual([c["id"] for c in replies["page"]], [b])

    def test_pagination(self):
        ids = [comments.add_comment("bob", "pub", f"c{i}") for i in range(5)]
        seen = []
        cursor = None
        while True:
            result = comments.get_comments(None, "pub", limit=2, cursor=cursor)
            seen.extend(c["id"] for c in result["page"])
            if result["is_done"]:
                break
            cursor = result["continue_cursor"]
        self.assertEqual(seen, list(reversed(ids)))

    def test_private_feed_comments_are_gated(self):
        for user, status in ((None, 401), ("mallory", 403)):
            with self.assertRaises(HTTPException) as ctx:
                comments.get_comments(user, "priv")
            self.assertEqual(ctx.exception.status_code, status)

    def test_with_user_info(self):
        a, b, _ = self.thread()
        likes.add_like("comment", a, "carol")
        result = comments.get_comments_with_user_info("carol", "pub")
        entry = result["page"][0]
        self.assertEqual(entry["id"], a)
        self.assertEqual(entry["engagement"], {"reply_count": 1, "like_count": 1})
        self.assertTrue(entry["is_liked"])
        self.assertEqual(entry["user_info"], {"name": None, "image": None})


if __name__ == "__main__":
    unittest.main()
