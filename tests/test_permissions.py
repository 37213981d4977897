import unittest
from dataclasses import replace

from fastapi import HTTPException

from feedhub.core.settings import S
from feedhub.core.tables import init_tables
from feedhub.services import permissions
from feedhub.services.permissions import collaborator_id

MEMORY = replace(S, store_backend="memory")


class TestPermissionResolver(unittest.TestCase):
    def setUp(self):
        self.t = init_tables(MEMORY)
        self.t.feeds.insert({"created_by": "alice", "title": "Pub", "public": True, "created_at": 1}, doc_id="pub")
        self.t.feeds.insert({"created_by": "alice", "title": "Priv", "public": False, "created_at": 2}, doc_id="priv")
        for user, role in (("reader", "read"), ("editor", "edit"), ("boss", "admin")):
            self.t.collaborators.insert(
                {"feed_id": "priv", "user_id": user, "role": role, "added_at": 3},
                doc_id=collaborator_id("priv", user),
            )

    def test_public_feed_readable_anonymously(self):
        self.assertTrue(permissions.has_permission("pub", None, "read"))
        self.assertFalse(permissions.has_permission("pub", None, "edit"))

    def test_private_feed_denies_anonymous_and_strangers(self):
        for role in ("read", "edit", "admin"):
            self.assertFalse(permissions.has_permission("priv", None, role))
            self.assertFalse(permissions.has_permission("priv", "mallory", role))

    def test_creator_has_every_role(self):
        for role in ("read", "edit", "admin"):
            self.assertTrue(permissions.has_permission("priv", "alice", role))

    def test_role_ranks(self):
        self.assertTrue(permissions.has_permission("priv", "reader", "read"))
        self.assertFalse(permissions.has_permission("priv", "reader", "edit"))
        self.assertTrue(permissions.has_permission("priv", "editor", "edit"))
        self.assertFalse(permissions.has_permission("priv", "editor", "admin"))
        self.assertTrue(permissions.has_permission("priv", "boss", "admin"))

    def test_edit_implies_read(self):
        for user in ("alice", "reader", "editor", "boss", "mallory", None):
            if permissions.has_permission("priv", user, "edit"):
                self.assertTrue(permissions.has_permission("priv", user, "read"))

    def test_missing_feed_is_denied(self):
        self.assertFalse(permissions.has_permission("nope", "alice", "read"))

    def test_unknown_role_raises(self):
        with self.assertRaises(ValueError):
            permissions.has_permission("pub", "alice", "owner")

    def test_admin_permission(self):
        self.assertTrue(permissions.has_admin_permission("priv", "alice"))
        self.assertTrue(permissions.has_admin_permission("priv", "boss"))
        self.assertFalse(permissions.has_admin_permission("priv", "editor"))
        self.assertFalse(permissions.has_admin_permission("priv", None))
        self.assertFalse(permissions.has_admin_permission("nope", "alice"))

    def test_require_feed_permission_status_codes(self):
        cases = [("nope", "alice", 404), ("priv", None, 401), ("priv", "reader", 403)]
        for feed_id, user, status in cases:
            with self.assertRaises(HTTPException) as ctx:
                permissions.require_feed_permission(feed_id, user, "edit", action="update this feed")
            self.assertEqual(ctx.exception.status_code, status)

    def test_require_feed_permission_returns_feed(self):
        feed = permissions.require_feed_permission("priv", "editor", "edit")
        self.assertEqual(feed["id"], "priv")

    def test_is_member(self):
        feed = self.t.feeds.get("priv")
        self.assertTrue(permissions.is_member(feed, "reader"))
        self.assertFalse(permissions.is_member(feed, "mallory"))


if __name__ == "__main__":
    unittest.main()
