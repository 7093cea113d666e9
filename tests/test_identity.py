import unittest

from foliogram.models.db_models import User
from foliogram.services.identity import (
    Identity,
    canonical_identifier,
    normalize_identifier,
    resolve_user,
)
from tests.test_base import AppTestCase


class TestNormalizeIdentifier(unittest.TestCase):
    def test_strips_and_lowercases(self):
        self.assertEqual(normalize_identifier("  Alice@Example.COM "), "alice@example.com")

    def test_none_becomes_empty_string(self):
        self.assertEqual(normalize_identifier(None), "")


class TestIdentityResolution(AppTestCase):
    def test_resolve_by_username_case_insensitive(self):
        with self.app.app_context():
            user = resolve_user("TestUser1")
            self.assertIsNotNone(user)
            self.assertEqual(user.id, self.user1_id)

    def test_resolve_by_email(self):
        with self.app.app_context():
            user = resolve_user(" TEST2@example.com ")
            self.assertIsNotNone(user)
            self.assertEqual(user.id, self.user2_id)

    def test_username_match_wins_over_email(self):
        """An account whose username equals another account's email is found first."""
        with self.app.app_context():
            shadow = self._create_db_user(
                "test3@example.com", email="shadow@example.com"
            )
            user = resolve_user("test3@example.com")
            self.assertEqual(user.id, shadow.id)

    def test_resolve_unknown_and_blank(self):
        with self.app.app_context():
            self.assertIsNone(resolve_user("nobody"))
            self.assertIsNone(resolve_user(""))
            self.assertIsNone(resolve_user(None))

    def test_canonical_identifier(self):
        with self.app.app_context():
            self.assertEqual(canonical_identifier("TEST1@example.com"), "testuser1")
            self.assertEqual(canonical_identifier("Guest@Mail.com"), "guest@mail.com")
            self.assertEqual(canonical_identifier("  "), "")


class TestIdentity(AppTestCase):
    def test_from_user(self):
        with self.app.app_context():
            identity = Identity.from_user(self.db.session.get(User, self.user1_id))
        self.assertEqual(identity.username, "testuser1")
        self.assertEqual(identity.email, "test1@example.com")
        self.assertEqual(identity.role, "user")
        self.assertEqual(identity.display_name, "Test One")

    def test_owns_matches_username_or_email(self):
        identity = Identity(1, "Alice", "alice@example.com", "user", "Alice")
        self.assertTrue(identity.owns("alice"))
        self.assertTrue(identity.owns("ALICE@example.com "))
        self.assertFalse(identity.owns("bob"))
        self.assertFalse(identity.owns(""))
        self.assertFalse(identity.owns(None))

    def test_owns_without_email(self):
        identity = Identity(2, "bob", "", "user", "bob")
        self.assertEqual(identity.match_keys, {"bob"})
        self.assertFalse(identity.owns(""))

    def test_roles(self):
        admin = Identity(3, "root", "root@example.com", "admin", "root")
        recruiter = Identity(4, "hr", "hr@example.com", "recruiter", "hr")
        self.assertTrue(admin.is_admin)
        self.assertFalse(recruiter.is_admin)
        self.assertTrue(recruiter.has_role("recruiter", "admin"))
        self.assertFalse(recruiter.has_role("admin"))


if __name__ == "__main__":
    unittest.main()
