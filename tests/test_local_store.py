import os
import shutil
import tempfile
import unittest
from unittest.mock import patch

from foliogram.services.local_store import (
    LocalStore,
    LocalStoreError,
    portfolio_key,
    snapshot_collections,
)
from tests.test_base import AppTestCase


class TestLocalStore(AppTestCase):
    def setUp(self):
        super().setUp()
        self.tmp_dir = tempfile.mkdtemp()
        self.store = LocalStore(os.path.join(self.tmp_dir, "nested", "store.json"))

    def tearDown(self):
        shutil.rmtree(self.tmp_dir, ignore_errors=True)
        super().tearDown()

    def test_missing_file_reads_empty(self):
        with self.app.app_context():
            self.assertIsNone(self.store.get("anything"))
            self.assertEqual(self.store.keys(), [])
            self.assertEqual(self.store.read_collection("posts"), [])

    def test_set_get_delete(self):
        with self.app.app_context():
            self.store.set("greeting", {"text": "hello"})
            self.assertEqual(self.store.get("greeting"), {"text": "hello"})
            self.assertTrue(os.path.exists(self.store.path))
            self.store.delete("greeting")
            self.assertIsNone(self.store.get("greeting"))

    def test_keys_by_prefix(self):
        with self.app.app_context():
            self.store.update({"portfolio:b": {}, "portfolio:a": {}, "posts": []})
            self.assertEqual(self.store.keys("portfolio:"), ["portfolio:a", "portfolio:b"])

    def test_corrupt_file_reads_empty(self):
        with self.app.app_context():
            os.makedirs(os.path.dirname(self.store.path), exist_ok=True)
            with open(self.store.path, "w", encoding="utf-8") as fh:
                fh.write("{not json")
            self.assertEqual(self.store.get("posts", []), [])
            self.store.set("posts", [1])
            self.assertEqual(self.store.get("posts"), [1])

    def test_non_list_collection_reads_empty(self):
        with self.app.app_context():
            self.store.set("appointments", {"oops": True})
            self.assertEqual(self.store.read_collection("appointments"), [])

    def test_write_failure_raises(self):
        with self.app.app_context():
            with patch("foliogram.services.local_store.os.replace", side_effect=OSError("read-only")):
                with self.assertRaises(LocalStoreError):
                    self.store.set("key", "value")

    def test_failed_write_leaves_no_temp_file(self):
        with self.app.app_context():
            self.store.set("key", "value")
            directory = os.path.dirname(self.store.path)
            with patch("foliogram.services.local_store.os.replace", side_effect=OSError("read-only")):
                with self.assertRaises(LocalStoreError):
                    self.store.set("other", "value")
            self.assertEqual(os.listdir(directory), ["store.json"])
            self.assertEqual(self.store.get("key"), "value")
            self.assertIsNone(self.store.get("other"))

    def test_portfolio_key(self):
        self.assertEqual(portfolio_key("jane-doe"), "portfolio:jane-doe")


class TestSnapshot(AppTestCase):
    def test_snapshot_writes_collections_and_portfolio_copies(self):
        with self.app.app_context():
            self._create_db_post(self.user1_id)
            self._create_db_notification("testuser1")
            portfolio = self._create_db_portfolio(self.user1_id, title="Snap Shot")
            self.services.appointments.book(self._booking_data(portfolio.id))

            store = self.app.local_store
            store.write_collection(
                "appointments", [{"id": "offline-1", "status": "pending"}]
            )
            counts = snapshot_collections(store)

            self.assertEqual(counts["posts"], 1)
            # booking notification plus the one created above
            self.assertEqual(counts["notifications"], 2)
            self.assertEqual(counts["subscriptions"], 0)
            self.assertEqual(counts["portfolios"], 1)
            self.assertEqual(counts["appointments"], 2)
            ids = {r["id"] for r in store.read_collection("appointments")}
            self.assertIn("offline-1", ids)
            self.assertEqual(store.get(portfolio_key("snap-shot"))["title"], "Snap Shot")


if __name__ == "__main__":
    unittest.main()
