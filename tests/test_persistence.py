"""
Tests for PersistenceAdapter

Unit tests for snapshot save/load, fail-open behavior and the blob backends.
"""

import json
import os
import shutil
import tempfile
import unittest
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

from news_cache.cache_store import CacheStore
from news_cache.exceptions import PersistenceError
from news_cache.models import ArticleRecord
from news_cache.persistence import (BOOKMARKS_BLOB, CACHE_BLOB, FileBlobBackend, MemoryBlobBackend,
                                    PersistenceAdapter)

NOW = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


def make_article(n, region="Estonia", **kwargs):
    return ArticleRecord.create(
        f"https://news.example.ee/{region.lower()}/{n}",
        f"{region} story {n}",
        published_at=NOW - timedelta(minutes=n),
        region=region,
        **kwargs
    )


class TestPersistenceAdapter(unittest.TestCase):
    """Test cases for PersistenceAdapter with the memory backend."""

    def setUp(self):
        self.backend = MemoryBlobBackend()
        self.adapter = PersistenceAdapter(self.backend)
        self.store = self.adapter.load(clock=lambda: NOW)

    def test_load_without_snapshot_gives_empty_store(self):
        self.assertEqual(self.store.get_all(), [])
        self.assertIs(self.store.persistence, self.adapter)

    def test_update_cache_saves_snapshot(self):
        self.store.update_cache("Estonia", [make_article(1)])

        document = json.loads(self.backend.read(CACHE_BLOB))
        self.assertEqual(document["version"], 1)
        self.assertIn("Estonia", document["regions"])
        self.assertEqual(len(document["regions"]["Estonia"]["articles"]), 1)

    def test_round_trip(self):
        self.store.update_cache("Estonia", [
            make_article(1, category="Politics", image_url="https://img.example.ee/1.jpg"),
            make_article(2).with_fields(published_at=None),
        ])
        self.store.update_cache("Latvia", [make_article(1, region="Latvia", language="lv")])
        self.store.update_article(make_article(1).id, translated_title="Estonian story 1")

        restored = PersistenceAdapter(self.backend).load(clock=lambda: NOW)

        self.assertEqual(restored.regions(), ["Estonia", "Latvia"])
        for region in restored.regions():
            self.assertEqual(restored.get(region), self.store.get(region))
            self.assertEqual(restored.region_state(region)[1], self.store.region_state(region)[1])
        self.assertTrue(restored.is_valid("Estonia"))

    def test_corrupt_snapshot_fails_open(self):
        self.backend.write(CACHE_BLOB, "{not json")

        store = self.adapter.load()

        self.assertEqual(store.get_all(), [])

    def test_wrong_shape_fails_open(self):
        for raw in ('[]', '{"version": 1, "regions": []}', '{"version": "one", "regions": {}}',
                    '{"version": 1, "regions": {"Estonia": {"articles": [{"title": "no id"}]}}}'):
            self.backend.write(CACHE_BLOB, raw)
            self.assertEqual(self.adapter.load().get_all(), [], raw)

    def test_wrong_field_types_fail_open(self):
        bad_articles = [
            {"id": "https://x.ee/1", "title": None, "category": 5},
            {"id": 42, "title": "Numeric id"},
            {"id": "https://x.ee/2", "title": "t", "body": ["list"]},
            {"id": "https://x.ee/3", "title": "t", "region": {"name": "Estonia"}},
            {"id": "https://x.ee/4", "title": "t", "image_url": 7},
            {"id": "https://x.ee/5", "title": "t", "published_at": 1709283600},
        ]
        for article in bad_articles:
            document = {"version": 1, "regions": {"Estonia": {"articles": [article]}}}
            self.backend.write(CACHE_BLOB, json.dumps(document))

            store = self.adapter.load()

            self.assertEqual(store.get_all(), [], article)
            self.assertEqual(store.search("x"), [])
            self.assertEqual(store.get_by_category("general"), [])

    def test_null_text_fields_take_defaults(self):
        document = {"version": 1, "regions": {"Estonia": {"articles": [
            {"id": "https://x.ee/1", "title": "Kept", "body": None, "category": None, "summary": None}
        ]}}}
        self.backend.write(CACHE_BLOB, json.dumps(document))

        articles = self.adapter.load().get("Estonia")

        self.assertEqual(len(articles), 1)
        self.assertEqual(articles[0].body, "")
        self.assertEqual(articles[0].category, "General")

    def test_deeply_nested_snapshot_fails_open(self):
        self.backend.write(CACHE_BLOB, "[" * 200000 + "]" * 200000)
        self.backend.write(BOOKMARKS_BLOB, "[" * 200000 + "]" * 200000)

        self.assertEqual(self.adapter.load().get_all(), [])
        self.assertEqual(self.adapter.load_bookmarks(), set())

    def test_unknown_fields_are_ignored(self):
        document = {
            "version": 2,
            "future_field": True,
            "regions": {
                "Finland": {
                    "last_updated": NOW.isoformat(),
                    "articles": [dict(make_article(1, region="Finland").to_dict(), sentiment=0.4)],
                    "etag": "abc"
                }
            }
        }
        self.backend.write(CACHE_BLOB, json.dumps(document))

        store = self.adapter.load()

        self.assertEqual(len(store.get("Finland")), 1)

    def test_save_failure_returns_false(self):
        with patch.object(self.backend, "write", side_effect=PersistenceError("disk full")):
            self.assertFalse(self.adapter.save(self.store))
            self.store.update_cache("Estonia", [make_article(1)])

        self.assertTrue(self.store.dirty)
        self.assertEqual(len(self.store.get("Estonia")), 1)

    def test_bookmarks_round_trip(self):
        self.assertTrue(self.adapter.save_bookmarks({"b", "a"}))

        self.assertEqual(json.loads(self.backend.read(BOOKMARKS_BLOB))["ids"], ["a", "b"])
        self.assertEqual(self.adapter.load_bookmarks(), {"a", "b"})

    def test_corrupt_bookmarks_fail_open(self):
        for raw in ("garbage", '{"version": 1, "ids": "a"}', '["a"]'):
            self.backend.write(BOOKMARKS_BLOB, raw)
            self.assertEqual(self.adapter.load_bookmarks(), set(), raw)


class TestFileBlobBackend(unittest.TestCase):
    """Test cases for FileBlobBackend class."""

    def setUp(self):
        self.test_dir = tempfile.mkdtemp()
        self.backend = FileBlobBackend(os.path.join(self.test_dir, "cache"))

    def tearDown(self):
        shutil.rmtree(self.test_dir)

    def test_missing_blob_reads_none(self):
        self.assertIsNone(self.backend.read(CACHE_BLOB))

    def test_write_replaces_file_without_leftovers(self):
        self.backend.write(CACHE_BLOB, '{"version": 1}')
        self.backend.write(CACHE_BLOB, '{"version": 1, "regions": {}}')

        self.assertEqual(self.backend.read(CACHE_BLOB), '{"version": 1, "regions": {}}')
        self.assertEqual(os.listdir(self.backend.base_dir), ["region_cache.json"])

    def test_failed_replace_keeps_previous_file(self):
        self.backend.write(CACHE_BLOB, "previous")

        with patch("news_cache.persistence.os.replace", side_effect=OSError("crash")):
            with self.assertRaises(PersistenceError):
                self.backend.write(CACHE_BLOB, "next")

        self.assertEqual(self.backend.read(CACHE_BLOB), "previous")
        self.assertEqual(os.listdir(self.backend.base_dir), ["region_cache.json"])

    def test_delete(self):
        self.backend.write(BOOKMARKS_BLOB, "{}")
        self.backend.delete(BOOKMARKS_BLOB)
        self.backend.delete(BOOKMARKS_BLOB)

        self.assertIsNone(self.backend.read(BOOKMARKS_BLOB))

    def test_store_survives_restart(self):
        adapter = PersistenceAdapter(self.backend)
        store = adapter.load(clock=lambda: NOW)
        store.update_cache("Lithuania", [make_article(i, region="Lithuania") for i in range(3)])

        restored = PersistenceAdapter(FileBlobBackend(self.backend.base_dir)).load(clock=lambda: NOW)

        self.assertEqual(restored.get("Lithuania"), store.get("Lithuania"))
        self.assertIsInstance(restored, CacheStore)


if __name__ == '__main__':
    unittest.main()
