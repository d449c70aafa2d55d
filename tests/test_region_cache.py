"""
Tests for RegionCache

Unit tests for the merge and deduplication policy of a single region.
"""

import itertools
import threading
import unittest
from datetime import datetime, timedelta, timezone

from news_cache.models import ArticleRecord
from news_cache.region_cache import (MODE_INCREMENTAL, MODE_RESET, RegionCache, change_ratio,
                                     dedupe_articles, merge_articles, sort_articles)

NOW = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


def make_article(n, published=None, **kwargs):
    if published is None:
        published = NOW - timedelta(minutes=n)
    return ArticleRecord.create(f"https://news.example.ee/article/{n}", f"Article {n}",
                                published_at=published, region="Estonia", **kwargs)


class TestMergeHelpers(unittest.TestCase):
    """Test cases for the module-level merge functions."""

    def test_change_ratio(self):
        self.assertEqual(change_ratio(0, 0), 0.0)
        self.assertEqual(change_ratio(0, 20), 1.0)
        self.assertAlmostEqual(change_ratio(100, 105), 5 / 105)
        self.assertAlmostEqual(change_ratio(100, 50), 0.5)

    def test_dedupe_keeps_first_occurrence(self):
        first = make_article(1)
        duplicate = first.with_fields(title="Later copy")

        result = dedupe_articles([first, make_article(2), duplicate])

        self.assertEqual([a.id for a in result], [first.id, make_article(2).id])
        self.assertEqual(result[0].title, "Article 1")

    def test_sort_places_undated_last(self):
        undated_a = make_article(1).with_fields(published_at=None)
        undated_b = make_article(2).with_fields(published_at=None)
        older = make_article(30)
        newer = make_article(5)

        result = sort_articles([undated_a, older, undated_b, newer])

        self.assertEqual(result, [newer, older, undated_a, undated_b])

    def test_merge_articles_empty_incoming_keeps_existing(self):
        existing = [make_article(i) for i in range(10)]

        merged, mode, added, _ = merge_articles(existing, [], NOW)

        self.assertEqual(merged, existing)
        self.assertEqual(mode, MODE_INCREMENTAL)
        self.assertEqual(added, 0)


class TestRegionCache(unittest.TestCase):
    """Test cases for RegionCache class."""

    def setUp(self):
        self.cache = RegionCache("Estonia")

    def test_merge_into_empty_cache_is_reset(self):
        incoming = [make_article(i) for i in range(20)]

        result = self.cache.merge(incoming, NOW)

        self.assertEqual(result.mode, MODE_RESET)
        self.assertEqual(result.added, 20)
        self.assertEqual(len(self.cache), 20)
        self.assertEqual(self.cache.last_updated, NOW)

    def test_merge_with_empty_list_is_idempotent(self):
        self.cache.merge([make_article(i) for i in range(5)], NOW)
        before = self.cache.snapshot()

        later = NOW + timedelta(minutes=10)
        result = self.cache.merge([], later)

        self.assertEqual(self.cache.snapshot(), before)
        self.assertEqual(result.added, 0)
        self.assertEqual(self.cache.last_updated, later)

    def test_ids_are_unique_after_merge(self):
        batch = [make_article(1), make_article(2), make_article(1), make_article(3), make_article(2)]

        self.cache.merge(batch, NOW)
        self.cache.merge(batch, NOW + timedelta(minutes=1))

        ids = [a.id for a in self.cache.articles]
        self.assertEqual(len(ids), len(set(ids)))
        self.assertEqual(len(ids), 3)

    def test_incremental_merge_appends_new_articles(self):
        existing = [make_article(i) for i in range(100)]
        self.cache.merge(existing, NOW)
        cached = {a.id: a for a in self.cache.articles}

        incoming = [make_article(i).with_fields(title=f"Updated {i}") for i in range(100)]
        incoming += [make_article(i) for i in range(100, 105)]
        result = self.cache.merge(incoming, NOW + timedelta(hours=1))

        self.assertEqual(result.mode, MODE_INCREMENTAL)
        self.assertEqual(result.added, 5)
        self.assertEqual(len(self.cache), 105)
        for article in self.cache.articles:
            if article.id in cached:
                # First-seen wins: the cached object is kept untouched.
                self.assertIs(article, cached[article.id])

    def test_large_count_change_replaces_cache(self):
        self.cache.merge([make_article(i) for i in range(100)], NOW)

        incoming = [make_article(i) for i in range(200, 250)]
        result = self.cache.merge(incoming, NOW + timedelta(hours=1))

        self.assertEqual(result.mode, MODE_RESET)
        self.assertEqual(self.cache.ids(), {a.id for a in incoming})

    def test_reset_disallowed_forces_incremental(self):
        self.cache.merge([make_article(i) for i in range(100)], NOW)

        incoming = [make_article(i) for i in range(200, 250)]
        result = self.cache.merge(incoming, NOW + timedelta(hours=1), allow_reset=False)

        self.assertEqual(result.mode, MODE_INCREMENTAL)
        self.assertEqual(len(self.cache), 150)

    def test_articles_sorted_newest_first(self):
        dated = [make_article(1), make_article(2), make_article(3)]
        undated = [make_article(98).with_fields(published_at=None),
                   make_article(99).with_fields(published_at=None)]

        for batch in itertools.permutations(dated + undated):
            cache = RegionCache("Estonia")
            cache.merge(list(batch), NOW)

            titles = [a.title for a in cache.articles]
            self.assertEqual(titles[:3], ["Article 1", "Article 2", "Article 3"], batch)
            self.assertEqual(set(titles[3:]), {"Article 98", "Article 99"}, batch)

    def test_retired_cache_refuses_merge(self):
        self.cache.merge([make_article(1)], NOW)
        self.cache.retire()

        result = self.cache.merge([make_article(2)], NOW + timedelta(hours=1))

        self.assertIsNone(result)
        self.assertTrue(self.cache.retired)
        self.assertEqual([a.id for a in self.cache.articles], [make_article(1).id])
        self.assertEqual(self.cache.last_updated, NOW)
        self.assertIsNone(self.cache.update_article(make_article(1).id, summary="s"))

    def test_new_articles_are_stamped_with_cached_at(self):
        self.cache.merge([make_article(1)], NOW)

        later = NOW + timedelta(hours=1)
        self.cache.merge([make_article(1), make_article(2)], later, allow_reset=False)

        self.assertEqual(self.cache.find(make_article(1).id).cached_at, NOW)
        self.assertEqual(self.cache.find(make_article(2).id).cached_at, later)

    def test_update_article_changes_annotation_only(self):
        self.cache.merge([make_article(1), make_article(2)], NOW)
        article_id = make_article(2).id

        updated = self.cache.update_article(article_id, summary="Short", translated_title="Artikkel 2")

        self.assertEqual(updated.summary, "Short")
        self.assertEqual(self.cache.find(article_id).translated_title, "Artikkel 2")
        self.assertEqual(self.cache.last_updated, NOW)
        self.assertEqual([a.id for a in self.cache.articles], [make_article(1).id, article_id])

    def test_update_article_rejects_other_fields(self):
        self.cache.merge([make_article(1)], NOW)

        with self.assertRaises(ValueError):
            self.cache.update_article(make_article(1).id, title="Changed")

    def test_update_missing_article_returns_none(self):
        self.assertIsNone(self.cache.update_article("https://missing.example/x", summary="s"))

    def test_concurrent_merges_keep_ids_unique(self):
        batches = [[make_article(i) for i in range(start, start + 20)] for start in range(0, 100, 10)]

        threads = [threading.Thread(target=self.cache.merge, args=(batch, NOW), kwargs={"allow_reset": False})
                   for batch in batches]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        ids = [a.id for a in self.cache.articles]
        self.assertEqual(len(ids), len(set(ids)))
        self.assertEqual(len(ids), 110)


if __name__ == '__main__':
    unittest.main()
