"""
Tests for FeedReader

Unit tests for feed item extraction and normalization.
"""

import unittest
from datetime import datetime, timezone

from news_cache.exceptions import FetchError
from news_cache.feed_reader import FeedReader, normalize_item
from news_cache.models import FeedSource

SAMPLE_RSS = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0" xmlns:media="http://search.yahoo.com/mrss/">
    <channel>
        <title>ERR News</title>
        <item>
            <title>Riigikogu passes budget</title>
            <link>https://News.ERR.ee/1234/riigikogu-passes-budget#comments</link>
            <description>&lt;p&gt;The parliament   passed the &lt;b&gt;budget&lt;/b&gt;.&lt;/p&gt;</description>
            <pubDate>Fri, 01 Mar 2024 10:15:00 GMT</pubDate>
            <category>Politics</category>
            <enclosure url="https://img.err.ee/1234.jpg" type="image/jpeg" length="1000"/>
        </item>
        <item>
            <title>Storm warning</title>
            <link>https://news.err.ee/1235/storm-warning</link>
            <description>Strong winds expected.</description>
            <pubDate>sometime yesterday</pubDate>
            <media:thumbnail url="https://img.err.ee/1235.jpg"/>
        </item>
        <item>
            <title>No link here</title>
            <description>Broken item</description>
        </item>
    </channel>
</rss>"""


class TestFeedReader(unittest.TestCase):
    """Test cases for FeedReader class."""

    def setUp(self):
        self.reader = FeedReader()
        self.source = FeedSource(name="ERR", url="https://news.err.ee/rss", region="Estonia", language="et")

    def test_read_items(self):
        items = self.reader.read_items(SAMPLE_RSS, "ERR")

        self.assertEqual(len(items), 3)
        first = items[0]
        self.assertEqual(first["title"], "Riigikogu passes budget")
        self.assertEqual(first["category"], "Politics")
        self.assertEqual(first["image_url"], "https://img.err.ee/1234.jpg")
        self.assertEqual(first["published_raw"], "Fri, 01 Mar 2024 10:15:00 GMT")
        self.assertEqual(items[1]["image_url"], "https://img.err.ee/1235.jpg")
        self.assertIsNone(items[1]["category"])

    def test_unreadable_document_raises_fetch_error(self):
        for content in ("this is not a feed", "<html><body>502 Bad Gateway</body></html>"):
            with self.assertRaises(FetchError) as ctx:
                self.reader.read_items(content, "ERR")
            self.assertEqual(ctx.exception.source, "ERR")

    def test_empty_feed_gives_no_items(self):
        empty = '<?xml version="1.0"?><rss version="2.0"><channel><title>ERR</title></channel></rss>'

        self.assertEqual(self.reader.read_items(empty, "ERR"), [])

    def test_normalize_item(self):
        items = self.reader.read_items(SAMPLE_RSS, "ERR")

        article = normalize_item(items[0], self.source)

        self.assertEqual(article.id, "https://news.err.ee/1234/riigikogu-passes-budget")
        self.assertEqual(article.body, "The parliament passed the budget .")
        self.assertEqual(article.published_at, datetime(2024, 3, 1, 10, 15, tzinfo=timezone.utc))
        self.assertEqual(article.source, "ERR")
        self.assertEqual(article.region, "Estonia")
        self.assertEqual(article.language, "et")
        self.assertEqual(article.category, "Politics")
        self.assertIsNone(article.cached_at)

    def test_unparseable_date_is_kept_as_none(self):
        item = {"title": "Storm warning", "link": "https://news.err.ee/1235", "published_raw": "sometime yesterday"}

        article = normalize_item(item, self.source)

        self.assertIsNotNone(article)
        self.assertIsNone(article.published_at)
        self.assertEqual(article.category, "General")

    def test_item_without_link_is_skipped(self):
        items = self.reader.read_items(SAMPLE_RSS, "ERR")

        self.assertIsNone(normalize_item(items[2], self.source))


if __name__ == '__main__':
    unittest.main()
