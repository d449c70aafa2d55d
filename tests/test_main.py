"""
Tests for the application wiring and command line interface.
"""

import json
import os
import shutil
import tempfile
import unittest
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

from news_cache.config_manager import ConfigManager, write_default_config
from news_cache.main import NewsCacheApp, main, parse_arguments
from news_cache.models import ArticleRecord
from news_cache.persistence import MemoryBlobBackend


class StaticFetcher:
    """Serves the same two articles for every source."""

    def fetch_articles(self, source):
        now = datetime.now(timezone.utc)
        return [
            ArticleRecord.create(f"{source.url}/{i}", f"{source.name} {i}", published_at=now - timedelta(minutes=i),
                                 source=source.name, region=source.region, language=source.language)
            for i in range(2)
        ]

    def close(self):
        pass


class TestNewsCacheApp(unittest.TestCase):

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        self.config_dir = os.path.join(self.temp_dir, 'config')
        write_default_config(self.config_dir)

        settings_path = os.path.join(self.config_dir, 'settings.json')
        with open(settings_path, 'r') as f:
            settings = json.load(f)
        settings["storage"]["base_dir"] = os.path.join(self.temp_dir, 'cache')
        settings["logging"]["log_dir"] = os.path.join(self.temp_dir, 'logs')
        with open(settings_path, 'w') as f:
            json.dump(settings, f)

    def tearDown(self):
        shutil.rmtree(self.temp_dir)

    def _app(self):
        return NewsCacheApp(ConfigManager.from_dir(self.config_dir), fetcher=StaticFetcher())

    def test_refresh_and_restart(self):
        app = self._app()
        report = app.refresh()
        app.bookmarks.add(app.cache_store.get("Finland")[0].id)
        app.close()

        self.assertEqual(sorted(report.updated_regions), ["Estonia", "Finland", "Latvia", "Lithuania"])
        self.assertEqual(len(app.cache_store.get("Estonia")), 6)

        restarted = self._app()
        self.assertEqual(restarted.cache_store.stats().total_articles, 12)
        self.assertEqual(restarted.bookmarks.count(), 1)
        self.assertTrue(restarted.cache_store.is_valid("Latvia"))

    def test_refresh_single_region(self):
        app = self._app()

        report = app.refresh("Latvia")

        self.assertEqual(report.updated_regions, ["Latvia"])
        self.assertEqual(app.cache_store.regions(), ["Latvia"])

    def test_stats_and_digest(self):
        app = self._app()
        app.refresh()

        stats = app.stats()

        self.assertTrue(stats["is_healthy"])
        self.assertEqual(stats["regions"]["Finland"]["articles"], 2)
        self.assertEqual(stats["bookmarks"], 0)
        self.assertLessEqual(len(app.digest()), 5)

    def test_clear(self):
        app = self._app()
        app.refresh()

        app.clear("Estonia")
        self.assertEqual(app.cache_store.get("Estonia"), [])

        app.clear()
        self.assertEqual(app.cache_store.get_all(), [])

    def test_memory_backend(self):
        settings_path = os.path.join(self.config_dir, 'settings.json')
        with open(settings_path, 'r') as f:
            settings = json.load(f)
        settings["storage"]["backend"] = "memory"
        with open(settings_path, 'w') as f:
            json.dump(settings, f)

        app = self._app()

        self.assertIsInstance(app.persistence.backend, MemoryBlobBackend)


class TestCommandLine(unittest.TestCase):

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        self.config_dir = os.path.join(self.temp_dir, 'config')

    def tearDown(self):
        shutil.rmtree(self.temp_dir)

    def test_parse_arguments(self):
        args = parse_arguments(["--config-dir", "cfg", "--run-now", "--region", "Estonia"])

        self.assertEqual(args.config_dir, "cfg")
        self.assertTrue(args.run_now)
        self.assertEqual(args.region, "Estonia")
        self.assertFalse(args.schedule)

    def test_missing_config(self):
        self.assertEqual(main(["--config-dir", self.config_dir, "--stats"]), 1)

    @patch('news_cache.main.setup_logging')
    def test_init_then_stats(self, mock_logging):
        self.assertEqual(main(["--config-dir", self.config_dir, "--init"]), 0)
        self.assertTrue(os.path.exists(os.path.join(self.config_dir, 'feeds.json')))

        settings_path = os.path.join(self.config_dir, 'settings.json')
        with open(settings_path, 'r') as f:
            settings = json.load(f)
        settings["storage"]["backend"] = "memory"
        with open(settings_path, 'w') as f:
            json.dump(settings, f)

        self.assertEqual(main(["--config-dir", self.config_dir, "--stats"]), 0)
        mock_logging.assert_called_once()


if __name__ == '__main__':
    unittest.main()
