#!/usr/bin/env python3
"""
Launcher for the Regional News Cache.
Loads environment overrides from a .env file, then hands over to the CLI.
"""
import sys

from dotenv import load_dotenv

from news_cache.main import main

if __name__ == "__main__":
    # NEWS_CACHE_CONFIG_DIR in .env overrides the default config directory
    load_dotenv()
    sys.exit(main())
