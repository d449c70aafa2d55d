"""Shared helpers for the news cache."""
