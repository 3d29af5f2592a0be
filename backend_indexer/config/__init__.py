"""
Configuration management for the Backend Indexer.

Loads and validates settings from environment variables and an optional
.env file. Exposes a single immutable settings bundle for the whole service.
"""

from backend_indexer.config.settings import IndexerSettings, get_settings  # noqa: F401

__all__ = ["IndexerSettings", "get_settings"]
