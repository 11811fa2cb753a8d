"""
Infrastructure module - logging and content store access.
"""

from .logging_config import setup_logging

from .content_store import (
    SAISON,
    LIGA,
    TEAM,
    TABELLEN_EINTRAG,
    ContentStore,
    ContentStoreError,
    ContentStoreUnavailableError,
    InMemoryContentStore,
    StrapiContentStore,
    create_content_store,
    related_id,
)

__all__ = [
    # logging
    "setup_logging",
    # content_store
    "SAISON",
    "LIGA",
    "TEAM",
    "TABELLEN_EINTRAG",
    "ContentStore",
    "ContentStoreError",
    "ContentStoreUnavailableError",
    "InMemoryContentStore",
    "StrapiContentStore",
    "create_content_store",
    "related_id",
]
