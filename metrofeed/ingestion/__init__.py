"""
MetroFeed Ingestion Module
==========================

Feed retrieval and content normalization.

This module handles:
- RSS/Atom fetching and parsing into RawItems
- Markup stripping, length bounds and slug generation
"""

from .feed_fetcher import FeedFetcher, RssChannel, AtomFeed
from .content_cleaner import ContentCleaner

__all__ = [
    'FeedFetcher',
    'RssChannel',
    'AtomFeed',
    'ContentCleaner',
]
