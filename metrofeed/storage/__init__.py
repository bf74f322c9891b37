"""
MetroFeed Storage Layer
=======================

Repository pattern implementations for data access.

This module provides:
- Article repository with atomic dedup-and-insert
- Source repository for fetch status and daily statistics
- Refresh state repository for scheduled-run bookkeeping
"""

from .article_repository import ArticleRepository
from .source_repository import SourceRepository
from .refresh_state_repository import RefreshStateRepository

__all__ = [
    "ArticleRepository",
    "SourceRepository",
    "RefreshStateRepository",
]
