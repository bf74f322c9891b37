"""
MetroFeed - News Ingestion Pipeline
===================================

Scheduled RSS/Atom ingestion with keyword classification, image
validation, per-source daily quotas and a cross-process refresh lock.

Main Components:
- Database: SQLite with connection pooling and schema management
- Configuration: environment variables with Pydantic validation
- Ingestion: feed fetching, parsing and content cleaning
- Processing: category classification and image extraction
- Scheduler: quota policy, refresh lock and refresh coordinator
"""

__version__ = "2.0.0"
__author__ = "MetroFeed Development Team"
__description__ = "News feed ingestion and refresh coordination"

# Core imports for easy access
from .config.settings import get_settings
from .database.connection import get_db_manager
from .database.schema import DatabaseSchema
from .utils.logging import configure_application_logging, get_logger_for_component
from .utils.exceptions import MetroFeedError

__all__ = [
    "get_settings",
    "get_db_manager",
    "DatabaseSchema",
    "configure_application_logging",
    "get_logger_for_component",
    "MetroFeedError",
]
