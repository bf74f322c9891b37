"""
MetroFeed Refresh Coordinator
=============================

Entry point for externally triggered refreshes (cron, systemd timers).

One trigger walks the state machine:

    CHECK_DUE -> (not due) done
    CHECK_DUE -> ACQUIRE_LOCK -> (held) done
    ACQUIRE_LOCK -> RUNNING -> RECORD_RUN -> RELEASE_LOCK -> done

Inside RUNNING every enabled source runs its own sub-pipeline
(quota -> fetch -> normalize/classify -> image -> store -> status) in a
bounded pool. A source's failure is recorded on that source and never
reaches its siblings. There is no in-cycle retry; the next trigger is the
retry.
"""

import asyncio
import sqlite3
import uuid
from datetime import datetime
from typing import Callable, List, Optional

from ..config.catalog import SourceCatalog, CatalogSnapshot
from ..database.connection import DatabaseConnection
from ..database.models import Source, SourceResult, CycleResult, utc_now
from ..ingestion.content_cleaner import ContentCleaner
from ..ingestion.feed_fetcher import FeedFetcher
from ..processing.classifier import CategoryClassifier
from ..processing.image_extractor import ImageExtractor
from ..processing.image_optimizer import ImageOptimizer
from ..storage.article_repository import ArticleRepository
from ..storage.refresh_state_repository import RefreshStateRepository
from ..storage.source_repository import SourceRepository
from ..utils.exceptions import MetroFeedError, FeedFetchError, ItemParseError, LockError
from ..utils.http_client import HttpClient
from ..utils.logging import get_logger_for_component, PerformanceLogger
from .quota import QuotaPolicy
from .refresh_lock import RefreshLockStore


class RefreshCoordinator:
    """Runs one scheduled refresh cycle under the distributed lock."""

    def __init__(
        self,
        db_connection: DatabaseConnection,
        http_client: HttpClient,
        settings=None,
        clock: Callable[[], datetime] = utc_now,
        catalog: Optional[SourceCatalog] = None,
        fetcher: Optional[FeedFetcher] = None,
        cleaner: Optional[ContentCleaner] = None,
        image_extractor: Optional[ImageExtractor] = None,
        image_optimizer: Optional[ImageOptimizer] = None,
    ):
        """Initialize refresh coordinator.

        Args:
            db_connection: Database connection manager
            http_client: Open HTTP client shared by fetcher and image checks
            settings: Application settings (default from config)
            clock: Returns the current UTC datetime
            catalog: Source/category loader
            fetcher: Feed fetcher
            cleaner: Content normalizer
            image_extractor: Image candidate extractor
            image_optimizer: Optional image delivery client
        """
        if settings is None:
            from ..config.settings import get_settings
            settings = get_settings()

        self.settings = settings
        self.clock = clock
        self.logger = get_logger_for_component("refresh_coordinator")

        self.catalog = catalog or SourceCatalog(db_connection, settings)
        self.fetcher = fetcher or FeedFetcher(http_client, settings)
        self.cleaner = cleaner or ContentCleaner(settings)
        self.image_extractor = image_extractor or ImageExtractor(http_client, settings, clock=clock)
        self.image_optimizer = image_optimizer or ImageOptimizer(http_client, settings.images)

        self.articles = ArticleRepository(db_connection, clock=clock)
        self.sources = SourceRepository(db_connection, clock=clock)
        self.state = RefreshStateRepository(db_connection, clock=clock)
        self.lock = RefreshLockStore(db_connection, clock=clock)
        self.quota = QuotaPolicy()

    async def run_scheduled_refresh(self, force: bool = False) -> CycleResult:
        """Handle one trigger.

        Args:
            force: Skip the due check (never the lock)

        Returns:
            CycleResult describing what happened
        """
        cycle_id = uuid.uuid4().hex[:8]
        started_at = self.clock()
        logger = self.logger.bind(cycle_id=cycle_id)
        processing = self.settings.processing

        try:
            due = force or self.state.is_due(self.settings.refresh_interval_seconds, started_at)
        except (sqlite3.Error, MetroFeedError) as e:
            reason = e.message if isinstance(e, MetroFeedError) else f"{type(e).__name__}: {e}"
            logger.error(f"Due check failed: {reason}")
            self._record_failure(f"due check failure: {reason}", logger)
            return CycleResult(status=CycleResult.FAILED, cycle_id=cycle_id, started_at=started_at,
                               finished_at=self.clock(), failure_reason=reason)

        if not due:
            logger.info("Refresh not due yet, skipping")
            return CycleResult(status=CycleResult.SKIPPED_NOT_DUE, cycle_id=cycle_id,
                               started_at=started_at, finished_at=self.clock())

        try:
            token = self.lock.try_acquire(processing.lock_ttl_seconds)
        except LockError as e:
            logger.error(f"Lock store failure: {e}", extra=e.to_dict())
            self._record_failure(f"lock store failure: {e.message}", logger)
            return CycleResult(status=CycleResult.FAILED, cycle_id=cycle_id, started_at=started_at,
                               finished_at=self.clock(), failure_reason=e.message)

        if token is None:
            logger.info("Another refresh in progress, skipping")
            return CycleResult(status=CycleResult.SKIPPED_LOCK_HELD, cycle_id=cycle_id,
                               started_at=started_at, finished_at=self.clock())

        result = CycleResult(status=CycleResult.FAILED, cycle_id=cycle_id, started_at=started_at)
        try:
            with PerformanceLogger(logger, "refresh cycle", cycle_id=cycle_id):
                result.sources = await self.run_cycle(cycle_id)
            result.status = CycleResult.COMPLETED
            self.state.set_last_successful_run(self.clock())

        except Exception as e:
            reason = e.message if isinstance(e, MetroFeedError) else f"{type(e).__name__}: {e}"
            result.failure_reason = reason
            logger.error(f"Refresh cycle failed: {reason}", exc_info=True)
            self._record_failure(reason, logger)

        finally:
            try:
                self.lock.release(token)
            except LockError as e:
                logger.error(f"Lock release failed, lease will expire: {e}")

        result.finished_at = self.clock()
        logger.info(
            f"Refresh {result.status}: stored {result.total_stored} articles "
            f"from {len(result.sources)} sources",
            extra=result.to_dict(),
        )
        return result

    def _record_failure(self, reason: str, logger) -> None:
        try:
            self.state.record_failure(reason)
        except Exception as e:
            logger.error(f"Could not record cycle failure: {e}")

    async def run_cycle(self, cycle_id: str) -> List[SourceResult]:
        """RUNNING phase: process every enabled source in a bounded pool."""
        snapshot = self.catalog.load()
        classifier = CategoryClassifier(snapshot.categories)
        sources = snapshot.enabled_sources()

        self.logger.info(
            f"Processing {len(sources)} sources",
            extra={"cycle_id": cycle_id, "from_defaults": snapshot.from_defaults},
        )

        semaphore = asyncio.Semaphore(self.settings.processing.parallel_sources)

        async def process_with_semaphore(source: Source) -> SourceResult:
            async with semaphore:
                return await self.process_source(source, snapshot, classifier, cycle_id)

        return list(await asyncio.gather(*(process_with_semaphore(s) for s in sources)))

    async def process_source(
        self,
        source: Source,
        snapshot: CatalogSnapshot,
        classifier: CategoryClassifier,
        cycle_id: str,
    ) -> SourceResult:
        """Run one source's sub-pipeline. Never raises."""
        logger = self.logger.bind(source_id=source.id, cycle_id=cycle_id)
        result = SourceResult(source_id=source.id)

        try:
            stored_today = self.articles.count_stored_today(source.id)
            decision = self.quota.decide(source, stored_today)
            if not decision.should_fetch:
                result.skipped = True
                logger.info(f"Daily quota reached ({stored_today}/{source.daily_quota}), skipping")
                return result

            result.requested = decision.allowance
            items = await self.fetcher.fetch_feed(source, decision.allowance)
            result.fetched = len(items)

            category_ids = snapshot.categories.ids
            catch_all_id = snapshot.categories.catch_all_id
            candidates = []

            for item in items:
                try:
                    candidate = self.cleaner.normalize(item, source)
                except ItemParseError as e:
                    result.item_errors += 1
                    logger.warning(f"Skipping item: {e.message}", extra=e.context)
                    continue

                if self.articles.exists(candidate.dedup_key, candidate.original_url):
                    result.duplicates += 1
                    continue

                category_id = classifier.classify(candidate.title, candidate.description)

                image_url = await self.image_extractor.extract_image(item, candidate.original_url)
                image_url = await self.image_optimizer.optimize(image_url, candidate.slug)

                candidates.append(candidate.model_copy(update={
                    "category_id": category_id,
                    "image_url": image_url,
                }))

            result.stored = self.articles.store_batch(
                candidates, category_ids, catch_all_id, source.daily_quota
            )
            self.sources.record_fetch_success(source.id, len(items))

            logger.info(
                f"Source done: fetched {result.fetched}, stored {result.stored}, "
                f"duplicates {result.duplicates}",
                extra={"fetched": result.fetched, "stored": result.stored},
            )

        except FeedFetchError as e:
            result.error = e.message
            logger.warning(f"Fetch failed: {e.message}", extra=e.to_dict())
            self._record_source_failure(source.id, e.message, logger)

        except Exception as e:
            result.error = f"{type(e).__name__}: {e}"
            logger.error(f"Source pipeline failed: {result.error}", exc_info=True)
            self._record_source_failure(source.id, result.error, logger)

        return result

    def _record_source_failure(self, source_id: str, message: str, logger) -> None:
        try:
            self.sources.record_fetch_failure(source_id, message)
        except Exception as e:
            logger.error(f"Could not record source failure: {e}")
