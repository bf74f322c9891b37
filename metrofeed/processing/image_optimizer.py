"""
Image Optimizer
===============

Optional upload of validated article images to a Cloudflare Images style
delivery service. Any failure returns the original URL.
"""

import asyncio
import json
from typing import Optional

import aiohttp

from ..utils.exceptions import MetroFeedError, ErrorCode
from ..utils.http_client import HttpClient
from ..utils.logging import get_logger_for_component


class ImageOptimizer:
    """Uploads images by URL and returns the delivery URL."""

    def __init__(self, http_client: HttpClient, image_settings=None):
        """Initialize image optimizer.

        Args:
            http_client: Shared HTTP client
            image_settings: ImageSettings section (default from config)
        """
        if image_settings is None:
            from ..config.settings import get_settings
            image_settings = get_settings().images

        self.http_client = http_client
        self.settings = image_settings
        self.logger = get_logger_for_component("image_optimizer")

    @property
    def enabled(self) -> bool:
        return self.settings.is_configured()

    def delivery_url(self, image_id: str) -> str:
        account_hash = self.settings.delivery_hash or self.settings.account_id
        return f"https://{self.settings.delivery_host}/{account_hash}/{image_id}/{self.settings.variant}"

    async def optimize(self, image_url: Optional[str], article_key: str) -> Optional[str]:
        """Return an optimized URL for ``image_url``, or the original.

        Args:
            image_url: Validated absolute image URL
            article_key: Identifier recorded in upload metadata

        Returns:
            Delivery URL on success, otherwise ``image_url`` unchanged
        """
        if not image_url or not self.enabled:
            return image_url

        if self.settings.delivery_host in image_url:
            return image_url

        try:
            image_id = await self._upload(image_url, article_key)
            optimized = self.delivery_url(image_id)
            self.logger.debug(f"Optimized image {image_url} -> {optimized}")
            return optimized

        except (MetroFeedError, asyncio.TimeoutError, aiohttp.ClientError, ValueError) as e:
            self.logger.warning(
                f"Image upload failed, using original URL: {e}",
                extra={"image_url": image_url, "article_key": article_key},
            )
            return image_url

    async def _upload(self, image_url: str, article_key: str) -> str:
        endpoint = f"{self.settings.api_base}/accounts/{self.settings.account_id}/images/v1"

        form = aiohttp.FormData()
        form.add_field("url", image_url)
        form.add_field("metadata", json.dumps({
            "source": "rss_feed",
            "article_key": article_key,
            "original_url": image_url,
        }))

        response = await self.http_client.post(
            endpoint,
            data=form,
            timeout=self.settings.upload_timeout,
            headers={"Authorization": f"Bearer {self.settings.api_token}"},
        )

        payload = json.loads(response.text or "{}")
        result = payload.get("result") or {}
        if not response.ok or not payload.get("success") or not result.get("id"):
            errors = payload.get("errors") or [f"HTTP {response.status}"]
            raise MetroFeedError(
                f"Upload rejected: {errors}",
                error_code=ErrorCode.IMAGE_OPTIMIZATION_FAILED,
                context={"status": response.status},
                recoverable=True,
            )

        return result["id"]
