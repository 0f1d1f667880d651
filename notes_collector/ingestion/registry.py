"""Adapter lookup table keyed by platform."""

import logging

from notes_collector.config.settings import Settings, get_settings
from notes_collector.ingestion.base_adapter import BaseAdapter
from notes_collector.ingestion.http_client import RetryConfig
from notes_collector.ingestion.mock_adapter import create_mock_adapters
from notes_collector.ingestion.reddit_adapter import RedditAdapter
from notes_collector.ingestion.rss_adapter import RSSAdapter
from notes_collector.ingestion.schemas import Platform
from notes_collector.ingestion.telegram_adapter import TelegramChannelAdapter
from notes_collector.ingestion.twitter_adapter import TwitterAdapter
from notes_collector.ingestion.vk_adapter import VKAdapter
from notes_collector.ingestion.web_adapter import WebAdapter
from notes_collector.ingestion.youtube_adapter import YouTubeAdapter

logger = logging.getLogger(__name__)


def build_adapters(
    settings: Settings | None = None,
    use_mock: bool = False,
) -> dict[Platform, BaseAdapter]:
    """
    Create one adapter per supported platform.

    Twitter and VK are always registered; without credentials they fail
    every fetch permanently, which lets the scheduler deactivate those
    subscriptions instead of retrying them forever.
    """
    if use_mock:
        logger.info("Using mock adapters for all platforms")
        return create_mock_adapters()

    settings = settings or get_settings()
    retry = RetryConfig(
        max_retries=settings.max_http_retries,
        max_backoff_seconds=settings.max_backoff_seconds,
    )
    max_items = settings.max_items_per_fetch

    adapters: dict[Platform, BaseAdapter] = {
        Platform.TELEGRAM: TelegramChannelAdapter(
            rate_limit=settings.telegram_rate_limit,
            max_items=max_items,
            retry_config=retry,
            user_agent=settings.http_user_agent,
        ),
        Platform.TWITTER: TwitterAdapter(
            bearer_token=settings.twitter_bearer_token,
            rate_limit=settings.twitter_rate_limit,
            max_items=max_items,
            retry_config=retry,
        ),
        Platform.REDDIT: RedditAdapter(
            rate_limit=settings.reddit_rate_limit,
            max_items=max_items,
            retry_config=retry,
            user_agent=settings.http_user_agent,
        ),
        Platform.YOUTUBE: YouTubeAdapter(
            rate_limit=settings.youtube_rate_limit,
            max_items=max_items,
            retry_config=retry,
            user_agent=settings.http_user_agent,
        ),
        Platform.VK: VKAdapter(
            service_token=settings.vk_service_token,
            api_version=settings.vk_api_version,
            rate_limit=settings.vk_rate_limit,
            max_items=max_items,
            retry_config=retry,
        ),
        Platform.WEB: WebAdapter(
            rate_limit=settings.web_rate_limit,
            retry_config=retry,
        ),
        Platform.RSS: RSSAdapter(
            rate_limit=settings.rss_rate_limit,
            max_items=max_items,
            retry_config=retry,
            user_agent=settings.http_user_agent,
        ),
    }

    if not settings.twitter_configured:
        logger.warning("Twitter adapter registered without credentials")
    if not settings.vk_configured:
        logger.warning("VK adapter registered without credentials")

    return adapters
