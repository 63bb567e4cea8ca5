"""
Configuration management for apimocker.

All configuration is done via environment variables. This module provides
typed configuration classes with validation. The HTTP route layer keeps its
own settings in apimocker.api.settings.

Invariants:
    - All settings have sensible defaults for local development
    - The crawler page ceiling is always a positive integer
    - Configuration objects are immutable once loaded

How to change safely:
    - Add new settings with defaults that maintain backward compatibility
    - Never remove the crawler page ceiling, it is the only guaranteed
      termination for upstream APIs that never signal the last page
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


def _env_bool(name: str, default: bool) -> bool:
    return os.getenv(name, "true" if default else "false").lower() == "true"


def _env_optional_float(name: str) -> float | None:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return None
    return float(raw)


@dataclass(frozen=True)
class StoreConfig:
    """Resource store configuration.

    Attributes:
        data_dir: Root directory holding one sub-directory per tenant
        tenants: Tenants to load at startup (empty = every sub-directory)
        timestamps: Stamp createdAt/updatedAt on writes
        save_on_shutdown: Write collections back to data_dir on shutdown
    """

    data_dir: str = "./data"
    tenants: tuple[str, ...] = ()
    timestamps: bool = False
    save_on_shutdown: bool = False

    @classmethod
    def from_env(cls) -> StoreConfig:
        """Load configuration from environment variables."""
        tenants = os.getenv("APIMOCKER_TENANTS", "")
        return cls(
            data_dir=os.getenv("APIMOCKER_DATA_DIR", "./data"),
            tenants=tuple(t.strip() for t in tenants.split(",") if t.strip()),
            timestamps=_env_bool("APIMOCKER_TIMESTAMPS", False),
            save_on_shutdown=_env_bool("APIMOCKER_SAVE_ON_SHUTDOWN", False),
        )


@dataclass(frozen=True)
class QueryConfig:
    """Query engine configuration.

    Attributes:
        relationships_file: Optional YAML/JSON relationship descriptor
    """

    relationships_file: str | None = None

    @classmethod
    def from_env(cls) -> QueryConfig:
        """Load configuration from environment variables."""
        return cls(relationships_file=os.getenv("APIMOCKER_RELATIONSHIPS_FILE") or None)


@dataclass(frozen=True)
class CrawlerConfig:
    """Pagination crawler configuration.

    Attributes:
        max_pages: Hard page ceiling per endpoint
        page_size: $top sent on the first request to OData endpoints
        max_items: Default item cap for PaginationCrawler.truncate
        max_items_per_page: Truncate each recorded page to this many items
        deadline_seconds: Stop crawling after this many seconds (None = no deadline)
        timeout_seconds: HTTP timeout for each page request
    """

    max_pages: int = 10
    page_size: int = 20
    max_items: int = 100
    max_items_per_page: int | None = None
    deadline_seconds: float | None = None
    timeout_seconds: float = 30.0

    @classmethod
    def from_env(cls) -> CrawlerConfig:
        """Load configuration from environment variables."""
        per_page = os.getenv("APIMOCKER_CRAWL_MAX_ITEMS_PER_PAGE")
        return cls(
            max_pages=int(os.getenv("APIMOCKER_CRAWL_MAX_PAGES", "10")),
            page_size=int(os.getenv("APIMOCKER_CRAWL_PAGE_SIZE", "20")),
            max_items=int(os.getenv("APIMOCKER_CRAWL_MAX_ITEMS", "100")),
            max_items_per_page=int(per_page) if per_page else None,
            deadline_seconds=_env_optional_float("APIMOCKER_CRAWL_DEADLINE_SECONDS"),
            timeout_seconds=float(os.getenv("APIMOCKER_CRAWL_TIMEOUT_SECONDS", "30")),
        )


@dataclass(frozen=True)
class ObservabilityConfig:
    """Logging configuration.

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Log format (json, text)
    """

    log_level: str = "INFO"
    log_format: str = "text"

    @classmethod
    def from_env(cls) -> ObservabilityConfig:
        """Load configuration from environment variables."""
        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "text"),
        )


@dataclass
class ServerConfig:
    """Complete configuration.

    Attributes:
        store: Resource store configuration
        query: Query engine configuration
        crawler: Pagination crawler configuration
        observability: Logging configuration
    """

    store: StoreConfig = field(default_factory=StoreConfig)
    query: QueryConfig = field(default_factory=QueryConfig)
    crawler: CrawlerConfig = field(default_factory=CrawlerConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> ServerConfig:
        """Load complete configuration from environment variables.

        Returns:
            ServerConfig with all sections populated from environment.

        Raises:
            ValueError: If configuration is invalid.
        """
        config = cls(
            store=StoreConfig.from_env(),
            query=QueryConfig.from_env(),
            crawler=CrawlerConfig.from_env(),
            observability=ObservabilityConfig.from_env(),
        )
        config.validate()
        return config

    def validate(self) -> None:
        """Validate configuration consistency.

        Raises:
            ValueError: If configuration is invalid.
        """
        if self.crawler.max_pages < 1:
            raise ValueError("APIMOCKER_CRAWL_MAX_PAGES must be at least 1")
        if self.crawler.page_size < 1:
            raise ValueError("APIMOCKER_CRAWL_PAGE_SIZE must be at least 1")
        if self.crawler.max_items < 0:
            raise ValueError("APIMOCKER_CRAWL_MAX_ITEMS must not be negative")
        if self.crawler.deadline_seconds is not None and self.crawler.deadline_seconds <= 0:
            raise ValueError("APIMOCKER_CRAWL_DEADLINE_SECONDS must be positive")
        if self.observability.log_format not in ("json", "text"):
            raise ValueError(
                f"Invalid LOG_FORMAT '{self.observability.log_format}'. Must be one of: json, text"
            )

        if self.query.relationships_file and not os.path.exists(self.query.relationships_file):
            raise ValueError(
                f"APIMOCKER_RELATIONSHIPS_FILE does not exist: {self.query.relationships_file}"
            )

        if not os.path.exists(self.store.data_dir):
            logger.warning(
                f"Data directory does not exist: {self.store.data_dir}. "
                "Tenants will start empty."
            )

    def log_config(self) -> None:
        """Log configuration."""
        logger.info(
            "Configuration loaded",
            extra={
                "data_dir": self.store.data_dir,
                "tenants": list(self.store.tenants),
                "timestamps": self.store.timestamps,
                "save_on_shutdown": self.store.save_on_shutdown,
                "relationships_file": self.query.relationships_file,
                "crawl_max_pages": self.crawler.max_pages,
                "log_level": self.observability.log_level,
            },
        )
