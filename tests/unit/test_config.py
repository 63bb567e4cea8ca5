"""
Unit tests for environment configuration.
"""

import logging

import json_log_formatter
import pytest

from apimocker.api.settings import Settings
from apimocker.config import CrawlerConfig, ObservabilityConfig, ServerConfig, StoreConfig
from apimocker.main import setup_logging


class TestFromEnv:
    """Tests for from_env loaders."""

    def test_defaults(self, monkeypatch, tmp_path):
        monkeypatch.setenv("APIMOCKER_DATA_DIR", str(tmp_path))
        for name in ("APIMOCKER_TENANTS", "APIMOCKER_RELATIONSHIPS_FILE", "APIMOCKER_CRAWL_MAX_PAGES"):
            monkeypatch.delenv(name, raising=False)

        config = ServerConfig.from_env()

        assert config.store.data_dir == str(tmp_path)
        assert config.store.tenants == ()
        assert config.crawler.max_pages == 10
        assert config.crawler.deadline_seconds is None
        assert config.query.relationships_file is None

    def test_store_values(self, monkeypatch):
        monkeypatch.setenv("APIMOCKER_TENANTS", "petstore, shop,")
        monkeypatch.setenv("APIMOCKER_TIMESTAMPS", "true")
        monkeypatch.setenv("APIMOCKER_SAVE_ON_SHUTDOWN", "TRUE")

        config = StoreConfig.from_env()

        assert config.tenants == ("petstore", "shop")
        assert config.timestamps is True
        assert config.save_on_shutdown is True

    def test_crawler_values(self, monkeypatch):
        monkeypatch.setenv("APIMOCKER_CRAWL_MAX_PAGES", "3")
        monkeypatch.setenv("APIMOCKER_CRAWL_DEADLINE_SECONDS", "2.5")
        monkeypatch.setenv("APIMOCKER_CRAWL_MAX_ITEMS_PER_PAGE", "50")

        config = CrawlerConfig.from_env()

        assert config.max_pages == 3
        assert config.deadline_seconds == 2.5
        assert config.max_items_per_page == 50

    def test_http_settings(self, monkeypatch):
        monkeypatch.setenv("APIMOCKER_HTTP_PORT", "8081")
        monkeypatch.setenv("APIMOCKER_HTTP_BASE_PATH", "/api")

        settings = Settings()

        assert settings.port == 8081
        assert settings.service_root("http://host/", "shop") == "http://host/shop/api"


class TestValidate:
    """Tests for ServerConfig.validate."""

    def test_page_ceiling_must_be_positive(self):
        config = ServerConfig(crawler=CrawlerConfig(max_pages=0))

        with pytest.raises(ValueError, match="MAX_PAGES"):
            config.validate()

    def test_invalid_log_format(self, monkeypatch):
        monkeypatch.setenv("LOG_FORMAT", "xml")

        with pytest.raises(ValueError, match="LOG_FORMAT"):
            ServerConfig.from_env()

    def test_missing_relationship_file(self, monkeypatch, tmp_path):
        monkeypatch.setenv("APIMOCKER_RELATIONSHIPS_FILE", str(tmp_path / "missing.yaml"))

        with pytest.raises(ValueError, match="RELATIONSHIPS_FILE"):
            ServerConfig.from_env()


class TestSetupLogging:
    """Tests for main.setup_logging."""

    @pytest.fixture(autouse=True)
    def restore_root_logger(self):
        root = logging.getLogger()
        handlers, level = root.handlers[:], root.level
        yield
        root.handlers = handlers
        root.setLevel(level)

    def test_text_format(self):
        setup_logging(ServerConfig(observability=ObservabilityConfig(log_level="DEBUG")))

        root = logging.getLogger()
        assert root.level == logging.DEBUG
        assert len(root.handlers) == 1
        assert logging.getLogger("uvicorn.access").level == logging.WARNING

    def test_json_format(self):
        setup_logging(ServerConfig(observability=ObservabilityConfig(log_format="json")))

        handler = logging.getLogger().handlers[0]
        assert isinstance(handler.formatter, json_log_formatter.JSONFormatter)
