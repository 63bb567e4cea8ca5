"""
apimocker - Main entry point.

This module starts the mock server:
- Loads every tenant's collections from the data directory
- Loads the relationship descriptor used by $expand
- Serves the OData routes with uvicorn

Usage:
    python -m apimocker.main

Configuration is entirely via environment variables.
See config.py and api/settings.py for all available settings.

Invariants:
    - Invalid configuration exits before anything is served
    - Data is loaded once at startup and saved once at shutdown

How to change safely:
    - Keep loading out of the request path
    - Keep create_app usable without environment configuration for tests
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import json_log_formatter
import uvicorn

from .api import Settings, create_app
from .config import ServerConfig
from .errors import RelationshipConfigError
from .query.engine import QueryEngine
from .query.expansion import ExpansionResolver
from .query.relationships import RelationshipDescriptor
from .store.resource_store import ResourceStore

logger = logging.getLogger(__name__)


def setup_logging(config: ServerConfig) -> None:
    """Configure logging based on configuration.

    Args:
        config: Server configuration
    """
    level = getattr(logging, config.observability.log_level.upper(), logging.INFO)

    if config.observability.log_format == "json":
        formatter: logging.Formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

    # Reduce noise from libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


def tenant_names(config: ServerConfig) -> list[str]:
    """Configured tenants, or every sub-directory of the data directory."""
    if config.store.tenants:
        return list(config.store.tenants)
    data_dir = Path(config.store.data_dir)
    if not data_dir.is_dir():
        return []
    return sorted(path.name for path in data_dir.iterdir() if path.is_dir())


def build_store(config: ServerConfig) -> ResourceStore:
    """Create the store and load every tenant from disk."""
    store = ResourceStore(timestamps=config.store.timestamps)
    for tenant in tenant_names(config):
        loaded = store.load_directory(tenant, Path(config.store.data_dir) / tenant)
        logger.info(f"Loaded {loaded} collection(s) for tenant {tenant}")
    return store


def build_engine(config: ServerConfig, store: ResourceStore) -> QueryEngine:
    """Create the query engine, with the relationship descriptor if configured.

    Raises:
        RelationshipConfigError: If the descriptor file is invalid
    """
    descriptor = None
    if config.query.relationships_file:
        descriptor = RelationshipDescriptor.load(config.query.relationships_file)
    return QueryEngine(store, ExpansionResolver(store, descriptor))


def main() -> None:
    """Main entry point."""
    # Load configuration
    try:
        config = ServerConfig.from_env()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    setup_logging(config)
    config.log_config()

    store = build_store(config)
    try:
        engine = build_engine(config, store)
    except RelationshipConfigError as e:
        logger.error(f"Invalid relationship file: {e.message}", extra=e.details)
        sys.exit(1)

    settings = Settings()
    app = create_app(store=store, engine=engine, settings=settings, config=config)

    logger.info(f"Starting apimocker on {settings.host}:{settings.port}")
    uvicorn.run(app, host=settings.host, port=settings.port, log_config=None)


if __name__ == "__main__":
    main()
