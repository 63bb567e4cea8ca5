"""
API module for apimocker - the HTTP route layer.

This module handles:
- The FastAPI app factory and its middleware
- OData routes per tenant
- HTTP settings loaded with pydantic-settings

Invariants:
    - Routes hold no state; the store and engine live on app.state
    - Every response carries the OData-Version headers
"""

from .app import create_app
from .settings import Settings

__all__ = ["Settings", "create_app"]
