"""
apimocker Test Suite.

This package contains:
- unit/: Unit tests (no network, temporary directories only)
- integration/: HTTP route tests through FastAPI's TestClient
"""
