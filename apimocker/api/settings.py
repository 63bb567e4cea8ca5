"""
Configuration for the apimocker HTTP app.

Uses pydantic-settings for environment variable loading.
"""

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """HTTP app configuration loaded from environment."""

    host: str = Field(default="0.0.0.0", description="Bind host")
    port: int = Field(default=3000, description="Bind port")

    # Each tenant is served under /{tenant}{base_path}
    base_path: str = Field(default="/odata", description="Service root below the tenant segment")

    cors_origins: list[str] = Field(default=["*"], description="Allowed CORS origins")

    model_config = {"env_prefix": "APIMOCKER_HTTP_"}

    def service_root(self, server_url: str, tenant: str) -> str:
        """Absolute service root for a tenant."""
        return f"{server_url.rstrip('/')}/{tenant}{self.base_path.rstrip('/')}"
