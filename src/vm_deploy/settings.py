from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class AppSettings(BaseSettings):
    """
    Host layout and workflow tunables, loaded from Environment Variables or .env file.
    Defaults describe a stock Debian/Ubuntu host.
    """

    PACKAGES: list[str] = ["docker.io", "nginx", "certbot", "python3-certbot-nginx", "curl"]

    CONTAINER_NAME: str = "app"
    HOST_PORT: int = 7860
    CONTAINER_PORT: int = 7860
    RESTART_POLICY: str = "unless-stopped"
    DOCKER_BASE_URL: str | None = None  # Optional: Connect to remote docker

    NGINX_SITES_AVAILABLE: Path = Path("/etc/nginx/sites-available")
    NGINX_SITES_ENABLED: Path = Path("/etc/nginx/sites-enabled")
    SITE_NAME: str = "app"
    LETSENCRYPT_DIR: Path = Path("/etc/letsencrypt")
    RENEWAL_TIMER: str = "certbot"

    READINESS_MAX_ATTEMPTS: int = 120
    READINESS_INTERVAL: float = 2.0
    HTTP_TIMEOUT: float = 10.0

    model_config = SettingsConfigDict(env_prefix="VMDEPLOY_", env_file=".env", extra="ignore")


@lru_cache
def get_settings() -> AppSettings:
    """
    Creates a singleton instance of AppSettings.
    Uses lru_cache to ensure the .env file is read only once.
    """
    return AppSettings()
