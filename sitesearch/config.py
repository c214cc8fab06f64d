import logging
import os
from pathlib import Path
from urllib.parse import urlparse

import yaml
from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "SITESEARCH_CONFIG"
DEFAULT_CONFIG_PATH = "config.yaml"


def default_workers() -> int:
    return max(1, (os.cpu_count() or 1) - 1)


class SiteConfig(BaseModel):
    url: str
    name: str

    @field_validator("url")
    @classmethod
    def canonical_url(cls, url: str) -> str:
        url = url.strip()
        if not (url.startswith("http://") or url.startswith("https://")):
            raise ValueError(f"site url must be http or https: {url}")
        return url.rstrip("/")


class IndexingSettings(BaseModel):
    user_agent: str = "SiteSearchBot/1.0"
    referrer: str = "https://www.google.com"
    request_delay: float = Field(default=0.7, ge=0)
    request_timeout: float = Field(default=5.0, gt=0)
    batch_size: int = Field(default=50, ge=1)
    workers: int = Field(default_factory=default_workers, ge=1)
    stop_poll_retries: int = Field(default=30, ge=0)
    stop_poll_interval: float = Field(default=1.0, ge=0)
    shutdown_grace: float = Field(default=180.0, ge=0)


class LoggingSettings(BaseModel):
    level: str = "INFO"
    file: str | None = None
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class Settings(BaseModel):
    sites: list[SiteConfig]
    indexing: IndexingSettings = Field(default_factory=IndexingSettings)
    database: str = "search.db"
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @field_validator("sites")
    @classmethod
    def at_least_one_site(cls, sites: list[SiteConfig]) -> list[SiteConfig]:
        if not sites:
            raise ValueError("at least one site must be configured")
        return sites

    def find_site(self, url: str) -> SiteConfig | None:
        """
        The configured site a URL belongs to, in configuration order: same host,
        and a path under the site's own path.
        """
        parsed = urlparse(url)
        for site in self.sites:
            site_parsed = urlparse(site.url)
            if parsed.netloc != site_parsed.netloc:
                continue
            base = site_parsed.path
            if parsed.path == base or parsed.path.startswith(base + "/") or not base:
                return site
        return None


def load_settings(path: str | None = None) -> Settings:
    config_path = Path(path or os.environ.get(CONFIG_ENV_VAR, DEFAULT_CONFIG_PATH))
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    settings = Settings.model_validate(data)
    logger.info("Loaded %d site(s) from %s", len(settings.sites), config_path)
    return settings
