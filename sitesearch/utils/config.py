"""
Configuration management for the site search engine.
"""

import yaml
import logging
from pathlib import Path
from typing import Dict, List, Any, Optional
from dataclasses import dataclass, field


SUPPORTED_LANGUAGES = ('english', 'russian')
STORAGE_TYPES = ('memory', 'file', 'redis')


@dataclass
class SiteConfig:
    """A website to crawl."""
    url: str
    name: str

    def __post_init__(self):
        self.url = self.url.rstrip('/')


@dataclass
class CrawlerConfig:
    """Configuration for crawler behavior."""
    user_agent: str = "SiteSearchBot/1.0"
    referrer: str = "http://www.google.com"
    request_timeout: float = 5.0
    delay_base: float = 0.5
    delay_jitter: float = 4.5
    max_pages_per_site: int = 0
    max_content_bytes: int = 10 * 1024 * 1024
    connection_error_message: str = "Server response timed out. Indexing could not be completed"


@dataclass
class LemmatizerConfig:
    """Configuration for word normalization."""
    language: str = "english"
    min_word_length: int = 2


@dataclass
class SearchConfig:
    """Configuration for query handling."""
    frequency_cutoff: float = 0.8
    default_offset: int = 0
    min_offset: int = 0
    default_limit: int = 20
    min_limit: int = 1
    snippet_words: int = 30


@dataclass
class RedisConfig:
    """Configuration for Redis."""
    host: str = "localhost"
    port: int = 6379
    db: int = 0
    password: Optional[str] = None
    prefix: str = "sitesearch"


@dataclass
class StorageConfig:
    """Configuration for index storage."""
    type: str = "memory"
    file: Dict[str, Any] = field(default_factory=lambda: {'directory': 'data'})
    redis: RedisConfig = field(default_factory=RedisConfig)


@dataclass
class ApiConfig:
    """Configuration for the HTTP API."""
    host: str = "0.0.0.0"
    port: int = 8080


@dataclass
class LoggingConfig:
    """Configuration for logging."""
    level: str = "INFO"
    file: str = "logs/sitesearch.log"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


@dataclass
class MonitoringConfig:
    """Configuration for monitoring."""
    prometheus_port: int = 8000
    metrics_enabled: bool = False


@dataclass
class Config:
    """Main configuration class."""
    sites: List[SiteConfig]
    crawler: CrawlerConfig = field(default_factory=CrawlerConfig)
    lemmatizer: LemmatizerConfig = field(default_factory=LemmatizerConfig)
    search: SearchConfig = field(default_factory=SearchConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    api: ApiConfig = field(default_factory=ApiConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    monitoring: MonitoringConfig = field(default_factory=MonitoringConfig)


def parse_config(config_data: Dict[str, Any]) -> Config:
    """Build a Config from a parsed YAML mapping."""
    storage_data = dict(config_data.get('storage') or {})
    redis_config = RedisConfig(**(storage_data.pop('redis', None) or {}))

    return Config(
        sites=[SiteConfig(**site) for site in config_data.get('sites') or []],
        crawler=CrawlerConfig(**(config_data.get('crawler') or {})),
        lemmatizer=LemmatizerConfig(**(config_data.get('lemmatizer') or {})),
        search=SearchConfig(**(config_data.get('search') or {})),
        storage=StorageConfig(redis=redis_config, **storage_data),
        api=ApiConfig(**(config_data.get('api') or {})),
        logging=LoggingConfig(**(config_data.get('logging') or {})),
        monitoring=MonitoringConfig(**(config_data.get('monitoring') or {}))
    )


def validate_config(config: Config):
    """Validate configuration values."""
    if not config.sites:
        raise ValueError("At least one site must be configured")

    for site in config.sites:
        if not site.url.startswith(('http://', 'https://')):
            raise ValueError(f"Site URL must be absolute http(s): {site.url}")

    if config.crawler.delay_base < 0 or config.crawler.delay_jitter < 0:
        raise ValueError("delay_base and delay_jitter must be non-negative")

    if config.crawler.request_timeout <= 0:
        raise ValueError("request_timeout must be positive")

    if not 0 < config.search.frequency_cutoff <= 1:
        raise ValueError("frequency_cutoff must be in (0, 1]")

    if config.search.min_limit < 1:
        raise ValueError("min_limit must be at least 1")

    if config.lemmatizer.language not in SUPPORTED_LANGUAGES:
        raise ValueError(f"Language must be one of {', '.join(SUPPORTED_LANGUAGES)}")

    if config.storage.type not in STORAGE_TYPES:
        raise ValueError(f"Storage type must be one of {', '.join(STORAGE_TYPES)}")

    logging.getLogger(__name__).info("Configuration validation passed")


class ConfigManager:
    """Manages configuration loading and validation."""

    def __init__(self, config_path: str = "config.yaml"):
        self.config_path = Path(config_path)
        self._config: Optional[Config] = None

    def load_config(self) -> Config:
        """Load configuration from YAML file."""
        if not self.config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {self.config_path}")

        with open(self.config_path, 'r', encoding='utf-8') as file:
            config_data = yaml.safe_load(file) or {}

        self._config = parse_config(config_data)
        validate_config(self._config)
        return self._config

    @property
    def config(self) -> Config:
        """Get the loaded configuration."""
        if not self._config:
            raise ValueError("Configuration not loaded. Call load_config() first.")
        return self._config


# Global config manager instance
config_manager = ConfigManager()


def get_config() -> Config:
    """Get the global configuration instance."""
    return config_manager.config


def load_config(config_path: str = "config.yaml") -> Config:
    """Load configuration from file."""
    global config_manager
    config_manager = ConfigManager(config_path)
    return config_manager.load_config()
