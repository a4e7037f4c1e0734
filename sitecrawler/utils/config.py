"""
Configuration management for the site crawler.
"""

import yaml
import logging
from pathlib import Path
from typing import Dict, List, Any, Optional
from dataclasses import dataclass, field, fields

from ..exceptions import ConfigError


# Original option names accepted alongside the snake_case ones
_CAMEL_CASE_KEYS = {
    'retryCount': 'retry_count',
    'ignoreTrailingSlash': 'ignore_trailing_slash',
    'ignoreQueryParams': 'ignore_query_params',
    'ignoreHash': 'ignore_hash',
    'baseTimeout': 'base_timeout',
    'backoffUnit': 'backoff_unit',
}

DEFAULT_LAUNCH_ARGS = ['--no-sandbox', '--disable-setuid-sandbox', '--disable-http2']

BACKENDS = ('browser', 'http')


@dataclass(frozen=True)
class CrawlParams:
    """Parameters of a single crawl invocation. Times are in milliseconds."""
    url: str
    interval: int = 500
    connections: int = 1
    retry_count: int = 5
    ignore_trailing_slash: bool = True
    ignore_query_params: bool = True
    ignore_hash: bool = True
    base_timeout: int = 5000
    backoff_unit: int = 1000

    def __post_init__(self):
        if not self.url:
            raise ConfigError("url is required")
        if self.interval < 0:
            raise ConfigError("interval must be non-negative")
        if self.connections < 1:
            raise ConfigError("connections must be at least 1")
        if self.retry_count < 0:
            raise ConfigError("retry_count must be non-negative")
        if self.base_timeout < 0 or self.backoff_unit < 0:
            raise ConfigError("timeouts must be non-negative")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CrawlParams':
        """Create CrawlParams from a mapping, accepting camelCase keys too."""
        try:
            return cls(**normalize_crawl_options(data))
        except TypeError as e:
            raise ConfigError(f"Invalid crawl options: {e}") from e

    def to_dict(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


def normalize_crawl_options(data: Dict[str, Any]) -> Dict[str, Any]:
    """Map option names onto CrawlParams fields, rejecting unknown ones."""
    known = {f.name for f in fields(CrawlParams)}
    options = {}
    for key, value in data.items():
        name = _CAMEL_CASE_KEYS.get(key, key)
        if name not in known:
            raise ConfigError(f"Unknown crawl option: {key}")
        options[name] = value
    return options


@dataclass
class FetcherConfig:
    """Configuration for the page fetch capability."""
    backend: str = 'browser'
    user_agent: Optional[str] = None
    headless: bool = True
    wait_until: str = 'networkidle'
    launch_args: List[str] = field(default_factory=lambda: list(DEFAULT_LAUNCH_ARGS))


@dataclass
class LoggingConfig:
    """Configuration for logging."""
    level: str = 'INFO'
    file: Optional[str] = None
    format: str = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    json: bool = False


@dataclass
class MonitoringConfig:
    """Configuration for monitoring."""
    metrics_enabled: bool = False
    prometheus_port: int = 8000


@dataclass
class Config:
    """Main configuration class."""
    crawl: Dict[str, Any] = field(default_factory=dict)
    fetcher: FetcherConfig = field(default_factory=FetcherConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    monitoring: MonitoringConfig = field(default_factory=MonitoringConfig)

    def crawl_params(self, **overrides: Any) -> CrawlParams:
        """
        Build CrawlParams from the crawl section.

        Keyword overrides (typically from the command line) win over the
        file; None values are ignored.
        """
        options = dict(self.crawl)
        options.update(normalize_crawl_options(
            {k: v for k, v in overrides.items() if v is not None}
        ))
        return CrawlParams.from_dict(options)


class ConfigManager:
    """Manages configuration loading and validation."""

    def __init__(self, config_path: str = "config.yaml"):
        self.config_path = Path(config_path)
        self._config: Optional[Config] = None

    def load_config(self) -> Config:
        """Load configuration from YAML file."""
        if not self.config_path.exists():
            raise ConfigError(f"Configuration file not found: {self.config_path}")

        with open(self.config_path, 'r', encoding='utf-8') as file:
            try:
                config_data = yaml.safe_load(file) or {}
            except yaml.YAMLError as e:
                raise ConfigError(f"Invalid YAML in {self.config_path}: {e}") from e

        if not isinstance(config_data, dict):
            raise ConfigError(f"Configuration root must be a mapping: {self.config_path}")

        self._config = parse_config(config_data)
        self._validate_config()
        return self._config

    def _validate_config(self):
        """Validate configuration values."""
        if not self._config:
            raise ConfigError("Configuration not loaded")

        if self._config.fetcher.backend not in BACKENDS:
            raise ConfigError(f"Fetcher backend must be one of {', '.join(BACKENDS)}")

        level = self._config.logging.level.upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ConfigError(f"Unknown log level: {self._config.logging.level}")

        if not 0 < self._config.monitoring.prometheus_port < 65536:
            raise ConfigError("prometheus_port must be a valid TCP port")

        logging.getLogger(__name__).debug("Configuration validation passed")

    @property
    def config(self) -> Config:
        """Get the loaded configuration."""
        if not self._config:
            raise ConfigError("Configuration not loaded. Call load_config() first.")
        return self._config


def _section(data: Dict[str, Any], name: str, cls):
    section = data.get(name) or {}
    if not isinstance(section, dict):
        raise ConfigError(f"Section '{name}' must be a mapping")
    try:
        return cls(**section)
    except TypeError as e:
        raise ConfigError(f"Invalid '{name}' section: {e}") from e


def parse_config(config_data: Dict[str, Any]) -> Config:
    """Build a Config from already-parsed YAML data."""
    crawl_data = config_data.get('crawl') or {}
    if not isinstance(crawl_data, dict):
        raise ConfigError("Section 'crawl' must be a mapping")
    return Config(
        crawl=normalize_crawl_options(crawl_data),
        fetcher=_section(config_data, 'fetcher', FetcherConfig),
        logging=_section(config_data, 'logging', LoggingConfig),
        monitoring=_section(config_data, 'monitoring', MonitoringConfig),
    )


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
