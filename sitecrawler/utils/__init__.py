"""
Utility modules for the site crawler.
"""

from .config import Config, ConfigManager, CrawlParams, load_config, get_config

__all__ = ['Config', 'ConfigManager', 'CrawlParams', 'load_config', 'get_config']
