import copy
import json
import logging
import os
from typing import Dict, Optional, Any

logger = logging.getLogger(__name__)

CONFIG_FILE_PATH = "config.json"

SOURCE_KEYS = [
    "cms_sitemap_index",
    "canonical_sitemap_index",
    "canonical_pages_map",
    "pages_host_sitemap",
    "cms_rss_feed",
    "canonical_rss_feed",
]

# Our own published documents; these may also be local file paths
LOCAL_SOURCE_KEYS = ["canonical_sitemap_index", "canonical_pages_map"]

OUTPUT_PATH_KEYS = ["sitemap_dir", "parent_sitemap", "rss_file", "history_dir"]

DEFAULT_CONFIG: Dict[str, Any] = {
    "user_agent": "Mozilla/5.0 (compatible; CucumberSitemapSync/1.0; +https://cucumber.io)",
    "timeout": 30,
    "download_delay": 0.0,
    "canonical_host": "https://cucumber.io",
    "sources": {
        "cms_sitemap_index": "https://cucumber.ghost.io/sitemap.xml",
        "canonical_sitemap_index": "https://cucumber.io/sitemap.xml",
        "canonical_pages_map": "https://cucumber.io/sitemap-pages.xml",
        "pages_host_sitemap": "https://cucumber-website.squarespace.com/sitemap.xml",
        "cms_rss_feed": "https://cucumber.ghost.io/rss/",
        "canonical_rss_feed": "https://cucumber.io/blog/rss",
    },
    "output": {
        "sitemap_dir": "./static/sitemaps",
        "parent_sitemap": "./static/sitemaps/sitemap.xml",
        "rss_file": "./static/rss/rss.xml",
        "history_dir": "output",
        "history_enabled": True,
    },
}


def merge_config(overrides: Dict[str, Any]) -> Dict[str, Any]:
    """Overlays a loaded config on DEFAULT_CONFIG, one level deep for dict sections."""
    merged = copy.deepcopy(DEFAULT_CONFIG)
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key].update(value)
        else:
            merged[key] = value
    return merged


def load_config(config_path: str = CONFIG_FILE_PATH) -> Optional[Dict[str, Any]]:
    """Loads the configuration from config.json, falling back to defaults if absent."""
    if not os.path.exists(config_path):
        logger.warning(f"Configuration file not found: {config_path}. Using defaults.")
        return merge_config({})
    try:
        with open(config_path, 'r') as f:
            config_data = json.load(f)
        logger.info(f"Successfully loaded configuration from {config_path}")
    except json.JSONDecodeError as e:
        logger.error(f"Error decoding JSON from {config_path}: {e}")
        return None
    except OSError as e:
        logger.error(f"Could not read {config_path}: {e}")
        return None

    if not isinstance(config_data, dict):
        logger.error("Configuration must be a dictionary.")
        return None

    config = merge_config(config_data)
    if not validate_config(config):
        return None
    return config


def _is_http_url(value: Any) -> bool:
    return isinstance(value, str) and value.startswith(("http://", "https://"))


def validate_config(config: Dict[str, Any]) -> bool:
    """Validates the structure and content of the configuration."""
    if not isinstance(config, dict):
        logger.error("Configuration must be a dictionary.")
        return False

    if not _is_http_url(config.get("canonical_host")):
        logger.error("'canonical_host' must be an http(s) URL.")
        return False
    if config["canonical_host"].endswith("/"):
        logger.error("'canonical_host' must not end with '/'.")
        return False

    sources = config.get("sources")
    if not isinstance(sources, dict):
        logger.error("'sources' key is missing or not a dictionary in config.")
        return False
    for key in SOURCE_KEYS:
        value = sources.get(key)
        if key in LOCAL_SOURCE_KEYS and isinstance(value, str) and value.strip():
            continue
        if not _is_http_url(value):
            logger.error(f"Source '{key}' must be an http(s) URL, got: {sources.get(key)!r}")
            return False

    output = config.get("output")
    if not isinstance(output, dict):
        logger.error("'output' key is missing or not a dictionary in config.")
        return False
    for key in OUTPUT_PATH_KEYS:
        value = output.get(key)
        if not isinstance(value, str) or not value.strip():
            logger.error(f"Output path '{key}' must be a non-empty string.")
            return False

    if not isinstance(config.get("user_agent"), str) or not config["user_agent"].strip():
        logger.warning("'user_agent' key is missing or not a non-empty string. Using a default one is recommended.")

    logger.info("Configuration validation successful.")
    return True


if __name__ == '__main__':
    # Basic test for the config loader
    logging.basicConfig(level=logging.INFO)
    config = load_config()
    if config:
        logger.info(f"Loaded user agent: {config.get('user_agent')}")
        logger.info(f"Canonical host: {config.get('canonical_host')}")
    else:
        logger.error("Failed to load or validate configuration.")
