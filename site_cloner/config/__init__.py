"""Configuration module for the site cloner pipeline."""

from site_cloner.config.settings import Settings, get_settings

__all__ = ["Settings", "get_settings"]
