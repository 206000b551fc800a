"""Configuration system for the leastsquares package."""

from leastsquares.config.manager import ConfigManager

__all__ = ["ConfigManager"]
