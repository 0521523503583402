"""Configuration module for the clinical gateway."""

from clinical_gateway.config.base import Settings
from clinical_gateway.config.loader import get_settings

__all__ = ["Settings", "get_settings"]
