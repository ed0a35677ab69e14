"""Configuration module for Agent Runtime Layer."""

from .settings import Settings, get_settings

__all__ = ["get_settings", "Settings"]
