"""
Fleet Operations Dashboard
Configuration Module
"""
from .settings import Settings, MetricsSettings, get_settings

__all__ = ["Settings", "MetricsSettings", "get_settings"]
