"""Configuration module"""

from .models import NodeConfig, Settings

__all__ = ["NodeConfig", "Settings"]
