"""
Configuration Module

Centralized configuration management for Planloop.
"""

from planloop.config.settings import (
    CheckpointSettings,
    ObservabilitySettings,
    OrchestratorSettings,
    Settings,
    get_settings,
)

__all__ = [
    "CheckpointSettings",
    "ObservabilitySettings",
    "OrchestratorSettings",
    "Settings",
    "get_settings",
]
