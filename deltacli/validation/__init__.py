"""
Delta CLI validation module.

Provides configuration loading and validation.
"""

from deltacli.validation.config import Config, ConfigError, DeltaConfig

__all__ = ["Config", "ConfigError", "DeltaConfig"]
