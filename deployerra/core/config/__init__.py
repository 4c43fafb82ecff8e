"""Configuration loading."""

from deployerra.core.config.loader import SYSTEM_CONFIG, check_trusted, load_config, merge_config

__all__ = ["SYSTEM_CONFIG", "check_trusted", "load_config", "merge_config"]
