"""Configuration loading and validation for crisscross-guest."""

from crisscross_guest.config.env import env_overrides, expand_env_vars
from crisscross_guest.config.loader import load_config, validate_config
from crisscross_guest.config.schema import GuestConfig

__all__ = [
    "GuestConfig",
    "env_overrides",
    "expand_env_vars",
    "load_config",
    "validate_config",
]
