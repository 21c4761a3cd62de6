"""
Configuration loading for sealconf.

This package reads structured (JSON / YAML) and flat (.env) configuration
files, applies declared defaults, and seals password fields through the vault.
"""

from sealconf.config.envfile import EnvLoader, env, has_env, load_env
from sealconf.config.loader import load_config
from sealconf.config.schema import apply_defaults, decode_into, setting

__all__ = [
    # Structured form
    "load_config",
    "setting",
    "apply_defaults",
    "decode_into",
    # Flat form
    "EnvLoader",
    "load_env",
    "env",
    "has_env",
]
