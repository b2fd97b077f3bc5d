"""Configuration loading for the WSGW client.

Configuration is read from ``config/config.yaml`` (section ``wsgw:``).

Usage Examples
--------------

    >>> from config import load_config
    >>> config = load_config()
    >>> config.delegate_host
    'https://api.120399.xyz'

Custom path and overrides:
    >>> config = load_config(
    ...     config_path=Path("/custom/config.yaml"),
    ...     overrides={"captcha_attempts": 3},
    ... )

Configuration Priority
---------------------

1. ``overrides`` passed to load_config()
2. YAML configuration file (with ${VAR} references expanded)
3. ``WSGW_DELEGATE_HOST`` when the file sets no delegate host
4. Dataclass defaults
"""

from config.config import (
    WsgwConfig,
    get_config,
    load_config,
    reset_config,
    set_config,
)

__all__ = [
    "load_config",
    "get_config",
    "set_config",
    "reset_config",
    "WsgwConfig",
]
