"""WSGW client configuration from YAML file.

Loads from config/config.yaml, section ``wsgw:``:
- Delegation proxy host and envelope key
- Upstream base URL
- Timeouts and delegate retry counts
- Session cache backend selection

Environment variables ARE supported using ${VAR_NAME} and
${VAR_NAME:-default} syntax in YAML files. A ``.env`` file next to the
project root is read first when present.
"""

import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional
from urllib.parse import urlparse

import yaml
from dotenv import load_dotenv

# Configure module logger
logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent

# Default config file: config/config.yaml in src/ directory
DEFAULT_CONFIG_FILE = Path(__file__).parent / "config.yaml"


def load_yaml(path: Path) -> Dict[str, Any]:
    """Load YAML file and return dict."""
    if not path.exists():
        return {}
    with open(path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def _expand_env_vars(data: Any) -> Any:
    """Recursively expand ${VAR_NAME} and ${VAR_NAME:-default} environment variables in config data."""
    if isinstance(data, dict):
        return {key: _expand_env_vars(value) for key, value in data.items()}
    elif isinstance(data, list):
        return [_expand_env_vars(item) for item in data]
    elif isinstance(data, str):
        # Support both ${VAR} and ${VAR:-default} syntax
        pattern = r"\$\{([^}:]+)(?::-(([^}]*))?)?\}"

        def replacer(match):
            var_name = match.group(1)
            default_value = match.group(2) if match.group(2) is not None else match.group(0)
            return os.getenv(var_name, default_value)

        return re.sub(pattern, replacer, data)
    else:
        return data


def _deep_merge(base: Dict[str, Any], overlay: Dict[str, Any]) -> Dict[str, Any]:
    """Deep merge overlay into base dict."""
    result = base.copy()
    for key, value in overlay.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


@dataclass
class WsgwConfig:
    """WSGW client configuration.

    Configuration structure:
        wsgw:
          delegate:
            host: ...             # Encryption/decryption/CAPTCHA proxy
            envelope_key: ...     # JSON key wrapping delegate payloads
            timeout_seconds: 9
            encrypt_retries: 1
            decrypt_retries: 0
            recognize_retries: 1
          upstream:
            base_url: ...
            request_timeout_seconds: 12
          run_timeout_seconds: 25
          captcha_attempts: 1
          tiered_use_previous_month: false
          session_cache_path: ""  # Empty = in-memory cache
          debug_logging: false

    All timing values in seconds.
    """

    # =========================================================================
    # DELEGATION PROXY
    # =========================================================================
    delegate_host: str = "https://api.120399.xyz"
    delegate_envelope_key: str = "yuheng"
    delegate_timeout_seconds: float = 9.0
    encrypt_retries: int = 1
    decrypt_retries: int = 0
    recognize_retries: int = 1

    # =========================================================================
    # UPSTREAM SERVICE
    # =========================================================================
    upstream_base_url: str = "https://www.95598.cn"
    request_timeout_seconds: float = 12.0

    # =========================================================================
    # RUN BEHAVIOUR
    # =========================================================================
    run_timeout_seconds: float = 25.0
    captcha_attempts: int = 1
    # Primary tiered-usage query targets last month rather than the current one
    tiered_use_previous_month: bool = False
    session_cache_path: str = ""
    debug_logging: bool = False

    def validate(self) -> None:
        """Validate configuration for correctness and constraints."""
        for key in ("delegate_host", "upstream_base_url"):
            value = getattr(self, key)
            parsed = urlparse(value or "")
            if parsed.scheme not in ("http", "https") or not parsed.netloc:
                raise ValueError(f"{key} must be an http(s) URL, got '{value}'")

        if not self.delegate_envelope_key:
            raise ValueError("delegate_envelope_key is required")

        for key in (
            "delegate_timeout_seconds",
            "request_timeout_seconds",
            "run_timeout_seconds",
        ):
            value = getattr(self, key)
            if value <= 0:
                raise ValueError(f"{key} must be > 0, got {value}")

        for key in ("encrypt_retries", "decrypt_retries", "recognize_retries"):
            value = getattr(self, key)
            if value < 0:
                raise ValueError(f"{key} must be >= 0, got {value}")

        if self.captcha_attempts < 1:
            raise ValueError(f"captcha_attempts must be >= 1, got {self.captcha_attempts}")

    @classmethod
    def from_dict(cls, section: Dict[str, Any]) -> "WsgwConfig":
        """Build config from a (possibly nested) ``wsgw:`` mapping."""
        delegate = section.get("delegate", {}) or {}
        upstream = section.get("upstream", {}) or {}
        defaults = cls()

        def pick(source: Dict[str, Any], key: str, flat_key: str, default: Any) -> Any:
            if key in source and source[key] not in (None, ""):
                return source[key]
            if flat_key in section and section[flat_key] not in (None, ""):
                return section[flat_key]
            return default

        return cls(
            delegate_host=str(
                pick(delegate, "host", "delegate_host", os.getenv("WSGW_DELEGATE_HOST") or defaults.delegate_host)
            ).rstrip("/"),
            delegate_envelope_key=str(
                pick(delegate, "envelope_key", "delegate_envelope_key", defaults.delegate_envelope_key)
            ),
            delegate_timeout_seconds=float(
                pick(delegate, "timeout_seconds", "delegate_timeout_seconds", defaults.delegate_timeout_seconds)
            ),
            encrypt_retries=int(pick(delegate, "encrypt_retries", "encrypt_retries", defaults.encrypt_retries)),
            decrypt_retries=int(pick(delegate, "decrypt_retries", "decrypt_retries", defaults.decrypt_retries)),
            recognize_retries=int(
                pick(delegate, "recognize_retries", "recognize_retries", defaults.recognize_retries)
            ),
            upstream_base_url=str(
                pick(upstream, "base_url", "upstream_base_url", defaults.upstream_base_url)
            ).rstrip("/"),
            request_timeout_seconds=float(
                pick(upstream, "request_timeout_seconds", "request_timeout_seconds", defaults.request_timeout_seconds)
            ),
            run_timeout_seconds=float(section.get("run_timeout_seconds") or defaults.run_timeout_seconds),
            captcha_attempts=int(section.get("captcha_attempts") or defaults.captcha_attempts),
            tiered_use_previous_month=_as_bool(section.get("tiered_use_previous_month", False)),
            session_cache_path=str(section.get("session_cache_path") or ""),
            debug_logging=_as_bool(section.get("debug_logging", False)),
        )


def load_config(
    config_path: Optional[Path] = None,
    overrides: Optional[Dict[str, Any]] = None,
    env_file: Optional[Path] = None,
) -> WsgwConfig:
    """Load WSGW configuration from config.yaml file.

    A missing file yields the built-in defaults (plus overrides); a file
    without a ``wsgw:`` section is rejected.
    """
    env_file = env_file or PROJECT_ROOT / ".env"
    if env_file.exists():
        load_dotenv(env_file, override=False)

    if config_path is None:
        config_path = DEFAULT_CONFIG_FILE

    section: Dict[str, Any] = {}
    if config_path.exists():
        logger.info(f"Loading configuration from file: {config_path}")
        yaml_data = _expand_env_vars(load_yaml(config_path))
        if "wsgw" not in yaml_data:
            raise ValueError(
                f"Invalid config file {config_path}: missing 'wsgw:' section"
            )
        section = yaml_data["wsgw"] or {}
    else:
        logger.warning(f"Configuration file not found, using defaults: {config_path}")

    if overrides:
        logger.debug(f"Applying overrides: {list(overrides.keys())}")
        section = _deep_merge(section, overrides)

    config = WsgwConfig.from_dict(section)

    logger.debug("Configuration loaded successfully:")
    logger.debug(f"  - Delegate host: {config.delegate_host}")
    logger.debug(f"  - Upstream: {config.upstream_base_url}")
    logger.debug(f"  - Session cache: {config.session_cache_path or 'memory'}")

    config.validate()
    return config


_wsgw_config: Optional[WsgwConfig] = None


def get_config() -> WsgwConfig:
    """Get or load the singleton config instance."""
    global _wsgw_config
    if _wsgw_config is None:
        _wsgw_config = load_config()
    return _wsgw_config


def set_config(config: WsgwConfig) -> None:
    """Set the singleton config instance (useful for testing)."""
    global _wsgw_config
    _wsgw_config = config


def reset_config() -> None:
    """Reset the singleton config instance (forces reload on next get_config() call)."""
    global _wsgw_config
    _wsgw_config = None
