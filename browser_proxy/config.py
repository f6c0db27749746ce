"""
Configuration management for Browser Fetch Proxy.
Handles loading configuration from file, environment overrides and defaults.
"""

import json
import os
from typing import Optional

from . import constants


_current_config_file: str = constants.CONFIG_FILE

# Environment variable -> config key
ENV_OVERRIDES = {
    "HEADLESS": "headless",
    "PLAYWRIGHT_CHROMIUM_EXECUTABLE_PATH": "executable_path",
    "PORT": "port",
    "BROWSER_ENGINE": "browser_engine",
    "DEBUG": "debug",
}


def get_config_file() -> str:
    """Get the current config file path."""
    return _current_config_file


def set_config_file(path: str) -> None:
    """Set the config file path (useful for tests)."""
    global _current_config_file
    _current_config_file = path


def get_config() -> dict:
    """
    Load configuration from file, then the environment, with defaults.
    Returns a dictionary with all configuration values.
    """
    try:
        with open(_current_config_file, "r") as f:
            config = json.load(f)
    except (FileNotFoundError, json.JSONDecodeError):
        config = {}
    except Exception:
        config = {}

    if not isinstance(config, dict):
        config = {}

    _apply_env_overrides(config, os.environ)

    # Ensure default keys exist
    _apply_config_defaults(config)

    return config


def _apply_env_overrides(config: dict, environ) -> None:
    for env_name, key in ENV_OVERRIDES.items():
        value = environ.get(env_name)
        if value is None or str(value).strip() == "":
            continue
        config[key] = value


def _parse_bool(value: object, default: bool) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return default
    text = str(value).strip().lower()
    if text in ("1", "true", "yes", "on"):
        return True
    if text in ("0", "false", "no", "off"):
        return False
    return default


def _parse_number(value: object, default: float, *, minimum: float, maximum: float) -> float:
    try:
        number = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return default
    if number != number:  # NaN
        return default
    return max(minimum, min(number, maximum))


def _apply_config_defaults(config: dict) -> None:
    """Apply default values to config dictionary and normalize what is there."""
    config["headless"] = _parse_bool(config.get("headless"), True)
    config["debug"] = _parse_bool(config.get("debug"), constants.DEBUG)

    executable_path: Optional[str] = config.get("executable_path")
    config["executable_path"] = str(executable_path).strip() if executable_path else None

    config["port"] = int(_parse_number(config.get("port"), constants.PORT, minimum=1, maximum=65535))

    engine = str(config.get("browser_engine") or "").strip().lower()
    if engine not in constants.VALID_BROWSER_ENGINES:
        engine = constants.DEFAULT_BROWSER_ENGINE
    config["browser_engine"] = engine

    user_agent = str(config.get("user_agent") or "").strip()
    config["user_agent"] = user_agent or constants.DEFAULT_USER_AGENT

    bootstrap = str(config.get("page_bootstrap") or "").strip().lower()
    if bootstrap not in constants.VALID_PAGE_BOOTSTRAP_MODES:
        bootstrap = constants.PAGE_BOOTSTRAP_BLANK
    config["page_bootstrap"] = bootstrap

    config["max_concurrent_pages"] = int(
        _parse_number(
            config.get("max_concurrent_pages"),
            constants.DEFAULT_MAX_CONCURRENT_PAGES,
            minimum=0,
            maximum=1000,
        )
    )

    config["navigation_timeout_seconds"] = _parse_number(
        config.get("navigation_timeout_seconds"),
        constants.DEFAULT_NAVIGATION_TIMEOUT_SECONDS,
        minimum=1.0,
        maximum=600.0,
    )
    config["request_timeout_seconds"] = _parse_number(
        config.get("request_timeout_seconds"),
        constants.DEFAULT_REQUEST_TIMEOUT_SECONDS,
        minimum=1.0,
        maximum=3600.0,
    )
    config["stream_timeout_seconds"] = _parse_number(
        config.get("stream_timeout_seconds"),
        constants.DEFAULT_STREAM_TIMEOUT_SECONDS,
        minimum=1.0,
        maximum=3600.0,
    )
    config["engine_launch_timeout_seconds"] = _parse_number(
        config.get("engine_launch_timeout_seconds"),
        constants.DEFAULT_ENGINE_LAUNCH_TIMEOUT_SECONDS,
        minimum=5.0,
        maximum=300.0,
    )
    config["credential_timeout_seconds"] = _parse_number(
        config.get("credential_timeout_seconds"),
        constants.DEFAULT_CREDENTIAL_TIMEOUT_SECONDS,
        minimum=1.0,
        maximum=300.0,
    )

    sitekey = str(config.get("genspark_recaptcha_sitekey") or "").strip()
    config["genspark_recaptcha_sitekey"] = sitekey or None


def get_default_config() -> dict:
    """Get default configuration values."""
    config: dict = {}
    _apply_config_defaults(config)
    return config
