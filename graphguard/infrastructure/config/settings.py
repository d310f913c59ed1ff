"""Provides functions for loading and accessing configuration settings.

Supports loading from .env files, environment variables, and a dedicated
YAML configuration file (~/.graphguard/config.yaml).
"""

import logging
import os
from pathlib import Path
from typing import Any, Optional, Dict

import yaml
from dotenv import load_dotenv

from graphguard.domain.models.common import RetryPolicy, RateLimitPolicy, BreakerPolicy

logger = logging.getLogger(__name__)

# --- Configuration Constants ---
DEFAULT_CONFIG_DIR = Path.home() / ".graphguard"
DEFAULT_CONFIG_FILE = DEFAULT_CONFIG_DIR / "config.yaml"
ENV_FILE_NAME = ".env"
ENV_PREFIX = "GRAPHGUARD_"

DEFAULTS: Dict[str, Any] = {
    'graph.base_url': "https://graph.microsoft.com/v1.0",
    'graph.authority': "https://login.microsoftonline.com",
    'graph.timeout_seconds': 30.0,
    'resilience.rate_limit.max_requests': 10,
    'resilience.rate_limit.time_window': 1.0,
    'resilience.retry.max_retries': 3,
    'resilience.retry.initial_delay': 1.0,
    'resilience.retry.factor': 2.0,
    'resilience.retry.max_delay': 30.0,
    'resilience.breaker.failure_threshold': 5,
    'resilience.breaker.recovery_timeout': 30.0,
    'cache.dir': str(DEFAULT_CONFIG_DIR / "cache"),
    'cache.ttl_seconds': 300,
    'cache.l2_ttl_seconds': 86400,
    'logging.level': "INFO",
    'logging.file': None,
    'logging.format': '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
}

# --- Global Configuration Store ---
_config: Dict[str, Any] = {}
_test_config: Dict[str, Any] = {}
_loaded = False


def _flatten(data: Dict[str, Any], prefix: str = "") -> Dict[str, Any]:
    """Turns nested YAML mappings into dotted keys ('resilience.retry.max_retries')."""
    flat: Dict[str, Any] = {}
    for key, value in data.items():
        dotted = f"{prefix}.{key}" if prefix else str(key)
        if isinstance(value, dict):
            flat.update(_flatten(value, dotted))
        else:
            flat[dotted] = value
    return flat


def load_configuration(config_file: Path = DEFAULT_CONFIG_FILE, env_file: Optional[Path] = None, force: bool = False) -> None:
    """Loads configuration from environment, .env file, and YAML file.

    Priority order (highest to lowest):
    1. Environment Variables
    2. .env file
    3. YAML configuration file
    4. Default values defined in DEFAULTS

    Args:
        config_file: Path to the YAML configuration file.
        env_file: Path to the .env file (searches upwards from cwd if None).
        force: Reload even if configuration was already loaded.
    """
    global _config, _loaded
    if _loaded and not force:
        logger.debug("Configuration already loaded.")
        return

    _config = {}

    # 1. YAML file (lowest priority)
    if config_file.exists():
        try:
            with open(config_file, 'r', encoding='utf-8') as f:
                yaml_config = yaml.safe_load(f)
            if isinstance(yaml_config, dict):
                _config.update(_flatten(yaml_config))
                logger.info(f"Loaded configuration from YAML: {config_file}")
            elif yaml_config is not None:
                logger.warning(f"YAML config file {config_file} did not contain a mapping.")
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"Failed to load or parse YAML config {config_file}: {e}")
    else:
        logger.debug(f"YAML config file not found: {config_file}")

    # 2. .env file; override=False lets real environment variables win
    dotenv_path = env_file or find_dotenv_path()
    if dotenv_path:
        if load_dotenv(dotenv_path=dotenv_path, override=False):
            logger.info(f"Loaded environment variables from: {dotenv_path}")
    else:
        logger.debug("No .env file found at or above the current directory.")

    # 3. Environment variables are resolved lazily in get_config
    _loaded = True
    logger.info("Configuration loading process completed.")


def _coerce(value: str) -> Any:
    """Converts environment strings to bool/int/float where they look like one."""
    if value.lower() == 'true':
        return True
    if value.lower() == 'false':
        return False
    try:
        return float(value) if '.' in value else int(value)
    except ValueError:
        return value


def _env_names(key: str) -> list:
    plain = key.upper().replace('.', '_')
    return [ENV_PREFIX + plain, plain]


def get_config(key: str, default: Any = None, coerce: bool = True) -> Any:
    """
    Get a configuration value by key.

    Priority:
    1. Test configuration (if in testing mode)
    2. Environment variable (GRAPHGUARD_<KEY> then <KEY>, dots become underscores)
    3. YAML config
    4. Built-in default, then the default argument

    Args:
        key: The configuration key, e.g. 'resilience.retry.max_retries'
        default: Default value if the key is not found
        coerce: Convert environment strings to bool/int/float (False for secrets
            and ids)

    Returns:
        The configuration value
    """
    if key in _test_config:
        return _test_config[key]

    for env_key in _env_names(key):
        if env_key in os.environ:
            value = os.environ[env_key]
            return _coerce(value) if coerce else value

    if key in _config:
        return _config[key]

    if default is None and key in DEFAULTS:
        return DEFAULTS[key]

    logger.debug(f"Config key '{key}' not found. Returning default: {default}")
    return default


def find_dotenv_path() -> Optional[Path]:
    """Searches for the .env file upwards from the current directory."""
    cwd = Path.cwd()
    for path in [cwd] + list(cwd.parents):
        env_path = path / ENV_FILE_NAME
        if env_path.is_file():
            return env_path
    return None


def set_config(key: str, value: Any) -> None:
    """Sets a configuration value for the running process."""
    logger.debug(f"Setting config: {key} = {value}")
    _config[key] = value


# --- Convenience Functions ---

def get_azure_credentials() -> Dict[str, Optional[str]]:
    """Returns tenant id, client id and client secret (values may be None)."""
    def _str(key: str, yaml_key: str) -> Optional[str]:
        value = get_config(key, coerce=False) or get_config(yaml_key, coerce=False)
        return str(value) if value is not None else None

    return {
        'tenant_id': _str('AZURE_TENANT_ID', 'azure.tenant_id'),
        'client_id': _str('AZURE_CLIENT_ID', 'azure.client_id'),
        'client_secret': _str('AZURE_CLIENT_SECRET', 'azure.client_secret'),
    }


def get_retry_policy() -> RetryPolicy:
    return RetryPolicy(
        max_retries=int(get_config('resilience.retry.max_retries')),
        initial_delay=float(get_config('resilience.retry.initial_delay')),
        factor=float(get_config('resilience.retry.factor')),
        max_delay=float(get_config('resilience.retry.max_delay')),
    )


def get_rate_limit_policy() -> RateLimitPolicy:
    return RateLimitPolicy(
        max_requests=int(get_config('resilience.rate_limit.max_requests')),
        time_window=float(get_config('resilience.rate_limit.time_window')),
    )


def get_breaker_policy() -> BreakerPolicy:
    return BreakerPolicy(
        failure_threshold=int(get_config('resilience.breaker.failure_threshold')),
        recovery_timeout=float(get_config('resilience.breaker.recovery_timeout')),
    )


def set_config_for_testing(config_dict: Dict[str, Any]) -> None:
    """
    Set configuration values for testing purposes.
    These values will override any existing configuration.

    Args:
        config_dict: Dictionary of configuration values to set
    """
    _test_config.update(config_dict)
    logger.debug(f"Set testing configuration: {config_dict}")


def clear_test_config() -> None:
    """Clear all testing configuration values."""
    _test_config.clear()
    logger.debug("Cleared testing configuration")
