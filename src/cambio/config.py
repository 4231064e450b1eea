"""Runtime settings for cambio.

Settings come from environment variables, the same way the database path
always has (``CAMBIO_DB_PATH``). The CLI overrides individual values from its
options.
"""

import os
from dataclasses import dataclass
from typing import Mapping, Optional

DEFAULT_HOUSE_ACCOUNT_NAME = "Casa de Cambio (Sistema)"


class SettingsError(ValueError):
    """Invalid configuration value."""


@dataclass(frozen=True)
class Settings:
    """Immutable runtime settings.

    Timeouts are in seconds and bound how long an atomic unit waits for locks
    held by concurrent writers.
    """

    database_path: Optional[str] = None
    house_account_name: str = DEFAULT_HOUSE_ACCOUNT_NAME
    log_level: str = "WARNING"
    create_timeout: float = 10.0
    reconcile_timeout: float = 15.0
    settlement_timeout: float = 30.0


def _float_setting(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        raise SettingsError(f"{name} must be a number of seconds, got '{raw}'")
    if value <= 0:
        raise SettingsError(f"{name} must be positive, got '{raw}'")
    return value


def load_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    """Load settings from environment variables.

    Args:
        env: Mapping to read from (defaults to os.environ)

    Returns:
        Settings instance

    Raises:
        SettingsError: If a numeric value cannot be parsed
    """
    if env is None:
        env = os.environ

    return Settings(
        database_path=env.get("CAMBIO_DB_PATH") or None,
        house_account_name=env.get("CAMBIO_HOUSE_ACCOUNT") or DEFAULT_HOUSE_ACCOUNT_NAME,
        log_level=(env.get("CAMBIO_LOG_LEVEL") or "WARNING").upper(),
        create_timeout=_float_setting(env, "CAMBIO_CREATE_TIMEOUT", 10.0),
        reconcile_timeout=_float_setting(env, "CAMBIO_RECONCILE_TIMEOUT", 15.0),
        settlement_timeout=_float_setting(env, "CAMBIO_SETTLEMENT_TIMEOUT", 30.0),
    )
