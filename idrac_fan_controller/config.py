from __future__ import annotations

import math
import os
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Tuple

try:  # Python 3.11+
    import tomllib as _toml
except ModuleNotFoundError:  # Python <=3.10
    import tomli as _toml  # type: ignore

LOG_LEVELS = ("debug", "info", "warning", "error")

DEFAULTS: Dict[str, Any] = {
    "check_interval": 30,
    "temp_low": 40,
    "temp_high": 80,
    "min_fan_speed": 10,
    "max_fan_speed": 100,
    "hysteresis": 2,
    "log_level": "info",
    "sensor_filter": (),
    "ipmi_timeout": 10,
    "recovery_interval": 60,
    "log_file": None,
}

# Config key -> environment variable
ENV_VARS: Dict[str, str] = {
    "host": "IDRAC_HOST",
    "user": "IDRAC_USER",
    "password": "IDRAC_PW",
    "check_interval": "CHECK_INTERVAL",
    "temp_low": "TEMP_THRESHOLD_LOW",
    "temp_high": "TEMP_THRESHOLD_HIGH",
    "min_fan_speed": "MIN_FAN_SPEED",
    "max_fan_speed": "MAX_FAN_SPEED",
    "hysteresis": "HYSTERESIS",
    "log_level": "LOG_LEVEL",
    "sensor_filter": "SENSOR_FILTER",
    "ipmi_timeout": "IPMI_TIMEOUT",
    "recovery_interval": "RECOVERY_INTERVAL",
    "log_file": "LOG_FILE",
}

CONFIG_PATH_ENV = "IDRAC_FAN_CONFIG"

REQUIRED = ("host", "user", "password")


class ConfigError(Exception):
    """Missing or invalid controller configuration."""


@dataclass(frozen=True)
class ControllerConfig:
    host: str
    user: str
    password: str = field(repr=False)
    check_interval: int = 30
    temp_low: int = 40
    temp_high: int = 80
    min_speed: int = 10
    max_speed: int = 100
    hysteresis: float = 2.0
    log_level: str = "info"
    sensor_filter: Tuple[str, ...] = ()
    ipmi_timeout: float = 10.0
    recovery_interval: int = 60
    max_consecutive_errors: int = 3
    log_file: Optional[str] = None


def _as_int(key: str, value: Any) -> int:
    if isinstance(value, bool):
        raise ConfigError(f"{key} must be an integer, got {value!r}")
    if isinstance(value, int):
        return value
    try:
        return int(str(value).strip())
    except ValueError:
        raise ConfigError(f"{key} must be an integer, got {value!r}") from None


def _as_float(key: str, value: Any) -> float:
    if isinstance(value, bool):
        raise ConfigError(f"{key} must be a number, got {value!r}")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{key} must be a number, got {value!r}") from None
    if not math.isfinite(number):
        raise ConfigError(f"{key} must be a finite number, got {value!r}")
    return number


def _as_filter(value: Any) -> Tuple[str, ...]:
    if isinstance(value, str):
        value = value.split(",")
    elif not isinstance(value, (list, tuple)):
        raise ConfigError(f"sensor_filter must be a string or list of strings, got {value!r}")
    return tuple(str(v).strip() for v in value if str(v).strip())


class ConfigManager:
    """Builds the controller configuration from defaults, file, env and CLI.

    Later sources win: built-in defaults, then the optional TOML file, then
    the environment, then explicit overrides (command line).
    """
    def __init__(
        self,
        path: Optional[str] = None,
        *,
        environ: Optional[Mapping[str, str]] = None,
        overrides: Optional[Mapping[str, Any]] = None,
    ):
        self.environ = os.environ if environ is None else environ
        self.path = path or self.environ.get(CONFIG_PATH_ENV) or None
        self.overrides = dict(overrides or {})
        self.config: Dict[str, Any] = {}

    def load(self) -> Dict[str, Any]:
        """Merge all sources into `self.config` and return it."""
        cfg: Dict[str, Any] = dict(DEFAULTS)
        if self.path:
            cfg.update(self._load_file(self.path))
        for key, var in ENV_VARS.items():
            value = self.environ.get(var)
            if value is not None and value.strip() != "":
                cfg[key] = value
        for key, value in self.overrides.items():
            if value is not None:
                cfg[key] = value
        self.config = cfg
        return cfg

    @staticmethod
    def _load_file(path: str) -> Dict[str, Any]:
        if not os.path.exists(path):
            raise ConfigError(f"Config file not found: {path}")
        try:
            with open(path, "rb") as f:
                data = _toml.load(f)
        except _toml.TOMLDecodeError as e:
            raise ConfigError(f"Invalid TOML in {path}: {e}") from e
        unknown = sorted(set(data) - set(ENV_VARS))
        if unknown:
            raise ConfigError(f"Unknown config keys in {path}: {', '.join(unknown)}")
        return data

    def validate(self, logger=None) -> ControllerConfig:
        """Check every constraint and return the frozen configuration."""
        cfg = self.config or self.load()

        for key in REQUIRED:
            value = cfg.get(key)
            if value is None or not str(value).strip():
                raise ConfigError(f"Missing required setting '{key}' (env {ENV_VARS[key]})")

        check_interval = _as_int("check_interval", cfg["check_interval"])
        if check_interval <= 0:
            raise ConfigError(f"check_interval must be > 0, got {check_interval}")

        temp_low = _as_int("temp_low", cfg["temp_low"])
        temp_high = _as_int("temp_high", cfg["temp_high"])
        if temp_low >= temp_high:
            raise ConfigError(f"temp_low ({temp_low}) must be below temp_high ({temp_high})")

        min_speed = _as_int("min_fan_speed", cfg["min_fan_speed"])
        max_speed = _as_int("max_fan_speed", cfg["max_fan_speed"])
        for key, value in (("min_fan_speed", min_speed), ("max_fan_speed", max_speed)):
            if not 0 <= value <= 100:
                raise ConfigError(f"{key} must be within 0..100, got {value}")
        if min_speed > max_speed:
            raise ConfigError(f"min_fan_speed ({min_speed}) must not exceed max_fan_speed ({max_speed})")
        if min_speed == max_speed and logger:
            logger.warning(f"min_fan_speed equals max_fan_speed; fans stay at {min_speed}%")

        hysteresis = _as_float("hysteresis", cfg["hysteresis"])
        if hysteresis < 0:
            raise ConfigError(f"hysteresis must be >= 0, got {hysteresis}")

        log_level = str(cfg["log_level"]).strip().lower()
        if log_level not in LOG_LEVELS:
            raise ConfigError(f"log_level must be one of {', '.join(LOG_LEVELS)}, got {cfg['log_level']!r}")

        ipmi_timeout = _as_float("ipmi_timeout", cfg["ipmi_timeout"])
        if ipmi_timeout <= 0:
            raise ConfigError(f"ipmi_timeout must be > 0, got {ipmi_timeout}")

        recovery_interval = _as_int("recovery_interval", cfg["recovery_interval"])
        if recovery_interval <= 0:
            raise ConfigError(f"recovery_interval must be > 0, got {recovery_interval}")

        log_file = cfg.get("log_file") or None

        return ControllerConfig(
            host=str(cfg["host"]).strip(),
            user=str(cfg["user"]).strip(),
            password=str(cfg["password"]),
            check_interval=check_interval,
            temp_low=temp_low,
            temp_high=temp_high,
            min_speed=min_speed,
            max_speed=max_speed,
            hysteresis=hysteresis,
            log_level=log_level,
            sensor_filter=_as_filter(cfg.get("sensor_filter") or ()),
            ipmi_timeout=ipmi_timeout,
            recovery_interval=recovery_interval,
            log_file=str(log_file) if log_file else None,
        )
