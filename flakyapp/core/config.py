"""Environment-backed settings for flakyapp.

Values come from the process environment (and an optional ``.env`` file).
Command-line flags parsed in ``flakyapp.main`` are passed to
``load_settings`` as overrides and win over the environment.
"""

import re
from typing import Any, Literal

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from flakyapp.core.exceptions import ConfigurationError

# Seconds per unit for Go-style duration strings ("10s", "500ms", "1m30s").
_DURATION_UNITS: dict[str, float] = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}

_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")


def parse_duration(value: Any) -> float:
    """Convert a duration to seconds.

    Accepts numbers (already seconds), numeric strings, and unit strings such
    as ``"10s"``, ``"250ms"`` or ``"1m30s"``.

    Raises:
        ValueError: If the value is negative or not a recognised duration.
    """
    if isinstance(value, bool):
        raise ValueError(f"invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        seconds = float(value)
    else:
        text = str(value).strip()
        try:
            seconds = float(text)
        except ValueError:
            seconds = _parse_unit_duration(text)
    if seconds < 0:
        raise ValueError(f"duration must not be negative: {value!r}")
    return seconds


def _parse_unit_duration(text: str) -> float:
    pos = 0
    total = 0.0
    for match in _DURATION_PART.finditer(text):
        if match.start() != pos:
            break
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()
    if pos == 0 or pos != len(text):
        raise ValueError(f"invalid duration: {text!r}")
    return total


class Settings(BaseSettings):
    """Runtime configuration.

    Attributes:
        SUCCESS_RATE: Percentage (0-100) of application requests that succeed.
        LISTEN_HOST: Interface both listeners bind to.
        SERVER_PORT: Application listener port.
        METRICS_PORT: Metrics/health listener port.
        STOP_TIMEOUT: Upper bound, in seconds, on each listener's graceful drain.
        SETTLE_DELAY: Seconds between reporting unready and closing the sockets.
        READ_TIMEOUT: Idle timeout for keep-alive connections, in seconds.
        WRITE_TIMEOUT: Deadline for a handler to produce its response, in seconds.
        READ_HEADER_TIMEOUT: Tighter idle timeout for the application listener.
        PROCESSING_DELAY: Artificial latency added to every application request.
        READY_WHEN: ``listening`` reports ready once both sockets are bound,
            ``startup`` reports ready before binding.
        LOG_LEVEL: Root log level.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    SUCCESS_RATE: int = Field(ge=0, le=100)

    LISTEN_HOST: str = "0.0.0.0"
    SERVER_PORT: int = Field(default=8080, ge=0, le=65535)
    METRICS_PORT: int = Field(default=8000, ge=0, le=65535)

    STOP_TIMEOUT: float = 10.0
    SETTLE_DELAY: float = 5.0
    READ_TIMEOUT: float = 15.0
    WRITE_TIMEOUT: float = 15.0
    READ_HEADER_TIMEOUT: float | None = 5.0
    PROCESSING_DELAY: float = 0.005

    READY_WHEN: Literal["listening", "startup"] = "listening"
    LOG_LEVEL: str = "INFO"

    @field_validator(
        "STOP_TIMEOUT",
        "SETTLE_DELAY",
        "READ_TIMEOUT",
        "WRITE_TIMEOUT",
        "PROCESSING_DELAY",
        mode="before",
    )
    @classmethod
    def _parse_duration(cls, value: Any) -> float:
        return parse_duration(value)

    @field_validator("READ_HEADER_TIMEOUT", mode="before")
    @classmethod
    def _parse_optional_duration(cls, value: Any) -> float | None:
        if value is None or value == "":
            return None
        return parse_duration(value)

    @field_validator("LOG_LEVEL")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"unknown log level: {value!r}")
        return level


def load_settings(**overrides: Any) -> Settings:
    """Build ``Settings`` from the environment plus explicit overrides.

    Overrides whose value is ``None`` are ignored so that unset command-line
    flags fall through to the environment.

    Raises:
        ConfigurationError: If any value is missing or invalid.
    """
    values = {key: value for key, value in overrides.items() if value is not None}
    try:
        return Settings(**values)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        raise ConfigurationError(f"could not load settings: {problems}") from e
