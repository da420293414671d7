"""Project-level configuration, defaults and duration parsing."""

import os
import re
from pathlib import Path
from typing import Union

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

PathLike = Union[str, Path]

CONSOLE_OUTPUT = "-"

# The trace image must provide crictl, strace and the kstrace-helper script
DEFAULT_IMAGE = "quay.io/mwasher/crictl:0.0.2"
DEFAULT_SOCKET_PATH = "/run/crio/crio.sock"
DEFAULT_LOG_LEVEL = "info"
DEFAULT_TRACE_TIMEOUT = "0"
DEFAULT_OUTPUT = "strace-collection"
DEFAULT_REQUEST_TIMEOUT = "30s"
DEFAULT_CONCURRENCY = 8

LOG_LEVELS = ("debug", "info", "warning", "error", "critical")

_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}
_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")


def parse_duration(text: str) -> float:
    """
    Parse a Go-style duration string into seconds.

    Accepts "0", or one or more number+unit pairs such as "300ms", "5s",
    "1m30s" and "1.5h". Negative and malformed durations raise ValueError.
    """
    value = text.strip()
    if value.startswith("+"):
        value = value[1:]
    if value.startswith("-"):
        raise ValueError(f"duration must not be negative: {text!r}")
    if value == "0":
        return 0.0
    if not value:
        raise ValueError(f"invalid duration: {text!r}")

    total = 0.0
    pos = 0
    while pos < len(value):
        match = _DURATION_PART.match(value, pos)
        if not match:
            raise ValueError(f"invalid duration: {text!r}")
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()
    return total


class TraceSettings(BaseModel):
    """Configuration values threaded through the orchestrator and tracers."""

    image: str = DEFAULT_IMAGE
    socket_path: str = DEFAULT_SOCKET_PATH
    trace_timeout: str = DEFAULT_TRACE_TIMEOUT
    output: str = DEFAULT_OUTPUT
    log_level: str = DEFAULT_LOG_LEVEL
    request_timeout: str = DEFAULT_REQUEST_TIMEOUT
    concurrency: int = Field(default=DEFAULT_CONCURRENCY, ge=1)
    poll_interval: float = Field(default=1.0, gt=0)

    @field_validator("image", "socket_path", "output")
    @classmethod
    def _not_empty(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be empty")
        return value

    @field_validator("socket_path")
    @classmethod
    def _absolute_socket(cls, value: str) -> str:
        if not value.startswith("/"):
            raise ValueError("socket path must be an absolute host path")
        return value

    @field_validator("request_timeout")
    @classmethod
    def _positive_timeout(cls, value: str) -> str:
        if parse_duration(value) <= 0:
            raise ValueError("request timeout must be positive")
        return value

    @field_validator("log_level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        level = value.lower()
        if level not in LOG_LEVELS:
            raise ValueError(f"unknown log level {value!r}, expected one of {', '.join(LOG_LEVELS)}")
        return level

    @property
    def console_output(self) -> bool:
        """True when trace output goes to the operator's console."""
        return self.output == CONSOLE_OUTPUT

    @property
    def request_timeout_seconds(self) -> float:
        """Cluster request timeout, also bounding helper pod startup."""
        return parse_duration(self.request_timeout)


def load_settings(env_file: PathLike | None = None, **overrides) -> TraceSettings:
    """
    Build settings from defaults, the environment and explicit overrides.

    Args:
        env_file: Optional .env file loaded before reading KSTRACE_* variables.
        **overrides: Values taking precedence over the environment. None values are ignored.

    Returns:
        Validated TraceSettings.
    """
    load_dotenv(env_file or Path.cwd() / ".env")

    values = {
        "image": os.getenv("KSTRACE_IMAGE", DEFAULT_IMAGE),
        "socket_path": os.getenv("KSTRACE_SOCKET_PATH", DEFAULT_SOCKET_PATH),
        "trace_timeout": os.getenv("KSTRACE_TRACE_TIMEOUT", DEFAULT_TRACE_TIMEOUT),
        "output": os.getenv("KSTRACE_OUTPUT", DEFAULT_OUTPUT),
        "log_level": os.getenv("KSTRACE_LOG_LEVEL", DEFAULT_LOG_LEVEL),
        "request_timeout": os.getenv("KSTRACE_REQUEST_TIMEOUT", DEFAULT_REQUEST_TIMEOUT),
        "concurrency": os.getenv("KSTRACE_CONCURRENCY", str(DEFAULT_CONCURRENCY)),
    }
    values.update({key: value for key, value in overrides.items() if value is not None})
    return TraceSettings(**values)
