"""Interceptor configuration read from the environment."""

from __future__ import annotations

import logging
import os
import re
from dataclasses import MISSING, dataclass, field, fields
from datetime import timedelta
from fractions import Fraction
from typing import Any, Callable, Mapping, Optional

_log = logging.getLogger(__name__)

DEPLOYMENT_POLL_KEY = "KEDA_HTTP_DEPLOYMENT_CACHE_POLLING_INTERVAL_MS"
ENDPOINTS_POLL_KEY = "KEDA_HTTP_ENDPOINTS_CACHE_POLLING_INTERVAL_MS"


class ConfigError(ValueError):
    """Configuration is missing or invalid."""


_UNIT_NANOS = {
    "ns": 1,
    "us": 1_000,
    "\u00b5s": 1_000,
    "\u03bcs": 1_000,
    "ms": 1_000_000,
    "s": 1_000_000_000,
    "m": 60_000_000_000,
    "h": 3_600_000_000_000,
}
_COMPONENT = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|\u00b5s|\u03bcs|ms|s|m|h)")
_DURATION = re.compile(rf"[+-]?(?:{_COMPONENT.pattern})+")


def parse_duration(text: str) -> timedelta:
    """Parse a duration such as "500ms", "1h30m" or "1.5s"."""
    if text in ("0", "+0", "-0"):
        return timedelta(0)
    if not _DURATION.fullmatch(text):
        raise ConfigError(f"invalid duration {text!r}")
    sign = -1 if text.startswith("-") else 1
    nanos = sum(
        (Fraction(number) * _UNIT_NANOS[unit] for number, unit in _COMPONENT.findall(text)),
        Fraction(0),
    )
    return timedelta(microseconds=round(sign * nanos / 1000))


def _format_duration(value: timedelta) -> str:
    micros = value // timedelta(microseconds=1)
    if micros == 0:
        return "0s"
    sign = "-" if micros < 0 else ""
    micros = abs(micros)

    def trimmed(amount: int, unit: int) -> str:
        whole, frac = divmod(amount, unit)
        if not frac:
            return str(whole)
        digits = len(str(unit)) - 1
        return f"{whole}.{str(frac).rjust(digits, '0').rstrip('0')}"

    if micros < 1_000:
        return f"{sign}{micros}\u00b5s"
    if micros < 1_000_000:
        return f"{sign}{trimmed(micros, 1_000)}ms"
    hours, rest = divmod(micros, 3_600_000_000)
    minutes, rest = divmod(rest, 60_000_000)
    out = sign
    if hours:
        out += f"{hours}h"
    if hours or minutes:
        out += f"{minutes}m"
    return out + f"{trimmed(rest, 1_000_000)}s"


def _parse_int(text: str) -> int:
    if not re.fullmatch(r"[+-]?\d+", text):
        raise ConfigError(f"invalid integer {text!r}")
    return int(text)


def _parse_int32(text: str) -> int:
    value = _parse_int(text)
    if not -(2**31) <= value < 2**31:
        raise ConfigError(f"value {text!r} out of range")
    return value


_TRUE = {"1", "t", "T", "TRUE", "true", "True"}
_FALSE = {"0", "f", "F", "FALSE", "false", "False"}


def _parse_bool(text: str) -> bool:
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    raise ConfigError(f"invalid boolean {text!r}")


@dataclass(frozen=True)
class _EnvSpec:
    key: str
    parse: Callable[[str], Any]
    default: str
    required: bool


def _setting(
    key: str,
    parse: Callable[[str], Any],
    env_default: str = "",
    required: bool = False,
) -> Any:
    spec = _EnvSpec(key, parse, env_default, required)
    if required:
        return field(metadata={"env": spec})
    default = parse(env_default) if env_default else parse.__call__("") if parse is str else MISSING
    if default is MISSING:
        raise TypeError(f"setting {key} needs a default")
    return field(default=default, metadata={"env": spec})


def _process_env(cls: type, environ: Mapping[str, str], prefix: str = "") -> Any:
    values: dict[str, Any] = {}
    for f in fields(cls):
        spec: Optional[_EnvSpec] = f.metadata.get("env")
        if spec is None:
            continue
        key = f"{prefix}_{spec.key}" if prefix else spec.key
        value = environ.get(key)
        if value is None and prefix:
            value = environ.get(spec.key)
        if value is None:
            if spec.default:
                value = spec.default
            elif spec.required:
                raise ConfigError(f"required key {key} missing value")
            else:
                continue
        try:
            values[f.name] = spec.parse(value)
        except ValueError as exc:
            raise ConfigError(
                f"assigning {key} to {f.name}: converting {value!r}: {exc}"
            ) from exc
    return cls(**values)


@dataclass(frozen=True)
class Backoff:
    """Retry schedule: start at duration, multiply by factor, for steps tries."""

    duration: timedelta
    factor: float = 0.0
    jitter: float = 0.0
    steps: int = 0

    def min_total_duration(self) -> timedelta:
        """Smallest total time spent waiting over all steps, ignoring jitter."""
        growth = self.factor or 1.0
        return sum(
            (self.duration * growth**step for step in range(self.steps)),
            timedelta(0),
        )


@dataclass(kw_only=True)
class Serving:
    """How the interceptor serves its proxy and admin servers."""

    current_namespace: str = _setting("KEDA_HTTP_CURRENT_NAMESPACE", str, required=True)
    watch_namespace: str = _setting("KEDA_HTTP_WATCH_NAMESPACE", str)
    proxy_port: int = _setting("KEDA_HTTP_PROXY_PORT", _parse_int, required=True)
    admin_port: int = _setting("KEDA_HTTP_ADMIN_PORT", _parse_int, required=True)
    config_map_cache_rsync_period: timedelta = _setting(
        "KEDA_HTTP_SCALER_CONFIG_MAP_INFORMER_RSYNC_PERIOD", parse_duration, "60m"
    )
    # Deprecated in favour of endpoints_cache_poll_interval_ms.
    deployment_cache_poll_interval_ms: int = _setting(DEPLOYMENT_POLL_KEY, _parse_int, "250")
    endpoints_cache_poll_interval_ms: int = _setting(ENDPOINTS_POLL_KEY, _parse_int, "250")


@dataclass(kw_only=True)
class Timeouts:
    """Connection and HTTP timeouts."""

    connect: timedelta = _setting("KEDA_HTTP_CONNECT_TIMEOUT", parse_duration, "500ms")
    keep_alive: timedelta = _setting("KEDA_HTTP_KEEP_ALIVE", parse_duration, "1s")
    response_header: timedelta = _setting("KEDA_RESPONSE_HEADER_TIMEOUT", parse_duration, "500ms")
    workload_replicas: timedelta = _setting("KEDA_CONDITION_WAIT_TIMEOUT", parse_duration, "1500ms")
    force_http2: bool = _setting("KEDA_HTTP_FORCE_HTTP2", _parse_bool, "false")
    max_idle_conns: int = _setting("KEDA_HTTP_MAX_IDLE_CONNS", _parse_int, "100")
    idle_conn_timeout: timedelta = _setting("KEDA_HTTP_IDLE_CONN_TIMEOUT", parse_duration, "90s")
    tls_handshake_timeout: timedelta = _setting(
        "KEDA_HTTP_TLS_HANDSHAKE_TIMEOUT", parse_duration, "10s"
    )
    expect_continue_timeout: timedelta = _setting(
        "KEDA_HTTP_EXPECT_CONTINUE_TIMEOUT", parse_duration, "1s"
    )

    def backoff(self, factor: float, jitter: float, steps: int) -> Backoff:
        """Backoff starting at the connect timeout."""
        return Backoff(duration=self.connect, factor=factor, jitter=jitter, steps=steps)

    def default_backoff(self) -> Backoff:
        """Backoff with factor 2, jitter 0.5 and 5 steps."""
        return self.backoff(2, 0.5, 5)


def parse_serving(environ: Optional[Mapping[str, str]] = None) -> Serving:
    """Read the serving configuration; raise ConfigError if it is invalid."""
    return _process_env(Serving, os.environ if environ is None else environ)


def parse_timeouts(environ: Optional[Mapping[str, str]] = None) -> Timeouts:
    """Read the timeouts configuration; raise ConfigError if it is invalid."""
    return _process_env(Timeouts, os.environ if environ is None else environ)


def validate(
    serving: Serving,
    timeouts: Timeouts,
    environ: Optional[Mapping[str, str]] = None,
    logger: Optional[logging.Logger] = None,
) -> None:
    """Check the configuration, migrating the deprecated poll interval in place."""
    env = os.environ if environ is None else environ
    log = logger or _log
    deployment_set = DEPLOYMENT_POLL_KEY in env
    endpoints_set = ENDPOINTS_POLL_KEY in env
    if deployment_set and endpoints_set:
        raise ConfigError(
            f"{DEPLOYMENT_POLL_KEY} and {ENDPOINTS_POLL_KEY} are mutual exclusive"
        )
    if deployment_set:
        serving.endpoints_cache_poll_interval_ms = serving.deployment_cache_poll_interval_ms
        serving.deployment_cache_poll_interval_ms = 0
        log.warning(
            "%s has been deprecated in favor of %s and wil be removed for v0.9.0",
            DEPLOYMENT_POLL_KEY,
            ENDPOINTS_POLL_KEY,
        )

    interval = timedelta(milliseconds=serving.endpoints_cache_poll_interval_ms)
    if timeouts.workload_replicas < interval:
        raise ConfigError(
            f"workload replicas timeout ({_format_duration(timeouts.workload_replicas)}) "
            f"should not be less than the Endpoints Cache Poll Interval "
            f"({_format_duration(interval)})"
        )