"""Operator configuration read from the environment."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional

from .interceptor_config import ConfigError, _parse_int32, _process_env, _setting

BASE_PREFIX = "KEDA_HTTP_OPERATOR"


@dataclass
class Interceptor:
    """Static information about the interceptor service."""

    service_name: str
    proxy_port: int
    admin_port: int

    def admin_port_string(self) -> str:
        """The admin port as a decimal string."""
        return str(self.admin_port)


@dataclass
class ExternalScaler:
    """Static information about the external scaler service."""

    service_name: str
    port: int

    def host_name(self, namespace: str) -> str:
        """Return "<service>.<namespace>:<port>"."""
        return f"{self.service_name}.{namespace}:{self.port}"


@dataclass(kw_only=True)
class Base:
    """Settings shared by the operator's controllers."""

    target_pending_requests: int = _setting("TARGET_PENDING_REQUESTS", _parse_int32, "100")
    # Namespace the operator runs in.
    current_namespace: str = _setting("NAMESPACE", str)
    # Namespace to watch; empty means all namespaces.
    watch_namespace: str = _setting("WATCH_NAMESPACE", str)


def _env(environ: Optional[Mapping[str, str]]) -> Mapping[str, str]:
    return os.environ if environ is None else environ


def _int32_or(environ: Mapping[str, str], key: str, default: int) -> int:
    try:
        return _parse_int32(environ.get(key, ""))
    except ValueError:
        return default


def base_from_env(environ: Optional[Mapping[str, str]] = None) -> Base:
    """Read Base, preferring KEDA_HTTP_OPERATOR_-prefixed keys over bare ones."""
    return _process_env(Base, _env(environ), prefix=BASE_PREFIX)


def interceptor_from_env(environ: Optional[Mapping[str, str]] = None) -> Interceptor:
    """Read the interceptor settings; the service name is required."""
    env = _env(environ)
    service_name = env.get("KEDAHTTP_INTERCEPTOR_SERVICE", "")
    if not service_name:
        raise ConfigError("missing 'KEDAHTTP_INTERCEPTOR_SERVICE'")
    return Interceptor(
        service_name=service_name,
        admin_port=_int32_or(env, "KEDAHTTP_INTERCEPTOR_ADMIN_PORT", 8090),
        proxy_port=_int32_or(env, "KEDAHTTP_INTERCEPTOR_PROXY_PORT", 8091),
    )


def external_scaler_from_env(environ: Optional[Mapping[str, str]] = None) -> ExternalScaler:
    """Read the external scaler settings; the service name is required."""
    env = _env(environ)
    service_name = env.get("KEDAHTTP_OPERATOR_EXTERNAL_SCALER_SERVICE", "")
    if not service_name:
        raise ConfigError("missing KEDAHTTP_OPERATOR_EXTERNAL_SCALER_SERVICE")
    return ExternalScaler(
        service_name=service_name,
        port=_int32_or(env, "KEDAHTTP_OPERATOR_EXTERNAL_SCALER_PORT", 8091),
    )