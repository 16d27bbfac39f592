"""Forwarding of proxied requests once the target workload has active endpoints."""

from __future__ import annotations

import logging
import queue
import time
from dataclasses import dataclass, field
from datetime import timedelta
from http import HTTPStatus
from typing import Any, Callable, Optional, Protocol

from .handlers import Request, RoundTripper, Static, Upstream
from .interceptor_config import Timeouts

_LOGGER = logging.getLogger("scalehttp")

COLD_START_HEADER = "X-KEDA-HTTP-Cold-Start"

WaitFunc = Callable[[Optional[float], str, str], bool]
"""Wait until a workload can serve: (timeout in seconds, namespace, service) -> cold start."""


class WaitTimeoutError(TimeoutError):
    """The workload did not reach one or more replicas in time."""


@dataclass
class Endpoints:
    """The network endpoints of a service, grouped into subsets of addresses."""

    namespace: str = ""
    name: str = ""
    subsets: list[list[str]] = field(default_factory=list)


@dataclass(frozen=True)
class WatchEvent:
    """A change reported by a watch: its type and the changed object."""

    type: str
    object: Any


class _Watcher(Protocol):
    events: "queue.Queue[WatchEvent]"

    def stop(self) -> None: ...


class _EndpointsCache(Protocol):
    def watch(self, namespace: str, name: str) -> _Watcher: ...

    def get(self, namespace: str, name: str) -> Endpoints: ...


def active_endpoints(endpoints: Endpoints) -> int:
    """Total number of addresses across all subsets."""
    return sum(len(addresses) for addresses in endpoints.subsets)


def replicas_wait_func(
    endpoints_cache: _EndpointsCache, logger: Optional[logging.Logger] = None
) -> WaitFunc:
    """Build a wait function that blocks until the service has an active endpoint.

    The returned function answers whether the request is a cold start: False when
    endpoints were already active, True when it had to wait for them. It raises
    WaitTimeoutError if none appear within the timeout.
    """
    log = logger or _LOGGER

    def wait(timeout: Optional[float], namespace: str, name: str) -> bool:
        # Watch before reading the current state so that no event is missed.
        watcher = endpoints_cache.watch(namespace, name)
        try:
            try:
                endpoints = endpoints_cache.get(namespace, name)
            except Exception as exc:  # the cache's own failure type is not fixed
                raise LookupError(
                    f"error getting state for endpoints {namespace}/{name}: {exc}"
                ) from exc
            if active_endpoints(endpoints) > 0:
                return False

            deadline = None if timeout is None else time.monotonic() + timeout
            while True:
                remaining = None if deadline is None else deadline - time.monotonic()
                if remaining is not None and remaining <= 0:
                    raise _timed_out()
                try:
                    event = watcher.events.get(timeout=remaining)
                except queue.Empty:
                    raise _timed_out() from None
                if not isinstance(event.object, Endpoints):
                    log.info("Didn't get a endpoints back in event")
                elif active_endpoints(event.object) > 0:
                    return True
        finally:
            watcher.stop()

    return wait


def _timed_out() -> WaitTimeoutError:
    return WaitTimeoutError(
        "context marked done while waiting for workload reach > 0 replicas: "
        "context deadline exceeded"
    )


@dataclass
class ForwardingConfig:
    """Timeouts and connection settings used when forwarding a request."""

    wait_timeout: timedelta = timedelta(0)
    resp_header_timeout: timedelta = timedelta(0)
    force_attempt_http2: bool = False
    max_idle_conns: int = 0
    idle_conn_timeout: timedelta = timedelta(0)
    tls_handshake_timeout: timedelta = timedelta(0)
    expect_continue_timeout: timedelta = timedelta(0)


def forwarding_config_from_timeouts(timeouts: Timeouts) -> ForwardingConfig:
    """Take the forwarding settings from the interceptor's timeouts."""
    return ForwardingConfig(
        wait_timeout=timeouts.workload_replicas,
        resp_header_timeout=timeouts.response_header,
        force_attempt_http2=timeouts.force_http2,
        max_idle_conns=timeouts.max_idle_conns,
        idle_conn_timeout=timeouts.idle_conn_timeout,
        tls_handshake_timeout=timeouts.tls_handshake_timeout,
        expect_continue_timeout=timeouts.expect_continue_timeout,
    )


class ForwardingHandler:
    """Waits for the target workload to be ready, then proxies the request to it."""

    def __init__(
        self,
        wait_func: WaitFunc,
        config: ForwardingConfig,
        logger: Optional[logging.Logger] = None,
        round_tripper: Optional[RoundTripper] = None,
    ) -> None:
        self.wait_func = wait_func
        self.config = config
        self._logger = logger or _LOGGER
        header_timeout = config.resp_header_timeout.total_seconds() or None
        self._upstream = Upstream(round_tripper, timeout=header_timeout)

    def serve(self, writer: Any, request: Request) -> None:
        httpso = request.httpso
        if httpso is None:
            Static(
                HTTPStatus.INTERNAL_SERVER_ERROR,
                LookupError("context HTTPScaledObject is nil"),
            ).serve(writer, request)
            return

        try:
            is_cold_start = self.wait_func(
                self.config.wait_timeout.total_seconds(),
                httpso.metadata.namespace,
                httpso.spec.scale_target_ref.service,
            )
        except Exception as exc:  # any wait failure means the backend is unavailable
            self._logger.error(
                "wait function failed, not forwarding request", extra={"error": exc}
            )
            writer.write_header(HTTPStatus.BAD_GATEWAY)
            try:
                writer.write(f"error on backend ({exc})".encode())
            except OSError as write_exc:
                self._logger.error(
                    "could not write error response to client", extra={"error": write_exc}
                )
            return

        writer.headers.add_header(COLD_START_HEADER, "true" if is_cold_start else "false")
        self._upstream.serve(writer, request)