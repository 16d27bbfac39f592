"""Request middleware of the interceptor: routing, request counting and access logging."""

from __future__ import annotations

import logging
import re
from datetime import datetime
from typing import Any, Optional
from urllib.parse import SplitResult, urlsplit

from .handlers import Request, Static, _named, _namespaced_name
from .types import HTTPScaledObject

COMBINED_LOG_BLANK_VALUE = "-"

_MONTHS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")
_KUBE_PROBE = re.compile(r"(^|\s)kube-probe/")
_GOOGLE_HC = re.compile(r"(^|\s)GoogleHC/")


def _dispatch(handler: Any, writer: Any, request: Request) -> None:
    serve = getattr(handler, "serve", None)
    (serve or handler)(writer, request)


class LoggingResponseWriter:
    """Wraps a response writer and records the status code and bytes written."""

    def __init__(self, downstream: Any) -> None:
        self.downstream = downstream
        self.bytes_written = 0
        self.status_code = 0

    @property
    def headers(self) -> Any:
        return self.downstream.headers

    def write(self, data: bytes) -> int:
        written = self.downstream.write(data)
        flush = getattr(self.downstream, "flush", None)
        if callable(flush):
            flush()
        self.bytes_written += written
        return written

    def write_header(self, status_code: int) -> None:
        self.downstream.write_header(status_code)
        self.status_code = status_code


class Counting:
    """Counts a pending request for its HTTPScaledObject while it is being served."""

    def __init__(self, queue_counter: Any, upstream_handler: Any) -> None:
        self.queue_counter = queue_counter
        self.upstream_handler = upstream_handler

    def serve(self, writer: Any, request: Request) -> None:
        request = _named(request, "CountingMiddleware")
        logger = request.logger
        key = _namespaced_name(request.httpso)
        counted = self._resize(logger, key, +1, "incrementing")
        try:
            _dispatch(self.upstream_handler, writer, request)
        finally:
            if counted:
                self._resize(logger, key, -1, "decrementing")

    def _resize(self, logger: logging.Logger, key: str, delta: int, verb: str) -> bool:
        try:
            self.queue_counter.resize(key, delta)
        except Exception as exc:  # a counter failure must not fail the request
            logger.error("error %s queue counter", verb, extra={"error": exc, "key": key})
            return False
        return True


def format_combined_log(
    request: Request, status_code: int, bytes_written: int, started: datetime
) -> str:
    """Format one access-log line in the Combined Log Format."""
    ts = started if started.tzinfo is not None else started.astimezone()
    stamp = f"{ts:%d}/{_MONTHS[ts.month - 1]}/{ts:%Y:%H:%M:%S %z}"
    blank = COMBINED_LOG_BLANK_VALUE
    return (
        f"{request.remote_addr} {blank} {blank} [{stamp}] "
        f'"{request.method} {request.path} {request.proto}" {status_code} {bytes_written} '
        f'"{request.header("Referer")}" "{request.header("User-Agent")}"'
    )


class Logging:
    """Writes an access-log line for every request."""

    def __init__(self, logger: logging.Logger, upstream_handler: Any) -> None:
        self.logger = logger
        self.upstream_handler = upstream_handler

    def serve(self, writer: Any, request: Request) -> None:
        request = request.with_context(logger=self.logger.getChild("LoggingMiddleware"))
        recorder = LoggingResponseWriter(writer)
        started = datetime.now().astimezone()
        try:
            _dispatch(self.upstream_handler, recorder, request)
        finally:
            request.logger.info(
                "%s",
                format_combined_log(
                    request, recorder.status_code, recorder.bytes_written, started
                ),
            )


def is_probe(user_agent: str) -> bool:
    """Whether the user agent belongs to a kubelet or Google health check."""
    return bool(_KUBE_PROBE.search(user_agent) or _GOOGLE_HC.search(user_agent))


class Routing:
    """Looks the request up in the routing table and sends it on to its workload."""

    def __init__(self, routing_table: Any, probe_handler: Any, upstream_handler: Any) -> None:
        self.routing_table = routing_table
        self.probe_handler = probe_handler
        self.upstream_handler = upstream_handler

    def serve(self, writer: Any, request: Request) -> None:
        request = _named(request, "RoutingMiddleware")

        httpso = self.routing_table.route(request)
        if httpso is None:
            if self.probe_handler is not None and is_probe(request.header("User-Agent")):
                _dispatch(self.probe_handler, writer, request)
                return
            Static(404).serve(writer, request)
            return
        request = request.with_context(httpso=httpso)

        try:
            stream = self.stream_for(httpso)
        except ValueError as exc:
            Static(500, exc).serve(writer, request)
            return
        request = request.with_context(stream=stream)

        _dispatch(self.upstream_handler, writer, request)

    def stream_for(self, httpso: HTTPScaledObject) -> SplitResult:
        """The URL of the service behind the HTTPScaledObject; ValueError if invalid."""
        ref = httpso.spec.scale_target_ref
        stream = urlsplit(f"http://{ref.service}.{httpso.metadata.namespace}:{ref.port}")
        if stream.port is None:
            raise ValueError(f"missing port in {stream.geturl()!r}")
        return stream


def _optional(value: Optional[Any]) -> Optional[Any]:
    return value