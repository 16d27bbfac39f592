"""Terminal HTTP handlers of the interceptor: health probe, static replies and the upstream proxy."""

from __future__ import annotations

import http.client
import logging
import threading
from dataclasses import dataclass, field, replace
from datetime import timedelta
from http import HTTPStatus
from typing import Any, Callable, Iterable, Optional, Protocol, Union
from urllib.parse import SplitResult, urlsplit, urlunsplit
from wsgiref.headers import Headers

from .types import HTTPScaledObject

_LOGGER = logging.getLogger("scalehttp")

_HOP_BY_HOP = frozenset(
    {
        "connection",
        "proxy-connection",
        "keep-alive",
        "proxy-authenticate",
        "proxy-authorization",
        "te",
        "trailer",
        "transfer-encoding",
        "upgrade",
    }
)

_NIL_STREAM = LookupError("context stream is nil")

RoundTripper = Callable[[str, str, dict, bytes], "tuple[int, list[tuple[str, str]], bytes]"]


class _Writer(Protocol):
    headers: Headers

    def write_header(self, status_code: int) -> None: ...

    def write(self, data: bytes) -> int: ...


def status_text(code: int) -> str:
    """Return the reason phrase for an HTTP status code, or "" if unknown."""
    try:
        return HTTPStatus(code).phrase
    except ValueError:
        return ""


@dataclass
class Request:
    """An incoming HTTP request together with the values handlers attach to it."""

    method: str = "GET"
    path: str = "/"
    host: str = ""
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    raw_query: str = ""
    remote_addr: str = ""
    proto: str = "HTTP/1.1"
    context: dict[str, Any] = field(default_factory=dict)

    def header(self, name: str) -> str:
        """Case-insensitive header lookup; "" if the header is absent."""
        wanted = name.lower()
        return next((v for k, v in self.headers.items() if k.lower() == wanted), "")

    def with_context(self, **kwargs: Any) -> "Request":
        """Return a copy of the request with the given context values added."""
        return replace(self, context={**self.context, **kwargs})

    @property
    def logger(self) -> logging.Logger:
        return self.context.get("logger") or _LOGGER

    @property
    def httpso(self) -> Optional[HTTPScaledObject]:
        return self.context.get("httpso")

    @property
    def stream(self) -> Optional[SplitResult]:
        return self.context.get("stream")


@dataclass
class ResponseRecorder:
    """A response writer that keeps everything written to it in memory."""

    status_code: int = 200
    headers: Headers = field(default_factory=lambda: Headers([]))
    body: bytearray = field(default_factory=bytearray)
    header_written: bool = False

    def write_header(self, status_code: int) -> None:
        """Record the status code; later calls are ignored."""
        if self.header_written:
            return
        self.status_code = status_code
        self.header_written = True

    def write(self, data: bytes) -> int:
        """Append data to the body, writing a 200 status first if none was set."""
        if not self.header_written:
            self.write_header(HTTPStatus.OK)
        self.body.extend(data)
        return len(data)

    def body_text(self) -> str:
        """The body decoded as UTF-8."""
        return bytes(self.body).decode("utf-8", errors="replace")


def _named(request: Request, name: str) -> Request:
    return request.with_context(logger=request.logger.getChild(name))


def _namespaced_name(httpso: Optional[HTTPScaledObject]) -> str:
    if httpso is None:
        return ""
    return f"{httpso.metadata.namespace}/{httpso.metadata.name}"


def _write_text(writer: _Writer, text: str, logger: logging.Logger) -> None:
    try:
        writer.write(text.encode())
    except OSError as exc:
        logger.error("write failed", extra={"error": exc})


class Probe:
    """Answers health probes with the result of the latest health check."""

    def __init__(
        self,
        health_checkers: Iterable[Callable[[], object]] = (),
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.health_checkers = list(health_checkers)
        self._logger = logger or _LOGGER
        self._healthy = threading.Event()

    @property
    def healthy(self) -> bool:
        return self._healthy.is_set()

    def serve(self, writer: _Writer, request: Request) -> None:
        """Reply 200 when healthy and 503 otherwise, with the status text as body."""
        request = _named(request, "ProbeHandler")
        code = HTTPStatus.OK if self.healthy else HTTPStatus.SERVICE_UNAVAILABLE
        writer.write_header(code)
        _write_text(writer, status_text(code), request.logger)

    def check(self) -> None:
        """Run the health checkers in order; the first failure marks the probe unhealthy."""
        logger = self._logger.getChild("Probe")
        for checker in self.health_checkers:
            try:
                checker()
            except Exception as exc:  # any failing checker means unhealthy
                self._healthy.clear()
                logger.error("health check function failed", extra={"error": exc})
                return
        self._healthy.set()

    def start(self, stop_event: threading.Event, interval: float = 1.0) -> None:
        """Check health every interval seconds until stop_event is set."""
        while True:
            self.check()
            if stop_event.wait(interval):
                return


class Static:
    """Replies with a fixed status code and logs the failed request."""

    def __init__(self, status_code: int, error: Optional[BaseException] = None) -> None:
        self.status_code = status_code
        self.error = error

    def serve(self, writer: _Writer, request: Request) -> None:
        request = _named(request, "StaticHandler")
        logger = request.logger
        text = status_text(self.status_code)
        stream = request.stream
        logger.error(
            "%s",
            text,
            extra={
                "error": self.error,
                "host": request.host,
                "path": request.path,
                "namespaced_name": _namespaced_name(request.httpso),
                "stream": stream.geturl() if stream is not None else None,
            },
        )
        writer.write_header(self.status_code)
        _write_text(writer, text, logger)


class _HTTPRoundTripper:
    """Sends one request over a fresh connection without following redirects."""

    def __init__(self, timeout: Union[float, timedelta, None] = None) -> None:
        if isinstance(timeout, timedelta):
            timeout = timeout.total_seconds()
        self.timeout = timeout

    def __call__(
        self, method: str, url: str, headers: dict, body: bytes
    ) -> tuple[int, list[tuple[str, str]], bytes]:
        parts = urlsplit(url)
        connection_class = (
            http.client.HTTPSConnection if parts.scheme == "https" else http.client.HTTPConnection
        )
        conn = connection_class(parts.hostname, parts.port, timeout=self.timeout)
        target = parts.path or "/"
        if parts.query:
            target += "?" + parts.query
        try:
            conn.request(method, target, body=body or None, headers=headers)
            response = conn.getresponse()
            return response.status, response.getheaders(), response.read()
        finally:
            conn.close()


def _client_ip(remote_addr: str) -> str:
    host, sep, _ = remote_addr.rpartition(":")
    return host.strip("[]") if sep else ""


def _outgoing_headers(request: Request) -> dict[str, str]:
    out = {
        name: value
        for name, value in request.headers.items()
        if name.lower() not in _HOP_BY_HOP and name.lower() != "host"
    }
    if request.host:
        out["Host"] = request.host
    client_ip = _client_ip(request.remote_addr)
    if client_ip:
        prior = [name for name in out if name.lower() == "x-forwarded-for"]
        values = [out.pop(name) for name in prior]
        out["X-Forwarded-For"] = ", ".join([*values, client_ip])
    return out


class Upstream:
    """Reverse-proxies the request to the stream URL held in its context."""

    def __init__(
        self,
        round_tripper: Optional[RoundTripper] = None,
        timeout: Union[float, timedelta, None] = None,
    ) -> None:
        self.round_tripper = round_tripper or _HTTPRoundTripper(timeout)

    def serve(self, writer: _Writer, request: Request) -> None:
        request = _named(request, "UpstreamHandler")
        stream = request.stream
        if stream is None:
            Static(HTTPStatus.INTERNAL_SERVER_ERROR, _NIL_STREAM).serve(writer, request)
            return

        url = urlunsplit((stream.scheme, stream.netloc, request.path, request.raw_query, ""))
        try:
            status, headers, body = self.round_tripper(
                request.method, url, _outgoing_headers(request), request.body
            )
        except (OSError, http.client.HTTPException, ValueError) as exc:
            Static(HTTPStatus.BAD_GATEWAY, exc).serve(writer, request)
            return

        for name, value in headers:
            if name.lower() not in _HOP_BY_HOP:
                writer.headers.add_header(name, value)
        writer.write_header(status)
        if body:
            try:
                writer.write(body)
            except OSError as exc:
                request.logger.error("write failed", extra={"error": exc})