# scalehttp

Building blocks for an HTTP proxy that sits in front of workloads that can be
scaled down to zero. A request is held until the backing service has at least
one active endpoint and is then forwarded. Pending requests are counted per
workload so that an autoscaler can decide how many replicas to run. A
reconciler keeps a `ScaledObject` in step with every `HTTPScaledObject`.

The package has no dependencies outside the standard library.

## Modules

- `scalehttp.types`: the `HTTPScaledObject` resource and its parts
  (`ObjectMeta`, `ScaleTargetRef`, `ReplicaStruct`, `HTTPScaledObjectSpec`,
  `HTTPScaledObjectStatus`, `HTTPScaledObjectCondition`), the enums
  `CreationStatus`, `ConditionReason` and `ConditionStatus`, and
  `GroupVersion` / `GroupResource` with `resource(name)`.
  `HTTPScaledObject.to_dict()` and `HTTPScaledObject.from_dict()` convert to
  and from the JSON form of the API; `from_dict` raises `ValueError` for a
  wrong `kind` or `apiVersion`.
- `scalehttp.interceptor_config`: the `Serving` and `Timeouts` settings, read
  from a mapping of environment variables (default `os.environ`) by
  `parse_serving()` and `parse_timeouts()`, and checked by `validate()`.
  Missing required keys and unparsable values raise `ConfigError`.
  `parse_duration()` reads durations such as `500ms`, `1h30m` or `1.5s`.
  `Timeouts.backoff()` and `Timeouts.default_backoff()` return a `Backoff`,
  whose `min_total_duration()` sums the waits over all steps.
- `scalehttp.operator_config`: the `Base`, `Interceptor` and `ExternalScaler`
  settings, read by `base_from_env()`, `interceptor_from_env()` and
  `external_scaler_from_env()`. `ExternalScaler.host_name(namespace)` gives
  `"<service>.<namespace>:<port>"`.
- `scalehttp.handlers`: `Request` and `ResponseRecorder`, the health `Probe`
  (200 when healthy, 503 otherwise), the `Static` handler that replies with a
  fixed status and its reason phrase, and `Upstream`, which reverse-proxies a
  request to the stream URL held in its context and answers 502 when the
  backend cannot be reached. `status_text(code)` returns a reason phrase.
- `scalehttp.middleware`: `Routing` (routing-table lookup, probe detection by
  user agent with `is_probe()`, 404 for unknown hosts), `Counting` (resizes a
  queue counter by +1 and -1 around each request), `Logging` (one line per
  request in Combined Log Format, see `format_combined_log()`) and
  `LoggingResponseWriter`.
- `scalehttp.forwarding`: `replicas_wait_func()` builds a wait function that
  blocks until a service has an active endpoint and raises `WaitTimeoutError`
  if none appears in time; `ForwardingHandler` waits with it, adds an
  `X-KEDA-HTTP-Cold-Start` header and forwards the request, answering 502 if
  the wait fails. `forwarding_config_from_timeouts()` builds its
  `ForwardingConfig`.
- `scalehttp.conditions`: `create_condition()`, `add_condition()`,
  `save_status()`, `ensure_finalizer()` and `finalize_scaled_object()`.
- `scalehttp.controller`: `HTTPScaledObjectReconciler`, whose `reconcile()`
  finalizes deleted objects, adds the finalizer, migrates the deprecated
  `.spec.host` and `.spec.scaleTargetRef.deployment` fields, and creates or
  patches the object's `ScaledObject`, recording status conditions as it goes.

## Examples

Reading and checking the interceptor configuration:

```python
from scalehttp.interceptor_config import parse_serving, parse_timeouts, validate

environ = {
    "KEDA_HTTP_CURRENT_NAMESPACE": "keda",
    "KEDA_HTTP_PROXY_PORT": "8080",
    "KEDA_HTTP_ADMIN_PORT": "9090",
}
serving = parse_serving(environ)
timeouts = parse_timeouts(environ)
validate(serving, timeouts, environ)
print(timeouts.default_backoff())
```

Serving a health probe into an in-memory response:

```python
from scalehttp.handlers import Probe, Request, ResponseRecorder

probe = Probe([lambda: None])
probe.check()
recorder = ResponseRecorder()
probe.serve(recorder, Request(path="/healthz"))
assert recorder.status_code == 200
assert recorder.body_text() == "OK"
```

## What the package does not do

- It does not listen on any socket: there is no proxy server, admin server
  or command to start one. Handlers and middleware are objects with a
  `serve(writer, request)` method to be called by whatever server you use.
- It does not talk to a cluster. The routing table (an object with
  `route(request)`), the queue counter (`resize(key, delta)`), the endpoints
  cache (`watch(namespace, name)` and `get(namespace, name)`) and the object
  store used by the reconciler (`get`, `create`, `update`, `update_status`,
  `patch`, `delete`, raising `NotFoundError` or `AlreadyExistsError`) are
  supplied by the caller.
- It does not run the reconciler in a loop or schedule retries;
  `reconcile()` handles one object per call.

## Running the tests

```
pip install -e .[test]
pytest
```