from datetime import timedelta

import pytest

from scalehttp.interceptor_config import (
    Backoff,
    ConfigError,
    Serving,
    Timeouts,
    parse_duration,
    parse_serving,
    parse_timeouts,
    validate,
)

SERVING_ENV = {
    "KEDA_HTTP_CURRENT_NAMESPACE": "keda",
    "KEDA_HTTP_PROXY_PORT": "8080",
    "KEDA_HTTP_ADMIN_PORT": "9090",
}


@pytest.mark.parametrize(
    "text, expected",
    [
        ("500ms", timedelta(milliseconds=500)),
        ("1s", timedelta(seconds=1)),
        ("1500ms", timedelta(milliseconds=1500)),
        ("60m", timedelta(minutes=60)),
        ("90s", timedelta(seconds=90)),
        ("0", timedelta(0)),
    ],
)
def test_parse_duration_values(text, expected):
    assert parse_duration(text) == expected


def test_parse_duration_compound_and_fraction():
    assert parse_duration("1h30m") == parse_duration("1h") + parse_duration("30m")
    assert parse_duration("1.5s") == parse_duration("1500ms")
    assert parse_duration("-2s") == -parse_duration("2s")


@pytest.mark.parametrize("text", ["", "5", "1x", "s", "1.5", "--1s", "1 s"])
def test_parse_duration_rejects_invalid(text):
    with pytest.raises(ConfigError):
        parse_duration(text)


def test_parse_timeouts_defaults():
    t = parse_timeouts({})
    assert t.connect == timedelta(milliseconds=500)
    assert t.keep_alive == timedelta(seconds=1)
    assert t.workload_replicas == timedelta(milliseconds=1500)
    assert t.force_http2 is False
    assert t.max_idle_conns == 100
    assert t.idle_conn_timeout == timedelta(seconds=90)
    assert t == Timeouts()


def test_parse_timeouts_overrides():
    t = parse_timeouts(
        {
            "KEDA_HTTP_CONNECT_TIMEOUT": "2s",
            "KEDA_HTTP_FORCE_HTTP2": "true",
            "KEDA_HTTP_MAX_IDLE_CONNS": "7",
        }
    )
    assert t.connect == timedelta(seconds=2)
    assert t.force_http2 is True
    assert t.max_idle_conns == 7


def test_parse_timeouts_bad_bool():
    with pytest.raises(ConfigError, match="KEDA_HTTP_FORCE_HTTP2"):
        parse_timeouts({"KEDA_HTTP_FORCE_HTTP2": "yes"})


def test_parse_serving_full():
    s = parse_serving(SERVING_ENV)
    assert s.current_namespace == "keda"
    assert s.proxy_port == 8080
    assert s.admin_port == 9090
    assert s.watch_namespace == ""
    assert s.endpoints_cache_poll_interval_ms == 250
    assert s.config_map_cache_rsync_period == timedelta(minutes=60)


def test_parse_serving_missing_required():
    env = dict(SERVING_ENV)
    del env["KEDA_HTTP_CURRENT_NAMESPACE"]
    with pytest.raises(ConfigError, match="KEDA_HTTP_CURRENT_NAMESPACE"):
        parse_serving(env)


def test_parse_serving_bad_port():
    with pytest.raises(ConfigError, match="KEDA_HTTP_PROXY_PORT"):
        parse_serving({**SERVING_ENV, "KEDA_HTTP_PROXY_PORT": "abc"})


def test_default_backoff():
    t = Timeouts(connect=timedelta(milliseconds=100))
    b = t.default_backoff()
    assert b.duration == t.connect
    assert (b.factor, b.jitter, b.steps) == (2, 0.5, 5)
    assert t.backoff(2, 2, 1).steps == 1


def test_min_total_duration_invariants():
    d = timedelta(milliseconds=10)
    assert Backoff(d, factor=2, steps=1).min_total_duration() == d
    assert Backoff(d, factor=1, steps=4).min_total_duration() == d * 4
    assert Backoff(d, factor=0, steps=3).min_total_duration() == d * 3
    shorter = Backoff(d, factor=2, steps=4).min_total_duration()
    assert Backoff(d, factor=2, steps=5).min_total_duration() > shorter


def test_validate_accepts_defaults():
    s = Serving(current_namespace="ns", proxy_port=1, admin_port=2)
    validate(s, Timeouts(), environ={})
    assert s.endpoints_cache_poll_interval_ms == 250
    assert s.deployment_cache_poll_interval_ms == 250


def test_validate_rejects_both_intervals():
    s = Serving(current_namespace="ns", proxy_port=1, admin_port=2)
    env = {
        "KEDA_HTTP_DEPLOYMENT_CACHE_POLLING_INTERVAL_MS": "100",
        "KEDA_HTTP_ENDPOINTS_CACHE_POLLING_INTERVAL_MS": "100",
    }
    with pytest.raises(ConfigError, match="mutual exclusive"):
        validate(s, Timeouts(), environ=env)


def test_validate_migrates_deprecated_interval():
    s = Serving(
        current_namespace="ns", proxy_port=1, admin_port=2,
        deployment_cache_poll_interval_ms=400,
    )
    validate(s, Timeouts(), environ={"KEDA_HTTP_DEPLOYMENT_CACHE_POLLING_INTERVAL_MS": "400"})
    assert s.endpoints_cache_poll_interval_ms == 400
    assert s.deployment_cache_poll_interval_ms == 0


def test_validate_rejects_interval_longer_than_wait():
    s = Serving(
        current_namespace="ns", proxy_port=1, admin_port=2,
        endpoints_cache_poll_interval_ms=2000,
    )
    with pytest.raises(ConfigError, match="should not be less than"):
        validate(s, Timeouts(workload_replicas=timedelta(milliseconds=1500)), environ={})