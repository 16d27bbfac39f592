import pytest

from scalehttp.interceptor_config import ConfigError
from scalehttp.operator_config import (
    ExternalScaler,
    Interceptor,
    base_from_env,
    external_scaler_from_env,
    interceptor_from_env,
)


def test_external_scaler_host_name():
    sc = ExternalScaler(service_name="TestExternalScalerHostNameSvc", port=8098)
    ns = "testns"
    hst = sc.host_name(ns)
    spl = hst.split(".")
    assert len(spl) == 2
    assert spl[0] == sc.service_name
    assert spl[1] == f"{ns}:{sc.port}"


def test_admin_port_string():
    assert Interceptor(service_name="svc", proxy_port=8091, admin_port=8090).admin_port_string() == "8090"


def test_base_defaults():
    base = base_from_env({})
    assert base.target_pending_requests == 100
    assert base.current_namespace == ""
    assert base.watch_namespace == ""


def test_base_prefixed_key_wins():
    env = {"KEDA_HTTP_OPERATOR_WATCH_NAMESPACE": "a", "WATCH_NAMESPACE": "b"}
    assert base_from_env(env).watch_namespace == "a"


def test_base_falls_back_to_bare_key():
    env = {"WATCH_NAMESPACE": "b", "NAMESPACE": "keda"}
    base = base_from_env(env)
    assert base.watch_namespace == "b"
    assert base.current_namespace == "keda"


@pytest.mark.parametrize("value", ["abc", "3000000000"])
def test_base_rejects_bad_target(value):
    with pytest.raises(ConfigError):
        base_from_env({"KEDA_HTTP_OPERATOR_TARGET_PENDING_REQUESTS": value})


def test_interceptor_missing_service():
    with pytest.raises(ConfigError, match="KEDAHTTP_INTERCEPTOR_SERVICE"):
        interceptor_from_env({})


def test_interceptor_defaults_and_fallback():
    icpt = interceptor_from_env(
        {"KEDAHTTP_INTERCEPTOR_SERVICE": "svc", "KEDAHTTP_INTERCEPTOR_ADMIN_PORT": "nope"}
    )
    assert icpt.service_name == "svc"
    assert icpt.admin_port == 8090
    assert icpt.proxy_port == 8091


def test_interceptor_explicit_ports():
    icpt = interceptor_from_env(
        {
            "KEDAHTTP_INTERCEPTOR_SERVICE": "svc",
            "KEDAHTTP_INTERCEPTOR_ADMIN_PORT": "1234",
            "KEDAHTTP_INTERCEPTOR_PROXY_PORT": "4321",
        }
    )
    assert (icpt.admin_port, icpt.proxy_port) == (1234, 4321)


def test_external_scaler_missing_service():
    with pytest.raises(ConfigError, match="KEDAHTTP_OPERATOR_EXTERNAL_SCALER_SERVICE"):
        external_scaler_from_env({})


def test_external_scaler_from_env():
    sc = external_scaler_from_env(
        {
            "KEDAHTTP_OPERATOR_EXTERNAL_SCALER_SERVICE": "scaler",
            "KEDAHTTP_OPERATOR_EXTERNAL_SCALER_PORT": "9090",
        }
    )
    assert sc == ExternalScaler(service_name="scaler", port=9090)
    assert external_scaler_from_env({"KEDAHTTP_OPERATOR_EXTERNAL_SCALER_SERVICE": "s"}).port == 8091