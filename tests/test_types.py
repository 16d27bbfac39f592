import pytest

from scalehttp.types import (
    ConditionReason,
    ConditionStatus,
    CreationStatus,
    GroupVersion,
    HTTPScaledObject,
    HTTPScaledObjectCondition,
    HTTPScaledObjectSpec,
    HTTPScaledObjectStatus,
    ObjectMeta,
    ReplicaStruct,
    ScaleTargetRef,
    resource,
)


def _sample() -> HTTPScaledObject:
    return HTTPScaledObject(
        metadata=ObjectMeta(name="testapp", namespace="testns", finalizers=["f"]),
        spec=HTTPScaledObjectSpec(
            hosts=["myhost1.com", "myhost2.com"],
            path_prefixes=["/api"],
            scale_target_ref=ScaleTargetRef(
                name="testapp", kind="Deployment", api_version="apps/v1",
                service="testapp", port=8081,
            ),
            replicas=ReplicaStruct(min=1, max=5),
            target_pending_requests=123,
            cooldown_period=30,
        ),
        status=HTTPScaledObjectStatus(
            conditions=[
                HTTPScaledObjectCondition(
                    type=CreationStatus.CREATED,
                    status=ConditionStatus.TRUE,
                    timestamp="2024-01-01T00:00:00Z",
                    reason=ConditionReason.APP_SCALED_OBJECT_CREATED,
                    message="App ScaledObject created",
                )
            ]
        ),
    )


def test_resource_is_group_qualified():
    gr = resource("httpscaledobjects")
    assert gr.group == "http.keda.sh"
    assert gr.resource == "httpscaledobjects"


def test_group_version_with_resource_keeps_group():
    gv = GroupVersion("http.keda.sh", "v1alpha1")
    assert gv.with_resource("x").group == gv.group
    assert str(gv) == "http.keda.sh/v1alpha1"


def test_round_trip():
    obj = _sample()
    assert HTTPScaledObject.from_dict(obj.to_dict()) == obj


def test_to_dict_uses_api_field_names():
    data = _sample().to_dict()
    assert data["kind"] == "HTTPScaledObject"
    assert data["spec"]["scaledownPeriod"] == 30
    assert data["spec"]["pathPrefixes"] == ["/api"]
    assert data["spec"]["scaleTargetRef"]["port"] == 8081
    assert data["status"]["conditions"][0]["type"] == "Created"


def test_to_dict_omits_empty_optional_fields():
    data = HTTPScaledObject().to_dict()
    spec = data["spec"]
    assert "host" not in spec
    assert "hosts" not in spec
    assert "replicas" not in spec
    assert "apiVersion" not in spec["scaleTargetRef"]
    assert spec["scaleTargetRef"]["deployment"] == ""
    assert data["status"] == {}


def test_from_dict_parses_enums():
    obj = HTTPScaledObject.from_dict(_sample().to_dict())
    cond = obj.status.conditions[0]
    assert cond.type is CreationStatus.CREATED
    assert cond.status is ConditionStatus.TRUE


def test_from_dict_rejects_wrong_kind():
    with pytest.raises(ValueError):
        HTTPScaledObject.from_dict({"kind": "ScaledObject"})


def test_from_dict_rejects_unknown_condition_type():
    data = _sample().to_dict()
    data["status"]["conditions"][0]["type"] = "Bogus"
    with pytest.raises(ValueError):
        HTTPScaledObject.from_dict(data)