"""Resource types of the HTTPScaledObject API (group http.keda.sh, version v1alpha1)."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Optional


@dataclass(frozen=True)
class GroupResource:
    """A resource qualified by its API group."""

    group: str
    resource: str

    def __str__(self) -> str:
        return f"{self.resource}.{self.group}" if self.group else self.resource


@dataclass(frozen=True)
class GroupVersion:
    """An API group together with one of its versions."""

    group: str
    version: str

    def with_resource(self, resource: str) -> GroupResource:
        """Qualify an unqualified resource name with this group."""
        return GroupResource(self.group, resource)

    def __str__(self) -> str:
        return f"{self.group}/{self.version}" if self.group else self.version


SCHEME_GROUP_VERSION = GroupVersion(group="http.keda.sh", version="v1alpha1")
KIND = "HTTPScaledObject"


def resource(name: str) -> GroupResource:
    """Return the group-qualified resource for an unqualified resource name."""
    return SCHEME_GROUP_VERSION.with_resource(name)


class CreationStatus(str, Enum):
    """Creation status of the resources that back an HTTPScaledObject."""

    CREATED = "Created"
    TERMINATED = "Terminated"
    ERROR = "Error"
    PENDING = "Pending"
    TERMINATING = "Terminating"
    UNKNOWN = "Unknown"
    READY = "Ready"


class ConditionReason(str, Enum):
    """Why a condition made its last transition."""

    ERROR_CREATING_APP_SCALED_OBJECT = "ErrorCreatingAppScaledObject"
    APP_SCALED_OBJECT_CREATED = "AppScaledObjectCreated"
    TERMINATING_RESOURCES = "TerminatingResources"
    APP_SCALED_OBJECT_TERMINATED = "AppScaledObjectTerminated"
    APP_SCALED_OBJECT_TERMINATION_ERROR = "AppScaledObjectTerminationError"
    PENDING_CREATION = "PendingCreation"
    HTTP_SCALED_OBJECT_IS_READY = "HTTPScaledObjectIsReady"


class ConditionStatus(str, Enum):
    """Status of a condition."""

    TRUE = "True"
    FALSE = "False"
    UNKNOWN = "Unknown"


@dataclass
class ObjectMeta:
    """Identity and bookkeeping data of a stored object."""

    name: str = ""
    namespace: str = ""
    resource_version: str = ""
    generation: int = 0
    labels: dict[str, str] = field(default_factory=dict)
    finalizers: list[str] = field(default_factory=list)
    deletion_timestamp: Optional[str] = None


@dataclass
class ScaleTargetRef:
    """The workload to scale and the service to route to."""

    deployment: str = ""
    name: str = ""
    api_version: str = ""
    kind: str = ""
    service: str = ""
    port: int = 0


@dataclass
class ReplicaStruct:
    """Minimum and maximum replica counts of the workload."""

    min: Optional[int] = None
    max: Optional[int] = None


@dataclass
class HTTPScaledObjectSpec:
    """Desired state of an HTTPScaledObject."""

    host: Optional[str] = None
    hosts: Optional[list[str]] = None
    path_prefixes: Optional[list[str]] = None
    scale_target_ref: ScaleTargetRef = field(default_factory=ScaleTargetRef)
    replicas: Optional[ReplicaStruct] = None
    target_pending_requests: Optional[int] = None
    cooldown_period: Optional[int] = None


@dataclass
class HTTPScaledObjectCondition:
    """One recorded condition of an HTTPScaledObject."""

    type: CreationStatus
    status: ConditionStatus
    timestamp: str = ""
    reason: Optional[ConditionReason] = None
    message: str = ""


@dataclass
class HTTPScaledObjectStatus:
    """Observed state of an HTTPScaledObject."""

    conditions: list[HTTPScaledObjectCondition] = field(default_factory=list)


@dataclass
class HTTPScaledObject:
    """An HTTP-scaled workload: where to route requests and how to scale."""

    metadata: ObjectMeta = field(default_factory=ObjectMeta)
    spec: HTTPScaledObjectSpec = field(default_factory=HTTPScaledObjectSpec)
    status: HTTPScaledObjectStatus = field(default_factory=HTTPScaledObjectStatus)

    def to_dict(self) -> dict[str, Any]:
        """Serialise to the JSON-compatible form used by the API."""
        return {
            "apiVersion": str(SCHEME_GROUP_VERSION),
            "kind": KIND,
            "metadata": _meta_to_dict(self.metadata),
            "spec": _spec_to_dict(self.spec),
            "status": _status_to_dict(self.status),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "HTTPScaledObject":
        """Build an object from its API form; raise ValueError on bad data."""
        kind = data.get("kind")
        if kind is not None and kind != KIND:
            raise ValueError(f"unexpected kind {kind!r}, expected {KIND!r}")
        api_version = data.get("apiVersion")
        if api_version is not None and api_version != str(SCHEME_GROUP_VERSION):
            raise ValueError(f"unexpected apiVersion {api_version!r}")
        return cls(
            metadata=_meta_from_dict(data.get("metadata") or {}),
            spec=_spec_from_dict(data.get("spec") or {}),
            status=_status_from_dict(data.get("status") or {}),
        )


@dataclass
class HTTPScaledObjectList:
    """A list of HTTPScaledObjects."""

    items: list[HTTPScaledObject] = field(default_factory=list)
    resource_version: str = ""


def _meta_to_dict(meta: ObjectMeta) -> dict[str, Any]:
    out: dict[str, Any] = {}
    if meta.name:
        out["name"] = meta.name
    if meta.namespace:
        out["namespace"] = meta.namespace
    if meta.resource_version:
        out["resourceVersion"] = meta.resource_version
    if meta.generation:
        out["generation"] = meta.generation
    if meta.labels:
        out["labels"] = dict(meta.labels)
    if meta.finalizers:
        out["finalizers"] = list(meta.finalizers)
    if meta.deletion_timestamp is not None:
        out["deletionTimestamp"] = meta.deletion_timestamp
    return out


def _meta_from_dict(data: Mapping[str, Any]) -> ObjectMeta:
    return ObjectMeta(
        name=data.get("name", ""),
        namespace=data.get("namespace", ""),
        resource_version=data.get("resourceVersion", ""),
        generation=int(data.get("generation", 0)),
        labels=dict(data.get("labels") or {}),
        finalizers=list(data.get("finalizers") or []),
        deletion_timestamp=data.get("deletionTimestamp"),
    )


def _target_to_dict(ref: ScaleTargetRef) -> dict[str, Any]:
    out: dict[str, Any] = {"deployment": ref.deployment, "name": ref.name}
    if ref.api_version:
        out["apiVersion"] = ref.api_version
    if ref.kind:
        out["kind"] = ref.kind
    out["service"] = ref.service
    out["port"] = ref.port
    return out


def _target_from_dict(data: Mapping[str, Any]) -> ScaleTargetRef:
    return ScaleTargetRef(
        deployment=data.get("deployment", ""),
        name=data.get("name", ""),
        api_version=data.get("apiVersion", ""),
        kind=data.get("kind", ""),
        service=data.get("service", ""),
        port=int(data.get("port", 0)),
    )


def _optional_int(value: Any) -> Optional[int]:
    return None if value is None else int(value)


def _spec_to_dict(spec: HTTPScaledObjectSpec) -> dict[str, Any]:
    out: dict[str, Any] = {}
    if spec.host is not None:
        out["host"] = spec.host
    if spec.hosts:
        out["hosts"] = list(spec.hosts)
    if spec.path_prefixes:
        out["pathPrefixes"] = list(spec.path_prefixes)
    out["scaleTargetRef"] = _target_to_dict(spec.scale_target_ref)
    if spec.replicas is not None:
        replicas: dict[str, Any] = {}
        if spec.replicas.min is not None:
            replicas["min"] = spec.replicas.min
        if spec.replicas.max is not None:
            replicas["max"] = spec.replicas.max
        out["replicas"] = replicas
    if spec.target_pending_requests is not None:
        out["targetPendingRequests"] = spec.target_pending_requests
    if spec.cooldown_period is not None:
        out["scaledownPeriod"] = spec.cooldown_period
    return out


def _spec_from_dict(data: Mapping[str, Any]) -> HTTPScaledObjectSpec:
    replicas_data = data.get("replicas")
    replicas = None
    if replicas_data is not None:
        replicas = ReplicaStruct(
            min=_optional_int(replicas_data.get("min")),
            max=_optional_int(replicas_data.get("max")),
        )
    hosts = data.get("hosts")
    prefixes = data.get("pathPrefixes")
    return HTTPScaledObjectSpec(
        host=data.get("host"),
        hosts=list(hosts) if hosts is not None else None,
        path_prefixes=list(prefixes) if prefixes is not None else None,
        scale_target_ref=_target_from_dict(data.get("scaleTargetRef") or {}),
        replicas=replicas,
        target_pending_requests=_optional_int(data.get("targetPendingRequests")),
        cooldown_period=_optional_int(data.get("scaledownPeriod")),
    )


def _condition_to_dict(cond: HTTPScaledObjectCondition) -> dict[str, Any]:
    out: dict[str, Any] = {
        "timestamp": cond.timestamp,
        "type": cond.type.value,
        "status": cond.status.value,
    }
    if cond.reason is not None:
        out["reason"] = cond.reason.value
    if cond.message:
        out["message"] = cond.message
    return out


def _condition_from_dict(data: Mapping[str, Any]) -> HTTPScaledObjectCondition:
    reason = data.get("reason")
    return HTTPScaledObjectCondition(
        type=CreationStatus(data["type"]),
        status=ConditionStatus(data["status"]),
        timestamp=data.get("timestamp", ""),
        reason=ConditionReason(reason) if reason else None,
        message=data.get("message", ""),
    )


def _status_to_dict(status: HTTPScaledObjectStatus) -> dict[str, Any]:
    if not status.conditions:
        return {}
    return {"conditions": [_condition_to_dict(c) for c in status.conditions]}


def _status_from_dict(data: Mapping[str, Any]) -> HTTPScaledObjectStatus:
    return HTTPScaledObjectStatus(
        conditions=[_condition_from_dict(c) for c in data.get("conditions") or []]
    )