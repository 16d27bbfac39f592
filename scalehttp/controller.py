"""Reconciliation of HTTPScaledObjects into KEDA ScaledObjects."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Optional, Protocol

from .conditions import (
    add_condition,
    create_condition,
    ensure_finalizer,
    finalize_scaled_object,
    save_status,
)
from .operator_config import Base, ExternalScaler
from .types import (
    KIND,
    SCHEME_GROUP_VERSION,
    ConditionReason,
    ConditionStatus,
    CreationStatus,
    HTTPScaledObject,
    ObjectMeta,
)

_LOGGER = logging.getLogger("scalehttp")

GET_ERROR_REQUEUE_AFTER = timedelta(milliseconds=500)
"""How long to wait before retrying when fetching an HTTPScaledObject failed."""

DEPLOYMENT_KIND = "Deployment"
DEPLOYMENT_API_VERSION = "apps/v1"
EXTERNAL_PUSH_TRIGGER = "external-push"


class NotFoundError(LookupError):
    """The requested object does not exist."""


class AlreadyExistsError(Exception):
    """An object with the same namespace and name already exists."""


class MigrationError(ValueError):
    """A deprecated field cannot be migrated automatically."""


@dataclass
class ScaledObject:
    """A KEDA ScaledObject that scales a workload through the external scaler."""

    metadata: ObjectMeta = field(default_factory=ObjectMeta)
    scale_target_name: str = ""
    scale_target_kind: str = ""
    scale_target_api_version: str = ""
    min_replica_count: Optional[int] = None
    max_replica_count: Optional[int] = None
    cooldown_period: Optional[int] = None
    triggers: list[dict[str, Any]] = field(default_factory=list)
    owner_references: list[dict[str, Any]] = field(default_factory=list)


@dataclass(frozen=True)
class ReconcileResult:
    """Outcome of one reconciliation; requeue_after is set when a retry is due."""

    requeue_after: Optional[timedelta] = None


class _Client(Protocol):
    def get(self, kind: type, namespace: str, name: str) -> Any: ...

    def create(self, obj: Any) -> None: ...

    def update(self, obj: Any) -> None: ...

    def update_status(self, obj: Any) -> None: ...

    def patch(self, obj: Any) -> None: ...

    def delete(self, obj: Any) -> None: ...


def _new_scaled_object(httpso: HTTPScaledObject, external_scaler_host_name: str) -> ScaledObject:
    spec = httpso.spec
    ref = spec.scale_target_ref
    min_replicas = spec.replicas.min if spec.replicas is not None else None
    max_replicas = spec.replicas.max if spec.replicas is not None else None
    trigger_metadata = {
        "scalerAddress": external_scaler_host_name,
        "hosts": ",".join(spec.hosts or []),
    }
    if spec.path_prefixes:
        trigger_metadata["pathPrefixes"] = ",".join(spec.path_prefixes)
    return ScaledObject(
        metadata=ObjectMeta(
            name=httpso.metadata.name,
            namespace=httpso.metadata.namespace,
            labels={"app": httpso.metadata.name},
        ),
        scale_target_name=ref.name,
        scale_target_kind=ref.kind,
        scale_target_api_version=ref.api_version,
        min_replica_count=min_replicas,
        max_replica_count=max_replicas,
        cooldown_period=spec.cooldown_period,
        triggers=[{"type": EXTERNAL_PUSH_TRIGGER, "metadata": trigger_metadata}],
    )


def _set_controller_reference(owner: HTTPScaledObject, obj: ScaledObject) -> None:
    if any(ref.get("controller") for ref in obj.owner_references):
        existing = next(ref for ref in obj.owner_references if ref.get("controller"))
        if existing.get("name") != owner.metadata.name or existing.get("kind") != KIND:
            raise AlreadyExistsError(
                f"object {obj.metadata.namespace}/{obj.metadata.name} "
                f"is already owned by another controller {existing.get('name')}"
            )
        return
    if owner.metadata.namespace != obj.metadata.namespace:
        raise ValueError("cross-namespace owner references are disallowed")
    obj.owner_references.append(
        {
            "apiVersion": str(SCHEME_GROUP_VERSION),
            "kind": KIND,
            "name": owner.metadata.name,
            "controller": True,
            "blockOwnerDeletion": True,
        }
    )


@dataclass
class HTTPScaledObjectReconciler:
    """Keeps the KEDA ScaledObject of every HTTPScaledObject in step with it."""

    client: _Client
    external_scaler_config: ExternalScaler
    base_config: Base = field(default_factory=Base)
    logger: logging.Logger = field(default=_LOGGER)

    def reconcile(self, namespace: str, name: str) -> ReconcileResult:
        """Bring the named HTTPScaledObject's resources up to date.

        A missing object ends reconciliation quietly. Any other failure to fetch
        it is raised; callers should retry after GET_ERROR_REQUEUE_AFTER.
        """
        log = self.logger
        log.info("Reconciliation start (%s/%s)", namespace, name)
        try:
            httpso = self.client.get(HTTPScaledObject, namespace, name)
        except NotFoundError:
            log.info("HTTPScaledObject not found, assuming it was deleted and stopping early")
            return ReconcileResult()
        except Exception as exc:
            log.error("Getting the HTTP Scaled obj, requeueing", extra={"error": exc})
            raise

        if httpso.metadata.deletion_timestamp is not None:
            finalize_scaled_object(self.client, httpso, log)
            return ReconcileResult()

        ensure_finalizer(self.client, httpso, log)

        if httpso.spec.host is not None:
            log.info(".spec.host is deprecated, performing automated migration to .spec.hosts")
            self.migrate_host(httpso)
            return ReconcileResult()
        ref = httpso.spec.scale_target_ref
        if not ref.name or not ref.kind or not ref.api_version:
            log.info(
                ".spec.scaleTargetRef.Deployment is deprecated, performing automated migration"
            )
            self.migrate_target_ref(httpso)
            return ReconcileResult()

        log.info("Reconciling HTTPScaledObject %s/%s", namespace, httpso.metadata.name)
        self.create_or_update_application_resources(httpso)

        add_condition(
            httpso,
            create_condition(
                CreationStatus.READY,
                ConditionStatus.TRUE,
                ConditionReason.HTTP_SCALED_OBJECT_IS_READY,
                "Finished object creation",
            ),
        )
        save_status(self.client, httpso, log)
        log.info("Reconcile success")
        return ReconcileResult()

    def create_or_update_application_resources(self, httpso: HTTPScaledObject) -> None:
        """Mark the object pending and create its ScaledObject; the status is always saved."""
        try:
            add_condition(
                httpso,
                create_condition(
                    CreationStatus.PENDING,
                    ConditionStatus.UNKNOWN,
                    ConditionReason.PENDING_CREATION,
                    "Identified HTTPScaledObject creation signal",
                ),
            )
            self.create_or_update_scaled_object(
                self.external_scaler_config.host_name(self.base_config.current_namespace),
                httpso,
            )
        finally:
            save_status(self.client, httpso, self.logger)

    def create_or_update_scaled_object(
        self, external_scaler_host_name: str, httpso: HTTPScaledObject
    ) -> None:
        """Create the ScaledObject, or patch it if it already exists."""
        log = self.logger
        log.info("Creating scaled objects (external scaler host name %s)", external_scaler_host_name)
        scaled_object = _new_scaled_object(httpso, external_scaler_host_name)
        _set_controller_reference(httpso, scaled_object)

        log.info("Creating App ScaledObject %s", scaled_object.metadata.name)
        try:
            self.client.create(scaled_object)
        except AlreadyExistsError:
            try:
                self.client.get(ScaledObject, httpso.metadata.namespace, scaled_object.metadata.name)
            except Exception as exc:
                log.error(
                    "failed to fetch existing ScaledObject for patching", extra={"error": exc}
                )
                raise
            try:
                self.client.patch(scaled_object)
            except Exception as exc:
                log.error("failed to patch existing ScaledObject", extra={"error": exc})
                raise
        except Exception as exc:
            add_condition(
                httpso,
                create_condition(
                    CreationStatus.ERROR,
                    ConditionStatus.FALSE,
                    ConditionReason.ERROR_CREATING_APP_SCALED_OBJECT,
                    str(exc),
                ),
            )
            log.error("Creating ScaledObject", extra={"error": exc})
            raise

        add_condition(
            httpso,
            create_condition(
                CreationStatus.CREATED,
                ConditionStatus.TRUE,
                ConditionReason.APP_SCALED_OBJECT_CREATED,
                "App ScaledObject created",
            ),
        )
        self.purge_legacy_scaled_object(httpso)

    def purge_legacy_scaled_object(self, httpso: HTTPScaledObject) -> None:
        """Delete the ScaledObject named "<name>-app" left by older versions, if any."""
        log = self.logger
        legacy_name = f"{httpso.metadata.name}-app"
        try:
            legacy = self.client.get(ScaledObject, httpso.metadata.namespace, legacy_name)
        except NotFoundError:
            log.info("legacy ScaledObject not found")
            return
        except Exception as exc:
            log.error("failed getting legacy ScaledObject", extra={"error": exc})
            raise
        try:
            self.client.delete(legacy)
        except NotFoundError:
            log.info("legacy ScaledObject not found")
        except Exception as exc:
            log.error("failed deleting legacy ScaledObject", extra={"error": exc})
            raise

    def migrate_host(self, httpso: HTTPScaledObject) -> None:
        """Move the deprecated .spec.host into .spec.hosts and store the object."""
        spec = httpso.spec
        if (spec.hosts is not None) == (spec.host is not None):
            raise MigrationError("exactly one of .spec.host and .spec.hosts must be set")
        spec.hosts = [spec.host]
        spec.host = None
        self.client.update(httpso)

    def migrate_target_ref(self, httpso: HTTPScaledObject) -> None:
        """Fill name, kind and apiVersion of the scale target from the deprecated deployment."""
        ref = httpso.spec.scale_target_ref
        if bool(ref.deployment) == bool(ref.name):
            raise MigrationError(
                "exactly one of .spec.scaleTargetRef.deployment and "
                ".spec.scaleTargetRef.name must be set"
            )
        if not ref.name:
            ref.name = ref.deployment
        if not ref.kind:
            ref.kind = DEPLOYMENT_KIND
        if not ref.api_version:
            ref.api_version = DEPLOYMENT_API_VERSION
        ref.deployment = ""
        self.client.update(httpso)