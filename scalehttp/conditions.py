"""Status conditions and finalizers of HTTPScaledObjects."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Optional, Protocol

from .types import (
    ConditionReason,
    ConditionStatus,
    CreationStatus,
    HTTPScaledObject,
    HTTPScaledObjectCondition,
)

_LOGGER = logging.getLogger("scalehttp")

HTTP_SCALED_OBJECT_FINALIZER = "httpscaledobject.http.keda.sh"


class _Client(Protocol):
    def update(self, obj: HTTPScaledObject) -> None: ...

    def update_status(self, obj: HTTPScaledObject) -> None: ...


def _rfc3339_now() -> str:
    now = datetime.now().astimezone().replace(microsecond=0)
    if now.utcoffset() == timedelta(0):
        return now.strftime("%Y-%m-%dT%H:%M:%SZ")
    return now.isoformat()


def save_status(
    client: _Client, httpso: HTTPScaledObject, logger: Optional[logging.Logger] = None
) -> None:
    """Store the object's current status conditions; failures are logged, not raised."""
    log = logger or _LOGGER
    log.info(
        "Updating status on HTTPScaledObject (resource version %s)",
        httpso.metadata.resource_version,
    )
    try:
        client.update_status(httpso)
    except Exception as exc:  # status updates are best effort
        log.error(
            "failed to update status on HTTPScaledObject",
            extra={"error": exc, "httpso": httpso.metadata.name},
        )
    else:
        log.info(
            "Updated status on HTTPScaledObject (resource version %s)",
            httpso.metadata.resource_version,
        )


def add_condition(
    httpso: HTTPScaledObject, condition: HTTPScaledObjectCondition
) -> HTTPScaledObject:
    """Append a condition to the object's status and return the object."""
    httpso.status.conditions.append(condition)
    return httpso


def create_condition(
    condition_type: CreationStatus,
    status: ConditionStatus,
    reason: Optional[ConditionReason],
    message: str = "",
) -> HTTPScaledObjectCondition:
    """A new condition stamped with the current time in RFC 3339 form."""
    return HTTPScaledObjectCondition(
        type=condition_type,
        status=status,
        timestamp=_rfc3339_now(),
        reason=reason,
        message=message,
    )


def ensure_finalizer(
    client: _Client, httpso: HTTPScaledObject, logger: Optional[logging.Logger] = None
) -> None:
    """Add the finalizer to the object and store it, unless it is already there."""
    log = logger or _LOGGER
    if HTTP_SCALED_OBJECT_FINALIZER in httpso.metadata.finalizers:
        return
    log.info("Adding Finalizer for the ScaledObject")
    httpso.metadata.finalizers = [*httpso.metadata.finalizers, HTTP_SCALED_OBJECT_FINALIZER]
    try:
        client.update(httpso)
    except Exception as exc:
        log.error(
            "Failed to update HTTPScaledObject with a finalizer",
            extra={"error": exc, "finalizer": HTTP_SCALED_OBJECT_FINALIZER},
        )
        raise


def finalize_scaled_object(
    client: _Client, httpso: HTTPScaledObject, logger: Optional[logging.Logger] = None
) -> None:
    """Remove the finalizer from the object and store it, if it is present."""
    log = logger or _LOGGER
    if HTTP_SCALED_OBJECT_FINALIZER in httpso.metadata.finalizers:
        httpso.metadata.finalizers = [
            f for f in httpso.metadata.finalizers if f != HTTP_SCALED_OBJECT_FINALIZER
        ]
        try:
            client.update(httpso)
        except Exception as exc:
            log.error(
                "Failed to update ScaledObject after removing a finalizer",
                extra={"error": exc, "finalizer": HTTP_SCALED_OBJECT_FINALIZER},
            )
            raise
    log.info("Successfully finalized HTTPScaledObject")