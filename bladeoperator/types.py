"""Resource types of the chaosblade.io/v1alpha1 API group."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

GROUP = "chaosblade.io"
API_GROUP_VERSION = "v1alpha1"
API_VERSION = f"{GROUP}/{API_GROUP_VERSION}"
KIND = "ChaosBlade"

POD_KIND = "pod"
CONTAINER_KIND = "container"
NODE_KIND = "node"

SUCCESS_STATE = "Success"
ERROR_STATE = "Error"
DESTROYED_STATE = "Destroyed"


class ClusterPhase(str, enum.Enum):
    """Life-cycle phase of a ChaosBlade resource."""

    INITIAL = ""
    INITIALIZED = "Initialized"
    RUNNING = "Running"
    UPDATING = "Updating"
    DESTROYING = "Destroying"
    DESTROYED = "Destroyed"
    ERROR = "Error"


@dataclass
class FlagSpec:
    """A named experiment flag with its values."""

    name: str
    value: list[str] = field(default_factory=list)


@dataclass
class ExperimentSpec:
    """One experiment: scope, target, action and matchers."""

    scope: str
    target: str
    action: str
    desc: str = ""
    matchers: list[FlagSpec] = field(default_factory=list)


def _flag_to_dict(flag: FlagSpec) -> dict[str, Any]:
    return {"name": flag.name, "value": list(flag.value)}


def _flag_from_dict(data: dict[str, Any]) -> FlagSpec:
    return FlagSpec(name=data.get("name", ""), value=list(data.get("value") or []))


def _experiment_to_dict(exp: ExperimentSpec) -> dict[str, Any]:
    result: dict[str, Any] = {"scope": exp.scope, "target": exp.target, "action": exp.action}
    if exp.desc:
        result["desc"] = exp.desc
    if exp.matchers:
        result["matchers"] = [_flag_to_dict(m) for m in exp.matchers]
    return result


def _experiment_from_dict(data: dict[str, Any]) -> ExperimentSpec:
    return ExperimentSpec(
        scope=data.get("scope", ""),
        target=data.get("target", ""),
        action=data.get("action", ""),
        desc=data.get("desc", ""),
        matchers=[_flag_from_dict(m) for m in data.get("matchers") or []],
    )


@dataclass
class ChaosBladeSpec:
    """Desired state: the list of experiments."""

    experiments: list[ExperimentSpec] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"experiments": [_experiment_to_dict(e) for e in self.experiments]}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ChaosBladeSpec:
        return cls(experiments=[_experiment_from_dict(e) for e in data.get("experiments") or []])


@dataclass
class ResourceStatus:
    """Outcome of an experiment on one resource."""

    id: str = ""
    state: str = ""
    code: int = 0
    error: str = ""
    success: bool = False
    kind: str = ""
    identifier: str = ""

    def mark_failed(self, error: str, code: int) -> ResourceStatus:
        """Record a failure and return this status."""
        self.state = ERROR_STATE
        self.error = error
        self.success = False
        self.code = code
        return self

    def mark_success(self) -> ResourceStatus:
        """Record a success and return this status."""
        self.state = SUCCESS_STATE
        self.success = True
        return self

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {}
        if self.id:
            result["id"] = self.id
        result["state"] = self.state
        if self.code:
            result["code"] = self.code
        if self.error:
            result["error"] = self.error
        result["success"] = self.success
        result["kind"] = self.kind
        if self.identifier:
            result["identifier"] = self.identifier
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ResourceStatus:
        return cls(
            id=data.get("id", ""),
            state=data.get("state", ""),
            code=int(data.get("code", 0)),
            error=data.get("error", ""),
            success=bool(data.get("success", False)),
            kind=data.get("kind", ""),
            identifier=data.get("identifier", ""),
        )


@dataclass
class ExperimentStatus:
    """Outcome of one experiment across all its resources."""

    scope: str = ""
    target: str = ""
    action: str = ""
    success: bool = False
    state: str = ""
    error: str = ""
    res_statuses: list[ResourceStatus] = field(default_factory=list)

    @classmethod
    def failed(cls, error: str, res_statuses: list[ResourceStatus]) -> ExperimentStatus:
        return cls(success=False, state=ERROR_STATE, error=error, res_statuses=res_statuses)

    @classmethod
    def succeeded(cls, res_statuses: list[ResourceStatus]) -> ExperimentStatus:
        return cls(success=True, state=SUCCESS_STATE, res_statuses=res_statuses)

    @classmethod
    def destroyed(cls, res_statuses: list[ResourceStatus]) -> ExperimentStatus:
        return cls(success=True, state=DESTROYED_STATE, res_statuses=res_statuses)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "scope": self.scope,
            "target": self.target,
            "action": self.action,
            "success": self.success,
            "state": self.state,
        }
        if self.error:
            result["error"] = self.error
        if self.res_statuses:
            result["resStatuses"] = [s.to_dict() for s in self.res_statuses]
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ExperimentStatus:
        return cls(
            scope=data.get("scope", ""),
            target=data.get("target", ""),
            action=data.get("action", ""),
            success=bool(data.get("success", False)),
            state=data.get("state", ""),
            error=data.get("error", ""),
            res_statuses=[ResourceStatus.from_dict(s) for s in data.get("resStatuses") or []],
        )


def create_fail_res_statuses(code: int, error: str, uid: str) -> list[ResourceStatus]:
    """Build a one-element list holding a failed resource status."""
    return [ResourceStatus(error=error, code=code, id=uid, success=False)]


@dataclass
class ChaosBladeStatus:
    """Observed state: phase and per-experiment statuses (None when never set)."""

    phase: ClusterPhase = ClusterPhase.INITIAL
    exp_statuses: list[ExperimentStatus] | None = None


def _status_to_dict(status: ChaosBladeStatus) -> dict[str, Any]:
    result: dict[str, Any] = {}
    if status.phase.value:
        result["phase"] = status.phase.value
    result["expStatuses"] = (
        None if status.exp_statuses is None else [s.to_dict() for s in status.exp_statuses]
    )
    return result


def _status_from_dict(data: dict[str, Any]) -> ChaosBladeStatus:
    raw = data.get("expStatuses")
    return ChaosBladeStatus(
        phase=ClusterPhase(data.get("phase") or ""),
        exp_statuses=None if raw is None else [ExperimentStatus.from_dict(s) for s in raw],
    )


def _format_time(moment: datetime) -> str:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _parse_time(text: str) -> datetime:
    parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass
class ChaosBlade:
    """The ChaosBlade custom resource."""

    name: str
    namespace: str = ""
    annotations: dict[str, str] = field(default_factory=dict)
    finalizers: list[str] = field(default_factory=list)
    deletion_timestamp: datetime | None = None
    spec: ChaosBladeSpec = field(default_factory=ChaosBladeSpec)
    status: ChaosBladeStatus = field(default_factory=ChaosBladeStatus)
    api_version: str = API_VERSION
    kind: str = KIND

    def to_dict(self) -> dict[str, Any]:
        metadata: dict[str, Any] = {"name": self.name}
        if self.namespace:
            metadata["namespace"] = self.namespace
        if self.annotations:
            metadata["annotations"] = dict(self.annotations)
        if self.finalizers:
            metadata["finalizers"] = list(self.finalizers)
        if self.deletion_timestamp is not None:
            metadata["deletionTimestamp"] = _format_time(self.deletion_timestamp)
        return {
            "apiVersion": self.api_version,
            "kind": self.kind,
            "metadata": metadata,
            "spec": self.spec.to_dict(),
            "status": _status_to_dict(self.status),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ChaosBlade:
        metadata = data.get("metadata") or {}
        stamp = metadata.get("deletionTimestamp")
        return cls(
            name=metadata.get("name", ""),
            namespace=metadata.get("namespace", ""),
            annotations=dict(metadata.get("annotations") or {}),
            finalizers=list(metadata.get("finalizers") or []),
            deletion_timestamp=_parse_time(stamp) if stamp else None,
            spec=ChaosBladeSpec.from_dict(data.get("spec") or {}),
            status=_status_from_dict(data.get("status") or {}),
            api_version=data.get("apiVersion", API_VERSION),
            kind=data.get("kind", KIND),
        )