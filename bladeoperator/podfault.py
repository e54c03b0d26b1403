"""Pod-level fault helpers: readiness, fuse control address, IO rules and image failure."""

from __future__ import annotations

import re
from typing import Any, Mapping

from bladeoperator.faults import InjectMessage
from bladeoperator.mutator import FUSE_SERVER_PORT_NAME

FAIL_POD_ANNOTATION_PREFIX = "failPod"
FAULT_IMAGE_SUFFIX = "-fault-injection"

_INTEGER = re.compile(r"[+-]?\d+")
_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1
_UINT32_MASK = 0xFFFFFFFF


def is_pod_ready(pod: Mapping[str, Any]) -> bool:
    """Tell whether the pod is not being deleted and reports the Ready condition."""
    metadata = pod.get("metadata") or {}
    if metadata.get("deletionTimestamp") is not None:
        return False
    conditions = (pod.get("status") or {}).get("conditions") or []
    return any(
        condition.get("type") == "Ready" and condition.get("status") == "True"
        for condition in conditions
    )


def container_port(port_name: str, pod: Mapping[str, Any]) -> int:
    """The container port with the given name; raise LookupError if none has it."""
    for container in (pod.get("spec") or {}).get("containers") or []:
        for port in container.get("ports") or []:
            if port.get("name") == port_name:
                return int(port.get("containerPort", 0))
    raise LookupError("can not found fuse-server container port ")


def hook_address(pod: Mapping[str, Any], port_name: str = FUSE_SERVER_PORT_NAME) -> str:
    """The host:port of the fault control server in the pod."""
    port = container_port(port_name, pod)
    pod_ip = (pod.get("status") or {}).get("podIP", "")
    return f"{pod_ip}:{port}"


def _integer_flag(flags: Mapping[str, str], name: str) -> int:
    text = flags.get(name, "")
    if not text:
        return 0
    if _INTEGER.fullmatch(text) is None:
        raise ValueError(f"illegal {name} parameter value {text!r}: must be integer")
    value = int(text)
    if not _INT64_MIN <= value <= _INT64_MAX:
        raise ValueError(f"illegal {name} parameter value {text!r}: value out of range")
    return value & _UINT32_MASK


def build_inject_message(flags: Mapping[str, str]) -> InjectMessage:
    """Build the IO fault rule from experiment flags; raise ValueError on a bad number."""
    delay = _integer_flag(flags, "delay")
    percent = _integer_flag(flags, "percent")
    errno = _integer_flag(flags, "errno")
    return InjectMessage(
        methods=flags.get("method", "").split(","),
        path=flags.get("path", ""),
        delay=delay,
        percent=percent,
        random=flags.get("random") == "true",
        errno=errno,
    )


def is_annotation_exist(annotations: Mapping[str, str] | None, key: str) -> bool:
    """Tell whether the annotation key is present."""
    return annotations is not None and key in annotations


def fail_pod(pod: dict[str, Any]) -> dict[str, Any]:
    """Point every container at a broken image, remembering the original; returns the pod."""
    metadata = pod.setdefault("metadata", {})
    containers = (pod.get("spec") or {}).get("containers") or []
    for container in containers:
        key = f"{FAIL_POD_ANNOTATION_PREFIX}-{container.get('name', '')}"
        if metadata.get("annotations") is None:
            metadata["annotations"] = {}
        annotations = metadata["annotations"]
        if is_annotation_exist(annotations, key):
            continue
        image = container.get("image", "")
        annotations[key] = image
        container["image"] = f"{image}{FAULT_IMAGE_SUFFIX}"
    return pod