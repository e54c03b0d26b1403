"""Admission mutator that injects the fuse sidecar into annotated pods."""

from __future__ import annotations

import copy
import json
import logging
import posixpath
from typing import Any

from bladeoperator import version
from bladeoperator.config import OperatorConfig

logger = logging.getLogger(__name__)

SIDECAR_NAME = "chaosblade-fuse"
FUSE_SERVER_PORT_NAME = "fuse-port"
INJECT_VOLUME_ANNOTATION = "chaosblade/inject-volume"
INJECT_SUBPATH_ANNOTATION = "chaosblade/inject-volume-subpath"
FUSE_BINARY = "/opt/chaosblade/bin/chaos_fuse"

MOUNT_PROPAGATION_HOST_TO_CONTAINER = "HostToContainer"
MOUNT_PROPAGATION_BIDIRECTIONAL = "Bidirectional"

_BAD_REQUEST = 400
_INTERNAL_ERROR = 500


class MutationError(Exception):
    """The pod asks for injection but cannot be mutated."""


def get_sidecar_image(sidecar_image: str, repository: str, version: str) -> str:
    """The explicit sidecar image, or the tool image of the given version."""
    if sidecar_image:
        return sidecar_image
    return f"{repository}:{version}"


def _clean(path: str) -> str:
    if not path:
        return "."
    cleaned = posixpath.normpath(path)
    if cleaned.startswith("//"):
        cleaned = "/" + cleaned.lstrip("/")
    return cleaned


def _join(*parts: str) -> str:
    present = [part for part in parts if part]
    if not present:
        return ""
    return _clean("/".join(present))


def _dir(path: str) -> str:
    return _clean(posixpath.dirname(path))


def _base(path: str) -> str:
    if not path:
        return "."
    stripped = path.rstrip("/")
    if not stripped:
        return "/"
    return posixpath.basename(stripped)


def _pointer(tokens: list[Any]) -> str:
    return "".join(
        "/" + str(token).replace("~", "~0").replace("/", "~1") for token in tokens
    )


def _diff(old: Any, new: Any, path: list[Any], ops: list[dict[str, Any]]) -> None:
    if isinstance(old, dict) and isinstance(new, dict):
        for key in old:
            if key not in new:
                ops.append({"op": "remove", "path": _pointer(path + [key])})
        for key, value in new.items():
            if key not in old:
                ops.append({"op": "add", "path": _pointer(path + [key]), "value": value})
            else:
                _diff(old[key], value, path + [key], ops)
    elif isinstance(old, list) and isinstance(new, list) and len(old) == len(new):
        for index, (before, after) in enumerate(zip(old, new)):
            _diff(before, after, path + [index], ops)
    elif type(old) is not type(new) or old != new:
        ops.append({"op": "replace", "path": _pointer(path), "value": new})


def _json_patch(original: Any, patched: Any) -> list[dict[str, Any]]:
    ops: list[dict[str, Any]] = []
    _diff(original, patched, [], ops)
    return ops


def _errored(code: int, message: str) -> dict[str, Any]:
    return {"allowed": False, "status": {"code": code, "message": message}}


class Mutator:
    """Adds a fuse sidecar sharing the annotated volume mount of the first container."""

    def __init__(self, config: OperatorConfig | None = None) -> None:
        self.config = OperatorConfig() if config is None else config

    @property
    def sidecar_image(self) -> str:
        return get_sidecar_image(
            self.config.fuse_sidecar_image, self.config.image_repository(), version.VERSION
        )

    def mutate_pod(self, pod: dict[str, Any]) -> None:
        """Inject the sidecar into the pod in place; raise MutationError when impossible."""
        metadata = pod.get("metadata") or {}
        name = metadata.get("name", "")
        annotations = metadata.get("annotations")
        if not annotations:
            return
        volume_name = annotations.get(INJECT_VOLUME_ANNOTATION)
        if volume_name is None:
            logger.info("pod %s has no %s annotation", name, INJECT_VOLUME_ANNOTATION)
            return
        sub_path = annotations.get(INJECT_SUBPATH_ANNOTATION)
        if sub_path is None:
            logger.info("pod %s has no %s annotation", name, INJECT_SUBPATH_ANNOTATION)
            return

        spec = pod.setdefault("spec", {})
        containers = spec.get("containers") or []
        if any(c.get("name") == SIDECAR_NAME for c in containers):
            logger.info("sidecar has been injected into pod %s", name)
            return
        if not containers:
            raise MutationError("pod has no containers")

        target: dict[str, Any] | None = None
        for mount in containers[0].get("volumeMounts") or []:
            if mount.get("name") != volume_name:
                continue
            propagation = mount.get("mountPropagation")
            if propagation is None:
                raise MutationError(
                    "target volume mount propagation must be HostToContainer or Bidirectional"
                )
            if propagation not in (
                MOUNT_PROPAGATION_HOST_TO_CONTAINER,
                MOUNT_PROPAGATION_BIDIRECTIONAL,
            ):
                raise MutationError("target volume mount propagation is not support")
            target = dict(mount)
            target["mountPropagation"] = MOUNT_PROPAGATION_BIDIRECTIONAL

        if target is None or not target.get("name"):
            raise MutationError(f"pod has no volume mount {volume_name}")

        mount_path = target.get("mountPath", "")
        mount_point = _join(mount_path, sub_path)
        original = _join(mount_path, f"fuse-{sub_path}")
        logger.info(
            "get matched pod %s, mount point %s, mount path %s", name, mount_point, mount_path
        )
        if mount_point == mount_path:
            original = _join(_dir(mount_path), f"fuse-{_base(mount_path)}")

        port = self.config.fuse_server_port
        resources = {"cpu": "100m", "memory": "50Mi"}
        sidecar = {
            "name": SIDECAR_NAME,
            "image": self.sidecar_image,
            "imagePullPolicy": "Always",
            "command": [FUSE_BINARY],
            "args": [
                f"--address=:{port}",
                f"--mountpoint={mount_point}",
                f"--original={original}",
            ],
            "resources": {"requests": dict(resources), "limits": dict(resources)},
            "ports": [{"name": FUSE_SERVER_PORT_NAME, "containerPort": port}],
            "securityContext": {"privileged": True, "runAsUser": 0},
            "volumeMounts": [target],
        }
        spec["containers"] = [sidecar, containers[0]]

    def handle(self, raw: bytes | str) -> dict[str, Any]:
        """Answer an admission request for a raw pod with a JSON patch response."""
        try:
            pod = json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            return _errored(_BAD_REQUEST, str(exc))
        if not isinstance(pod, dict):
            return _errored(_BAD_REQUEST, "pod must be a JSON object")
        patched = copy.deepcopy(pod)
        try:
            self.mutate_pod(patched)
        except MutationError as exc:
            logger.error("mutate pod failed: %s", exc)
            return _errored(_INTERNAL_ERROR, str(exc))
        ops = _json_patch(pod, patched)
        response: dict[str, Any] = {"allowed": True, "patch": ops}
        if ops:
            response["patchType"] = "JSONPatch"
        return response