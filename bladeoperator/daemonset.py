"""Manifest builders for the chaosblade tool DaemonSet."""

from __future__ import annotations

from typing import Any

from bladeoperator.config import DAEMONSET_POD_NAME, OperatorConfig

_VOLUMES = (
    ("docker-socket", "/var/run/docker.sock", None, "/var/run/docker.sock"),
    ("chaosblade-db-volume", "/var/run/chaosblade.dat", "FileOrCreate",
     "/opt/chaosblade/chaosblade.dat"),
    ("hosts", "/etc/hosts", None, "/etc/hosts"),
)


def owner_references_for(deployment: dict[str, Any]) -> list[dict[str, Any]]:
    """Owner references making the given deployment the controller."""
    metadata = deployment.get("metadata") or {}
    return [
        {
            "apiVersion": deployment.get("apiVersion", ""),
            "kind": deployment.get("kind", ""),
            "name": metadata.get("name", ""),
            "uid": metadata.get("uid", ""),
            "controller": True,
        }
    ]


def build_affinity() -> dict[str, Any]:
    """Node affinity keeping tool pods off virtual kubelets."""
    return {
        "nodeAffinity": {
            "requiredDuringSchedulingIgnoredDuringExecution": {
                "nodeSelectorTerms": [
                    {
                        "matchExpressions": [
                            {"key": "type", "operator": "NotIn", "values": ["virtual-kubelet"]}
                        ]
                    }
                ]
            }
        }
    }


def build_container(config: OperatorConfig) -> dict[str, Any]:
    """The privileged chaosblade tool container."""
    return {
        "name": DAEMONSET_POD_NAME,
        "image": f"{config.image_repository()}:{config.chaosblade_version}",
        "imagePullPolicy": config.chaosblade_image_pull_policy,
        "volumeMounts": [
            {"name": name, "mountPath": mount_path} for name, _, _, mount_path in _VOLUMES
        ],
        "securityContext": {"privileged": True},
    }


def build_pod_spec() -> dict[str, Any]:
    """Pod spec shared by every tool pod, without its containers."""
    volumes = []
    for name, host_path, path_type, _ in _VOLUMES:
        source: dict[str, Any] = {"path": host_path}
        if path_type is not None:
            source["type"] = path_type
        volumes.append({"name": name, "hostPath": source})
    return {
        "containers": [],
        "affinity": build_affinity(),
        "dnsPolicy": "ClusterFirstWithHostNet",
        "hostNetwork": True,
        "hostPID": True,
        "tolerations": [{"effect": "NoSchedule", "operator": "Exists"}],
        "terminationGracePeriodSeconds": 30,
        "schedulerName": "default-scheduler",
        "restartPolicy": "Always",
        "volumes": volumes,
    }


def build_daemonset(
    config: OperatorConfig, owner_references: list[dict[str, Any]]
) -> dict[str, Any]:
    """The full DaemonSet manifest deploying the tool on every node."""
    pod_spec = build_pod_spec()
    pod_spec["containers"] = [build_container(config)]
    return {
        "apiVersion": "apps/v1",
        "kind": "DaemonSet",
        "metadata": {
            "name": DAEMONSET_POD_NAME,
            "namespace": config.chaosblade_namespace,
            "labels": dict(config.daemonset_pod_labels),
            "ownerReferences": list(owner_references),
        },
        "spec": {
            "selector": {"matchLabels": dict(config.daemonset_pod_labels)},
            "template": {
                "metadata": {
                    "name": DAEMONSET_POD_NAME,
                    "labels": dict(config.daemonset_pod_labels),
                },
                "spec": pod_spec,
            },
            "minReadySeconds": 5,
            "updateStrategy": {"type": "RollingUpdate"},
        },
    }