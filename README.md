# bladeoperator

The core of a chaos-experiment operator for Kubernetes-style clusters, in
plain Python with no third-party dependencies. It models `ChaosBlade`
resources and their experiment statuses, drives them through their
life-cycle phases, adds a file-system fault sidecar to pods, and provides
the small HTTP service and client used to switch file I/O fault rules on
and off.

## What is inside

| Module | Purpose |
| --- | --- |
| `bladeoperator.version` | Splits a combined `version,product` string (`parse_combined_version`) and checks whether a three-part version is at least 1.5.0 (`has_cri_command`). |
| `bladeoperator.types` | The resource model: `ClusterPhase`, `FlagSpec`, `ExperimentSpec`, `ChaosBladeSpec`, `ResourceStatus`, `ExperimentStatus`, `ChaosBladeStatus`, `ChaosBlade`, with `to_dict` / `from_dict` round trips, and `create_fail_res_statuses`. |
| `bladeoperator.config` | Operator settings parsed from command-line style arguments (`OperatorConfig`, `build_parser`, `parse_config`) and the tool image repository per product (`OperatorConfig.image_repository`, `aliyun_image_repository`). |
| `bladeoperator.faults` | Fault rules (`InjectMessage`), the thread-safe per-method rule table (`FaultRegistry`), and `FaultInjector`, which delays an operation and/or raises `OSError` with the rule's errno. |
| `bladeoperator.server` | `HookServer`, an HTTP server that stores rules posted to `/inject` and clears them on `/recover`. |
| `bladeoperator.hookclient` | `HookClient`, which calls those two endpoints; failures raise `HookClientError`. |
| `bladeoperator.mutator` | `Mutator`, which adds the `chaosblade-fuse` sidecar to an annotated pod (`mutate_pod`) or answers a raw pod with a JSON patch response (`handle`); invalid pods raise `MutationError`. |
| `bladeoperator.predicate` | `SpecUpdatedPredicate`, deciding which create, update and delete events are worth reconciling. |
| `bladeoperator.daemonset` | Builders for the tool DaemonSet manifest: `build_daemonset`, `build_pod_spec`, `build_container`, `build_affinity`, `owner_references_for`. |
| `bladeoperator.reconciler` | `Reconciler`, moving a blade from Initial through Running to Destroyed, plus `clean_up_expired` for blades stuck in Destroying and `parse_duration` for intervals such as `72h`. |
| `bladeoperator.podfault` | Pod helpers for I/O and fail experiments: `is_pod_ready`, `container_port`, `hook_address`, `build_inject_message`, `fail_pod`, `is_annotation_exist`. |

## Examples

Checking a version:

```python
from bladeoperator.version import has_cri_command, parse_combined_version

version, product = parse_combined_version("1.7.2,community", ",")
assert has_cri_command(version)
```

Reading operator settings:

```python
from bladeoperator.config import parse_config

config = parse_config(["--chaosblade-version", "1.7.2", "--daemonset-enable"])
print(config.image_repository())  # chaosbladeio/chaosblade-tool
```

Building experiment statuses:

```python
from bladeoperator.types import ExperimentStatus, ResourceStatus

status = ResourceStatus(kind="pod", identifier="default/node-1/nginx-app")
status.mark_success()
experiment = ExperimentStatus.succeeded([status])
print(experiment.to_dict())
```

Describing a file I/O fault:

```python
from bladeoperator.faults import InjectMessage

message = InjectMessage.from_json(
    '{"methods": ["read"], "path": "/data", "delay": 1000, '
    '"percent": 60, "random": false, "errno": 28}'
)
print(message.to_json())
```

Driving a blade: `Reconciler(client, executor)` takes any object with
`get`, `update`, `update_status`, `list` and `patch` methods for storage,
and any object with `create` and `destroy` methods that run single
experiments; `reconcile(name)` then advances that blade by one step.

## What it does not do

- It has no command to start; there is no operator process, watch loop or
  periodic timer. `Reconciler.reconcile` and `clean_up_expired` are called
  by the code that embeds them.
- It does not talk to a Kubernetes API server. Storage and experiment
  execution are supplied by the caller, and `build_daemonset` only returns
  a manifest; nothing is deployed.
- It does not run the cpu, network, disk, memory, file or process
  experiments themselves, nor pod delete and fail experiments against a
  cluster; `podfault` only provides the helpers around them.
- It does not mount a FUSE file system. `FaultInjector` decides what an
  operation should do; hooking it into a real file system is up to the
  caller.
- `HookServer` serves plain HTTP, and `Mutator.handle` returns a response
  dictionary rather than serving an admission webhook over HTTPS.

## Tests

The test suite uses pytest; install the `test` extra to get it.