import copy
import json
from datetime import datetime, timedelta, timezone

import pytest

from bladeoperator.predicate import CHAOSBLADE_FINALIZER, PRE_SPEC_ANNOTATION
from bladeoperator.reconciler import (
    Reconciler,
    clean_up_expired,
    contains,
    parse_duration,
    remove,
)
from bladeoperator.types import (
    ChaosBlade,
    ChaosBladeSpec,
    ClusterPhase,
    ExperimentSpec,
    ExperimentStatus,
)


class FakeClient:
    def __init__(self, blades=(), fail_update=False, fail_status=False, fail_list=False):
        self.store = {b.name: copy.deepcopy(b) for b in blades}
        self.fail_update = fail_update
        self.fail_status = fail_status
        self.fail_list = fail_list
        self.updates = []
        self.status_updates = []
        self.patches = []

    def get(self, name):
        if name not in self.store:
            raise KeyError(name)
        return copy.deepcopy(self.store[name])

    def update(self, blade):
        if self.fail_update:
            raise ConnectionError("update refused")
        self.updates.append(copy.deepcopy(blade))
        self.store[blade.name] = copy.deepcopy(blade)

    def update_status(self, blade):
        if self.fail_status:
            raise ConnectionError("status refused")
        self.status_updates.append(copy.deepcopy(blade))
        self.store[blade.name] = copy.deepcopy(blade)

    def list(self):
        if self.fail_list:
            raise ConnectionError("list refused")
        return [copy.deepcopy(b) for b in self.store.values()]

    def patch(self, name, patch):
        self.patches.append((name, patch))


class FakeExecutor:
    def __init__(self, create_success=True, destroy_success=True):
        self.create_success = create_success
        self.destroy_success = destroy_success
        self.created = []
        self.destroyed = []

    def create(self, name, experiment):
        self.created.append((name, experiment))
        if self.create_success:
            return ExperimentStatus.succeeded([])
        return ExperimentStatus.failed("boom", [])

    def destroy(self, name, experiment, status):
        self.destroyed.append((name, experiment, status))
        if self.destroy_success:
            return ExperimentStatus.destroyed([])
        return ExperimentStatus.failed("cannot destroy", [])


def _experiment(action="load"):
    return ExperimentSpec(scope="node", target="cpu", action=action)


def _blade(phase=ClusterPhase.INITIAL, finalizers=None, experiments=None, **kwargs):
    blade = ChaosBlade(
        name="cpu-load",
        finalizers=list(finalizers or []),
        spec=ChaosBladeSpec(experiments=[_experiment()] if experiments is None else experiments),
        **kwargs,
    )
    blade.status.phase = phase
    return blade


def test_missing_blade_is_ignored():
    client = FakeClient()
    Reconciler(client, FakeExecutor()).reconcile("absent")
    assert client.updates == [] and client.status_updates == []


def test_blade_without_experiments_is_ignored():
    client = FakeClient([_blade(experiments=[])])
    Reconciler(client, FakeExecutor()).reconcile("cpu-load")
    assert client.updates == [] and client.status_updates == []


def test_initial_adds_finalizer():
    client = FakeClient([_blade()])
    Reconciler(client, FakeExecutor()).reconcile("cpu-load")
    assert client.store["cpu-load"].finalizers == [CHAOSBLADE_FINALIZER]
    assert client.status_updates == []


def test_initial_with_finalizer_becomes_initialized():
    client = FakeClient([_blade(finalizers=[CHAOSBLADE_FINALIZER])])
    Reconciler(client, FakeExecutor()).reconcile("cpu-load")
    stored = client.store["cpu-load"]
    assert stored.status.phase is ClusterPhase.INITIALIZED
    assert stored.status.exp_statuses == []


def test_initialized_runs_experiments():
    executor = FakeExecutor()
    client = FakeClient([_blade(ClusterPhase.INITIALIZED, [CHAOSBLADE_FINALIZER])])
    Reconciler(client, executor).reconcile("cpu-load")
    stored = client.store["cpu-load"]
    assert stored.status.phase is ClusterPhase.RUNNING
    assert [s.success for s in stored.status.exp_statuses] == [True]
    assert executor.created == [("cpu-load", _experiment())]


def test_all_failed_experiments_give_error_phase():
    client = FakeClient([_blade(ClusterPhase.UPDATING, [CHAOSBLADE_FINALIZER])])
    Reconciler(client, FakeExecutor(create_success=False)).reconcile("cpu-load")
    stored = client.store["cpu-load"]
    assert stored.status.phase is ClusterPhase.ERROR
    assert stored.status.exp_statuses[0].error == "boom"


def test_destroyed_removes_finalizer():
    client = FakeClient([_blade(ClusterPhase.DESTROYED, ["other", CHAOSBLADE_FINALIZER])])
    Reconciler(client, FakeExecutor()).reconcile("cpu-load")
    assert client.store["cpu-load"].finalizers == ["other"]


def test_deletion_finalizes_blade():
    blade = _blade(
        ClusterPhase.RUNNING,
        [CHAOSBLADE_FINALIZER],
        deletion_timestamp=datetime(2024, 1, 1, tzinfo=timezone.utc),
    )
    blade.status.exp_statuses = [ExperimentStatus.succeeded([])]
    executor = FakeExecutor()
    client = FakeClient([blade])
    Reconciler(client, executor).reconcile("cpu-load")
    stored = client.store["cpu-load"]
    assert stored.status.phase is ClusterPhase.DESTROYED
    assert stored.status.exp_statuses[0].state == "Destroyed"
    assert len(executor.destroyed) == 1


def test_finalize_failure_raises_and_marks_destroying():
    blade = _blade(ClusterPhase.DESTROYING, [CHAOSBLADE_FINALIZER])
    blade.status.exp_statuses = [ExperimentStatus.succeeded([])]
    client = FakeClient()
    with pytest.raises(RuntimeError, match="failed to destory"):
        Reconciler(client, FakeExecutor(destroy_success=False)).finalize(blade)
    assert blade.status.phase is ClusterPhase.DESTROYING
    assert client.status_updates[-1].status.phase is ClusterPhase.DESTROYING


def test_finalize_status_update_error_raises():
    blade = _blade(ClusterPhase.DESTROYING)
    client = FakeClient(fail_status=True)
    with pytest.raises(RuntimeError, match="update chaosblade status failed"):
        Reconciler(client, FakeExecutor()).finalize(blade)


def test_finalize_skips_destroy_when_lengths_differ():
    blade = _blade(ClusterPhase.DESTROYING)
    blade.status.exp_statuses = []
    executor = FakeExecutor()
    Reconciler(FakeClient(), executor).finalize(blade)
    assert executor.destroyed == []
    assert blade.status.phase is ClusterPhase.DESTROYED


def test_running_with_pre_spec_destroys_old_experiments():
    old_spec = ChaosBladeSpec(experiments=[_experiment("old")])
    blade = _blade(
        ClusterPhase.RUNNING,
        [CHAOSBLADE_FINALIZER],
        experiments=[_experiment("new")],
        annotations={PRE_SPEC_ANNOTATION: json.dumps(old_spec.to_dict())},
    )
    blade.status.exp_statuses = [ExperimentStatus.succeeded([])]
    executor = FakeExecutor()
    client = FakeClient([blade])
    Reconciler(client, executor).reconcile("cpu-load")
    assert executor.destroyed[0][1] == _experiment("old")
    assert client.store["cpu-load"].status.phase is ClusterPhase.UPDATING


def test_running_destroy_failure_gives_destroying():
    old_spec = ChaosBladeSpec(experiments=[_experiment()])
    blade = _blade(
        ClusterPhase.ERROR,
        annotations={PRE_SPEC_ANNOTATION: json.dumps(old_spec.to_dict())},
    )
    blade.status.exp_statuses = [ExperimentStatus.failed("x", [])]
    client = FakeClient([blade])
    Reconciler(client, FakeExecutor(destroy_success=False)).reconcile("cpu-load")
    assert client.store["cpu-load"].status.phase is ClusterPhase.DESTROYING


def test_running_without_pre_spec_changes_nothing():
    client = FakeClient([_blade(ClusterPhase.RUNNING)])
    Reconciler(client, FakeExecutor()).reconcile("cpu-load")
    assert client.updates == [] and client.status_updates == []


def test_running_with_bad_pre_spec_changes_nothing():
    blade = _blade(ClusterPhase.RUNNING, annotations={PRE_SPEC_ANNOTATION: "{not json"})
    client = FakeClient([blade])
    Reconciler(client, FakeExecutor()).reconcile("cpu-load")
    assert client.status_updates == []


def test_update_failure_does_not_stop_status_update():
    old_spec = ChaosBladeSpec(experiments=[_experiment()])
    blade = _blade(
        ClusterPhase.RUNNING,
        annotations={PRE_SPEC_ANNOTATION: json.dumps(old_spec.to_dict())},
    )
    blade.status.exp_statuses = [ExperimentStatus.succeeded([])]
    client = FakeClient([blade], fail_update=True)
    Reconciler(client, FakeExecutor()).reconcile("cpu-load")
    assert client.status_updates[-1].status.phase is ClusterPhase.UPDATING


def test_contains_and_remove():
    items = ["a", CHAOSBLADE_FINALIZER, "b"]
    assert contains(items, CHAOSBLADE_FINALIZER)
    assert not contains(items, "c")
    assert remove(items, CHAOSBLADE_FINALIZER) == ["a", "b"]
    assert remove(items, "c") == items


@pytest.mark.parametrize(
    "text, expected",
    [
        ("72h", timedelta(hours=72)),
        ("1h30m", timedelta(hours=1, minutes=30)),
        ("1.5s", timedelta(seconds=1.5)),
        ("-2m", timedelta(minutes=-2)),
        ("0", timedelta(0)),
        ("250ms", timedelta(milliseconds=250)),
    ],
)
def test_parse_duration(text, expected):
    assert parse_duration(text) == expected


@pytest.mark.parametrize("text", ["", "5", "1x", "h", "1h 2m", ".s"])
def test_parse_duration_rejects_malformed(text):
    with pytest.raises(ValueError):
        parse_duration(text)


def test_clean_up_expired_patches_only_old_destroying_blades():
    now = datetime(2024, 1, 10, tzinfo=timezone.utc)
    old = _blade(ClusterPhase.DESTROYING, deletion_timestamp=now - timedelta(hours=100))
    old.name = "old"
    recent = _blade(ClusterPhase.DESTROYING, deletion_timestamp=now - timedelta(hours=1))
    recent.name = "recent"
    running = _blade(ClusterPhase.RUNNING, deletion_timestamp=now - timedelta(hours=100))
    running.name = "running"
    alive = _blade(ClusterPhase.DESTROYING)
    alive.name = "alive"
    client = FakeClient([old, recent, running, alive])
    patched = clean_up_expired(client, parse_duration("72h"), now)
    assert patched == ["old"]
    assert client.patches == [("old", {"metadata": {"finalizers": []}})]


def test_clean_up_expired_survives_list_failure():
    client = FakeClient(fail_list=True)
    assert clean_up_expired(client, timedelta(hours=1)) == []
    assert client.patches == []