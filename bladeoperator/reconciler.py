"""Reconciliation of ChaosBlade resources through their life-cycle phases."""

from __future__ import annotations

import json
import logging
import re
from datetime import datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Protocol

from bladeoperator.predicate import CHAOSBLADE_FINALIZER, PRE_SPEC_ANNOTATION
from bladeoperator.types import (
    ChaosBlade,
    ChaosBladeSpec,
    ClusterPhase,
    ExperimentSpec,
    ExperimentStatus,
)

logger = logging.getLogger(__name__)

_UNIT_NANOSECONDS = {
    "ns": 1,
    "us": 1_000,
    "µs": 1_000,
    "μs": 1_000,
    "ms": 1_000_000,
    "s": 1_000_000_000,
    "m": 60 * 1_000_000_000,
    "h": 3600 * 1_000_000_000,
}
_COMPONENT = re.compile(r"(\d*(?:\.\d*)?)(ns|us|µs|μs|ms|s|m|h)")


class BladeClient(Protocol):
    """Access to stored ChaosBlade resources."""

    def get(self, name: str) -> ChaosBlade | None: ...

    def update(self, blade: ChaosBlade) -> None: ...

    def update_status(self, blade: ChaosBlade) -> None: ...

    def list(self) -> list[ChaosBlade]: ...

    def patch(self, name: str, patch: dict[str, Any]) -> None: ...


class ExperimentExecutor(Protocol):
    """Runs and reverts single experiments."""

    def create(self, name: str, experiment: ExperimentSpec) -> ExperimentStatus: ...

    def destroy(
        self, name: str, experiment: ExperimentSpec, status: ExperimentStatus
    ) -> ExperimentStatus: ...


def contains(items: list[str], value: str) -> bool:
    """Tell whether the value is among the items."""
    return value in items


def remove(items: list[str], value: str) -> list[str]:
    """Return the items without any occurrence of the value."""
    return [item for item in items if item != value]


def parse_duration(text: str) -> timedelta:
    """Parse a duration such as "72h", "1h30m" or "1.5s"; raise ValueError if malformed."""
    original = text
    sign = 1
    if text and text[0] in "+-":
        sign = -1 if text[0] == "-" else 1
        text = text[1:]
    if text == "0":
        return timedelta(0)
    if not text:
        raise ValueError(f"invalid duration {original!r}")
    total = Decimal(0)
    position = 0
    while position < len(text):
        match = _COMPONENT.match(text, position)
        if match is None:
            raise ValueError(f"invalid duration {original!r}")
        number, unit = match.groups()
        if number in ("", "."):
            raise ValueError(f"invalid duration {original!r}")
        try:
            total += Decimal(number) * _UNIT_NANOSECONDS[unit]
        except InvalidOperation as exc:
            raise ValueError(f"invalid duration {original!r}") from exc
        position = match.end()
    nanoseconds = int(total) * sign
    return timedelta(microseconds=nanoseconds / 1000)


def clean_up_expired(
    client: BladeClient, interval: timedelta, now: datetime | None = None
) -> list[str]:
    """Drop the finalizers of blades stuck destroying longer than the interval.

    Returns the names of the blades that were patched successfully.
    """
    if now is None:
        now = datetime.now(timezone.utc)
    try:
        blades = client.list()
    except Exception as exc:
        logger.error("periodically clean up, list blade error: %s", exc)
        blades = []
    logger.info("periodically clean up blade, blade size: %d", len(blades))
    patched: list[str] = []
    for blade in blades:
        if blade.deletion_timestamp is None:
            continue
        elapsed = now - blade.deletion_timestamp
        if blade.status.phase is ClusterPhase.DESTROYING and elapsed > interval:
            logger.info(
                "periodically clean up blade %s, deletion time: %s",
                blade.name, blade.deletion_timestamp,
            )
            try:
                client.patch(blade.name, {"metadata": {"finalizers": []}})
            except Exception as exc:
                logger.error("patch blade: %s, error: %s", blade.name, exc)
                continue
            patched.append(blade.name)
    return patched


class Reconciler:
    """Drives a ChaosBlade resource from its current phase to the next."""

    def __init__(self, client: BladeClient, executor: ExperimentExecutor) -> None:
        self.client = client
        self.executor = executor

    def _update(self, blade: ChaosBlade, what: str) -> None:
        try:
            self.client.update(blade)
        except Exception as exc:
            logger.error("%s failed: %s", what, exc)

    def _update_status(self, blade: ChaosBlade, what: str) -> None:
        try:
            self.client.update_status(blade)
        except Exception as exc:
            logger.error("%s failed: %s", what, exc)

    def reconcile(self, name: str) -> None:
        """Process one request for the named blade."""
        try:
            blade = self.client.get(name)
        except Exception as exc:
            logger.info("get chaosblade %s failed: %s", name, exc)
            return
        if blade is None or not blade.spec.experiments:
            return
        phase = blade.status.phase

        if phase is ClusterPhase.DESTROYED:
            blade.finalizers = remove(blade.finalizers, CHAOSBLADE_FINALIZER)
            self._update(blade, "remove chaosblade finalizer at destroyed phase")
            return

        if phase is ClusterPhase.DESTROYING or blade.deletion_timestamp is not None:
            try:
                self.finalize(blade)
            except RuntimeError as exc:
                logger.error("finalize chaosblade failed at destroying phase: %s", exc)
            return

        if phase is ClusterPhase.INITIAL:
            if contains(blade.finalizers, CHAOSBLADE_FINALIZER):
                blade.status.phase = ClusterPhase.INITIALIZED
                blade.status.exp_statuses = []
                self._update_status(blade, "update chaosblade phase to Initialized")
            else:
                blade.finalizers = [*blade.finalizers, CHAOSBLADE_FINALIZER]
                self._update(blade, "add finalizer to chaosblade")
            return

        if phase in (ClusterPhase.INITIALIZED, ClusterPhase.UPDATING):
            new_phase = ClusterPhase.ERROR
            statuses: list[ExperimentStatus] = []
            for experiment in blade.spec.experiments:
                status = self.executor.create(blade.name, experiment)
                if status.success:
                    new_phase = ClusterPhase.RUNNING
                statuses.append(status)
            blade.status.exp_statuses = statuses
            blade.status.phase = new_phase
            self._update_status(
                blade, f"update phase from {phase.value} to {new_phase.value}"
            )
            return

        if phase in (ClusterPhase.RUNNING, ClusterPhase.ERROR):
            new_phase = ClusterPhase.UPDATING
            pre_spec = blade.annotations.get(PRE_SPEC_ANNOTATION, "")
            if not pre_spec:
                logger.error("can not found matchers in annotations field")
                return
            try:
                old_spec = ChaosBladeSpec.from_dict(json.loads(pre_spec))
            except (ValueError, TypeError, AttributeError) as exc:
                logger.error("unmarshal old spec failed, %s: %s", pre_spec, exc)
                return
            self._update(blade, "add annotation to chaosblade")
            if blade.status.exp_statuses is not None:
                for index, old_status in enumerate(blade.status.exp_statuses):
                    status = self.executor.destroy(
                        blade.name, old_spec.experiments[index], old_status
                    )
                    if not status.success:
                        new_phase = ClusterPhase.DESTROYING
                    blade.status.exp_statuses[index] = status
            blade.status.phase = new_phase
            self._update_status(
                blade, f"update phase from {phase.value} to {new_phase.value}"
            )

    def finalize(self, blade: ChaosBlade) -> None:
        """Destroy every experiment; raise RuntimeError if any could not be destroyed."""
        logger.info("finalize the chaosblade %s", blade.name)
        phase = ClusterPhase.DESTROYED
        statuses = blade.status.exp_statuses
        if statuses is not None and len(blade.spec.experiments) == len(statuses):
            for index, experiment in enumerate(blade.spec.experiments):
                status = self.executor.destroy(blade.name, experiment, statuses[index])
                if not status.success:
                    phase = ClusterPhase.DESTROYING
                statuses[index] = status
        blade.status.phase = phase
        try:
            self.client.update_status(blade)
        except Exception as exc:
            raise RuntimeError(
                f"update chaosblade status failed in finalize phase, {exc}"
            ) from exc
        if blade.status.phase is ClusterPhase.DESTROYING:
            raise RuntimeError("failed to destory, please see the experiment status")
        logger.info("successfully finalized chaosblade %s", blade.name)