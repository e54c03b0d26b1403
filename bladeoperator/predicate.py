"""Event filter deciding which ChaosBlade changes trigger a reconcile."""

from __future__ import annotations

import json
import logging
from typing import Any

from bladeoperator.types import ChaosBlade, ClusterPhase

logger = logging.getLogger(__name__)

CHAOSBLADE_FINALIZER = "finalizer.chaosblade.io"
PRE_SPEC_ANNOTATION = "preSpec"


class SpecUpdatedPredicate:
    """Lets through creations, deletions and updates that need reconciling."""

    def create(self, obj: Any) -> bool:
        if not isinstance(obj, ChaosBlade):
            return False
        logger.info("trigger create event, name: %s", obj.name)
        if obj.deletion_timestamp is not None:
            logger.info(
                "unexpected phase for cb creating, name: %s, phase: %s",
                obj.name, obj.status.phase.value,
            )
            return False
        if obj.status.phase is ClusterPhase.INITIAL:
            return True
        logger.info(
            "unexpected phase for cb creating, name: %s, phase: %s",
            obj.name, obj.status.phase.value,
        )
        return False

    def delete(self, obj: Any) -> bool:
        if not isinstance(obj, ChaosBlade):
            return False
        logger.info("trigger delete event, name: %s", obj.name)
        return CHAOSBLADE_FINALIZER in obj.finalizers

    def update(self, old: Any, new: Any) -> bool:
        """Decide on an update; a changed spec records the old one in an annotation."""
        if not isinstance(old, ChaosBlade):
            return False
        logger.info("trigger update event, name: %s", old.name)
        if not isinstance(new, ChaosBlade):
            return False
        if new.spec != old.spec:
            new.annotations = {
                PRE_SPEC_ANNOTATION: json.dumps(old.spec.to_dict(), separators=(",", ":"))
            }
            return True
        phase = new.status.phase
        if phase is ClusterPhase.INITIAL:
            return True
        if old.deletion_timestamp is None and new.deletion_timestamp is not None:
            return True
        if phase in (ClusterPhase.RUNNING, ClusterPhase.ERROR, ClusterPhase.DESTROYING):
            return False
        if phase != old.status.phase:
            return True
        if new.status != old.status:
            return True
        if new.deletion_timestamp is not None:
            if CHAOSBLADE_FINALIZER in new.finalizers:
                return True
            logger.info("cannot find the %s finalizer, skip the update event", CHAOSBLADE_FINALIZER)
            return False
        logger.info("spec not changed under %s phase, skip the update event", phase.value)
        return False

    def generic(self, obj: Any) -> bool:
        """Generic events never trigger a reconcile."""
        name = obj.name if isinstance(obj, ChaosBlade) else type(obj).__name__
        logger.debug("skip generic event, object: %s", name)
        return False