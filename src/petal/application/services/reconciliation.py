"""Pure reconciliation planner.

Hey future me - this is the DIFF step and it's deliberately a plain function of
(remote set, local snapshot). No I/O, no session, no clock. The engine feeds it the
complete remote set R and the LocalPairing snapshot L and then just executes the plan.
If you ever want to unit test a weird sync situation, test it here first!
"""

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from petal.domain.entities import LocalPairing


@dataclass(frozen=True)
class PlannedChange:
    """Remote item that is already paired locally but has a new change token."""

    item: Any
    pairing: LocalPairing


@dataclass(frozen=True)
class ReconciliationPlan:
    """What one sync pass has to do.

    additions and changed keep the order the remote API yielded the items in.
    """

    additions: list[Any] = field(default_factory=list)
    changed: list[PlannedChange] = field(default_factory=list)
    unchanged: list[LocalPairing] = field(default_factory=list)
    removals: list[LocalPairing] = field(default_factory=list)

    @property
    def is_noop(self) -> bool:
        return not (self.additions or self.changed or self.removals)


def plan_reconciliation(
    remote: Mapping[str, Any], local: Sequence[LocalPairing]
) -> ReconciliationPlan:
    """Compute the three-way diff between remote items and local pairings.

    Args:
        remote: Complete remote set keyed by external id. Items need a
            `change_token` attribute.
        local: Snapshot of the user's current pairings

    Returns:
        ReconciliationPlan with additions, changed, unchanged and removals
    """
    local_by_external_id: dict[str, LocalPairing] = {}
    for pairing in local:
        # Duplicate pairings can't happen with the unique constraint, first one wins anyway
        local_by_external_id.setdefault(pairing.external_id, pairing)

    additions: list[Any] = []
    changed: list[PlannedChange] = []
    unchanged: list[LocalPairing] = []

    for external_id, item in remote.items():
        pairing = local_by_external_id.get(external_id)
        if pairing is None:
            additions.append(item)
        elif pairing.change_token != item.change_token:
            changed.append(PlannedChange(item=item, pairing=pairing))
        else:
            unchanged.append(pairing)

    removals = [
        pairing
        for external_id, pairing in local_by_external_id.items()
        if external_id not in remote
    ]

    return ReconciliationPlan(
        additions=additions,
        changed=changed,
        unchanged=unchanged,
        removals=removals,
    )
