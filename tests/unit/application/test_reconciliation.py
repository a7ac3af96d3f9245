"""Tests for the pure reconciliation planner."""

from petal.application.services.reconciliation import plan_reconciliation
from petal.domain.dtos import PlaylistDTO
from petal.domain.entities import LocalPairing, RelationKind


def _remote(*items: PlaylistDTO) -> dict[str, PlaylistDTO]:
    return {item.external_id: item for item in items}


def _pairing(external_id: str, token: str) -> LocalPairing:
    return LocalPairing(
        entity_id=f"entity-{external_id}",
        external_id=external_id,
        change_token=token,
        relation_kind=RelationKind.SUBSCRIBER,
    )


class TestPlanReconciliation:
    """Three-way diff of remote set vs local snapshot."""

    def test_empty_both_sides_is_noop(self):
        plan = plan_reconciliation({}, [])
        assert plan.is_noop
        assert plan.unchanged == []

    def test_first_sync_adds_everything(self):
        remote = _remote(
            PlaylistDTO(external_id="A", name="a", snapshot_id="s1"),
            PlaylistDTO(external_id="B", name="b", snapshot_id="s1"),
        )

        plan = plan_reconciliation(remote, [])

        assert [item.external_id for item in plan.additions] == ["A", "B"]
        assert plan.changed == []
        assert plan.removals == []

    def test_mixed_add_change_keep_remove(self):
        # Local: A(s1) B(s1) C(s1). Remote: A(s1) B(s2) D(s1).
        local = [_pairing("A", "s1"), _pairing("B", "s1"), _pairing("C", "s1")]
        remote = _remote(
            PlaylistDTO(external_id="A", name="a", snapshot_id="s1"),
            PlaylistDTO(external_id="B", name="b", snapshot_id="s2"),
            PlaylistDTO(external_id="D", name="d", snapshot_id="s1"),
        )

        plan = plan_reconciliation(remote, local)

        assert [item.external_id for item in plan.additions] == ["D"]
        assert [change.item.external_id for change in plan.changed] == ["B"]
        assert plan.changed[0].pairing.entity_id == "entity-B"
        assert [pairing.external_id for pairing in plan.unchanged] == ["A"]
        assert [pairing.external_id for pairing in plan.removals] == ["C"]
        assert not plan.is_noop

    def test_empty_remote_removes_everything(self):
        local = [_pairing("A", "s1"), _pairing("B", "s1")]

        plan = plan_reconciliation({}, local)

        assert {pairing.external_id for pairing in plan.removals} == {"A", "B"}
        assert plan.additions == []

    def test_steady_state_is_noop(self):
        local = [_pairing("A", "s1")]
        remote = _remote(PlaylistDTO(external_id="A", name="a", snapshot_id="s1"))

        plan = plan_reconciliation(remote, local)

        assert plan.is_noop
        assert len(plan.unchanged) == 1

    def test_missing_local_token_counts_as_changed(self):
        local = [
            LocalPairing(
                entity_id="e",
                external_id="A",
                change_token=None,
                relation_kind=RelationKind.OWNER,
            )
        ]
        remote = _remote(PlaylistDTO(external_id="A", name="a", snapshot_id="s1"))

        plan = plan_reconciliation(remote, local)

        assert len(plan.changed) == 1
