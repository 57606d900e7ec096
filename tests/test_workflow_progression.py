"""
Stage progression resolver tests.

Covers the decision rules of ``auto_progress_workflow``:
    - lowest unrepresented active stage is activated
    - an earlier represented stage that is not completed blocks progression
    - empty catalog → NoStagesConfigured
    - everything completed → WorkflowComplete
plus insert conflict handling, retry with backoff and audit isolation.
"""

from types import SimpleNamespace

import pytest
from sqlalchemy.exc import OperationalError

from packerp.core.exceptions import NotFoundError
from packerp.models import db
from packerp.models.audit import AuditLog
from packerp.models.workflow import Order, WorkflowProgress, WorkflowStage
from packerp.services import workflow_progression as wp
from packerp.services.workflow_progression import (
    IncompleteCurrentStage,
    NextStage,
    NoStagesConfigured,
    StageActivated,
    WorkflowComplete,
    auto_progress_workflow,
    resolve_next_stage,
)

PLANT_STAGES = ["Printing", "Lamination", "Adhesive Coating", "Slitting", "Packaging"]


# ═════════════════════════════════════════════════════════════════════════════
# ORM helpers
# ═════════════════════════════════════════════════════════════════════════════


def _stages(org, names=("Printing", "Lamination", "Slitting"), *, step=1, inactive=()):
    stages = []
    for i, name in enumerate(names, start=1):
        s = WorkflowStage(
            organization_id=org.id,
            stage_name=name,
            sequence_order=i * step,
            is_active=name not in inactive,
        )
        db.session.add(s)
        stages.append(s)
    db.session.flush()
    return stages


def _order(org, uiorn="UIORN-24001"):
    o = Order(organization_id=org.id, uiorn=uiorn, item_code="LAM-PET-12", order_quantity=5000)
    db.session.add(o)
    db.session.flush()
    return o


def _progress(org, order, stage, status):
    p = WorkflowProgress(
        organization_id=org.id, order_id=order.id, stage_id=stage.id, status=status,
    )
    db.session.add(p)
    db.session.flush()
    return p


def _row_count(order):
    return WorkflowProgress.query.filter_by(order_id=order.id).count()


def _locked():
    return OperationalError("INSERT INTO workflow_progress", {}, Exception("database is locked"))


# ═════════════════════════════════════════════════════════════════════════════
# Decision rules (against the database)
# ═════════════════════════════════════════════════════════════════════════════


class TestStageSelection:

    def test_new_order_starts_at_first_stage(self, organization):
        _stages(organization)
        order = _order(organization)

        result = auto_progress_workflow(organization.id, order.id)

        assert isinstance(result, StageActivated)
        assert result.stage_name == "Printing"
        assert result.sequence_order == 1
        assert result.already_existed is False
        row = db.session.get(WorkflowProgress, result.progress_id)
        assert row.status == "pending"
        assert row.progress_percentage == 0
        assert row.quality_status == "pending"
        assert row.stage_data == {}
        assert row.notes == "Auto-generated from workflow automation"

    def test_completed_first_stage_activates_second(self, organization):
        printing, _, _ = _stages(organization)
        order = _order(organization)
        _progress(organization, order, printing, "completed")

        result = auto_progress_workflow(organization.id, order.id)

        assert isinstance(result, StageActivated)
        assert result.stage_name == "Lamination"
        assert result.sequence_order == 2
        assert _row_count(order) == 2

    @pytest.mark.parametrize("step", [1, 10, 100])
    def test_lowest_unrepresented_sequence_wins(self, organization, step):
        stages = _stages(organization, PLANT_STAGES, step=step)
        order = _order(organization)
        for stage in stages[:3]:
            _progress(organization, order, stage, "completed")

        result = auto_progress_workflow(organization.id, order.id)

        assert result.stage_name == "Slitting"
        assert result.sequence_order == 4 * step

    def test_inactive_stage_is_skipped(self, organization):
        printing, _, _ = _stages(organization, inactive=("Lamination",))
        order = _order(organization)
        _progress(organization, order, printing, "completed")

        result = auto_progress_workflow(organization.id, order.id)

        assert result.stage_name == "Slitting"

    def test_progress_on_deactivated_stage_is_ignored(self, organization):
        printing, lamination, _ = _stages(organization)
        order = _order(organization)
        _progress(organization, order, printing, "completed")
        _progress(organization, order, lamination, "in_progress")
        lamination.is_active = False
        db.session.flush()

        result = auto_progress_workflow(organization.id, order.id)

        assert isinstance(result, StageActivated)
        assert result.stage_name == "Slitting"


class TestBlockedAndTerminal:

    def test_in_progress_stage_blocks(self, organization):
        printing, lamination, _ = _stages(organization)
        order = _order(organization)
        _progress(organization, order, printing, "completed")
        _progress(organization, order, lamination, "in_progress")

        result = auto_progress_workflow(organization.id, order.id)

        assert isinstance(result, IncompleteCurrentStage)
        assert result.stage_name == "Lamination"
        assert result.status == "in_progress"
        assert result.success is False
        assert result.to_response()["error"] == "INCOMPLETE_CURRENT_STAGE"
        assert _row_count(order) == 2

    def test_all_but_last_represented_with_previous_open(self, organization):
        stages = _stages(organization, PLANT_STAGES)
        order = _order(organization)
        for stage in stages[:3]:
            _progress(organization, order, stage, "completed")
        _progress(organization, order, stages[3], "in_progress")

        result = auto_progress_workflow(organization.id, order.id)

        assert isinstance(result, IncompleteCurrentStage)
        assert result.stage_name == "Slitting"
        assert _row_count(order) == 4

    def test_last_stage_in_progress_blocks_completion(self, organization):
        stages = _stages(organization)
        order = _order(organization)
        _progress(organization, order, stages[0], "completed")
        _progress(organization, order, stages[1], "completed")
        _progress(organization, order, stages[2], "in_progress")

        result = auto_progress_workflow(organization.id, order.id)

        assert isinstance(result, IncompleteCurrentStage)
        assert result.stage_name == "Slitting"

    def test_all_completed_is_workflow_complete(self, organization):
        stages = _stages(organization)
        order = _order(organization)
        for stage in stages:
            _progress(organization, order, stage, "completed")

        result = auto_progress_workflow(organization.id, order.id)

        assert isinstance(result, WorkflowComplete)
        body = result.to_response()
        assert body["success"] is True
        assert body["error"] == "WORKFLOW_COMPLETE"
        assert body["message"] == "Workflow completed - no more stages to progress to"
        assert _row_count(order) == 3

    def test_no_stages_configured(self, organization):
        order = _order(organization)

        result = auto_progress_workflow(organization.id, order.id)

        assert isinstance(result, NoStagesConfigured)
        assert result.to_response()["error"] == "NO_STAGES_CONFIGURED"
        assert _row_count(order) == 0

    def test_no_active_stages_regardless_of_progress(self, organization):
        stages = _stages(organization, inactive=("Printing", "Lamination", "Slitting"))
        order = _order(organization)
        _progress(organization, order, stages[0], "completed")

        result = auto_progress_workflow(organization.id, order.id)

        assert isinstance(result, NoStagesConfigured)

    def test_stages_of_other_organization_are_invisible(self, organization, other_organization):
        _stages(other_organization)
        order = _order(organization)

        result = auto_progress_workflow(organization.id, order.id)

        assert isinstance(result, NoStagesConfigured)


class TestOrderScope:

    def test_unknown_order(self, organization):
        _stages(organization)
        with pytest.raises(NotFoundError):
            auto_progress_workflow(organization.id, "00000000-0000-0000-0000-000000000000")

    def test_order_of_other_organization(self, organization, other_organization):
        _stages(organization)
        foreign = _order(other_organization, uiorn="UIORN-FOREIGN")
        with pytest.raises(NotFoundError):
            auto_progress_workflow(organization.id, foreign.id)


# ═════════════════════════════════════════════════════════════════════════════
# Insert conflict, retry, audit
# ═════════════════════════════════════════════════════════════════════════════


class TestInsertBehaviour:

    def test_existing_pending_row_is_returned_as_success(self, organization):
        printing, lamination, _ = _stages(organization)
        order = _order(organization)
        _progress(organization, order, printing, "completed")
        pending = _progress(organization, order, lamination, "pending")

        result = auto_progress_workflow(organization.id, order.id)

        assert isinstance(result, StageActivated)
        assert result.already_existed is True
        assert result.progress_id == pending.id
        assert result.stage_name == "Lamination"
        assert _row_count(order) == 2
        assert "already activated" in result.to_response()["message"]

    def test_repeated_calls_create_one_row(self, organization):
        _stages(organization)
        order = _order(organization)

        first = auto_progress_workflow(organization.id, order.id)
        second = auto_progress_workflow(organization.id, order.id)

        assert first.progress_id == second.progress_id
        assert second.already_existed is True
        assert _row_count(order) == 1

    def test_transient_failures_are_retried_with_backoff(self, app, organization, monkeypatch):
        _stages(organization)
        order = _order(organization)
        monkeypatch.setitem(app.config, "WORKFLOW_INSERT_RETRY_BASE_DELAY", 2.0)

        delays = []
        monkeypatch.setattr(wp, "_sleep", delays.append)
        real_insert = wp._insert_progress
        calls = {"n": 0}

        def flaky_insert(*args):
            calls["n"] += 1
            if calls["n"] <= 2:
                raise _locked()
            return real_insert(*args)

        monkeypatch.setattr(wp, "_insert_progress", flaky_insert)

        result = auto_progress_workflow(organization.id, order.id)

        assert isinstance(result, StageActivated)
        assert calls["n"] == 3
        assert delays == [2.0, 4.0]
        assert _row_count(order) == 1

    def test_gives_up_after_three_retries(self, app, organization, monkeypatch):
        _stages(organization)
        order = _order(organization)
        monkeypatch.setitem(app.config, "WORKFLOW_INSERT_RETRY_BASE_DELAY", 2.0)

        delays = []
        monkeypatch.setattr(wp, "_sleep", delays.append)
        calls = {"n": 0}

        def always_locked(*args):
            calls["n"] += 1
            raise _locked()

        monkeypatch.setattr(wp, "_insert_progress", always_locked)

        with pytest.raises(OperationalError):
            auto_progress_workflow(organization.id, order.id)

        assert calls["n"] == 4
        assert delays == [2.0, 4.0, 8.0]

    def test_activation_is_audited(self, organization):
        _stages(organization)
        order = _order(organization)

        result = auto_progress_workflow(organization.id, order.id, actor="editor:abc")

        log = AuditLog.query.filter_by(action="workflow.auto_progress").one()
        assert log.entity_type == "workflow_progress"
        assert log.entity_id == result.progress_id
        assert log.organization_id == organization.id
        assert log.actor == "editor:abc"
        assert log.diff["old"] is None
        assert log.diff["new"]["status"] == "pending"
        assert log.diff["metadata"] == {
            "order_id": order.id,
            "stage_name": "Printing",
            "sequence_order": 1,
        }

    def test_audit_failure_does_not_fail_activation(self, organization, monkeypatch):
        _stages(organization)
        order = _order(organization)

        def broken_audit(**kwargs):
            raise RuntimeError("audit sink down")

        monkeypatch.setattr(wp, "write_audit", broken_audit)

        result = auto_progress_workflow(organization.id, order.id)

        assert isinstance(result, StageActivated)
        assert db.session.get(WorkflowProgress, result.progress_id) is not None
        assert AuditLog.query.count() == 0

    def test_conflict_is_not_audited_again(self, organization):
        _stages(organization)
        order = _order(organization)

        auto_progress_workflow(organization.id, order.id)
        auto_progress_workflow(organization.id, order.id)

        assert AuditLog.query.filter_by(action="workflow.auto_progress").count() == 1


# ═════════════════════════════════════════════════════════════════════════════
# Pure decision function
# ═════════════════════════════════════════════════════════════════════════════


def _s(seq, name=None):
    return SimpleNamespace(id=f"stage-{seq}", sequence_order=seq, stage_name=name or f"S{seq}")


def _p(stage, status):
    return SimpleNamespace(stage=stage, status=status)


class TestResolveNextStage:

    def test_empty_catalog_ignores_progress(self):
        ghost = _s(1)
        assert isinstance(resolve_next_stage([], [_p(ghost, "completed")]), NoStagesConfigured)

    def test_duplicate_rows_completed_wins(self):
        s1, s2 = _s(1), _s(2)
        decision = resolve_next_stage([s1, s2], [_p(s1, "in_progress"), _p(s1, "completed")])
        assert isinstance(decision, NextStage)
        assert decision.stage is s2

    def test_lowest_blocking_stage_is_reported(self):
        s1, s2, s3 = _s(1), _s(2), _s(3)
        decision = resolve_next_stage(
            [s1, s2, s3], [_p(s1, "in_progress"), _p(s2, "in_progress"), _p(s3, "completed")],
        )
        assert isinstance(decision, IncompleteCurrentStage)
        assert decision.sequence_order == 1

    def test_open_stage_after_candidate_does_not_block(self):
        s1, s2, s3 = _s(1), _s(2), _s(3)
        decision = resolve_next_stage([s1, s2, s3], [_p(s1, "completed"), _p(s3, "in_progress")])
        assert isinstance(decision, NextStage)
        assert decision.stage is s2

    @pytest.mark.parametrize("n", [1, 2, 5])
    def test_all_completed(self, n):
        stages = [_s(i) for i in range(1, n + 1)]
        decision = resolve_next_stage(stages, [_p(s, "completed") for s in stages])
        assert isinstance(decision, WorkflowComplete)
