"""
HTTP contract tests for POST /api/v1/workflow-automation.

Status mapping:
    StageActivated 200 · WorkflowComplete 200 · IncompleteCurrentStage 409
    NoStagesConfigured 422 · bad request 400 · unknown org/order 404
    checkpoint created 201 · unexpected failure 500
"""

import pytest

from packerp.blueprints import workflow_automation_bp as bp_module
from packerp.models import db
from packerp.models.quality import QualityInspection
from packerp.models.workflow import Order, WorkflowProgress, WorkflowStage

URL = "/api/v1/workflow-automation"


def _seed(org, statuses=()):
    """Create three stages and one order; ``statuses`` seeds progress in stage order."""
    stages = []
    for i, name in enumerate(["Printing", "Lamination", "Slitting"], start=1):
        s = WorkflowStage(organization_id=org.id, stage_name=name, sequence_order=i)
        db.session.add(s)
        stages.append(s)
    order = Order(organization_id=org.id, uiorn="UIORN-24105", item_code="LAM-BOPP-20",
                  order_quantity=8000)
    db.session.add(order)
    db.session.flush()
    for stage, status in zip(stages, statuses):
        db.session.add(WorkflowProgress(organization_id=org.id, order_id=order.id,
                                        stage_id=stage.id, status=status))
    db.session.commit()
    return stages, order


def _post(client, action, org_id, data=None):
    body = {"action": action, "organizationId": org_id}
    if data is not None:
        body["data"] = data
    return client.post(URL, json=body)


class TestAutoProgress:

    def test_activates_first_stage(self, client, organization):
        _, order = _seed(organization)

        res = _post(client, "auto_progress_workflow", organization.id, {"orderId": order.id})

        assert res.status_code == 200
        body = res.get_json()
        assert body["success"] is True
        assert body["nextStage"] == "Printing"
        assert body["sequenceOrder"] == 1
        assert db.session.get(WorkflowProgress, body["progressId"]).status == "pending"

    def test_activation_is_committed(self, client, organization):
        _, order = _seed(organization)

        res = _post(client, "auto_progress_workflow", organization.id, {"orderId": order.id})
        db.session.rollback()

        assert db.session.get(WorkflowProgress, res.get_json()["progressId"]) is not None

    def test_incomplete_stage_conflict(self, client, organization):
        _, order = _seed(organization, ["completed", "in_progress"])

        res = _post(client, "auto_progress_workflow", organization.id, {"orderId": order.id})

        assert res.status_code == 409
        body = res.get_json()
        assert body["error"] == "INCOMPLETE_CURRENT_STAGE"
        assert body["currentStage"] == "Lamination"

    def test_workflow_complete(self, client, organization):
        _, order = _seed(organization, ["completed"] * 3)

        res = _post(client, "auto_progress_workflow", organization.id, {"orderId": order.id})

        assert res.status_code == 200
        assert res.get_json()["error"] == "WORKFLOW_COMPLETE"

    def test_no_stages_configured(self, client, organization):
        order = Order(organization_id=organization.id, uiorn="UIORN-1", item_code="X",
                      order_quantity=1)
        db.session.add(order)
        db.session.commit()

        res = _post(client, "auto_progress_workflow", organization.id, {"orderId": order.id})

        assert res.status_code == 422
        assert res.get_json()["error"] == "NO_STAGES_CONFIGURED"

    def test_missing_order_id(self, client, organization):
        res = _post(client, "auto_progress_workflow", organization.id, {})
        assert res.status_code == 400
        assert res.get_json()["details"] == {"missing": ["orderId"]}

    def test_unknown_order(self, client, organization):
        _seed(organization)
        res = _post(client, "auto_progress_workflow", organization.id, {"orderId": "nope"})
        assert res.status_code == 404

    def test_order_of_other_organization(self, client, organization, other_organization):
        _, order = _seed(other_organization)
        res = _post(client, "auto_progress_workflow", organization.id, {"orderId": order.id})
        assert res.status_code == 404

    def test_unexpected_failure_returns_500(self, client, organization, monkeypatch):
        _, order = _seed(organization)

        def boom(*args, **kwargs):
            raise RuntimeError("connection reset")

        monkeypatch.setattr(bp_module, "auto_progress_workflow", boom)

        res = _post(client, "auto_progress_workflow", organization.id, {"orderId": order.id})

        assert res.status_code == 500
        assert res.get_json() == {"error": "connection reset"}


class TestEnvelope:

    @pytest.mark.parametrize("action", [
        None, "", "delete_order", "AUTO_PROGRESS_WORKFLOW", ["auto_progress_workflow"], {},
    ])
    def test_invalid_action(self, client, organization, action):
        res = client.post(URL, json={"action": action, "organizationId": organization.id})
        assert res.status_code == 400
        body = res.get_json()
        assert body["error"] == "Invalid action"
        assert body["code"] == "ERR_INVALID_ACTION"

    @pytest.mark.parametrize("action,data", [
        ("auto_progress_workflow", {"orderId": {"id": "o"}}),
        ("auto_progress_workflow", {"orderId": 42}),
        ("validate_stage_transition", {"fromStageId": "s-1", "orderId": ["o-1"]}),
        ("validate_stage_transition", {"fromStageId": {"id": "s"}, "orderId": "o-1"}),
        ("create_quality_checkpoints", {"stageId": ["s"], "orderId": "o-1"}),
        ("create_quality_checkpoints", {"stageId": "s-1", "orderId": "   "}),
    ])
    def test_non_string_ids_rejected(self, client, organization, action, data):
        res = _post(client, action, organization.id, data)

        assert res.status_code == 400
        body = res.get_json()
        assert body["code"] == "ERR_VALIDATION_INVALID"
        assert "SQL" not in body["error"]

    def test_non_string_organization_rejected(self, client):
        res = _post(client, "auto_progress_workflow", {"id": "org"}, {"orderId": "o-1"})
        assert res.status_code == 400

    def test_non_object_body(self, client):
        res = client.post(URL, json=["auto_progress_workflow"])
        assert res.status_code == 400

    def test_missing_organization(self, client):
        res = client.post(URL, json={"action": "auto_progress_workflow", "data": {}})
        assert res.status_code == 400

    def test_unknown_organization(self, client):
        res = _post(client, "auto_progress_workflow", "missing-org", {"orderId": "x"})
        assert res.status_code == 404

    def test_inactive_organization(self, client, organization):
        organization.is_active = False
        db.session.commit()
        res = _post(client, "auto_progress_workflow", organization.id, {"orderId": "x"})
        assert res.status_code == 404

    def test_non_json_content_type_rejected(self, client, organization):
        res = client.post(URL, data="action=auto_progress_workflow",
                          content_type="application/x-www-form-urlencoded")
        assert res.status_code == 415


class TestValidateTransition:

    def test_allowed(self, client, organization):
        stages, order = _seed(organization)
        db.session.add(QualityInspection(organization_id=organization.id, order_id=order.id,
                                         stage_id=stages[0].id, overall_result="passed"))
        db.session.commit()

        res = _post(client, "validate_stage_transition", organization.id, {
            "fromStageId": stages[0].id, "toStageId": stages[1].id, "orderId": order.id,
        })

        assert res.status_code == 200
        assert res.get_json() == {"canTransition": True, "reason": "Transition allowed"}

    def test_blocked_still_returns_200(self, client, organization):
        stages, order = _seed(organization)

        res = _post(client, "validate_stage_transition", organization.id, {
            "fromStageId": stages[0].id, "toStageId": stages[1].id, "orderId": order.id,
        })

        assert res.status_code == 200
        assert res.get_json()["canTransition"] is False

    def test_missing_fields(self, client, organization):
        res = _post(client, "validate_stage_transition", organization.id, {"orderId": "x"})
        assert res.status_code == 400


class TestCreateCheckpoints:

    def test_created(self, client, organization):
        stages, order = _seed(organization)

        res = _post(client, "create_quality_checkpoints", organization.id, {
            "stageId": stages[1].id, "orderId": order.id, "checkType": "post_stage",
        })

        assert res.status_code == 201
        body = res.get_json()
        assert body["success"] is True
        assert body["checkType"] == "post_stage"
        assert db.session.get(QualityInspection, body["checkpointId"]).overall_result == "pending"

    def test_default_check_type(self, client, organization):
        stages, order = _seed(organization)
        res = _post(client, "create_quality_checkpoints", organization.id, {
            "stageId": stages[0].id, "orderId": order.id,
        })
        assert res.get_json()["checkType"] == "pre_stage"

    def test_invalid_check_type(self, client, organization):
        stages, order = _seed(organization)
        res = _post(client, "create_quality_checkpoints", organization.id, {
            "stageId": stages[0].id, "orderId": order.id, "checkType": "final",
        })
        assert res.status_code == 422

    def test_unknown_stage(self, client, organization):
        _, order = _seed(organization)
        res = _post(client, "create_quality_checkpoints", organization.id, {
            "stageId": "nope", "orderId": order.id,
        })
        assert res.status_code == 404
