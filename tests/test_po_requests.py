"""
PO requests — stage-tracked purchase requests with an activity log.
"""

import pytest

from po_tracker.core.exceptions import ValidationError
from po_tracker.models.audit import AuditLog
from po_tracker.models.po_request import PO_STAGES, PORequest
from po_tracker.services import po_request_service


def _make_request(actor, **overrides):
    data = {"it_ref_no": "IT-100", "title": "Docking stations", "capex_opex": "CAPEX"}
    data.update(overrides)
    return po_request_service.create_po_request(data, actor)


class TestCreate:
    def test_defaults(self, regular_user):
        po = _make_request(regular_user)
        assert po.stage == "QUOTATION_COLLECTING"
        assert po.currency == "MYR"
        assert po.next_action == "Get quotations"
        assert po.owner_role == "INTERN"
        assert po.priority == "MED"
        assert po.amount is None

        log = AuditLog.query.filter_by(entity_type="po_request", entity_id=str(po.id)).one()
        assert (log.action, log.to_value, log.actor) == ("Created", "QUOTATION_COLLECTING", "intern")

    def test_amount_coerced(self, regular_user):
        assert _make_request(regular_user, amount="1234.5").amount == 1234.5

    @pytest.mark.parametrize("missing", ["it_ref_no", "title", "capex_opex"])
    def test_required_fields(self, regular_user, missing):
        with pytest.raises(ValidationError):
            _make_request(regular_user, **{missing: ""})

    def test_invalid_category(self, regular_user):
        with pytest.raises(ValidationError):
            _make_request(regular_user, capex_opex="MAYBE")


class TestListAndMeta:
    def test_filters_and_search(self, regular_user):
        _make_request(regular_user, vendor="Dell", it_ref_no="IT-1")
        _make_request(regular_user, vendor="HP", it_ref_no="IT-2", capex_opex="OPEX")
        _make_request(regular_user, vendor="Dell", it_ref_no="IT-3", title="Monitors")

        assert len(po_request_service.list_po_requests(vendor="Dell")) == 2
        assert len(po_request_service.list_po_requests(capex_opex="OPEX")) == 1
        assert [p.it_ref_no for p in po_request_service.list_po_requests(q="monit")] == ["IT-3"]

    def test_sort_whitelist_and_direction(self, regular_user):
        _make_request(regular_user, it_ref_no="IT-2")
        _make_request(regular_user, it_ref_no="IT-1")
        rows = po_request_service.list_po_requests(sort="it_ref_no", direction="asc")
        assert [p.it_ref_no for p in rows] == ["IT-1", "IT-2"]
        # Unknown column falls back to updated_at
        assert len(po_request_service.list_po_requests(sort="password; drop")) == 2

    @pytest.mark.parametrize("limit,expected", [("1", 1), ("-5", 1), ("abc", 3), ("0", 3), (99999, 3)])
    def test_limit_clamped(self, regular_user, limit, expected):
        for i in range(3):
            _make_request(regular_user, it_ref_no=f"IT-{i}")
        assert len(po_request_service.list_po_requests(limit=limit)) == expected

    def test_meta(self, regular_user):
        _make_request(regular_user, vendor="Lenovo")
        _make_request(regular_user, vendor="Dell")
        _make_request(regular_user, vendor="Dell")
        _make_request(regular_user, vendor="")
        meta = po_request_service.get_meta()
        assert meta["stages"] == list(PO_STAGES)
        assert meta["vendors"] == ["Dell", "Lenovo"]


class TestMutations:
    def test_update_whitelisted_fields(self, regular_user):
        po = _make_request(regular_user)
        po_request_service.update_po_request(
            po.id, {"vendor": "Acme", "amount": "", "stage": "CLOSED", "note": "quote in"}, regular_user,
        )
        assert po.vendor == "Acme"
        assert po.amount is None
        assert po.stage == "QUOTATION_COLLECTING"

        log = AuditLog.query.filter_by(action="Updated fields").one()
        assert log.note == "quote in"

    def test_update_without_valid_fields(self, regular_user):
        po = _make_request(regular_user)
        with pytest.raises(ValidationError):
            po_request_service.update_po_request(po.id, {"stage": "CLOSED"}, regular_user)

    def test_update_invalid_category(self, regular_user):
        po = _make_request(regular_user)
        with pytest.raises(ValidationError):
            po_request_service.update_po_request(po.id, {"capex_opex": "X"}, regular_user)

    def test_move_stage_records_transition(self, regular_user):
        po = _make_request(regular_user)
        po_request_service.move_stage(po.id, "FORM_DRAFTING", regular_user, note="forms out")
        assert po.stage == "FORM_DRAFTING"

        detail = po_request_service.get_po_request(po.id)
        latest = detail["logs"][0]
        assert latest["action"] == "Stage changed"
        assert (latest["from_value"], latest["to_value"]) == ("QUOTATION_COLLECTING", "FORM_DRAFTING")
        assert latest["note"] == "forms out"
        assert len(detail["logs"]) == 2

    def test_move_stage_invalid(self, regular_user):
        po = _make_request(regular_user)
        with pytest.raises(ValidationError):
            po_request_service.move_stage(po.id, "TELEPORTED", regular_user)


class TestPORequestAPI:
    def test_full_flow(self, client, regular_user, auth_headers):
        headers = auth_headers(regular_user)
        res = client.post(
            "/api/v1/po-requests",
            json={"it_ref_no": "IT-5", "title": "Headsets", "capex_opex": "OPEX", "vendor": "Jabra"},
            headers=headers,
        )
        assert res.status_code == 201
        po_id = res.get_json()["id"]

        res = client.post(
            f"/api/v1/po-requests/{po_id}/move-stage", json={"to_stage": "SIGNED_PENDING"}, headers=headers,
        )
        assert res.get_json() == {"ok": True}

        res = client.patch(f"/api/v1/po-requests/{po_id}", json={"amount": 99}, headers=headers)
        assert res.status_code == 200

        detail = client.get(f"/api/v1/po-requests/{po_id}", headers=headers).get_json()
        assert detail["po"]["stage"] == "SIGNED_PENDING"
        assert detail["po"]["amount"] == 99.0
        assert [log["action"] for log in detail["logs"]] == ["Updated fields", "Stage changed", "Created"]

        rows = client.get("/api/v1/po-requests?stage=SIGNED_PENDING", headers=headers).get_json()
        assert [r["id"] for r in rows] == [po_id]

        meta = client.get("/api/v1/po-requests/meta", headers=headers).get_json()
        assert meta["vendors"] == ["Jabra"]

    def test_invalid_stage_is_400(self, client, regular_user, auth_headers):
        headers = auth_headers(regular_user)
        po = _make_request(regular_user)
        res = client.post(f"/api/v1/po-requests/{po.id}/move-stage", json={"to_stage": "NOPE"}, headers=headers)
        assert res.status_code == 400

    def test_unknown_request_is_404(self, client, regular_user, auth_headers):
        res = client.get("/api/v1/po-requests/999", headers=auth_headers(regular_user))
        assert res.status_code == 404

    def test_requires_auth(self, client):
        res = client.post("/api/v1/po-requests", json={"it_ref_no": "IT-1", "title": "x", "capex_opex": "CAPEX"})
        assert res.status_code == 401
        assert PORequest.query.count() == 0

    @pytest.mark.parametrize("body", [
        {"title": 123},
        {"vendor": "Acme", "note": 5},
        {"vendor": ["Acme"]},
    ])
    def test_patch_with_non_string_values_is_400(self, client, regular_user, auth_headers, body):
        po = _make_request(regular_user)
        res = client.patch(f"/api/v1/po-requests/{po.id}", json=body, headers=auth_headers(regular_user))
        assert res.status_code == 400
        assert res.get_json()["code"] == "ERR_VALIDATION_INVALID"

        assert po.title == "Docking stations"
        assert po.vendor is None
        assert AuditLog.query.filter_by(action="Updated fields").count() == 0

    @pytest.mark.parametrize("body", [
        {"to_stage": "CLOSED", "note": 5},
        {"to_stage": 7},
    ])
    def test_move_stage_with_non_string_values_is_400(self, client, regular_user, auth_headers, body):
        po = _make_request(regular_user)
        res = client.post(f"/api/v1/po-requests/{po.id}/move-stage", json=body, headers=auth_headers(regular_user))
        assert res.status_code == 400
        assert po.stage == "QUOTATION_COLLECTING"
        assert AuditLog.query.filter_by(action="Stage changed").count() == 0

    def test_create_with_numeric_title_is_400(self, client, regular_user, auth_headers):
        res = client.post(
            "/api/v1/po-requests",
            json={"it_ref_no": "IT-1", "title": 42, "capex_opex": "CAPEX"},
            headers=auth_headers(regular_user),
        )
        assert res.status_code == 400
        assert PORequest.query.count() == 0
