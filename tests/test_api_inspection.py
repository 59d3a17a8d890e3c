"""
HTTP API tests for the catalog, inspection and report blueprints.

Covers request parsing, principal resolution, exception → status mapping
and the full happy path: template → instance → results → sign → approve →
report layout.
"""

import io
from unittest.mock import MagicMock

import pytest

from conftest import INSPECTOR_HEADERS, REVIEWER_HEADERS
from qc_platform.ai.gateway import AnalysisResult

BASE = "/api/v1"


@pytest.fixture()
def setup_ids(client, project):
    """Phase + published template created through the API."""
    phase = client.post(f"{BASE}/phases", json={"name": "Fabrication"}).get_json()
    tpl = client.post(f"{BASE}/templates", json={
        "name": "Steel",
        "items": [
            {"code": "1.1", "title": "Plate level", "weight": 2, "is_mandatory": True},
            {"code": "1.2", "title": "Bolts", "weight": 2},
        ],
    }).get_json()
    client.post(f"{BASE}/templates/{tpl['id']}/publish")
    return {"project_id": project.id, "phase_id": phase["id"], "template_id": tpl["id"]}


@pytest.fixture()
def inspection(client, setup_ids):
    res = client.post(f"{BASE}/inspections", json=setup_ids, headers=INSPECTOR_HEADERS)
    assert res.status_code == 201
    return res.get_json()


def _set(client, inspection, code, status, **extra):
    item = next(i for i in inspection["items"] if i["code"] == code)
    return client.put(f"{BASE}/inspections/{inspection['id']}/items/{item['id']}",
                      json={"status": status, **extra}, headers=INSPECTOR_HEADERS)


class TestHealthAndErrors:
    def test_health(self, client):
        assert client.get(f"{BASE}/health").get_json()["status"] == "ok"

    def test_unknown_route_is_json_404(self, client):
        res = client.get(f"{BASE}/nothing-here")
        assert res.status_code == 404
        assert res.get_json()["error"] == "Not found"

    def test_missing_principal(self, client, setup_ids):
        res = client.post(f"{BASE}/inspections", json=setup_ids)
        assert res.status_code == 400
        assert res.get_json()["code"] == "ERR_VALIDATION_REQUIRED"

    def test_principal_from_body(self, client, setup_ids):
        body = dict(setup_ids, principal={"user_id": "body-user", "name": "Body"})
        res = client.post(f"{BASE}/inspections", json=body)
        assert res.status_code == 201
        assert res.get_json()["inspector_id"] == "body-user"

    def test_unknown_instance(self, client):
        res = client.get(f"{BASE}/inspections/999")
        assert res.status_code == 404
        assert res.get_json()["code"] == "ERR_NOT_FOUND"


class TestCatalogApi:
    def test_duplicate_phase_conflict(self, client):
        client.post(f"{BASE}/phases", json={"name": "Paint"})
        res = client.post(f"{BASE}/phases", json={"name": "Paint"})
        assert res.status_code == 409

    def test_invalid_template_code(self, client):
        res = client.post(f"{BASE}/templates", json={"name": "T", "items": [{"code": "x", "title": "a"}]})
        assert res.status_code == 422

    def test_published_template_frozen(self, client, setup_ids):
        tpl = client.get(f"{BASE}/templates/{setup_ids['template_id']}").get_json()
        res = client.put(f"{BASE}/templates/items/{tpl['items'][0]['id']}", json={"title": "new"})
        assert res.status_code == 422


class TestInspectionApi:
    def test_instantiate_payload(self, inspection):
        assert inspection["status"] == "DRAFT"
        assert inspection["allowed_actions"] == ["submit", "sign"]
        assert [i["code"] for i in inspection["items"]] == ["1.1", "1.2"]

    def test_set_result_updates_score(self, client, inspection):
        res = _set(client, inspection, "1.1", "OK", measured_value="0.5 mm")
        assert res.status_code == 200
        body = res.get_json()
        assert body["score"] == 50.0
        assert body["item"]["measured_value"] == "0.5 mm"

    def test_invalid_status_is_422(self, client, inspection):
        res = _set(client, inspection, "1.1", "GOOD")
        assert res.status_code == 422
        assert "allowed" in res.get_json()["details"]

    @pytest.mark.parametrize("value", ["abc", [1], {"v": 1}, True])
    def test_malformed_expected_version_is_400(self, client, inspection, value):
        res = _set(client, inspection, "1.1", "OK", expected_version=value)
        assert res.status_code == 400
        assert res.get_json()["code"] == "ERR_VALIDATION_INVALID"

    @pytest.mark.parametrize("status", [["OK"], {"s": "OK"}, 7])
    def test_non_string_status_is_422(self, client, inspection, status):
        res = _set(client, inspection, "1.1", status)
        assert res.status_code == 422
        assert res.get_json()["code"] == "ERR_VALIDATION_RULE"

    def test_malformed_ids_on_create(self, client, setup_ids):
        res = client.post(f"{BASE}/inspections", json=dict(setup_ids, phase_id="first"),
                          headers=INSPECTOR_HEADERS)
        assert res.status_code == 400

    def test_non_object_body(self, client, inspection):
        res = client.post(f"{BASE}/inspections/{inspection['id']}/submit", json=[1, 2],
                          headers=INSPECTOR_HEADERS)
        assert res.status_code == 422

    def test_stale_version_is_409(self, client, inspection):
        _set(client, inspection, "1.1", "OK")
        res = _set(client, inspection, "1.2", "OK", expected_version=inspection["version"])
        assert res.status_code == 409
        assert res.get_json()["code"] == "ERR_CONFLICT_CONCURRENT"

    def test_submit_lists_missing_mandatory_codes(self, client, inspection):
        res = client.post(f"{BASE}/inspections/{inspection['id']}/submit", headers=INSPECTOR_HEADERS)
        assert res.status_code == 422
        assert res.get_json()["details"]["codes"] == ["1.1"]

    def test_upload_and_delete_photo(self, client, inspection):
        item = inspection["items"][0]
        res = client.post(
            f"{BASE}/inspections/{inspection['id']}/attachments",
            data={"file": (io.BytesIO(b"\xff\xd8jpeg"), "plate.jpg"), "item_id": str(item["id"])},
            content_type="multipart/form-data",
            headers=INSPECTOR_HEADERS,
        )
        assert res.status_code == 201
        att = res.get_json()
        assert att["item_id"] == item["id"]
        assert att["media_kind"] == "PHOTO"

        res = client.delete(f"{BASE}/inspections/{inspection['id']}/attachments/{att['id']}",
                            headers=INSPECTOR_HEADERS)
        assert res.status_code == 204

    def test_upload_requires_file(self, client, inspection):
        res = client.post(f"{BASE}/inspections/{inspection['id']}/attachments",
                          data={}, content_type="multipart/form-data", headers=INSPECTOR_HEADERS)
        assert res.status_code == 400

    def test_calculate_score(self, client, inspection):
        _set(client, inspection, "1.2", "NA")
        res = client.post(f"{BASE}/inspections/{inspection['id']}/calculate-score")
        assert res.get_json()["total_weight"] == 2


class TestLifecycleApi:
    def test_full_flow(self, client, inspection, setup_ids):
        _set(client, inspection, "1.1", "OK")
        _set(client, inspection, "1.2", "NOT_OK")
        iid = inspection["id"]

        res = client.post(f"{BASE}/inspections/{iid}/sign", json={"signature_image": ""},
                          headers=INSPECTOR_HEADERS)
        assert res.status_code == 422

        res = client.post(f"{BASE}/inspections/{iid}/sign", json={"signature_image": "data:image/png;base64,AA"},
                          headers=INSPECTOR_HEADERS)
        assert res.status_code == 200
        assert res.get_json()["status"] == "SUBMITTED"
        assert res.get_json()["score"] == 50.0

        res = client.post(f"{BASE}/inspections/{iid}/reject", json={"rework": True},
                          headers=REVIEWER_HEADERS)
        assert res.status_code == 422

        res = client.post(f"{BASE}/inspections/{iid}/approve", json={"comments": "fine"},
                          headers=REVIEWER_HEADERS)
        assert res.status_code == 200
        assert res.get_json()["allowed_actions"] == []

        res = _set(client, inspection, "1.2", "OK")
        assert res.status_code == 409
        assert res.get_json()["code"] == "ERR_CONFLICT_TERMINAL"

        res = client.get(f"{BASE}/projects/{setup_ids['project_id']}/report/layout")
        assert res.status_code == 200
        plan = res.get_json()
        assert plan["page_count"] >= 1
        assert plan["page_size"]["width"] == 210.0
        kinds = {b["kind"] for page in plan["pages"] for b in page["blocks"]}
        assert {"title", "phase_heading", "table_row", "signature_card", "footer"} <= kinds

    def test_rework_flag(self, client, inspection):
        _set(client, inspection, "1.1", "OK")
        iid = inspection["id"]
        client.post(f"{BASE}/inspections/{iid}/submit", headers=INSPECTOR_HEADERS)
        res = client.post(f"{BASE}/inspections/{iid}/reject", json={"comments": "redo", "rework": True},
                          headers=REVIEWER_HEADERS)
        assert res.get_json()["status"] == "NEEDS_REWORK"
        assert _set(client, inspection, "1.2", "OK").status_code == 200

    def test_approve_draft_is_409(self, client, inspection):
        res = client.post(f"{BASE}/inspections/{inspection['id']}/approve", headers=REVIEWER_HEADERS)
        assert res.status_code == 409
        assert res.get_json()["details"]["status"] == "DRAFT"


class TestReviewQueueApi:
    def _submit(self, client, inspection, **results):
        for item in inspection["items"]:
            _set(client, inspection, item["code"], results.get(item["code"], "OK"))
        res = client.post(f"{BASE}/inspections/{inspection['id']}/submit", headers=INSPECTOR_HEADERS)
        assert res.status_code == 200

    def test_pending_queue(self, client, inspection, setup_ids):
        assert client.get(f"{BASE}/inspections/pending").get_json()["total"] == 0
        self._submit(client, inspection)

        body = client.get(f"{BASE}/inspections/pending?project_id={setup_ids['project_id']}").get_json()

        assert body["total"] == 1
        entry = body["items"][0]
        assert entry["id"] == inspection["id"]
        assert entry["statistics"]["ok_items"] == 2
        assert entry["project"]["name"] == "Steel Hall A"

    def test_pending_unknown_project_is_404(self, client):
        assert client.get(f"{BASE}/inspections/pending?project_id=9999").status_code == 404

    def test_critical_issues(self, client, inspection, setup_ids):
        _set(client, inspection, "1.1", "NOT_OK", notes="Plate out of level")
        _set(client, inspection, "1.2", "NOT_OK")

        body = client.get(f"{BASE}/critical-issues?project_id={setup_ids['project_id']}").get_json()

        assert body["total"] == 1
        issue = body["items"][0]
        assert (issue["code"], issue["issue"], issue["phase"]) == ("1.1", "Plate out of level", "Fabrication")


class TestReportApi:
    def test_metrics(self, client, inspection, setup_ids):
        _set(client, inspection, "1.1", "OK")
        res = client.get(f"{BASE}/projects/{setup_ids['project_id']}/metrics")
        assert res.get_json()["average_score"] == 50

    def test_report_without_instances_is_404(self, client, project):
        assert client.get(f"{BASE}/projects/{project.id}/report/layout").status_code == 404

    def test_analysis_failure_is_502_but_report_degrades(self, app, client, inspection, setup_ids, monkeypatch):
        gateway = MagicMock()
        gateway.analyze.return_value = AnalysisResult(error="openai: timed out", provider="openai")
        monkeypatch.setitem(app.extensions, "qc_insight_gateway", gateway)
        pid = setup_ids["project_id"]

        res = client.post(f"{BASE}/projects/{pid}/analysis", headers=INSPECTOR_HEADERS)
        assert res.status_code == 502

        res = client.get(f"{BASE}/projects/{pid}/report/layout?include_analysis=true")
        assert res.status_code == 200
        assert res.get_json()["metadata"]["analysis"]["error"] == "openai: timed out"

    def test_stored_analysis_reused(self, app, client, inspection, setup_ids, monkeypatch):
        gateway = MagicMock()
        gateway.analyze.return_value = AnalysisResult(text="Stored summary.", provider="local", model="local-stub")
        monkeypatch.setitem(app.extensions, "qc_insight_gateway", gateway)
        pid = setup_ids["project_id"]

        created = client.post(f"{BASE}/projects/{pid}/analysis", headers=INSPECTOR_HEADERS)
        assert created.status_code == 201
        analysis_id = created.get_json()["id"]

        history = client.get(f"{BASE}/projects/{pid}/analysis").get_json()
        assert [a["id"] for a in history["items"]] == [analysis_id]

        plan = client.get(f"{BASE}/projects/{pid}/report/layout?analysis_id={analysis_id}").get_json()
        assert plan["metadata"]["analysis"]["source"] == "supplied"
        assert gateway.analyze.call_count == 1
