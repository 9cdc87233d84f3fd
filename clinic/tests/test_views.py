"""
HTTP surface: auth, request validation and the unified error format.
"""
import json
from unittest.mock import patch

import pytest
from django.test import Client

from clinic.celery_metrics import start_metrics_server
from clinic.models import Intake, ReorderRequest


def post_json(client, url, payload, **extra):
    return client.post(url, data=json.dumps(payload), content_type="application/json", **extra)


@pytest.mark.django_db
class TestApplyEndpoint:

    def test_apply_with_cookie(self, patient):
        client = Client()
        client.cookies["patient_id"] = patient.patient_id
        resp = post_json(client, "/api/reorder/apply/", {"product_code": "MJL_5mg_1m"})

        assert resp.status_code == 200
        data = resp.json()
        assert data["success"] is True
        assert data["data"]["reorder_number"] == 2
        assert data["data"]["status"] == "pending"

    def test_apply_with_header(self, patient):
        resp = post_json(Client(), "/api/reorder/apply/", {"product_code": "MJL_5mg_1m"}, HTTP_X_PATIENT_ID="P0001")
        assert resp.status_code == 200

    def test_line_uid_in_body_is_ignored(self, patient):
        resp = post_json(
            Client(), "/api/reorder/apply/",
            {"product_code": "MJL_5mg_1m", "line_uid": "U-someone-else"},
            HTTP_X_PATIENT_ID="P0001",
        )
        assert resp.status_code == 200
        assert ReorderRequest.objects.get(pk=resp.json()["data"]["reorder_id"]).line_uid == "U-patient-1"

    def test_line_uid_from_cookie(self, patient):
        client = Client()
        client.cookies["patient_id"] = patient.patient_id
        client.cookies["line_user_id"] = "U-from-liff"
        resp = post_json(client, "/api/reorder/apply/", {"product_code": "MJL_5mg_1m"})
        assert ReorderRequest.objects.get(pk=resp.json()["data"]["reorder_id"]).line_uid == "U-from-liff"

    def test_tenant_header_scopes_patient(self, patient):
        resp = post_json(
            Client(), "/api/reorder/apply/", {"product_code": "MJL_5mg_1m"},
            HTTP_X_PATIENT_ID="P0001", HTTP_X_TENANT_ID="another-clinic",
        )
        assert resp.status_code == 404

    def test_unauthenticated(self):
        resp = post_json(Client(), "/api/reorder/apply/", {"product_code": "MJL_5mg_1m"})
        assert resp.status_code == 401
        data = resp.json()
        assert data["success"] is False
        assert data["type"] == "auth"
        assert data["code"] == "UNAUTHORIZED"

    def test_invalid_json(self, patient):
        resp = Client().post(
            "/api/reorder/apply/", data="not json", content_type="application/json", HTTP_X_PATIENT_ID="P0001",
        )
        assert resp.status_code == 400
        data = resp.json()
        assert data["type"] == "validation"
        assert data["code"] == "INVALID_JSON"

    def test_missing_product_code(self, patient):
        resp = post_json(Client(), "/api/reorder/apply/", {}, HTTP_X_PATIENT_ID="P0001")
        assert resp.status_code == 400
        assert resp.json()["detail"]["errors"][0]["field"] == "product_code"

    def test_ng_patient_returns_403(self, patient):
        Intake.objects.create(tenant_id=patient.tenant_id, patient=patient, status="NG")
        resp = post_json(Client(), "/api/reorder/apply/", {"product_code": "MJL_5mg_1m"}, HTTP_X_PATIENT_ID="P0001")
        assert resp.status_code == 403
        data = resp.json()
        assert data["type"] == "block"
        assert data["code"] == "NG_PATIENT"

    def test_duplicate_returns_409(self, patient, make_reorder):
        make_reorder(patient, status="pending")
        resp = post_json(Client(), "/api/reorder/apply/", {"product_code": "MJL_5mg_1m"}, HTTP_X_PATIENT_ID="P0001")
        assert resp.status_code == 409
        assert resp.json()["code"] == "DUPLICATE_PENDING"

    def test_method_not_allowed(self):
        resp = Client().get("/api/reorder/apply/")
        assert resp.status_code == 405
        data = resp.json()
        assert data["type"] == "block"
        assert data["code"] == "METHOD_NOT_ALLOWED"


@pytest.mark.django_db
class TestCancelEndpoint:

    def test_cancel_own_request(self, patient, make_reorder):
        reorder = make_reorder(patient)
        resp = Client().post(f"/api/reorder/{reorder.id}/cancel/", HTTP_X_PATIENT_ID="P0001")
        assert resp.status_code == 200
        assert resp.json()["data"]["status"] == "canceled"

    def test_non_numeric_id(self, patient):
        resp = Client().post("/api/reorder/abc/cancel/", HTTP_X_PATIENT_ID="P0001")
        assert resp.status_code == 400
        assert resp.json()["code"] == "INVALID_REORDER_ID"

    def test_someone_elses_request(self, patient, other_patient, make_reorder):
        reorder = make_reorder(other_patient)
        resp = Client().post(f"/api/reorder/{reorder.id}/cancel/", HTTP_X_PATIENT_ID="P0001")
        assert resp.status_code == 404

    def test_terminal_request(self, patient, make_reorder):
        reorder = make_reorder(patient, status="paid")
        resp = Client().post(f"/api/reorder/{reorder.id}/cancel/", HTTP_X_PATIENT_ID="P0001")
        assert resp.status_code == 409
        assert resp.json()["code"] == "INVALID_STATE"


@pytest.mark.django_db
class TestAdminEndpoints:

    def test_list_requires_token(self):
        assert Client().get("/api/admin/reorders/").status_code == 401
        assert Client().get("/api/admin/reorders/", HTTP_X_ADMIN_TOKEN="wrong").status_code == 401

    def test_list(self, patient, make_reorder, admin_headers):
        reorder = make_reorder(patient)
        resp = Client().get("/api/admin/reorders/", **admin_headers)
        assert resp.status_code == 200
        assert resp.json()["data"]["results"][0]["id"] == reorder.id

    def test_approve(self, patient, make_reorder, admin_headers):
        reorder = make_reorder(patient)
        resp = post_json(Client(), "/api/admin/reorders/approve/", {"id": reorder.id}, **admin_headers)
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["status"] == "confirmed"
        assert data["skipped"] is False

    def test_approve_twice_is_skipped_not_error(self, patient, make_reorder, admin_headers):
        reorder = make_reorder(patient)
        client = Client()
        first = post_json(client, "/api/admin/reorders/approve/", {"id": reorder.id}, **admin_headers)
        assert first.json()["data"]["skipped"] is False

        resp = post_json(client, "/api/admin/reorders/approve/", {"id": str(reorder.id)}, **admin_headers)
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["skipped"] is True
        assert "confirmed" in data["message"]

    def test_reject(self, patient, make_reorder, admin_headers):
        reorder = make_reorder(patient)
        resp = post_json(Client(), "/api/admin/reorders/reject/", {"id": reorder.id, "reason": "要再診"}, **admin_headers)
        assert resp.status_code == 200
        assert ReorderRequest.objects.get(pk=reorder.pk).rejection_reason == "要再診"

    @pytest.mark.parametrize("bad_id", ["abc", "1.5", 0, -1, None, True])
    def test_invalid_id(self, bad_id, admin_headers):
        resp = post_json(Client(), "/api/admin/reorders/approve/", {"id": bad_id}, **admin_headers)
        assert resp.status_code == 400
        assert resp.json()["code"] == "INVALID_REORDER_ID"

    def test_unknown_id(self, admin_headers):
        resp = post_json(Client(), "/api/admin/reorders/approve/", {"id": 9999}, **admin_headers)
        assert resp.status_code == 404
        assert resp.json()["code"] == "NOT_FOUND"


@pytest.mark.django_db
class TestMetricsEndpoint:

    def test_exposes_prometheus_text(self):
        resp = Client().get("/metrics")
        assert resp.status_code == 200
        assert b"reorder_applied_total" in resp.content

    def test_open_reorder_gauge(self, patient, other_patient, make_reorder):
        make_reorder(patient, status="pending")
        make_reorder(other_patient, status="confirmed")
        make_reorder(other_patient, status="paid", reorder_number=3)
        body = Client().get("/metrics").content.decode()
        assert 'reorder_open{status="pending"} 1.0' in body
        assert 'reorder_open{status="confirmed"} 1.0' in body

    def test_post_not_allowed(self):
        assert Client().post("/metrics").status_code == 405


class TestWorkerMetrics:

    def test_starts_on_configured_port(self, settings):
        settings.WORKER_METRICS_PORT = 9311
        with patch("clinic.celery_metrics.start_http_server") as mock_start:
            assert start_metrics_server() == 9311
        mock_start.assert_called_once_with(9311)
