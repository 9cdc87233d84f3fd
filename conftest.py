"""
Pytest configuration and shared fixtures.
"""
from unittest.mock import MagicMock, patch

import pytest


@pytest.fixture(autouse=True)
def mock_line():
    """Route every mock-mode LINE call in a test to one recording instance."""
    from clinic.messaging import MockMessagingService

    service = MockMessagingService()
    with patch("clinic.messaging.factory.MockMessagingService", return_value=service):
        yield service


@pytest.fixture(autouse=True)
def redis_client():
    """Redis is not available in tests; SET NX succeeds unless a test says otherwise."""
    client = MagicMock()
    client.set.return_value = True
    with patch("clinic.cache._get_client", return_value=client):
        yield client


@pytest.fixture(autouse=True)
def statsd_client():
    client = MagicMock()
    with patch("clinic.statsd_metrics._get_client", return_value=client):
        yield client


@pytest.fixture
def tenant_id(settings):
    return settings.DEFAULT_TENANT_ID


@pytest.fixture
def patient(db, tenant_id):
    from clinic.models import Patient

    return Patient.objects.create(
        tenant_id=tenant_id,
        patient_id="P0001",
        name="山田 太郎",
        line_uid="U-patient-1",
    )


@pytest.fixture
def other_patient(db, tenant_id):
    from clinic.models import Patient

    return Patient.objects.create(
        tenant_id=tenant_id,
        patient_id="P0002",
        name="佐藤 花子",
        line_uid="U-patient-2",
    )


@pytest.fixture
def make_reorder(db):
    """Create a reorder row directly, bypassing the gates."""
    from clinic.models import ReorderRequest

    def _make(patient, status="pending", reorder_number=None, product_code="MJL_5mg_1m", **extra):
        if reorder_number is None:
            reorder_number = ReorderRequest.objects.filter(patient=patient).count() + 2
        return ReorderRequest.objects.create(
            tenant_id=patient.tenant_id,
            patient=patient,
            product_code=product_code,
            reorder_number=reorder_number,
            status=status,
            **extra,
        )

    return _make


@pytest.fixture
def admin_headers(settings):
    return {"HTTP_X_ADMIN_TOKEN": settings.ADMIN_API_TOKEN}
