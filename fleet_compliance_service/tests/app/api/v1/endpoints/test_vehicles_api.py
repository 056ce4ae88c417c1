import datetime
import pytest
from unittest.mock import AsyncMock, MagicMock, patch, ANY

from fastapi.testclient import TestClient
from fleet_compliance_service.app.main import app
from fleet_compliance_service.app.models import DocumentRecord, DocumentStatus, VehicleDB, VerificationStatus
from fleet_compliance_service.app.service.cascade.propagator import CascadeResult, MirrorWriteWarning
from fleet_compliance_service.app.service.events.models import DecisionScope
from fleet_compliance_service.app.service.exceptions import (
    ConcurrencyConflictError,
    DocumentNotFoundError,
    ExpiringSoonUnacknowledgedError,
    PrimaryWriteFailedError,
    ValidationBlockedError,
    VehicleNotFoundError,
)
from fleet_compliance_service.app.service.interfaces.clock import FixedClock
from fleet_compliance_service.app.service.rules.engine import VerificationDecision
from fleet_compliance_service.infrastructure.clock import get_clock
from fleet_compliance_service.infrastructure.database.connection import get_db

ENDPOINTS = "fleet_compliance_service.app.api.v1.endpoints.vehicles"
NOW = datetime.datetime(2025, 6, 1, 12, 0, tzinfo=datetime.UTC)
VEHICLE_ID = "veh-1"

# --- Fixtures ---

@pytest.fixture
def mock_db():
    return MagicMock()

@pytest.fixture
def client(mock_db):
    app.dependency_overrides = {}
    app.dependency_overrides[get_db] = lambda: mock_db
    app.dependency_overrides[get_clock] = lambda: FixedClock(NOW)
    yield TestClient(app)
    app.dependency_overrides = {}

def sample_vehicle(**overrides) -> VehicleDB:
    data = dict(
        id=VEHICLE_ID,
        name="Prius",
        registration_number="AB12 CDE",
        documents={"mot_certificate": DocumentRecord(url="u", expiry_date=NOW + datetime.timedelta(days=5))},
    )
    data.update(overrides)
    return VehicleDB(**data)

def sample_result(scope=DecisionScope.VEHICLE, **overrides) -> CascadeResult:
    return CascadeResult(vehicle_id=VEHICLE_ID, scope=scope, vehicle=sample_vehicle(**overrides))

# --- Reads ---

@patch(f"{ENDPOINTS}.vehicle_store.list_vehicles", new_callable=AsyncMock)
def test_list_vehicles_by_status(mock_list: AsyncMock, client: TestClient, mock_db):
    mock_list.return_value = [sample_vehicle()]

    response = client.get("/api/v1/vehicles", params={"verification_status": "pending"})

    assert response.status_code == 200
    assert [v["id"] for v in response.json()] == [VEHICLE_ID]
    mock_list.assert_awaited_once_with(mock_db, verification_status=VerificationStatus.PENDING)

@patch(f"{ENDPOINTS}.vehicle_store.list_vehicles", new_callable=AsyncMock)
def test_verification_stats(mock_list: AsyncMock, client: TestClient):
    mock_list.return_value = [
        sample_vehicle(),
        sample_vehicle(id="veh-2", document_verification_status=VerificationStatus.APPROVED, visible_on_platform=True),
    ]

    response = client.get("/api/v1/vehicles/stats")

    assert response.status_code == 200
    assert response.json() == {"total": 2, "pending": 1, "approved": 1, "rejected": 0, "visible": 1}

@patch(f"{ENDPOINTS}.vehicle_store.list_vehicles", new_callable=AsyncMock)
def test_expiring_documents_report(mock_list: AsyncMock, client: TestClient):
    mock_list.return_value = [sample_vehicle()]

    response = client.get("/api/v1/vehicles/expiring-documents")

    assert response.status_code == 200
    body = response.json()
    assert len(body) == 1
    assert body[0]["document_type"] == "mot_certificate"
    assert body[0]["label"] == "MOT Certificate"
    assert body[0]["days_until_expiry"] == 5
    assert body[0]["urgency"] == "URGENT"

@patch(f"{ENDPOINTS}.vehicle_store.get_vehicle", new_callable=AsyncMock)
def test_get_vehicle_not_found(mock_get: AsyncMock, client: TestClient):
    mock_get.side_effect = VehicleNotFoundError("ghost")
    response = client.get("/api/v1/vehicles/ghost")
    assert response.status_code == 404

@patch(f"{ENDPOINTS}.handle_evaluate_vehicle_approval", new_callable=AsyncMock)
def test_approval_check(mock_evaluate: AsyncMock, client: TestClient):
    mock_evaluate.return_value = VerificationDecision(
        vehicle_id=VEHICLE_ID, evaluated_at=NOW, allowed=True, expiring_soon=["mot_certificate"]
    )

    response = client.get(f"/api/v1/vehicles/{VEHICLE_ID}/approval-check")

    assert response.status_code == 200
    assert response.json()["expiring_soon"] == ["mot_certificate"]
    assert mock_evaluate.await_args.kwargs["clock"].now() == NOW

# --- Approve ---

@patch(f"{ENDPOINTS}.handle_approve_vehicle", new_callable=AsyncMock)
def test_approve_vehicle(mock_approve: AsyncMock, client: TestClient, mock_db):
    result = sample_result(document_verification_status=VerificationStatus.APPROVED, visible_on_platform=True)
    result.mirror_warnings.append(MirrorWriteWarning(mirror="documents", row_id="row-2", error="timeout"))
    mock_approve.return_value = result

    response = client.post(
        f"/api/v1/vehicles/{VEHICLE_ID}/approve",
        json={"actor_id": "ops-admin", "acknowledge_expiring": True},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["vehicle"]["document_verification_status"] == "approved"
    assert body["has_warnings"] is True
    cmd = mock_approve.await_args.args[1]
    assert cmd.vehicle_id == VEHICLE_ID
    assert cmd.actor_id == "ops-admin"
    assert cmd.acknowledge_expiring is True
    mock_approve.assert_awaited_once_with(mock_db, ANY, clock=ANY)

@patch(f"{ENDPOINTS}.handle_approve_vehicle", new_callable=AsyncMock)
def test_approve_without_body_uses_defaults(mock_approve: AsyncMock, client: TestClient):
    mock_approve.return_value = sample_result()

    response = client.post(f"/api/v1/vehicles/{VEHICLE_ID}/approve")

    assert response.status_code == 200
    cmd = mock_approve.await_args.args[1]
    assert cmd.acknowledge_expiring is False
    assert cmd.actor_id == "admin"

@patch(f"{ENDPOINTS}.handle_approve_vehicle", new_callable=AsyncMock)
def test_approve_blocked(mock_approve: AsyncMock, client: TestClient):
    mock_approve.side_effect = ValidationBlockedError(VEHICLE_ID, ["private_hire_license"], ["mot_certificate"])

    response = client.post(f"/api/v1/vehicles/{VEHICLE_ID}/approve", json={})

    assert response.status_code == 422
    detail = response.json()["detail"]
    assert detail["blocking_reasons"] == ["private_hire_license"]
    assert detail["expired"] == ["mot_certificate"]
    assert detail["labels"]["mot_certificate"] == "MOT Certificate"

@patch(f"{ENDPOINTS}.handle_approve_vehicle", new_callable=AsyncMock)
def test_approve_expiring_unacknowledged(mock_approve: AsyncMock, client: TestClient):
    mock_approve.side_effect = ExpiringSoonUnacknowledgedError(VEHICLE_ID, ["mot_certificate"])

    response = client.post(f"/api/v1/vehicles/{VEHICLE_ID}/approve", json={})

    assert response.status_code == 409
    assert response.json()["detail"]["expiring_soon"] == ["mot_certificate"]

@pytest.mark.parametrize("error, status_code", [
    (VehicleNotFoundError(VEHICLE_ID), 404),
    (ConcurrencyConflictError(VEHICLE_ID, 1, 2), 409),
    (PrimaryWriteFailedError(VEHICLE_ID, "update", "not primary"), 503),
    (RuntimeError("boom"), 500),
])
def test_approve_error_mapping(error, status_code, client: TestClient):
    with patch(f"{ENDPOINTS}.handle_approve_vehicle", new_callable=AsyncMock, side_effect=error):
        response = client.post(f"/api/v1/vehicles/{VEHICLE_ID}/approve", json={})
    assert response.status_code == status_code

# --- Reject / document decisions ---

@patch(f"{ENDPOINTS}.handle_reject_vehicle", new_callable=AsyncMock)
def test_reject_vehicle(mock_reject: AsyncMock, client: TestClient):
    mock_reject.return_value = sample_result(
        document_verification_status=VerificationStatus.REJECTED, rejection_reason="Wrong plates"
    )

    response = client.post(f"/api/v1/vehicles/{VEHICLE_ID}/reject", json={"actor_id": "ops", "reason": "Wrong plates"})

    assert response.status_code == 200
    assert response.json()["vehicle"]["rejection_reason"] == "Wrong plates"
    assert mock_reject.await_args.args[1].reason == "Wrong plates"

def test_reject_requires_reason(client: TestClient):
    response = client.post(f"/api/v1/vehicles/{VEHICLE_ID}/reject", json={"actor_id": "ops"})
    assert response.status_code == 422

@patch(f"{ENDPOINTS}.handle_decide_document", new_callable=AsyncMock)
def test_decide_document(mock_decide: AsyncMock, client: TestClient):
    mock_decide.return_value = sample_result(scope=DecisionScope.DOCUMENT)

    response = client.put(
        f"/api/v1/vehicles/{VEHICLE_ID}/documents/mot_certificate/status",
        json={"actor_id": "ops", "status": "rejected", "reason": "Blurry"},
    )

    assert response.status_code == 200
    assert response.json()["scope"] == "DOCUMENT"
    cmd = mock_decide.await_args.args[1]
    assert cmd.document_type == "mot_certificate"
    assert cmd.status == DocumentStatus.REJECTED
    assert cmd.reason == "Blurry"

@patch(f"{ENDPOINTS}.handle_decide_document", new_callable=AsyncMock)
def test_decide_unknown_document(mock_decide: AsyncMock, client: TestClient):
    mock_decide.side_effect = DocumentNotFoundError(VEHICLE_ID, "taxi_plate")
    response = client.put(
        f"/api/v1/vehicles/{VEHICLE_ID}/documents/taxi_plate/status", json={"status": "approved"}
    )
    assert response.status_code == 404

def test_decide_document_with_unsupported_status(client: TestClient):
    response = client.put(
        f"/api/v1/vehicles/{VEHICLE_ID}/documents/mot_certificate/status", json={"status": "pending_review"}
    )
    assert response.status_code == 400

# --- Visibility / removal ---

@patch(f"{ENDPOINTS}.handle_toggle_visibility", new_callable=AsyncMock)
def test_toggle_visibility(mock_toggle: AsyncMock, client: TestClient):
    mock_toggle.return_value = sample_vehicle(visible_on_platform=True, is_approved=True, is_active=True)

    response = client.post(f"/api/v1/vehicles/{VEHICLE_ID}/visibility/toggle")

    assert response.status_code == 200
    assert response.json()["visible_on_platform"] is True

@patch(f"{ENDPOINTS}.handle_remove_vehicle", new_callable=AsyncMock)
def test_remove_vehicle(mock_remove: AsyncMock, client: TestClient):
    response = client.delete(f"/api/v1/vehicles/{VEHICLE_ID}", params={"actor_id": "ops"})

    assert response.status_code == 204
    cmd = mock_remove.await_args.args[1]
    assert (cmd.vehicle_id, cmd.actor_id) == (VEHICLE_ID, "ops")

@patch(f"{ENDPOINTS}.handle_remove_vehicle", new_callable=AsyncMock)
def test_remove_unknown_vehicle(mock_remove: AsyncMock, client: TestClient):
    mock_remove.side_effect = VehicleNotFoundError(VEHICLE_ID, "delete")
    assert client.delete(f"/api/v1/vehicles/{VEHICLE_ID}").status_code == 404
