import datetime
import pytest
from unittest.mock import AsyncMock

from fleet_compliance_service.app.models import DocumentRecord, DocumentStatus, VehicleDB
from fleet_compliance_service.app.service.cascade.propagator import CascadePropagator, CascadeResult
from fleet_compliance_service.app.service.commands.handlers import (
    handle_approve_vehicle,
    handle_decide_document,
    handle_evaluate_vehicle_approval,
    handle_reject_vehicle,
    handle_remove_vehicle,
    handle_toggle_visibility,
)
from fleet_compliance_service.app.service.commands.models import (
    ApproveVehicleCommand,
    DecideDocumentCommand,
    RejectVehicleCommand,
    RemoveVehicleCommand,
    ToggleVisibilityCommand,
)
from fleet_compliance_service.app.service.events.models import DecisionScope
from fleet_compliance_service.app.service.interfaces.clock import FixedClock
from fleet_compliance_service.app.service.rules.engine import VerificationRuleEngine
from fleet_compliance_service.app.service.strategies.document_strategies import ConfiguredRequirementStrategy
from fleet_compliance_service.app.service.visibility import gate
from fleet_compliance_service.infrastructure.database import vehicle_store

NOW = datetime.datetime(2025, 6, 1, 12, 0, tzinfo=datetime.UTC)
VEHICLE = VehicleDB(id="veh-9", documents={
    "mot_certificate": DocumentRecord(url="u", expiry_date=NOW + datetime.timedelta(days=12)),
})

@pytest.fixture
def mock_db():
    return AsyncMock()

@pytest.fixture
def engine():
    return VerificationRuleEngine(strategy=ConfiguredRequirementStrategy({"mot_certificate": True}))

@pytest.fixture
def mock_propagator():
    propagator = AsyncMock(spec=CascadePropagator)
    propagator.apply_vehicle_approval.return_value = CascadeResult(
        vehicle_id=VEHICLE.id, scope=DecisionScope.VEHICLE, vehicle=VEHICLE
    )
    propagator.apply_vehicle_rejection.return_value = CascadeResult(
        vehicle_id=VEHICLE.id, scope=DecisionScope.VEHICLE, vehicle=VEHICLE
    )
    propagator.apply_document_decision.return_value = CascadeResult(
        vehicle_id=VEHICLE.id, scope=DecisionScope.DOCUMENT, vehicle=VEHICLE
    )
    return propagator


async def test_evaluate_vehicle_approval(mocker, mock_db, engine):
    mocker.patch.object(vehicle_store, "get_vehicle", new_callable=AsyncMock, return_value=VEHICLE)

    decision = await handle_evaluate_vehicle_approval(mock_db, "veh-9", clock=FixedClock(NOW), engine=engine)

    assert decision.allowed is True
    assert decision.expiring_soon == ["mot_certificate"]
    vehicle_store.get_vehicle.assert_awaited_once_with(mock_db, "veh-9")

async def test_approve_passes_fresh_decision_and_acknowledgement(mocker, mock_db, engine, mock_propagator):
    mocker.patch.object(vehicle_store, "get_vehicle", new_callable=AsyncMock, return_value=VEHICLE)
    cmd = ApproveVehicleCommand(vehicle_id="veh-9", actor_id="ops-admin", acknowledge_expiring=True)

    result = await handle_approve_vehicle(mock_db, cmd, clock=FixedClock(NOW), engine=engine, propagator=mock_propagator)

    assert result.vehicle_id == "veh-9"
    mock_propagator.apply_vehicle_approval.assert_awaited_once()
    call = mock_propagator.apply_vehicle_approval.await_args
    assert call.args[1] == "veh-9"
    assert call.args[2].evaluated_at == NOW
    assert call.kwargs == {"actor_id": "ops-admin", "acknowledge_expiring": True}

async def test_reject_delegates_to_propagator(mock_db, mock_propagator):
    cmd = RejectVehicleCommand(vehicle_id="veh-9", actor_id="ops-admin", reason="Wrong plates")

    await handle_reject_vehicle(mock_db, cmd, propagator=mock_propagator)

    mock_propagator.apply_vehicle_rejection.assert_awaited_once_with(
        mock_db, "veh-9", "Wrong plates", actor_id="ops-admin"
    )

def test_reject_command_requires_reason():
    with pytest.raises(ValueError):
        RejectVehicleCommand(vehicle_id="veh-9", actor_id="ops-admin", reason="")

async def test_decide_document_delegates_to_propagator(mock_db, mock_propagator):
    cmd = DecideDocumentCommand(
        vehicle_id="veh-9", actor_id="ops-admin", document_type="mot_certificate", status=DocumentStatus.APPROVED
    )

    result = await handle_decide_document(mock_db, cmd, propagator=mock_propagator)

    assert result.scope == DecisionScope.DOCUMENT
    mock_propagator.apply_document_decision.assert_awaited_once_with(
        mock_db, "veh-9", "mot_certificate", DocumentStatus.APPROVED, actor_id="ops-admin", reason=None
    )

async def test_toggle_and_remove_go_through_the_gate(mocker, mock_db):
    toggle = mocker.patch.object(gate, "toggle_visibility", new_callable=AsyncMock, return_value=VEHICLE)
    remove = mocker.patch.object(gate, "remove_vehicle", new_callable=AsyncMock)
    clock = FixedClock(NOW)

    assert await handle_toggle_visibility(
        mock_db, ToggleVisibilityCommand(vehicle_id="veh-9", actor_id="ops-admin"), clock=clock
    ) is VEHICLE
    toggle.assert_awaited_once_with(mock_db, "veh-9", "ops-admin", clock=clock)

    await handle_remove_vehicle(mock_db, RemoveVehicleCommand(vehicle_id="veh-9", actor_id="ops-admin"))
    remove.assert_awaited_once_with(mock_db, "veh-9", "ops-admin")
