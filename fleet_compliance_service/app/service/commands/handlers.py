# Command Handler Implementation
import logging
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from opentelemetry import trace

from .models import (
    ApproveVehicleCommand,
    DecideDocumentCommand,
    RejectVehicleCommand,
    RemoveVehicleCommand,
    ToggleVisibilityCommand,
)
from fleet_compliance_service.app.models import VehicleDB
from fleet_compliance_service.app.service.cascade.propagator import CascadePropagator, CascadeResult
from fleet_compliance_service.app.service.interfaces.clock import AbstractClock
from fleet_compliance_service.app.service.rules.engine import VerificationDecision, VerificationRuleEngine
from fleet_compliance_service.app.service.visibility import gate
from fleet_compliance_service.infrastructure.clock import SystemClock
from fleet_compliance_service.infrastructure.database import vehicle_store

logger = logging.getLogger(__name__)


async def handle_evaluate_vehicle_approval(
    db: AsyncIOMotorDatabase,
    vehicle_id: str,
    clock: Optional[AbstractClock] = None,
    engine: Optional[VerificationRuleEngine] = None,
) -> VerificationDecision:
    clock = clock or SystemClock()
    engine = engine or VerificationRuleEngine()
    vehicle = await vehicle_store.get_vehicle(db, vehicle_id)
    decision = engine.evaluate_approval(vehicle, clock.now())
    logger.info(
        f"Approval check for vehicle {vehicle_id}: allowed={decision.allowed}, "
        f"missing={decision.blocking_reasons}, expired={decision.expired}, expiring_soon={decision.expiring_soon}"
    )
    return decision


async def handle_approve_vehicle(
    db: AsyncIOMotorDatabase,
    command: ApproveVehicleCommand,
    clock: Optional[AbstractClock] = None,
    engine: Optional[VerificationRuleEngine] = None,
    propagator: Optional[CascadePropagator] = None,
) -> CascadeResult:
    current_span = trace.get_current_span()
    current_span.set_attribute("command.name", "ApproveVehicleCommand")
    current_span.set_attribute("command.id", command.command_id)
    current_span.add_event("ApproveVehicleCommandHandlerStarted")
    logger.info(f"Handling ApproveVehicleCommand: {command.command_id} for vehicle {command.vehicle_id} by {command.actor_id}")

    clock = clock or SystemClock()
    engine = engine or VerificationRuleEngine()
    propagator = propagator or CascadePropagator(clock=clock, engine=engine)

    decision = await handle_evaluate_vehicle_approval(db, command.vehicle_id, clock=clock, engine=engine)
    result = await propagator.apply_vehicle_approval(
        db,
        command.vehicle_id,
        decision,
        actor_id=command.actor_id,
        acknowledge_expiring=command.acknowledge_expiring,
    )

    current_span.add_event(
        "ApproveVehicleCommandHandlerFinished",
        {"mirror.rows.updated": result.mirror_rows_updated, "mirror.warnings": len(result.mirror_warnings)},
    )
    return result


async def handle_reject_vehicle(
    db: AsyncIOMotorDatabase,
    command: RejectVehicleCommand,
    clock: Optional[AbstractClock] = None,
    propagator: Optional[CascadePropagator] = None,
) -> CascadeResult:
    current_span = trace.get_current_span()
    current_span.set_attribute("command.name", "RejectVehicleCommand")
    current_span.set_attribute("command.id", command.command_id)
    logger.info(f"Handling RejectVehicleCommand: {command.command_id} for vehicle {command.vehicle_id} by {command.actor_id}")

    propagator = propagator or CascadePropagator(clock=clock)
    result = await propagator.apply_vehicle_rejection(db, command.vehicle_id, command.reason, actor_id=command.actor_id)
    current_span.add_event("RejectVehicleCommandHandlerFinished", {"mirror.warnings": len(result.mirror_warnings)})
    return result


async def handle_decide_document(
    db: AsyncIOMotorDatabase,
    command: DecideDocumentCommand,
    clock: Optional[AbstractClock] = None,
    propagator: Optional[CascadePropagator] = None,
) -> CascadeResult:
    current_span = trace.get_current_span()
    current_span.set_attribute("command.name", "DecideDocumentCommand")
    current_span.set_attribute("command.id", command.command_id)
    logger.info(
        f"Handling DecideDocumentCommand: {command.command_id} setting {command.document_type} "
        f"on vehicle {command.vehicle_id} to {command.status.value}"
    )

    propagator = propagator or CascadePropagator(clock=clock)
    return await propagator.apply_document_decision(
        db,
        command.vehicle_id,
        command.document_type,
        command.status,
        actor_id=command.actor_id,
        reason=command.reason,
    )


async def handle_toggle_visibility(
    db: AsyncIOMotorDatabase,
    command: ToggleVisibilityCommand,
    clock: Optional[AbstractClock] = None,
) -> VehicleDB:
    trace.get_current_span().set_attribute("command.name", "ToggleVisibilityCommand")
    logger.info(f"Handling ToggleVisibilityCommand: {command.command_id} for vehicle {command.vehicle_id}")
    return await gate.toggle_visibility(db, command.vehicle_id, command.actor_id, clock=clock)


async def handle_remove_vehicle(db: AsyncIOMotorDatabase, command: RemoveVehicleCommand) -> None:
    trace.get_current_span().set_attribute("command.name", "RemoveVehicleCommand")
    logger.info(f"Handling RemoveVehicleCommand: {command.command_id} for vehicle {command.vehicle_id}")
    await gate.remove_vehicle(db, command.vehicle_id, command.actor_id)
