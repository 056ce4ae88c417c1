# API Router for the vehicle approval workflow
import logging
from fastapi import APIRouter, Depends, HTTPException, Body, Response
from typing import List, Optional
from pydantic import BaseModel, Field
from motor.motor_asyncio import AsyncIOMotorDatabase

from fleet_compliance_service.app.config import settings
from fleet_compliance_service.infrastructure.database.connection import get_db
from fleet_compliance_service.infrastructure.clock import get_clock
from fleet_compliance_service.infrastructure.database import vehicle_store
from fleet_compliance_service.app.models import DocumentStatus, VehicleDB, VerificationStatus
from fleet_compliance_service.app.service.commands import models as command_models
from fleet_compliance_service.app.service.commands.handlers import (
    handle_approve_vehicle,
    handle_decide_document,
    handle_evaluate_vehicle_approval,
    handle_reject_vehicle,
    handle_remove_vehicle,
    handle_toggle_visibility,
)
from fleet_compliance_service.app.service.cascade.propagator import CascadeResult
from fleet_compliance_service.app.service.interfaces.clock import AbstractClock
from fleet_compliance_service.app.service.rules.engine import VerificationDecision
from fleet_compliance_service.app.service.rules.expiry import (
    ExpiringDocumentEntry,
    VerificationQueueSummary,
    collect_expiring_documents,
    summarize_verification_queue,
)
from fleet_compliance_service.app.service.strategies.document_strategies import label_for
from fleet_compliance_service.app.service.exceptions import (
    BaseFleetComplianceError,
    ConcurrencyConflictError,
    DocumentNotFoundError,
    ExpiringSoonUnacknowledgedError,
    InvalidDocumentActionError,
    PrimaryWriteFailedError,
    ValidationBlockedError,
    VehicleNotFoundError,
)

logger = logging.getLogger(__name__)
router = APIRouter()

# --- Request models ---
class ApproveVehicleRequest(BaseModel):
    actor_id: str = Field(default_factory=lambda: settings.DEFAULT_ACTOR_ID)
    acknowledge_expiring: bool = False

class RejectVehicleRequest(BaseModel):
    actor_id: str = Field(default_factory=lambda: settings.DEFAULT_ACTOR_ID)
    reason: str = Field(min_length=1)

class DocumentDecisionRequest(BaseModel):
    actor_id: str = Field(default_factory=lambda: settings.DEFAULT_ACTOR_ID)
    status: DocumentStatus
    reason: Optional[str] = None

class ActorRequest(BaseModel):
    actor_id: str = Field(default_factory=lambda: settings.DEFAULT_ACTOR_ID)


def _to_http_error(vehicle_id: str, error: Exception) -> HTTPException:
    """Translate workflow errors; rule refusals carry the offending document types by name."""
    if isinstance(error, ValidationBlockedError):
        return HTTPException(status_code=422, detail={
            "message": str(error),
            "blocking_reasons": error.blocking_reasons,
            "expired": error.expired,
            "labels": {doc_type: label_for(doc_type) for doc_type in error.blocking_reasons + error.expired},
        })
    if isinstance(error, ExpiringSoonUnacknowledgedError):
        return HTTPException(status_code=409, detail={
            "message": str(error),
            "expiring_soon": error.expiring_soon,
            "labels": {doc_type: label_for(doc_type) for doc_type in error.expiring_soon},
        })
    if isinstance(error, (VehicleNotFoundError, DocumentNotFoundError)):
        return HTTPException(status_code=404, detail=str(error))
    if isinstance(error, ConcurrencyConflictError):
        return HTTPException(status_code=409, detail=str(error))
    if isinstance(error, InvalidDocumentActionError):
        return HTTPException(status_code=400, detail=str(error))
    if isinstance(error, PrimaryWriteFailedError):
        return HTTPException(status_code=503, detail=str(error))
    if isinstance(error, ValueError):
        return HTTPException(status_code=400, detail=str(error))
    logger.error(f"Unexpected error handling vehicle {vehicle_id}: {error}", exc_info=error)
    return HTTPException(status_code=500, detail="An unexpected error occurred while processing the vehicle.")


# --- API Endpoints ---

@router.get("", response_model=List[VehicleDB], summary="List vehicles, optionally by verification status.")
async def list_vehicles_api(
    verification_status: Optional[VerificationStatus] = None,
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    try:
        return await vehicle_store.list_vehicles(db, verification_status=verification_status)
    except Exception as e:
        raise _to_http_error("*", e)


@router.get("/stats", response_model=VerificationQueueSummary, summary="Counts of vehicles per verification status.")
async def verification_stats_api(db: AsyncIOMotorDatabase = Depends(get_db)):
    try:
        vehicles = await vehicle_store.list_vehicles(db)
    except Exception as e:
        raise _to_http_error("*", e)
    return summarize_verification_queue(vehicles)


@router.get(
    "/expiring-documents",
    response_model=List[ExpiringDocumentEntry],
    summary="Documents expiring within the warning window, soonest first.",
)
async def expiring_documents_api(
    db: AsyncIOMotorDatabase = Depends(get_db),
    clock: AbstractClock = Depends(get_clock),
):
    try:
        vehicles = await vehicle_store.list_vehicles(db)
    except Exception as e:
        raise _to_http_error("*", e)
    return collect_expiring_documents(vehicles, clock.now())


@router.get("/{vehicle_id}", response_model=VehicleDB, summary="Get a vehicle record.")
async def get_vehicle_api(vehicle_id: str, db: AsyncIOMotorDatabase = Depends(get_db)):
    try:
        return await vehicle_store.get_vehicle(db, vehicle_id)
    except Exception as e:
        raise _to_http_error(vehicle_id, e)


@router.get(
    "/{vehicle_id}/approval-check",
    response_model=VerificationDecision,
    summary="Evaluate whether the vehicle may be approved right now.",
)
async def approval_check_api(
    vehicle_id: str,
    db: AsyncIOMotorDatabase = Depends(get_db),
    clock: AbstractClock = Depends(get_clock),
):
    try:
        return await handle_evaluate_vehicle_approval(db, vehicle_id, clock=clock)
    except Exception as e:
        raise _to_http_error(vehicle_id, e)


@router.post("/{vehicle_id}/approve", response_model=CascadeResult, summary="Approve a vehicle and list it on the platform.")
async def approve_vehicle_api(
    vehicle_id: str,
    request_data: Optional[ApproveVehicleRequest] = Body(None),
    db: AsyncIOMotorDatabase = Depends(get_db),
    clock: AbstractClock = Depends(get_clock),
):
    request_data = request_data or ApproveVehicleRequest()
    try:
        cmd = command_models.ApproveVehicleCommand(
            vehicle_id=vehicle_id,
            actor_id=request_data.actor_id,
            acknowledge_expiring=request_data.acknowledge_expiring,
        )
        result = await handle_approve_vehicle(db, cmd, clock=clock)
    except BaseFleetComplianceError as e:
        logger.warning(f"Approval of vehicle {vehicle_id} refused: {e}")
        raise _to_http_error(vehicle_id, e)
    except Exception as e:
        raise _to_http_error(vehicle_id, e)
    if result.has_warnings:
        logger.warning(f"Vehicle {vehicle_id} approved with {len(result.mirror_warnings)} mirror warning(s).")
    return result


@router.post("/{vehicle_id}/reject", response_model=CascadeResult, summary="Reject a vehicle and hide it from the platform.")
async def reject_vehicle_api(
    vehicle_id: str,
    request_data: RejectVehicleRequest = Body(...),
    db: AsyncIOMotorDatabase = Depends(get_db),
    clock: AbstractClock = Depends(get_clock),
):
    try:
        cmd = command_models.RejectVehicleCommand(
            vehicle_id=vehicle_id, actor_id=request_data.actor_id, reason=request_data.reason
        )
        return await handle_reject_vehicle(db, cmd, clock=clock)
    except Exception as e:
        raise _to_http_error(vehicle_id, e)


@router.put(
    "/{vehicle_id}/documents/{document_type}/status",
    response_model=CascadeResult,
    summary="Approve or reject a single document on a vehicle.",
)
async def decide_document_api(
    vehicle_id: str,
    document_type: str,
    request_data: DocumentDecisionRequest = Body(...),
    db: AsyncIOMotorDatabase = Depends(get_db),
    clock: AbstractClock = Depends(get_clock),
):
    try:
        cmd = command_models.DecideDocumentCommand(
            vehicle_id=vehicle_id,
            document_type=document_type,
            status=request_data.status,
            actor_id=request_data.actor_id,
            reason=request_data.reason,
        )
        return await handle_decide_document(db, cmd, clock=clock)
    except Exception as e:
        raise _to_http_error(vehicle_id, e)


@router.post("/{vehicle_id}/visibility/toggle", response_model=VehicleDB, summary="Show or hide a vehicle on the platform.")
async def toggle_visibility_api(
    vehicle_id: str,
    request_data: Optional[ActorRequest] = Body(None),
    db: AsyncIOMotorDatabase = Depends(get_db),
    clock: AbstractClock = Depends(get_clock),
):
    request_data = request_data or ActorRequest()
    try:
        cmd = command_models.ToggleVisibilityCommand(vehicle_id=vehicle_id, actor_id=request_data.actor_id)
        return await handle_toggle_visibility(db, cmd, clock=clock)
    except Exception as e:
        raise _to_http_error(vehicle_id, e)


@router.delete("/{vehicle_id}", status_code=204, summary="Permanently delete a vehicle.")
async def remove_vehicle_api(
    vehicle_id: str,
    actor_id: str = settings.DEFAULT_ACTOR_ID,
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    try:
        await handle_remove_vehicle(db, command_models.RemoveVehicleCommand(vehicle_id=vehicle_id, actor_id=actor_id))
    except Exception as e:
        raise _to_http_error(vehicle_id, e)
    return Response(status_code=204)
