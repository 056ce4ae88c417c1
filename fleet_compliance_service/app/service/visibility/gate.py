"""Visibility gate: owns the flag that decides whether customers can book a vehicle.

The listing flag is coupled to ``is_approved`` and ``is_active``: every
transition sets all three to the same value. Showing a vehicle therefore marks
it approved and active even while its documents are pending or rejected, and
hiding an approved vehicle clears both. No verification rule runs on the
toggle path.
"""
import logging
from typing import Any, Dict, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pydantic import BaseModel

from fleet_compliance_service.app.models import VehicleDB, VerificationStatus
from fleet_compliance_service.app.observability import tracer
from fleet_compliance_service.app.service.interfaces.clock import AbstractClock
from fleet_compliance_service.infrastructure.clock import SystemClock
from fleet_compliance_service.infrastructure.database import vehicle_store

logger = logging.getLogger(__name__)


class VisibilityState(BaseModel):
    visible_on_platform: bool
    is_approved: bool
    is_active: bool

    model_config = {"frozen": True}

    def as_update(self) -> Dict[str, Any]:
        return self.model_dump()


def visibility_transition(visible: bool) -> VisibilityState:
    """The single place where listing visibility drags approval and activity along with it."""
    return VisibilityState(visible_on_platform=visible, is_approved=visible, is_active=visible)


def visibility_for_verification(status: VerificationStatus) -> VisibilityState:
    """Visibility implied by a vehicle-level verification outcome."""
    status = VerificationStatus(status)
    if status == VerificationStatus.PENDING:
        raise ValueError("A pending verification status does not imply a visibility state.")
    return visibility_transition(status == VerificationStatus.APPROVED)


def current_visibility(vehicle: VehicleDB) -> VisibilityState:
    return VisibilityState(
        visible_on_platform=vehicle.visible_on_platform,
        is_approved=vehicle.is_approved,
        is_active=vehicle.is_active,
    )


def is_bookable(vehicle: VehicleDB) -> bool:
    return vehicle.visible_on_platform


async def toggle_visibility(
    db: AsyncIOMotorDatabase,
    vehicle_id: str,
    actor_id: str,
    clock: Optional[AbstractClock] = None,
) -> VehicleDB:
    with tracer.start_as_current_span("visibility.toggle") as span:
        span.set_attribute("vehicle.id", vehicle_id)
        vehicle = await vehicle_store.get_vehicle(db, vehicle_id)
        new_state = visibility_transition(not vehicle.visible_on_platform)

        partial = new_state.as_update()
        partial["updated_by"] = actor_id
        partial["updated_at"] = (clock or SystemClock()).now()

        updated = await vehicle_store.update_vehicle(db, vehicle_id, partial, expected_version=vehicle.version)
        span.set_attribute("vehicle.visible_on_platform", updated.visible_on_platform)
        logger.info(
            f"Vehicle {vehicle_id} {'shown on' if updated.visible_on_platform else 'hidden from'} platform by {actor_id} "
            f"(verification status: {updated.document_verification_status.value})."
        )
        return updated


async def remove_vehicle(db: AsyncIOMotorDatabase, vehicle_id: str, actor_id: str) -> None:
    """Hard-deletes the primary record. Mirror rows are left for their owners to clean up."""
    with tracer.start_as_current_span("visibility.remove_vehicle") as span:
        span.set_attribute("vehicle.id", vehicle_id)
        await vehicle_store.delete_vehicle(db, vehicle_id)
        logger.info(f"Vehicle {vehicle_id} removed by {actor_id}.")
