# Operations for the authoritative Vehicles collection
import logging
from typing import Any, Dict, List, Optional
import datetime

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import PyMongoError

from fleet_compliance_service.app.config import settings
from fleet_compliance_service.app.models import VehicleDB, VerificationStatus
from fleet_compliance_service.app.service.exceptions import (
    ConcurrencyConflictError,
    PrimaryWriteFailedError,
    VehicleNotFoundError,
)

logger = logging.getLogger(__name__)


def _collection(db: AsyncIOMotorDatabase):
    return db[settings.VEHICLES_COLLECTION]


async def insert_vehicle(db: AsyncIOMotorDatabase, vehicle: VehicleDB) -> VehicleDB:
    """Adds a new vehicle record. New vehicles start pending and hidden unless told otherwise."""
    try:
        await _collection(db).insert_one(vehicle.model_dump(mode="python"))
    except PyMongoError as e:
        logger.error(f"Failed to insert vehicle {vehicle.id}: {e}", exc_info=True)
        raise PrimaryWriteFailedError(vehicle.id, "insert", str(e)) from e
    logger.info(f"Added vehicle ID: {vehicle.id} (status: {vehicle.document_verification_status.value})")
    return vehicle


async def get_vehicle(db: AsyncIOMotorDatabase, vehicle_id: str) -> VehicleDB:
    """Retrieves a vehicle by its ID. Raises VehicleNotFoundError when absent."""
    try:
        doc = await _collection(db).find_one({"id": vehicle_id})
    except PyMongoError as e:
        logger.error(f"Failed to read vehicle {vehicle_id}: {e}", exc_info=True)
        raise PrimaryWriteFailedError(vehicle_id, "read", str(e)) from e
    if not doc:
        raise VehicleNotFoundError(vehicle_id)
    return VehicleDB(**doc)


async def list_vehicles(
    db: AsyncIOMotorDatabase,
    verification_status: Optional[VerificationStatus] = None,
) -> List[VehicleDB]:
    """Lists vehicles, newest first, optionally filtered by verification status."""
    query_filter: Dict[str, Any] = {}
    if verification_status:
        query_filter["document_verification_status"] = VerificationStatus(verification_status).value

    try:
        cursor = _collection(db).find(query_filter).sort("created_at", -1)
        docs = await cursor.to_list(length=None)
    except PyMongoError as e:
        logger.error(f"Failed to list vehicles: {e}", exc_info=True)
        raise PrimaryWriteFailedError("*", "list", str(e)) from e
    return [VehicleDB(**doc) for doc in docs]


async def update_vehicle(
    db: AsyncIOMotorDatabase,
    vehicle_id: str,
    partial: Dict[str, Any],
    expected_version: Optional[int] = None,
) -> VehicleDB:
    """Applies a partial update to a vehicle and returns the stored result.

    When ``expected_version`` is given the write only matches that version;
    a mismatch on an existing vehicle raises ConcurrencyConflictError.
    Every write bumps ``version``.
    """
    set_operations = dict(partial)
    set_operations.setdefault("updated_at", datetime.datetime.now(datetime.UTC))

    query: Dict[str, Any] = {"id": vehicle_id}
    if expected_version is not None:
        query["version"] = expected_version

    try:
        result = await _collection(db).update_one(
            query,
            {"$set": set_operations, "$inc": {"version": 1}},
        )
    except PyMongoError as e:
        logger.error(f"Primary write failed for vehicle {vehicle_id}: {e}", exc_info=True)
        raise PrimaryWriteFailedError(vehicle_id, "update", str(e)) from e

    if result.matched_count == 0:
        try:
            current = await _collection(db).find_one({"id": vehicle_id})
        except PyMongoError as e:
            raise PrimaryWriteFailedError(vehicle_id, "update", str(e)) from e
        if not current:
            logger.warning(f"Vehicle ID: {vehicle_id} not found for update.")
            raise VehicleNotFoundError(vehicle_id, "update")
        logger.warning(
            f"Version conflict updating vehicle {vehicle_id}: expected {expected_version}, found {current.get('version')}."
        )
        raise ConcurrencyConflictError(vehicle_id, expected_version, current.get("version"))

    logger.info(f"Updated vehicle ID: {vehicle_id} fields: {sorted(set_operations)}")
    return await get_vehicle(db, vehicle_id)


async def delete_vehicle(db: AsyncIOMotorDatabase, vehicle_id: str) -> None:
    """Hard-deletes a vehicle. There is no tombstone."""
    try:
        result = await _collection(db).delete_one({"id": vehicle_id})
    except PyMongoError as e:
        logger.error(f"Failed to delete vehicle {vehicle_id}: {e}", exc_info=True)
        raise PrimaryWriteFailedError(vehicle_id, "delete", str(e)) from e
    if result.deleted_count == 0:
        raise VehicleNotFoundError(vehicle_id, "delete")
    logger.info(f"Deleted vehicle ID: {vehicle_id}")
