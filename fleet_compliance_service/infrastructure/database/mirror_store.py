# Operations for the denormalized per-document mirror collections
import logging
from typing import Any, Dict, List

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import PyMongoError

from fleet_compliance_service.app.config import settings
from fleet_compliance_service.app.models import MirrorDocumentRowDB
from fleet_compliance_service.app.service.exceptions import MirrorWriteFailedError

logger = logging.getLogger(__name__)


class MirrorStore:
    """Read/write access to one mirror collection of per-document rows.

    Mirrors are read-convenience copies of document status; they are never
    consulted by the verification rules. Every failure surfaces as
    MirrorWriteFailedError so the caller can treat it as non-fatal.
    """

    def __init__(self, name: str, collection_name: str, vehicle_key: str):
        self.name = name
        self.collection_name = collection_name
        self.vehicle_key = vehicle_key

    def __repr__(self) -> str:
        return f"MirrorStore(name={self.name!r}, collection={self.collection_name!r})"

    async def list_document_rows_for_vehicle(self, db: AsyncIOMotorDatabase, vehicle_id: str) -> List[MirrorDocumentRowDB]:
        try:
            cursor = db[self.collection_name].find({self.vehicle_key: vehicle_id})
            docs = await cursor.to_list(length=None)
        except PyMongoError as e:
            raise MirrorWriteFailedError(self.name, None, str(e)) from e
        return [MirrorDocumentRowDB(**doc) for doc in docs]

    async def update_document_row(self, db: AsyncIOMotorDatabase, row_id: str, partial: Dict[str, Any]) -> None:
        try:
            result = await db[self.collection_name].update_one({"id": row_id}, {"$set": partial})
        except PyMongoError as e:
            raise MirrorWriteFailedError(self.name, row_id, str(e)) from e
        if result.matched_count == 0:
            raise MirrorWriteFailedError(self.name, row_id, "row not found")
        logger.debug(f"Mirror {self.name} row {row_id} updated with {sorted(partial)}")


def get_mirror_stores() -> List[MirrorStore]:
    """The mirrors replayed on every vehicle-scope decision, in replay order."""
    return [
        MirrorStore("documents", settings.DOCUMENTS_LEDGER_COLLECTION, "car_id"),
        MirrorStore("vehicle_documents", settings.VEHICLE_DOCUMENTS_COLLECTION, "vehicle_id"),
    ]
