from .vehicle_db import DocumentRecord, DocumentStatus, VehicleDB, VerificationStatus
from .document_row_db import MirrorDocumentRowDB

__all__ = [
    "DocumentRecord",
    "DocumentStatus",
    "VehicleDB",
    "VerificationStatus",
    "MirrorDocumentRowDB",
]
