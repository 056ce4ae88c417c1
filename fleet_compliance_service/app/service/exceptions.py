"""
Custom exceptions for the Fleet Compliance service.

Rule failures are reported by the verification engine as decisions; these
exceptions are raised only when a caller tries to act on a refused decision,
or when a store fails underneath an action.
"""
from typing import Iterable, List, Optional


def _labels(document_types: Iterable[str]) -> List[str]:
    # Local import keeps this module free of service-layer imports at load time.
    from fleet_compliance_service.app.service.strategies.document_strategies import label_for
    return [label_for(doc_type) for doc_type in document_types]


class BaseFleetComplianceError(Exception):
    """Base class for exceptions in this module."""
    pass

class ValidationBlockedError(BaseFleetComplianceError):
    """Raised when a vehicle approval is attempted while the verification rules refuse it."""
    def __init__(self, vehicle_id: str, blocking_reasons: List[str], expired: List[str]):
        self.vehicle_id = vehicle_id
        self.blocking_reasons = list(blocking_reasons)
        self.expired = list(expired)
        parts = []
        if self.blocking_reasons:
            parts.append(f"Missing required documents - {', '.join(_labels(self.blocking_reasons))}")
        if self.expired:
            parts.append(f"Expired documents found - {', '.join(_labels(self.expired))}")
        super().__init__(f"Cannot approve vehicle '{vehicle_id}': {'; '.join(parts)}.")

class ExpiringSoonUnacknowledgedError(BaseFleetComplianceError):
    """Raised when documents expire within the warning window and the caller has not acknowledged it."""
    def __init__(self, vehicle_id: str, expiring_soon: List[str]):
        self.vehicle_id = vehicle_id
        self.expiring_soon = list(expiring_soon)
        super().__init__(
            f"Vehicle '{vehicle_id}' has documents expiring soon: {', '.join(_labels(self.expiring_soon))}. "
            f"Approval must be re-submitted with acknowledgement."
        )

class PrimaryWriteFailedError(BaseFleetComplianceError):
    """Raised when the authoritative vehicle record cannot be read or written. Nothing is applied."""
    def __init__(self, vehicle_id: str, operation: str, reason: Optional[str] = None):
        self.vehicle_id = vehicle_id
        self.operation = operation
        self.reason = reason
        message = f"Primary store {operation} failed for vehicle '{vehicle_id}'"
        if reason:
            message += f": {reason}"
        super().__init__(message)

class VehicleNotFoundError(PrimaryWriteFailedError):
    """Raised when the vehicle id does not exist in the primary store."""
    def __init__(self, vehicle_id: str, operation: str = "lookup"):
        super().__init__(vehicle_id, operation, reason="vehicle not found")

class MirrorWriteFailedError(BaseFleetComplianceError):
    """Raised by a mirror store when a secondary replica read or write fails."""
    def __init__(self, mirror: str, row_id: Optional[str], reason: str):
        self.mirror = mirror
        self.row_id = row_id
        self.reason = reason
        target = f"row '{row_id}'" if row_id else "row listing"
        super().__init__(f"Mirror '{mirror}' {target} failed: {reason}")

class DocumentNotFoundError(BaseFleetComplianceError):
    """Raised when a document type is not present in a vehicle's documents map."""
    def __init__(self, vehicle_id: str, document_type: str):
        self.vehicle_id = vehicle_id
        self.document_type = document_type
        super().__init__(f"Document '{document_type}' not found on vehicle '{vehicle_id}'.")

class InvalidDocumentActionError(BaseFleetComplianceError):
    """Raised when a per-document decision names a status other than approved or rejected."""
    def __init__(self, status: str):
        self.status = status
        super().__init__(f"Unsupported document decision status '{status}'.")

class ConcurrencyConflictError(BaseFleetComplianceError):
    """Raised when a version conflict is detected during an update operation."""
    def __init__(self, aggregate_id: str, expected_version: int, actual_version: Optional[int]):
        self.aggregate_id = aggregate_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Concurrency conflict for vehicle '{aggregate_id}'. "
            f"Expected version {expected_version}, but found {actual_version}."
        )

class ConfigurationError(BaseFleetComplianceError):
    """Raised when a configuration issue is detected."""
    pass
