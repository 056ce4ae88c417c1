"""Verification rule engine: decides whether a vehicle may be approved now,
and enumerates document-expiry risk.

Pure computation: no I/O and no clock reads. Callers pass the vehicle and
the current instant; the cascade layer acts on the returned decision.
"""

import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from fleet_compliance_service.app.config import settings
from fleet_compliance_service.app.models import DocumentRecord, DocumentStatus, VehicleDB
from fleet_compliance_service.app.service.exceptions import InvalidDocumentActionError
from fleet_compliance_service.app.service.strategies.document_strategies import (
    DocumentRequirementStrategy,
    DocumentTypeSpec,
    get_document_strategy,
)


class VerificationDecision(BaseModel):
    """Outcome of a vehicle-level approval check. Never persisted."""
    vehicle_id: str
    evaluated_at: datetime.datetime
    # Version of the vehicle record the decision was computed from; the approval write must match it
    evaluated_version: Optional[int] = None
    allowed: bool
    blocking_reasons: List[str] = Field(default_factory=list)
    expiring_soon: List[str] = Field(default_factory=list)
    expired: List[str] = Field(default_factory=list)

    @property
    def requires_acknowledgement(self) -> bool:
        return bool(self.expiring_soon)


class DocumentAction(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"

    @classmethod
    def from_status(cls, status) -> "DocumentAction":
        try:
            status = DocumentStatus(status)
        except ValueError:
            raise InvalidDocumentActionError(str(status))
        if status == DocumentStatus.APPROVED:
            return cls.APPROVE
        if status == DocumentStatus.REJECTED:
            return cls.REJECT
        raise InvalidDocumentActionError(status.value)


class DocumentDecision(BaseModel):
    document_type: str
    action: DocumentAction
    document: DocumentRecord


class VerificationRuleEngine:
    """Evaluates a vehicle's document set against the configured requirements."""

    def __init__(
        self,
        strategy: Optional[DocumentRequirementStrategy] = None,
        warning_window: Optional[datetime.timedelta] = None,
    ) -> None:
        self._strategy = strategy or get_document_strategy()
        if warning_window is None:
            warning_window = datetime.timedelta(days=settings.EXPIRY_WARNING_DAYS)
        self._warning_window = warning_window

    @property
    def warning_window(self) -> datetime.timedelta:
        return self._warning_window

    def document_types(self) -> List[DocumentTypeSpec]:
        return self._strategy.requirements()

    def _ordered_keys(self, vehicle: VehicleDB) -> List[str]:
        # Configured types first, in configuration order, then anything else on the vehicle.
        configured = [spec.key for spec in self.document_types()]
        extra = sorted(key for key in vehicle.documents if key not in configured)
        return [key for key in configured if key in vehicle.documents] + extra

    def evaluate_approval(self, vehicle: VehicleDB, now: datetime.datetime) -> VerificationDecision:
        """Check whether a vehicle-level approval is permitted at ``now``.

        1. Every required type must have a record with a non-empty url.
        2. Any document with expiry_date < now is expired and blocks approval,
           whatever its review status.
        3. Any document with now < expiry_date <= now + window is expiring soon;
           this never blocks but the caller must acknowledge it.
        """
        blocking_reasons: List[str] = []
        expired: List[str] = []
        expiring_soon: List[str] = []

        # 1. Completeness of required documents
        for spec in self.document_types():
            if not spec.required:
                continue
            record = vehicle.documents.get(spec.key)
            if record is None or not record.has_file:
                blocking_reasons.append(spec.key)

        # 2 & 3. Expiry, for required and optional documents alike
        horizon = now + self._warning_window
        for key in self._ordered_keys(vehicle):
            expiry = vehicle.documents[key].expiry_date
            if expiry is None:
                continue
            if expiry < now:
                expired.append(key)
            elif now < expiry <= horizon:
                expiring_soon.append(key)

        return VerificationDecision(
            vehicle_id=vehicle.id,
            evaluated_at=now,
            evaluated_version=vehicle.version,
            allowed=not blocking_reasons and not expired,
            blocking_reasons=blocking_reasons,
            expiring_soon=expiring_soon,
            expired=expired,
        )

    def evaluate_document_action(
        self,
        document_type: str,
        document: DocumentRecord,
        action: DocumentAction,
        reason: Optional[str] = None,
    ) -> DocumentDecision:
        """Single-document review. No cross-document checks and no expiry check;
        a document in any state may be approved or rejected directly."""
        if action == DocumentAction.APPROVE:
            updated = document.model_copy(update={"status": DocumentStatus.APPROVED, "rejection_reason": None})
        else:
            updated = document.model_copy(update={"status": DocumentStatus.REJECTED, "rejection_reason": reason})
        return DocumentDecision(document_type=document_type, action=action, document=updated)
