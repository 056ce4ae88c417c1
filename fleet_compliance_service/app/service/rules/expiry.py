# Expiry classification and fleet-wide compliance summaries
import datetime
import math
from enum import Enum
from typing import Iterable, List, Optional

from pydantic import BaseModel

from fleet_compliance_service.app.config import settings
from fleet_compliance_service.app.models import VehicleDB, VerificationStatus
from fleet_compliance_service.app.service.strategies.document_strategies import label_for


class ExpiryState(str, Enum):
    VALID = "valid"
    EXPIRING = "expiring"
    EXPIRED = "expired"


class ExpiryUrgency(str, Enum):
    URGENT = "URGENT"      # 7 days or less
    SOON = "SOON"          # 14 days or less
    UPCOMING = "UPCOMING"


class ExpiringDocumentEntry(BaseModel):
    vehicle_id: str
    vehicle_name: Optional[str] = None
    registration_number: Optional[str] = None
    document_type: str
    label: str
    status: str
    expiry_date: datetime.datetime
    days_until_expiry: int
    urgency: ExpiryUrgency


class VerificationQueueSummary(BaseModel):
    total: int = 0
    pending: int = 0
    approved: int = 0
    rejected: int = 0
    visible: int = 0


def _warning_window(window: Optional[datetime.timedelta]) -> datetime.timedelta:
    if window is None:
        return datetime.timedelta(days=settings.EXPIRY_WARNING_DAYS)
    return window


def days_until(expiry_date: datetime.datetime, now: datetime.datetime) -> int:
    """Whole days left before expiry, rounded up."""
    return math.ceil((expiry_date - now).total_seconds() / 86400)


def classify_expiry(
    expiry_date: Optional[datetime.datetime],
    now: datetime.datetime,
    window: Optional[datetime.timedelta] = None,
) -> ExpiryState:
    if expiry_date is None:
        return ExpiryState.VALID
    if expiry_date < now:
        return ExpiryState.EXPIRED
    if now < expiry_date <= now + _warning_window(window):
        return ExpiryState.EXPIRING
    return ExpiryState.VALID


def urgency_for(expiry_date: datetime.datetime, now: datetime.datetime) -> ExpiryUrgency:
    days = days_until(expiry_date, now)
    if days <= 7:
        return ExpiryUrgency.URGENT
    if days <= 14:
        return ExpiryUrgency.SOON
    return ExpiryUrgency.UPCOMING


def collect_expiring_documents(
    vehicles: Iterable[VehicleDB],
    now: datetime.datetime,
    window: Optional[datetime.timedelta] = None,
) -> List[ExpiringDocumentEntry]:
    """Every document inside the warning window across the given vehicles, soonest first."""
    entries: List[ExpiringDocumentEntry] = []
    for vehicle in vehicles:
        for doc_type, record in vehicle.documents.items():
            if classify_expiry(record.expiry_date, now, window) != ExpiryState.EXPIRING:
                continue
            entries.append(ExpiringDocumentEntry(
                vehicle_id=vehicle.id,
                vehicle_name=vehicle.name,
                registration_number=vehicle.registration_number,
                document_type=doc_type,
                label=label_for(doc_type),
                status=record.effective_status.value,
                expiry_date=record.expiry_date,
                days_until_expiry=days_until(record.expiry_date, now),
                urgency=urgency_for(record.expiry_date, now),
            ))
    entries.sort(key=lambda entry: (entry.expiry_date, entry.vehicle_id, entry.document_type))
    return entries


def summarize_verification_queue(vehicles: Iterable[VehicleDB]) -> VerificationQueueSummary:
    summary = VerificationQueueSummary()
    for vehicle in vehicles:
        summary.total += 1
        if vehicle.document_verification_status == VerificationStatus.PENDING:
            summary.pending += 1
        elif vehicle.document_verification_status == VerificationStatus.APPROVED:
            summary.approved += 1
        elif vehicle.document_verification_status == VerificationStatus.REJECTED:
            summary.rejected += 1
        if vehicle.visible_on_platform:
            summary.visible += 1
    return summary
