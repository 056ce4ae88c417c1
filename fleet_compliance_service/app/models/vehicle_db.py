import datetime
import uuid
from enum import Enum
from typing import Dict, Optional

from pydantic import BaseModel, Field, field_validator


def _as_utc(value: Optional[datetime.datetime]) -> Optional[datetime.datetime]:
    # MongoDB hands back naive datetimes; stored values are always UTC.
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=datetime.UTC)
    return value


class VerificationStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class DocumentStatus(str, Enum):
    MISSING = "missing"
    PENDING_REVIEW = "pending_review"
    APPROVED = "approved"
    REJECTED = "rejected"


class DocumentRecord(BaseModel):
    status: DocumentStatus = DocumentStatus.PENDING_REVIEW
    url: Optional[str] = None
    expiry_date: Optional[datetime.datetime] = None
    uploaded_at: Optional[datetime.datetime] = None
    rejection_reason: Optional[str] = None

    @field_validator("expiry_date", "uploaded_at")
    @classmethod
    def normalize_dates(cls, value):
        return _as_utc(value)

    @property
    def has_file(self) -> bool:
        return bool(self.url)

    @property
    def effective_status(self) -> DocumentStatus:
        """Status as seen by the rules: a record without a file is missing whatever it claims."""
        if not self.has_file:
            return DocumentStatus.MISSING
        return self.status


class VehicleDB(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4().hex))
    name: Optional[str] = None
    make: Optional[str] = None
    model: Optional[str] = None
    registration_number: Optional[str] = None
    partner_id: Optional[str] = None

    document_verification_status: VerificationStatus = VerificationStatus.PENDING
    visible_on_platform: bool = False
    is_approved: bool = False
    is_active: bool = False
    documents: Dict[str, DocumentRecord] = Field(default_factory=dict)
    rejection_reason: Optional[str] = None

    approved_by: Optional[str] = None
    rejected_by: Optional[str] = None
    updated_by: Optional[str] = None

    version: int = 1 # Optimistic concurrency token for the primary record

    created_at: datetime.datetime = Field(default_factory=lambda: datetime.datetime.now(datetime.UTC))
    updated_at: datetime.datetime = Field(default_factory=lambda: datetime.datetime.now(datetime.UTC))

    model_config = {"extra": "ignore"}

    @field_validator("created_at", "updated_at")
    @classmethod
    def normalize_dates(cls, value):
        return _as_utc(value)
