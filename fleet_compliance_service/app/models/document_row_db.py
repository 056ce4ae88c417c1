import datetime
from typing import Optional

from pydantic import BaseModel, field_validator

from .vehicle_db import _as_utc


class MirrorDocumentRowDB(BaseModel):
    """A denormalized per-document row kept in one of the mirror collections.

    Only the fields the approval workflow reads or stamps are modelled; anything
    else stored on the row is ignored. The vehicle key lives under a
    collection-specific field name (``car_id`` or ``vehicle_id``) and is not
    modelled here.
    """
    id: str
    document_type: Optional[str] = None
    status: Optional[str] = None

    approved_at: Optional[datetime.datetime] = None
    approved_by: Optional[str] = None
    rejected_at: Optional[datetime.datetime] = None
    rejected_by: Optional[str] = None
    rejection_reason: Optional[str] = None
    updated_at: Optional[datetime.datetime] = None

    model_config = {"extra": "ignore"}

    @field_validator("approved_at", "rejected_at", "updated_at")
    @classmethod
    def normalize_dates(cls, value):
        return _as_utc(value)
