# Pydantic models for Domain Events
from pydantic import BaseModel, Field
from typing import List, Optional
from enum import Enum
import datetime
import uuid


class DecisionScope(str, Enum):
    """Granularity of a verification decision. Only VEHICLE decisions replay to the mirrors."""
    VEHICLE = "VEHICLE"
    DOCUMENT = "DOCUMENT"


class BaseEvent(BaseModel):
    event_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    event_type: str
    aggregate_id: str
    timestamp: datetime.datetime = Field(default_factory=lambda: datetime.datetime.now(datetime.UTC))
    version: int = 1
    scope: DecisionScope
    actor_id: str
    payload: BaseModel


# Vehicle-scope decisions
class VehicleApprovedEventPayload(BaseModel):
    promoted_documents: List[str] = Field(default_factory=list)
    acknowledged_expiring: List[str] = Field(default_factory=list)

class VehicleApprovedEvent(BaseEvent):
    event_type: str = "VehicleApproved"
    scope: DecisionScope = DecisionScope.VEHICLE
    payload: VehicleApprovedEventPayload

class VehicleRejectedEventPayload(BaseModel):
    reason: str

class VehicleRejectedEvent(BaseEvent):
    event_type: str = "VehicleRejected"
    scope: DecisionScope = DecisionScope.VEHICLE
    payload: VehicleRejectedEventPayload


# Document-scope decisions
class DocumentDecisionRecordedEventPayload(BaseModel):
    document_type: str
    old_status: str
    new_status: str
    reason: Optional[str] = None

class DocumentDecisionRecordedEvent(BaseEvent):
    event_type: str = "DocumentDecisionRecorded"
    scope: DecisionScope = DecisionScope.DOCUMENT
    payload: DocumentDecisionRecordedEventPayload
