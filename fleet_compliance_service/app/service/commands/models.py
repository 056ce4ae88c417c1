# Pydantic models for Commands
from pydantic import BaseModel, Field
from typing import Optional
import uuid

from fleet_compliance_service.app.models import DocumentStatus

class BaseCommand(BaseModel):
    command_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    vehicle_id: str
    actor_id: str # Operator performing the action, stamped for audit

class ApproveVehicleCommand(BaseCommand):
    # Must be set explicitly when documents expire within the warning window
    acknowledge_expiring: bool = False

class RejectVehicleCommand(BaseCommand):
    reason: str = Field(min_length=1)

class DecideDocumentCommand(BaseCommand):
    document_type: str
    status: DocumentStatus # approved or rejected
    reason: Optional[str] = None

class ToggleVisibilityCommand(BaseCommand):
    pass

class RemoveVehicleCommand(BaseCommand):
    pass
