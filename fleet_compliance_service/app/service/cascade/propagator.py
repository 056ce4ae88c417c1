"""Cascade propagator: applies verification decisions to the authoritative
vehicle record, then replays vehicle-scope decisions onto the mirror stores.

The primary write always happens first and is the only write that can fail
an action. Mirror writes are best-effort replication: a failure is logged,
counted and returned as a MirrorWriteWarning, and nothing already written is
rolled back.
"""
import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

from motor.motor_asyncio import AsyncIOMotorDatabase
from opentelemetry.trace.status import Status, StatusCode
from pydantic import BaseModel, Field, computed_field

from fleet_compliance_service.app.models import DocumentRecord, DocumentStatus, VehicleDB, VerificationStatus
from fleet_compliance_service.app.observability import (
    approval_blocked_counter,
    mirror_write_failures_counter,
    tracer,
    vehicle_decisions_counter,
)
from fleet_compliance_service.app.service.events import models as domain_event_models
from fleet_compliance_service.app.service.events.models import DecisionScope
from fleet_compliance_service.app.service.exceptions import (
    DocumentNotFoundError,
    ExpiringSoonUnacknowledgedError,
    MirrorWriteFailedError,
    ValidationBlockedError,
)
from fleet_compliance_service.app.service.interfaces.clock import AbstractClock
from fleet_compliance_service.app.service.rules.engine import (
    DocumentAction,
    VerificationDecision,
    VerificationRuleEngine,
)
from fleet_compliance_service.app.service.visibility.gate import visibility_for_verification
from fleet_compliance_service.infrastructure.clock import SystemClock
from fleet_compliance_service.infrastructure.database import vehicle_store
from fleet_compliance_service.infrastructure.database.mirror_store import MirrorStore, get_mirror_stores

logger = logging.getLogger(__name__)


class MirrorWriteWarning(BaseModel):
    mirror: str
    row_id: Optional[str] = None
    error: str


class CascadeResult(BaseModel):
    vehicle_id: str
    scope: DecisionScope
    vehicle: VehicleDB
    promoted_documents: List[str] = Field(default_factory=list)
    mirror_rows_updated: int = 0
    mirror_warnings: List[MirrorWriteWarning] = Field(default_factory=list)

    @computed_field
    @property
    def has_warnings(self) -> bool:
        return bool(self.mirror_warnings)


def promote_pending_documents(documents: Dict[str, DocumentRecord]) -> Tuple[Dict[str, DocumentRecord], List[str]]:
    """Approve every document awaiting review. Approved and rejected documents, and records
    without a file, are left as they are."""
    promoted: List[str] = []
    updated: Dict[str, DocumentRecord] = {}
    for key, record in documents.items():
        if record.effective_status == DocumentStatus.PENDING_REVIEW:
            updated[key] = record.model_copy(update={"status": DocumentStatus.APPROVED})
            promoted.append(key)
        else:
            updated[key] = record
    return updated, promoted


def _dump_documents(documents: Dict[str, DocumentRecord]) -> Dict[str, Any]:
    return {key: record.model_dump() for key, record in documents.items()}


# --- Mirror row updates per vehicle-scope event type ---

def _approved_row_update(event: domain_event_models.VehicleApprovedEvent) -> Dict[str, Any]:
    return {
        "status": DocumentStatus.APPROVED.value,
        "approved_at": event.timestamp,
        "approved_by": event.actor_id,
        "updated_at": event.timestamp,
    }

def _rejected_row_update(event: domain_event_models.VehicleRejectedEvent) -> Dict[str, Any]:
    return {
        "status": DocumentStatus.REJECTED.value,
        "rejected_at": event.timestamp,
        "rejected_by": event.actor_id,
        "rejection_reason": event.payload.reason,
        "updated_at": event.timestamp,
    }

MIRROR_ROW_UPDATES: Dict[str, Callable[[Any], Dict[str, Any]]] = {
    "VehicleApproved": _approved_row_update,
    "VehicleRejected": _rejected_row_update,
}


class CascadePropagator:
    def __init__(
        self,
        mirror_stores: Optional[List[MirrorStore]] = None,
        clock: Optional[AbstractClock] = None,
        engine: Optional[VerificationRuleEngine] = None,
    ) -> None:
        self._mirrors = get_mirror_stores() if mirror_stores is None else mirror_stores
        self._clock = clock or SystemClock()
        self._engine = engine or VerificationRuleEngine()

    async def apply_vehicle_approval(
        self,
        db: AsyncIOMotorDatabase,
        vehicle_id: str,
        decision: VerificationDecision,
        actor_id: str,
        acknowledge_expiring: bool = False,
    ) -> CascadeResult:
        with tracer.start_as_current_span("cascade.apply_vehicle_approval") as span:
            span.set_attribute("vehicle.id", vehicle_id)
            span.set_attribute("actor.id", actor_id)

            if decision.vehicle_id != vehicle_id:
                raise ValueError(f"Decision was evaluated for vehicle '{decision.vehicle_id}', not '{vehicle_id}'.")
            if not decision.allowed:
                approval_blocked_counter.add(1, {"reason": "expired" if decision.expired else "missing"})
                span.set_status(Status(StatusCode.ERROR, description="ValidationBlocked"))
                raise ValidationBlockedError(vehicle_id, decision.blocking_reasons, decision.expired)
            if decision.expiring_soon and not acknowledge_expiring:
                approval_blocked_counter.add(1, {"reason": "expiring_unacknowledged"})
                raise ExpiringSoonUnacknowledgedError(vehicle_id, decision.expiring_soon)

            vehicle = await vehicle_store.get_vehicle(db, vehicle_id)
            # The write must land on the record the rules were evaluated against.
            expected_version = vehicle.version if decision.evaluated_version is None else decision.evaluated_version
            now = self._clock.now()
            documents, promoted = promote_pending_documents(vehicle.documents)

            partial: Dict[str, Any] = {
                "document_verification_status": VerificationStatus.APPROVED.value,
                "documents": _dump_documents(documents),
                "approved_by": actor_id,
                "updated_by": actor_id,
                "updated_at": now,
            }
            partial.update(visibility_for_verification(VerificationStatus.APPROVED).as_update())

            updated = await vehicle_store.update_vehicle(db, vehicle_id, partial, expected_version=expected_version)
            span.add_event("PrimaryRecordApproved", {"documents.promoted.count": len(promoted)})
            logger.info(f"Vehicle {vehicle_id} approved by {actor_id}; promoted documents: {promoted or 'none'}.")

            event = domain_event_models.VehicleApprovedEvent(
                aggregate_id=vehicle_id,
                actor_id=actor_id,
                timestamp=now,
                version=updated.version,
                payload=domain_event_models.VehicleApprovedEventPayload(
                    promoted_documents=promoted,
                    acknowledged_expiring=decision.expiring_soon if acknowledge_expiring else [],
                ),
            )
            rows_updated, warnings = await self.replay_to_mirrors(db, event)
            vehicle_decisions_counter.add(1, {"scope": DecisionScope.VEHICLE.value, "outcome": "approved"})

            return CascadeResult(
                vehicle_id=vehicle_id,
                scope=DecisionScope.VEHICLE,
                vehicle=updated,
                promoted_documents=promoted,
                mirror_rows_updated=rows_updated,
                mirror_warnings=warnings,
            )

    async def apply_vehicle_rejection(
        self,
        db: AsyncIOMotorDatabase,
        vehicle_id: str,
        reason: str,
        actor_id: str,
    ) -> CascadeResult:
        with tracer.start_as_current_span("cascade.apply_vehicle_rejection") as span:
            span.set_attribute("vehicle.id", vehicle_id)
            span.set_attribute("actor.id", actor_id)
            now = self._clock.now()

            partial: Dict[str, Any] = {
                "document_verification_status": VerificationStatus.REJECTED.value,
                "rejection_reason": reason,
                "rejected_by": actor_id,
                "updated_by": actor_id,
                "updated_at": now,
            }
            partial.update(visibility_for_verification(VerificationStatus.REJECTED).as_update())

            # Blind write: nothing on the record is read back into the update.
            updated = await vehicle_store.update_vehicle(db, vehicle_id, partial)
            logger.info(f"Vehicle {vehicle_id} rejected by {actor_id}: {reason}")

            event = domain_event_models.VehicleRejectedEvent(
                aggregate_id=vehicle_id,
                actor_id=actor_id,
                timestamp=now,
                version=updated.version,
                payload=domain_event_models.VehicleRejectedEventPayload(reason=reason),
            )
            rows_updated, warnings = await self.replay_to_mirrors(db, event)
            vehicle_decisions_counter.add(1, {"scope": DecisionScope.VEHICLE.value, "outcome": "rejected"})

            return CascadeResult(
                vehicle_id=vehicle_id,
                scope=DecisionScope.VEHICLE,
                vehicle=updated,
                mirror_rows_updated=rows_updated,
                mirror_warnings=warnings,
            )

    async def apply_document_decision(
        self,
        db: AsyncIOMotorDatabase,
        vehicle_id: str,
        document_type: str,
        status: DocumentStatus,
        actor_id: str,
        reason: Optional[str] = None,
    ) -> CascadeResult:
        with tracer.start_as_current_span("cascade.apply_document_decision") as span:
            span.set_attribute("vehicle.id", vehicle_id)
            span.set_attribute("document.type", document_type)
            action = DocumentAction.from_status(status)

            vehicle = await vehicle_store.get_vehicle(db, vehicle_id)
            current = vehicle.documents.get(document_type)
            if current is None:
                raise DocumentNotFoundError(vehicle_id, document_type)

            decision = self._engine.evaluate_document_action(document_type, current, action, reason)
            documents = dict(vehicle.documents)
            documents[document_type] = decision.document
            now = self._clock.now()

            updated = await vehicle_store.update_vehicle(
                db,
                vehicle_id,
                {"documents": _dump_documents(documents), "updated_by": actor_id, "updated_at": now},
                expected_version=vehicle.version,
            )
            logger.info(f"Document {document_type} on vehicle {vehicle_id} set to {decision.document.status.value} by {actor_id}.")

            event = domain_event_models.DocumentDecisionRecordedEvent(
                aggregate_id=vehicle_id,
                actor_id=actor_id,
                timestamp=now,
                version=updated.version,
                payload=domain_event_models.DocumentDecisionRecordedEventPayload(
                    document_type=document_type,
                    old_status=current.status.value,
                    new_status=decision.document.status.value,
                    reason=reason,
                ),
            )
            # Document-scope: replay_to_mirrors is a no-op, kept so the branch is explicit.
            rows_updated, warnings = await self.replay_to_mirrors(db, event)
            vehicle_decisions_counter.add(1, {"scope": DecisionScope.DOCUMENT.value, "outcome": decision.action.value})

            return CascadeResult(
                vehicle_id=vehicle_id,
                scope=DecisionScope.DOCUMENT,
                vehicle=updated,
                mirror_rows_updated=rows_updated,
                mirror_warnings=warnings,
            )

    async def replay_to_mirrors(
        self,
        db: AsyncIOMotorDatabase,
        event: domain_event_models.BaseEvent,
    ) -> Tuple[int, List[MirrorWriteWarning]]:
        """Copy a vehicle-scope decision onto every mirror row for the vehicle.

        Returns the number of rows written and a warning per failed listing or row write.
        """
        if event.scope != DecisionScope.VEHICLE:
            logger.debug(f"Event {event.event_type} is {event.scope.value}-scoped; mirrors are not replayed.")
            return 0, []

        build_update = MIRROR_ROW_UPDATES.get(event.event_type)
        if build_update is None:
            logger.debug(f"No mirror replay registered for event type: {event.event_type}")
            return 0, []

        row_update = build_update(event)
        # Mirrors are independent of each other; replay them as one batch.
        outcomes = await asyncio.gather(
            *(self._replay_to_mirror(db, mirror, event, row_update) for mirror in self._mirrors)
        )

        rows_updated = sum(count for count, _ in outcomes)
        warnings = [warning for _, mirror_warnings in outcomes for warning in mirror_warnings]
        if warnings:
            logger.warning(f"{event.event_type} for vehicle {event.aggregate_id} left {len(warnings)} mirror write(s) diverged.")
        return rows_updated, warnings

    async def _replay_to_mirror(
        self,
        db: AsyncIOMotorDatabase,
        mirror: MirrorStore,
        event: domain_event_models.BaseEvent,
        row_update: Dict[str, Any],
    ) -> Tuple[int, List[MirrorWriteWarning]]:
        with tracer.start_as_current_span(f"mirror.replay.{mirror.name}") as mirror_span:
            mirror_span.set_attribute("event.type", event.event_type)
            mirror_span.set_attribute("aggregate.id", event.aggregate_id)
            try:
                rows = await mirror.list_document_rows_for_vehicle(db, event.aggregate_id)
            except MirrorWriteFailedError as e:
                logger.warning(f"Could not list {mirror.name} rows for vehicle {event.aggregate_id}: {e}")
                mirror_span.record_exception(e)
                mirror_span.set_status(Status(StatusCode.ERROR, description="MirrorListFailed"))
                mirror_write_failures_counter.add(1, {"mirror": mirror.name})
                return 0, [MirrorWriteWarning(mirror=mirror.name, row_id=None, error=str(e))]

            rows_updated = 0
            warnings: List[MirrorWriteWarning] = []
            results = await asyncio.gather(
                *(mirror.update_document_row(db, row.id, dict(row_update)) for row in rows),
                return_exceptions=True,
            )
            for row, result in zip(rows, results):
                if isinstance(result, MirrorWriteFailedError):
                    logger.warning(f"Mirror {mirror.name} row {row.id} diverged from vehicle {event.aggregate_id}: {result}")
                    mirror_span.record_exception(result)
                    mirror_write_failures_counter.add(1, {"mirror": mirror.name})
                    warnings.append(MirrorWriteWarning(mirror=mirror.name, row_id=row.id, error=str(result)))
                elif isinstance(result, BaseException):
                    raise result
                else:
                    rows_updated += 1
            if warnings:
                mirror_span.set_status(Status(StatusCode.ERROR, description="MirrorWriteFailed"))
            return rows_updated, warnings
