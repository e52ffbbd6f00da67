import logging
import uuid
from datetime import datetime, timezone
from typing import Iterable, NoReturn, Optional

from src.core.work_requests.approval_chain import ApprovalChainResolver
from src.core.work_requests.catalog import CatalogViolation, RequestCatalog
from src.core.work_requests.models import (
    ApprovalEvent,
    ApprovalEventAction,
    ApprovalEventRecord,
    ApprovalStep,
    DisputeClaimant,
    ItemClaimDetails,
    MultiEnterpriseDisputeDetails,
    RequesterIdentity,
    SlaStatusResponse,
    SlaSweepResult,
    WorkRequestCreateRequest,
    WorkRequestDetailResponse,
    WorkRequestDetails,
    WorkRequestPriority,
    WorkRequestRecord,
    WorkRequestScope,
    WorkRequestSummary,
)
from src.core.work_requests.repository import WorkRequestRepository
from src.core.work_requests.routing import RoutingEngine
from src.core.work_requests.sla import SlaTracker

logger = logging.getLogger(__name__)

OPEN_STATUSES = ("PENDING", "IN_PROGRESS", "APPROVED")
UNDECIDED_STATUSES = ("PENDING", "IN_PROGRESS")
SYSTEM_ACTOR_ID = "SYSTEM"
COMPETING_CLAIMS_REASON = "Multiple claimants for the same item"


class WorkRequestError(Exception):
    pass


class WorkRequestNotFoundError(WorkRequestError):
    pass


class WorkRequestValidationError(WorkRequestError):
    def __init__(self, violations: list[CatalogViolation]) -> None:
        self.violations = violations
        super().__init__(
            "WORK_REQUEST_VALIDATION_FAILED: "
            + "; ".join(f"{item.field}: {item.code}" for item in violations)
        )


class WorkRequestAuthorizationError(WorkRequestError):
    pass


class WorkRequestInvalidStateError(WorkRequestError):
    pass


class WorkflowEngine:
    def __init__(
        self,
        *,
        repository: WorkRequestRepository,
        routing: RoutingEngine,
        catalog: Optional[RequestCatalog] = None,
        chain_resolver: Optional[ApprovalChainResolver] = None,
        sla_tracker: Optional[SlaTracker] = None,
        require_expected_step: bool = False,
    ) -> None:
        self._repository = repository
        self._routing = routing
        self._chain_resolver = chain_resolver or ApprovalChainResolver()
        self._catalog = catalog or RequestCatalog(thresholds=self._chain_resolver.thresholds)
        self._sla_tracker = sla_tracker or SlaTracker()
        self._require_expected_step = require_expected_step

    @property
    def sla_tracker(self) -> SlaTracker:
        return self._sla_tracker

    @property
    def routing(self) -> RoutingEngine:
        return self._routing

    def create_request(self, *, payload: WorkRequestCreateRequest) -> WorkRequestRecord:
        violations = self._catalog.validate(payload.details)
        if violations:
            raise WorkRequestValidationError(violations)

        if isinstance(payload.details, ItemClaimDetails):
            disputed = self._resolve_competing_claim(payload)
            if disputed is not None:
                return disputed

        request = self._new_record(
            requester=payload.requester,
            target=payload.target,
            details=payload.details,
            priority=payload.priority,
            description=payload.description,
        )
        return self._store_new(request)

    def approve(
        self,
        *,
        request_id: str,
        actor_id: str,
        expected_step_index: Optional[int] = None,
    ) -> WorkRequestRecord:
        request = self._load(request_id)
        events = self._repository.list_events(request_id=request_id)
        self._validate_step_action(
            request=request,
            actor_id=actor_id,
            expected_step_index=expected_step_index,
            events=events,
            action="approve",
        )

        now = _utc_now()
        outgoing = request.model_copy(deep=True)
        step = request.approval_chain[request.current_step_index]
        new_events = [
            self._event(
                request=request,
                action="APPROVED",
                actor_id=actor_id,
                occurred_at=now,
                role=step.role,
            )
        ]
        request.current_step_index += 1
        request.current_approver_id = None
        if request.current_step_index == len(request.approval_chain):
            request.status = "APPROVED"
        else:
            new_events.extend(
                self._route_current_step(
                    request=request,
                    occurred_at=now,
                    excluded_ids=_approvers(events) | {actor_id},
                )
            )
        return self._commit(request=request, previous=outgoing, events=new_events, now=now)

    def reject(
        self,
        *,
        request_id: str,
        actor_id: str,
        reason: str,
        expected_step_index: Optional[int] = None,
    ) -> WorkRequestRecord:
        request = self._load(request_id)
        events = self._repository.list_events(request_id=request_id)
        self._validate_step_action(
            request=request,
            actor_id=actor_id,
            expected_step_index=expected_step_index,
            events=events,
            action="reject",
        )

        now = _utc_now()
        outgoing = request.model_copy(deep=True)
        step = request.approval_chain[request.current_step_index]
        new_events = [
            self._event(
                request=request,
                action="REJECTED",
                actor_id=actor_id,
                occurred_at=now,
                role=step.role,
                note=reason,
            )
        ]
        request.status = "REJECTED"
        request.current_approver_id = None
        return self._commit(request=request, previous=outgoing, events=new_events, now=now)

    def cancel(self, *, request_id: str, actor_id: str) -> WorkRequestRecord:
        request = self._load(request_id)
        if request.status not in {"PENDING", "IN_PROGRESS"}:
            self._raise_invalid_state(
                request, f"INVALID_STATE: cannot cancel request in status {request.status}"
            )
        if actor_id != request.requester_id:
            raise WorkRequestAuthorizationError("NOT_REQUESTER: only the requester may cancel")

        now = _utc_now()
        outgoing = request.model_copy(deep=True)
        new_events = [
            self._event(
                request=request,
                action="CANCELLED",
                actor_id=actor_id,
                occurred_at=now,
            )
        ]
        request.status = "CANCELLED"
        request.current_approver_id = None
        return self._commit(request=request, previous=outgoing, events=new_events, now=now)

    def complete(self, *, request_id: str, actor_id: Optional[str] = None) -> WorkRequestRecord:
        request = self._load(request_id)
        if request.status != "APPROVED":
            self._raise_invalid_state(
                request, f"INVALID_STATE: cannot complete request in status {request.status}"
            )

        now = _utc_now()
        outgoing = request.model_copy(deep=True)
        new_events = [
            self._event(
                request=request,
                action="COMPLETED",
                actor_id=actor_id or SYSTEM_ACTOR_ID,
                occurred_at=now,
            )
        ]
        request.status = "COMPLETED"
        request.completed_at = now
        return self._commit(request=request, previous=outgoing, events=new_events, now=now)

    def add_note(self, *, request_id: str, actor_id: str, note: str) -> ApprovalEventRecord:
        request = self._load(request_id)
        event = self._event(
            request=request,
            action="NOTE_ADDED",
            actor_id=actor_id,
            occurred_at=_utc_now(),
            note=note,
        )
        self._repository.append_event(event)
        return event

    def reroute(self, *, request_id: str) -> WorkRequestRecord:
        request = self._load(request_id)
        if request.status != "PENDING" or request.current_approver_id is not None:
            self._raise_invalid_state(
                request, "INVALID_STATE: only unassigned PENDING requests can be rerouted"
            )

        now = _utc_now()
        outgoing = request.model_copy(deep=True)
        new_events = self._route_current_step(
            request=request,
            occurred_at=now,
            excluded_ids=_approvers(self._repository.list_events(request_id=request_id)),
        )
        if request.current_approver_id is None:
            return outgoing
        return self._commit(request=request, previous=outgoing, events=new_events, now=now)

    def reroute_unassigned(self) -> list[str]:
        pending, _ = self._repository.list_requests(
            status="PENDING",
            request_type=None,
            requester_id=None,
            current_approver_id=None,
            limit=None,
            cursor=None,
        )
        rerouted: list[str] = []
        for request in pending:
            if request.current_approver_id is not None:
                continue
            try:
                updated = self.reroute(request_id=request.request_id)
            except WorkRequestInvalidStateError:
                continue
            if updated.current_approver_id is not None:
                rerouted.append(updated.request_id)
        return rerouted

    def get_request(self, *, request_id: str) -> WorkRequestRecord:
        return self._load(request_id)

    def get_request_detail(self, *, request_id: str) -> WorkRequestDetailResponse:
        request = self._load(request_id)
        return WorkRequestDetailResponse(
            request=to_summary(request),
            details=request.details,
            description=request.description,
            events=[to_event(event) for event in self.list_events(request_id=request_id)],
        )

    def list_events(self, *, request_id: str) -> list[ApprovalEventRecord]:
        self._load(request_id)
        return self._repository.list_events(request_id=request_id)

    def sla_status(self, *, request_id: str, now: Optional[datetime] = None) -> SlaStatusResponse:
        request = self._load(request_id)
        observed_at = _as_utc(now) if now is not None else _utc_now()
        return SlaStatusResponse(
            request_id=request.request_id,
            priority=request.priority,
            classification=self._sla_tracker.classify(request, observed_at),
            deadline_at=self._sla_tracker.deadline(request).isoformat(),
            observed_at=observed_at.isoformat(),
        )

    def sla_sweep(self, *, now: Optional[datetime] = None) -> SlaSweepResult:
        observed_at = _as_utc(now) if now is not None else _utc_now()
        result = self._sla_tracker.sweep(self.list_open_requests(), observed_at)
        logger.info(
            "SLA sweep finished. Overdue=%s Approaching=%s",
            len(result.overdue),
            len(result.approaching),
        )
        return result

    def list_open_requests(self) -> list[WorkRequestRecord]:
        return self._list_with_statuses(OPEN_STATUSES)

    def restore_workload(self) -> int:
        """Re-count active assignments from stored requests into the routing workload."""
        restored = 0
        for request in self.list_open_requests():
            if request.current_approver_id is None:
                continue
            if request.current_step_index >= len(request.approval_chain):
                continue
            step = request.approval_chain[request.current_step_index]
            organization_id, enterprise_id = self._step_scope(request, step)
            self._routing.restore(
                approver_id=request.current_approver_id,
                role=step.role,
                organization_id=organization_id,
                enterprise_id=enterprise_id,
            )
            restored += 1
        logger.info(
            "Approver workload restored. Assignments=%s",
            restored,
            extra={"extra_fields": {"restored_assignments": restored}},
        )
        return restored

    def _list_with_statuses(self, statuses: tuple[str, ...]) -> list[WorkRequestRecord]:
        rows: list[WorkRequestRecord] = []
        for status in statuses:
            matched, _ = self._repository.list_requests(
                status=status,
                request_type=None,
                requester_id=None,
                current_approver_id=None,
                limit=None,
                cursor=None,
            )
            rows.extend(matched)
        return rows

    def _load(self, request_id: str) -> WorkRequestRecord:
        request = self._repository.get_request(request_id=request_id)
        if request is None:
            raise WorkRequestNotFoundError("WORK_REQUEST_NOT_FOUND")
        return request

    def _new_record(
        self,
        *,
        requester: RequesterIdentity,
        target: WorkRequestScope,
        details: WorkRequestDetails,
        priority: Optional[WorkRequestPriority],
        description: Optional[str],
    ) -> WorkRequestRecord:
        now = _utc_now()
        return WorkRequestRecord(
            request_id=f"wr_{uuid.uuid4().hex[:12]}",
            request_type=details.request_type,
            status="PENDING",
            priority=priority or self._chain_resolver.determine_priority(details),
            requester_id=requester.actor_id,
            requester_name=requester.display_name,
            requester_organization_id=requester.organization_id,
            requester_enterprise_id=requester.enterprise_id,
            target_organization_id=target.organization_id,
            target_enterprise_id=target.enterprise_id,
            approval_chain=self._chain_resolver.resolve(details),
            current_step_index=0,
            current_approver_id=None,
            description=description,
            details=details,
            version=1,
            created_at=now,
            updated_at=now,
        )

    def _store_new(self, request: WorkRequestRecord) -> WorkRequestRecord:
        events = [
            self._event(
                request=request,
                action="CREATED",
                actor_id=request.requester_id,
                occurred_at=request.created_at,
                note=request.description,
            )
        ]
        events.extend(self._route_current_step(request=request, occurred_at=request.created_at))

        try:
            self._repository.create_request(request=request, events=events)
        except Exception:
            self._release_current(request)
            raise
        logger.info(
            "Work request created. RequestID=%s Type=%s Status=%s",
            request.request_id,
            request.request_type,
            request.status,
            extra={
                "extra_fields": {
                    "request_id": request.request_id,
                    "action": "CREATED",
                    "chain": request.chain_roles(),
                }
            },
        )
        return request

    def _resolve_competing_claim(
        self, payload: WorkRequestCreateRequest
    ) -> Optional[WorkRequestRecord]:
        item_id = payload.details.item_id
        claimant_id = payload.requester.actor_id
        undecided = [
            request
            for request in self._list_with_statuses(UNDECIDED_STATUSES)
            if request.details.item_id == item_id
        ]
        for dispute in undecided:
            if not isinstance(dispute.details, MultiEnterpriseDisputeDetails):
                continue
            if any(c.claimant_id == claimant_id for c in dispute.details.claimants):
                self._raise_invalid_state(
                    dispute, f"CLAIM_ALREADY_DISPUTED: {claimant_id} is already a claimant"
                )
            return self._join_dispute(dispute=dispute, payload=payload)
        for claim in undecided:
            if claim.request_type == "ITEM_CLAIM" and claim.requester_id != claimant_id:
                return self._open_dispute(claim=claim, payload=payload)
        return None

    def _open_dispute(
        self, *, claim: WorkRequestRecord, payload: WorkRequestCreateRequest
    ) -> WorkRequestRecord:
        details = MultiEnterpriseDisputeDetails(
            item_id=claim.details.item_id,
            item_name=claim.details.item_name,
            item_value=max(claim.details.item_value, payload.details.item_value),
            dispute_reason=COMPETING_CLAIMS_REASON,
            claimants=[_claimant_from_request(claim), _claimant_from_payload(payload)],
        )
        dispute = self._new_record(
            requester=RequesterIdentity(
                actor_id=SYSTEM_ACTOR_ID,
                display_name="Automatic Dispute Detection",
                organization_id=claim.target_organization_id,
                enterprise_id=claim.target_enterprise_id,
            ),
            target=claim.target_scope(),
            details=details,
            priority=None,
            description=(
                f"Ownership dispute for {details.item_name or details.item_id}: "
                "multiple claimants detected"
            ),
        )
        self._supersede_claim(claim=claim, dispute_id=dispute.request_id)
        opened = self._store_new(dispute)
        logger.info(
            "Competing claims converted to dispute. DisputeID=%s ItemID=%s Claimants=%s",
            opened.request_id,
            details.item_id,
            len(details.claimants),
            extra={
                "extra_fields": {
                    "request_id": opened.request_id,
                    "superseded_request_id": claim.request_id,
                    "item_id": details.item_id,
                }
            },
        )
        return opened

    def _join_dispute(
        self, *, dispute: WorkRequestRecord, payload: WorkRequestCreateRequest
    ) -> WorkRequestRecord:
        now = _utc_now()
        outgoing = dispute.model_copy(deep=True)
        claimant = _claimant_from_payload(payload)
        dispute.details.claimants.append(claimant)
        if self._chain_resolver.determine_priority(dispute.details) == "URGENT":
            dispute.priority = "URGENT"
        event = self._event(
            request=dispute,
            action="CLAIMANT_ADDED",
            actor_id=claimant.claimant_id,
            occurred_at=now,
            note=f"Claimant {claimant.claimant_id} joined from {claimant.enterprise_id}",
        )
        return self._commit(request=dispute, previous=outgoing, events=[event], now=now)

    def _supersede_claim(self, *, claim: WorkRequestRecord, dispute_id: str) -> None:
        now = _utc_now()
        outgoing = claim.model_copy(deep=True)
        event = self._event(
            request=claim,
            action="CANCELLED",
            actor_id=SYSTEM_ACTOR_ID,
            occurred_at=now,
            note=f"Superseded by dispute {dispute_id}",
        )
        claim.status = "CANCELLED"
        claim.current_approver_id = None
        self._commit(request=claim, previous=outgoing, events=[event], now=now)

    def _validate_step_action(
        self,
        *,
        request: WorkRequestRecord,
        actor_id: str,
        expected_step_index: Optional[int],
        events: list[ApprovalEventRecord],
        action: str,
    ) -> None:
        if expected_step_index is None and self._require_expected_step:
            raise WorkRequestInvalidStateError("STEP_CONFLICT: expected_step_index is required")
        if expected_step_index is not None and expected_step_index != request.current_step_index:
            self._raise_invalid_state(
                request,
                "STEP_ALREADY_APPROVED: expected_step_index "
                f"{expected_step_index} does not match current step {request.current_step_index}",
            )
        if request.status != "IN_PROGRESS":
            self._raise_invalid_state(
                request, f"INVALID_STATE: cannot {action} request in status {request.status}"
            )
        if actor_id != request.current_approver_id:
            if any(event.action == "APPROVED" and event.actor_id == actor_id for event in events):
                self._raise_invalid_state(
                    request, "STEP_ALREADY_APPROVED: actor already approved an earlier step"
                )
            raise WorkRequestAuthorizationError("NOT_CURRENT_APPROVER")

        step = request.approval_chain[request.current_step_index]
        organization_id, enterprise_id = self._step_scope(request, step)
        if not self._routing.can_act(
            identity_id=actor_id,
            role=step.role,
            organization_id=organization_id,
            enterprise_id=enterprise_id,
        ):
            raise WorkRequestAuthorizationError(f"CAPABILITY_REVOKED: {step.role}")

    def _route_current_step(
        self,
        *,
        request: WorkRequestRecord,
        occurred_at: datetime,
        excluded_ids: Iterable[str] = (),
    ) -> list[ApprovalEventRecord]:
        step = request.approval_chain[request.current_step_index]
        organization_id, enterprise_id = self._step_scope(request, step)
        approver_id = self._routing.assign(
            role=step.role,
            organization_id=organization_id,
            enterprise_id=enterprise_id,
            preferred_id=self._preferred_approver(request, step),
            excluded_ids=excluded_ids,
        )
        if approver_id is None:
            request.status = "PENDING"
            request.current_approver_id = None
            logger.warning(
                "Routing unavailable. RequestID=%s Step=%s Role=%s",
                request.request_id,
                request.current_step_index,
                step.role,
                extra={
                    "extra_fields": {
                        "request_id": request.request_id,
                        "action": "ROUTING_UNAVAILABLE",
                        "step_index": request.current_step_index,
                    }
                },
            )
            return [
                self._event(
                    request=request,
                    action="ROUTING_UNAVAILABLE",
                    actor_id=SYSTEM_ACTOR_ID,
                    occurred_at=occurred_at,
                    role=step.role,
                )
            ]
        request.status = "IN_PROGRESS"
        request.current_approver_id = approver_id
        return [
            self._event(
                request=request,
                action="ASSIGNED",
                actor_id=SYSTEM_ACTOR_ID,
                occurred_at=occurred_at,
                role=step.role,
                assignee_id=approver_id,
            )
        ]

    def _commit(
        self,
        *,
        request: WorkRequestRecord,
        previous: WorkRequestRecord,
        events: list[ApprovalEventRecord],
        now: datetime,
    ) -> WorkRequestRecord:
        request.updated_at = now
        request.version = previous.version + 1
        result = self._repository.transition_request(
            request=request,
            expected_version=previous.version,
            events=events,
        )
        if result is None:
            self._release_current(request, unless_still_assigned_in=previous)
            self._raise_invalid_state(
                previous, "STALE_REQUEST_VERSION: request changed concurrently"
            )

        self._release_current(previous, unless_still_assigned_in=request)
        logger.info(
            "Work request transitioned. RequestID=%s Action=%s Status=%s Step=%s",
            request.request_id,
            events[0].action,
            request.status,
            request.current_step_index,
            extra={
                "extra_fields": {
                    "request_id": request.request_id,
                    "action": events[0].action,
                    "step_index": request.current_step_index,
                }
            },
        )
        return result.request

    def _release_current(
        self,
        request: WorkRequestRecord,
        *,
        unless_still_assigned_in: Optional[WorkRequestRecord] = None,
    ) -> None:
        if request.current_approver_id is None:
            return
        if request.current_step_index >= len(request.approval_chain):
            return
        if unless_still_assigned_in is not None and (
            unless_still_assigned_in.current_approver_id == request.current_approver_id
            and unless_still_assigned_in.current_step_index == request.current_step_index
        ):
            return
        step = request.approval_chain[request.current_step_index]
        organization_id, enterprise_id = self._step_scope(request, step)
        self._routing.release(
            approver_id=request.current_approver_id,
            role=step.role,
            organization_id=organization_id,
            enterprise_id=enterprise_id,
        )

    def _step_scope(
        self, request: WorkRequestRecord, step: ApprovalStep
    ) -> tuple[Optional[str], Optional[str]]:
        if step.scope == "ANY":
            return None, None
        scope = request.requester_scope() if step.scope == "REQUESTER" else request.target_scope()
        return scope.organization_id, scope.enterprise_id

    def _preferred_approver(self, request: WorkRequestRecord, step: ApprovalStep) -> Optional[str]:
        if step.role == "STUDENT":
            return getattr(request.details, "student_id", None)
        if request.current_step_index == 0 and step.scope == "REQUESTER":
            return request.requester_id
        return None

    def _raise_invalid_state(self, request: WorkRequestRecord, message: str) -> NoReturn:
        logger.info(
            "Rejected stale or duplicate action. RequestID=%s Status=%s Detail=%s",
            request.request_id,
            request.status,
            message,
        )
        raise WorkRequestInvalidStateError(message)

    def _event(
        self,
        *,
        request: WorkRequestRecord,
        action: ApprovalEventAction,
        actor_id: str,
        occurred_at: datetime,
        role: Optional[str] = None,
        assignee_id: Optional[str] = None,
        note: Optional[str] = None,
    ) -> ApprovalEventRecord:
        return ApprovalEventRecord(
            event_id=f"wre_{uuid.uuid4().hex[:12]}",
            request_id=request.request_id,
            action=action,
            actor_id=actor_id,
            step_index=request.current_step_index,
            role=role,
            assignee_id=assignee_id,
            note=note,
            occurred_at=occurred_at,
        )


def to_summary(request: WorkRequestRecord) -> WorkRequestSummary:
    return WorkRequestSummary(
        request_id=request.request_id,
        request_type=request.request_type,
        status=request.status,
        priority=request.priority,
        requester_id=request.requester_id,
        target_organization_id=request.target_organization_id,
        target_enterprise_id=request.target_enterprise_id,
        approval_chain=request.approval_chain,
        current_step_index=request.current_step_index,
        current_approver_id=request.current_approver_id,
        created_at=request.created_at.isoformat(),
        updated_at=request.updated_at.isoformat(),
        completed_at=request.completed_at.isoformat() if request.completed_at else None,
    )


def to_event(event: ApprovalEventRecord) -> ApprovalEvent:
    return ApprovalEvent(
        event_id=event.event_id,
        action=event.action,
        actor_id=event.actor_id,
        step_index=event.step_index,
        role=event.role,
        assignee_id=event.assignee_id,
        note=event.note,
        occurred_at=event.occurred_at.isoformat(),
    )


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _approvers(events: list[ApprovalEventRecord]) -> set[str]:
    return {event.actor_id for event in events if event.action == "APPROVED"}


def _claimant_from_request(claim: WorkRequestRecord) -> DisputeClaimant:
    return DisputeClaimant(
        claimant_id=claim.requester_id,
        claimant_name=claim.requester_name,
        enterprise_id=claim.requester_enterprise_id,
        claim_description=getattr(claim.details, "claim_details", None),
    )


def _claimant_from_payload(payload: WorkRequestCreateRequest) -> DisputeClaimant:
    return DisputeClaimant(
        claimant_id=payload.requester.actor_id,
        claimant_name=payload.requester.display_name,
        enterprise_id=payload.requester.enterprise_id,
        claim_description=getattr(payload.details, "claim_details", None),
    )
