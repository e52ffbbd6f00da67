from datetime import datetime
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Query, status

from src.api.routers import work_requests_config
from src.api.routers.work_request_http_errors import raise_work_request_http_exception
from src.core.work_requests import (
    ApprovalChainResolver,
    QueryFacade,
    RoutingEngine,
    SlaTracker,
    WorkflowEngine,
    WorkRequestCreateRequest,
    WorkRequestDetailResponse,
    WorkRequestError,
    WorkRequestRepository,
    WorkRequestStatistics,
)
from src.core.work_requests.models import (
    ApprovalEvent,
    SlaStatusResponse,
    SlaSweepResult,
    WorkRequestActionRequest,
    WorkRequestCancelRequest,
    WorkRequestCompleteRequest,
    WorkRequestEventsResponse,
    WorkRequestListResponse,
    WorkRequestNoteRequest,
    WorkRequestRejectRequest,
    WorkRequestRerouteResponse,
)
from src.core.work_requests.service import to_event
from src.infrastructure.directory import InMemoryApproverDirectory

router = APIRouter(tags=["Work Request Workflow"])

_REPOSITORY: Optional[WorkRequestRepository] = None
_DIRECTORY: Optional[InMemoryApproverDirectory] = None
_SERVICE: Optional[WorkflowEngine] = None
_QUERIES: Optional[QueryFacade] = None

RequestIdPath = Annotated[
    str,
    Path(description="Work request identifier.", examples=["wr_4f2a9c1b7d3e"]),
]


def get_work_request_repository() -> WorkRequestRepository:
    global _REPOSITORY
    if _REPOSITORY is None:
        try:
            _REPOSITORY = work_requests_config.build_repository()
        except RuntimeError as exc:
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail=str(exc),
            ) from exc
    return _REPOSITORY


def get_approver_directory() -> InMemoryApproverDirectory:
    global _DIRECTORY
    if _DIRECTORY is None:
        _DIRECTORY = work_requests_config.build_directory()
    return _DIRECTORY


def get_workflow_engine() -> WorkflowEngine:
    global _SERVICE
    if _SERVICE is None:
        engine = WorkflowEngine(
            repository=get_work_request_repository(),
            routing=RoutingEngine(directory=get_approver_directory()),
            chain_resolver=ApprovalChainResolver(
                thresholds=work_requests_config.approval_thresholds()
            ),
            sla_tracker=SlaTracker(policy=work_requests_config.sla_policy()),
            require_expected_step=work_requests_config.env_flag(
                "WORK_REQUEST_REQUIRE_EXPECTED_STEP", False
            ),
        )
        engine.restore_workload()
        _SERVICE = engine
    return _SERVICE


def get_query_facade() -> QueryFacade:
    global _QUERIES
    if _QUERIES is None:
        engine = get_workflow_engine()
        _QUERIES = QueryFacade(
            repository=get_work_request_repository(),
            sla_tracker=engine.sla_tracker,
            workload=engine.routing.workload,
        )
    return _QUERIES


def reset_work_request_services_for_tests() -> None:
    global _REPOSITORY
    global _DIRECTORY
    global _SERVICE
    global _QUERIES
    _REPOSITORY = None
    _DIRECTORY = None
    _SERVICE = None
    _QUERIES = None


def _assert_workflow_enabled() -> None:
    if not work_requests_config.env_flag("WORK_REQUEST_WORKFLOW_ENABLED", True):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="WORK_REQUEST_WORKFLOW_DISABLED",
        )


@router.post(
    "/work-requests",
    response_model=WorkRequestDetailResponse,
    status_code=status.HTTP_200_OK,
    summary="Create Work Request",
    description=(
        "Validates the variant payload, resolves the approval chain, and routes the first step. "
        "A request with no eligible approver is stored as PENDING with no assignee."
    ),
)
def create_work_request(
    payload: WorkRequestCreateRequest,
    service: Annotated[WorkflowEngine, Depends(get_workflow_engine)],
) -> WorkRequestDetailResponse:
    _assert_workflow_enabled()
    try:
        created = service.create_request(payload=payload)
        return service.get_request_detail(request_id=created.request_id)
    except WorkRequestError as exc:
        raise_work_request_http_exception(exc)


@router.get(
    "/work-requests",
    response_model=WorkRequestListResponse,
    status_code=status.HTTP_200_OK,
    summary="List Work Requests",
    description="Lists work requests with optional filters and cursor pagination.",
)
def list_work_requests(
    queries: Annotated[QueryFacade, Depends(get_query_facade)],
    status_filter: Annotated[
        Optional[str],
        Query(alias="status", description="Lifecycle status filter.", examples=["IN_PROGRESS"]),
    ] = None,
    request_type: Annotated[
        Optional[str],
        Query(description="Variant filter.", examples=["ITEM_CLAIM"]),
    ] = None,
    requester_id: Annotated[
        Optional[str],
        Query(description="Requester identity filter.", examples=["stu_1001"]),
    ] = None,
    approver_id: Annotated[
        Optional[str],
        Query(description="Currently assigned approver filter.", examples=["coord_neu_01"]),
    ] = None,
    limit: Annotated[
        int,
        Query(description="Page size.", ge=1, le=100, examples=[20]),
    ] = 20,
    cursor: Annotated[
        Optional[str],
        Query(description="Opaque cursor from previous list response.", examples=["wr_123"]),
    ] = None,
) -> WorkRequestListResponse:
    _assert_workflow_enabled()
    return queries.list_requests(
        status=status_filter,
        request_type=request_type,
        requester_id=requester_id,
        current_approver_id=approver_id,
        limit=limit,
        cursor=cursor,
    )


@router.get(
    "/work-requests/statistics",
    response_model=WorkRequestStatistics,
    status_code=status.HTTP_200_OK,
    summary="Work Request Statistics",
    description="Counts by status, type, priority and awaited role, plus SLA and workload totals.",
)
def get_work_request_statistics(
    queries: Annotated[QueryFacade, Depends(get_query_facade)],
) -> WorkRequestStatistics:
    _assert_workflow_enabled()
    return queries.get_statistics()


@router.get(
    "/work-requests/disputes",
    response_model=WorkRequestListResponse,
    status_code=status.HTTP_200_OK,
    summary="List Ownership Disputes",
    description=(
        "Lists MULTI_ENTERPRISE_DISPUTE requests, optionally narrowed to one item, one claimant, "
        "or disputes currently awaiting an evidence custodian."
    ),
)
def list_work_request_disputes(
    queries: Annotated[QueryFacade, Depends(get_query_facade)],
    item_id: Annotated[
        Optional[str],
        Query(description="Disputed item identifier.", examples=["item_7781"]),
    ] = None,
    claimant_id: Annotated[
        Optional[str],
        Query(description="Identity listed as a claimant.", examples=["stu_1001"]),
    ] = None,
    awaiting_law_enforcement: Annotated[
        bool,
        Query(description="Only undecided disputes waiting on an evidence custodian."),
    ] = False,
) -> WorkRequestListResponse:
    _assert_workflow_enabled()
    return queries.find_disputes(
        item_id=item_id,
        claimant_id=claimant_id,
        awaiting_law_enforcement=awaiting_law_enforcement,
    )


@router.post(
    "/work-requests/sla/sweep",
    response_model=SlaSweepResult,
    status_code=status.HTTP_200_OK,
    summary="Run SLA Sweep",
    description="Read-only classification of open requests into overdue and approaching lists.",
)
def run_sla_sweep(
    service: Annotated[WorkflowEngine, Depends(get_workflow_engine)],
    now: Annotated[
        Optional[datetime],
        Query(
            description="Observation time in UTC ISO8601; defaults to the current time.",
            examples=["2026-10-16T12:00:00Z"],
        ),
    ] = None,
) -> SlaSweepResult:
    _assert_workflow_enabled()
    return service.sla_sweep(now=now)


@router.post(
    "/work-requests/routing/retry",
    response_model=WorkRequestRerouteResponse,
    status_code=status.HTTP_200_OK,
    summary="Retry Routing For Unassigned Requests",
    description="Attempts assignment for every PENDING request that has no approver.",
)
def retry_unassigned_routing(
    service: Annotated[WorkflowEngine, Depends(get_workflow_engine)],
) -> WorkRequestRerouteResponse:
    _assert_workflow_enabled()
    return WorkRequestRerouteResponse(rerouted=service.reroute_unassigned())


@router.get(
    "/work-requests/{request_id}",
    response_model=WorkRequestDetailResponse,
    status_code=status.HTTP_200_OK,
    summary="Get Work Request",
    description="Returns the request, its variant payload, and the full approval audit trail.",
)
def get_work_request(
    request_id: RequestIdPath,
    service: Annotated[WorkflowEngine, Depends(get_workflow_engine)],
) -> WorkRequestDetailResponse:
    _assert_workflow_enabled()
    try:
        return service.get_request_detail(request_id=request_id)
    except WorkRequestError as exc:
        raise_work_request_http_exception(exc)


@router.get(
    "/work-requests/{request_id}/events",
    response_model=WorkRequestEventsResponse,
    status_code=status.HTTP_200_OK,
    summary="Get Work Request Events",
    description="Returns the append-only approval events in the order they were recorded.",
)
def get_work_request_events(
    request_id: RequestIdPath,
    service: Annotated[WorkflowEngine, Depends(get_workflow_engine)],
) -> WorkRequestEventsResponse:
    _assert_workflow_enabled()
    try:
        events = service.list_events(request_id=request_id)
    except WorkRequestError as exc:
        raise_work_request_http_exception(exc)
    return WorkRequestEventsResponse(
        request_id=request_id,
        events=[to_event(event) for event in events],
    )


@router.get(
    "/work-requests/{request_id}/sla",
    response_model=SlaStatusResponse,
    status_code=status.HTTP_200_OK,
    summary="Get Work Request SLA Status",
    description="Classifies one request as ON_TRACK, APPROACHING, or OVERDUE.",
)
def get_work_request_sla(
    request_id: RequestIdPath,
    service: Annotated[WorkflowEngine, Depends(get_workflow_engine)],
    now: Annotated[
        Optional[datetime],
        Query(description="Observation time in UTC ISO8601.", examples=["2026-10-16T12:00:00Z"]),
    ] = None,
) -> SlaStatusResponse:
    _assert_workflow_enabled()
    try:
        return service.sla_status(request_id=request_id, now=now)
    except WorkRequestError as exc:
        raise_work_request_http_exception(exc)


@router.post(
    "/work-requests/{request_id}/approve",
    response_model=WorkRequestDetailResponse,
    status_code=status.HTTP_200_OK,
    summary="Approve Current Step",
    description="Consumes the current chain step and routes the next one.",
)
def approve_work_request(
    request_id: RequestIdPath,
    payload: WorkRequestActionRequest,
    service: Annotated[WorkflowEngine, Depends(get_workflow_engine)],
) -> WorkRequestDetailResponse:
    _assert_workflow_enabled()
    try:
        service.approve(
            request_id=request_id,
            actor_id=payload.actor_id,
            expected_step_index=payload.expected_step_index,
        )
        return service.get_request_detail(request_id=request_id)
    except WorkRequestError as exc:
        raise_work_request_http_exception(exc)


@router.post(
    "/work-requests/{request_id}/reject",
    response_model=WorkRequestDetailResponse,
    status_code=status.HTTP_200_OK,
    summary="Reject Work Request",
    description="Rejects the request at the current step; REJECTED is terminal.",
)
def reject_work_request(
    request_id: RequestIdPath,
    payload: WorkRequestRejectRequest,
    service: Annotated[WorkflowEngine, Depends(get_workflow_engine)],
) -> WorkRequestDetailResponse:
    _assert_workflow_enabled()
    try:
        service.reject(
            request_id=request_id,
            actor_id=payload.actor_id,
            reason=payload.reason,
            expected_step_index=payload.expected_step_index,
        )
        return service.get_request_detail(request_id=request_id)
    except WorkRequestError as exc:
        raise_work_request_http_exception(exc)


@router.post(
    "/work-requests/{request_id}/cancel",
    response_model=WorkRequestDetailResponse,
    status_code=status.HTTP_200_OK,
    summary="Cancel Work Request",
    description="Cancels a PENDING or IN_PROGRESS request; only the requester may cancel.",
)
def cancel_work_request(
    request_id: RequestIdPath,
    payload: WorkRequestCancelRequest,
    service: Annotated[WorkflowEngine, Depends(get_workflow_engine)],
) -> WorkRequestDetailResponse:
    _assert_workflow_enabled()
    try:
        service.cancel(request_id=request_id, actor_id=payload.actor_id)
        return service.get_request_detail(request_id=request_id)
    except WorkRequestError as exc:
        raise_work_request_http_exception(exc)


@router.post(
    "/work-requests/{request_id}/complete",
    response_model=WorkRequestDetailResponse,
    status_code=status.HTTP_200_OK,
    summary="Complete Work Request",
    description="Confirms the physical handoff of an APPROVED request.",
)
def complete_work_request(
    request_id: RequestIdPath,
    service: Annotated[WorkflowEngine, Depends(get_workflow_engine)],
    payload: Optional[WorkRequestCompleteRequest] = None,
) -> WorkRequestDetailResponse:
    _assert_workflow_enabled()
    try:
        service.complete(
            request_id=request_id,
            actor_id=payload.actor_id if payload is not None else None,
        )
        return service.get_request_detail(request_id=request_id)
    except WorkRequestError as exc:
        raise_work_request_http_exception(exc)


@router.post(
    "/work-requests/{request_id}/notes",
    response_model=ApprovalEvent,
    status_code=status.HTTP_200_OK,
    summary="Add Audit Note",
    description="Appends a note to the audit trail without changing approval progress.",
)
def add_work_request_note(
    request_id: RequestIdPath,
    payload: WorkRequestNoteRequest,
    service: Annotated[WorkflowEngine, Depends(get_workflow_engine)],
) -> ApprovalEvent:
    _assert_workflow_enabled()
    try:
        event = service.add_note(
            request_id=request_id, actor_id=payload.actor_id, note=payload.note
        )
    except WorkRequestError as exc:
        raise_work_request_http_exception(exc)
    return to_event(event)


@router.post(
    "/work-requests/{request_id}/reroute",
    response_model=WorkRequestDetailResponse,
    status_code=status.HTTP_200_OK,
    summary="Reroute Unassigned Request",
    description="Retries approver assignment for a PENDING request with no approver.",
)
def reroute_work_request(
    request_id: RequestIdPath,
    service: Annotated[WorkflowEngine, Depends(get_workflow_engine)],
) -> WorkRequestDetailResponse:
    _assert_workflow_enabled()
    try:
        service.reroute(request_id=request_id)
        return service.get_request_detail(request_id=request_id)
    except WorkRequestError as exc:
        raise_work_request_http_exception(exc)
