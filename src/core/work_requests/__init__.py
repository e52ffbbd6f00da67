from src.core.work_requests.approval_chain import ApprovalChainResolver, ApprovalThresholds
from src.core.work_requests.catalog import CatalogViolation, RequestCatalog
from src.core.work_requests.models import (
    ApprovalEventRecord,
    ApprovalStep,
    RequesterIdentity,
    WorkRequestCreateRequest,
    WorkRequestDetailResponse,
    WorkRequestRecord,
    WorkRequestScope,
    WorkRequestStatistics,
)
from src.core.work_requests.queries import QueryFacade
from src.core.work_requests.repository import WorkRequestRepository
from src.core.work_requests.routing import ApproverDirectory, ApproverWorkloadStore, RoutingEngine
from src.core.work_requests.service import (
    WorkflowEngine,
    WorkRequestAuthorizationError,
    WorkRequestError,
    WorkRequestInvalidStateError,
    WorkRequestNotFoundError,
    WorkRequestValidationError,
)
from src.core.work_requests.sla import SlaPolicy, SlaTracker

__all__ = [
    "ApprovalChainResolver",
    "ApprovalEventRecord",
    "ApprovalStep",
    "ApprovalThresholds",
    "ApproverDirectory",
    "ApproverWorkloadStore",
    "CatalogViolation",
    "QueryFacade",
    "RequestCatalog",
    "RequesterIdentity",
    "RoutingEngine",
    "SlaPolicy",
    "SlaTracker",
    "WorkRequestAuthorizationError",
    "WorkRequestCreateRequest",
    "WorkRequestDetailResponse",
    "WorkRequestError",
    "WorkRequestInvalidStateError",
    "WorkRequestNotFoundError",
    "WorkRequestRecord",
    "WorkRequestRepository",
    "WorkRequestScope",
    "WorkRequestStatistics",
    "WorkRequestValidationError",
    "WorkflowEngine",
]
