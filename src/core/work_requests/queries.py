from collections import Counter
from datetime import datetime, timezone
from typing import Optional

from src.core.work_requests.approval_chain import LAW_ENFORCEMENT_ROLE
from src.core.work_requests.models import (
    WorkRequestListResponse,
    WorkRequestRecord,
    WorkRequestStatistics,
)
from src.core.work_requests.repository import WorkRequestRepository
from src.core.work_requests.routing import ApproverWorkloadStore
from src.core.work_requests.service import UNDECIDED_STATUSES, to_summary
from src.core.work_requests.sla import TERMINAL_STATUSES, SlaTracker


class QueryFacade:
    """Read-only views over stored work requests."""

    def __init__(
        self,
        *,
        repository: WorkRequestRepository,
        sla_tracker: Optional[SlaTracker] = None,
        workload: Optional[ApproverWorkloadStore] = None,
    ) -> None:
        self._repository = repository
        self._sla_tracker = sla_tracker or SlaTracker()
        self._workload = workload

    def query_by_status(self, status: str) -> list[WorkRequestRecord]:
        return self._all(status=status)

    def query_by_type(self, request_type: str) -> list[WorkRequestRecord]:
        return self._all(request_type=request_type)

    def query_by_requester(self, requester_id: str) -> list[WorkRequestRecord]:
        return self._all(requester_id=requester_id)

    def query_by_approver(self, approver_id: str) -> list[WorkRequestRecord]:
        return self._all(current_approver_id=approver_id)

    def disputes_for_item(self, item_id: str) -> list[WorkRequestRecord]:
        return [row for row in self._disputes() if row.details.item_id == item_id]

    def disputes_for_claimant(self, claimant_id: str) -> list[WorkRequestRecord]:
        return [row for row in self._disputes() if _has_claimant(row, claimant_id)]

    def disputes_awaiting_law_enforcement(self) -> list[WorkRequestRecord]:
        """Undecided disputes whose current step belongs to an evidence custodian."""
        return [
            row
            for row in self._disputes()
            if row.status in UNDECIDED_STATUSES
            and row.current_step_index < len(row.approval_chain)
            and row.approval_chain[row.current_step_index].role == LAW_ENFORCEMENT_ROLE
        ]

    def find_disputes(
        self,
        *,
        item_id: Optional[str] = None,
        claimant_id: Optional[str] = None,
        awaiting_law_enforcement: bool = False,
    ) -> WorkRequestListResponse:
        if awaiting_law_enforcement:
            rows = self.disputes_awaiting_law_enforcement()
        else:
            rows = self._disputes()
        if item_id is not None:
            rows = [row for row in rows if row.details.item_id == item_id]
        if claimant_id is not None:
            rows = [row for row in rows if _has_claimant(row, claimant_id)]
        return WorkRequestListResponse(items=[to_summary(row) for row in rows], next_cursor=None)

    def list_requests(
        self,
        *,
        status: Optional[str] = None,
        request_type: Optional[str] = None,
        requester_id: Optional[str] = None,
        current_approver_id: Optional[str] = None,
        limit: int = 20,
        cursor: Optional[str] = None,
    ) -> WorkRequestListResponse:
        rows, next_cursor = self._repository.list_requests(
            status=status,
            request_type=request_type,
            requester_id=requester_id,
            current_approver_id=current_approver_id,
            limit=limit,
            cursor=cursor,
        )
        return WorkRequestListResponse(
            items=[to_summary(row) for row in rows],
            next_cursor=next_cursor,
        )

    def get_statistics(self, *, now: Optional[datetime] = None) -> WorkRequestStatistics:
        observed_at = now or datetime.now(timezone.utc)
        requests = self._all()
        open_requests = [row for row in requests if row.status not in TERMINAL_STATUSES]

        awaited_roles = Counter(
            row.approval_chain[row.current_step_index].role
            for row in open_requests
            if row.current_step_index < len(row.approval_chain)
        )
        classifications = Counter(
            self._sla_tracker.classify(row, observed_at) for row in open_requests
        )
        return WorkRequestStatistics(
            total=len(requests),
            by_status=dict(sorted(Counter(row.status for row in requests).items())),
            by_type=dict(sorted(Counter(row.request_type for row in requests).items())),
            by_priority=dict(sorted(Counter(row.priority for row in requests).items())),
            by_awaited_role=dict(sorted(awaited_roles.items())),
            unassigned_backlog=sum(
                1
                for row in open_requests
                if row.status == "PENDING" and row.current_approver_id is None
            ),
            overdue=classifications.get("OVERDUE", 0),
            approaching=classifications.get("APPROACHING", 0),
            active_workload=self._workload.snapshot() if self._workload is not None else {},
        )

    def _disputes(self) -> list[WorkRequestRecord]:
        return self._all(request_type="MULTI_ENTERPRISE_DISPUTE")

    def _all(
        self,
        *,
        status: Optional[str] = None,
        request_type: Optional[str] = None,
        requester_id: Optional[str] = None,
        current_approver_id: Optional[str] = None,
    ) -> list[WorkRequestRecord]:
        rows, _ = self._repository.list_requests(
            status=status,
            request_type=request_type,
            requester_id=requester_id,
            current_approver_id=current_approver_id,
            limit=None,
            cursor=None,
        )
        return rows


def _has_claimant(request: WorkRequestRecord, claimant_id: str) -> bool:
    claimants = getattr(request.details, "claimants", [])
    return any(claimant.claimant_id == claimant_id for claimant in claimants)
