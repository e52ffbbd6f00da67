from typing import Optional, Protocol

from src.core.work_requests.models import (
    ApprovalEventRecord,
    WorkRequestRecord,
    WorkRequestTransitionResult,
)


class WorkRequestRepository(Protocol):
    def create_request(
        self, *, request: WorkRequestRecord, events: list[ApprovalEventRecord]
    ) -> None: ...

    def get_request(self, *, request_id: str) -> Optional[WorkRequestRecord]: ...

    def list_requests(
        self,
        *,
        status: Optional[str],
        request_type: Optional[str],
        requester_id: Optional[str],
        current_approver_id: Optional[str],
        limit: Optional[int],
        cursor: Optional[str],
    ) -> tuple[list[WorkRequestRecord], Optional[str]]: ...

    def append_event(self, event: ApprovalEventRecord) -> None: ...

    def list_events(self, *, request_id: str) -> list[ApprovalEventRecord]: ...

    def transition_request(
        self,
        *,
        request: WorkRequestRecord,
        expected_version: int,
        events: list[ApprovalEventRecord],
    ) -> Optional[WorkRequestTransitionResult]: ...
