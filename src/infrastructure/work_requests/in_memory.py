from copy import deepcopy
from threading import Lock
from typing import Optional

from src.core.work_requests.models import (
    ApprovalEventRecord,
    WorkRequestRecord,
    WorkRequestTransitionResult,
)
from src.core.work_requests.repository import WorkRequestRepository


class InMemoryWorkRequestRepository(WorkRequestRepository):
    def __init__(self) -> None:
        self._lock = Lock()
        self._requests: dict[str, WorkRequestRecord] = {}
        self._events: dict[str, list[ApprovalEventRecord]] = {}

    def create_request(
        self, *, request: WorkRequestRecord, events: list[ApprovalEventRecord]
    ) -> None:
        with self._lock:
            if request.request_id in self._requests:
                raise ValueError(f"WORK_REQUEST_ALREADY_EXISTS:{request.request_id}")
            self._requests[request.request_id] = deepcopy(request)
            self._events[request.request_id] = [deepcopy(event) for event in events]

    def get_request(self, *, request_id: str) -> Optional[WorkRequestRecord]:
        with self._lock:
            request = self._requests.get(request_id)
            return deepcopy(request) if request is not None else None

    def list_requests(
        self,
        *,
        status: Optional[str],
        request_type: Optional[str],
        requester_id: Optional[str],
        current_approver_id: Optional[str],
        limit: Optional[int],
        cursor: Optional[str],
    ) -> tuple[list[WorkRequestRecord], Optional[str]]:
        with self._lock:
            rows = list(self._requests.values())

        rows = sorted(rows, key=lambda x: (x.created_at, x.request_id), reverse=True)

        if status is not None:
            rows = [row for row in rows if row.status == status]
        if request_type is not None:
            rows = [row for row in rows if row.request_type == request_type]
        if requester_id is not None:
            rows = [row for row in rows if row.requester_id == requester_id]
        if current_approver_id is not None:
            rows = [row for row in rows if row.current_approver_id == current_approver_id]

        if cursor:
            row_ids = [row.request_id for row in rows]
            if cursor not in row_ids:
                return [], None
            rows = rows[row_ids.index(cursor) + 1 :]

        if limit is None:
            return [deepcopy(row) for row in rows], None
        page = rows[:limit]
        next_cursor = page[-1].request_id if len(rows) > limit else None
        return [deepcopy(row) for row in page], next_cursor

    def append_event(self, event: ApprovalEventRecord) -> None:
        with self._lock:
            self._events.setdefault(event.request_id, []).append(deepcopy(event))

    def list_events(self, *, request_id: str) -> list[ApprovalEventRecord]:
        with self._lock:
            events = self._events.get(request_id, [])
            return [deepcopy(event) for event in events]

    def transition_request(
        self,
        *,
        request: WorkRequestRecord,
        expected_version: int,
        events: list[ApprovalEventRecord],
    ) -> Optional[WorkRequestTransitionResult]:
        with self._lock:
            stored = self._requests.get(request.request_id)
            if stored is None or stored.version != expected_version:
                return None
            self._requests[request.request_id] = deepcopy(request)
            self._events.setdefault(request.request_id, []).extend(
                deepcopy(event) for event in events
            )

        return WorkRequestTransitionResult(
            request=deepcopy(request),
            events=[deepcopy(event) for event in events],
        )
