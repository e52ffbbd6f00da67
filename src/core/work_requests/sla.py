from datetime import datetime, timedelta
from typing import Iterable, Optional

from pydantic import BaseModel, Field

from src.core.work_requests.models import (
    SlaClassification,
    SlaSweepResult,
    WorkRequestPriority,
    WorkRequestRecord,
)

TERMINAL_STATUSES = {"REJECTED", "CANCELLED", "COMPLETED"}


class SlaPolicy(BaseModel):
    hours_by_priority: dict[WorkRequestPriority, int] = Field(
        default_factory=lambda: {"URGENT": 4, "HIGH": 24, "NORMAL": 48, "LOW": 72},
        description="Deadline window from creation, in hours, per priority.",
    )
    approaching_fraction: float = Field(
        default=0.25,
        gt=0,
        lt=1,
        description="Remaining share of the window below which a request is APPROACHING.",
    )


class SlaTracker:
    def __init__(self, *, policy: Optional[SlaPolicy] = None) -> None:
        self._policy = policy or SlaPolicy()

    def window(self, priority: WorkRequestPriority) -> timedelta:
        return timedelta(hours=self._policy.hours_by_priority[priority])

    def deadline(self, request: WorkRequestRecord) -> datetime:
        return request.created_at + self.window(request.priority)

    def classify(self, request: WorkRequestRecord, now: datetime) -> SlaClassification:
        if request.status in TERMINAL_STATUSES:
            return "ON_TRACK"
        deadline = self.deadline(request)
        if now > deadline:
            return "OVERDUE"
        remaining = deadline - now
        if remaining < self.window(request.priority) * self._policy.approaching_fraction:
            return "APPROACHING"
        return "ON_TRACK"

    def sweep(self, requests: Iterable[WorkRequestRecord], now: datetime) -> SlaSweepResult:
        overdue: list[str] = []
        approaching: list[str] = []
        for request in requests:
            classification = self.classify(request, now)
            if classification == "OVERDUE":
                overdue.append(request.request_id)
            elif classification == "APPROACHING":
                approaching.append(request.request_id)
        return SlaSweepResult(
            observed_at=now.isoformat(),
            overdue=sorted(overdue),
            approaching=sorted(approaching),
        )
