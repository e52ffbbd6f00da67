import logging
from threading import Lock
from typing import Iterable, NamedTuple, Optional, Protocol

logger = logging.getLogger(__name__)


class ApproverDirectory(Protocol):
    def can_act(
        self,
        *,
        identity_id: str,
        role: str,
        organization_id: Optional[str],
        enterprise_id: Optional[str],
    ) -> bool: ...

    def list_candidates(
        self,
        *,
        role: str,
        organization_id: Optional[str],
        enterprise_id: Optional[str],
    ) -> list[str]: ...


class WorkloadKey(NamedTuple):
    role: str
    organization_id: Optional[str]
    enterprise_id: Optional[str]
    approver_id: str


class ApproverWorkloadStore:
    """Active-assignment counters keyed by role, scope and approver.

    Selection and increment happen under one lock so concurrent assignments see each other.
    """

    def __init__(self) -> None:
        self._lock = Lock()
        self._counters: dict[WorkloadKey, int] = {}

    def active_count(self, approver_id: str) -> int:
        with self._lock:
            return self._active_count_locked(approver_id)

    def snapshot(self) -> dict[str, int]:
        with self._lock:
            totals: dict[str, int] = {}
            for key, count in self._counters.items():
                if count > 0:
                    totals[key.approver_id] = totals.get(key.approver_id, 0) + count
            return dict(sorted(totals.items()))

    def claim_least_loaded(
        self,
        *,
        candidates: list[str],
        role: str,
        organization_id: Optional[str],
        enterprise_id: Optional[str],
        preferred_id: Optional[str] = None,
        excluded_ids: Iterable[str] = (),
    ) -> Optional[str]:
        eligible = sorted(set(candidates).difference(excluded_ids))
        if not eligible:
            return None
        with self._lock:
            if preferred_id is not None and preferred_id in eligible:
                selected = preferred_id
            else:
                selected = min(
                    eligible,
                    key=lambda candidate: self._active_count_locked(candidate),
                )
            key = WorkloadKey(role, organization_id, enterprise_id, selected)
            self._counters[key] = self._counters.get(key, 0) + 1
            return selected

    def restore(self, key: WorkloadKey) -> None:
        with self._lock:
            self._counters[key] = self._counters.get(key, 0) + 1

    def release(self, key: WorkloadKey) -> None:
        with self._lock:
            current = self._counters.get(key, 0)
            if current > 0:
                self._counters[key] = current - 1

    def _active_count_locked(self, approver_id: str) -> int:
        return sum(
            count for key, count in self._counters.items() if key.approver_id == approver_id
        )


class RoutingEngine:
    def __init__(
        self,
        *,
        directory: ApproverDirectory,
        workload: Optional[ApproverWorkloadStore] = None,
    ) -> None:
        self._directory = directory
        self._workload = workload or ApproverWorkloadStore()

    @property
    def workload(self) -> ApproverWorkloadStore:
        return self._workload

    def assign(
        self,
        *,
        role: str,
        organization_id: Optional[str],
        enterprise_id: Optional[str],
        preferred_id: Optional[str] = None,
        excluded_ids: Iterable[str] = (),
    ) -> Optional[str]:
        candidates = self._directory.list_candidates(
            role=role,
            organization_id=organization_id,
            enterprise_id=enterprise_id,
        )
        approver_id = self._workload.claim_least_loaded(
            candidates=candidates,
            role=role,
            organization_id=organization_id,
            enterprise_id=enterprise_id,
            preferred_id=preferred_id,
            excluded_ids=excluded_ids,
        )
        if approver_id is None:
            logger.warning(
                "No eligible approver. Role=%s Org=%s Enterprise=%s",
                role,
                organization_id,
                enterprise_id,
            )
        return approver_id

    def release(
        self,
        *,
        approver_id: str,
        role: str,
        organization_id: Optional[str],
        enterprise_id: Optional[str],
    ) -> None:
        self._workload.release(WorkloadKey(role, organization_id, enterprise_id, approver_id))

    def restore(
        self,
        *,
        approver_id: str,
        role: str,
        organization_id: Optional[str],
        enterprise_id: Optional[str],
    ) -> None:
        self._workload.restore(WorkloadKey(role, organization_id, enterprise_id, approver_id))

    def can_act(
        self,
        *,
        identity_id: str,
        role: str,
        organization_id: Optional[str],
        enterprise_id: Optional[str],
    ) -> bool:
        return self._directory.can_act(
            identity_id=identity_id,
            role=role,
            organization_id=organization_id,
            enterprise_id=enterprise_id,
        )
