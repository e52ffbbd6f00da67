import json
from contextlib import closing
from datetime import datetime
from importlib.util import find_spec
from typing import Optional

from pydantic import TypeAdapter

from src.core.work_requests.models import (
    ApprovalEventRecord,
    ApprovalStep,
    WorkRequestDetails,
    WorkRequestRecord,
    WorkRequestTransitionResult,
)
from src.infrastructure.postgres_migrations import apply_postgres_migrations

_DETAILS_ADAPTER: TypeAdapter = TypeAdapter(WorkRequestDetails)

_REQUEST_COLUMNS = """
                request_id,
                request_type,
                status,
                priority,
                requester_id,
                requester_name,
                requester_organization_id,
                requester_enterprise_id,
                target_organization_id,
                target_enterprise_id,
                approval_chain_json,
                current_step_index,
                current_approver_id,
                description,
                details_json,
                version,
                created_at,
                updated_at,
                completed_at
"""


class PostgresWorkRequestRepository:
    def __init__(self, *, dsn: str) -> None:
        if not dsn:
            raise RuntimeError("WORK_REQUEST_POSTGRES_DSN_REQUIRED")
        if find_spec("psycopg") is None:
            raise RuntimeError("WORK_REQUEST_POSTGRES_DRIVER_MISSING")
        self._dsn = dsn
        self._init_db()

    def create_request(
        self, *, request: WorkRequestRecord, events: list[ApprovalEventRecord]
    ) -> None:
        query = f"""
            INSERT INTO work_requests (
                {_REQUEST_COLUMNS}
            ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
        """
        with closing(self._connect()) as connection:
            connection.execute(query, _request_args(request))
            for event in events:
                self._insert_event(connection=connection, event=event)
            connection.commit()

    def get_request(self, *, request_id: str) -> Optional[WorkRequestRecord]:
        query = f"""
            SELECT
                {_REQUEST_COLUMNS}
            FROM work_requests
            WHERE request_id = %s
        """
        with closing(self._connect()) as connection:
            row = connection.execute(query, (request_id,)).fetchone()
        return _to_request(row)

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
        where_clauses = []
        args: list[str] = []
        if status is not None:
            where_clauses.append("status = %s")
            args.append(status)
        if request_type is not None:
            where_clauses.append("request_type = %s")
            args.append(request_type)
        if requester_id is not None:
            where_clauses.append("requester_id = %s")
            args.append(requester_id)
        if current_approver_id is not None:
            where_clauses.append("current_approver_id = %s")
            args.append(current_approver_id)
        where_sql = f"WHERE {' AND '.join(where_clauses)}" if where_clauses else ""
        query = f"""
            SELECT
                {_REQUEST_COLUMNS}
            FROM work_requests
            {where_sql}
            ORDER BY created_at DESC, request_id DESC
        """
        with closing(self._connect()) as connection:
            rows = connection.execute(query, tuple(args)).fetchall()
        requests = [_to_request(row) for row in rows]
        requests = [request for request in requests if request is not None]
        if cursor:
            cursor_index = next(
                (
                    index
                    for index, request in enumerate(requests)
                    if request.request_id == cursor
                ),
                None,
            )
            if cursor_index is None:
                return [], None
            requests = requests[cursor_index + 1 :]
        if limit is None:
            return requests, None
        page = requests[:limit]
        next_cursor = page[-1].request_id if len(requests) > limit else None
        return page, next_cursor

    def append_event(self, event: ApprovalEventRecord) -> None:
        with closing(self._connect()) as connection:
            self._insert_event(connection=connection, event=event)
            connection.commit()

    def list_events(self, *, request_id: str) -> list[ApprovalEventRecord]:
        query = """
            SELECT
                event_id,
                request_id,
                action,
                actor_id,
                step_index,
                role,
                assignee_id,
                note,
                occurred_at
            FROM work_request_events
            WHERE request_id = %s
            ORDER BY event_seq ASC
        """
        with closing(self._connect()) as connection:
            rows = connection.execute(query, (request_id,)).fetchall()
        return [_to_event(row) for row in rows]

    def transition_request(
        self,
        *,
        request: WorkRequestRecord,
        expected_version: int,
        events: list[ApprovalEventRecord],
    ) -> Optional[WorkRequestTransitionResult]:
        query = """
            UPDATE work_requests SET
                status=%s,
                priority=%s,
                current_step_index=%s,
                current_approver_id=%s,
                description=%s,
                details_json=%s,
                version=%s,
                updated_at=%s,
                completed_at=%s
            WHERE request_id = %s AND version = %s
        """
        with closing(self._connect()) as connection:
            cursor = connection.execute(
                query,
                (
                    request.status,
                    request.priority,
                    request.current_step_index,
                    request.current_approver_id,
                    request.description,
                    _json_dump(request.details.model_dump(mode="json")),
                    request.version,
                    request.updated_at.isoformat(),
                    _optional_iso(request.completed_at),
                    request.request_id,
                    expected_version,
                ),
            )
            if cursor.rowcount != 1:
                connection.rollback()
                return None
            for event in events:
                self._insert_event(connection=connection, event=event)
            connection.commit()

        return WorkRequestTransitionResult(request=request, events=events)

    def _connect(self):
        psycopg, dict_row = _import_psycopg()
        return psycopg.connect(self._dsn, row_factory=dict_row)

    def _init_db(self) -> None:
        with closing(self._connect()) as connection:
            apply_postgres_migrations(connection=connection, namespace="work_requests")

    def _insert_event(self, *, connection, event: ApprovalEventRecord) -> None:
        query = """
            INSERT INTO work_request_events (
                event_id,
                request_id,
                action,
                actor_id,
                step_index,
                role,
                assignee_id,
                note,
                occurred_at
            ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
        """
        connection.execute(
            query,
            (
                event.event_id,
                event.request_id,
                event.action,
                event.actor_id,
                event.step_index,
                event.role,
                event.assignee_id,
                event.note,
                event.occurred_at.isoformat(),
            ),
        )


def _import_psycopg():
    import psycopg
    from psycopg.rows import dict_row

    return psycopg, dict_row


def _request_args(request: WorkRequestRecord) -> tuple:
    return (
        request.request_id,
        request.request_type,
        request.status,
        request.priority,
        request.requester_id,
        request.requester_name,
        request.requester_organization_id,
        request.requester_enterprise_id,
        request.target_organization_id,
        request.target_enterprise_id,
        _json_dump([step.model_dump(mode="json") for step in request.approval_chain]),
        request.current_step_index,
        request.current_approver_id,
        request.description,
        _json_dump(request.details.model_dump(mode="json")),
        request.version,
        request.created_at.isoformat(),
        request.updated_at.isoformat(),
        _optional_iso(request.completed_at),
    )


def _optional_iso(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.isoformat()


def _optional_datetime(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromisoformat(value)


def _json_dump(value) -> str:
    return json.dumps(value, separators=(",", ":"), sort_keys=True)


def _to_request(row) -> Optional[WorkRequestRecord]:
    if row is None:
        return None
    return WorkRequestRecord(
        request_id=row["request_id"],
        request_type=row["request_type"],
        status=row["status"],
        priority=row["priority"],
        requester_id=row["requester_id"],
        requester_name=row["requester_name"],
        requester_organization_id=row["requester_organization_id"],
        requester_enterprise_id=row["requester_enterprise_id"],
        target_organization_id=row["target_organization_id"],
        target_enterprise_id=row["target_enterprise_id"],
        approval_chain=[
            ApprovalStep.model_validate(step) for step in json.loads(row["approval_chain_json"])
        ],
        current_step_index=int(row["current_step_index"]),
        current_approver_id=row["current_approver_id"],
        description=row["description"],
        details=_DETAILS_ADAPTER.validate_python(json.loads(row["details_json"])),
        version=int(row["version"]),
        created_at=datetime.fromisoformat(row["created_at"]),
        updated_at=datetime.fromisoformat(row["updated_at"]),
        completed_at=_optional_datetime(row["completed_at"]),
    )


def _to_event(row) -> ApprovalEventRecord:
    return ApprovalEventRecord(
        event_id=row["event_id"],
        request_id=row["request_id"],
        action=row["action"],
        actor_id=row["actor_id"],
        step_index=row["step_index"],
        role=row["role"],
        assignee_id=row["assignee_id"],
        note=row["note"],
        occurred_at=datetime.fromisoformat(row["occurred_at"]),
    )
