import os
import warnings
from decimal import Decimal, InvalidOperation
from typing import cast

from src.core.work_requests import (
    ApprovalThresholds,
    SlaPolicy,
    WorkRequestRepository,
)
from src.infrastructure.directory import InMemoryApproverDirectory, parse_directory_grants
from src.infrastructure.work_requests import (
    InMemoryWorkRequestRepository,
    PostgresWorkRequestRepository,
)


def env_flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        parsed = int(value)
    except ValueError:
        return default
    return parsed if parsed >= 1 else default


def env_non_negative_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        parsed = int(value)
    except ValueError:
        return default
    return parsed if parsed >= 0 else default


def env_decimal(name: str, default: Decimal) -> Decimal:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        parsed = Decimal(value.strip())
    except InvalidOperation:
        return default
    return parsed if parsed >= 0 else default


def env_fraction(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        parsed = float(value)
    except ValueError:
        return default
    return parsed if 0 < parsed < 1 else default


def work_request_store_backend_name() -> str:
    backend = os.getenv("WORK_REQUEST_STORE_BACKEND", "IN_MEMORY").strip().upper()
    if backend == "POSTGRES":
        return "POSTGRES"
    warnings.warn(
        "WORK_REQUEST_STORE_BACKEND legacy runtime backend (IN_MEMORY) is deprecated; "
        "use POSTGRES.",
        DeprecationWarning,
        stacklevel=2,
    )
    return "IN_MEMORY"


def work_request_postgres_dsn() -> str:
    return os.getenv("WORK_REQUEST_POSTGRES_DSN", "").strip()


def _postgres_connection_exception_types() -> tuple[type[BaseException], ...]:
    types: list[type[BaseException]] = [
        ConnectionError,
        OSError,
        TimeoutError,
        TypeError,
        ValueError,
    ]
    try:
        import psycopg
    except ImportError:
        pass
    else:
        types.append(psycopg.Error)
    return tuple(types)


def build_repository() -> WorkRequestRepository:
    backend = work_request_store_backend_name()
    if backend == "POSTGRES":
        dsn = work_request_postgres_dsn()
        if not dsn:
            raise RuntimeError("WORK_REQUEST_POSTGRES_DSN_REQUIRED")
        try:
            return cast(WorkRequestRepository, PostgresWorkRequestRepository(dsn=dsn))
        except RuntimeError:
            raise
        except _postgres_connection_exception_types() as exc:
            raise RuntimeError("WORK_REQUEST_POSTGRES_CONNECTION_FAILED") from exc
    return cast(WorkRequestRepository, InMemoryWorkRequestRepository())


def build_directory() -> InMemoryApproverDirectory:
    return InMemoryApproverDirectory(
        parse_directory_grants(os.getenv("WORK_REQUEST_DIRECTORY_JSON"))
    )


def approval_thresholds() -> ApprovalThresholds:
    defaults = ApprovalThresholds()
    high = env_decimal("WORK_REQUEST_HIGH_VALUE_THRESHOLD", defaults.high_value_threshold)
    very_high = env_decimal(
        "WORK_REQUEST_VERY_HIGH_VALUE_THRESHOLD", defaults.very_high_value_threshold
    )
    return ApprovalThresholds(
        high_value_threshold=high,
        very_high_value_threshold=max(high, very_high),
        min_high_value_proof_length=env_int(
            "WORK_REQUEST_MIN_PROOF_LENGTH", defaults.min_high_value_proof_length
        ),
        min_security_notes_length=defaults.min_security_notes_length,
        urgent_claimant_count=defaults.urgent_claimant_count,
    )


def sla_policy() -> SlaPolicy:
    defaults = SlaPolicy()
    return SlaPolicy(
        hours_by_priority={
            priority: env_int(f"WORK_REQUEST_SLA_HOURS_{priority}", hours)
            for priority, hours in defaults.hours_by_priority.items()
        },
        approaching_fraction=env_fraction(
            "WORK_REQUEST_SLA_APPROACHING_FRACTION", defaults.approaching_fraction
        ),
    )


def sla_sweep_interval_seconds() -> int:
    return env_non_negative_int("WORK_REQUEST_SLA_SWEEP_INTERVAL_SECONDS", 0)
