from src.infrastructure.work_requests.in_memory import InMemoryWorkRequestRepository
from src.infrastructure.work_requests.postgres import PostgresWorkRequestRepository

__all__ = [
    "InMemoryWorkRequestRepository",
    "PostgresWorkRequestRepository",
]
