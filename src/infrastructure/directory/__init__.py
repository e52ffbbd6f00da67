from src.infrastructure.directory.in_memory import (
    InMemoryApproverDirectory,
    RoleGrant,
    parse_directory_grants,
)

__all__ = [
    "InMemoryApproverDirectory",
    "RoleGrant",
    "parse_directory_grants",
]
