import json
import logging
from threading import Lock
from typing import Optional

from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)


class RoleGrant(BaseModel):
    identity_id: str = Field(examples=["coord_neu_01"])
    role: str = Field(examples=["CAMPUS_COORDINATOR"])
    organization_id: Optional[str] = Field(
        default=None,
        description="Organization the grant is limited to; omitted means the whole enterprise.",
        examples=["org_neu_boston"],
    )
    enterprise_id: str = Field(examples=["ent_northeastern"])

    def covers(
        self, *, role: str, organization_id: Optional[str], enterprise_id: Optional[str]
    ) -> bool:
        if self.role != role:
            return False
        if enterprise_id is not None and self.enterprise_id != enterprise_id:
            return False
        if organization_id is None or self.organization_id is None:
            return True
        return self.organization_id == organization_id


class InMemoryApproverDirectory:
    def __init__(self, grants: Optional[list[RoleGrant]] = None) -> None:
        self._lock = Lock()
        self._grants: list[RoleGrant] = list(grants or [])

    def grant(
        self,
        *,
        identity_id: str,
        role: str,
        enterprise_id: str,
        organization_id: Optional[str] = None,
    ) -> None:
        grant = RoleGrant(
            identity_id=identity_id,
            role=role,
            organization_id=organization_id,
            enterprise_id=enterprise_id,
        )
        with self._lock:
            if grant not in self._grants:
                self._grants.append(grant)

    def revoke(self, *, identity_id: str, role: str) -> int:
        with self._lock:
            before = len(self._grants)
            self._grants = [
                grant
                for grant in self._grants
                if not (grant.identity_id == identity_id and grant.role == role)
            ]
            return before - len(self._grants)

    def can_act(
        self,
        *,
        identity_id: str,
        role: str,
        organization_id: Optional[str],
        enterprise_id: Optional[str],
    ) -> bool:
        with self._lock:
            return any(
                grant.identity_id == identity_id
                and grant.covers(
                    role=role, organization_id=organization_id, enterprise_id=enterprise_id
                )
                for grant in self._grants
            )

    def list_candidates(
        self,
        *,
        role: str,
        organization_id: Optional[str],
        enterprise_id: Optional[str],
    ) -> list[str]:
        with self._lock:
            candidates = {
                grant.identity_id
                for grant in self._grants
                if grant.covers(
                    role=role, organization_id=organization_id, enterprise_id=enterprise_id
                )
            }
        return sorted(candidates)


def parse_directory_grants(directory_json: Optional[str]) -> list[RoleGrant]:
    normalized_json = (directory_json or "").strip()
    if not normalized_json:
        return []
    try:
        raw = json.loads(normalized_json)
    except json.JSONDecodeError:
        logger.warning("Ignoring malformed approver directory JSON")
        return []
    if not isinstance(raw, list):
        return []

    grants: list[RoleGrant] = []
    for entry in raw:
        if not isinstance(entry, dict):
            continue
        try:
            grants.append(RoleGrant.model_validate(entry))
        except ValidationError:
            logger.warning("Skipping invalid approver directory entry: %s", entry)
    return grants
