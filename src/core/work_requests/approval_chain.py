from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from src.core.work_requests.models import (
    AirportToUniversityTransferDetails,
    ApprovalStep,
    CrossCampusTransferDetails,
    EnterpriseType,
    ItemClaimDetails,
    MultiEnterpriseDisputeDetails,
    PoliceEvidenceRequestDetails,
    WorkRequestDetails,
    WorkRequestPriority,
)

LAW_ENFORCEMENT_ROLE = "POLICE_EVIDENCE_CUSTODIAN"
HIGH_VALUE_VERIFIER_ROLE = "HIGH_VALUE_VERIFIER"
ENHANCED_SECURITY_ROLE = "TSA_SECURITY_COORDINATOR"

ENTERPRISE_CUSTODIAN_ROLES: dict[EnterpriseType, str] = {
    "HIGHER_EDUCATION": "CAMPUS_COORDINATOR",
    "PUBLIC_TRANSIT": "STATION_MANAGER",
    "AIRPORT": "AIRPORT_LOST_FOUND_SPECIALIST",
    "LAW_ENFORCEMENT": LAW_ENFORCEMENT_ROLE,
}

BASE_CHAINS: dict[str, list[tuple[str, str]]] = {
    "TRANSIT_TO_UNIVERSITY_TRANSFER": [
        ("STATION_MANAGER", "REQUESTER"),
        ("CAMPUS_COORDINATOR", "TARGET"),
        ("STUDENT", "TARGET"),
    ],
    "AIRPORT_TO_UNIVERSITY_TRANSFER": [
        ("AIRPORT_LOST_FOUND_SPECIALIST", "REQUESTER"),
        ("CAMPUS_COORDINATOR", "TARGET"),
        (LAW_ENFORCEMENT_ROLE, "ANY"),
        ("STUDENT", "TARGET"),
    ],
    "POLICE_EVIDENCE_REQUEST": [
        ("CAMPUS_COORDINATOR", "REQUESTER"),
        (LAW_ENFORCEMENT_ROLE, "TARGET"),
    ],
    "TRANSIT_TO_AIRPORT_EMERGENCY": [
        ("STATION_MANAGER", "REQUESTER"),
        ("AIRPORT_LOST_FOUND_SPECIALIST", "TARGET"),
    ],
    "MULTI_ENTERPRISE_DISPUTE": [(LAW_ENFORCEMENT_ROLE, "TARGET")],
}


class ApprovalThresholds(BaseModel):
    high_value_threshold: Decimal = Field(
        default=Decimal("500"),
        description="Inclusive value at which high-value verification is required.",
        examples=["500"],
    )
    very_high_value_threshold: Decimal = Field(
        default=Decimal("1000"),
        description="Inclusive value at which law-enforcement verification is appended.",
        examples=["1000"],
    )
    min_high_value_proof_length: int = Field(default=20, ge=1, examples=[20])
    min_security_notes_length: int = Field(default=20, ge=1, examples=[20])
    urgent_claimant_count: int = Field(default=3, ge=2, examples=[3])

    def is_high_value(self, value: Decimal) -> bool:
        return value >= self.high_value_threshold

    def is_very_high_value(self, value: Decimal) -> bool:
        return value >= self.very_high_value_threshold


class ApprovalChainResolver:
    def __init__(self, *, thresholds: Optional[ApprovalThresholds] = None) -> None:
        self._thresholds = thresholds or ApprovalThresholds()

    @property
    def thresholds(self) -> ApprovalThresholds:
        return self._thresholds

    def resolve(self, details: WorkRequestDetails) -> list[ApprovalStep]:
        chain = self._base_chain(details)
        base_approver, remainder = chain[:1], chain[1:]

        inserted: list[ApprovalStep] = []
        if self._thresholds.is_high_value(details.item_value):
            inserted.append(ApprovalStep(role=HIGH_VALUE_VERIFIER_ROLE, scope="TARGET"))
        if isinstance(details, AirportToUniversityTransferDetails) and details.found_in_secure_area:
            inserted.append(ApprovalStep(role=ENHANCED_SECURITY_ROLE, scope="REQUESTER"))
        inserted = [step for step in inserted if not _has_role(chain, step.role)]

        resolved = base_approver + inserted + remainder
        if self._thresholds.is_very_high_value(details.item_value) and not _has_role(
            resolved, LAW_ENFORCEMENT_ROLE
        ):
            resolved.append(ApprovalStep(role=LAW_ENFORCEMENT_ROLE, scope="ANY"))
        return resolved

    def determine_priority(self, details: WorkRequestDetails) -> WorkRequestPriority:
        if details.request_type == "TRANSIT_TO_AIRPORT_EMERGENCY":
            return "URGENT"
        if isinstance(details, PoliceEvidenceRequestDetails) and details.stolen_check_requested:
            return "URGENT"
        if self._thresholds.is_very_high_value(details.item_value):
            return "URGENT"
        if isinstance(details, MultiEnterpriseDisputeDetails):
            if len(details.claimants) >= self._thresholds.urgent_claimant_count:
                return "URGENT"
            return "HIGH"
        if isinstance(details, PoliceEvidenceRequestDetails):
            return "HIGH"
        if self._thresholds.is_high_value(details.item_value):
            return "HIGH"
        if isinstance(details, AirportToUniversityTransferDetails) and details.found_in_secure_area:
            return "HIGH"
        return "NORMAL"

    def _base_chain(self, details: WorkRequestDetails) -> list[ApprovalStep]:
        if isinstance(details, ItemClaimDetails):
            holding = details.holding_enterprise_type
            if holding is None or holding == "HIGHER_EDUCATION":
                return [ApprovalStep(role="CAMPUS_COORDINATOR", scope="TARGET")]
            return [
                ApprovalStep(role="CAMPUS_COORDINATOR", scope="REQUESTER"),
                ApprovalStep(role=ENTERPRISE_CUSTODIAN_ROLES[holding], scope="TARGET"),
            ]
        if isinstance(details, CrossCampusTransferDetails):
            return [
                ApprovalStep(role="CAMPUS_COORDINATOR", scope="REQUESTER"),
                ApprovalStep(
                    role=ENTERPRISE_CUSTODIAN_ROLES[details.destination_enterprise_type],
                    scope="TARGET",
                ),
                ApprovalStep(role="STUDENT", scope="TARGET"),
            ]
        steps = BASE_CHAINS[details.request_type]
        return [ApprovalStep(role=role, scope=scope) for role, scope in steps]


def _has_role(chain: list[ApprovalStep], role: str) -> bool:
    return any(step.role == role for step in chain)
