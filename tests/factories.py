from decimal import Decimal
from typing import Optional

from src.core.work_requests import (
    RequesterIdentity,
    RoutingEngine,
    WorkflowEngine,
    WorkRequestCreateRequest,
    WorkRequestScope,
)
from src.core.work_requests.models import (
    AirportToUniversityTransferDetails,
    DisputeClaimant,
    ItemClaimDetails,
    MultiEnterpriseDisputeDetails,
    PoliceEvidenceRequestDetails,
    TransitToAirportEmergencyDetails,
)
from src.infrastructure.directory import InMemoryApproverDirectory, RoleGrant
from src.infrastructure.work_requests import InMemoryWorkRequestRepository

NEU = "ent_northeastern"
NEU_BOSTON = "org_neu_boston"
NEU_OAKLAND = "org_neu_oakland"
MBTA = "ent_mbta"
MBTA_RUGGLES = "org_mbta_ruggles"
MASSPORT = "ent_massport"
LOGAN = "org_logan"
BPD = "ent_boston_police"
BPD_EVIDENCE = "org_bpd_evidence"


def directory_grants() -> list[RoleGrant]:
    return [
        RoleGrant(
            identity_id="coord_neu_01",
            role="CAMPUS_COORDINATOR",
            organization_id=NEU_BOSTON,
            enterprise_id=NEU,
        ),
        RoleGrant(
            identity_id="coord_neu_02",
            role="CAMPUS_COORDINATOR",
            organization_id=NEU_BOSTON,
            enterprise_id=NEU,
        ),
        RoleGrant(
            identity_id="coord_oak_01",
            role="CAMPUS_COORDINATOR",
            organization_id=NEU_OAKLAND,
            enterprise_id=NEU,
        ),
        RoleGrant(identity_id="hvv_neu_01", role="HIGH_VALUE_VERIFIER", enterprise_id=NEU),
        RoleGrant(
            identity_id="station_ruggles_01",
            role="STATION_MANAGER",
            organization_id=MBTA_RUGGLES,
            enterprise_id=MBTA,
        ),
        RoleGrant(
            identity_id="airport_lf_01",
            role="AIRPORT_LOST_FOUND_SPECIALIST",
            organization_id=LOGAN,
            enterprise_id=MASSPORT,
        ),
        RoleGrant(
            identity_id="tsa_logan_01",
            role="TSA_SECURITY_COORDINATOR",
            organization_id=LOGAN,
            enterprise_id=MASSPORT,
        ),
        RoleGrant(
            identity_id="police_bpd_01",
            role="POLICE_EVIDENCE_CUSTODIAN",
            organization_id=BPD_EVIDENCE,
            enterprise_id=BPD,
        ),
        RoleGrant(identity_id="stu_1001", role="STUDENT", enterprise_id=NEU),
    ]


def build_directory(grants: Optional[list[RoleGrant]] = None) -> InMemoryApproverDirectory:
    return InMemoryApproverDirectory(directory_grants() if grants is None else grants)


def build_engine(
    *,
    directory: Optional[InMemoryApproverDirectory] = None,
    repository=None,
    **kwargs,
) -> WorkflowEngine:
    return WorkflowEngine(
        repository=repository or InMemoryWorkRequestRepository(),
        routing=RoutingEngine(directory=directory or build_directory()),
        **kwargs,
    )


def requester(
    actor_id: str = "stu_1001",
    *,
    organization_id: Optional[str] = NEU_BOSTON,
    enterprise_id: str = NEU,
) -> RequesterIdentity:
    return RequesterIdentity(
        actor_id=actor_id,
        display_name="Jordan Lee",
        organization_id=organization_id,
        enterprise_id=enterprise_id,
    )


def scope(organization_id: Optional[str] = NEU_BOSTON, enterprise_id: str = NEU):
    return WorkRequestScope(organization_id=organization_id, enterprise_id=enterprise_id)


def claim_details(
    item_value: str = "25.00",
    *,
    proof_description: Optional[str] = None,
    claim_details: Optional[str] = "Black backpack with a red keychain",
    holding_enterprise_type: Optional[str] = None,
) -> ItemClaimDetails:
    return ItemClaimDetails(
        item_id="item_7781",
        item_name="Backpack",
        item_value=Decimal(item_value),
        claim_details=claim_details,
        proof_description=proof_description,
        holding_enterprise_type=holding_enterprise_type,
    )


def police_details(
    *,
    item_value: str = "300",
    stolen_check_requested: bool = False,
    high_value_verification: bool = False,
    serial_number: Optional[str] = None,
    imei_number: Optional[str] = None,
    other_identifiers: Optional[str] = None,
    verification_reason: Optional[str] = "Possible match with stolen property report",
) -> PoliceEvidenceRequestDetails:
    return PoliceEvidenceRequestDetails(
        item_id="item_9001",
        item_name="Phone",
        item_value=Decimal(item_value),
        verification_reason=verification_reason,
        stolen_check_requested=stolen_check_requested,
        high_value_verification=high_value_verification,
        serial_number=serial_number,
        imei_number=imei_number,
        other_identifiers=other_identifiers,
    )


def airport_details(
    *,
    item_value: str = "120",
    found_in_secure_area: bool = False,
    security_notes: Optional[str] = None,
    terminal: Optional[str] = "Terminal B",
) -> AirportToUniversityTransferDetails:
    return AirportToUniversityTransferDetails(
        item_id="item_4410",
        item_name="Headphones",
        item_value=Decimal(item_value),
        origin_organization_id=LOGAN,
        destination_organization_id=NEU_BOSTON,
        terminal=terminal,
        found_in_secure_area=found_in_secure_area,
        security_notes=security_notes,
        student_id="stu_1001",
    )


def emergency_details(**overrides) -> TransitToAirportEmergencyDetails:
    values = {
        "item_id": "item_5120",
        "item_name": "Passport",
        "item_value": Decimal("0"),
        "origin_organization_id": MBTA_RUGGLES,
        "destination_organization_id": LOGAN,
        "station_name": "Ruggles",
        "flight_number": "DL 1142",
    }
    values.update(overrides)
    return TransitToAirportEmergencyDetails(**values)


def dispute_details(
    claimant_ids: list[str], *, item_value: str = "80"
) -> MultiEnterpriseDisputeDetails:
    return MultiEnterpriseDisputeDetails(
        item_id="item_6200",
        item_name="Umbrella",
        item_value=Decimal(item_value),
        dispute_reason="Two people describe the same item",
        claimants=[DisputeClaimant(claimant_id=claimant_id) for claimant_id in claimant_ids],
    )


def create_payload(
    details,
    *,
    requester_identity: Optional[RequesterIdentity] = None,
    target: Optional[WorkRequestScope] = None,
    priority: Optional[str] = None,
    description: Optional[str] = "Lost item work request",
) -> WorkRequestCreateRequest:
    return WorkRequestCreateRequest(
        requester=requester_identity or requester(),
        target=target or scope(),
        priority=priority,
        description=description,
        details=details,
    )


def claim_payload_json(item_value: str = "25.00", **details_overrides) -> dict:
    details = {
        "request_type": "ITEM_CLAIM",
        "item_id": "item_7781",
        "item_name": "Backpack",
        "item_value": item_value,
        "claim_details": "Black backpack with a red keychain",
    }
    details.update(details_overrides)
    return {
        "requester": {
            "actor_id": "stu_1001",
            "display_name": "Jordan Lee",
            "organization_id": NEU_BOSTON,
            "enterprise_id": NEU,
        },
        "target": {"organization_id": NEU_BOSTON, "enterprise_id": NEU},
        "description": "Claim for lost backpack",
        "details": details,
    }
