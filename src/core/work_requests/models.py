from datetime import datetime
from decimal import Decimal
from typing import Annotated, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field

WorkRequestStatus = Literal[
    "PENDING",
    "IN_PROGRESS",
    "APPROVED",
    "REJECTED",
    "CANCELLED",
    "COMPLETED",
]

WorkRequestPriority = Literal["LOW", "NORMAL", "HIGH", "URGENT"]

WorkRequestType = Literal[
    "ITEM_CLAIM",
    "CROSS_CAMPUS_TRANSFER",
    "TRANSIT_TO_UNIVERSITY_TRANSFER",
    "AIRPORT_TO_UNIVERSITY_TRANSFER",
    "POLICE_EVIDENCE_REQUEST",
    "TRANSIT_TO_AIRPORT_EMERGENCY",
    "MULTI_ENTERPRISE_DISPUTE",
]

EnterpriseType = Literal["HIGHER_EDUCATION", "PUBLIC_TRANSIT", "AIRPORT", "LAW_ENFORCEMENT"]

ApproverRole = Literal[
    "CAMPUS_COORDINATOR",
    "STATION_MANAGER",
    "AIRPORT_LOST_FOUND_SPECIALIST",
    "POLICE_EVIDENCE_CUSTODIAN",
    "TSA_SECURITY_COORDINATOR",
    "HIGH_VALUE_VERIFIER",
    "STUDENT",
]

ApprovalStepScope = Literal["REQUESTER", "TARGET", "ANY"]

ApprovalEventAction = Literal[
    "CREATED",
    "ASSIGNED",
    "ROUTING_UNAVAILABLE",
    "APPROVED",
    "REJECTED",
    "CANCELLED",
    "COMPLETED",
    "NOTE_ADDED",
    "CLAIMANT_ADDED",
]

SlaClassification = Literal["ON_TRACK", "APPROACHING", "OVERDUE"]


class WorkRequestScope(BaseModel):
    organization_id: Optional[str] = Field(
        default=None,
        description="Organization boundary; omitted means enterprise-wide.",
        examples=["org_neu_boston"],
    )
    enterprise_id: str = Field(
        description="Enterprise boundary the organization belongs to.",
        examples=["ent_northeastern"],
    )


class RequesterIdentity(BaseModel):
    actor_id: str = Field(description="Identity submitting the request.", examples=["stu_1001"])
    display_name: Optional[str] = Field(
        default=None,
        description="Optional human-readable requester name.",
        examples=["Jordan Lee"],
    )
    organization_id: Optional[str] = Field(
        default=None,
        description="Requester organization.",
        examples=["org_neu_boston"],
    )
    enterprise_id: str = Field(
        description="Requester enterprise.",
        examples=["ent_northeastern"],
    )

    def scope(self) -> WorkRequestScope:
        return WorkRequestScope(
            organization_id=self.organization_id,
            enterprise_id=self.enterprise_id,
        )


class WorkRequestItemDetails(BaseModel):
    item_id: str = Field(description="Lost-and-found item identifier.", examples=["item_7781"])
    item_name: Optional[str] = Field(
        default=None,
        description="Short item description.",
        examples=["Black MacBook Pro"],
    )
    item_value: Decimal = Field(
        default=Decimal("0"),
        ge=0,
        description="Declared or estimated item value; drives escalation and priority.",
        examples=["25.00"],
    )


class ItemClaimDetails(WorkRequestItemDetails):
    request_type: Literal["ITEM_CLAIM"] = Field(default="ITEM_CLAIM")
    claim_details: Optional[str] = Field(
        default=None,
        description="Claimant's supporting detail for ownership.",
        examples=["Left it in Snell Library on the second floor."],
    )
    proof_description: Optional[str] = Field(
        default=None,
        description="Proof of ownership; mandatory with a minimum length for high-value items.",
        examples=["Serial C02XK1 matches my purchase receipt from March."],
    )
    identifying_features: Optional[str] = Field(
        default=None,
        description="Distinguishing marks on the item.",
        examples=["Sticker of a lighthouse on the lid"],
    )
    holding_enterprise_type: Optional[EnterpriseType] = Field(
        default=None,
        description="Enterprise type currently holding the item, when outside the university.",
        examples=["AIRPORT"],
    )


class TransferDetails(WorkRequestItemDetails):
    origin_organization_id: Optional[str] = Field(
        default=None,
        description="Organization releasing custody.",
        examples=["org_neu_boston"],
    )
    destination_organization_id: Optional[str] = Field(
        default=None,
        description="Organization receiving custody.",
        examples=["org_bu_main"],
    )


class CrossCampusTransferDetails(TransferDetails):
    request_type: Literal["CROSS_CAMPUS_TRANSFER"] = Field(default="CROSS_CAMPUS_TRANSFER")
    destination_enterprise_type: EnterpriseType = Field(
        default="HIGHER_EDUCATION",
        description="Enterprise type of the receiving organization.",
        examples=["HIGHER_EDUCATION"],
    )
    student_id: Optional[str] = Field(
        default=None,
        description="Student collecting the item at the destination.",
        examples=["stu_1001"],
    )
    pickup_location: Optional[str] = Field(default=None, examples=["Curry Student Center desk"])


class TransitToUniversityTransferDetails(TransferDetails):
    request_type: Literal["TRANSIT_TO_UNIVERSITY_TRANSFER"] = Field(
        default="TRANSIT_TO_UNIVERSITY_TRANSFER"
    )
    station_name: Optional[str] = Field(default=None, examples=["Ruggles"])
    transit_line: Optional[str] = Field(default=None, examples=["Orange Line"])
    student_id: Optional[str] = Field(default=None, examples=["stu_1001"])
    campus_pickup_location: Optional[str] = Field(default=None, examples=["Campus police lobby"])


class AirportToUniversityTransferDetails(TransferDetails):
    request_type: Literal["AIRPORT_TO_UNIVERSITY_TRANSFER"] = Field(
        default="AIRPORT_TO_UNIVERSITY_TRANSFER"
    )
    terminal: Optional[str] = Field(default=None, examples=["Terminal B"])
    airport_incident_number: Optional[str] = Field(default=None, examples=["BOS-LF-2291"])
    found_in_secure_area: bool = Field(
        default=False,
        description="Item was found past security screening; adds an enhanced-security review.",
        examples=[False],
    )
    security_notes: Optional[str] = Field(default=None, examples=["Recovered at gate B12."])
    student_id: Optional[str] = Field(default=None, examples=["stu_1001"])
    campus_pickup_location: Optional[str] = Field(default=None, examples=["Campus police lobby"])


class PoliceEvidenceRequestDetails(WorkRequestItemDetails):
    request_type: Literal["POLICE_EVIDENCE_REQUEST"] = Field(default="POLICE_EVIDENCE_REQUEST")
    verification_reason: Optional[str] = Field(
        default=None,
        examples=["Possible match against stolen-property report."],
    )
    stolen_check_requested: bool = Field(default=False, examples=[True])
    high_value_verification: bool = Field(default=False, examples=[False])
    serial_number: Optional[str] = Field(default=None, examples=["C02XK1"])
    imei_number: Optional[str] = Field(default=None, examples=["356938035643809"])
    other_identifiers: Optional[str] = Field(default=None, examples=["Engraved initials J.L."])


class TransitToAirportEmergencyDetails(TransferDetails):
    request_type: Literal["TRANSIT_TO_AIRPORT_EMERGENCY"] = Field(
        default="TRANSIT_TO_AIRPORT_EMERGENCY"
    )
    station_name: Optional[str] = Field(default=None, examples=["Airport Station"])
    flight_number: Optional[str] = Field(default=None, examples=["DL 1142"])
    flight_departure_at: Optional[datetime] = Field(default=None)
    traveler_name: Optional[str] = Field(default=None, examples=["Sam Ortiz"])


class DisputeClaimant(BaseModel):
    claimant_id: str = Field(examples=["stu_1001"])
    claimant_name: Optional[str] = Field(default=None, examples=["Jordan Lee"])
    enterprise_id: Optional[str] = Field(default=None, examples=["ent_northeastern"])
    claim_description: Optional[str] = Field(default=None)


class MultiEnterpriseDisputeDetails(WorkRequestItemDetails):
    request_type: Literal["MULTI_ENTERPRISE_DISPUTE"] = Field(default="MULTI_ENTERPRISE_DISPUTE")
    dispute_reason: Optional[str] = Field(
        default=None,
        examples=["Two claimants from different enterprises describe the same laptop."],
    )
    claimants: List[DisputeClaimant] = Field(default_factory=list)


WorkRequestDetails = Annotated[
    Union[
        ItemClaimDetails,
        CrossCampusTransferDetails,
        TransitToUniversityTransferDetails,
        AirportToUniversityTransferDetails,
        PoliceEvidenceRequestDetails,
        TransitToAirportEmergencyDetails,
        MultiEnterpriseDisputeDetails,
    ],
    Field(discriminator="request_type"),
]


class ApprovalStep(BaseModel):
    role: ApproverRole = Field(examples=["CAMPUS_COORDINATOR"])
    scope: ApprovalStepScope = Field(
        default="TARGET",
        description="Which scope the approver for this step is routed in.",
        examples=["TARGET"],
    )


class WorkRequestRecord(BaseModel):
    request_id: str
    request_type: WorkRequestType
    status: WorkRequestStatus
    priority: WorkRequestPriority
    requester_id: str
    requester_name: Optional[str] = None
    requester_organization_id: Optional[str] = None
    requester_enterprise_id: str
    target_organization_id: Optional[str] = None
    target_enterprise_id: str
    approval_chain: List[ApprovalStep]
    current_step_index: int = 0
    current_approver_id: Optional[str] = None
    description: Optional[str] = None
    details: WorkRequestDetails
    version: int = 1
    created_at: datetime
    updated_at: datetime
    completed_at: Optional[datetime] = None

    def chain_roles(self) -> list[str]:
        return [step.role for step in self.approval_chain]

    def requester_scope(self) -> WorkRequestScope:
        return WorkRequestScope(
            organization_id=self.requester_organization_id,
            enterprise_id=self.requester_enterprise_id,
        )

    def target_scope(self) -> WorkRequestScope:
        return WorkRequestScope(
            organization_id=self.target_organization_id,
            enterprise_id=self.target_enterprise_id,
        )


class ApprovalEventRecord(BaseModel):
    event_id: str
    request_id: str
    action: ApprovalEventAction
    actor_id: str
    step_index: Optional[int] = None
    role: Optional[str] = None
    assignee_id: Optional[str] = None
    note: Optional[str] = None
    occurred_at: datetime


class WorkRequestTransitionResult(BaseModel):
    request: WorkRequestRecord
    events: List[ApprovalEventRecord]


class WorkRequestCreateRequest(BaseModel):
    requester: RequesterIdentity = Field(
        description="Identity and scope of the submitter.",
        examples=[
            {
                "actor_id": "stu_1001",
                "organization_id": "org_neu_boston",
                "enterprise_id": "ent_northeastern",
            }
        ],
    )
    target: WorkRequestScope = Field(
        description="Scope where the request is destined to be actioned.",
        examples=[{"organization_id": "org_neu_boston", "enterprise_id": "ent_northeastern"}],
    )
    priority: Optional[WorkRequestPriority] = Field(
        default=None,
        description="Explicit priority; derived from the payload when omitted.",
        examples=["NORMAL"],
    )
    description: Optional[str] = Field(default=None, examples=["Claim for lost laptop"])
    details: WorkRequestDetails = Field(
        description="Variant payload, discriminated by request_type.",
        examples=[
            {
                "request_type": "ITEM_CLAIM",
                "item_id": "item_7781",
                "item_name": "Blue umbrella",
                "item_value": "25.00",
                "claim_details": "Left it at the library entrance on Monday.",
            }
        ],
    )


class WorkRequestActionRequest(BaseModel):
    actor_id: str = Field(description="Identity performing the action.", examples=["coord_01"])
    expected_step_index: Optional[int] = Field(
        default=None,
        ge=0,
        description="Optional optimistic guard on the step being acted on.",
        examples=[0],
    )


class WorkRequestRejectRequest(WorkRequestActionRequest):
    reason: str = Field(description="Rejection reason kept in the audit trail.", min_length=1)


class WorkRequestCancelRequest(BaseModel):
    actor_id: str = Field(description="Must be the original requester.", examples=["stu_1001"])


class WorkRequestCompleteRequest(BaseModel):
    actor_id: Optional[str] = Field(
        default=None,
        description="Identity confirming the physical handoff.",
        examples=["coord_01"],
    )


class WorkRequestNoteRequest(BaseModel):
    actor_id: str = Field(examples=["coord_01"])
    note: str = Field(min_length=1, examples=["Item photographed before handoff."])


class ApprovalEvent(BaseModel):
    event_id: str
    action: ApprovalEventAction
    actor_id: str
    step_index: Optional[int] = None
    role: Optional[str] = None
    assignee_id: Optional[str] = None
    note: Optional[str] = None
    occurred_at: str


class WorkRequestSummary(BaseModel):
    request_id: str
    request_type: WorkRequestType
    status: WorkRequestStatus
    priority: WorkRequestPriority
    requester_id: str
    target_organization_id: Optional[str] = None
    target_enterprise_id: str
    approval_chain: List[ApprovalStep]
    current_step_index: int
    current_approver_id: Optional[str] = None
    created_at: str
    updated_at: str
    completed_at: Optional[str] = None


class WorkRequestDetailResponse(BaseModel):
    request: WorkRequestSummary
    details: WorkRequestDetails
    description: Optional[str] = None
    events: List[ApprovalEvent]


class WorkRequestListResponse(BaseModel):
    items: List[WorkRequestSummary]
    next_cursor: Optional[str] = None


class WorkRequestEventsResponse(BaseModel):
    request_id: str
    events: List[ApprovalEvent]


class SlaStatusResponse(BaseModel):
    request_id: str
    priority: WorkRequestPriority
    classification: SlaClassification
    deadline_at: str
    observed_at: str


class SlaSweepResult(BaseModel):
    observed_at: str
    overdue: List[str] = Field(default_factory=list)
    approaching: List[str] = Field(default_factory=list)


class WorkRequestStatistics(BaseModel):
    total: int
    by_status: Dict[str, int]
    by_type: Dict[str, int]
    by_priority: Dict[str, int]
    by_awaited_role: Dict[str, int]
    unassigned_backlog: int
    overdue: int
    approaching: int
    active_workload: Dict[str, int]


class WorkRequestRerouteResponse(BaseModel):
    rerouted: List[str] = Field(
        default_factory=list,
        description="Requests that received an approver on this pass.",
        examples=[["wr_4f2a9c1b7d3e"]],
    )
