from typing import Callable, Optional

from pydantic import BaseModel, Field

from src.core.work_requests.approval_chain import ApprovalThresholds
from src.core.work_requests.models import (
    AirportToUniversityTransferDetails,
    ItemClaimDetails,
    MultiEnterpriseDisputeDetails,
    PoliceEvidenceRequestDetails,
    TransferDetails,
    TransitToAirportEmergencyDetails,
    WorkRequestDetails,
)


class CatalogViolation(BaseModel):
    field: str = Field(
        description="Payload field that failed validation.", examples=["claim_details"]
    )
    code: str = Field(description="Stable rule code.", examples=["CLAIM_DETAILS_REQUIRED"])
    message: str = Field(examples=["claim_details must not be empty"])


class RequestCatalog:
    """Structural validation for every request variant.

    Rules never mutate state; an empty result means the payload may be persisted.
    """

    def __init__(self, *, thresholds: Optional[ApprovalThresholds] = None) -> None:
        self._thresholds = thresholds or ApprovalThresholds()
        self._variant_rules: dict[str, Callable[[WorkRequestDetails], list[CatalogViolation]]] = {
            "ITEM_CLAIM": self._item_claim_rules,
            "CROSS_CAMPUS_TRANSFER": self._transfer_rules,
            "TRANSIT_TO_UNIVERSITY_TRANSFER": self._transfer_rules,
            "AIRPORT_TO_UNIVERSITY_TRANSFER": self._airport_transfer_rules,
            "POLICE_EVIDENCE_REQUEST": self._police_evidence_rules,
            "TRANSIT_TO_AIRPORT_EMERGENCY": self._emergency_rules,
            "MULTI_ENTERPRISE_DISPUTE": self._dispute_rules,
        }

    def validate(self, details: WorkRequestDetails) -> list[CatalogViolation]:
        violations: list[CatalogViolation] = []
        if _is_blank(details.item_id):
            violations.append(
                _violation("item_id", "ITEM_ID_REQUIRED", "item_id must not be empty")
            )
        violations.extend(self._variant_rules[details.request_type](details))
        return violations

    def _item_claim_rules(self, details: ItemClaimDetails) -> list[CatalogViolation]:
        violations: list[CatalogViolation] = []
        if _is_blank(details.claim_details):
            violations.append(
                _violation(
                    "claim_details",
                    "CLAIM_DETAILS_REQUIRED",
                    "claim_details must not be empty",
                )
            )
        if self._thresholds.is_high_value(details.item_value):
            proof = (details.proof_description or "").strip()
            minimum = self._thresholds.min_high_value_proof_length
            if len(proof) < minimum:
                violations.append(
                    _violation(
                        "proof_description",
                        "CLAIM_PROOF_INSUFFICIENT",
                        f"proof_description must be at least {minimum} characters "
                        f"for items valued at {self._thresholds.high_value_threshold} or more",
                    )
                )
        return violations

    def _transfer_rules(self, details: TransferDetails) -> list[CatalogViolation]:
        violations: list[CatalogViolation] = []
        if _is_blank(details.origin_organization_id):
            violations.append(
                _violation(
                    "origin_organization_id",
                    "TRANSFER_ORIGIN_REQUIRED",
                    "transfer requires an origin organization",
                )
            )
        if _is_blank(details.destination_organization_id):
            violations.append(
                _violation(
                    "destination_organization_id",
                    "TRANSFER_DESTINATION_REQUIRED",
                    "transfer requires a destination organization",
                )
            )
        return violations

    def _airport_transfer_rules(
        self, details: AirportToUniversityTransferDetails
    ) -> list[CatalogViolation]:
        violations = self._transfer_rules(details)
        if _is_blank(details.terminal):
            violations.append(
                _violation("terminal", "AIRPORT_TERMINAL_REQUIRED", "terminal must not be empty")
            )
        if details.found_in_secure_area:
            notes = (details.security_notes or "").strip()
            minimum = self._thresholds.min_security_notes_length
            if len(notes) < minimum:
                violations.append(
                    _violation(
                        "security_notes",
                        "AIRPORT_SECURITY_NOTES_INSUFFICIENT",
                        f"security_notes must be at least {minimum} characters "
                        "for secure-area finds",
                    )
                )
        return violations

    def _police_evidence_rules(
        self, details: PoliceEvidenceRequestDetails
    ) -> list[CatalogViolation]:
        violations: list[CatalogViolation] = []
        if _is_blank(details.verification_reason):
            violations.append(
                _violation(
                    "verification_reason",
                    "POLICE_VERIFICATION_REASON_REQUIRED",
                    "verification_reason must not be empty",
                )
            )
        if details.stolen_check_requested and all(
            _is_blank(value)
            for value in (details.serial_number, details.imei_number, details.other_identifiers)
        ):
            violations.append(
                _violation(
                    "serial_number",
                    "POLICE_STOLEN_CHECK_IDENTIFIER_REQUIRED",
                    "stolen-property check needs a serial number, IMEI, or other identifier",
                )
            )
        if (
            details.high_value_verification
            and self._thresholds.is_high_value(details.item_value)
            and _is_blank(details.serial_number)
        ):
            violations.append(
                _violation(
                    "serial_number",
                    "POLICE_HIGH_VALUE_SERIAL_REQUIRED",
                    "high-value verification needs a serial number",
                )
            )
        return violations

    def _emergency_rules(self, details: TransitToAirportEmergencyDetails) -> list[CatalogViolation]:
        violations = self._transfer_rules(details)
        if _is_blank(details.station_name):
            violations.append(
                _violation(
                    "station_name", "EMERGENCY_STATION_REQUIRED", "station_name must not be empty"
                )
            )
        if _is_blank(details.flight_number):
            violations.append(
                _violation(
                    "flight_number", "EMERGENCY_FLIGHT_REQUIRED", "flight_number must not be empty"
                )
            )
        return violations

    def _dispute_rules(self, details: MultiEnterpriseDisputeDetails) -> list[CatalogViolation]:
        violations: list[CatalogViolation] = []
        if _is_blank(details.dispute_reason):
            violations.append(
                _violation(
                    "dispute_reason",
                    "DISPUTE_REASON_REQUIRED",
                    "dispute_reason must not be empty",
                )
            )
        claimant_ids = {claimant.claimant_id for claimant in details.claimants}
        if len(claimant_ids) < 2:
            violations.append(
                _violation(
                    "claimants",
                    "DISPUTE_CLAIMANTS_REQUIRED",
                    "dispute requires at least two distinct claimants",
                )
            )
        return violations


def _is_blank(value: Optional[str]) -> bool:
    return value is None or not value.strip()


def _violation(field: str, code: str, message: str) -> CatalogViolation:
    return CatalogViolation(field=field, code=code, message=message)
