from decimal import Decimal

import pytest

from src.core.work_requests import ApprovalChainResolver, ApprovalThresholds
from src.core.work_requests.models import CrossCampusTransferDetails
from tests.factories import (
    NEU_BOSTON,
    NEU_OAKLAND,
    airport_details,
    claim_details,
    dispute_details,
    emergency_details,
    police_details,
)


def _steps(chain) -> list[tuple[str, str]]:
    return [(step.role, step.scope) for step in chain]


def test_low_value_claim_needs_only_holding_coordinator():
    chain = ApprovalChainResolver().resolve(claim_details("25.00"))

    assert _steps(chain) == [("CAMPUS_COORDINATOR", "TARGET")]


def test_high_value_threshold_is_inclusive():
    resolver = ApprovalChainResolver()

    one_dollar_below = resolver.resolve(claim_details("499"))
    below = resolver.resolve(claim_details("499.99"))
    at_threshold = resolver.resolve(claim_details("500.00"))

    assert [step.role for step in one_dollar_below] == ["CAMPUS_COORDINATOR"]
    assert [step.role for step in below] == ["CAMPUS_COORDINATOR"]
    assert [step.role for step in at_threshold] == ["CAMPUS_COORDINATOR", "HIGH_VALUE_VERIFIER"]


def test_very_high_value_claim_escalates_in_order():
    chain = ApprovalChainResolver().resolve(claim_details("2499"))

    assert _steps(chain) == [
        ("CAMPUS_COORDINATOR", "TARGET"),
        ("HIGH_VALUE_VERIFIER", "TARGET"),
        ("POLICE_EVIDENCE_CUSTODIAN", "ANY"),
    ]


def test_claim_held_by_other_enterprise_routes_through_its_custodian():
    chain = ApprovalChainResolver().resolve(
        claim_details("40", holding_enterprise_type="AIRPORT")
    )

    assert _steps(chain) == [
        ("CAMPUS_COORDINATOR", "REQUESTER"),
        ("AIRPORT_LOST_FOUND_SPECIALIST", "TARGET"),
    ]


def test_cross_campus_transfer_uses_destination_custodian_then_student():
    details = CrossCampusTransferDetails(
        item_id="item_1",
        item_value=Decimal("40"),
        origin_organization_id=NEU_BOSTON,
        destination_organization_id=NEU_OAKLAND,
        destination_enterprise_type="PUBLIC_TRANSIT",
        student_id="stu_1001",
    )

    chain = ApprovalChainResolver().resolve(details)

    assert [step.role for step in chain] == ["CAMPUS_COORDINATOR", "STATION_MANAGER", "STUDENT"]


def test_secure_area_find_inserts_security_after_base_approver():
    chain = ApprovalChainResolver().resolve(
        airport_details(found_in_secure_area=True, security_notes="Found at gate B12 by TSA.")
    )

    assert [step.role for step in chain] == [
        "AIRPORT_LOST_FOUND_SPECIALIST",
        "TSA_SECURITY_COORDINATOR",
        "CAMPUS_COORDINATOR",
        "POLICE_EVIDENCE_CUSTODIAN",
        "STUDENT",
    ]


def test_high_value_secure_area_find_does_not_duplicate_law_enforcement():
    chain = ApprovalChainResolver().resolve(
        airport_details(
            item_value="1500",
            found_in_secure_area=True,
            security_notes="Found at gate B12 by TSA.",
        )
    )

    assert [step.role for step in chain] == [
        "AIRPORT_LOST_FOUND_SPECIALIST",
        "HIGH_VALUE_VERIFIER",
        "TSA_SECURITY_COORDINATOR",
        "CAMPUS_COORDINATOR",
        "POLICE_EVIDENCE_CUSTODIAN",
        "STUDENT",
    ]


def test_police_request_keeps_single_law_enforcement_step_when_very_high_value():
    chain = ApprovalChainResolver().resolve(police_details(item_value="1200", serial_number="C02"))

    assert _steps(chain) == [
        ("CAMPUS_COORDINATOR", "REQUESTER"),
        ("HIGH_VALUE_VERIFIER", "TARGET"),
        ("POLICE_EVIDENCE_CUSTODIAN", "TARGET"),
    ]


def test_emergency_and_dispute_base_chains():
    resolver = ApprovalChainResolver()

    assert [step.role for step in resolver.resolve(emergency_details())] == [
        "STATION_MANAGER",
        "AIRPORT_LOST_FOUND_SPECIALIST",
    ]
    assert [step.role for step in resolver.resolve(dispute_details(["a", "b"]))] == [
        "POLICE_EVIDENCE_CUSTODIAN"
    ]


def test_custom_thresholds_are_respected():
    resolver = ApprovalChainResolver(
        thresholds=ApprovalThresholds(
            high_value_threshold=Decimal("50"),
            very_high_value_threshold=Decimal("100"),
        )
    )

    assert [step.role for step in resolver.resolve(claim_details("100"))] == [
        "CAMPUS_COORDINATOR",
        "HIGH_VALUE_VERIFIER",
        "POLICE_EVIDENCE_CUSTODIAN",
    ]


@pytest.mark.parametrize(
    "details, expected",
    [
        (emergency_details(), "URGENT"),
        (police_details(stolen_check_requested=True, serial_number="C02"), "URGENT"),
        (claim_details("1000"), "URGENT"),
        (dispute_details(["a", "b", "c"]), "URGENT"),
        (dispute_details(["a", "b"]), "HIGH"),
        (police_details(), "HIGH"),
        (claim_details("500"), "HIGH"),
        (airport_details(found_in_secure_area=True, security_notes="x" * 20), "HIGH"),
        (claim_details("25"), "NORMAL"),
    ],
)
def test_priority_is_derived_from_payload(details, expected):
    assert ApprovalChainResolver().determine_priority(details) == expected
