import json

from src.infrastructure.directory import (
    InMemoryApproverDirectory,
    RoleGrant,
    parse_directory_grants,
)
from tests.factories import NEU, NEU_BOSTON, NEU_OAKLAND, build_directory


def test_enterprise_wide_grant_covers_every_organization():
    directory = build_directory()

    for organization_id in (NEU_BOSTON, NEU_OAKLAND, None):
        assert directory.can_act(
            identity_id="hvv_neu_01",
            role="HIGH_VALUE_VERIFIER",
            organization_id=organization_id,
            enterprise_id=NEU,
        )
    assert not directory.can_act(
        identity_id="hvv_neu_01",
        role="HIGH_VALUE_VERIFIER",
        organization_id=None,
        enterprise_id="ent_massport",
    )


def test_organization_grant_is_limited_to_that_organization():
    directory = build_directory()

    assert directory.list_candidates(
        role="CAMPUS_COORDINATOR", organization_id=NEU_OAKLAND, enterprise_id=NEU
    ) == ["coord_oak_01"]
    assert directory.list_candidates(
        role="CAMPUS_COORDINATOR", organization_id=None, enterprise_id=NEU
    ) == ["coord_neu_01", "coord_neu_02", "coord_oak_01"]


def test_any_scope_lists_candidates_across_enterprises():
    directory = InMemoryApproverDirectory()
    directory.grant(identity_id="police_b", role="POLICE_EVIDENCE_CUSTODIAN", enterprise_id="e2")
    directory.grant(identity_id="police_a", role="POLICE_EVIDENCE_CUSTODIAN", enterprise_id="e1")
    directory.grant(identity_id="police_a", role="POLICE_EVIDENCE_CUSTODIAN", enterprise_id="e1")

    assert directory.list_candidates(
        role="POLICE_EVIDENCE_CUSTODIAN", organization_id=None, enterprise_id=None
    ) == ["police_a", "police_b"]


def test_revoke_removes_all_grants_for_role():
    directory = build_directory()

    assert directory.revoke(identity_id="coord_neu_01", role="CAMPUS_COORDINATOR") == 1
    assert directory.revoke(identity_id="coord_neu_01", role="CAMPUS_COORDINATOR") == 0
    assert "coord_neu_01" not in directory.list_candidates(
        role="CAMPUS_COORDINATOR", organization_id=NEU_BOSTON, enterprise_id=NEU
    )


def test_parse_directory_grants_skips_invalid_entries():
    raw = json.dumps(
        [
            {"identity_id": "coord_1", "role": "CAMPUS_COORDINATOR", "enterprise_id": NEU},
            {"identity_id": "missing_enterprise", "role": "STUDENT"},
            "not-an-object",
        ]
    )

    assert parse_directory_grants(raw) == [
        RoleGrant(identity_id="coord_1", role="CAMPUS_COORDINATOR", enterprise_id=NEU)
    ]


def test_parse_directory_grants_handles_empty_and_malformed_input():
    assert parse_directory_grants(None) == []
    assert parse_directory_grants("   ") == []
    assert parse_directory_grants("{not json") == []
    assert parse_directory_grants('{"identity_id": "x"}') == []
