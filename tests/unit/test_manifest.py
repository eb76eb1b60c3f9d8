"""
Unit tests for claim packages and manifests.

Tests cover:
1. Shape dispatch (single / claim list / campaigns, unknown, ambiguous)
2. Field parsing and JSON-path error reporting
3. Resolution across campaigns (match, absent, duplicate, first-entry)
4. Inheritance of campaign and governance fields
5. Building manifests and packages from a tree
"""

import json
from datetime import datetime, timezone

import pytest

from mdp.core.codec import (
    Campaign,
    ClaimList,
    ClaimManifest,
    ClaimPackage,
    DocumentKind,
    build_manifest,
    campaign_from_distribution,
    detect_document_kind,
    find_claims,
    iter_claims,
    package_for,
    parse_claim_document,
    parse_claim_package,
    parse_manifest,
    resolve_claim,
)
from mdp.core.config import DEFAULT_PROGRAM_ID
from mdp.core.distributor.accounts import find_distributor_address
from mdp.core.errors import EntryNotFound, ValidationError
from mdp.core.merkle import Allocation, build_distribution
from mdp.crypto import bytes_to_hex


def addr(byte: int) -> bytes:
    return bytes([byte]) * 20


ALICE, BOB, CAROL, DAVE, ERIN, FRANK = (addr(b) for b in (0xA1, 0xB0, 0xC4, 0xD7, 0xE2, 0xF5))
OUTSIDER = addr(0x99)


def make_campaign(campaign_id: str, byte: int, recipients):
    mint = addr(byte)
    distributor = find_distributor_address(DEFAULT_PROGRAM_ID, mint)
    allocations = [Allocation(r, i, 100 * (i + 1)) for i, r in enumerate(recipients)]
    distribution = build_distribution(distributor, allocations)
    return campaign_from_distribution(distribution, campaign_id, mint, addr(byte + 1), label=campaign_id.title())


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def manifest():
    """Three campaigns with disjoint recipients."""
    return build_manifest([
        make_campaign("alpha", 0x10, [ALICE, BOB]),
        make_campaign("beta", 0x20, [CAROL, DAVE]),
        make_campaign("gamma", 0x30, [ERIN, FRANK]),
    ])


@pytest.fixture
def single_package():
    distributor = find_distributor_address(DEFAULT_PROGRAM_ID, addr(0x10))
    dist = build_distribution(distributor, [Allocation(ALICE, 0, 100), Allocation(BOB, 1, 250)])
    return package_for(dist, BOB, addr(0x10), addr(0x11))


class TestShapeDispatch:
    """detect_document_kind recognises exactly three shapes."""

    def test_single(self, single_package):
        assert detect_document_kind(single_package.to_dict()) == DocumentKind.SINGLE

    def test_claim_list(self, single_package):
        assert detect_document_kind({"claims": [single_package.to_dict()]}) == DocumentKind.CLAIM_LIST

    def test_campaigns(self, manifest):
        assert detect_document_kind(manifest.to_dict()) == DocumentKind.CAMPAIGNS

    def test_unknown_shape(self):
        with pytest.raises(ValidationError):
            detect_document_kind({"hello": "world"})

    def test_ambiguous_shape(self, manifest, single_package):
        payload = manifest.to_dict()
        payload["claims"] = [single_package.to_dict()]
        with pytest.raises(ValidationError) as exc:
            detect_document_kind(payload)
        assert "Ambiguous" in str(exc.value)

    def test_not_an_object(self):
        with pytest.raises(ValidationError):
            detect_document_kind([1, 2, 3])

    def test_parse_returns_matching_model(self, manifest, single_package):
        assert isinstance(parse_claim_document(manifest.to_json()), ClaimManifest)
        assert isinstance(parse_claim_document(single_package.to_json()), ClaimPackage)
        assert isinstance(parse_claim_document({"claims": [single_package.to_dict()]}), ClaimList)

    def test_invalid_json(self):
        with pytest.raises(ValidationError):
            parse_claim_document("{not json")

    def test_bytes_not_utf8(self):
        with pytest.raises(ValidationError) as exc:
            parse_claim_document(b'{"proof": "\xff\xfe"}')
        assert "UTF-8" in str(exc.value)
        assert exc.value.field == "$"

    def test_utf8_bytes(self, single_package):
        assert isinstance(parse_claim_document(single_package.to_json().encode()), ClaimPackage)


class TestFieldParsing:
    """Decimal strings, hex digests, aliases and error paths."""

    def test_package_json_shape(self, single_package):
        data = single_package.to_dict()
        assert data["recipient"] == bytes_to_hex(BOB)
        assert data["index"] == "1"
        assert data["amount"] == "250"
        assert all(node.startswith("0x") and len(node) == 66 for node in data["proof"])
        assert "realm" not in data

    def test_integers_accepted_on_input(self, single_package):
        data = single_package.to_dict()
        data["index"] = 1
        data["amount"] = 250
        assert parse_claim_package(data) == single_package

    def test_legacy_aliases(self, single_package):
        data = single_package.to_dict()
        data["wallet"] = data.pop("recipient")
        data["merkleRoot"] = data.pop("root")
        data["governanceProgram"] = bytes_to_hex(addr(0x77))
        package = parse_claim_package(data)
        assert package.recipient == BOB
        assert package.governance_program_id == addr(0x77)

    def test_bad_root_reports_path(self, single_package):
        data = single_package.to_dict()
        data["root"] = "0x1234"
        with pytest.raises(ValidationError) as exc:
            parse_claim_document(data)
        assert exc.value.field == "root"

    def test_bad_proof_node_reports_path(self, manifest):
        data = manifest.to_dict()
        data["campaigns"][1]["claims"][0]["proof"][0] = "0xzz"
        with pytest.raises(ValidationError) as exc:
            parse_claim_document(data)
        assert exc.value.field.startswith("campaigns[1].claims[0].proof")

    def test_zero_amount_rejected(self, single_package):
        data = single_package.to_dict()
        data["amount"] = "0"
        with pytest.raises(ValidationError):
            parse_claim_document(data)

    def test_negative_index_rejected(self, single_package):
        data = single_package.to_dict()
        data["index"] = "-1"
        with pytest.raises(ValidationError):
            parse_claim_document(data)

    def test_manifest_version_checked(self, manifest):
        data = manifest.to_dict()
        data["version"] = 2
        with pytest.raises(ValidationError):
            parse_claim_document(data)

    def test_manifest_round_trip(self, manifest):
        assert parse_manifest(manifest.to_json()) == manifest

    def test_wrong_kind_for_helper(self, manifest, single_package):
        with pytest.raises(ValidationError):
            parse_claim_package(manifest.to_dict())
        with pytest.raises(ValidationError):
            parse_manifest(single_package.to_dict())


class TestResolution:
    """Resolving a document down to one recipient's entry."""

    def test_recipient_in_one_campaign(self, manifest):
        entry = resolve_claim(manifest, DAVE)
        assert entry.entry_id == "campaign:1:claim:1"
        assert entry.mint == addr(0x20)
        assert entry.amount == 200
        assert entry.verify()

    def test_absent_recipient_raises(self, manifest):
        with pytest.raises(EntryNotFound) as exc:
            resolve_claim(manifest, OUTSIDER)
        assert exc.value.field == "recipient"

    def test_no_recipient_returns_first(self, manifest):
        entry = resolve_claim(manifest)
        assert entry.recipient == ALICE

    def test_duplicate_recipient_needs_campaign(self):
        document = build_manifest([
            make_campaign("alpha", 0x10, [ALICE, BOB]),
            make_campaign("beta", 0x20, [CAROL, ALICE]),
        ])
        with pytest.raises(ValidationError):
            resolve_claim(document, ALICE)
        entry = resolve_claim(document, ALICE, campaign_id="beta")
        assert entry.mint == addr(0x20)
        assert len(find_claims(document, ALICE)) == 2

    def test_unknown_campaign(self, manifest):
        with pytest.raises(EntryNotFound):
            resolve_claim(manifest, ALICE, campaign_id="delta")

    def test_campaign_id_only_for_manifests(self, single_package):
        with pytest.raises(ValidationError):
            resolve_claim(single_package, BOB, campaign_id="alpha")

    def test_empty_document(self):
        with pytest.raises(EntryNotFound):
            resolve_claim(ClaimList(claims=[]))

    def test_entry_without_recipient_matched_by_proof(self, manifest):
        data = manifest.to_dict()
        del data["campaigns"][2]["claims"][1]["recipient"]
        document = parse_manifest(data)
        entry = resolve_claim(document, FRANK)
        assert entry.recipient is None
        assert entry.verify(FRANK)
        with pytest.raises(EntryNotFound):
            resolve_claim(document, OUTSIDER)

    def test_single_package(self, single_package):
        entry = resolve_claim(single_package, BOB)
        assert entry.index == 1
        assert entry.distributor == single_package.distributor
        with pytest.raises(EntryNotFound):
            resolve_claim(single_package, ALICE)


class TestInheritance:
    """Claim > campaign > document precedence for shared fields."""

    def test_campaign_fields_inherited(self, manifest):
        entries = list(iter_claims(manifest))
        assert len(entries) == 6
        assert {e.mint for e in entries} == {addr(0x10), addr(0x20), addr(0x30)}
        assert entries[0].label == "Alpha"

    def test_governance_precedence(self, manifest):
        data = manifest.to_dict()
        data["realm"] = bytes_to_hex(addr(0x01))
        data["governanceProgramVersion"] = 2
        data["campaigns"][1]["realm"] = bytes_to_hex(addr(0x02))
        data["campaigns"][1]["claims"][0]["realm"] = bytes_to_hex(addr(0x03))
        entries = list(iter_claims(parse_manifest(data)))

        assert entries[0].realm == addr(0x01)
        assert entries[2].realm == addr(0x03)
        assert entries[3].realm == addr(0x02)
        assert all(e.governance_program_version == 2 for e in entries)
        assert entries[0].has_governance_deposit

    def test_missing_distributor_derived(self, single_package):
        data = single_package.to_dict()
        del data["distributor"]
        package = parse_claim_package(data)
        entry = resolve_claim(package, BOB, program_id=DEFAULT_PROGRAM_ID)
        assert entry.distributor == single_package.distributor
        with pytest.raises(ValidationError):
            resolve_claim(package, BOB)


class TestBuilding:
    """Manifests and packages built from a tree."""

    def test_unique_campaign_ids(self):
        with pytest.raises(ValidationError):
            build_manifest([make_campaign("alpha", 0x10, [ALICE]), make_campaign("alpha", 0x20, [BOB])])

    def test_generated_at_serialized(self):
        when = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
        document = build_manifest([make_campaign("alpha", 0x10, [ALICE])], generated_at=when)
        data = json.loads(document.to_json())
        assert data["version"] == 1
        assert data["generatedAt"].startswith("2024-05-01T12:00:00")

    def test_package_for_verifies(self, single_package):
        assert single_package.recipient == BOB
        entry = next(iter_claims(single_package))
        assert entry.verify()

    def test_to_package(self, manifest):
        entry = resolve_claim(manifest, CAROL)
        package = entry.to_package()
        assert package.root == entry.root
        assert resolve_claim(package, CAROL).verify()

    def test_campaign_model(self, manifest):
        campaign = manifest.campaigns[0]
        assert isinstance(campaign, Campaign)
        assert campaign.claims[1].recipient == BOB


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
