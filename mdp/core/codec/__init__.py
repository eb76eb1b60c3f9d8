"""Allocation lists, claim packages, manifests and hex codecs"""
from mdp.core.codec.digest import (
    decode_address,
    decode_digest,
    decode_proof,
    encode_address,
    encode_digest,
    encode_proof,
)
from mdp.core.codec.allocations import (
    format_token_amount,
    load_allocations,
    parse_allocations,
    serialize_allocations,
    to_base_units,
)
from mdp.core.codec.manifest import (
    Campaign,
    ClaimDocument,
    ClaimEntry,
    ClaimList,
    ClaimManifest,
    ClaimPackage,
    DocumentKind,
    ResolvedClaim,
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

__all__ = [
    "decode_address",
    "decode_digest",
    "decode_proof",
    "encode_address",
    "encode_digest",
    "encode_proof",
    "format_token_amount",
    "load_allocations",
    "parse_allocations",
    "serialize_allocations",
    "to_base_units",
    "Campaign",
    "ClaimDocument",
    "ClaimEntry",
    "ClaimList",
    "ClaimManifest",
    "ClaimPackage",
    "DocumentKind",
    "ResolvedClaim",
    "build_manifest",
    "campaign_from_distribution",
    "detect_document_kind",
    "find_claims",
    "iter_claims",
    "package_for",
    "parse_claim_document",
    "parse_claim_package",
    "parse_manifest",
    "resolve_claim",
]
