"""
Claim packages and claim manifests.

Three document shapes are accepted, and exactly one must match:

    SINGLE      one claim package at the top level
                {"recipient", "index", "amount", "proof", "root", "mint", "vault", ...}
    CLAIM_LIST  {"claims": [<claim package>, ...]}
    CAMPAIGNS   {"version": 1, "generatedAt": ..., "campaigns": [
                    {"id", "mint", "vault", "distributor", "root",
                     "claims": [{"recipient", "index", "amount", "proof"}, ...]}]}

`detect_document_kind` is the only place that looks at the raw shape;
everything else works on the parsed models. Numeric fields travel as
decimal strings; roots and proof nodes as 0x-prefixed hex.

Packages carry no authority. They only supply what a claimant needs to
build its own signed claim request.
"""

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Iterator, List, Literal, Optional, Sequence, Union

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    ValidationError as PydanticValidationError,
)
from pydantic.functional_serializers import PlainSerializer
from pydantic.functional_validators import BeforeValidator

from mdp.core.errors import EntryNotFound, ValidationError
from mdp.core.codec.digest import decode_address, decode_digest
from mdp.core.merkle.tree import MerkleDistribution
from mdp.core.merkle.verifier import verify_proof
from mdp.crypto import bytes_to_hex, derive_program_address, short_hex
from mdp.utils.validation import (
    validate_amount,
    validate_decimal_string,
    validate_index,
    MAX_PROOF_LENGTH,
)
from mdp.utils.logger import get_logger

logger = get_logger("codec.manifest")

MANIFEST_VERSION = 1


# =============================================================================
# Field Types
# =============================================================================


def _to_address(value: Any) -> bytes:
    if isinstance(value, (bytes, bytearray)) and len(value) == 20:
        return bytes(value)
    try:
        return decode_address(value)
    except ValidationError as e:
        raise ValueError(e.message) from e


def _to_digest(value: Any) -> bytes:
    if isinstance(value, (bytes, bytearray)) and len(value) == 32:
        return bytes(value)
    try:
        return decode_digest(value)
    except ValidationError as e:
        raise ValueError(e.message) from e


def _to_u64(value: Any) -> int:
    if isinstance(value, str):
        valid, err = validate_decimal_string(value.strip(), "value")
        if not valid:
            raise ValueError(err)
        value = int(value.strip())
    valid, err = validate_index(value, "value")
    if not valid:
        raise ValueError(err)
    return value


def _to_amount(value: Any) -> int:
    value = _to_u64(value)
    valid, err = validate_amount(value)
    if not valid:
        raise ValueError(err)
    return value


def _to_proof(value: Any) -> List[bytes]:
    if not isinstance(value, (list, tuple)):
        raise ValueError("proof must be an array")
    if len(value) > MAX_PROOF_LENGTH:
        raise ValueError(f"proof exceeds max length {MAX_PROOF_LENGTH}")
    nodes = []
    for i, node in enumerate(value):
        try:
            nodes.append(_to_digest(node))
        except ValueError as e:
            raise ValueError(f"proof[{i}]: {e}") from e
    return nodes


def _to_program_version(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    if isinstance(value, str) and value.strip().isdigit():
        value = int(value.strip())
    if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
        raise ValueError("governanceProgramVersion must be a positive integer")
    return value


def _optional(fn):
    def wrapper(value: Any):
        if value is None or value == "":
            return None
        return fn(value)
    return wrapper


_hex = PlainSerializer(bytes_to_hex, return_type=str)
_dec = PlainSerializer(str, return_type=str)

Address = Annotated[bytes, BeforeValidator(_to_address), _hex]
OptionalAddress = Annotated[Optional[bytes], BeforeValidator(_optional(_to_address)), PlainSerializer(
    lambda v: bytes_to_hex(v) if v is not None else None, return_type=Optional[str]
)]
Digest = Annotated[bytes, BeforeValidator(_to_digest), _hex]
Proof = Annotated[List[bytes], BeforeValidator(_to_proof), PlainSerializer(
    lambda nodes: [bytes_to_hex(n) for n in nodes], return_type=List[str]
)]
U64 = Annotated[int, BeforeValidator(_to_u64), _dec]
Amount = Annotated[int, BeforeValidator(_to_amount), _dec]
ProgramVersion = Annotated[Optional[int], BeforeValidator(_to_program_version)]


# =============================================================================
# Models
# =============================================================================


class _Model(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    def to_dict(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    def to_json(self, indent: Optional[int] = 2) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True, indent=indent)


class GovernanceContext(_Model):
    """Optional governance-deposit fields, inherited campaign -> claim."""
    realm: OptionalAddress = None
    governance_program_id: OptionalAddress = Field(
        default=None,
        validation_alias=AliasChoices("governanceProgramId", "governanceProgram", "governance_program_id"),
        serialization_alias="governanceProgramId",
    )
    governance_program_version: ProgramVersion = Field(
        default=None,
        validation_alias=AliasChoices("governanceProgramVersion", "governance_program_version"),
        serialization_alias="governanceProgramVersion",
    )


class ClaimEntry(GovernanceContext):
    """
    One recipient's entry inside a campaign.

    `recipient` may be omitted; such an entry is matched by checking its
    proof against the requesting address. `wallet` is accepted as a legacy
    name for `recipient`.
    """
    recipient: OptionalAddress = Field(
        default=None, validation_alias=AliasChoices("recipient", "wallet")
    )
    index: U64
    amount: Amount
    proof: Proof
    label: Optional[str] = None


class ClaimPackage(ClaimEntry):
    """
    Self-contained data for one claim.

    `distributor` may be omitted, in which case it is derived from the
    mint and the program id at resolution time.
    """
    root: Digest = Field(validation_alias=AliasChoices("root", "merkleRoot"))
    mint: Address
    vault: Address
    distributor: OptionalAddress = None


class ClaimList(GovernanceContext):
    """Top-level list of full claim packages."""
    claims: List[ClaimPackage]


class Campaign(GovernanceContext):
    """One distribution and its recipients."""
    id: str
    label: Optional[str] = None
    mint: Address
    vault: Address
    distributor: OptionalAddress = None
    root: Digest = Field(validation_alias=AliasChoices("root", "merkleRoot"))
    claims: List[ClaimEntry]


class ClaimManifest(GovernanceContext):
    """Versioned multi-campaign manifest."""
    version: Literal[1] = MANIFEST_VERSION
    generated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        validation_alias=AliasChoices("generatedAt", "generated_at"),
        serialization_alias="generatedAt",
    )
    campaigns: List[Campaign]


ClaimDocument = Union[ClaimPackage, ClaimList, ClaimManifest]


# =============================================================================
# Shape Dispatch
# =============================================================================


class DocumentKind(Enum):
    SINGLE = "single"
    CLAIM_LIST = "claims"
    CAMPAIGNS = "campaigns"


_MODEL_FOR_KIND = {
    DocumentKind.SINGLE: ClaimPackage,
    DocumentKind.CLAIM_LIST: ClaimList,
    DocumentKind.CAMPAIGNS: ClaimManifest,
}


def detect_document_kind(payload: Any) -> DocumentKind:
    """
    Decide which of the three shapes `payload` is.

    Raises:
        ValidationError: not an object, matches no shape, or matches more
            than one
    """
    if not isinstance(payload, dict):
        raise ValidationError("Claim document must be a JSON object", field="$")

    matches = []
    if "campaigns" in payload:
        matches.append(DocumentKind.CAMPAIGNS)
    if "claims" in payload:
        matches.append(DocumentKind.CLAIM_LIST)
    if "proof" in payload:
        matches.append(DocumentKind.SINGLE)

    if not matches:
        raise ValidationError(
            "Unrecognised claim document: expected 'campaigns', 'claims' or a single claim with 'proof'",
            field="$",
        )
    if len(matches) > 1:
        names = ", ".join(kind.value for kind in matches)
        raise ValidationError(f"Ambiguous claim document: matches {names}", field="$")
    return matches[0]


def _location(loc: Sequence[Any]) -> str:
    parts = []
    for item in loc:
        if isinstance(item, int):
            parts.append(f"[{item}]")
        else:
            parts.append(("." if parts else "") + str(item))
    return "".join(parts) or "$"


def parse_claim_document(payload: Union[str, bytes, dict]) -> ClaimDocument:
    """
    Parse a claim package, claim list or manifest.

    Args:
        payload: JSON text, UTF-8 encoded bytes or an already-decoded object

    Returns:
        ClaimPackage, ClaimList or ClaimManifest

    Raises:
        ValidationError: invalid UTF-8 or JSON, unknown/ambiguous shape, or an
            invalid field (field names the JSON path)
    """
    if isinstance(payload, bytes):
        try:
            payload = payload.decode("utf-8-sig")
        except UnicodeDecodeError as e:
            raise ValidationError(
                f"Claim document is not valid UTF-8: byte {e.start} ({e.reason})", field="$"
            ) from e
    if isinstance(payload, str):
        try:
            payload = json.loads(payload)
        except json.JSONDecodeError as e:
            raise ValidationError(f"Claim document is not valid JSON: {e.msg}", field="$") from e

    kind = detect_document_kind(payload)
    model = _MODEL_FOR_KIND[kind]
    try:
        return model.model_validate(payload)
    except PydanticValidationError as e:
        first = e.errors()[0]
        where = _location(first["loc"])
        message = first["msg"].removeprefix("Value error, ")
        raise ValidationError(f"{where}: {message}", field=where) from e


def parse_claim_package(payload: Union[str, bytes, dict]) -> ClaimPackage:
    """Parse a document that must be a single claim package."""
    document = parse_claim_document(payload)
    if not isinstance(document, ClaimPackage):
        raise ValidationError("Expected a single claim package", field="$")
    return document


def parse_manifest(payload: Union[str, bytes, dict]) -> ClaimManifest:
    """Parse a document that must be a campaign manifest."""
    document = parse_claim_document(payload)
    if not isinstance(document, ClaimManifest):
        raise ValidationError("Expected a campaign manifest", field="$")
    return document


# =============================================================================
# Resolution
# =============================================================================


@dataclass
class ResolvedClaim:
    """
    One claim with every campaign-level field filled in.

    Attributes:
        entry_id: Stable id ("claim:2", "campaign:1:claim:0")
        label: Display label
        recipient: Entry's recipient, if the document named one
    """
    entry_id: str
    label: str
    recipient: Optional[bytes]
    index: int
    amount: int
    proof: List[bytes]
    root: bytes
    mint: bytes
    vault: bytes
    distributor: bytes
    realm: Optional[bytes] = None
    governance_program_id: Optional[bytes] = None
    governance_program_version: Optional[int] = None

    @property
    def has_governance_deposit(self) -> bool:
        return self.realm is not None

    def verify(self, recipient: Optional[bytes] = None) -> bool:
        """Check the proof offline for `recipient` (defaults to the entry's)."""
        claimant = recipient if recipient is not None else self.recipient
        if claimant is None:
            return False
        return verify_proof(claimant, self.index, self.amount, self.distributor, self.proof, self.root)

    def matches(self, recipient: bytes) -> bool:
        if self.recipient is not None:
            return self.recipient == recipient
        return self.verify(recipient)

    def to_package(self, recipient: Optional[bytes] = None) -> ClaimPackage:
        return ClaimPackage(
            recipient=recipient if recipient is not None else self.recipient,
            index=self.index,
            amount=self.amount,
            proof=self.proof,
            root=self.root,
            mint=self.mint,
            vault=self.vault,
            distributor=self.distributor,
            label=self.label,
            realm=self.realm,
            governance_program_id=self.governance_program_id,
            governance_program_version=self.governance_program_version,
        )


def _first(*values):
    for value in values:
        if value is not None:
            return value
    return None


def _distributor_for(explicit: Optional[bytes], mint: bytes, program_id: Optional[bytes], where: str) -> bytes:
    if explicit is not None:
        return explicit
    if program_id is None:
        raise ValidationError(f"{where}: distributor missing and no program id to derive it", field=f"{where}.distributor")
    # Same derivation as mdp.core.distributor.accounts.find_distributor_address
    return derive_program_address(program_id, [b"distributor", mint])


def iter_claims(document: ClaimDocument, program_id: Optional[bytes] = None) -> Iterator[ResolvedClaim]:
    """
    Flatten a document into resolved claims.

    Claim-level fields override campaign-level fields, which override
    document-level governance defaults.
    """
    if isinstance(document, ClaimPackage):
        yield _resolve_package(document, document, "claim:0", "Claim 1", program_id)

    elif isinstance(document, ClaimList):
        for i, package in enumerate(document.claims):
            label = package.label or f"Claim {i + 1}"
            yield _resolve_package(package, document, f"claim:{i}", label, program_id)

    elif isinstance(document, ClaimManifest):
        for c, campaign in enumerate(document.campaigns):
            where = f"campaigns[{c}]"
            distributor = _distributor_for(campaign.distributor, campaign.mint, program_id, where)
            label = campaign.label or campaign.id or f"Campaign {c + 1}"
            for i, entry in enumerate(campaign.claims):
                yield ResolvedClaim(
                    entry_id=f"campaign:{c}:claim:{i}",
                    label=entry.label or label,
                    recipient=entry.recipient,
                    index=entry.index,
                    amount=entry.amount,
                    proof=list(entry.proof),
                    root=campaign.root,
                    mint=campaign.mint,
                    vault=campaign.vault,
                    distributor=distributor,
                    realm=_first(entry.realm, campaign.realm, document.realm),
                    governance_program_id=_first(
                        entry.governance_program_id,
                        campaign.governance_program_id,
                        document.governance_program_id,
                    ),
                    governance_program_version=_first(
                        entry.governance_program_version,
                        campaign.governance_program_version,
                        document.governance_program_version,
                    ),
                )
    else:
        raise ValidationError(f"Unsupported claim document type: {type(document).__name__}")


def _resolve_package(
    package: ClaimPackage,
    defaults: GovernanceContext,
    entry_id: str,
    label: str,
    program_id: Optional[bytes],
) -> ResolvedClaim:
    return ResolvedClaim(
        entry_id=entry_id,
        label=label,
        recipient=package.recipient,
        index=package.index,
        amount=package.amount,
        proof=list(package.proof),
        root=package.root,
        mint=package.mint,
        vault=package.vault,
        distributor=_distributor_for(package.distributor, package.mint, program_id, entry_id),
        realm=_first(package.realm, defaults.realm),
        governance_program_id=_first(package.governance_program_id, defaults.governance_program_id),
        governance_program_version=_first(
            package.governance_program_version, defaults.governance_program_version
        ),
    )


def find_claims(
    document: ClaimDocument,
    recipient: bytes,
    program_id: Optional[bytes] = None,
) -> List[ResolvedClaim]:
    """Every entry in `document` that belongs to `recipient`."""
    return [claim for claim in iter_claims(document, program_id) if claim.matches(recipient)]


def resolve_claim(
    document: ClaimDocument,
    recipient: Optional[bytes] = None,
    campaign_id: Optional[str] = None,
    program_id: Optional[bytes] = None,
) -> ResolvedClaim:
    """
    Resolve a document down to one claim.

    Args:
        document: Parsed claim document
        recipient: Address to resolve for. None returns the first entry.
        campaign_id: Restrict to one campaign (manifests only)
        program_id: Used to derive missing distributor addresses

    Raises:
        EntryNotFound: the document has no entries, or none for `recipient`
        ValidationError: more than one entry matches `recipient`
    """
    claims = list(iter_claims(document, program_id))
    if campaign_id is not None:
        if not isinstance(document, ClaimManifest):
            raise ValidationError("campaign_id only applies to campaign manifests", field="campaign_id")
        campaign_positions = {
            f"campaign:{c}:" for c, campaign in enumerate(document.campaigns) if campaign.id == campaign_id
        }
        claims = [c for c in claims if any(c.entry_id.startswith(p) for p in campaign_positions)]

    if not claims:
        raise EntryNotFound("Claim document contains no claim entries", field="claims")

    if recipient is None:
        return claims[0]

    matches = [claim for claim in claims if claim.matches(recipient)]
    if not matches:
        raise EntryNotFound(
            f"Entry not found for recipient {bytes_to_hex(recipient)}",
            field="recipient",
        )
    if len(matches) > 1:
        ids = ", ".join(claim.entry_id for claim in matches)
        raise ValidationError(
            f"{len(matches)} entries match recipient {bytes_to_hex(recipient)} ({ids}); pass a campaign id",
            field="recipient",
        )

    logger.debug(f"Resolved {matches[0].entry_id} for {short_hex(recipient)}")
    return matches[0]


# =============================================================================
# Writing
# =============================================================================


def campaign_from_distribution(
    distribution: MerkleDistribution,
    campaign_id: str,
    mint: bytes,
    vault: bytes,
    label: Optional[str] = None,
    realm: Optional[bytes] = None,
    governance_program_id: Optional[bytes] = None,
    governance_program_version: Optional[int] = None,
) -> Campaign:
    """Turn a built tree into a manifest campaign."""
    return Campaign(
        id=campaign_id,
        label=label,
        mint=mint,
        vault=vault,
        distributor=distribution.distributor,
        root=distribution.root,
        realm=realm,
        governance_program_id=governance_program_id,
        governance_program_version=governance_program_version,
        claims=[ClaimEntry.model_validate(entry) for entry in distribution.entries()],
    )


def build_manifest(campaigns: Sequence[Campaign], generated_at: Optional[datetime] = None) -> ClaimManifest:
    """Assemble a version-1 manifest."""
    ids = [campaign.id for campaign in campaigns]
    if len(set(ids)) != len(ids):
        raise ValidationError("Campaign ids must be unique", field="campaigns")
    return ClaimManifest(
        version=MANIFEST_VERSION,
        generated_at=generated_at or datetime.now(timezone.utc),
        campaigns=list(campaigns),
    )


def package_for(
    distribution: MerkleDistribution,
    recipient: bytes,
    mint: bytes,
    vault: bytes,
) -> ClaimPackage:
    """Single-recipient package straight from a built tree."""
    position = distribution.position_of(recipient)
    allocation = distribution.allocations[position]
    return ClaimPackage(
        recipient=allocation.recipient,
        index=allocation.index,
        amount=allocation.amount,
        proof=distribution.proofs[position],
        root=distribution.root,
        mint=mint,
        vault=vault,
        distributor=distribution.distributor,
    )
