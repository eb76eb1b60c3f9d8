"""
Deterministic account addresses.

Every ledger record the distributor touches lives at an address derived
from a program id and seeds, so clients can locate records without any
lookup table:

    distributor      = PDA(program, "distributor", mint)
    vault authority  = PDA(program, "vault-authority", distributor)
    vault            = holding(vault authority, mint)
    claim record     = PDA(program, "claim", distributor, claimant)
    holding          = PDA(TOKEN_PROGRAM_ID, "holding", owner, mint)
    governance rec.  = PDA(governance program, "governance", realm, mint, owner)

One distributor exists per (program, mint), and one claim record per
(distributor, claimant).
"""

from dataclasses import dataclass

from mdp.crypto import derive_program_address, bytes_to_hex


# Token program namespace (20 bytes)
TOKEN_PROGRAM_ID = b"MDP:token".ljust(20, b"\x00")

SEED_DISTRIBUTOR = b"distributor"
SEED_VAULT_AUTHORITY = b"vault-authority"
SEED_CLAIM = b"claim"
SEED_HOLDING = b"holding"
SEED_GOVERNANCE = b"governance"


def find_distributor_address(program_id: bytes, mint: bytes) -> bytes:
    return derive_program_address(program_id, [SEED_DISTRIBUTOR, mint])


def find_vault_authority_address(program_id: bytes, distributor: bytes) -> bytes:
    return derive_program_address(program_id, [SEED_VAULT_AUTHORITY, distributor])


def find_holding_address(owner: bytes, mint: bytes) -> bytes:
    """Token holding of `owner` for `mint`."""
    return derive_program_address(TOKEN_PROGRAM_ID, [SEED_HOLDING, owner, mint])


def find_vault_address(program_id: bytes, distributor: bytes, mint: bytes) -> bytes:
    return find_holding_address(find_vault_authority_address(program_id, distributor), mint)


def find_claim_record_address(program_id: bytes, distributor: bytes, claimant: bytes) -> bytes:
    return derive_program_address(program_id, [SEED_CLAIM, distributor, claimant])


def find_governance_record_address(
    governance_program_id: bytes,
    realm: bytes,
    mint: bytes,
    owner: bytes,
) -> bytes:
    return derive_program_address(governance_program_id, [SEED_GOVERNANCE, realm, mint, owner])


@dataclass(frozen=True)
class DistributorAddresses:
    """All addresses belonging to one distributor."""
    program_id: bytes
    mint: bytes
    distributor: bytes
    vault_authority: bytes
    vault: bytes

    @classmethod
    def derive(cls, program_id: bytes, mint: bytes) -> "DistributorAddresses":
        distributor = find_distributor_address(program_id, mint)
        vault_authority = find_vault_authority_address(program_id, distributor)
        return cls(
            program_id=program_id,
            mint=mint,
            distributor=distributor,
            vault_authority=vault_authority,
            vault=find_holding_address(vault_authority, mint),
        )

    def claim_record(self, claimant: bytes) -> bytes:
        return find_claim_record_address(self.program_id, self.distributor, claimant)

    def to_dict(self) -> dict:
        return {
            "mint": bytes_to_hex(self.mint),
            "distributor": bytes_to_hex(self.distributor),
            "vault_authority": bytes_to_hex(self.vault_authority),
            "vault": bytes_to_hex(self.vault),
        }
