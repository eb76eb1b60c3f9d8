"""
Distributor instructions.

An instruction names a program, an ordered set of accounts (with signer
and writable flags), and a small data payload. Builders here take the
derived DistributorAddresses so every account lines up with what the
program expects.

Canonical Encoding:
------------------
Instructions are hashed as part of the transaction signing message:

    kind(1) || program_id(20) || num_accounts(1) ||
        [name_len(1) || name || flags(1) || address(20)]... ||
    num_fields(1) || [key_len(1) || key || tagged value]...

Data keys are sorted. Values are tagged: integers as `i` + u64 LE,
None as `n`, bytes as `b` + u16 length + bytes, and lists of bytes as
`l` + count(1) + tagged bytes.
"""

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Dict, List, Optional, Sequence

from mdp.core.distributor.accounts import (
    DistributorAddresses,
    find_holding_address,
    find_governance_record_address,
)


class InstructionKind(IntEnum):
    ISSUE = 0
    FUND = 1
    SET_ROOT = 2
    CLAIM = 3
    CLAIM_AND_DEPOSIT = 4
    CLOSE_CLAIM_RECORD = 5


CURRENT_PROGRAM_VERSION = 2

# Instructions added after the first program release
MIN_PROGRAM_VERSION = {
    InstructionKind.CLOSE_CLAIM_RECORD: 2,
}


def is_supported(kind: InstructionKind, program_version: int) -> bool:
    return program_version >= MIN_PROGRAM_VERSION.get(kind, 1)


@dataclass(frozen=True)
class AccountMeta:
    address: bytes
    is_signer: bool = False
    is_writable: bool = False

    @property
    def flags(self) -> int:
        return (1 if self.is_signer else 0) | (2 if self.is_writable else 0)


@dataclass
class Instruction:
    program_id: bytes
    kind: InstructionKind
    accounts: Dict[str, AccountMeta]
    data: Dict[str, Any] = field(default_factory=dict)

    @property
    def signers(self) -> List[bytes]:
        return [meta.address for meta in self.accounts.values() if meta.is_signer]

    def account(self, name: str) -> bytes:
        return self.accounts[name].address

    def to_bytes(self) -> bytes:
        parts = [
            int(self.kind).to_bytes(1, byteorder="big"),
            self.program_id,
            len(self.accounts).to_bytes(1, byteorder="big"),
        ]
        for name, meta in self.accounts.items():
            encoded = name.encode()
            parts.append(len(encoded).to_bytes(1, byteorder="big"))
            parts.append(encoded)
            parts.append(meta.flags.to_bytes(1, byteorder="big"))
            parts.append(meta.address)

        parts.append(len(self.data).to_bytes(1, byteorder="big"))
        for key in sorted(self.data):
            encoded = key.encode()
            parts.append(len(encoded).to_bytes(1, byteorder="big"))
            parts.append(encoded)
            parts.append(_encode_value(self.data[key]))
        return b"".join(parts)


def _encode_value(value: Any) -> bytes:
    if value is None:
        return b"n"
    if isinstance(value, bool):
        raise TypeError("Boolean instruction data is not supported")
    if isinstance(value, int):
        return b"i" + value.to_bytes(8, byteorder="little")
    if isinstance(value, bytes):
        return b"b" + len(value).to_bytes(2, byteorder="little") + value
    if isinstance(value, (list, tuple)):
        return b"l" + len(value).to_bytes(1, byteorder="big") + b"".join(_encode_value(v) for v in value)
    raise TypeError(f"Cannot encode instruction value of type {type(value).__name__}")


# =============================================================================
# Builders
# =============================================================================


def issue_instruction(
    addresses: DistributorAddresses,
    authority: bytes,
    root: bytes,
    start_time: int,
    end_time: int,
    total_allocations: Optional[int] = None,
) -> Instruction:
    return Instruction(
        program_id=addresses.program_id,
        kind=InstructionKind.ISSUE,
        accounts={
            "distributor": AccountMeta(addresses.distributor, is_writable=True),
            "vault_authority": AccountMeta(addresses.vault_authority),
            "vault": AccountMeta(addresses.vault, is_writable=True),
            "mint": AccountMeta(addresses.mint),
            "authority": AccountMeta(authority, is_signer=True, is_writable=True),
        },
        data={
            "root": root,
            "start_time": start_time,
            "end_time": end_time,
            "total_allocations": total_allocations,
        },
    )


def fund_instruction(addresses: DistributorAddresses, authority: bytes, amount: int) -> Instruction:
    return Instruction(
        program_id=addresses.program_id,
        kind=InstructionKind.FUND,
        accounts={
            "distributor": AccountMeta(addresses.distributor, is_writable=True),
            "vault": AccountMeta(addresses.vault, is_writable=True),
            "source": AccountMeta(find_holding_address(authority, addresses.mint), is_writable=True),
            "authority": AccountMeta(authority, is_signer=True),
        },
        data={"amount": amount},
    )


def set_root_instruction(addresses: DistributorAddresses, authority: bytes, root: bytes) -> Instruction:
    return Instruction(
        program_id=addresses.program_id,
        kind=InstructionKind.SET_ROOT,
        accounts={
            "distributor": AccountMeta(addresses.distributor, is_writable=True),
            "authority": AccountMeta(authority, is_signer=True),
        },
        data={"root": root},
    )


def _claim_accounts(addresses: DistributorAddresses, claimant: bytes) -> Dict[str, AccountMeta]:
    return {
        "distributor": AccountMeta(addresses.distributor, is_writable=True),
        "claim_record": AccountMeta(addresses.claim_record(claimant), is_writable=True),
        "vault": AccountMeta(addresses.vault, is_writable=True),
        "vault_authority": AccountMeta(addresses.vault_authority),
        "mint": AccountMeta(addresses.mint),
        "claimant": AccountMeta(claimant, is_signer=True, is_writable=True),
        "destination": AccountMeta(find_holding_address(claimant, addresses.mint), is_writable=True),
    }


def claim_instruction(
    addresses: DistributorAddresses,
    claimant: bytes,
    index: int,
    amount: int,
    proof: Sequence[bytes],
) -> Instruction:
    return Instruction(
        program_id=addresses.program_id,
        kind=InstructionKind.CLAIM,
        accounts=_claim_accounts(addresses, claimant),
        data={"index": index, "amount": amount, "proof": list(proof)},
    )


def claim_and_deposit_instruction(
    addresses: DistributorAddresses,
    claimant: bytes,
    index: int,
    amount: int,
    proof: Sequence[bytes],
    realm: bytes,
    governance_program_id: bytes,
    governance_program_version: int,
) -> Instruction:
    """Claim and deposit the full amount into the claimant's governance record."""
    accounts = _claim_accounts(addresses, claimant)
    accounts["governance_program"] = AccountMeta(governance_program_id)
    accounts["realm"] = AccountMeta(realm)
    accounts["governance_record"] = AccountMeta(
        find_governance_record_address(governance_program_id, realm, addresses.mint, claimant),
        is_writable=True,
    )
    return Instruction(
        program_id=addresses.program_id,
        kind=InstructionKind.CLAIM_AND_DEPOSIT,
        accounts=accounts,
        data={
            "index": index,
            "amount": amount,
            "proof": list(proof),
            "governance_program_version": governance_program_version,
        },
    )


def close_claim_record_instruction(addresses: DistributorAddresses, claimant: bytes) -> Instruction:
    return Instruction(
        program_id=addresses.program_id,
        kind=InstructionKind.CLOSE_CLAIM_RECORD,
        accounts={
            "distributor": AccountMeta(addresses.distributor),
            "claim_record": AccountMeta(addresses.claim_record(claimant), is_writable=True),
            "claimant": AccountMeta(claimant, is_signer=True, is_writable=True),
        },
    )
