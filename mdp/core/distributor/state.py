"""
Ledger records used by the distributor, and the lifecycle state machine.

Lifecycle:
---------
    UNINITIALIZED --issue--> ISSUED --fund--> FUNDED --start_time--> ACTIVE --end_time--> EXPIRED

- FUNDED is implicit: the vault has received tokens.
- set_root may run in any state after ISSUED. It keeps the state name but
  invalidates every proof built against the previous root.
- Distributors are never deleted.
"""

from dataclasses import dataclass
from enum import IntEnum
from typing import Optional

from mdp.crypto import bytes_to_hex


class AssetKind(IntEnum):
    """Kinds of mint a ledger can hold."""
    FUNGIBLE = 0
    FUNGIBLE_EXTENDED = 1   # Fungible with extension data (e.g. transfer hooks)
    NON_FUNGIBLE = 2


SUPPORTED_ASSET_KINDS = frozenset({AssetKind.FUNGIBLE, AssetKind.FUNGIBLE_EXTENDED})


class DistributorState(IntEnum):
    UNINITIALIZED = 0
    ISSUED = 1
    FUNDED = 2
    ACTIVE = 3
    EXPIRED = 4


# =============================================================================
# Records
# =============================================================================


@dataclass
class MintAccount:
    address: bytes
    authority: bytes
    decimals: int
    kind: AssetKind = AssetKind.FUNGIBLE
    supply: int = 0


@dataclass
class TokenHolding:
    address: bytes
    owner: bytes
    mint: bytes
    balance: int = 0


@dataclass
class Distributor:
    """
    On-ledger distributor record.

    Attributes:
        root: Current Merkle root
        root_version: Incremented by every set_root
        total_allocations: Optional cap on the total amount claimable
        total_funded: Sum of all fund transfers into the vault
        total_claimed: Sum of all successful claims
        num_claimed: Number of claim records created
    """
    address: bytes
    mint: bytes
    vault: bytes
    vault_authority: bytes
    authority: bytes
    root: bytes
    start_time: int
    end_time: int
    total_allocations: Optional[int] = None
    total_funded: int = 0
    total_claimed: int = 0
    num_claimed: int = 0
    root_version: int = 0

    def is_within_window(self, now: int) -> bool:
        return self.start_time <= now <= self.end_time

    def to_dict(self) -> dict:
        return {
            "address": bytes_to_hex(self.address),
            "mint": bytes_to_hex(self.mint),
            "vault": bytes_to_hex(self.vault),
            "authority": bytes_to_hex(self.authority),
            "root": bytes_to_hex(self.root),
            "root_version": self.root_version,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "total_allocations": self.total_allocations,
            "total_funded": self.total_funded,
            "total_claimed": self.total_claimed,
            "num_claimed": self.num_claimed,
        }


@dataclass
class ClaimRecord:
    """Marks that `claimant` has withdrawn under `distributor`."""
    address: bytes
    distributor: bytes
    claimant: bytes
    index: int
    amount: int
    claimed_at: int
    rent: int = 0


@dataclass
class GovernanceRecord:
    """Recipient-owned deposit record in an external governance realm."""
    address: bytes
    governance_program_id: bytes
    realm: bytes
    mint: bytes
    owner: bytes
    deposited: int = 0


# =============================================================================
# State Derivation
# =============================================================================


def derive_state(distributor: Optional[Distributor], vault_balance: int, now: int) -> DistributorState:
    """
    Compute the lifecycle state.

    Args:
        distributor: Record, or None if not issued
        vault_balance: Current vault balance
        now: Ledger clock (unix seconds)
    """
    if distributor is None:
        return DistributorState.UNINITIALIZED
    if now > distributor.end_time:
        return DistributorState.EXPIRED
    if vault_balance == 0 and distributor.total_funded == 0:
        return DistributorState.ISSUED
    if now < distributor.start_time:
        return DistributorState.FUNDED
    return DistributorState.ACTIVE
