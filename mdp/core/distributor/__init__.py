"""Distributor accounts, records and instructions"""
from mdp.core.distributor.accounts import (
    DistributorAddresses,
    find_distributor_address,
    find_claim_record_address,
    find_holding_address,
    find_vault_address,
)
from mdp.core.distributor.state import (
    AssetKind,
    ClaimRecord,
    Distributor,
    DistributorState,
    derive_state,
)
from mdp.core.distributor.instructions import Instruction, InstructionKind

__all__ = [
    "DistributorAddresses",
    "find_distributor_address",
    "find_claim_record_address",
    "find_holding_address",
    "find_vault_address",
    "AssetKind",
    "ClaimRecord",
    "Distributor",
    "DistributorState",
    "derive_state",
    "Instruction",
    "InstructionKind",
]
