"""
Transaction - an atomic, signed request to the ledger.

Conceptual Background:
---------------------
A Transaction bundles one or more instructions. The ledger executes them
in order and applies their effects only if every one succeeds; otherwise
nothing changes.

Every account flagged as a signer in any instruction, plus the fee payer,
must sign the transaction's signing hash:

    signing_hash = sha256(content_bytes)

The signing hash commits to the fee payer, a recent blockhash (which
bounds the transaction's lifetime and prevents replay), and every
instruction's canonical encoding.

The fee payer's signature doubles as the transaction id, the value
returned by submit and passed to confirm.
"""

from dataclasses import dataclass, field
from typing import Dict, List

from mdp.crypto import (
    sha256,
    sign,
    verify_signer,
    bytes_to_hex,
    keypair_from_private_key,
    ADDRESS_SIZE,
    DIGEST_SIZE,
)
from mdp.core.distributor.instructions import Instruction
from mdp.core.errors import InvalidInput


# Maximum instructions one transaction can carry (1-byte count)
MAX_INSTRUCTIONS = 255


@dataclass
class Transaction:
    """
    Attributes:
        instructions: Instructions executed in order
        fee_payer: Address paying for the request (always a signer)
        recent_blockhash: 32-byte blockhash the request is anchored to
        signatures: signer address -> 64-byte signature
    """
    instructions: List[Instruction]
    fee_payer: bytes
    recent_blockhash: bytes
    signatures: Dict[bytes, bytes] = field(default_factory=dict)

    def __post_init__(self):
        if not self.instructions:
            raise ValueError("Transaction must have at least one instruction")
        if len(self.instructions) > MAX_INSTRUCTIONS:
            raise InvalidInput(
                f"Transaction exceeds {MAX_INSTRUCTIONS} instructions, got {len(self.instructions)}",
                field="instructions",
            )
        if len(self.fee_payer) != ADDRESS_SIZE:
            raise ValueError(f"Fee payer must be {ADDRESS_SIZE} bytes")
        if len(self.recent_blockhash) != DIGEST_SIZE:
            raise ValueError(f"Recent blockhash must be {DIGEST_SIZE} bytes")

    # =========================================================================
    # Hashing
    # =========================================================================

    def compute_content_bytes(self) -> bytes:
        """
        Canonical byte representation for signing.

        Format: fee_payer(20) || recent_blockhash(32) || num_instructions(1) ||
                [len(2) || instruction]...
        """
        parts = [
            self.fee_payer,
            self.recent_blockhash,
            len(self.instructions).to_bytes(1, byteorder="big"),
        ]
        for ix in self.instructions:
            encoded = ix.to_bytes()
            parts.append(len(encoded).to_bytes(2, byteorder="big"))
            parts.append(encoded)
        return b"".join(parts)

    def compute_signing_hash(self) -> bytes:
        return sha256(self.compute_content_bytes())

    # =========================================================================
    # Signing
    # =========================================================================

    def required_signers(self) -> List[bytes]:
        """Fee payer first, then instruction signers in order of appearance."""
        signers = [self.fee_payer]
        for ix in self.instructions:
            for address in ix.signers:
                if address not in signers:
                    signers.append(address)
        return signers

    def sign(self, private_key: bytes) -> bytes:
        """
        Sign with `private_key` and record the signature under its address.

        Raises:
            ValueError: key's address is not a required signer
        """
        address = keypair_from_private_key(private_key).address
        if address not in self.required_signers():
            raise ValueError(f"{bytes_to_hex(address)} is not a signer of this transaction")
        signature = sign(self.compute_signing_hash(), private_key)
        self.signatures[address] = signature
        return signature

    def add_signature(self, address: bytes, signature: bytes) -> None:
        if len(signature) != 64:
            raise ValueError("Signature must be 64 bytes")
        self.signatures[address] = signature

    def missing_signers(self) -> List[bytes]:
        return [a for a in self.required_signers() if a not in self.signatures]

    def is_fully_signed(self) -> bool:
        return not self.missing_signers()

    def verify_signatures(self) -> bool:
        """Every required signer has a valid signature over the signing hash."""
        if not self.is_fully_signed():
            return False
        signing_hash = self.compute_signing_hash()
        return all(
            verify_signer(signing_hash, self.signatures[address], address)
            for address in self.required_signers()
        )

    @property
    def signature_id(self) -> str:
        """Transaction id: hex of the fee payer's signature."""
        signature = self.signatures.get(self.fee_payer)
        if signature is None:
            raise ValueError("Transaction has not been signed by the fee payer")
        return bytes_to_hex(signature)

    def __repr__(self) -> str:
        kinds = ",".join(ix.kind.name for ix in self.instructions)
        return f"Transaction([{kinds}], fee_payer={bytes_to_hex(self.fee_payer)[:10]}...)"
