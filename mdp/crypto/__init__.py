"""
Cryptographic primitives for MDP.

This module provides:
- Hashing functions (SHA-256, Keccak-256)
- Key generation and management
- Digital signatures (ECDSA on secp256k1)
- Address derivation (wallet and program-derived addresses)
- Domain-separated Merkle hashing (see mdp.crypto.domain)

Design Notes:
-------------
SHA-256 is the Merkle hash: leaves and internal nodes are both SHA-256
digests, separated by a one-byte domain tag so a node can never be replayed
as a leaf.

Keccak-256 is used for addresses: wallet addresses are the last 20 bytes of
keccak256(public_key), and program-derived addresses are the last 20 bytes
of keccak256 over a fixed prefix, the program id and the seeds.
"""

import hashlib
import secrets
from dataclasses import dataclass
from typing import Optional, Sequence

from Crypto.Hash import keccak
from py_ecc.secp256k1 import secp256k1


# =============================================================================
# Constants
# =============================================================================

# secp256k1 curve order (number of points on the curve)
SECP256K1_ORDER = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141

DIGEST_SIZE = 32
ADDRESS_SIZE = 20

# Prefix for program-derived addresses
PDA_MARKER = b"mdp:pda"


# =============================================================================
# Hashing
# =============================================================================


def sha256(data: bytes) -> bytes:
    """
    Compute SHA-256 hash.

    Used for: Merkle leaves and nodes, transaction signing hashes.
    """
    return hashlib.sha256(data).digest()


def keccak256(data: bytes) -> bytes:
    """
    Compute Keccak-256 hash (Ethereum-style).

    Used for: wallet and program-derived address derivation.
    """
    k = keccak.new(digest_bits=256)
    k.update(data)
    return k.digest()


# =============================================================================
# Key Generation
# =============================================================================


@dataclass
class KeyPair:
    """
    An ECDSA keypair on secp256k1.

    Attributes:
        private_key: 32-byte secret key (integer in [1, order-1])
        public_key: 64-byte uncompressed public key (x || y coordinates)
    """
    private_key: bytes  # 32 bytes
    public_key: bytes   # 64 bytes (uncompressed, no 0x04 prefix)

    @property
    def address(self) -> bytes:
        """20-byte address derived from the public key."""
        return address_from_public_key(self.public_key)

    @property
    def address_hex(self) -> str:
        return bytes_to_hex(self.address)

    @property
    def private_key_hex(self) -> str:
        """Return private key as hex string."""
        return self.private_key.hex()

    @property
    def public_key_hex(self) -> str:
        """Return public key as hex string."""
        return self.public_key.hex()


def generate_keypair() -> KeyPair:
    """
    Generate a new random keypair.

    Uses cryptographically secure random number generator.
    """
    private_key_int = secrets.randbelow(SECP256K1_ORDER - 1) + 1
    private_key = private_key_int.to_bytes(32, byteorder="big")
    return KeyPair(private_key=private_key, public_key=private_key_to_public_key(private_key))


def keypair_from_private_key(private_key: bytes) -> KeyPair:
    """Rebuild a keypair from a stored private key."""
    return KeyPair(private_key=private_key, public_key=private_key_to_public_key(private_key))


def private_key_to_public_key(private_key: bytes) -> bytes:
    """
    Derive public key from private key.

    Args:
        private_key: 32-byte private key

    Returns:
        64-byte uncompressed public key
    """
    if len(private_key) != 32:
        raise ValueError("Private key must be 32 bytes")

    public_key_point = secp256k1.privtopub(private_key)
    x_bytes = public_key_point[0].to_bytes(32, byteorder="big")
    y_bytes = public_key_point[1].to_bytes(32, byteorder="big")
    return x_bytes + y_bytes


# =============================================================================
# Digital Signatures (ECDSA)
# =============================================================================


def sign(message_hash: bytes, private_key: bytes) -> bytes:
    """
    Sign a message hash using ECDSA on secp256k1.

    Args:
        message_hash: 32-byte hash of the message to sign
        private_key: 32-byte private key

    Returns:
        64-byte signature (r || s, each 32 bytes)
    """
    if len(message_hash) != 32:
        raise ValueError("Message hash must be 32 bytes")
    if len(private_key) != 32:
        raise ValueError("Private key must be 32 bytes")

    v, r, s = secp256k1.ecdsa_raw_sign(message_hash, private_key)

    # Normalize s to lower half of curve order (prevents malleability)
    if s > SECP256K1_ORDER // 2:
        s = SECP256K1_ORDER - s

    return r.to_bytes(32, byteorder="big") + s.to_bytes(32, byteorder="big")


def recover_public_key(message_hash: bytes, signature: bytes, recovery_id: int) -> Optional[bytes]:
    """
    Recover public key from signature.

    Args:
        message_hash: 32-byte hash
        signature: 64-byte signature (r || s)
        recovery_id: 0 or 1 (which of two possible public keys)

    Returns:
        64-byte public key, or None if recovery fails
    """
    if len(message_hash) != 32 or len(signature) != 64:
        return None

    r = int.from_bytes(signature[:32], byteorder="big")
    s = int.from_bytes(signature[32:], byteorder="big")
    if not (1 <= r < SECP256K1_ORDER and 1 <= s < SECP256K1_ORDER):
        return None

    try:
        recovered = secp256k1.ecdsa_raw_recover(message_hash, (27 + recovery_id, r, s))
    except (ValueError, ZeroDivisionError, TypeError):
        return None
    if not recovered:
        return None

    return recovered[0].to_bytes(32, byteorder="big") + recovered[1].to_bytes(32, byteorder="big")


def verify_signer(message_hash: bytes, signature: bytes, address: bytes) -> bool:
    """
    Check that `signature` over `message_hash` was produced by the key
    behind `address`.
    """
    for recovery_id in (0, 1):
        recovered = recover_public_key(message_hash, signature, recovery_id)
        if recovered is not None and address_from_public_key(recovered) == address:
            return True
    return False


# =============================================================================
# Addresses
# =============================================================================


def address_from_public_key(public_key: bytes) -> bytes:
    """Address = last 20 bytes of keccak256(public_key)."""
    if len(public_key) != 64:
        raise ValueError("Public key must be 64 bytes")
    return keccak256(public_key)[-ADDRESS_SIZE:]


def derive_program_address(program_id: bytes, seeds: Sequence[bytes]) -> bytes:
    """
    Derive a deterministic address owned by a program.

    address = keccak256(PDA_MARKER || program_id || len(seed) || seed ...)[-20:]

    Each seed is length-prefixed so ("ab", "c") and ("a", "bc") never collide.
    """
    if len(program_id) != ADDRESS_SIZE:
        raise ValueError(f"Program id must be {ADDRESS_SIZE} bytes, got {len(program_id)}")

    parts = [PDA_MARKER, program_id]
    for seed in seeds:
        if len(seed) > 255:
            raise ValueError("Seed longer than 255 bytes")
        parts.append(len(seed).to_bytes(1, byteorder="big"))
        parts.append(seed)
    return keccak256(b"".join(parts))[-ADDRESS_SIZE:]


# =============================================================================
# Utility Functions
# =============================================================================


def bytes_to_hex(data: bytes) -> str:
    """Convert bytes to hex string with 0x prefix."""
    return "0x" + data.hex()


def hex_to_bytes(hex_str: str) -> bytes:
    """Convert hex string (with or without 0x prefix) to bytes."""
    if hex_str.startswith("0x") or hex_str.startswith("0X"):
        hex_str = hex_str[2:]
    return bytes.fromhex(hex_str)


def short_hex(data: bytes, length: int = 10) -> str:
    """Abbreviated hex for log lines."""
    return bytes_to_hex(data)[:length] + "..."


# =============================================================================
# Merkle Hashing
# =============================================================================

from mdp.crypto.domain import (
    DOMAIN_LEAF,
    DOMAIN_NODE,
    hash_leaf,
    hash_node,
)
