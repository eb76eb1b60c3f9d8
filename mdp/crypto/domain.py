"""
Domain-separated hashing for distribution Merkle trees.

Leaf and internal-node digests are both SHA-256, each prefixed with its own
one-byte domain tag:

    leaf = SHA256(DOMAIN_LEAF || distributor || recipient || index_le64 || amount_le64)
    node = SHA256(DOMAIN_NODE || min(a, b) || max(a, b))

The leaf preimage is 81 bytes and the node preimage is 65 bytes, and the
tags differ, so an internal node can never be presented as a leaf
(second-preimage forgery). Binding the distributor address into every leaf
stops proofs from being replayed across distributions that share the same
allocation data.

Node children are sorted bytewise before hashing. Proofs therefore carry no
left/right flags, and the builder, the offline verifier and the ledger-side
verifier must all use this exact ordering.
"""

from mdp.crypto import sha256, DIGEST_SIZE, ADDRESS_SIZE


# Domain separators
DOMAIN_LEAF = 0x00
DOMAIN_NODE = 0x01

U64_MAX = 2**64 - 1


def hash_leaf(distributor: bytes, recipient: bytes, index: int, amount: int) -> bytes:
    """
    Compute the leaf digest for one allocation.

    Args:
        distributor: 20-byte distributor address
        recipient: 20-byte recipient address
        index: Allocation index (u64)
        amount: Amount in base units (u64)

    Returns:
        32-byte leaf digest
    """
    if len(distributor) != ADDRESS_SIZE:
        raise ValueError(f"Distributor must be {ADDRESS_SIZE} bytes, got {len(distributor)}")
    if len(recipient) != ADDRESS_SIZE:
        raise ValueError(f"Recipient must be {ADDRESS_SIZE} bytes, got {len(recipient)}")
    if not (0 <= index <= U64_MAX):
        raise ValueError(f"Index out of u64 range: {index}")
    if not (0 <= amount <= U64_MAX):
        raise ValueError(f"Amount out of u64 range: {amount}")

    return sha256(
        bytes([DOMAIN_LEAF])
        + distributor
        + recipient
        + index.to_bytes(8, byteorder="little")
        + amount.to_bytes(8, byteorder="little")
    )


def hash_node(a: bytes, b: bytes) -> bytes:
    """Hash two child digests in ascending byte order."""
    if len(a) != DIGEST_SIZE or len(b) != DIGEST_SIZE:
        raise ValueError(f"Node children must be {DIGEST_SIZE} bytes")

    if a <= b:
        return sha256(bytes([DOMAIN_NODE]) + a + b)
    return sha256(bytes([DOMAIN_NODE]) + b + a)
