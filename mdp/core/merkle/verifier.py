"""
Offline Merkle proof verification.

Recomputes the leaf from the claimed (recipient, index, amount), folds the
proof with the same sorted-pair node hash the builder uses, and compares
the result with the root in constant time.

Verification is a pure function: no ledger, network or account state. A
proof that does not match, or that is malformed in any way, yields False.
It never raises, so callers can branch on the result before any signed
request is built.
"""

import hmac
from typing import Any, Sequence

from mdp.crypto import hash_leaf, hash_node, DIGEST_SIZE, ADDRESS_SIZE
from mdp.utils.validation import MAX_PROOF_LENGTH, MAX_INDEX, MAX_AMOUNT


def _is_digest(value: Any) -> bool:
    return isinstance(value, (bytes, bytearray)) and len(value) == DIGEST_SIZE


def _is_address(value: Any) -> bool:
    return isinstance(value, (bytes, bytearray)) and len(value) == ADDRESS_SIZE


def _is_u64(value: Any, minimum: int, maximum: int) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and minimum <= value <= maximum


def verify_leaf(leaf: bytes, proof: Sequence[bytes], root: bytes) -> bool:
    """
    Verify that `leaf` is committed under `root`.

    Args:
        leaf: 32-byte leaf digest
        proof: Sibling digests, leaf to root
        root: Expected 32-byte root

    Returns:
        True if the folded path equals the root
    """
    if not _is_digest(leaf) or not _is_digest(root):
        return False
    if not isinstance(proof, (list, tuple)) or len(proof) > MAX_PROOF_LENGTH:
        return False

    current = bytes(leaf)
    for sibling in proof:
        if not _is_digest(sibling):
            return False
        current = hash_node(current, bytes(sibling))

    return hmac.compare_digest(current, bytes(root))


def verify_proof(
    recipient: bytes,
    index: int,
    amount: int,
    distributor: bytes,
    proof: Sequence[bytes],
    root: bytes,
) -> bool:
    """
    Verify a claim's membership proof.

    Args:
        recipient: 20-byte claimant address
        index: Allocation index
        amount: Allocation amount in base units
        distributor: 20-byte distributor address the tree was built for
        proof: Sibling digests, leaf to root
        root: Committed root

    Returns:
        True if (recipient, index, amount) is in the tree under `root`
    """
    if not (_is_address(recipient) and _is_address(distributor)):
        return False
    if not (_is_u64(index, 0, MAX_INDEX) and _is_u64(amount, 1, MAX_AMOUNT)):
        return False

    leaf = hash_leaf(bytes(distributor), bytes(recipient), index, amount)
    return verify_leaf(leaf, proof, root)
