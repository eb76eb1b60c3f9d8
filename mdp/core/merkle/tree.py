"""
Merkle tree construction for token distributions.

Conceptual Background:
---------------------
A distribution commits to every allocation with a single 32-byte root.
Each recipient later presents their (index, amount) plus a short list of
sibling digests; anyone holding the root can recompute the path.

Construction rules (shared bit-for-bit with the verifier):

1. One leaf per allocation, hashed with the distributor address mixed in
   (see mdp.crypto.domain).
2. Leaves are placed in ascending `index` order, so the root depends on
   the allocation set and not on the order of the input list.
3. Each level pairs nodes (2i, 2i+1). When a level has an odd count the
   last node is paired with itself, never promoted unchanged.
4. Pairs are combined with the sorted-pair node hash.

A proof is the sibling at every level, leaf to root. For a self-paired
node the sibling is the node itself. Proof length is ceil(log2(n)); a
single-allocation distribution has an empty proof and root == leaf.

Properties:
----------
- Build: O(n log n) (sorting), O(n) hashing
- Proof lookup: O(log n) per leaf after build
"""

from dataclasses import dataclass, field
from typing import Dict, List, Sequence

from mdp.crypto import hash_leaf, hash_node, bytes_to_hex, short_hex
from mdp.core.errors import InvalidInput
from mdp.utils.validation import validate_address, validate_amount, validate_index
from mdp.utils.logger import get_logger

logger = get_logger("merkle")


# =============================================================================
# Allocation
# =============================================================================


@dataclass(frozen=True)
class Allocation:
    """
    One recipient's entitlement within a distribution.

    Attributes:
        recipient: 20-byte address
        index: Unique position key within the distribution (u64)
        amount: Positive amount in base units (u64)
    """
    recipient: bytes
    index: int
    amount: int

    def __post_init__(self):
        for valid, err in (
            validate_address(self.recipient, "recipient"),
            validate_index(self.index),
            validate_amount(self.amount),
        ):
            if not valid:
                raise InvalidInput(err)

    def leaf(self, distributor: bytes) -> bytes:
        """Leaf digest of this allocation under `distributor`."""
        return hash_leaf(distributor, self.recipient, self.index, self.amount)

    def __repr__(self) -> str:
        return f"Allocation({bytes_to_hex(self.recipient)}, index={self.index}, amount={self.amount})"


# =============================================================================
# Build Result
# =============================================================================


@dataclass
class MerkleDistribution:
    """
    A built distribution tree.

    Attributes:
        distributor: Distributor address the leaves are bound to
        allocations: Allocations in input order
        leaves: Leaf digests in input order
        proofs: Sibling paths in input order
        levels: Every tree level, leaves (sorted by index) first, root last
    """
    distributor: bytes
    allocations: List[Allocation]
    leaves: List[bytes]
    proofs: List[List[bytes]]
    levels: List[List[bytes]] = field(repr=False)

    @property
    def root(self) -> bytes:
        return self.levels[-1][0]

    @property
    def depth(self) -> int:
        return len(self.levels) - 1

    @property
    def total_amount(self) -> int:
        return sum(a.amount for a in self.allocations)

    def __len__(self) -> int:
        return len(self.allocations)

    def position_of(self, recipient: bytes) -> int:
        """Input-list position of `recipient`'s allocation."""
        for i, allocation in enumerate(self.allocations):
            if allocation.recipient == recipient:
                return i
        raise KeyError(f"No allocation for {bytes_to_hex(recipient)}")

    def proof_for(self, recipient: bytes) -> List[bytes]:
        """Proof for `recipient`'s allocation."""
        return self.proofs[self.position_of(recipient)]

    def entries(self) -> List[dict]:
        """Per-recipient data in manifest-entry form (decimal strings, 0x hex)."""
        return [
            {
                "recipient": bytes_to_hex(allocation.recipient),
                "index": str(allocation.index),
                "amount": str(allocation.amount),
                "proof": [bytes_to_hex(node) for node in proof],
            }
            for allocation, proof in zip(self.allocations, self.proofs)
        ]


# =============================================================================
# Builder
# =============================================================================


class MerkleTreeBuilder:
    """
    Builds the distribution tree and every proof in one pass.

    Usage:
        builder = MerkleTreeBuilder(distributor_address)
        dist = builder.build(allocations)
        dist.root, dist.proofs[i]
    """

    def __init__(self, distributor: bytes):
        valid, err = validate_address(distributor, "distributor")
        if not valid:
            raise InvalidInput(err)
        self.distributor = bytes(distributor)

    @staticmethod
    def next_level(level: Sequence[bytes]) -> List[bytes]:
        """Combine one level into the next; an odd last node pairs with itself."""
        parents = []
        for i in range(0, len(level), 2):
            left = level[i]
            right = level[i + 1] if i + 1 < len(level) else left
            parents.append(hash_node(left, right))
        return parents

    @staticmethod
    def check_unique(allocations: Sequence[Allocation]) -> None:
        """Reject duplicate (recipient, index) pairs and duplicate indices."""
        seen_pairs = set()
        seen_indices: Dict[int, int] = {}
        for position, allocation in enumerate(allocations):
            pair = (allocation.recipient, allocation.index)
            if pair in seen_pairs:
                raise InvalidInput(
                    f"Duplicate allocation for {bytes_to_hex(allocation.recipient)} "
                    f"at index {allocation.index}",
                    field=f"allocations[{position}]",
                )
            if allocation.index in seen_indices:
                raise InvalidInput(
                    f"Duplicate index {allocation.index} "
                    f"(also used by allocations[{seen_indices[allocation.index]}])",
                    field=f"allocations[{position}].index",
                )
            seen_pairs.add(pair)
            seen_indices[allocation.index] = position

    def build(self, allocations: Sequence[Allocation]) -> MerkleDistribution:
        """
        Build the tree for `allocations`.

        Args:
            allocations: At least one allocation with unique indices

        Returns:
            MerkleDistribution with root and one proof per allocation
            (proofs in input order)

        Raises:
            InvalidInput: empty list or duplicate (recipient, index) / index
        """
        allocations = list(allocations)
        if not allocations:
            raise InvalidInput("Allocation list is empty", field="allocations")
        for position, allocation in enumerate(allocations):
            if not isinstance(allocation, Allocation):
                raise InvalidInput(
                    f"Expected Allocation, got {type(allocation).__name__}",
                    field=f"allocations[{position}]",
                )
        self.check_unique(allocations)

        leaves = [allocation.leaf(self.distributor) for allocation in allocations]

        # Tree position of each input, ordered by allocation index
        order = sorted(range(len(allocations)), key=lambda i: allocations[i].index)
        tree_position = [0] * len(allocations)
        for position, input_position in enumerate(order):
            tree_position[input_position] = position

        levels = [[leaves[i] for i in order]]
        while len(levels[-1]) > 1:
            levels.append(self.next_level(levels[-1]))

        proofs = [self._proof(levels, tree_position[i]) for i in range(len(allocations))]

        dist = MerkleDistribution(
            distributor=self.distributor,
            allocations=allocations,
            leaves=leaves,
            proofs=proofs,
            levels=levels,
        )
        logger.info(
            f"Built distribution tree: {len(allocations)} leaves, depth {dist.depth}, "
            f"root={short_hex(dist.root, 18)}"
        )
        return dist

    @staticmethod
    def _proof(levels: List[List[bytes]], position: int) -> List[bytes]:
        """Collect the sibling at each level below the root."""
        proof = []
        for level in levels[:-1]:
            sibling = position ^ 1
            # Self-paired node: the sibling is the node itself
            proof.append(level[sibling] if sibling < len(level) else level[position])
            position //= 2
        return proof


def build_distribution(distributor: bytes, allocations: Sequence[Allocation]) -> MerkleDistribution:
    """Convenience wrapper around MerkleTreeBuilder."""
    return MerkleTreeBuilder(distributor).build(allocations)
