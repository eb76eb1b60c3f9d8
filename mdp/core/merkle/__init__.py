"""Distribution Merkle trees: building and verifying claim proofs"""
from mdp.core.merkle.tree import (
    Allocation,
    MerkleDistribution,
    MerkleTreeBuilder,
    build_distribution,
)
from mdp.core.merkle.verifier import verify_leaf, verify_proof

__all__ = [
    "Allocation",
    "MerkleDistribution",
    "MerkleTreeBuilder",
    "build_distribution",
    "verify_leaf",
    "verify_proof",
]
