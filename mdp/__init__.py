"""
Merkle Distributor Protocol (MDP)

Tooling for committing a token allocation to a single Merkle root and
letting recipients claim their share with a proof:
- Merkle tree construction and proof verification
- Allocation lists, claim packages and campaign manifests
- Distributor lifecycle (issue, fund, rotate root, claim, close)
- Batched submission of signed requests
"""
