"""
Merkle Sum Trees and Pollards
Deterministic sum-tree construction, witness generation/verification and
pollard windows for the bisection dispute game.

This module provides:
- TreeNode / SumTree: committed nodes and a fully materialized tree
- build_tree: Compute a tree from ordered voting power
- prove_leaf / verify_leaf_proof: Voter inclusion proofs
- generate_challenge_proof: Node-to-checkpoint witnesses for challengers
- generate_pollard / reduce_pollard: Proposer disclosure windows
- generate_subtree_pollard / generate_subtree_challenge_proof: The same
  below the leaves, inside a delegate subtree

Canonical Commitment Rules:
1. Leaf hashing: keccak256(uint256(sum))
2. Parent hashing: keccak256(left.hash + uint256(left.sum) + right.hash + uint256(right.sum))
3. Padding: ZERO_LEAF up to the next power of two
4. Empty input: EmptyInputException
5. Single leaf: root = leaf

Usage:
    from core.merkle import build_tree, prove_leaf, verify_leaf_proof

    tree = build_tree([10, 0, 30, 0])
    proof = prove_leaf(tree, 2)
    assert verify_leaf_proof(proof.sum, proof.global_index, proof.witness, tree.root)
"""
from .tree_index import (
    GlobalIndex,
    ROOT_INDEX,
    depth_of,
    parent_of,
    children_of,
    sibling_of,
    is_left,
    ancestor_at_depth,
    is_descendant,
    leaf_to_global,
    global_to_leaf,
    offset_in_layer,
    tree_depth_for,
    sub_root_of,
    get_sub_index,
    extend_index,
)

from .sum_tree import (
    TreeNode,
    ZERO_LEAF,
    SumTree,
    leaf_node,
    combine,
    build_tree,
    build_tree_from_leaves,
)

from .pollard import (
    clamp_order,
    is_round_boundary,
    previous_checkpoint_depth,
    is_subtree_round_boundary,
    subtree_checkpoint_depth,
    round_count,
    generate_pollard,
    generate_subtree_pollard,
    reduce_pollard,
)

from .merkle_proofs import (
    LeafProof,
    ChallengeProof,
    prove_leaf,
    generate_challenge_proof,
    generate_subtree_challenge_proof,
    compute_root_from_witness,
    verify_leaf_proof,
    MerkleProver,
    MerkleVerifier,
)


__all__ = [
    # Index arithmetic
    "GlobalIndex",
    "ROOT_INDEX",
    "depth_of",
    "parent_of",
    "children_of",
    "sibling_of",
    "is_left",
    "ancestor_at_depth",
    "is_descendant",
    "leaf_to_global",
    "global_to_leaf",
    "offset_in_layer",
    "tree_depth_for",
    "sub_root_of",
    "get_sub_index",
    "extend_index",
    # Core types
    "TreeNode",
    "ZERO_LEAF",
    "SumTree",
    "LeafProof",
    "ChallengeProof",
    # Core functions
    "leaf_node",
    "combine",
    "build_tree",
    "build_tree_from_leaves",
    "prove_leaf",
    "generate_challenge_proof",
    "generate_subtree_challenge_proof",
    "compute_root_from_witness",
    "verify_leaf_proof",
    # Pollards
    "clamp_order",
    "is_round_boundary",
    "previous_checkpoint_depth",
    "is_subtree_round_boundary",
    "subtree_checkpoint_depth",
    "round_count",
    "generate_pollard",
    "generate_subtree_pollard",
    "reduce_pollard",
    # Convenience classes
    "MerkleProver",
    "MerkleVerifier",
]
