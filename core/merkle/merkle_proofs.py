"""
Sum Tree Proofs
Witness paths for voters (leaf to root) and challengers (node to the
previous round checkpoint).

Witness Rules (Hard Contracts):
1. Witnesses are root-ward: element 0 is the sibling of the proven node
2. Orientation comes from the index parity at each level (even = left)
3. A leaf witness has exactly depth(global_index) elements
4. A challenge witness has exactly depth(index) - depth(checkpoint) elements,
   where checkpoint is the round boundary directly above index
5. Below the leaves the witness comes from the delegate subtree and the same
   sibling nodes serve the extended index, since its low bits are the
   subtree index
6. Padded leaves are ZERO_LEAF, so a dangling leaf pairs with a zero node
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from core.merkle.pollard import previous_checkpoint_depth
from core.merkle.sum_tree import SumTree, TreeNode, build_tree, combine, leaf_node
from core.merkle.tree_index import (
    GlobalIndex,
    depth_of,
    get_sub_index,
    is_left,
    leaf_to_global,
    sibling_of,
)
from core.schemas.errors import MalformedProofException


@dataclass(frozen=True)
class LeafProof:
    """
    Inclusion proof for one participant's voting power.

    Attributes:
        leaf_index: 0-based participant position
        global_index: Heap index of the leaf (2**D + leaf_index)
        sum: The participant's voting power
        witness: Sibling nodes from the leaf up to the root
    """
    leaf_index: int
    global_index: int
    sum: int
    witness: list[TreeNode]


@dataclass(frozen=True)
class ChallengeProof:
    """
    A challenger's claim about one node of a proposer's commitment.

    Attributes:
        index: Global index being disputed
        node: The proposer's claimed node at index
        witness: Sibling nodes from index up to the previous round checkpoint
    """
    index: int
    node: TreeNode
    witness: list[TreeNode]


def _collect_witness(tree: SumTree, index: int, levels: int) -> list[TreeNode]:
    witness: list[TreeNode] = []
    current = index
    for _ in range(levels):
        witness.append(tree.node_at(sibling_of(current)))
        current //= 2
    return witness


def prove_leaf(tree: SumTree, leaf_index: int) -> LeafProof:
    """
    Generate the witness proving a participant's voting power.

    Args:
        tree: Sum tree built from the snapshot
        leaf_index: 0-based participant position

    Returns:
        LeafProof whose witness has tree.depth elements

    Raises:
        IndexError: If leaf_index is not a real participant
    """
    if leaf_index < 0 or leaf_index >= tree.leaf_count:
        raise IndexError(
            f"Leaf index {leaf_index} out of range for {tree.leaf_count} leaves"
        )
    global_index = leaf_to_global(leaf_index, tree.depth)
    return LeafProof(
        leaf_index=leaf_index,
        global_index=global_index,
        sum=tree.leaves[leaf_index].sum,
        witness=_collect_witness(tree, global_index, tree.depth),
    )


def generate_challenge_proof(tree: SumTree, index: int, order: int) -> ChallengeProof:
    """
    Generate a challenge proof for a node, anchored at the previous checkpoint.

    The walk starts at index itself (not at a leaf) and stops at the round
    boundary above it, which is the node the proposer already revealed.

    Args:
        tree: The tree holding the proposer's claimed nodes
        index: Global index to dispute
        order: Depth per dispute round
    """
    depth = depth_of(index)
    if depth > tree.depth:
        raise IndexError(f"Index {index} lies below the leaves of a depth-{tree.depth} tree")
    levels = depth - previous_checkpoint_depth(depth, order)
    return ChallengeProof(
        index=index,
        node=tree.node_at(index),
        witness=_collect_witness(tree, index, levels),
    )


def generate_subtree_challenge_proof(
    subtree: SumTree,
    index: int,
    order: int,
    tree_depth: int,
) -> ChallengeProof:
    """
    Generate a challenge proof for an extended index below the leaves.

    The witness is taken from the delegate subtree and stops at the subtree
    round boundary above index, which may be the subtree root itself.

    Args:
        subtree: The proposer's delegate subtree for the leaf above index
        index: Extended global index to dispute (deeper than tree_depth)
        order: Depth per dispute round
        tree_depth: Depth D of the top-level tree
    """
    if subtree.depth != tree_depth:
        raise ValueError(
            f"Subtree depth {subtree.depth} does not match tree depth {tree_depth}"
        )
    local = get_sub_index(index, tree_depth)
    local_depth = depth_of(local)
    if local_depth == 0:
        raise ValueError(f"Index {index} is a top-level leaf, not a subtree node")
    levels = local_depth - previous_checkpoint_depth(local_depth, order)
    return ChallengeProof(
        index=index,
        node=subtree.node_at(local),
        witness=_collect_witness(subtree, local, levels),
    )


def compute_root_from_witness(
    index: int,
    node: TreeNode,
    witness: Sequence[TreeNode],
) -> tuple[GlobalIndex, TreeNode]:
    """
    Recombine a node with its witness.

    Returns:
        (ancestor_index, ancestor_node) reached after len(witness) levels

    Raises:
        MalformedProofException: If the witness climbs past the root
    """
    if len(witness) > depth_of(index):
        raise MalformedProofException(
            f"Invalid proof length: {len(witness)} elements for depth {depth_of(index)}",
            index=index,
        )
    current = node
    current_index = index
    for sibling in witness:
        if is_left(current_index):
            current = combine(current, sibling)
        else:
            current = combine(sibling, current)
        current_index //= 2
    return GlobalIndex(current_index), current


def verify_leaf_proof(
    value: int,
    global_index: int,
    witness: Sequence[TreeNode],
    root: TreeNode,
) -> bool:
    """
    Verify a participant's voting power against a committed root.

    Returns:
        True only if the witness has full depth and reproduces root exactly
    """
    if len(witness) != depth_of(global_index):
        return False
    try:
        ancestor, computed = compute_root_from_witness(
            global_index, leaf_node(value), witness
        )
    except ValueError:
        # out-of-range value or overflowing sibling sums
        return False
    return ancestor == 1 and computed == root


class MerkleProver:
    """
    Convenience class for generating proofs straight from voting power.

    Example:
        >>> proof = MerkleProver.prove([10, 0, 30, 0], leaf_index=2)
        >>> proof.sum, len(proof.witness)
        (30, 2)
    """

    @staticmethod
    def prove(values: Sequence[int], leaf_index: int) -> LeafProof:
        """Build the tree for values and prove one participant."""
        return prove_leaf(build_tree(values), leaf_index)

    @staticmethod
    def compute_root(values: Sequence[int]) -> TreeNode:
        """Root node for a voting power array."""
        return build_tree(values).root


class MerkleVerifier:
    """
    Convenience class for verifying leaf proofs.

    Example:
        >>> proof = MerkleProver.prove(values, leaf_index=1)
        >>> MerkleVerifier.verify(proof, root)
        True
    """

    @staticmethod
    def verify(proof: LeafProof, root: TreeNode) -> bool:
        """Verify a LeafProof against a root node."""
        return verify_leaf_proof(proof.sum, proof.global_index, proof.witness, root)

    @staticmethod
    def verify_participant(
        value: int,
        leaf_index: int,
        tree_depth: int,
        witness: list[TreeNode],
        root: TreeNode,
    ) -> bool:
        """Verify using a participant position instead of a global index."""
        try:
            global_index = leaf_to_global(leaf_index, tree_depth)
        except IndexError:
            return False
        return verify_leaf_proof(value, global_index, witness, root)


__all__ = [
    "LeafProof",
    "ChallengeProof",
    "prove_leaf",
    "generate_challenge_proof",
    "generate_subtree_challenge_proof",
    "compute_root_from_witness",
    "verify_leaf_proof",
    "MerkleProver",
    "MerkleVerifier",
]
