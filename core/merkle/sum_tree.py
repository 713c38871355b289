"""
Merkle Sum Tree
Deterministic construction of a complete binary Merkle-sum tree over
per-participant voting power.

Canonical Commitment Rules (Hard Contracts):
1. Leaf: hash = keccak256(uint256(sum))
2. Parent: hash = keccak256(left.hash ‖ uint256(left.sum) ‖ right.hash ‖ uint256(right.sum)),
   sum = left.sum + right.sum
3. Padding: the leaf layer is padded to the next power of two with ZERO_LEAF
   (leaf_node(0)); nodes are never duplicated
4. Empty input: EmptyInputException (a ledger with no participants is mapped
   to a single zero leaf by core.ledger before reaching this module)
5. Single leaf: depth 0, root = the leaf

Determinism Notes:
- Leaf order is participant registration order and is never sorted
- layers[0] is the padded leaf layer, layers[-1] == [root]
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence

from core.crypto.hashing import (
    DIGEST_SIZE,
    UINT256_MAX,
    encode_uint256,
    hash_pair,
    keccak256,
    to_hex,
)
from core.merkle.tree_index import depth_of, offset_in_layer, tree_depth_for
from core.schemas.errors import EmptyInputException


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TreeNode:
    """
    A committed node of the sum tree.

    Attributes:
        hash: 32-byte digest of the subtree
        sum: Total voting power beneath this node (uint256)
    """
    hash: bytes
    sum: int

    def __post_init__(self) -> None:
        if len(self.hash) != DIGEST_SIZE:
            raise ValueError(f"Node hash must be {DIGEST_SIZE} bytes, got {len(self.hash)}")
        if isinstance(self.sum, bool) or not isinstance(self.sum, int):
            raise ValueError(f"Node sum must be an int, got {type(self.sum).__name__}")
        if self.sum < 0 or self.sum > UINT256_MAX:
            raise ValueError(f"Node sum out of uint256 range: {self.sum}")

    def __repr__(self) -> str:
        return f"TreeNode(hash={to_hex(self.hash)[:12]}…, sum={self.sum})"


def leaf_node(value: int) -> TreeNode:
    """Canonicalize a raw voting power value into a leaf node."""
    return TreeNode(hash=keccak256(encode_uint256(value)), sum=value)


def combine(left: TreeNode, right: TreeNode) -> TreeNode:
    """
    Combine two sibling nodes into their parent.

    Raises:
        ValueError: If the combined sum overflows uint256
    """
    total = left.sum + right.sum
    if total > UINT256_MAX:
        raise ValueError("Combined sum overflows uint256")
    return TreeNode(
        hash=hash_pair(left.hash, left.sum, right.hash, right.sum),
        sum=total,
    )


ZERO_LEAF: TreeNode = leaf_node(0)


def next_layer(nodes: Sequence[TreeNode]) -> list[TreeNode]:
    """Pair adjacent nodes (left before right) into the layer above."""
    if len(nodes) % 2 != 0:
        raise ValueError(f"Layer width must be even, got {len(nodes)}")
    return [combine(nodes[i], nodes[i + 1]) for i in range(0, len(nodes), 2)]


@dataclass(frozen=True)
class SumTree:
    """
    A fully materialized sum tree.

    Attributes:
        layers: Node layers from the padded leaf layer up to the root
        leaf_count: Number of real (unpadded) leaves
    """
    layers: tuple[tuple[TreeNode, ...], ...]
    leaf_count: int

    @property
    def root(self) -> TreeNode:
        return self.layers[-1][0]

    @property
    def depth(self) -> int:
        return len(self.layers) - 1

    @property
    def leaves(self) -> tuple[TreeNode, ...]:
        return self.layers[0]

    def layer_at_depth(self, depth: int) -> tuple[TreeNode, ...]:
        """Nodes at a given depth (0 = root layer)."""
        if depth < 0 or depth > self.depth:
            raise IndexError(f"Depth {depth} out of range for tree of depth {self.depth}")
        return self.layers[self.depth - depth]

    def node_at(self, index: int) -> TreeNode:
        """Node at a global index."""
        depth = depth_of(index)
        if depth > self.depth:
            raise IndexError(
                f"Index {index} (depth {depth}) is below the leaf layer (depth {self.depth})"
            )
        return self.layer_at_depth(depth)[offset_in_layer(index)]


def pad_leaves(leaves: Sequence[TreeNode]) -> list[TreeNode]:
    """Pad a leaf layer to the next power of two with ZERO_LEAF."""
    if len(leaves) == 0:
        raise EmptyInputException()
    width = 2 ** tree_depth_for(len(leaves))
    return list(leaves) + [ZERO_LEAF] * (width - len(leaves))


def build_layers(leaves: Sequence[TreeNode]) -> list[list[TreeNode]]:
    """
    Build every layer bottom-up from an already padded leaf layer.

    Args:
        leaves: Power-of-two leaf layer

    Returns:
        Layers from leaves to root
    """
    width = len(leaves)
    if width == 0 or width & (width - 1):
        raise ValueError(f"Leaf layer width must be a power of two, got {width}")

    layers: list[list[TreeNode]] = [list(leaves)]
    while len(layers[-1]) > 1:
        layers.append(next_layer(layers[-1]))
    return layers


def build_tree_from_leaves(leaves: Sequence[TreeNode]) -> SumTree:
    """
    Build a tree from pre-computed leaf nodes.

    Used by proposers that hold leaf nodes directly and by tests that need a
    deliberately inconsistent commitment.
    """
    padded = pad_leaves(leaves)
    layers = build_layers(padded)
    tree = SumTree(
        layers=tuple(tuple(layer) for layer in layers),
        leaf_count=len(leaves),
    )
    logger.debug(
        "Built sum tree: leaves=%d depth=%d root_sum=%d",
        tree.leaf_count, tree.depth, tree.root.sum,
    )
    return tree


def build_tree(values: Sequence[int]) -> SumTree:
    """
    Build a sum tree from ordered per-participant voting power.

    Args:
        values: Voting power per participant, in registration order

    Returns:
        SumTree with padded leaf layer, all internal layers and the root

    Raises:
        EmptyInputException: If values is empty
        ValueError: If a value is negative or exceeds uint256

    Example:
        >>> tree = build_tree([10, 0, 30, 0])
        >>> tree.root.sum, tree.depth
        (40, 2)
    """
    if len(values) == 0:
        raise EmptyInputException()
    return build_tree_from_leaves([leaf_node(v) for v in values])


__all__ = [
    "TreeNode",
    "ZERO_LEAF",
    "SumTree",
    "leaf_node",
    "combine",
    "next_layer",
    "pad_leaves",
    "build_layers",
    "build_tree_from_leaves",
    "build_tree",
]
