"""
Pollards
Bounded-width windows of tree nodes revealed during proposals and disputes.

A pollard of order o under index k is the 2**o contiguous nodes at depth
depth(k) + o whose common ancestor is k, ordered left to right. Reducing a
pollard pairwise reproduces the node at k.

Round structure:
- Each dispute round descends `order` levels (the configured depth per round)
- Round boundaries sit at depths order, 2*order, ... and at the leaf depth D
- The final round is truncated so a pollard never reaches below the leaves
- With delegate subtrees the rounds restart at D and run down to 2D inside
  the subtree beneath the disputed leaf
"""
from __future__ import annotations

from typing import Sequence

from core.merkle.sum_tree import SumTree, TreeNode, next_layer
from core.merkle.tree_index import depth_of, get_sub_index, offset_in_layer
from core.schemas.errors import MalformedProofException


def clamp_order(index: int, order: int, tree_depth: int) -> int:
    """
    Clamp a requested pollard order to the depth remaining below index.

    Requests beyond the leaves are a normal final-round case, so this never
    raises for an over-deep order.
    """
    if order < 0:
        raise ValueError(f"Pollard order must be non-negative, got {order}")
    remaining = tree_depth - depth_of(index)
    if remaining < 0:
        raise ValueError(
            f"Index {index} lies below the leaf layer of a depth-{tree_depth} tree"
        )
    return min(order, remaining)


def is_round_boundary(depth: int, order: int, tree_depth: int) -> bool:
    """True if a challenge may be opened at this depth."""
    if order < 1:
        raise ValueError(f"Depth per round must be positive, got {order}")
    if depth < 1 or depth > tree_depth:
        return False
    return depth == tree_depth or depth % order == 0


def previous_checkpoint_depth(depth: int, order: int) -> int:
    """Depth of the round boundary directly above a challenge at depth."""
    if depth < 1:
        raise ValueError("Root depth has no previous checkpoint")
    return ((depth - 1) // order) * order


def is_subtree_round_boundary(depth: int, order: int, tree_depth: int) -> bool:
    """
    True if a challenge may be opened at this depth below the leaves.

    Subtree rounds restart at the leaf depth D: boundaries sit at D + order,
    D + 2*order, ... and at 2D.
    """
    if depth <= tree_depth:
        return False
    return is_round_boundary(depth - tree_depth, order, tree_depth)


def subtree_checkpoint_depth(depth: int, order: int, tree_depth: int) -> int:
    """Depth of the round boundary directly above a challenge below the leaves."""
    if depth <= tree_depth:
        raise ValueError(f"Depth {depth} is not below the leaves of a depth-{tree_depth} tree")
    return tree_depth + previous_checkpoint_depth(depth - tree_depth, order)


def round_count(tree_depth: int, order: int) -> int:
    """Maximum number of challenge rounds for a tree, the bisection bound."""
    if order < 1:
        raise ValueError(f"Depth per round must be positive, got {order}")
    return -(-tree_depth // order)


def generate_pollard(tree: SumTree, order: int, index: int = 1) -> list[TreeNode]:
    """
    Extract the pollard of a given order beneath a global index.

    Args:
        tree: Fully built sum tree
        order: Requested depth below index (clamped to the leaves)
        index: Global index whose subtree is revealed (default: root)

    Returns:
        2**order nodes, left to right

    Example:
        >>> tree = build_tree([1, 2, 3, 4, 5, 6, 7, 8])
        >>> len(generate_pollard(tree, 2))
        4
        >>> len(generate_pollard(tree, 2, index=4))   # clamped to 1
        2
    """
    effective = clamp_order(index, order, tree.depth)
    target_depth = depth_of(index) + effective
    width = 2**effective
    start = offset_in_layer(index) * width
    layer = tree.layer_at_depth(target_depth)
    return list(layer[start:start + width])


def generate_subtree_pollard(
    subtree: SumTree,
    order: int,
    index: int,
    tree_depth: int,
) -> list[TreeNode]:
    """
    Extract the pollard beneath an extended index from its delegate subtree.

    Args:
        subtree: Subtree built from the delegators' power of the leaf above index
        order: Requested depth below index (clamped to the subtree leaves)
        index: Extended global index at or below the leaf depth
        tree_depth: Depth D of the top-level tree
    """
    if subtree.depth != tree_depth:
        raise ValueError(
            f"Subtree depth {subtree.depth} does not match tree depth {tree_depth}"
        )
    return generate_pollard(subtree, order, get_sub_index(index, tree_depth))


def reduce_pollard(nodes: Sequence[TreeNode]) -> TreeNode:
    """
    Recombine a pollard up to the single node it expands.

    Raises:
        MalformedProofException: If the width is not a power of two
    """
    width = len(nodes)
    if width == 0 or width & (width - 1):
        raise MalformedProofException(
            f"Invalid node count: pollard width {width} is not a power of two",
            details={"width": width},
        )
    layer = list(nodes)
    while len(layer) > 1:
        layer = next_layer(layer)
    return layer[0]


__all__ = [
    "clamp_order",
    "is_round_boundary",
    "previous_checkpoint_depth",
    "is_subtree_round_boundary",
    "subtree_checkpoint_depth",
    "round_count",
    "generate_pollard",
    "generate_subtree_pollard",
    "reduce_pollard",
]
