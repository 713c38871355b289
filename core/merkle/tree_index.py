"""
Global Index Arithmetic
Heap-numbered node addressing for complete binary sum trees.

Numbering:
- Root is 1
- Node k has children 2k (left) and 2k + 1 (right)
- depth(k) = floor(log2(k)), so the root has depth 0
- Leaf i of a depth-D tree has global index 2**D + i

All functions are pure. Index 0 and negative values never name a node and
raise ValueError.
"""
from __future__ import annotations

from typing import NewType


GlobalIndex = NewType("GlobalIndex", int)

ROOT_INDEX = GlobalIndex(1)


def _check(index: int) -> None:
    if isinstance(index, bool) or not isinstance(index, int):
        raise ValueError(f"Global index must be an int, got {type(index).__name__}")
    if index < 1:
        raise ValueError(f"Global index must be >= 1, got {index}")


def depth_of(index: int) -> int:
    """Depth of a node, computed exactly from the bit length."""
    _check(index)
    return index.bit_length() - 1


def parent_of(index: int) -> GlobalIndex:
    """Parent of a non-root node."""
    _check(index)
    if index == ROOT_INDEX:
        raise ValueError("Root node has no parent")
    return GlobalIndex(index // 2)


def children_of(index: int) -> tuple[GlobalIndex, GlobalIndex]:
    """Left and right children of a node."""
    _check(index)
    return GlobalIndex(2 * index), GlobalIndex(2 * index + 1)


def sibling_of(index: int) -> GlobalIndex:
    """The other child of this node's parent."""
    _check(index)
    if index == ROOT_INDEX:
        raise ValueError("Root node has no sibling")
    return GlobalIndex(index ^ 1)


def is_left(index: int) -> bool:
    """
    Orientation of a node relative to its parent.

    Even indices are left children, so when recombining a node with a
    witness element the node goes first if this returns True.
    """
    _check(index)
    return index % 2 == 0


def ancestor_at_depth(index: int, depth: int) -> GlobalIndex:
    """Ancestor of index at the given (shallower or equal) depth."""
    own_depth = depth_of(index)
    if depth < 0 or depth > own_depth:
        raise ValueError(
            f"Depth {depth} is not an ancestor depth of index {index} (depth {own_depth})"
        )
    return GlobalIndex(index >> (own_depth - depth))


def is_descendant(index: int, ancestor: int) -> bool:
    """True if ancestor lies on the path from index to the root (inclusive)."""
    own_depth = depth_of(index)
    ancestor_depth = depth_of(ancestor)
    if ancestor_depth > own_depth:
        return False
    return index >> (own_depth - ancestor_depth) == ancestor


def leaf_to_global(leaf_index: int, tree_depth: int) -> GlobalIndex:
    """Convert a 0-based leaf position into a global index."""
    if tree_depth < 0:
        raise ValueError(f"Tree depth must be non-negative, got {tree_depth}")
    if leaf_index < 0 or leaf_index >= 2**tree_depth:
        raise IndexError(
            f"Leaf index {leaf_index} out of range for depth {tree_depth}"
        )
    return GlobalIndex(2**tree_depth + leaf_index)


def global_to_leaf(index: int, tree_depth: int) -> int:
    """Convert a leaf-level global index into its 0-based leaf position."""
    if depth_of(index) != tree_depth:
        raise ValueError(
            f"Index {index} is not at leaf depth {tree_depth}"
        )
    return index - 2**tree_depth


def offset_in_layer(index: int) -> int:
    """0-based position of a node within its own layer."""
    return index - 2 ** depth_of(index)


def tree_depth_for(leaf_count: int) -> int:
    """
    Depth of a tree holding leaf_count leaves after padding.

    D = ceil(log2(leaf_count)); a single leaf gives depth 0.
    """
    if leaf_count < 1:
        raise ValueError(f"Leaf count must be positive, got {leaf_count}")
    return (leaf_count - 1).bit_length()


# =============================================================================
# Delegate subtrees
# =============================================================================
#
# With delegate subtrees enabled the dispute continues below the leaves of the
# depth-D tree. Each leaf k (global index 2**D + i) becomes the root of a
# depth-D subtree of its delegators' own power, and the subtree's nodes keep
# heap numbering: index k * 2**j + m is node m of layer j under k. A subtree
# index is the same node numbered as if k were the root.


def sub_root_of(index: int, tree_depth: int) -> GlobalIndex:
    """Leaf of the depth-D tree whose subtree holds an extended index."""
    own_depth = depth_of(index)
    if own_depth < tree_depth:
        raise ValueError(
            f"Index {index} lies above the leaves of a depth-{tree_depth} tree"
        )
    return GlobalIndex(index >> (own_depth - tree_depth))


def get_sub_index(index: int, tree_depth: int) -> GlobalIndex:
    """
    Number an extended index relative to its subtree root.

    Example:
        >>> get_sub_index(4, 2)      # a depth-2 leaf is its subtree's root
        1
        >>> get_sub_index(19, 2)     # 19 = 4 * 4 + 3, node 3 of layer 2 under 4
        7
    """
    levels = depth_of(index) - tree_depth
    sub_root = sub_root_of(index, tree_depth)
    return GlobalIndex(index - (sub_root << levels) + (1 << levels))


def extend_index(sub_root: int, sub_index: int) -> GlobalIndex:
    """Inverse of get_sub_index for a known subtree root."""
    levels = depth_of(sub_index)
    _check(sub_root)
    return GlobalIndex((sub_root << levels) + sub_index - (1 << levels))


__all__ = [
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
]
