"""
Sum Tree Unit Tests
Tests for core/merkle/sum_tree.py

Required behaviour:
1. Root determinism - same values → same root across runs
2. Padding correctness - ZERO_LEAF padding to the next power of two
3. Sums - every internal node sums its children
4. Empty input - EmptyInputException
5. Single leaf - root equals the leaf
"""
import pytest

from core.crypto.hashing import UINT256_MAX, encode_uint256, hash_pair, keccak256
from core.merkle.sum_tree import (
    ZERO_LEAF,
    TreeNode,
    build_tree,
    build_tree_from_leaves,
    combine,
    leaf_node,
    next_layer,
    pad_leaves,
)
from core.schemas.errors import EmptyInputException, ErrorCodes


class TestLeafAndCombine:
    """Tests for the node primitives."""

    def test_leaf_hash_is_keccak_of_uint256(self):
        node = leaf_node(30)
        assert node.sum == 30
        assert node.hash == keccak256(encode_uint256(30))

    def test_zero_leaf(self):
        assert ZERO_LEAF == leaf_node(0)
        assert ZERO_LEAF.sum == 0

    def test_combine_sums_and_hashes(self):
        left, right = leaf_node(10), leaf_node(0)
        parent = combine(left, right)
        assert parent.sum == 10
        assert parent.hash == hash_pair(left.hash, 10, right.hash, 0)

    def test_combine_order_matters(self):
        a, b = leaf_node(1), leaf_node(2)
        assert combine(a, b).hash != combine(b, a).hash
        assert combine(a, b).sum == combine(b, a).sum

    def test_combine_overflow(self):
        big = TreeNode(hash=keccak256(b"x"), sum=UINT256_MAX)
        with pytest.raises(ValueError, match="overflows"):
            combine(big, leaf_node(1))

    def test_node_validation(self):
        with pytest.raises(ValueError, match="32 bytes"):
            TreeNode(hash=b"short", sum=0)
        with pytest.raises(ValueError, match="uint256"):
            TreeNode(hash=keccak256(b""), sum=-1)

    def test_negative_value_rejected(self):
        with pytest.raises(ValueError):
            leaf_node(-5)

    def test_next_layer_requires_even_width(self):
        with pytest.raises(ValueError, match="even"):
            next_layer([ZERO_LEAF] * 3)


class TestBuildTree:
    """Tests for build_tree()."""

    def test_scenario_root_sum(self):
        """[10, 0, 30, 0] gives a depth 2 tree with root sum 40."""
        tree = build_tree([10, 0, 30, 0])
        assert tree.root.sum == 40
        assert tree.depth == 2
        assert tree.leaf_count == 4

    def test_root_matches_manual_combination(self):
        leaves = [leaf_node(v) for v in (10, 0, 30, 0)]
        expected = combine(combine(leaves[0], leaves[1]), combine(leaves[2], leaves[3]))
        assert build_tree([10, 0, 30, 0]).root == expected

    def test_every_internal_node_sums_children(self):
        tree = build_tree([5, 7, 11, 13, 17])
        for index in range(1, 2**tree.depth):
            node = tree.node_at(index)
            assert node.sum == tree.node_at(2 * index).sum + tree.node_at(2 * index + 1).sum

    def test_determinism(self):
        values = [3, 1, 4, 1, 5, 9, 2, 6]
        roots = [build_tree(values).root for _ in range(5)]
        assert all(root == roots[0] for root in roots)

    def test_order_matters(self):
        assert build_tree([1, 2]).root != build_tree([2, 1]).root

    def test_tamper_changes_root(self):
        """Changing any single value changes the root hash."""
        values = [10, 0, 30, 0, 7]
        original = build_tree(values).root
        for i in range(len(values)):
            tampered = list(values)
            tampered[i] += 1
            assert build_tree(tampered).root.hash != original.hash

    def test_empty_raises(self):
        with pytest.raises(EmptyInputException) as exc_info:
            build_tree([])
        assert exc_info.value.code == ErrorCodes.EMPTY_INPUT

    def test_single_leaf(self):
        tree = build_tree([42])
        assert tree.depth == 0
        assert tree.root == leaf_node(42)


class TestPadding:
    """Tests for ZERO_LEAF padding."""

    def test_three_values_padded_with_zero_leaf(self):
        tree = build_tree([1, 2, 3])
        assert len(tree.leaves) == 4
        assert tree.leaves[3] == ZERO_LEAF
        assert tree.leaf_count == 3
        assert tree.root.sum == 6

    def test_dangling_leaf_pairs_with_zero_not_duplicate(self):
        """An odd last leaf is paired with ZERO_LEAF, never duplicated."""
        tree = build_tree([1, 2, 3])
        assert tree.node_at(3) == combine(leaf_node(3), ZERO_LEAF)
        assert tree.node_at(3) != combine(leaf_node(3), leaf_node(3))

    def test_pad_leaves_widths(self):
        for count, width in [(1, 1), (2, 2), (3, 4), (5, 8), (8, 8)]:
            assert len(pad_leaves([leaf_node(1)] * count)) == width

    def test_pad_leaves_empty_raises(self):
        with pytest.raises(EmptyInputException):
            pad_leaves([])

    def test_build_from_leaves_matches_build(self):
        values = [4, 8, 15, 16, 23]
        assert build_tree_from_leaves([leaf_node(v) for v in values]).root == build_tree(values).root


class TestLayerAccess:
    """Tests for SumTree accessors."""

    def test_layer_at_depth(self):
        tree = build_tree([1, 2, 3, 4])
        assert tree.layer_at_depth(0) == (tree.root,)
        assert len(tree.layer_at_depth(1)) == 2
        assert tree.layer_at_depth(2) == tree.leaves

    def test_node_at_leaf(self):
        tree = build_tree([10, 0, 30, 0])
        assert tree.node_at(6) == leaf_node(30)

    def test_node_below_leaves_rejected(self):
        tree = build_tree([1, 2])
        with pytest.raises(IndexError):
            tree.node_at(4)

    def test_layer_out_of_range(self):
        tree = build_tree([1, 2])
        with pytest.raises(IndexError):
            tree.layer_at_depth(2)
