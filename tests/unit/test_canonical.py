"""
Node Codec Unit Tests
Tests for core/schemas/canonical.py
"""
import json

import pytest

from core.crypto.hashing import UINT256_MAX, keccak256
from core.merkle.pollard import generate_pollard
from core.merkle.sum_tree import TreeNode, ZERO_LEAF, build_tree, leaf_node
from core.schemas.canonical import (
    NODE_SIZE,
    decode_node,
    decode_nodes,
    dumps_nodes,
    encode_node,
    encode_nodes,
    loads_nodes,
    node_from_dict,
    node_to_dict,
)
from core.schemas.errors import MalformedProofException


class TestBinaryEncoding:

    def test_node_is_hash_then_sum(self):
        node = leaf_node(30)
        encoded = encode_node(node)
        assert len(encoded) == NODE_SIZE == 64
        assert encoded[:32] == node.hash
        assert encoded[32:] == (30).to_bytes(32, "big")

    def test_decode_node(self):
        node = TreeNode(hash=keccak256(b"n"), sum=UINT256_MAX)
        assert decode_node(encode_node(node)) == node

    def test_decode_wrong_length(self):
        with pytest.raises(MalformedProofException, match="64 bytes"):
            decode_node(b"\x00" * 63)

    def test_pollard_keeps_left_before_right(self):
        pollard = generate_pollard(build_tree([1, 2, 3, 4]), 2)
        data = encode_nodes(pollard)
        assert len(data) == 4 * NODE_SIZE
        assert decode_nodes(data) == pollard

    def test_decode_nodes_partial(self):
        with pytest.raises(MalformedProofException, match="multiple"):
            decode_nodes(b"\x00" * 65)


class TestJsonEncoding:

    def test_node_to_dict(self):
        data = node_to_dict(ZERO_LEAF)
        assert data == {
            "hash": "0x290decd9548b62a8d60345a988386fc84ba6bc95484008f6362f93160ef3e563",
            "sum": "0",
        }

    def test_large_sum_survives_json(self):
        node = TreeNode(hash=keccak256(b"big"), sum=2**200 + 1)
        assert node_from_dict(json.loads(json.dumps(node_to_dict(node)))) == node

    def test_integer_sum_accepted(self):
        assert node_from_dict({"hash": node_to_dict(ZERO_LEAF)["hash"], "sum": 0}) == ZERO_LEAF

    def test_missing_field(self):
        with pytest.raises(MalformedProofException, match="missing field 'sum'"):
            node_from_dict({"hash": "0x00"})

    def test_bad_hash(self):
        with pytest.raises(MalformedProofException, match="Invalid node"):
            node_from_dict({"hash": "0x1234", "sum": "1"})

    def test_bad_sum_type(self):
        with pytest.raises(MalformedProofException, match="decimal string"):
            node_from_dict({"hash": node_to_dict(ZERO_LEAF)["hash"], "sum": 1.5})

    def test_dumps_is_compact_and_ordered(self):
        text = dumps_nodes([leaf_node(1), leaf_node(2)])
        assert " " not in text
        assert loads_nodes(text) == [leaf_node(1), leaf_node(2)]

    def test_loads_rejects_non_list(self):
        with pytest.raises(MalformedProofException):
            loads_nodes('{"hash": "0x00", "sum": "0"}')
        with pytest.raises(MalformedProofException):
            loads_nodes("not json")
