"""
Schemas & Canonicalization
File: canonical.py

Purpose: Deterministic wire encodings for tree nodes, pollards and witnesses.

Binary form: each node is 64 bytes, the 32-byte hash followed by the
32-byte big-endian sum. Lists are plain concatenations in left-before-right
order, so verifiers never need ordering metadata.

JSON form: {"hash": "0x<64 hex>", "sum": "<decimal>"}. Sums are decimal
strings because uint256 values do not survive a round trip through JSON
numbers in most consumers.

CRITICAL: All outputs from this module MUST be deterministic across runs.
"""

import json
from typing import Any, Sequence

from core.crypto.hashing import (
    DIGEST_SIZE,
    UINT256_BYTES,
    decode_uint256,
    encode_uint256,
    from_hex,
    to_hex,
)
from core.merkle.sum_tree import TreeNode

from .errors import MalformedProofException

# Canonical JSON separators - no whitespace
CANONICAL_JSON_SEPARATORS: tuple[str, str] = (",", ":")

NODE_SIZE = DIGEST_SIZE + UINT256_BYTES


def encode_node(node: TreeNode) -> bytes:
    """Encode a node as hash || uint256(sum)."""
    return node.hash + encode_uint256(node.sum)


def decode_node(data: bytes) -> TreeNode:
    """
    Decode a 64-byte node.

    Raises:
        MalformedProofException: If data is not exactly one node wide
    """
    if len(data) != NODE_SIZE:
        raise MalformedProofException(
            f"Encoded node must be {NODE_SIZE} bytes, got {len(data)}",
            details={"length": len(data)},
        )
    return TreeNode(hash=bytes(data[:DIGEST_SIZE]), sum=decode_uint256(data[DIGEST_SIZE:]))


def encode_nodes(nodes: Sequence[TreeNode]) -> bytes:
    """Encode a pollard or witness as concatenated nodes."""
    return b"".join(encode_node(node) for node in nodes)


def decode_nodes(data: bytes) -> list[TreeNode]:
    """
    Decode a concatenation of nodes.

    Raises:
        MalformedProofException: If the length is not a multiple of NODE_SIZE
    """
    if len(data) % NODE_SIZE != 0:
        raise MalformedProofException(
            f"Encoded node list length {len(data)} is not a multiple of {NODE_SIZE}",
            details={"length": len(data)},
        )
    return [
        decode_node(data[offset:offset + NODE_SIZE])
        for offset in range(0, len(data), NODE_SIZE)
    ]


def node_to_dict(node: TreeNode) -> dict[str, str]:
    """
    Convert a node to its JSON-ready form.

    Example:
        >>> node_to_dict(leaf_node(30))["sum"]
        '30'
    """
    return {"hash": to_hex(node.hash), "sum": str(node.sum)}


def node_from_dict(data: dict[str, Any]) -> TreeNode:
    """
    Parse a node from its JSON form.

    Integer sums are accepted as well as decimal strings.

    Raises:
        MalformedProofException: If a field is missing or unparseable
    """
    try:
        raw_hash = data["hash"]
        raw_sum = data["sum"]
    except KeyError as e:
        raise MalformedProofException(
            f"Node is missing field {e.args[0]!r}",
            details={"fields": sorted(data)},
        ) from e

    if not isinstance(raw_hash, str):
        raise MalformedProofException(
            f"Node hash must be a hex string, got {type(raw_hash).__name__}",
        )
    if isinstance(raw_sum, bool) or not isinstance(raw_sum, (int, str)):
        raise MalformedProofException(
            f"Node sum must be a decimal string, got {type(raw_sum).__name__}",
        )
    try:
        return TreeNode(hash=from_hex(raw_hash), sum=int(raw_sum))
    except ValueError as e:
        raise MalformedProofException(f"Invalid node: {e}") from e


def dumps_nodes(nodes: Sequence[TreeNode]) -> str:
    """
    Serialize a pollard or witness to canonical JSON.

    Example:
        >>> dumps_nodes([ZERO_LEAF])
        '[{"hash":"0x290d...","sum":"0"}]'
    """
    return json.dumps(
        [node_to_dict(node) for node in nodes],
        sort_keys=True,
        separators=CANONICAL_JSON_SEPARATORS,
    )


def loads_nodes(json_str: str) -> list[TreeNode]:
    """
    Parse a JSON list of nodes.

    Raises:
        MalformedProofException: If the document is not a list of node objects
    """
    try:
        items = json.loads(json_str)
    except json.JSONDecodeError as e:
        raise MalformedProofException(f"Invalid node list JSON: {e}") from e
    if not isinstance(items, list) or not all(isinstance(item, dict) for item in items):
        raise MalformedProofException("Node list JSON must be an array of objects")
    return [node_from_dict(item) for item in items]


__all__ = [
    "CANONICAL_JSON_SEPARATORS",
    "NODE_SIZE",
    "encode_node",
    "decode_node",
    "encode_nodes",
    "decode_nodes",
    "node_to_dict",
    "node_from_dict",
    "dumps_nodes",
    "loads_nodes",
]
