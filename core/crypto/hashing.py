"""
Hashing Utilities
Digest primitives shared by the sum tree, the proofs and the wire codec.

This module provides:
- keccak-256 hashing for raw bytes (EVM compatible)
- Fixed-width 256-bit big-endian integer encoding
- Hex encoding/decoding with 0x prefix

Determinism Notes:
- Sums are always encoded as exactly 32 bytes, big-endian, unsigned
- The digest is keccak-256 (not NIST SHA3-256) so that every value produced
  here matches keccak256(abi.encodePacked(...)) on an EVM verifier
"""
from __future__ import annotations

from eth_utils import keccak


UINT256_BYTES = 32
UINT256_MAX = 2**256 - 1
DIGEST_SIZE = 32


def keccak256(data: bytes) -> bytes:
    """
    Compute the keccak-256 digest of raw bytes.

    Args:
        data: Raw bytes to hash

    Returns:
        32-byte digest

    Example:
        >>> keccak256(b"").hex()
        'c5d2460186f7233c927e7db2dcc703c0e500b653ca82273b7bfad8045d85a470'
    """
    return keccak(data)


def encode_uint256(value: int) -> bytes:
    """
    Encode an unsigned integer as a 32-byte big-endian word.

    Raises:
        ValueError: If value is negative or does not fit in 256 bits
    """
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"uint256 value must be an int, got {type(value).__name__}")
    if value < 0 or value > UINT256_MAX:
        raise ValueError(f"Value out of uint256 range: {value}")
    return value.to_bytes(UINT256_BYTES, "big")


def decode_uint256(data: bytes) -> int:
    """Decode a 32-byte big-endian word into an int."""
    if len(data) != UINT256_BYTES:
        raise ValueError(f"uint256 word must be {UINT256_BYTES} bytes, got {len(data)}")
    return int.from_bytes(data, "big")


def to_hex(data: bytes) -> str:
    """
    Convert bytes to hexadecimal string with 0x prefix.

    Example:
        >>> to_hex(bytes.fromhex("deadbeef"))
        '0xdeadbeef'
    """
    return "0x" + data.hex()


def from_hex(hex_string: str) -> bytes:
    """
    Convert hexadecimal string (with 0x prefix) to bytes.

    Raises:
        ValueError: If string doesn't start with 0x, has odd length,
                   or contains invalid hex characters
    """
    if not hex_string.startswith("0x"):
        raise ValueError(
            f"Hex string must start with '0x' prefix, got: {hex_string[:10]}..."
        )

    hex_content = hex_string[2:]

    if len(hex_content) % 2 != 0:
        raise ValueError(
            f"Hex string must have even length after 0x prefix, "
            f"got length {len(hex_content)}"
        )

    try:
        return bytes.fromhex(hex_content)
    except ValueError as e:
        raise ValueError(f"Invalid hex characters in string: {e}") from e


def hash_pair(left_hash: bytes, left_sum: int, right_hash: bytes, right_sum: int) -> bytes:
    """
    Hash two (hash, sum) pairs in packed order.

    parent = keccak256(left_hash ‖ uint256(left_sum) ‖ right_hash ‖ uint256(right_sum))
    """
    return keccak256(
        left_hash
        + encode_uint256(left_sum)
        + right_hash
        + encode_uint256(right_sum)
    )


__all__ = [
    "UINT256_BYTES",
    "UINT256_MAX",
    "DIGEST_SIZE",
    "keccak256",
    "encode_uint256",
    "decode_uint256",
    "to_hex",
    "from_hex",
    "hash_pair",
]
