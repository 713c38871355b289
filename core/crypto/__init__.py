"""
Core cryptographic utilities.

keccak-256 digests and fixed-width integer encoding for sum-tree commitments.
"""
from .hashing import (
    UINT256_BYTES,
    UINT256_MAX,
    DIGEST_SIZE,
    keccak256,
    encode_uint256,
    decode_uint256,
    to_hex,
    from_hex,
    hash_pair,
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
