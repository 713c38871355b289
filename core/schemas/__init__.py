"""
Schemas & Canonicalization
File: __init__.py

Purpose: Export the error taxonomy shared by every other package.

The node codec (core.schemas.canonical) and the governance data model
(core.schemas.governance) depend on core.merkle, which itself raises the
errors defined here, so they are imported from their own modules.
"""

from .errors import (
    DeadlineNotReachedException,
    DoubleSettlementException,
    EmptyInputException,
    ErrorCodes,
    GovernanceError,
    GovernanceException,
    InsufficientBondException,
    InvalidStateException,
    MalformedProofException,
    NotAuthorizedException,
    ProofMismatchException,
    StaleSnapshotException,
    UnauthorizedChallengeException,
)


__all__ = [
    "ErrorCodes",
    "GovernanceError",
    "GovernanceException",
    "EmptyInputException",
    "MalformedProofException",
    "ProofMismatchException",
    "StaleSnapshotException",
    "UnauthorizedChallengeException",
    "InvalidStateException",
    "DoubleSettlementException",
    "NotAuthorizedException",
    "DeadlineNotReachedException",
    "InsufficientBondException",
]
