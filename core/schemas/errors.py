"""
Error Taxonomy
File: errors.py

Purpose: Standard error taxonomy for commitments, disputes and settlement.
Defines both Pydantic models for structured error communication
and Python exceptions for control flow.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


# =============================================================================
# Error Codes (Machine-Readable Constants)
# =============================================================================

class ErrorCodes:
    """Stable machine-readable error codes used across the protocol."""

    # Tree construction
    EMPTY_INPUT = "EMPTY_INPUT"

    # Proof & Commitment Errors
    MALFORMED_PROOF = "MALFORMED_PROOF"
    PROOF_MISMATCH = "PROOF_MISMATCH"

    # Snapshot Errors
    STALE_SNAPSHOT = "STALE_SNAPSHOT"

    # Dispute Errors
    UNAUTHORIZED_CHALLENGE = "UNAUTHORIZED_CHALLENGE"
    DEADLINE_NOT_REACHED = "DEADLINE_NOT_REACHED"

    # State & Authorization Errors
    INVALID_STATE = "INVALID_STATE"
    NOT_AUTHORIZED = "NOT_AUTHORIZED"

    # Bond Errors
    INSUFFICIENT_BOND = "INSUFFICIENT_BOND"
    DOUBLE_SETTLEMENT = "DOUBLE_SETTLEMENT"


# =============================================================================
# Pydantic Error Model (Structured Communication)
# =============================================================================

class GovernanceError(BaseModel):
    """
    Error model for structured error reporting.

    Serializable form of a GovernanceException. Build one with
    GovernanceException.to_error_model() and raise it again with
    to_exception().
    """

    model_config = ConfigDict(
        extra="forbid",
        frozen=False,
        validate_assignment=True,
    )

    code: str = Field(
        ...,
        description="Stable machine-readable error code",
        examples=[ErrorCodes.MALFORMED_PROOF],
    )
    message: str = Field(
        ...,
        description="Human-readable error message",
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional structured details about the error",
    )
    retryable: bool = Field(
        default=False,
        description="Whether the operation can be retried",
    )

    def to_exception(self) -> "GovernanceException":
        """Convert this error model to a raised exception."""
        return GovernanceException(
            code=self.code,
            message=self.message,
            details=self.details,
            retryable=self.retryable,
        )


# =============================================================================
# Python Exceptions (Control Flow)
# =============================================================================

class GovernanceException(Exception):
    """
    Base exception for all protocol errors.

    Every rejection leaves protocol state untouched; nothing here is retried.
    """

    def __init__(
        self,
        message: str,
        code: str = "GOVERNANCE_ERROR",
        details: dict[str, Any] | None = None,
        retryable: bool = False,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details or {}
        self.retryable = retryable

    def to_error_model(self) -> GovernanceError:
        """Convert this exception to a GovernanceError model."""
        return GovernanceError(
            code=self.code,
            message=self.message,
            details=self.details,
            retryable=self.retryable,
        )

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code!r}, message={self.message!r})"


class EmptyInputException(GovernanceException):
    """Raised when a tree is requested over zero leaves."""

    def __init__(self, message: str = "Cannot build a tree from zero leaves") -> None:
        super().__init__(message=message, code=ErrorCodes.EMPTY_INPUT)


class MalformedProofException(GovernanceException):
    """Raised when a witness or pollard has the wrong shape for its index."""

    def __init__(
        self,
        message: str,
        index: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        full_details = details or {}
        if index is not None:
            full_details["index"] = index
        super().__init__(
            message=message,
            code=ErrorCodes.MALFORMED_PROOF,
            details=full_details,
        )


class ProofMismatchException(GovernanceException):
    """Raised when a recomputed hash, sum or leaf does not match the commitment."""

    def __init__(
        self,
        message: str,
        index: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        full_details = details or {}
        if index is not None:
            full_details["index"] = index
        super().__init__(
            message=message,
            code=ErrorCodes.PROOF_MISMATCH,
            details=full_details,
        )


class StaleSnapshotException(GovernanceException):
    """Raised when a snapshot block cannot be queried from the ledger."""

    def __init__(
        self,
        message: str,
        block: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        full_details = details or {}
        if block is not None:
            full_details["block"] = block
        super().__init__(
            message=message,
            code=ErrorCodes.STALE_SNAPSHOT,
            details=full_details,
        )


class UnauthorizedChallengeException(GovernanceException):
    """Raised when a challenge does not descend from an agreed commitment."""

    def __init__(
        self,
        message: str,
        index: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        full_details = details or {}
        if index is not None:
            full_details["index"] = index
        super().__init__(
            message=message,
            code=ErrorCodes.UNAUTHORIZED_CHALLENGE,
            details=full_details,
        )


class InvalidStateException(GovernanceException):
    """Raised when an operation is not legal in the current state."""

    def __init__(
        self,
        message: str,
        state: str | None = None,
        details: dict[str, Any] | None = None,
        code: str = ErrorCodes.INVALID_STATE,
    ) -> None:
        full_details = details or {}
        if state is not None:
            full_details["state"] = state
        super().__init__(
            message=message,
            code=code,
            details=full_details,
        )


class DoubleSettlementException(InvalidStateException):
    """Raised when a bond for an already settled index is claimed again."""

    def __init__(
        self,
        message: str,
        index: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        full_details = details or {}
        if index is not None:
            full_details["index"] = index
        super().__init__(
            message=message,
            details=full_details,
            code=ErrorCodes.DOUBLE_SETTLEMENT,
        )


class NotAuthorizedException(GovernanceException):
    """Raised when the caller is not the party allowed to act."""

    def __init__(
        self,
        message: str,
        caller: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        full_details = details or {}
        if caller is not None:
            full_details["caller"] = caller
        super().__init__(
            message=message,
            code=ErrorCodes.NOT_AUTHORIZED,
            details=full_details,
        )


class DeadlineNotReachedException(GovernanceException):
    """Raised when a forfeiture is requested before the response deadline."""

    def __init__(
        self,
        message: str,
        deadline: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        full_details = details or {}
        if deadline is not None:
            full_details["deadline"] = deadline
        super().__init__(
            message=message,
            code=ErrorCodes.DEADLINE_NOT_REACHED,
            details=full_details,
        )


class InsufficientBondException(GovernanceException):
    """Raised when a participant cannot cover a required bond."""

    def __init__(
        self,
        message: str,
        identity: str | None = None,
        required: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        full_details = details or {}
        if identity is not None:
            full_details["identity"] = identity
        if required is not None:
            full_details["required"] = required
        super().__init__(
            message=message,
            code=ErrorCodes.INSUFFICIENT_BOND,
            details=full_details,
        )
