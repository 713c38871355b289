"""
Schemas & Canonicalization
File: governance.py

Purpose: Data model for proposals, challenges, votes and bond claims.
Proposal and Challenge records are owned and mutated by the dispute engine
and the proposal lifecycle; VoteRecord and BondClaim are immutable once
created.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from core.merkle.sum_tree import TreeNode
from core.merkle.tree_index import ROOT_INDEX


class ProposalState(str, Enum):
    """Derived lifecycle state of a proposal."""
    PENDING = "pending"
    ACTIVE_PHASE1 = "active_phase1"
    ACTIVE_PHASE2 = "active_phase2"
    CANCELLED = "cancelled"
    VETOED = "vetoed"
    QUORUM_NOT_MET = "quorum_not_met"
    DEFEATED = "defeated"
    SUCCEEDED = "succeeded"
    EXPIRED = "expired"
    EXECUTED = "executed"
    DESTROYED = "destroyed"


class ChallengeState(str, Enum):
    """State of a single disputed index."""
    AWAITING_RESPONSE = "awaiting_response"
    RESPONDED = "responded"
    RESOLVED_FOR_PROPOSER = "resolved_for_proposer"
    RESOLVED_FOR_CHALLENGER = "resolved_for_challenger"
    CANCELLED = "cancelled"
    PAID = "paid"


class VoteDirection(str, Enum):
    """Direction of a cast vote."""
    ABSTAIN = "abstain"
    FOR = "for"
    AGAINST = "against"
    AGAINST_WITH_VETO = "against_with_veto"


class Challenge(BaseModel):
    """
    A disputed node of a proposer's commitment.

    The root index is recorded as a challenge owned by the proposer, already
    RESPONDED with the root pollard submitted at proposal time.
    """

    model_config = ConfigDict(extra="forbid")

    index: int = Field(
        ...,
        description="Global index of the disputed node",
        ge=1,
    )
    claimed_node: TreeNode = Field(
        ...,
        description="The proposer's committed node at index",
    )
    challenger: str = Field(
        ...,
        description="Identity that opened the challenge and posted its bond",
    )
    proposer: str = Field(
        ...,
        description="Identity of the proposer defending the commitment",
    )
    created_at: int = Field(
        ...,
        description="Clock time the challenge was opened",
    )
    response_deadline: int = Field(
        ...,
        description="Clock time after which an unanswered challenge forfeits",
    )
    state: ChallengeState = Field(
        default=ChallengeState.AWAITING_RESPONSE,
        description="Current challenge state",
    )
    pollard: list[TreeNode] = Field(
        default_factory=list,
        description="Nodes revealed by the proposer's response",
    )

    @property
    def is_root(self) -> bool:
        return self.index == ROOT_INDEX


class VoteRecord(BaseModel):
    """
    An accepted vote.

    Phase 1 votes carry the delegate's aggregated power and its witness;
    phase 2 overrides carry the voter's own power and no witness.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    proposal_id: int = Field(..., description="Proposal the vote belongs to")
    voter_index: int = Field(..., description="0-based participant index", ge=0)
    direction: VoteDirection = Field(..., description="Vote direction")
    voting_power: int = Field(..., description="Power counted for this vote", ge=0)
    delegate_index: int | None = Field(
        default=None,
        description="Delegate whose phase 1 vote this record overrides",
    )
    witness: list[TreeNode] = Field(
        default_factory=list,
        description="Leaf witness verified against the committed root",
    )
    phase: int = Field(..., description="Voting phase (1 or 2)", ge=1, le=2)


class Proposal(BaseModel):
    """
    A governance proposal backed by a sum-tree commitment.

    Timestamps are fixed at creation; the lifecycle state is derived from
    them together with the cancelled/executed/finalised flags and the
    defeat index.
    """

    model_config = ConfigDict(extra="forbid")

    id: int = Field(..., description="Sequential proposal id", ge=1)
    proposer: str = Field(..., description="Identity that posted the proposer bond")
    message: str = Field(..., description="Human-readable description")
    payload: bytes = Field(default=b"", description="Opaque execution payload")
    snapshot_block: int = Field(..., description="Ledger block the commitment is taken at", ge=0)
    root_pollard: list[TreeNode] = Field(..., description="Pollard revealed at proposal time")
    root: TreeNode = Field(..., description="Committed root node")
    tree_depth: int = Field(..., description="Depth D of the committed tree", ge=0)
    delegate_subtrees: bool = Field(
        default=False,
        description="Whether disputes continue into per-delegator subtrees below the leaves",
    )

    votes_required: int = Field(..., description="Quorum in absolute voting power", ge=0)
    veto_quorum: int = Field(..., description="Veto threshold in absolute voting power", ge=0)
    votes_for: int = 0
    votes_against: int = 0
    votes_abstain: int = 0
    votes_veto: int = 0

    created_at: int
    start_time: int
    phase1_end_time: int
    phase2_end_time: int
    expiry_time: int

    cancelled: bool = False
    executed: bool = False
    finalised: bool = False
    defeat_index: int | None = Field(
        default=None,
        description="Index of the challenge that defeated the commitment",
    )

    proposer_bond: int = Field(..., description="Bond locked by the proposer", ge=0)
    challenge_bond: int = Field(..., description="Bond each challenger locks", ge=0)

    challenges: dict[int, Challenge] = Field(
        default_factory=dict,
        description="Challenges keyed by global index",
    )
    votes: dict[int, VoteRecord] = Field(
        default_factory=dict,
        description="Accepted votes keyed by voter index",
    )

    @property
    def defeated(self) -> bool:
        return self.defeat_index is not None

    @property
    def dispute_depth(self) -> int:
        """Deepest index a challenge can reach: D, or 2D with delegate subtrees."""
        return 2 * self.tree_depth if self.delegate_subtrees else self.tree_depth

    def tally(self, direction: VoteDirection, power: int) -> None:
        """Add power to the counters for a direction."""
        if direction == VoteDirection.FOR:
            self.votes_for += power
        elif direction == VoteDirection.AGAINST:
            self.votes_against += power
        elif direction == VoteDirection.AGAINST_WITH_VETO:
            self.votes_against += power
            self.votes_veto += power
        else:
            self.votes_abstain += power

    def untally(self, direction: VoteDirection, power: int) -> None:
        """Remove power previously added for a direction."""
        if direction == VoteDirection.FOR:
            self.votes_for -= power
        elif direction == VoteDirection.AGAINST:
            self.votes_against -= power
        elif direction == VoteDirection.AGAINST_WITH_VETO:
            self.votes_against -= power
            self.votes_veto -= power
        else:
            self.votes_abstain -= power


class BondClaim(BaseModel):
    """Outcome of a bond claim batch."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    claimant: str = Field(..., description="Identity the claim was made for")
    indices: list[int] = Field(..., description="Indices settled by this claim")
    unlocked: int = Field(default=0, description="Own bond released back to available stake", ge=0)
    reward: int = Field(default=0, description="Counterparty bond received after burn", ge=0)
    burned: int = Field(default=0, description="Counterparty bond destroyed", ge=0)


__all__ = [
    "ProposalState",
    "ChallengeState",
    "VoteDirection",
    "Challenge",
    "VoteRecord",
    "Proposal",
    "BondClaim",
]
