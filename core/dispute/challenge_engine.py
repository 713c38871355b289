"""
Challenge Engine
The interactive bisection game over a proposer's sum-tree commitment.

Round structure:
1. A challenger names an index at the next round boundary below an agreed
   checkpoint and proves the proposer's node there with a witness back to
   the checkpoint (create_challenge)
2. The proposer answers with a pollard that decomposes the node
   (respond_to_challenge); at leaf depth the pollard is checked against the
   ledger snapshot
3. The challenger picks a revealed node and challenges again, one round
   boundary deeper
4. An unanswered challenge forfeits once its deadline passes
   (defeat_proposal / tick)

With delegate subtrees a response at leaf depth D reveals the subtree of
that leaf's delegators instead of being checked against the snapshot. Its
root must carry the leaf's sum, and the rounds continue inside it down to
2D, where the revealed leaves are checked against each delegator's own
power.

Depth strictly increases each round, so a dispute ends within
ceil(D / depth_per_round) rounds, twice that with delegate subtrees.
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence

from core.config.runtime import ProposalSettings
from core.governance.clock import Clock
from core.governance.store import ProposalStore, derive_state
from core.ledger.bonds import BondVault
from core.ledger.voting_power import (
    VotingPowerLedger,
    aggregate_delegated_power,
    delegation_breakdown,
)
from core.merkle.merkle_proofs import compute_root_from_witness
from core.merkle.pollard import (
    clamp_order,
    is_round_boundary,
    is_subtree_round_boundary,
    previous_checkpoint_depth,
    reduce_pollard,
    subtree_checkpoint_depth,
)
from core.merkle.sum_tree import TreeNode, leaf_node
from core.merkle.tree_index import (
    ancestor_at_depth,
    depth_of,
    get_sub_index,
    offset_in_layer,
    sub_root_of,
)
from core.schemas.errors import (
    DeadlineNotReachedException,
    InvalidStateException,
    MalformedProofException,
    NotAuthorizedException,
    ProofMismatchException,
    StaleSnapshotException,
    UnauthorizedChallengeException,
)
from core.schemas.governance import (
    Challenge,
    ChallengeState,
    Proposal,
    ProposalState,
)


logger = logging.getLogger(__name__)


class ChallengeEngine:
    """
    Runs disputes for every proposal in a store.

    Args:
        store: Proposal registry shared with the lifecycle
        ledger: Source of the canonical snapshot
        vault: Custodian for challenge bonds
        clock: Time source for deadlines
        settings: Bond sizes, challenge period and round width
    """

    def __init__(
        self,
        store: ProposalStore,
        ledger: VotingPowerLedger,
        vault: BondVault,
        clock: Clock,
        settings: ProposalSettings,
    ):
        self.store = store
        self.ledger = ledger
        self.vault = vault
        self.clock = clock
        self.settings = settings
        self._snapshots: dict[int, list[int]] = {}
        self._breakdowns: dict[tuple[int, int], list[int]] = {}

    @property
    def order(self) -> int:
        return self.settings.depth_per_round

    # =========================================================================
    # Snapshot access
    # =========================================================================

    def snapshot_leaves(self, block: int) -> list[int]:
        """
        Leaf values a truthful proposer commits to at block.

        Raises:
            StaleSnapshotException: If the ledger can no longer serve block
        """
        if block not in self._snapshots:
            try:
                self._snapshots[block] = aggregate_delegated_power(self.ledger, block)
            except LookupError as e:
                raise StaleSnapshotException(str(e), block=block) from e
        return self._snapshots[block]

    def expected_leaf(self, block: int, leaf_index: int) -> TreeNode:
        """Canonical node for a leaf position (padding positions are zero)."""
        leaves = self.snapshot_leaves(block)
        value = leaves[leaf_index] if leaf_index < len(leaves) else 0
        return leaf_node(value)

    def check_leaves(
        self,
        block: int,
        tree_depth: int,
        index: int,
        nodes: Sequence[TreeNode],
    ) -> bool:
        """True if nodes are exactly the snapshot leaves beneath index."""
        width = 2 ** (tree_depth - depth_of(index))
        if len(nodes) != width:
            return False
        start = offset_in_layer(index) * width
        return all(
            node == self.expected_leaf(block, start + i)
            for i, node in enumerate(nodes)
        )

    def breakdown_leaves(self, block: int, delegate_index: int) -> list[int]:
        """Delegators' own power beneath leaf delegate_index at block."""
        key = (block, delegate_index)
        if key not in self._breakdowns:
            try:
                self._breakdowns[key] = delegation_breakdown(self.ledger, block, delegate_index)
            except LookupError as e:
                raise StaleSnapshotException(str(e), block=block) from e
        return self._breakdowns[key]

    def expected_sub_leaf(self, block: int, delegate_index: int, leaf_index: int) -> TreeNode:
        leaves = self.breakdown_leaves(block, delegate_index)
        value = leaves[leaf_index] if leaf_index < len(leaves) else 0
        return leaf_node(value)

    def check_sub_leaves(
        self,
        block: int,
        tree_depth: int,
        index: int,
        nodes: Sequence[TreeNode],
    ) -> bool:
        """True if nodes are exactly the delegator leaves beneath an extended index."""
        local = get_sub_index(index, tree_depth)
        width = 2 ** (tree_depth - depth_of(local))
        if len(nodes) != width:
            return False
        delegate_index = offset_in_layer(sub_root_of(index, tree_depth))
        start = offset_in_layer(local) * width
        return all(
            node == self.expected_sub_leaf(block, delegate_index, start + i)
            for i, node in enumerate(nodes)
        )

    # =========================================================================
    # Root commitment
    # =========================================================================

    def verify_root_pollard(
        self,
        pollard: Sequence[TreeNode],
        tree_depth: int,
        snapshot_block: int,
        delegate_subtrees: bool = False,
    ) -> TreeNode:
        """
        Validate the pollard submitted with a proposal and return the root.

        A root pollard that already reaches the deepest disputable layer is
        checked against the snapshot immediately. With delegate subtrees
        that only happens for a single leaf tree.

        Raises:
            MalformedProofException: Wrong number of nodes
            ProofMismatchException: Leaves differ from the snapshot
        """
        expected = 2 ** clamp_order(1, self.order, tree_depth)
        if len(pollard) != expected:
            raise MalformedProofException(
                f"Invalid node count: expected {expected}, got {len(pollard)}",
                index=1,
            )
        root = self._reduce(pollard, 1)
        dispute_depth = 2 * tree_depth if delegate_subtrees else tree_depth
        if expected == 2**dispute_depth and not self.check_leaves(
            snapshot_block, tree_depth, 1, pollard
        ):
            raise ProofMismatchException("Invalid leaves", index=1)
        return root

    def root_checkpoint(self, proposal: Proposal) -> Challenge:
        """The proposer-owned record standing for the agreed root."""
        now = proposal.created_at
        return Challenge(
            index=1,
            claimed_node=proposal.root,
            challenger=proposal.proposer,
            proposer=proposal.proposer,
            created_at=now,
            response_deadline=now,
            state=ChallengeState.RESPONDED,
            pollard=list(proposal.root_pollard),
        )

    # =========================================================================
    # Rounds
    # =========================================================================

    def create_challenge(
        self,
        proposal_id: int,
        index: int,
        claimed_node: TreeNode,
        witness: Sequence[TreeNode],
        challenger: str,
    ) -> Challenge:
        """
        Open a challenge against the proposer's node at index.

        Raises:
            InvalidStateException: Proposal is no longer pending
            UnauthorizedChallengeException: Bad depth, unagreed checkpoint
                or duplicate index
            MalformedProofException: Witness length does not reach the
                checkpoint
            ProofMismatchException: Witness does not reproduce the checkpoint
            InsufficientBondException: Challenger cannot cover the bond
        """
        proposal = self.store.get(proposal_id)
        now = self.clock.now()
        self._require_pending(proposal, now, "Can only challenge while proposal is Pending")

        if index < 2 or depth_of(index) > proposal.dispute_depth:
            raise UnauthorizedChallengeException("Invalid index depth", index=index)
        depth = depth_of(index)
        if not self._is_boundary(proposal, depth):
            raise UnauthorizedChallengeException("Invalid challenge depth", index=index)

        checkpoint_depth = self._checkpoint_depth(proposal, depth)
        checkpoint_index = ancestor_at_depth(index, checkpoint_depth)
        checkpoint = proposal.challenges.get(checkpoint_index)
        if checkpoint is None or checkpoint.state != ChallengeState.RESPONDED:
            raise UnauthorizedChallengeException(
                "Invalid challenge depth",
                index=index,
                details={"checkpoint": checkpoint_index},
            )
        if index in proposal.challenges:
            raise UnauthorizedChallengeException("Index already challenged", index=index)

        if len(witness) != depth - checkpoint_depth:
            raise MalformedProofException(
                f"Invalid proof length: expected {depth - checkpoint_depth}, got {len(witness)}",
                index=index,
            )
        try:
            _, computed = compute_root_from_witness(index, claimed_node, witness)
        except ValueError as e:
            raise ProofMismatchException(f"Invalid proof: {e}", index=index) from e
        if computed != self._agreed_node(proposal, checkpoint):
            raise ProofMismatchException(
                "Invalid proof",
                index=index,
                details={"checkpoint": checkpoint_index},
            )

        self.vault.lock(challenger, proposal.challenge_bond)
        challenge = Challenge(
            index=index,
            claimed_node=claimed_node,
            challenger=challenger,
            proposer=proposal.proposer,
            created_at=now,
            response_deadline=now + self.settings.challenge_period,
        )
        proposal.challenges[index] = challenge
        logger.info(
            "Challenge opened: proposal=%d index=%d depth=%d challenger=%s",
            proposal_id, index, depth, challenger,
        )
        return challenge

    def respond_to_challenge(
        self,
        proposal_id: int,
        index: int,
        pollard: Sequence[TreeNode],
        responder: str,
    ) -> Challenge:
        """
        Answer a challenge with the pollard beneath its index.

        Raises:
            InvalidStateException: Proposal not pending, challenge not
                awaiting a response, or deadline passed
            NotAuthorizedException: Responder is not the proposer
            MalformedProofException: Pollard width is wrong for this round
            ProofMismatchException: Pollard does not reduce to the challenged
                node, or leaf-depth nodes differ from the snapshot
        """
        proposal = self.store.get(proposal_id)
        now = self.clock.now()
        self._require_pending(proposal, now, "Can not submit root for a valid proposal")
        if responder != proposal.proposer:
            raise NotAuthorizedException("Not proposer", caller=responder)

        challenge = self._get_challenge(proposal, index)
        if challenge.state != ChallengeState.AWAITING_RESPONSE:
            raise InvalidStateException(
                "Invalid challenge state", state=challenge.state.value, details={"index": index}
            )
        if now >= challenge.response_deadline:
            raise InvalidStateException(
                "Response deadline passed",
                details={"index": index, "deadline": challenge.response_deadline},
            )

        depth = depth_of(index)
        effective = self._pollard_order(proposal, index)
        expected = 2**effective
        if len(pollard) != expected:
            raise MalformedProofException(
                f"Invalid node count: expected {expected}, got {len(pollard)}",
                index=index,
            )
        reduced = self._reduce(pollard, index)
        if self._opens_subtree(proposal, index):
            # the subtree root stands for a leaf, which commits H(sum)
            if leaf_node(reduced.sum).hash != challenge.claimed_node.hash:
                raise ProofMismatchException("Invalid hash", index=index)
            if reduced.sum != challenge.claimed_node.sum:
                raise ProofMismatchException("Invalid sum", index=index)
        else:
            if reduced.sum != challenge.claimed_node.sum:
                raise ProofMismatchException("Invalid sum", index=index)
            if reduced.hash != challenge.claimed_node.hash:
                raise ProofMismatchException("Invalid hash", index=index)

        reaches_leaves = depth + effective == proposal.dispute_depth
        if reaches_leaves and not self._check_revealed_leaves(proposal, index, pollard):
            logger.warning(
                "Rejected response with invalid leaves: proposal=%d index=%d",
                proposal_id, index,
            )
            raise ProofMismatchException("Invalid leaves", index=index)

        challenge.pollard = list(pollard)
        challenge.state = (
            ChallengeState.RESOLVED_FOR_PROPOSER if reaches_leaves else ChallengeState.RESPONDED
        )
        logger.info(
            "Challenge answered: proposal=%d index=%d state=%s",
            proposal_id, index, challenge.state.value,
        )
        return challenge

    def resolve_leaf_challenge(self, proposal_id: int, index: int) -> Challenge:
        """
        Settle a leaf-depth challenge directly against the snapshot.

        Anyone may call this. Leaf challenges can only be opened beneath a
        root pollard that was already checked against the snapshot, so the
        claimed node always matches and the challenge resolves for the
        proposer. A proposer only loses at leaf depth through the deadline.

        Raises:
            InvalidStateException: Not a leaf-depth challenge, or it is no
                longer awaiting a response
            ProofMismatchException: The claimed node is not the canonical
                leaf (the proposal record is inconsistent)
        """
        proposal = self.store.get(proposal_id)
        now = self.clock.now()
        self._require_pending(proposal, now, "Can not resolve a challenge for a valid proposal")
        challenge = self._get_challenge(proposal, index)
        if depth_of(index) != proposal.dispute_depth:
            raise InvalidStateException(
                "Challenge is not at leaf depth",
                details={"index": index, "dispute_depth": proposal.dispute_depth},
            )
        if challenge.state != ChallengeState.AWAITING_RESPONSE:
            raise InvalidStateException(
                "Invalid challenge state", state=challenge.state.value, details={"index": index}
            )
        if not self._check_revealed_leaves(proposal, index, [challenge.claimed_node]):
            raise ProofMismatchException("Invalid leaves", index=index)

        challenge.state = ChallengeState.RESOLVED_FOR_PROPOSER
        challenge.pollard = [challenge.claimed_node]
        logger.info("Leaf challenge resolved for proposer: proposal=%d index=%d", proposal_id, index)
        return challenge

    def defeat_proposal(self, proposal_id: int, index: int) -> Proposal:
        """
        Forfeit a proposal whose challenge went unanswered past its deadline.

        Raises:
            InvalidStateException: Challenge not awaiting response, or the
                proposal already left the pending window
            DeadlineNotReachedException: The challenge period has not ended
        """
        return self._defeat_expired(self.store.get(proposal_id), index, self.clock.now())

    def tick(self, now: Optional[int] = None) -> list[tuple[int, int]]:
        """
        Apply deadline forfeiture to every pending proposal.

        Returns:
            (proposal_id, index) for each proposal defeated by this tick
        """
        now = self.clock.now() if now is None else now
        defeated: list[tuple[int, int]] = []
        for proposal in self.store:
            if derive_state(proposal, now) != ProposalState.PENDING:
                continue
            for index in sorted(proposal.challenges):
                challenge = proposal.challenges[index]
                if (
                    challenge.state == ChallengeState.AWAITING_RESPONSE
                    and now >= challenge.response_deadline
                ):
                    self._defeat_expired(proposal, index, now)
                    defeated.append((proposal.id, index))
                    break
        return defeated

    # =========================================================================
    # Internals
    # =========================================================================

    def _is_boundary(self, proposal: Proposal, depth: int) -> bool:
        if depth <= proposal.tree_depth:
            return is_round_boundary(depth, self.order, proposal.tree_depth)
        return is_subtree_round_boundary(depth, self.order, proposal.tree_depth)

    def _checkpoint_depth(self, proposal: Proposal, depth: int) -> int:
        if depth <= proposal.tree_depth:
            return previous_checkpoint_depth(depth, self.order)
        return subtree_checkpoint_depth(depth, self.order, proposal.tree_depth)

    def _opens_subtree(self, proposal: Proposal, index: int) -> bool:
        """True if a response at index reveals a delegate subtree."""
        return (
            proposal.delegate_subtrees
            and proposal.tree_depth > 0
            and depth_of(index) == proposal.tree_depth
        )

    def _in_subtree(self, proposal: Proposal, index: int) -> bool:
        return self._opens_subtree(proposal, index) or depth_of(index) > proposal.tree_depth

    def _pollard_order(self, proposal: Proposal, index: int) -> int:
        if self._in_subtree(proposal, index):
            local = get_sub_index(index, proposal.tree_depth)
            return clamp_order(local, self.order, proposal.tree_depth)
        return clamp_order(index, self.order, proposal.tree_depth)

    def _agreed_node(self, proposal: Proposal, checkpoint: Challenge) -> TreeNode:
        """
        Node that challenges beneath checkpoint must prove their way up to.

        Below a leaf that opened into its subtree this is the subtree root
        the proposer revealed, not the leaf itself.
        """
        if self._opens_subtree(proposal, checkpoint.index):
            return self._reduce(checkpoint.pollard, checkpoint.index)
        return checkpoint.claimed_node

    def _check_revealed_leaves(
        self,
        proposal: Proposal,
        index: int,
        nodes: Sequence[TreeNode],
    ) -> bool:
        if self._in_subtree(proposal, index):
            return self.check_sub_leaves(
                proposal.snapshot_block, proposal.tree_depth, index, nodes
            )
        return self.check_leaves(proposal.snapshot_block, proposal.tree_depth, index, nodes)

    def _defeat_expired(self, proposal: Proposal, index: int, now: int) -> Proposal:
        challenge = self._get_challenge(proposal, index)
        if challenge.state != ChallengeState.AWAITING_RESPONSE:
            raise InvalidStateException(
                "Invalid challenge state", state=challenge.state.value, details={"index": index}
            )
        if now < challenge.response_deadline:
            raise DeadlineNotReachedException(
                "Not enough time has passed", deadline=challenge.response_deadline
            )
        self._require_pending(proposal, now, "Can not defeat a valid proposal")
        self._defeat(proposal, index)
        return proposal

    def _defeat(self, proposal: Proposal, index: int) -> None:
        proposal.defeat_index = index
        proposal.challenges[index].state = ChallengeState.RESOLVED_FOR_CHALLENGER
        cancelled = 0
        for other in proposal.challenges.values():
            if other.state == ChallengeState.AWAITING_RESPONSE:
                other.state = ChallengeState.CANCELLED
                cancelled += 1
        logger.info(
            "Proposal defeated: proposal=%d index=%d cancelled_challenges=%d",
            proposal.id, index, cancelled,
        )

    def _require_pending(self, proposal: Proposal, now: int, message: str) -> None:
        state = derive_state(proposal, now)
        if state != ProposalState.PENDING:
            raise InvalidStateException(message, state=state.value)

    @staticmethod
    def _get_challenge(proposal: Proposal, index: int) -> Challenge:
        challenge = proposal.challenges.get(index)
        if challenge is None:
            raise InvalidStateException(
                "Challenge does not exist", details={"index": index}
            )
        return challenge

    @staticmethod
    def _reduce(pollard: Sequence[TreeNode], index: int) -> TreeNode:
        try:
            return reduce_pollard(pollard)
        except ValueError as e:
            raise ProofMismatchException(f"Invalid sum: {e}", index=index) from e


__all__ = ["ChallengeEngine"]
