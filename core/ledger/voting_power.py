"""
Voting Power Ledger

The external ledger owns the canonical per-participant voting power. This
module defines the read interface the protocol consumes, an in-memory ledger
with block-indexed history, and the delegation pre-aggregation that turns a
snapshot into the leaf array committed by proposers.
"""

from __future__ import annotations

import bisect
import logging
from dataclasses import dataclass, field
from typing import Optional, Protocol, runtime_checkable

from core.merkle.sum_tree import SumTree, build_tree


logger = logging.getLogger(__name__)


@runtime_checkable
class VotingPowerLedger(Protocol):
    """
    Read interface of the voting power ledger.

    Every historical query raises LookupError when the block can no longer
    (or not yet) be queried.
    """

    def current_block(self) -> int:
        ...

    def get_participant_count(self, block: int) -> int:
        ...

    def get_participant_at(self, index: int, block: int) -> str:
        ...

    def get_voting_power_at(self, index: int, block: int) -> int:
        ...

    def get_delegate_at(self, index: int, block: int) -> str:
        ...


@dataclass
class _Checkpoints:
    """Values keyed by the block they took effect at."""
    blocks: list[int] = field(default_factory=list)
    values: list = field(default_factory=list)

    def set(self, block: int, value) -> None:
        if self.blocks and self.blocks[-1] == block:
            self.values[-1] = value
            return
        self.blocks.append(block)
        self.values.append(value)

    def at(self, block: int):
        pos = bisect.bisect_right(self.blocks, block)
        if pos == 0:
            return None
        return self.values[pos - 1]


class InMemoryVotingPowerLedger:
    """
    Block-indexed voting power ledger held in memory.

    Participants are appended in registration order and never removed, so
    participant i keeps leaf index i for every later block. Writes apply to
    the current block; advance() moves the ledger forward.

    Args:
        history_depth: Number of past blocks that stay queryable
            (None keeps all history)
    """

    def __init__(self, start_block: int = 0, history_depth: Optional[int] = None):
        self._block = start_block
        self.history_depth = history_depth
        self._identities: list[str] = []
        self._registered_at: list[int] = []
        self._indices: dict[str, int] = {}
        self._power: dict[str, _Checkpoints] = {}
        self._delegates: dict[str, _Checkpoints] = {}

    # -- writes -------------------------------------------------------------

    def register(self, identity: str, voting_power: int = 0, delegate: Optional[str] = None) -> int:
        """Register a participant at the current block and return its index."""
        if identity in self._indices:
            raise ValueError(f"Participant already registered: {identity}")
        index = len(self._identities)
        self._identities.append(identity)
        self._registered_at.append(self._block)
        self._indices[identity] = index
        self._power[identity] = _Checkpoints()
        self._delegates[identity] = _Checkpoints()
        self.set_voting_power(identity, voting_power)
        self.set_delegate(identity, delegate or identity)
        return index

    def set_voting_power(self, identity: str, voting_power: int) -> None:
        if voting_power < 0:
            raise ValueError(f"Voting power must be non-negative, got {voting_power}")
        self._require(identity)
        self._power[identity].set(self._block, voting_power)

    def set_delegate(self, identity: str, delegate: str) -> None:
        self._require(identity)
        self._delegates[identity].set(self._block, delegate)

    def advance(self, blocks: int = 1) -> int:
        """Move the current block forward."""
        if blocks < 0:
            raise ValueError("Cannot move the ledger backwards")
        self._block += blocks
        return self._block

    # -- reads --------------------------------------------------------------

    def current_block(self) -> int:
        return self._block

    def get_participant_count(self, block: int) -> int:
        self._check_block(block)
        return bisect.bisect_right(self._registered_at, block)

    def get_participant_at(self, index: int, block: int) -> str:
        if index < 0 or index >= self.get_participant_count(block):
            raise IndexError(f"No participant at index {index} for block {block}")
        return self._identities[index]

    def get_voting_power_at(self, index: int, block: int) -> int:
        identity = self.get_participant_at(index, block)
        return self._power[identity].at(block) or 0

    def get_delegate_at(self, index: int, block: int) -> str:
        identity = self.get_participant_at(index, block)
        return self._delegates[identity].at(block) or identity

    def index_of(self, identity: str) -> int:
        return self._require(identity)

    def _require(self, identity: str) -> int:
        try:
            return self._indices[identity]
        except KeyError as e:
            raise KeyError(f"Unknown participant: {identity}") from e

    def _check_block(self, block: int) -> None:
        if block > self._block:
            raise LookupError(f"Block {block} is in the future (current {self._block})")
        if self.history_depth is not None and block < self._block - self.history_depth:
            raise LookupError(
                f"Block {block} is older than the {self.history_depth} block history"
            )


def aggregate_delegated_power(ledger: VotingPowerLedger, block: int) -> list[int]:
    """
    Build the leaf array for a snapshot with delegation folded in.

    Leaf i holds the power of every participant whose delegate at block is
    participant i. A delegate that is not itself a participant at block
    leaves the power with its owner. An empty ledger yields a single zero
    leaf.

    Raises:
        LookupError: If block cannot be queried
    """
    count = ledger.get_participant_count(block)
    if count == 0:
        return [0]

    identities = [ledger.get_participant_at(i, block) for i in range(count)]
    positions = {identity: i for i, identity in enumerate(identities)}
    leaves = [0] * count
    for i in range(count):
        delegate = ledger.get_delegate_at(i, block)
        target = positions.get(delegate, i)
        leaves[target] += ledger.get_voting_power_at(i, block)
    return leaves


def build_tree_from_ledger(ledger: VotingPowerLedger, block: int) -> SumTree:
    """Build the sum tree a truthful proposer commits to at block."""
    leaves = aggregate_delegated_power(ledger, block)
    logger.debug("Aggregated %d leaves at block %d", len(leaves), block)
    return build_tree(leaves)


def delegation_breakdown(
    ledger: VotingPowerLedger,
    block: int,
    delegate_index: int,
) -> list[int]:
    """
    Split one leaf of the snapshot into its delegators' own power.

    Position j holds participant j's power if its delegate at block resolves
    to delegate_index (under the same rule as aggregate_delegated_power),
    and zero otherwise. The list has one entry per participant, so it sums
    to leaf delegate_index of the aggregated snapshot. Padding leaves beyond
    the participant count break down into zeros.

    Raises:
        LookupError: If block cannot be queried
    """
    count = ledger.get_participant_count(block)
    if count == 0:
        return [0]

    identities = [ledger.get_participant_at(i, block) for i in range(count)]
    positions = {identity: i for i, identity in enumerate(identities)}
    breakdown = [0] * count
    for j in range(count):
        target = positions.get(ledger.get_delegate_at(j, block), j)
        if target == delegate_index:
            breakdown[j] = ledger.get_voting_power_at(j, block)
    return breakdown


def build_delegate_subtree(
    ledger: VotingPowerLedger,
    block: int,
    delegate_index: int,
) -> SumTree:
    """Build the subtree a truthful proposer reveals beneath one leaf."""
    return build_tree(delegation_breakdown(ledger, block, delegate_index))


__all__ = [
    "VotingPowerLedger",
    "InMemoryVotingPowerLedger",
    "aggregate_delegated_power",
    "build_tree_from_ledger",
    "delegation_breakdown",
    "build_delegate_subtree",
]
