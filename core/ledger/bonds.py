"""
Bond Custody

Proposers and challengers back their claims with locked stake. Custody of
the stake itself is external; the protocol only needs to lock, release,
move and destroy locked amounts.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Protocol, runtime_checkable

from core.schemas.errors import InsufficientBondException


logger = logging.getLogger(__name__)


@runtime_checkable
class BondVault(Protocol):
    """Interface of the stake custodian."""

    def available(self, identity: str) -> int:
        ...

    def locked(self, identity: str) -> int:
        ...

    def lock(self, identity: str, amount: int) -> None:
        ...

    def unlock(self, identity: str, amount: int) -> None:
        ...

    def transfer_locked(self, source: str, destination: str, amount: int) -> None:
        ...

    def burn_locked(self, identity: str, amount: int) -> None:
        ...


class InMemoryBondVault:
    """
    Stake balances held in memory.

    staked = available + locked for every identity. Transfers take locked
    stake from the source and credit it to the destination's available
    stake.
    """

    def __init__(self) -> None:
        self._staked: dict[str, int] = defaultdict(int)
        self._locked: dict[str, int] = defaultdict(int)
        self.total_burned = 0

    def stake(self, identity: str, amount: int) -> None:
        _check_amount(amount)
        self._staked[identity] += amount

    def staked(self, identity: str) -> int:
        return self._staked[identity]

    def available(self, identity: str) -> int:
        return self._staked[identity] - self._locked[identity]

    def locked(self, identity: str) -> int:
        return self._locked[identity]

    def lock(self, identity: str, amount: int) -> None:
        _check_amount(amount)
        if self.available(identity) < amount:
            raise InsufficientBondException(
                f"Not enough stake to lock {amount} for {identity}",
                identity=identity,
                required=amount,
                details={"available": self.available(identity)},
            )
        self._locked[identity] += amount

    def unlock(self, identity: str, amount: int) -> None:
        self._take_locked(identity, amount)

    def transfer_locked(self, source: str, destination: str, amount: int) -> None:
        self._take_locked(source, amount)
        self._staked[source] -= amount
        self._staked[destination] += amount

    def burn_locked(self, identity: str, amount: int) -> None:
        self._take_locked(identity, amount)
        self._staked[identity] -= amount
        self.total_burned += amount
        logger.info("Burned %d locked stake of %s", amount, identity)

    def _take_locked(self, identity: str, amount: int) -> None:
        _check_amount(amount)
        if self._locked[identity] < amount:
            raise ValueError(
                f"Cannot release {amount} from {identity}: only {self._locked[identity]} locked"
            )
        self._locked[identity] -= amount


def _check_amount(amount: int) -> None:
    if amount < 0:
        raise ValueError(f"Bond amount must be non-negative, got {amount}")


__all__ = [
    "BondVault",
    "InMemoryBondVault",
]
