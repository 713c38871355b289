"""
Runtime Configuration

Central configuration for proposal timing, quorums, bonds and dispute rounds.
"""

from __future__ import annotations

import logging
import os
from dataclasses import asdict, dataclass, field, fields
from typing import Any, Optional
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()


# Fixed-point base for fractional settings (1e18 == 100%)
CALC_BASE = 10**18

_DAY = 24 * 60 * 60
_WEI = 10**18

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_DATE_FORMAT = "%H:%M:%S"


@dataclass
class ProposalSettings:
    """
    Settings governing a proposal's lifetime and its disputes.

    Durations are in seconds. Quorums are fractions of the committed root
    sum scaled by CALC_BASE. Bonds are in the vault's smallest unit.

    With delegate_subtrees the dispute continues below each leaf into the
    per-delegator breakdown of its power, doubling the dispute depth.
    """
    vote_delay_time: int = 7 * _DAY
    vote_phase1_time: int = 7 * _DAY
    vote_phase2_time: int = 7 * _DAY
    execution_window: int = 28 * _DAY
    proposal_quorum: int = 51 * CALC_BASE // 100
    veto_quorum: int = 51 * CALC_BASE // 100
    proposal_bond: int = 100 * _WEI
    challenge_bond: int = 10 * _WEI
    challenge_period: int = 30 * 60
    depth_per_round: int = 5
    bond_burn_percent: int = 20
    max_tree_depth: int = 32
    delegate_subtrees: bool = False

    def __post_init__(self):
        if self.depth_per_round < 1:
            raise ValueError(f"depth_per_round must be positive, got {self.depth_per_round}")
        if not 0 <= self.bond_burn_percent <= 100:
            raise ValueError(f"bond_burn_percent must be within 0..100, got {self.bond_burn_percent}")
        for name in ("proposal_quorum", "veto_quorum"):
            value = getattr(self, name)
            if not 0 <= value <= CALC_BASE:
                raise ValueError(f"{name} must be within 0..CALC_BASE, got {value}")
        for name in (
            "vote_delay_time",
            "vote_phase1_time",
            "vote_phase2_time",
            "execution_window",
            "challenge_period",
            "proposal_bond",
            "challenge_bond",
            "max_tree_depth",
        ):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be non-negative")
        # disputes only run before voting starts
        if self.challenge_period >= self.vote_delay_time:
            raise ValueError(
                f"challenge_period ({self.challenge_period}) must be shorter than "
                f"vote_delay_time ({self.vote_delay_time})"
            )


@dataclass
class RuntimeConfig:
    """
    Complete runtime configuration for the governance protocol.

    Can be loaded from:
    - Environment variables
    - YAML file
    - Programmatic construction
    """
    proposals: ProposalSettings = field(default_factory=ProposalSettings)
    log_level: str = "INFO"
    extra: dict[str, Any] = field(default_factory=dict)

    @staticmethod
    def _get_env_overrides() -> dict[str, Any]:
        """
        Get configuration overrides from environment variables.

        This is the SINGLE source of truth for all env var reading.

        Supported variables:
        - POLLARD_LOG_LEVEL: Logging level name
        - POLLARD_<SETTING>: Any ProposalSettings field in upper case,
          e.g. POLLARD_DEPTH_PER_ROUND=3 or POLLARD_CHALLENGE_PERIOD=600
        - POLLARD_DELEGATE_SUBTREES: true/false
        """
        overrides: dict[str, Any] = {}

        if os.getenv("POLLARD_LOG_LEVEL"):
            overrides["log_level"] = os.getenv("POLLARD_LOG_LEVEL")

        for f in fields(ProposalSettings):
            raw = os.getenv(f"POLLARD_{f.name.upper()}")
            if raw and f.type in ("bool", bool):
                overrides.setdefault("proposals", {})[f.name] = raw.lower() in ("1", "true", "yes")
            elif raw:
                try:
                    overrides.setdefault("proposals", {})[f.name] = int(raw)
                except ValueError as e:
                    raise ValueError(
                        f"POLLARD_{f.name.upper()} must be an integer, got {raw!r}"
                    ) from e

        return overrides

    @classmethod
    def from_env(cls) -> "RuntimeConfig":
        """
        Load configuration purely from environment variables.

        Uses defaults for any values not specified in env vars.
        """
        overrides = cls._get_env_overrides()
        return cls.from_dict(overrides)

    @classmethod
    def from_yaml(cls, path: str | Path) -> "RuntimeConfig":
        """Load configuration from a YAML file."""
        import yaml
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

        with open(path) as f:
            data = yaml.safe_load(f)

        return cls.from_dict(data or {})

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RuntimeConfig":
        """Load configuration from a dictionary (supports partial data)."""
        proposals_data = data.get("proposals", {})
        proposals = ProposalSettings(**proposals_data) if proposals_data else ProposalSettings()

        return cls(
            proposals=proposals,
            log_level=data.get("log_level", "INFO"),
            extra=data.get("extra", {}),
        )

    def with_env_overrides(self) -> "RuntimeConfig":
        """
        Return a new config with environment variable overrides applied.

        This allows loading from a config file first, then overlaying env vars.
        """
        overrides = self._get_env_overrides()
        if not overrides:
            return self

        import copy
        new_config = copy.deepcopy(self)

        if "proposals" in overrides:
            settings = asdict(new_config.proposals)
            settings.update(overrides["proposals"])
            new_config.proposals = ProposalSettings(**settings)

        if "log_level" in overrides:
            new_config.log_level = overrides["log_level"]

        return new_config

    def to_dict(self) -> dict[str, Any]:
        """Convert configuration to a dictionary."""
        return {
            "proposals": asdict(self.proposals),
            "log_level": self.log_level,
            "extra": self.extra,
        }


def configure_logging(level: str | int = "INFO") -> None:
    """Configure root logging the same way for library users and tests."""
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
    )


# Global default configuration
_default_config: Optional[RuntimeConfig] = None


def get_default_config() -> RuntimeConfig:
    """Get the default runtime configuration."""
    global _default_config
    if _default_config is None:
        _default_config = RuntimeConfig.from_env()
    return _default_config


def set_default_config(config: RuntimeConfig) -> None:
    """Set the default runtime configuration."""
    global _default_config
    _default_config = config
