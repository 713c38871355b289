"""
Runtime Configuration Module

Provides configuration loading and management for the governance protocol.
"""

from .runtime import (
    CALC_BASE,
    ProposalSettings,
    RuntimeConfig,
    configure_logging,
    get_default_config,
    set_default_config,
)

__all__ = [
    "CALC_BASE",
    "ProposalSettings",
    "RuntimeConfig",
    "configure_logging",
    "get_default_config",
    "set_default_config",
]
