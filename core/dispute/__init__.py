"""
Bisection dispute game over sum-tree commitments.
"""

from .challenge_engine import ChallengeEngine

__all__ = ["ChallengeEngine"]
