"""Rules — matching events to configured actions."""

from .engine import Match, RuleEngine

__all__ = [
    "Match",
    "RuleEngine",
]
